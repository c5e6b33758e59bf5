from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError
from cryptography.fernet import Fernet, InvalidToken

from .file_store import OptimisticLockError, StoreUnavailableError, decode_state, dump_state_json
from .models import QuoteState


logger = logging.getLogger(__name__)

DEFAULT_KEY = "quotes.json"
CONTENT_TYPE = "application/octet-stream"

_MISSING_CODES = ("NoSuchKey", "404")
_PRECONDITION_CODES = ("PreconditionFailed", "412")


def _error_code(exc: ClientError) -> Optional[str]:
    return exc.response.get("Error", {}).get("Code")


class S3QuoteStore:
    """
    The quote document kept as one Fernet-encrypted S3 object.

    Behaves like `QuoteFileStore` so the widget can use either:
    - a missing object reads as the seeded default quotes with etag `None`;
    - an object that does not decrypt, or decrypts to something other than a
      state document, reads as the seeded defaults with the object's etag, so
      the next write replaces it;
    - `quotes`/`selectedCategory` recover independently (shared decoder);
    - S3 failures other than a missing object raise `StoreUnavailableError`.

    `write(state, if_match=etag)` stages the ciphertext under a temporary key and
    copies it over the document with an S3 `IfMatch` precondition, since
    PutObject cannot be made conditional on the current etag.
    """

    def __init__(
        self,
        *,
        bucket: str,
        fernet_key: str | bytes,
        key: str = DEFAULT_KEY,
        s3: Optional[Any] = None,
        region_name: Optional[str] = None,
    ) -> None:
        if not bucket:
            raise ValueError("S3QuoteStore requires a bucket")
        self.bucket = bucket
        self.key = key or DEFAULT_KEY
        self._fernet = Fernet(fernet_key.encode("utf-8") if isinstance(fernet_key, str) else fernet_key)
        self._s3 = s3 or boto3.client("s3", region_name=region_name)

    def __repr__(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def read(self) -> Tuple[QuoteState, Optional[str]]:
        try:
            resp = self._s3.get_object(Bucket=self.bucket, Key=self.key)
            body = resp["Body"].read()
        except ClientError as exc:
            if _error_code(exc) in _MISSING_CODES:
                return (QuoteState.seeded(), None)
            raise StoreUnavailableError(f"Cannot read {self!r}: {exc}") from exc

        etag = resp.get("ETag")
        try:
            plain = self._fernet.decrypt(body)
        except InvalidToken:
            logger.warning("Quote store %r does not decrypt with the configured key; seeding defaults", self)
            return (QuoteState.seeded(), etag)
        return (decode_state(plain, source=self), etag)

    def write(self, state: QuoteState, *, if_match: Optional[str] = None) -> str:
        ciphertext = self._fernet.encrypt(dump_state_json(state))
        if if_match is None:
            return str(self._put(self.key, ciphertext).get("ETag"))

        staged = f"{self.key}.tmp-{uuid4().hex}"
        self._put(staged, ciphertext)
        try:
            resp = self._s3.copy_object(
                Bucket=self.bucket,
                Key=self.key,
                CopySource={"Bucket": self.bucket, "Key": staged},
                IfMatch=if_match,
                MetadataDirective="COPY",
            )
        except ClientError as exc:
            if _error_code(exc) in _PRECONDITION_CODES:
                raise OptimisticLockError(f"etag mismatch for {self!r}") from exc
            raise StoreUnavailableError(f"Cannot write {self!r}: {exc}") from exc
        finally:
            self._discard(staged)
        return str(resp.get("CopyObjectResult", {}).get("ETag"))

    def _put(self, key: str, body: bytes) -> Dict[str, Any]:
        try:
            return self._s3.put_object(Bucket=self.bucket, Key=key, Body=body, ContentType=CONTENT_TYPE)
        except ClientError as exc:
            raise StoreUnavailableError(f"Cannot write s3://{self.bucket}/{key}: {exc}") from exc

    def _discard(self, key: str) -> None:
        try:
            self._s3.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            logger.warning("Could not remove staged object s3://%s/%s: %s", self.bucket, key, exc)
