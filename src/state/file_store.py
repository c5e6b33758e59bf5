from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple

from pydantic import ValidationError

from .models import ALL_CATEGORIES, DEFAULT_QUOTES, InvalidQuotesError, QuoteState, SessionState, coerce_quotes


logger = logging.getLogger(__name__)

DEFAULT_STATE_FILE = Path(".quotes") / "state.json"
SESSION_FILE_NAME = "quotes-session.json"


class OptimisticLockError(Exception):
    """Raised when an etag precondition fails during a conditional write."""


class StoreUnavailableError(OSError):
    """The backing store could not be reached or read at all."""


def default_session_file() -> Path:
    # Temp dir is cleared with the machine session, which is the scope we want
    return Path(tempfile.gettempdir()) / SESSION_FILE_NAME


def dump_state_json(state: QuoteState) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(
        state.model_dump(by_alias=True), separators=(",", ":"), sort_keys=True, ensure_ascii=False
    ).encode("utf-8")


def load_state_json(data: bytes) -> QuoteState:
    """Decode a stored state document.

    Each storage key is recovered independently: an unusable `quotes` value
    falls back to the default quotes, an unusable `selectedCategory` to "all".
    Raises ValueError when the bytes are not a JSON object at all.
    """
    raw = json.loads(data.decode("utf-8"))
    if not isinstance(raw, dict):
        raise ValueError("stored state is not a JSON object")

    try:
        quotes = coerce_quotes(raw.get("quotes"))
    except InvalidQuotesError:
        logger.warning("Stored quotes missing or not an array; seeding defaults")
        quotes = [q.model_copy() for q in DEFAULT_QUOTES]

    selected = raw.get("selectedCategory")
    if not isinstance(selected, str) or not selected:
        selected = ALL_CATEGORIES
    return QuoteState(quotes=quotes, selected_category=selected)


def decode_state(data: bytes, *, source: object) -> QuoteState:
    """Like `load_state_json`, but an unreadable document falls back to the seeded defaults."""
    try:
        return load_state_json(data)
    except (ValueError, UnicodeDecodeError):
        logger.warning("Unreadable quote store at %s; seeding defaults", source)
        return QuoteState.seeded()


def _etag(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _atomic_write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class QuoteFileStore:
    """
    Local JSON document holding the persistent widget state.

    - `read()` returns `(state, etag)`. A missing file yields the seeded default
      quotes and `None`; a corrupt file yields the seeded defaults and the etag of
      the corrupt bytes, so the next write replaces it.
    - `write(state, if_match=None)` replaces the file atomically and returns the new
      etag (SHA-256 of the stored bytes). With `if_match`, the write only proceeds
      when the current etag matches, else `OptimisticLockError`.
    """

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else DEFAULT_STATE_FILE

    @property
    def path(self) -> Path:
        return self._path

    def _current_bytes(self) -> Optional[bytes]:
        try:
            return self._path.read_bytes()
        except FileNotFoundError:
            return None

    def read(self) -> Tuple[QuoteState, Optional[str]]:
        data = self._current_bytes()
        if data is None:
            return (QuoteState.seeded(), None)
        return (decode_state(data, source=self._path), _etag(data))

    def write(self, state: QuoteState, *, if_match: Optional[str] = None) -> str:
        payload = dump_state_json(state)
        if if_match is not None:
            current = self._current_bytes()
            if current is None or _etag(current) != if_match:
                raise OptimisticLockError(f"etag mismatch for {self._path}")
        _atomic_write(self._path, payload)
        return _etag(payload)


class SessionStore:
    """Session-scoped JSON file remembering the last displayed quote."""

    def __init__(self, path: Optional[os.PathLike[str] | str] = None) -> None:
        self._path = Path(path) if path else default_session_file()

    def load(self) -> SessionState:
        try:
            with self._path.open("r", encoding="utf-8") as f:
                raw = json.load(f)
            return SessionState.model_validate(raw)
        except FileNotFoundError:
            return SessionState.empty()
        except (ValueError, ValidationError):
            # Corrupt session data is dropped, same as a fresh session
            logger.debug("Ignoring unreadable session file %s", self._path)
            return SessionState.empty()

    def save(self, state: SessionState) -> None:
        payload = json.dumps(state.model_dump(by_alias=True), ensure_ascii=False).encode("utf-8")
        _atomic_write(self._path, payload)

    def clear(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            pass
