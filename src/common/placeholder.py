from __future__ import annotations

import time
from typing import Any, Dict, List, Optional, Sequence

import httpx

from state.models import Quote


DEFAULT_SERVER_URL = "https://jsonplaceholder.typicode.com/posts"
DEFAULT_FETCH_LIMIT = 5
FALLBACK_CATEGORY = "Server"


class PlaceholderError(RuntimeError):
    """Base error for the placeholder server client."""


class PlaceholderApiError(PlaceholderError):
    """Server returned an error status or an unexpected payload."""


def post_to_quote(post: Dict[str, Any]) -> Optional[Quote]:
    """Map a placeholder post onto a Quote: title -> text, body -> category."""
    title = post.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    body = post.get("body")
    category = body if isinstance(body, str) and body.strip() else FALLBACK_CATEGORY
    return Quote(text=title, category=category)


class PlaceholderClient:
    """
    Minimal client for the remote quote endpoint (a JSONPlaceholder-style `/posts`).

    Notes
    - GET returns posts; the first `limit` are mapped to quotes.
    - POST uploads the full local list; only success/failure of the response matters.
    - `max_attempts` bounds retries on transport errors and 429/5xx. It defaults to a
      single attempt: the periodic sync tick is the retry policy.
    """

    def __init__(
        self,
        *,
        url: str = DEFAULT_SERVER_URL,
        timeout: float = 15.0,
        max_attempts: int = 1,
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not url:
            raise ValueError("url is required")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._url = url
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=self._timeout)

    @property
    def url(self) -> str:
        return self._url

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "PlaceholderClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --------------- Public API ---------------
    def fetch_quotes(self, *, limit: int = DEFAULT_FETCH_LIMIT) -> List[Quote]:
        """Fetch server posts and map the first `limit` of them to quotes."""
        resp = self._request("GET")
        try:
            data = resp.json()
        except ValueError as exc:
            raise PlaceholderApiError("Failed to parse JSON from server") from exc
        if not isinstance(data, list):
            raise PlaceholderApiError("Expected a JSON array of posts from server")

        out: List[Quote] = []
        for post in data[:limit]:
            if not isinstance(post, dict):
                continue
            quote = post_to_quote(post)
            if quote is not None:
                out.append(quote)
        return out

    def post_quotes(self, quotes: Sequence[Quote]) -> None:
        """Upload the full quote list as a JSON array."""
        body = [q.model_dump() for q in quotes]
        self._request("POST", json_body=body)

    # --------------- Internal ---------------
    def _request(self, method: str, *, json_body: Any = None) -> httpx.Response:
        attempt = 0
        backoff = 0.5
        last_exc: Optional[Exception] = None
        while attempt < self._max_attempts:
            try:
                if json_body is None:
                    resp = self._client.request(method, self._url)
                else:
                    resp = self._client.request(method, self._url, json=json_body)
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_exc = exc
            else:
                if resp.is_success:
                    return resp
                if resp.status_code in (429, 500, 502, 503, 504):
                    last_exc = PlaceholderApiError(f"HTTP {resp.status_code} from server")
                else:
                    raise PlaceholderApiError(
                        f"HTTP {resp.status_code} from server: {resp.text[:200]}"
                    )

            attempt += 1
            if attempt < self._max_attempts:
                time.sleep(backoff)
                backoff = min(backoff * 2, 8.0)

        if isinstance(last_exc, PlaceholderApiError):
            raise last_exc
        if last_exc is not None:
            raise PlaceholderError(f"{method} {self._url} failed") from last_exc
        raise PlaceholderError(f"{method} {self._url} failed (unknown error)")


__all__ = [
    "DEFAULT_FETCH_LIMIT",
    "DEFAULT_SERVER_URL",
    "PlaceholderApiError",
    "PlaceholderClient",
    "PlaceholderError",
    "post_to_quote",
]
