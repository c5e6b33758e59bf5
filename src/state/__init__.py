"""
State models and persistence backends for the quote widget.

- models: `Quote`, `QuoteState` (keys `quotes`/`selectedCategory`), `SessionState`
- file_store: local JSON document store and the session-scoped store
- s3_store: Fernet-encrypted S3 store for scheduled deployments
"""

from .models import (
    ALL_CATEGORIES,
    DEFAULT_QUOTES,
    InvalidQuotesError,
    Quote,
    QuoteState,
    SessionState,
    coerce_quotes,
)

__all__ = [
    "ALL_CATEGORIES",
    "DEFAULT_QUOTES",
    "InvalidQuotesError",
    "Quote",
    "QuoteState",
    "SessionState",
    "coerce_quotes",
]
