from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Quote(BaseModel):
    """A single quote: non-empty `text` and `category`."""

    text: str = Field(..., description="Quote text")
    category: str = Field(..., description="Free-form category label")

    @field_validator("text", "category")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v


class InvalidQuotesError(ValueError):
    """Raised when a decoded JSON value is not a list of quotes."""


def coerce_quotes(raw: Any) -> List[Quote]:
    """Turn a decoded JSON value into quotes.

    The value must be a list. Items that are not objects with non-empty
    string `text` and `category` are skipped; other keys are ignored.
    """
    if not isinstance(raw, list):
        raise InvalidQuotesError(f"expected a JSON array, got {type(raw).__name__}")
    out: List[Quote] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        text = item.get("text")
        category = item.get("category")
        if not isinstance(text, str) or not isinstance(category, str):
            continue
        if not text.strip() or not category.strip():
            continue
        out.append(Quote(text=text, category=category))
    return out


DEFAULT_QUOTES: List[Quote] = [
    Quote(text="The best way to predict the future is to create it.", category="Motivation"),
    Quote(text="Success is not final; failure is not fatal.", category="Success"),
    Quote(text="Believe you can and you're halfway there.", category="Mindset"),
]

ALL_CATEGORIES = "all"


class QuoteState(BaseModel):
    """
    Persistent widget state serialized to JSON.

    Fields
    - quotes: ordered list of quotes. Duplicates are allowed; insertion order is
      the display and filter order.
    - selectedCategory: last category filter chosen by the user ("all" when unset).

    Notes
    - The JSON keys of this model are the storage keys (`quotes`, `selectedCategory`).
      Use `model_dump(by_alias=True)` when persisting.
    """

    model_config = ConfigDict(populate_by_name=True)

    quotes: List[Quote] = Field(default_factory=list, description="Stored quotes")
    selected_category: str = Field(
        default=ALL_CATEGORIES,
        alias="selectedCategory",
        description="Last selected category filter",
    )

    @classmethod
    def seeded(cls) -> "QuoteState":
        """Fresh state holding copies of the default quotes."""
        return cls(quotes=[q.model_copy() for q in DEFAULT_QUOTES])


class SessionState(BaseModel):
    """Session-scoped state; only remembers the last displayed quote."""

    model_config = ConfigDict(populate_by_name=True)

    last_viewed_quote: Optional[Quote] = Field(default=None, alias="lastViewedQuote")

    @classmethod
    def empty(cls) -> "SessionState":
        return cls()
