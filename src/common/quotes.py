from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from state.models import ALL_CATEGORIES, InvalidQuotesError, Quote, coerce_quotes


def is_all(category: Optional[str]) -> bool:
    return not category or category == ALL_CATEGORIES


def filter_by_category(quotes: Sequence[Quote], category: Optional[str]) -> List[Quote]:
    """Return quotes in `category` (exact match), preserving order.

    "all" (or an empty filter) selects every quote.
    """
    if is_all(category):
        return list(quotes)
    return [q for q in quotes if q.category == category]


def pick_random(quotes: Sequence[Quote], rng: Optional[random.Random] = None) -> Optional[Quote]:
    """Uniformly pick one quote; None for an empty sequence."""
    if not quotes:
        return None
    r = rng or random
    return quotes[r.randrange(len(quotes))]


def unique_categories(quotes: Iterable[Quote]) -> List[str]:
    return sorted({q.category for q in quotes if q.category})


def format_quote(quote: Quote) -> str:
    return f'"{quote.text}" — {quote.category}'


@dataclass
class MergeResult:
    quotes: List[Quote]
    added: int = 0
    updated: int = 0

    @property
    def changed(self) -> bool:
        return (self.added + self.updated) > 0


def merge_remote(local: Sequence[Quote], remote: Iterable[Quote]) -> MergeResult:
    """
    Reconcile a remote quote list into the local one, matching on exact `text`.

    - Remote quote with unseen text: appended (creation).
    - Remote quote whose text matches: the first local quote with that text takes
      the remote category when it differs (update). Later duplicates are untouched.
    - Nothing is ever deleted, on either side.

    Remote quotes repeating a text are folded first: the last occurrence sets the
    category, the first occurrence sets the position of an appended quote.

    The input sequence is not mutated; the merged list holds copies of any quote
    that changed. Merging the same remote list again yields no further change.
    """
    folded: Dict[str, Quote] = {}
    for rq in remote:
        folded[rq.text] = rq

    merged: List[Quote] = list(local)
    result = MergeResult(quotes=merged)
    for rq in folded.values():
        idx = next((i for i, lq in enumerate(merged) if lq.text == rq.text), None)
        if idx is None:
            merged.append(rq.model_copy())
            result.added += 1
        elif merged[idx].category != rq.category:
            merged[idx] = merged[idx].model_copy(update={"category": rq.category})
            result.updated += 1
    return result


__all__ = [
    "InvalidQuotesError",
    "MergeResult",
    "coerce_quotes",
    "filter_by_category",
    "format_quote",
    "is_all",
    "merge_remote",
    "pick_random",
    "unique_categories",
]
