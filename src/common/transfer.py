from __future__ import annotations

import json
import os
from pathlib import Path
from typing import List, Optional, Sequence

from state.models import InvalidQuotesError, Quote, coerce_quotes


DEFAULT_EXPORT_NAME = "quotes.json"

IMPORT_MERGE = "merge"
IMPORT_REPLACE = "replace"
IMPORT_MODES = (IMPORT_MERGE, IMPORT_REPLACE)


def dumps_quotes(quotes: Sequence[Quote]) -> str:
    """Pretty-printed JSON array of `{text, category}` objects."""
    return json.dumps([q.model_dump() for q in quotes], indent=2, ensure_ascii=False)


def export_quotes(quotes: Sequence[Quote], path: Optional[os.PathLike[str] | str] = None) -> Path:
    out = Path(path) if path else Path(DEFAULT_EXPORT_NAME)
    if out.is_dir():
        out = out / DEFAULT_EXPORT_NAME
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8") as f:
        f.write(dumps_quotes(quotes))
        f.write("\n")
    return out


def loads_quotes(text: str) -> List[Quote]:
    """Decode an import document; raises InvalidQuotesError when it is unusable."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidQuotesError(f"invalid JSON: {exc.msg}") from exc
    return coerce_quotes(raw)


def load_import_file(path: os.PathLike[str] | str) -> List[Quote]:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise InvalidQuotesError(f"cannot read {p}: {exc}") from exc
    return loads_quotes(text)


def apply_import(current: Sequence[Quote], imported: Sequence[Quote], *, mode: str = IMPORT_MERGE) -> List[Quote]:
    """Combine imported quotes with the current list.

    - merge: append imported quotes after the current ones (duplicates kept)
    - replace: the imported list becomes the whole list
    """
    if mode == IMPORT_MERGE:
        return list(current) + list(imported)
    if mode == IMPORT_REPLACE:
        return list(imported)
    raise ValueError(f"unknown import mode: {mode!r} (expected one of {', '.join(IMPORT_MODES)})")
