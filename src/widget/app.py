from __future__ import annotations

import logging
import os
import random
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from common.config import Settings
from common.notices import Notifier
from common.placeholder import DEFAULT_FETCH_LIMIT, PlaceholderClient, PlaceholderError
from common.quotes import (
    filter_by_category,
    format_quote,
    is_all,
    merge_remote,
    pick_random,
    unique_categories,
)
from common.transfer import IMPORT_MERGE, apply_import, export_quotes, load_import_file
from state.file_store import OptimisticLockError, QuoteFileStore, SessionStore
from state.models import ALL_CATEGORIES, InvalidQuotesError, Quote, QuoteState, SessionState


logger = logging.getLogger(__name__)

MSG_BEGIN = "Click 'Show New Quote' to begin."
MSG_SHOWING_ALL = "Showing all categories. Click 'Show New Quote'."
MSG_NO_MATCH = "No quotes found for this category."
MSG_NONE_AVAILABLE = "No quotes available for this category."
MSG_FILL_BOTH = "Please fill both fields"
MSG_ADDED = "Quote added successfully!"
MSG_IMPORT_FAILED = "Failed to import quotes. Make sure it's valid JSON."
MSG_SYNCED = "Quotes synced with server!"
MSG_SYNC_FAILED = "Server sync failed."
MSG_LOAD_FAILED = "Could not load saved quotes."


class QuoteStore(Protocol):
    def read(self) -> Tuple[QuoteState, Optional[str]]: ...

    def write(self, state: QuoteState, *, if_match: Optional[str] = None) -> str: ...


class QuoteServer(Protocol):
    def fetch_quotes(self, *, limit: int = ...) -> List[Quote]: ...

    def post_quotes(self, quotes: Sequence[Quote]) -> None: ...


@dataclass
class SyncReport:
    added: int = 0
    updated: int = 0
    uploaded: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def changed(self) -> bool:
        return (self.added + self.updated) > 0


class QuoteWidget:
    """
    The quote widget: owns the quote list, the active filter and the display text.

    Every side effect goes through an injected collaborator:
    - store: persistent `quotes` / `selectedCategory` document
    - session: session-scoped `lastViewedQuote`
    - notifier: user-facing alerts and notices
    - server: remote endpoint used by `sync_quotes` (optional)
    - rng: random source for `show_random_quote`

    Failures inside an operation are reported through the notifier; nothing here
    raises for bad user input, bad import files or a failed sync.
    """

    def __init__(
        self,
        *,
        store: QuoteStore,
        session: SessionStore,
        notifier: Notifier,
        server: Optional[QuoteServer] = None,
        rng: Optional[random.Random] = None,
        fetch_limit: int = DEFAULT_FETCH_LIMIT,
        conditional_writes: bool = False,
    ) -> None:
        self._store = store
        self._session = session
        self._notifier = notifier
        self._server = server
        self._rng = rng or random.Random()
        self._fetch_limit = fetch_limit
        self._conditional_writes = conditional_writes
        self.state: QuoteState = QuoteState.seeded()
        self.etag: Optional[str] = None
        self.active_filter: str = ALL_CATEGORIES
        self.category_options: List[str] = [ALL_CATEGORIES]
        self.display: str = ""

    # -------- Construction helpers --------
    @classmethod
    def from_settings(
        cls, settings: Settings, *, notifier: Notifier, conditional_writes: bool = False
    ) -> "QuoteWidget":
        if settings.uses_s3:
            from state.s3_store import S3QuoteStore

            store: QuoteStore = S3QuoteStore(
                bucket=settings.state_bucket,
                key=settings.state_key,
                fernet_key=settings.resolve_fernet_key(),
            )
        else:
            store = QuoteFileStore(settings.state_file)
        return cls(
            store=store,
            session=SessionStore(settings.session_file),
            notifier=notifier,
            server=PlaceholderClient(url=settings.server_url),
            fetch_limit=settings.fetch_limit,
            conditional_writes=conditional_writes,
        )

    def close(self) -> None:
        if isinstance(self._server, PlaceholderClient):
            self._server.close()

    def __enter__(self) -> "QuoteWidget":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # -------- Storage --------
    @property
    def quotes(self) -> List[Quote]:
        return self.state.quotes

    def load(self) -> bool:
        """
        (Re)load the persistent state from the store; False when it could not be read.

        A failed read keeps the state already in memory (the seeded defaults before
        the first successful load) and reports it through the notifier.
        """
        try:
            self.state, self.etag = self._store.read()
        except (ValueError, OSError) as exc:
            logger.error("Could not load stored quotes: %s", exc, exc_info=True)
            self.notify_user(MSG_LOAD_FAILED)
            return False
        return True

    def save(self) -> None:
        """Persist the state. With conditional writes, a concurrent change is logged and overwritten."""
        if self._conditional_writes and self.etag is not None:
            try:
                self.etag = self._store.write(self.state, if_match=self.etag)
                return
            except OptimisticLockError:
                logger.warning("Quote store changed since it was read; overwriting")
        self.etag = self._store.write(self.state)

    # -------- Page operations --------
    def initialize(self) -> str:
        """Load state, restore the category filter and the last viewed quote."""
        self.load()
        self.populate_categories()
        last = self._session.load().last_viewed_quote
        self.display = format_quote(last) if last is not None else MSG_BEGIN
        return self.display

    def populate_categories(self) -> List[str]:
        """Rebuild the category options and re-apply the stored filter when still offered."""
        self.category_options = [ALL_CATEGORIES] + unique_categories(self.state.quotes)
        stored = self.state.selected_category
        if stored in self.category_options:
            self.filter_quotes(stored)
        else:
            self.active_filter = ALL_CATEGORIES
        return self.category_options

    def filter_quotes(self, category: Optional[str] = None) -> str:
        """Select `category` (default: the active one), remember it, and update the display."""
        value = category if category is not None else self.active_filter
        value = value.strip() or ALL_CATEGORIES
        self.active_filter = value
        if self.state.selected_category != value:
            self.state.selected_category = value
            self.save()

        if is_all(value):
            self.display = MSG_SHOWING_ALL
            return self.display

        matches = filter_by_category(self.state.quotes, value)
        self.display = format_quote(matches[0]) if matches else MSG_NO_MATCH
        return self.display

    def show_random_quote(self) -> Optional[Quote]:
        active = filter_by_category(self.state.quotes, self.active_filter)
        quote = pick_random(active, self._rng)
        if quote is None:
            self.display = MSG_NONE_AVAILABLE
            return None
        self.display = format_quote(quote)
        self._session.save(SessionState(last_viewed_quote=quote))
        return quote

    def add_quote(self, text: str, category: str) -> Optional[Quote]:
        text = (text or "").strip()
        category = (category or "").strip()
        if not text or not category:
            self._notifier.alert(MSG_FILL_BOTH)
            return None

        quote = Quote(text=text, category=category)
        self.state.quotes.append(quote)
        self.save()
        self.populate_categories()
        self._notifier.alert(MSG_ADDED)
        return quote

    def export_to_json_file(self, path: Optional[os.PathLike[str] | str] = None) -> Path:
        return export_quotes(self.state.quotes, path)

    def import_from_json_file(self, path: os.PathLike[str] | str, *, mode: str = IMPORT_MERGE) -> Optional[int]:
        """Import quotes from a JSON file; returns the number imported, None on failure."""
        try:
            imported = load_import_file(path)
        except InvalidQuotesError as exc:
            logger.warning("Import from %s rejected: %s", path, exc)
            self._notifier.alert(MSG_IMPORT_FAILED)
            return None

        self.state.quotes = apply_import(self.state.quotes, imported, mode=mode)
        self.save()
        self.populate_categories()
        self._notifier.alert(f"Imported {len(imported)} quotes successfully")
        return len(imported)

    def notify_user(self, message: str) -> None:
        self._notifier.notice(message)

    # -------- Server sync --------
    def sync_quotes(self) -> SyncReport:
        """
        One fetch-merge-post pass against the remote endpoint.

        Remote quotes are merged by exact text match (see `merge_remote`). When the
        merge changed anything, the list is persisted and categories refreshed. The
        full local list is then uploaded regardless; the server copy is simply
        overwritten. Failures become a notice and are retried on the next pass only.
        """
        if self._server is None:
            raise RuntimeError("sync_quotes requires a server client")

        report = SyncReport()
        try:
            remote = self._server.fetch_quotes(limit=self._fetch_limit)
            result = merge_remote(self.state.quotes, remote)
            report.added, report.updated = result.added, result.updated
            if result.changed:
                self.state.quotes = result.quotes
                self.save()
                self.populate_categories()
                logger.info("Merged server quotes: %d added, %d updated", result.added, result.updated)
                self.notify_user(MSG_SYNCED)

            self._server.post_quotes(self.state.quotes)
            report.uploaded = True
        except (PlaceholderError, ValueError, OSError) as exc:
            logger.error("Sync failed: %s", exc, exc_info=True)
            report.error = str(exc)
            self.notify_user(MSG_SYNC_FAILED)
        return report
