from __future__ import annotations

import io
import json
import random
from typing import List, Optional, Sequence

import pytest
from cryptography.fernet import Fernet

from common.notices import Notifier
from common.placeholder import PlaceholderError
from state.file_store import QuoteFileStore, SessionStore
from state.models import DEFAULT_QUOTES, Quote, QuoteState, SessionState
from state.s3_store import S3QuoteStore
from widget.app import (
    MSG_ADDED,
    MSG_BEGIN,
    MSG_FILL_BOTH,
    MSG_IMPORT_FAILED,
    MSG_LOAD_FAILED,
    MSG_NO_MATCH,
    MSG_NONE_AVAILABLE,
    MSG_SHOWING_ALL,
    MSG_SYNC_FAILED,
    MSG_SYNCED,
    QuoteWidget,
)


BELIEVE = "Believe you can and you're halfway there."


class _FakeServer:
    def __init__(self, remote: Optional[List[Quote]] = None) -> None:
        self.remote: List[Quote] = remote or []
        self.posted: List[List[Quote]] = []
        self.fail_fetch: bool = False
        self.fail_post: bool = False
        self.limits: List[int] = []

    def fetch_quotes(self, *, limit: int = 5) -> List[Quote]:
        self.limits.append(limit)
        if self.fail_fetch:
            raise PlaceholderError("offline")
        return [q.model_copy() for q in self.remote]

    def post_quotes(self, quotes: Sequence[Quote]) -> None:
        if self.fail_post:
            raise PlaceholderError("offline")
        self.posted.append([q.model_copy() for q in quotes])


def _widget(tmp_path, *, quotes=None, selected="all", server=None, rng=None):
    store = QuoteFileStore(tmp_path / "state.json")
    if quotes is not None:
        store.write(QuoteState(quotes=quotes, selected_category=selected))
    notifier = Notifier()
    w = QuoteWidget(
        store=store,
        session=SessionStore(tmp_path / "session.json"),
        notifier=notifier,
        server=server,
        rng=rng or random.Random(0),
    )
    return w, store, notifier


def _stored(store: QuoteFileStore) -> QuoteState:
    state, _ = store.read()
    return state


def test_initialize_seeds_defaults_and_prompts(tmp_path):
    w, _, _ = _widget(tmp_path)
    assert w.initialize() == MSG_BEGIN
    assert w.quotes == DEFAULT_QUOTES
    assert w.category_options == ["all", "Mindset", "Motivation", "Success"]
    assert w.active_filter == "all"


def test_initialize_restores_stored_filter_and_last_quote(tmp_path):
    w, _, _ = _widget(tmp_path, quotes=list(DEFAULT_QUOTES), selected="Success")
    SessionStore(tmp_path / "session.json").save(SessionState(last_viewed_quote=DEFAULT_QUOTES[2]))

    display = w.initialize()
    assert w.active_filter == "Success"
    assert display == f'"{BELIEVE}" — Mindset'


def test_initialize_ignores_stored_filter_no_longer_offered(tmp_path):
    w, store, _ = _widget(tmp_path, quotes=list(DEFAULT_QUOTES), selected="Gone")
    w.initialize()
    assert w.active_filter == "all"
    # the stored value is left alone until the user picks a filter
    assert _stored(store).selected_category == "Gone"


def test_filter_all_message(tmp_path):
    w, _, _ = _widget(tmp_path)
    w.initialize()
    assert w.filter_quotes("all") == MSG_SHOWING_ALL


def test_filter_shows_first_match(tmp_path):
    quotes = [Quote(text="A", category="x"), Quote(text="B", category="y"), Quote(text="C", category="y")]
    w, store, _ = _widget(tmp_path, quotes=quotes)
    w.initialize()

    assert w.filter_quotes("y") == '"B" — y'
    assert _stored(store).selected_category == "y"


def test_filter_without_matches_still_records_choice(tmp_path):
    w, store, _ = _widget(tmp_path, quotes=list(DEFAULT_QUOTES))
    w.initialize()

    assert w.filter_quotes("Nonexistent") == MSG_NO_MATCH
    assert _stored(store).selected_category == "Nonexistent"
    assert w.show_random_quote() is None
    assert w.display == MSG_NONE_AVAILABLE


def test_show_random_quote_respects_filter_and_records_session(tmp_path):
    quotes = [Quote(text=str(i), category="even" if i % 2 == 0 else "odd") for i in range(10)]
    w, _, _ = _widget(tmp_path, quotes=quotes, rng=random.Random(42))
    w.initialize()
    w.filter_quotes("odd")

    for _ in range(20):
        q = w.show_random_quote()
        assert q is not None
        assert q.category == "odd"
        assert w.display == f'"{q.text}" — odd'

    last = SessionStore(tmp_path / "session.json").load().last_viewed_quote
    assert last == q


def test_show_random_quote_all_categories(tmp_path):
    w, _, _ = _widget(tmp_path)
    w.initialize()
    q = w.show_random_quote()
    assert q in DEFAULT_QUOTES


def test_add_quote_trims_persists_and_refreshes(tmp_path):
    w, store, notifier = _widget(tmp_path)
    w.initialize()

    q = w.add_quote("  Stay hungry.  ", " Drive ")
    assert q == Quote(text="Stay hungry.", category="Drive")
    assert _stored(store).quotes[-1] == q
    assert "Drive" in w.category_options
    assert notifier.messages == [MSG_ADDED]


@pytest.mark.parametrize("text,category", [("", "x"), ("x", "   "), ("  ", "")])
def test_add_quote_requires_both_fields(tmp_path, text, category):
    w, store, notifier = _widget(tmp_path)
    w.initialize()

    assert w.add_quote(text, category) is None
    assert notifier.messages == [MSG_FILL_BOTH]
    assert not (tmp_path / "state.json").exists()


def test_import_non_array_is_rejected(tmp_path):
    w, store, notifier = _widget(tmp_path, quotes=list(DEFAULT_QUOTES))
    w.initialize()
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"text": "a", "category": "b"}), encoding="utf-8")

    assert w.import_from_json_file(bad) is None
    assert notifier.messages == [MSG_IMPORT_FAILED]
    assert w.quotes == DEFAULT_QUOTES
    assert _stored(store).quotes == DEFAULT_QUOTES


def test_import_merge_appends_valid_entries(tmp_path):
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text="A", category="x")])
    w.initialize()
    src = tmp_path / "in.json"
    src.write_text(
        json.dumps([{"text": "B", "category": "y"}, {"text": "broken"}, {"text": "A", "category": "x"}]),
        encoding="utf-8",
    )

    assert w.import_from_json_file(src) == 2
    assert [q.text for q in _stored(store).quotes] == ["A", "B", "A"]
    assert notifier.messages == ["Imported 2 quotes successfully"]
    assert w.category_options == ["all", "x", "y"]


def test_export_then_replace_import_roundtrip(tmp_path):
    quotes = [Quote(text="A", category="x"), Quote(text="B", category="y")]
    w, _, _ = _widget(tmp_path, quotes=quotes)
    w.initialize()
    path = w.export_to_json_file(tmp_path / "out" / "quotes.json")

    other, other_store, _ = _widget(tmp_path / "other")
    other.initialize()
    assert other.import_from_json_file(path, mode="replace") == 2
    assert _stored(other_store).quotes == quotes


def test_sync_updates_category_and_uploads(tmp_path):
    server = _FakeServer([Quote(text=BELIEVE, category="Growth")])
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text=BELIEVE, category="Mindset")], server=server)
    w.initialize()

    report = w.sync_quotes()

    assert report.ok
    assert (report.added, report.updated, report.uploaded) == (0, 1, True)
    assert _stored(store).quotes == [Quote(text=BELIEVE, category="Growth")]
    assert server.posted == [[Quote(text=BELIEVE, category="Growth")]]
    assert notifier.messages == [MSG_SYNCED]
    assert "Growth" in w.category_options


def test_sync_without_changes_still_uploads(tmp_path):
    server = _FakeServer([Quote(text="A", category="x")])
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text="A", category="x")], server=server)
    w.initialize()
    etag_before = store.read()[1]

    report = w.sync_quotes()
    assert not report.changed
    assert report.uploaded
    assert len(server.posted) == 1
    assert notifier.messages == []
    assert store.read()[1] == etag_before


def test_sync_twice_is_idempotent(tmp_path):
    server = _FakeServer([Quote(text="new", category="n"), Quote(text="A", category="changed")])
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text="A", category="x")], server=server)
    w.initialize()

    first = w.sync_quotes()
    second = w.sync_quotes()

    assert (first.added, first.updated) == (1, 1)
    assert (second.added, second.updated) == (0, 0)
    assert [q.model_dump() for q in _stored(store).quotes] == [
        {"text": "A", "category": "changed"},
        {"text": "new", "category": "n"},
    ]
    assert len(server.posted) == 2
    assert notifier.messages == [MSG_SYNCED]


def test_sync_fetch_failure_becomes_notice(tmp_path):
    server = _FakeServer()
    server.fail_fetch = True
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text="A", category="x")], server=server)
    w.initialize()

    report = w.sync_quotes()
    assert not report.ok
    assert not report.uploaded
    assert notifier.messages == [MSG_SYNC_FAILED]
    assert _stored(store).quotes == [Quote(text="A", category="x")]


def test_sync_post_failure_keeps_merged_quotes(tmp_path):
    server = _FakeServer([Quote(text="B", category="y")])
    server.fail_post = True
    w, store, notifier = _widget(tmp_path, quotes=[Quote(text="A", category="x")], server=server)
    w.initialize()

    report = w.sync_quotes()
    assert report.added == 1
    assert not report.uploaded
    assert notifier.messages == [MSG_SYNCED, MSG_SYNC_FAILED]
    assert [q.text for q in _stored(store).quotes] == ["A", "B"]


def test_sync_requires_server(tmp_path):
    w, _, _ = _widget(tmp_path)
    w.initialize()
    with pytest.raises(RuntimeError):
        w.sync_quotes()


def test_conditional_writes_fall_back_on_conflict(tmp_path):
    store = QuoteFileStore(tmp_path / "state.json")
    store.write(QuoteState(quotes=[Quote(text="A", category="x")]))
    w = QuoteWidget(
        store=store,
        session=SessionStore(tmp_path / "session.json"),
        notifier=Notifier(),
        conditional_writes=True,
    )
    w.initialize()

    # another writer changes the file after our read
    store.write(QuoteState(quotes=[Quote(text="other", category="o")]))

    w.add_quote("B", "y")
    assert [q.text for q in _stored(store).quotes] == ["A", "B"]
    assert w.etag == store.read()[1]


class _BrokenStore:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.writes = 0

    def read(self):
        raise self.exc

    def write(self, state, *, if_match=None):
        self.writes += 1
        return "etag"


@pytest.mark.parametrize("exc", [ValueError("bad document"), PermissionError("denied")])
def test_initialize_reports_unreadable_store(tmp_path, exc):
    notifier = Notifier()
    w = QuoteWidget(
        store=_BrokenStore(exc),
        session=SessionStore(tmp_path / "session.json"),
        notifier=notifier,
    )

    assert w.initialize() == MSG_BEGIN
    assert w.quotes == DEFAULT_QUOTES
    assert notifier.messages == [MSG_LOAD_FAILED]


def test_load_on_directory_path_keeps_current_state(tmp_path):
    path = tmp_path / "state.json"
    store = QuoteFileStore(path)
    store.write(QuoteState(quotes=[Quote(text="A", category="x")]))
    notifier = Notifier()
    w = QuoteWidget(store=store, session=SessionStore(tmp_path / "session.json"), notifier=notifier)
    assert w.load() is True

    path.unlink()
    path.mkdir()
    assert w.load() is False
    assert [q.text for q in w.quotes] == ["A"]
    assert notifier.messages == [MSG_LOAD_FAILED]


def test_initialize_with_undecryptable_s3_object(tmp_path):
    class _S3:
        def get_object(self, *, Bucket, Key):
            return {"Body": io.BytesIO(b"not a token"), "ETag": '"e1"'}

    store = S3QuoteStore(s3=_S3(), bucket="b", fernet_key=Fernet.generate_key())
    notifier = Notifier()
    w = QuoteWidget(store=store, session=SessionStore(tmp_path / "session.json"), notifier=notifier)

    assert w.initialize() == MSG_BEGIN
    assert w.quotes == DEFAULT_QUOTES
    assert w.etag == '"e1"'
    assert notifier.messages == []
