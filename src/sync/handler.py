from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

from common.config import Settings
from common.notices import Notifier
from widget.app import QuoteWidget, SyncReport


logger = logging.getLogger(__name__)

STORE_UNREADABLE = "quote store could not be read"


def _summary(report: SyncReport, widget: QuoteWidget) -> Dict[str, Any]:
    return {
        "ok": report.ok,
        "added": report.added,
        "updated": report.updated,
        "uploaded": report.uploaded,
        "total": len(widget.quotes),
        "error": report.error,
    }


def run_once(
    *,
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    widget_factory: Callable[..., QuoteWidget] = QuoteWidget.from_settings,
) -> Dict[str, Any]:
    """
    Run one sync pass: load stored quotes, fetch/merge/post, persist when changed.

    - Resolves configuration from the environment unless `settings` is given.
    - Store writes use the etag from the initial read (falls back to a plain write).

    Returns: {"ok", "added", "updated", "uploaded", "total", "error"}.
    """
    cfg = settings or Settings.from_env()
    with widget_factory(cfg, notifier=notifier or Notifier(), conditional_writes=True) as widget:
        if not widget.load():
            return _summary(SyncReport(error=STORE_UNREADABLE), widget)
        report = widget.sync_quotes()
        return _summary(report, widget)


def run_forever(
    widget: QuoteWidget,
    *,
    interval: float,
    stop_event: Optional[threading.Event] = None,
    on_tick: Optional[Callable[[SyncReport], None]] = None,
) -> int:
    """
    Sync every `interval` seconds until `stop_event` is set; returns passes run.

    Each pass reloads the stored list first so quotes added by other processes are
    merged rather than overwritten. A pass whose reload fails is skipped. There is
    no backoff: a failed pass just waits for the next tick.
    """
    stop = stop_event or threading.Event()
    passes = 0
    while not stop.wait(interval):
        # Never merge into, or upload, a list that failed to load
        report = widget.sync_quotes() if widget.load() else SyncReport(error=STORE_UNREADABLE)
        passes += 1
        logger.debug("Sync pass %d finished: %s", passes, report)
        if on_tick is not None:
            on_tick(report)
    return passes


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """AWS Lambda entry for scheduled quote sync.

    Environment:
    - QUOTES_STATE_BUCKET, QUOTES_STATE_KEY (default: quotes.json)
    - QUOTES_FERNET_KEY, or PARAM_PREFIX with SSM parameter `fernet_key`
    - QUOTES_SERVER_URL, QUOTES_FETCH_LIMIT (optional)
    """
    return run_once()
