"""
Quote widget: the stateful application object and its command line.

- app: `QuoteWidget` and `SyncReport`
- cli: typer application (`quotes` console script)
"""

from .app import QuoteWidget, SyncReport

__all__ = ["QuoteWidget", "SyncReport"]
