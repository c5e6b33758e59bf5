from __future__ import annotations

import logging
import threading
from pathlib import Path

import typer
from rich.console import Console

from common.config import Settings
from common.notices import ConsoleNotifier
from common.transfer import DEFAULT_EXPORT_NAME, IMPORT_MERGE, IMPORT_REPLACE
from sync.handler import run_forever
from widget.app import QuoteWidget, SyncReport

app = typer.Typer(help="quotes: quote of the day with category filters and server sync")
console = Console()


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj if isinstance(ctx.obj, Settings) else Settings.from_env()


def _config_error(exc: Exception) -> typer.Exit:
    console.print(str(exc), style="red", markup=False, highlight=False)
    return typer.Exit(code=2)


def _widget(ctx: typer.Context) -> QuoteWidget:
    try:
        widget = QuoteWidget.from_settings(_settings(ctx), notifier=ConsoleNotifier(console))
    except (RuntimeError, ValueError) as exc:
        # Missing or malformed store settings (unresolvable or invalid Fernet key)
        raise _config_error(exc) from exc
    widget.initialize()
    return widget


def _say(text: str) -> None:
    console.print(text, markup=False, highlight=False)


@app.callback()
def main(
    ctx: typer.Context,
    state_file: Path = typer.Option(None, help="Path to the quote store (JSON)"),
    session_file: Path = typer.Option(None, help="Path to the session file"),
    server_url: str = typer.Option(None, help="Remote quote endpoint"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Show, add, filter, export/import and sync quotes."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        settings = Settings.from_env()
    except RuntimeError as exc:
        raise _config_error(exc) from exc
    ctx.obj = settings.with_overrides(
        state_file=state_file, session_file=session_file, server_url=server_url
    )


@app.command()
def show(ctx: typer.Context) -> None:
    """Show a random quote from the active category."""
    with _widget(ctx) as widget:
        widget.show_random_quote()
        _say(widget.display)


@app.command()
def add(
    ctx: typer.Context,
    text: str = typer.Argument(..., help="Quote text"),
    category: str = typer.Argument(..., help="Quote category"),
) -> None:
    """Add a new quote."""
    with _widget(ctx) as widget:
        if widget.add_quote(text, category) is None:
            raise typer.Exit(code=1)


@app.command("filter")
def filter_cmd(
    ctx: typer.Context,
    category: str = typer.Argument(..., help="Category to show ('all' for every category)"),
) -> None:
    """Set the category filter and show its first quote."""
    with _widget(ctx) as widget:
        _say(widget.filter_quotes(category))


@app.command()
def categories(ctx: typer.Context) -> None:
    """List the category options; the active one is marked."""
    with _widget(ctx) as widget:
        for option in widget.category_options:
            marker = "*" if option == widget.active_filter else " "
            _say(f"{marker} {option}")


@app.command("list")
def list_cmd(ctx: typer.Context) -> None:
    """List every stored quote in order."""
    with _widget(ctx) as widget:
        for i, quote in enumerate(widget.quotes, start=1):
            _say(f"{i:>3}. \"{quote.text}\" — {quote.category}")


@app.command()
def export(
    ctx: typer.Context,
    output: Path = typer.Argument(Path(DEFAULT_EXPORT_NAME), help="Output JSON file"),
) -> None:
    """Export all quotes to a pretty-printed JSON file."""
    with _widget(ctx) as widget:
        path = widget.export_to_json_file(output)
        _say(f"Exported {len(widget.quotes)} quotes to {path}")


@app.command("import")
def import_cmd(
    ctx: typer.Context,
    input_file: Path = typer.Argument(..., help="JSON file with an array of {text, category}"),
    replace: bool = typer.Option(False, help="Replace the stored list instead of appending"),
) -> None:
    """Import quotes from a JSON file."""
    mode = IMPORT_REPLACE if replace else IMPORT_MERGE
    with _widget(ctx) as widget:
        if widget.import_from_json_file(input_file, mode=mode) is None:
            raise typer.Exit(code=1)


def _report(report: SyncReport) -> None:
    if report.ok:
        _say(f"Sync: {report.added} added, {report.updated} updated, uploaded={report.uploaded}")


@app.command()
def sync(ctx: typer.Context) -> None:
    """Run one sync pass against the remote endpoint."""
    with _widget(ctx) as widget:
        report = widget.sync_quotes()
        _report(report)
        if not report.ok:
            raise typer.Exit(code=1)


@app.command()
def watch(
    ctx: typer.Context,
    interval: float = typer.Option(None, min=1.0, help="Seconds between sync passes"),
) -> None:
    """Sync periodically until interrupted."""
    settings = _settings(ctx)
    every = interval if interval is not None else settings.sync_interval
    stop = threading.Event()
    with _widget(ctx) as widget:
        _say(f"Syncing with {settings.server_url} every {every:g}s (Ctrl+C to stop)")
        try:
            run_forever(widget, interval=every, stop_event=stop, on_tick=_report)
        except KeyboardInterrupt:
            stop.set()
            _say("Stopped.")


if __name__ == "__main__":
    app()
