from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional

from rich.console import Console


NoticeKind = Literal["alert", "notice"]


@dataclass
class Notice:
    kind: NoticeKind
    message: str


class Notifier:
    """
    Collects user-facing messages.

    - alert: direct answer to a user action (add, import)
    - notice: transient status such as sync results

    The base class only records; subclasses decide how to show them.
    """

    def __init__(self) -> None:
        self.history: List[Notice] = []

    def alert(self, message: str) -> None:
        self._emit(Notice("alert", message))

    def notice(self, message: str) -> None:
        self._emit(Notice("notice", message))

    def _emit(self, item: Notice) -> None:
        self.history.append(item)

    @property
    def messages(self) -> List[str]:
        return [n.message for n in self.history]


class ConsoleNotifier(Notifier):
    """Prints alerts and notices to the terminal with rich."""

    def __init__(self, console: Optional[Console] = None) -> None:
        super().__init__()
        self._console = console or Console()

    def _emit(self, item: Notice) -> None:
        super()._emit(item)
        style = "bold" if item.kind == "alert" else "yellow"
        # Quote text is user data; never interpret it as rich markup
        self._console.print(item.message, style=style, markup=False, highlight=False)
