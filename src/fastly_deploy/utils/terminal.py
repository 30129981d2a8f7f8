"""Terminal output built on rich: status spinners and styled messages."""

from abc import ABC, abstractmethod
from typing import List, Optional

from rich.console import Console
from rich.status import Status


class StatusSink(ABC):
    """Live progress line for one unit of work."""

    @abstractmethod
    def update(self, message: str) -> None:
        """Replace the current progress message."""

    @abstractmethod
    def step(self, message: str, success: bool = True) -> None:
        """Record a finished step below the live line."""

    @abstractmethod
    def close(self) -> None:
        """Stop the live line. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class UI(ABC):
    """Human-readable progress output for lifecycle operations."""

    @abstractmethod
    def status(self) -> StatusSink:
        """Open a new status sink."""

    @abstractmethod
    def output(self, message: str, style: Optional[str] = None) -> None:
        """Print a standalone message."""


class ConsoleStatus(StatusSink):
    """StatusSink backed by a rich spinner.

    Only one rich live display may run on a console at a time, so a sink
    opened while another is live shares its spinner: updates replace the
    parent's message and closing restores it.
    """

    def __init__(self, console: Console, parent: Optional["ConsoleStatus"] = None, on_close=None):
        self.console = console
        self.parent = parent
        self._on_close = on_close
        self._message = ""
        self._closed = False
        self._status: Optional[Status] = None
        if parent is None:
            self._status = Status("", console=console)
            self._status.start()

    def update(self, message: str) -> None:
        if self._closed:
            return
        self._message = message
        self._show(message)

    def _show(self, message: str) -> None:
        if self.parent is not None:
            self.parent._show(message)
        elif self._status is not None:
            self._status.update(message)

    def step(self, message: str, success: bool = True) -> None:
        mark = "[green]✓[/green]" if success else "[red]✗[/red]"
        self.console.print(f"{mark} {message}")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._status is not None:
            self._status.stop()
            self._status = None
        elif self.parent is not None:
            self.parent._show(self.parent._message)
        if self._on_close is not None:
            self._on_close(self)


class ConsoleUI(UI):
    """UI writing to a rich console (stderr by default).

    Sinks opened while another is still open nest inside it.
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self._open: List[ConsoleStatus] = []

    def status(self) -> StatusSink:
        parent = self._open[-1] if self._open else None
        sink = ConsoleStatus(self.console, parent=parent, on_close=self._closed)
        self._open.append(sink)
        return sink

    def _closed(self, sink: ConsoleStatus) -> None:
        # Sinks nested inside a closed sink can no longer draw
        if sink in self._open:
            del self._open[self._open.index(sink):]

    def output(self, message: str, style: Optional[str] = None) -> None:
        self.console.print(message, style=style)
