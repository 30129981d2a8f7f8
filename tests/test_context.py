"""Tests for the operation context and console UI."""

import io
import threading
from unittest.mock import patch

import pytest
from rich.console import Console
from rich.status import Status

from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import ErrorCategory, OperationCancelledError
from fastly_deploy.utils.terminal import ConsoleUI


class TestOperationContext:
    """Test cancellation through the context."""

    def test_not_cancelled_by_default(self, ctx):
        assert ctx.cancelled is False
        ctx.raise_if_cancelled('anything')

    def test_cancel(self, ctx):
        ctx.cancel()

        with pytest.raises(OperationCancelledError, match="Cancelled before deploy") as exc_info:
            ctx.raise_if_cancelled('deploy')

        assert exc_info.value.category == ErrorCategory.CANCELLED

    def test_shared_event(self):
        """An event passed in should drive cancellation."""
        event = threading.Event()
        ctx = OperationContext(cancel_event=event)

        event.set()

        assert ctx.cancelled is True


class TestConsoleUI:
    """Test the rich-backed UI."""

    def test_steps_and_output(self):
        buffer = io.StringIO()
        ui = ConsoleUI(Console(file=buffer, force_terminal=False, width=120))

        with ui.status() as sink:
            sink.update('working')
            sink.step('first done')
            sink.step('second failed', success=False)
        ui.output('plain message')

        text = buffer.getvalue()
        assert '✓ first done' in text
        assert '✗ second failed' in text
        assert 'plain message' in text

    def test_close_is_idempotent(self):
        ui = ConsoleUI(Console(file=io.StringIO()))
        sink = ui.status()
        sink.close()
        sink.close()

    def test_nested_sinks_share_one_spinner(self):
        """A sink opened inside another should not start a second live display."""
        buffer = io.StringIO()
        ui = ConsoleUI(Console(file=buffer, force_terminal=True, width=120))

        with patch('fastly_deploy.utils.terminal.Status', wraps=Status) as status_cls:
            outer = ui.status()
            outer.update('building')
            with ui.status() as inner:
                inner.update('npm install')
                inner.step('inner step')
            outer.step('outer step')
            outer.close()

        assert status_cls.call_count == 1
        text = buffer.getvalue()
        assert 'inner step' in text
        assert 'outer step' in text

    def test_sink_after_close_starts_new_spinner(self):
        ui = ConsoleUI(Console(file=io.StringIO(), force_terminal=True))

        with patch('fastly_deploy.utils.terminal.Status', wraps=Status) as status_cls:
            ui.status().close()
            ui.status().close()

        assert status_cls.call_count == 2
