"""Per-operation context threaded through every lifecycle call."""

import logging
import threading
from typing import Optional

from fastly_deploy.utils.errors import OperationCancelledError
from fastly_deploy.utils.logging import get_logger
from fastly_deploy.utils.terminal import UI, ConsoleUI


class OperationContext:
    """Carries the UI, a logger and the cancellation flag for one host call.

    A single context is created per CLI invocation and passed down to the
    build pipeline, the resource manager and every resource handler. Long
    running steps poll ``raise_if_cancelled`` between units of work.
    """

    def __init__(
        self,
        ui: Optional[UI] = None,
        logger: Optional[logging.Logger] = None,
        cancel_event: Optional[threading.Event] = None
    ):
        self.ui = ui or ConsoleUI()
        self.logger = logger or get_logger('fastly_deploy')
        self._cancel_event = cancel_event or threading.Event()

    def cancel(self) -> None:
        """Request cancellation of the running operation."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def raise_if_cancelled(self, what: Optional[str] = None) -> None:
        """Raise OperationCancelledError if cancellation was requested."""
        if self.cancelled:
            message = f"Cancelled before {what}" if what else "Operation cancelled"
            raise OperationCancelledError(message)
