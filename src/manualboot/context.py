"""Operation context for a bootstrap attempt.

Carries cancellation, an optional deadline and the sink for human-readable
progress messages.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable

import click

from .errors import OperationCancelled
from .shared.logging import get_logger


def _echo_stderr(message: str) -> None:
    click.echo(message, err=True)


class BootstrapContext:
    """Cancellable context passed through every blocking remote call."""

    def __init__(
        self,
        timeout: float | None = None,
        progress: Callable[[str], None] | None = None,
        verbose: bool = False,
        cancel_event: threading.Event | None = None,
    ):
        """Initialize context.

        Args:
            timeout: Seconds until the deadline, None for no deadline
            progress: Callable receiving progress lines (default: stderr)
            verbose: Whether verbosef() messages are shown
            cancel_event: Shared event, set to cancel the operation
        """
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self.progress = progress or _echo_stderr
        self.verbose = verbose
        self._cancel = cancel_event or threading.Event()
        self.log = get_logger("manualboot")

    def cancel(self) -> None:
        """Request cancellation. Safe to call from another thread."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def expired(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self, cap: float | None = None) -> float | None:
        """Seconds left before the deadline, optionally capped.

        Returns:
            Remaining seconds (never negative), ``cap`` if there is no
            deadline, or the smaller of the two.
        """
        if self.deadline is None:
            return cap
        left = max(0.0, self.deadline - time.monotonic())
        return left if cap is None else min(left, cap)

    def check(self, phase: str | None = None, host: str | None = None) -> None:
        """Raise if the operation was cancelled or ran out of time.

        Raises:
            OperationCancelled
        """
        if self.cancelled:
            raise OperationCancelled(phase=phase, host=host)
        if self.expired:
            raise OperationCancelled(message="bootstrap deadline exceeded", phase=phase, host=host)

    def infof(self, message: str, *args: object) -> None:
        """Report progress to the user."""
        self.progress(message % args if args else message)

    def verbosef(self, message: str, *args: object) -> None:
        """Report detail only shown in verbose mode. Always logged."""
        text = message % args if args else message
        self.log.debug(text)
        if self.verbose:
            self.progress(text)
