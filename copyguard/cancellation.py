"""Cooperative cancellation shared between the runner and the verifiers."""

from __future__ import annotations

import threading
from typing import Optional

from copyguard.errors import OperationCancelled


class CancellationToken:
    """
    A one-shot cancellation flag.

    The host (the :class:`~copyguard.checkers.CheckerRunner` or an
    embedding application) calls :meth:`cancel`; long-running traversals
    call :meth:`throw_if_cancelled` at every step.  An optional step
    budget turns a pathological type graph into a cancellation instead
    of an unbounded stall.
    """

    __slots__ = ("_event", "_budget", "_steps")

    def __init__(self, step_budget: Optional[int] = None) -> None:
        self._event = threading.Event()
        self._budget = step_budget
        self._steps = 0

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def throw_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelled` if cancelled or over budget."""
        if self.is_cancelled:
            raise OperationCancelled()
        if self._budget is not None:
            self._steps += 1
            if self._steps > self._budget:
                self._event.set()
                raise OperationCancelled(
                    f"step budget of {self._budget} exceeded"
                )
