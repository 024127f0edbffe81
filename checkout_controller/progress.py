"""
Coarse progress reporting and cooperative cancellation.
"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger("checkout_progress")

ProgressCallback = Callable[["ProgressMonitor"], None]


class ProgressMonitor:
    """
    Unit-of-work progress plus a cancel flag.

    Work is counted in whole units declared up front with begin_task().
    Cancellation is cooperative: long-running work checks is_cancelled at
    its own checkpoints.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._cancelled = threading.Event()
        self._cancel_listeners: List[Callable[[], None]] = []
        self.task_name: str = ""
        self.subtask_name: str = ""
        self.total: int = 0
        self.completed: int = 0
        self.finished: bool = False

    def begin_task(self, name: str, total: int) -> None:
        self.task_name = name
        self.total = total
        self.completed = 0
        self.finished = False
        logger.debug(f"{name}: {total} unit(s)")
        self._notify()

    def subtask(self, name: str) -> None:
        self.subtask_name = name
        self._notify()

    def worked(self, units: int = 1) -> None:
        self.completed += units
        self._notify()

    def done(self) -> None:
        self.finished = True
        self.subtask_name = ""
        self._notify()

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        for listener in list(self._cancel_listeners):
            listener()

    def add_cancel_listener(self, listener: Callable[[], None]) -> None:
        """Call listener once on cancel; immediately if already cancelled."""
        if self._cancelled.is_set():
            listener()
        else:
            self._cancel_listeners.append(listener)

    def remove_cancel_listener(self, listener: Callable[[], None]) -> None:
        if listener in self._cancel_listeners:
            self._cancel_listeners.remove(listener)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def percentage(self) -> float:
        if self.total == 0:
            return 0.0
        return min(100.0, (self.completed / self.total) * 100.0)

    def _notify(self) -> None:
        if self._callback is not None:
            self._callback(self)

    def to_dict(self):
        return {
            "task": self.task_name,
            "subtask": self.subtask_name,
            "total": self.total,
            "completed": self.completed,
            "finished": self.finished,
            "cancelled": self.is_cancelled,
        }
