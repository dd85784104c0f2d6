from __future__ import annotations

import threading
from typing import Callable, Optional

from prepxl.core.logger import get_logger

log = get_logger("auth.scheduler")


class Handle:
    """Cancellable reference to one scheduled callback."""

    def cancel(self) -> None:
        raise NotImplementedError

    @property
    def cancelled(self) -> bool:
        raise NotImplementedError


class Scheduler:
    """
    Delayed-callback source. Production uses threads; tests drive a manual clock.
    """

    def call_later(self, delay_seconds: float, fn: Callable[[], None]) -> Handle:
        raise NotImplementedError


class _TimerHandle(Handle):
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ThreadingScheduler(Scheduler):
    def call_later(self, delay_seconds: float, fn: Callable[[], None]) -> Handle:
        t = threading.Timer(max(0.0, float(delay_seconds)), fn)
        t.daemon = True
        h = _TimerHandle(t)
        t.start()
        return h


class TaskSlot:
    """
    Holds at most one outstanding scheduled callback.

    - schedule() cancels the previous handle before installing the new one
    - every callback is bound to the generation it was scheduled under; a
      callback that fires after cancel()/schedule() was called is dropped even
      if the timer thread already dequeued it
    """

    def __init__(self, scheduler: Scheduler, *, name: str = "slot") -> None:
        self.scheduler = scheduler
        self.name = name
        self._lock = threading.Lock()
        self._handle: Optional[Handle] = None
        self._label: Optional[str] = None
        self._generation = 0

    @property
    def pending(self) -> Optional[str]:
        with self._lock:
            return self._label

    def schedule(self, delay_seconds: float, fn: Callable[[], None], *, label: str = "task") -> int:
        with self._lock:
            self._cancel_locked()
            self._generation += 1
            gen = self._generation

            def _fire() -> None:
                with self._lock:
                    if gen != self._generation:
                        return
                    self._handle = None
                    self._label = None
                try:
                    fn()
                except Exception as e:  # noqa: BLE001
                    log.error(f"{self.name}: scheduled task '{label}' failed: {e}")

            self._handle = self.scheduler.call_later(delay_seconds, _fire)
            self._label = label
            return gen

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._generation += 1

    def _cancel_locked(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._label = None
