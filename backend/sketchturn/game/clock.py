from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from flask_socketio import SocketIO


logger = logging.getLogger(__name__)

TimerCallback = Callable[[Any], None]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(eq=False)
class TimerHandle:
    at_ms: int
    tag: Any
    callback: TimerCallback
    cancelled: bool = False
    fired: bool = False
    seq: int = field(default=0, compare=False)


class Clock(Protocol):
    def now_ms(self) -> int:
        ...

    def schedule_at(self, at_ms: int, tag: Any, callback: TimerCallback) -> TimerHandle:
        ...

    def cancel(self, handle: TimerHandle) -> None:
        ...


def _fire(handle: TimerHandle) -> None:
    if handle.cancelled or handle.fired:
        return
    handle.fired = True
    try:
        handle.callback(handle.tag)
    except Exception:
        logger.exception("timer callback failed tag=%s", handle.tag)


class SocketIOClock:
    """Wall clock whose deadlines run as Socket.IO background tasks."""

    def __init__(self, socketio: SocketIO, poll_interval_sec: float = 0.25) -> None:
        self.socketio = socketio
        self.poll_interval_sec = poll_interval_sec

    def now_ms(self) -> int:
        return now_ms()

    def schedule_at(self, at_ms: int, tag: Any, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(at_ms=at_ms, tag=tag, callback=callback)
        self.socketio.start_background_task(self._run, handle)
        return handle

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancelled = True

    def _run(self, handle: TimerHandle) -> None:
        while not handle.cancelled:
            remaining_ms = handle.at_ms - self.now_ms()
            if remaining_ms <= 0:
                break
            self.socketio.sleep(min(remaining_ms / 1000, self.poll_interval_sec))
        _fire(handle)


class ManualClock:
    """Deterministic clock: time only moves when `advance` is called."""

    def __init__(self, start_ms: int = 1_000_000) -> None:
        self._now = start_ms
        self._timers: list[TimerHandle] = []
        self._seq = itertools.count()

    def now_ms(self) -> int:
        return self._now

    def schedule_at(self, at_ms: int, tag: Any, callback: TimerCallback) -> TimerHandle:
        handle = TimerHandle(at_ms=at_ms, tag=tag, callback=callback, seq=next(self._seq))
        self._timers.append(handle)
        return handle

    def cancel(self, handle: TimerHandle) -> None:
        handle.cancelled = True

    def pending(self) -> list[TimerHandle]:
        return sorted(
            (h for h in self._timers if not h.cancelled and not h.fired),
            key=lambda h: (h.at_ms, h.seq),
        )

    def advance(self, ms: int) -> None:
        target = self._now + ms
        while True:
            due = [h for h in self.pending() if h.at_ms <= target]
            if not due:
                break
            handle = due[0]
            self._now = max(self._now, handle.at_ms)
            _fire(handle)
        self._now = target
        self._timers = [h for h in self._timers if not h.cancelled and not h.fired]
