"""Cooperative scheduling: hosts, debounce channels and the refresh scheduler.

Nothing here uses threads. A *host* owns the notion of time and runs
callbacks; the library is driven by :class:`AsyncioHost` under the dashboard
and by :class:`ManualHost` (a virtual clock) from the CLI and the tests.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any, Protocol

import structlog

from papertrack.services.notifications import Notifier

logger = structlog.get_logger(__name__)

RECOVERY_MESSAGE = "Something went wrong. Please refresh the page and try again."

Callback = Callable[[], None]


class TaskHandle(Protocol):
    def cancel(self) -> None:
        ...


class Host(Protocol):
    """Runs callbacks on the next frame or after a delay."""

    def call_soon(self, callback: Callback) -> TaskHandle:
        ...

    def call_later(self, delay_ms: float, callback: Callback) -> TaskHandle:
        ...

    def now_ms(self) -> float:
        ...


class _ManualTask:
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callback) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualHost:
    """Virtual-clock host; time only moves when :meth:`advance` is called."""

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[tuple[float, int, _ManualTask]] = []
        self._sequence = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_soon(self, callback: Callback) -> _ManualTask:
        return self.call_later(0, callback)

    def call_later(self, delay_ms: float, callback: Callback) -> _ManualTask:
        task = _ManualTask(self._now + max(delay_ms, 0), callback)
        heapq.heappush(self._queue, (task.due, next(self._sequence), task))
        return task

    @property
    def pending(self) -> int:
        return sum(1 for _, _, task in self._queue if not task.cancelled)

    def run_frame(self) -> int:
        """Run everything due at the current instant."""
        return self.advance(0)

    def advance(self, delay_ms: float) -> int:
        target = self._now + delay_ms
        executed = 0
        while self._queue and self._queue[0][0] <= target:
            due, _, task = heapq.heappop(self._queue)
            if task.cancelled:
                continue
            self._now = max(self._now, due)
            task.callback()
            executed += 1
        self._now = target
        return executed

    def drain(self) -> int:
        """Advance until no live task is left."""
        executed = 0
        while self.pending:
            due = min(task.due for _, _, task in self._queue if not task.cancelled)
            executed += self.advance(max(due - self._now, 0))
        return executed


class AsyncioHost:
    """Host backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def _current_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def now_ms(self) -> float:
        return self._current_loop().time() * 1000

    def call_soon(self, callback: Callback) -> asyncio.Handle:
        return self._current_loop().call_soon(callback)

    def call_later(self, delay_ms: float, callback: Callback) -> asyncio.TimerHandle:
        return self._current_loop().call_later(delay_ms / 1000, callback)


class FailureTracker:
    """Counts consecutive failures and escalates once the threshold is hit."""

    def __init__(self, notifier: Notifier, threshold: int = 3) -> None:
        self._notifier = notifier
        self._threshold = threshold
        self.consecutive = 0
        self.total = 0

    def record_failure(self, error: BaseException | str, context: str) -> None:
        self.consecutive += 1
        self.total += 1
        logger.error("failure.recorded", context=context, error=str(error), consecutive=self.consecutive)
        if self.consecutive >= self._threshold:
            self._notifier.notify(RECOVERY_MESSAGE)
            self.consecutive = 0

    def record_success(self) -> None:
        self.consecutive = 0

    @contextmanager
    def guard(self, context: str) -> Iterator[None]:
        """Catch, log and count any exception raised inside the block."""
        try:
            yield
        except Exception as exc:
            self.record_failure(exc, context)


class DebounceChannel:
    """Holds at most one pending task; arming again replaces it."""

    def __init__(self, name: str, host: Host, delay_ms: float | None = None) -> None:
        self.name = name
        self._host = host
        self._delay_ms = delay_ms
        self._pending: TaskHandle | None = None
        self._callback: Callback | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def arm(self, callback: Callback) -> None:
        self.cancel()
        self._callback = callback
        if self._delay_ms is None:
            self._pending = self._host.call_soon(self._fire)
        else:
            self._pending = self._host.call_later(self._delay_ms, self._fire)

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
        self._pending = None
        self._callback = None

    def flush(self) -> bool:
        """Run the pending callback right away, if there is one."""
        if self._pending is None:
            return False
        self._pending.cancel()
        self._fire()
        return True

    def _fire(self) -> None:
        callback = self._callback
        self._pending = None
        self._callback = None
        if callback is not None:
            callback()


class RefreshTarget(Protocol):
    """Side effects the scheduler coalesces."""

    def refresh_record(self, record_id: int) -> None:
        ...

    def refresh_stats(self) -> None:
        ...

    def persist(self) -> None:
        ...

    def refresh_list(self) -> None:
        ...


class UpdateScheduler:
    """Two-tier refresh: a frame pass per burst and a trailing list repaint."""

    def __init__(
        self,
        host: Host,
        failures: FailureTracker,
        *,
        list_delay_ms: float = 500,
    ) -> None:
        self._failures = failures
        self._target: RefreshTarget | None = None
        self.frame = DebounceChannel("frame", host)
        self.list = DebounceChannel("list", host, delay_ms=list_delay_ms)
        self.frame_passes = 0
        self.list_passes = 0

    def bind(self, target: RefreshTarget) -> None:
        self._target = target

    def request_refresh(self, record_id: int | None = None) -> None:
        self.frame.arm(lambda: self._frame_pass(record_id))
        self.list.arm(self._list_pass)

    def refresh_now(self) -> None:
        """Skip both debounce windows: stats and list are rebuilt immediately."""
        self.frame.cancel()
        self.list.cancel()
        target = self._require_target()
        with self._failures.guard("scheduler.refresh_now"):
            target.refresh_stats()
            target.refresh_list()
            self.list_passes += 1

    def flush(self) -> None:
        self.frame.flush()
        self.list.flush()

    def cancel(self) -> None:
        self.frame.cancel()
        self.list.cancel()

    def _frame_pass(self, record_id: int | None) -> None:
        target = self._require_target()
        self.frame_passes += 1
        try:
            target.refresh_stats()
            target.persist()
            if record_id is not None:
                target.refresh_record(record_id)
        except Exception as exc:
            self._failures.record_failure(exc, "scheduler.frame_pass")
            return
        self._failures.record_success()

    def _list_pass(self) -> None:
        target = self._require_target()
        self.list_passes += 1
        with self._failures.guard("scheduler.list_pass"):
            target.refresh_list()

    def _require_target(self) -> RefreshTarget:
        if self._target is None:
            raise RuntimeError("UpdateScheduler has no refresh target bound")
        return self._target


class InputDebouncer:
    """Per (record id, field) debounce in front of ``RecordStore.update``."""

    def __init__(
        self,
        host: Host,
        sink: Callable[[int, str, Any], None],
        *,
        delay_ms: float = 300,
    ) -> None:
        self._host = host
        self._sink = sink
        self._delay_ms = delay_ms
        self._channels: dict[tuple[int, str], DebounceChannel] = {}

    def input(self, record_id: int, field: str, value: Any) -> None:
        """Keystroke-level event: deliver once typing pauses."""
        key = (record_id, field)
        channel = self._channels.get(key)
        if channel is None:
            channel = DebounceChannel(f"input:{record_id}:{field}", self._host, self._delay_ms)
            self._channels[key] = channel
        channel.arm(lambda: self._deliver(key, record_id, field, value))

    def change(self, record_id: int, field: str, value: Any) -> None:
        """Discrete control change: deliver immediately."""
        key = (record_id, field)
        channel = self._channels.pop(key, None)
        if channel is not None:
            channel.cancel()
        self._sink(record_id, field, value)

    def cancel(self, record_id: int | None = None) -> int:
        """Drop pending input for one record, or for every record."""
        keys = [key for key in self._channels if record_id is None or key[0] == record_id]
        for key in keys:
            self._channels.pop(key).cancel()
        return len(keys)

    @property
    def pending(self) -> int:
        return sum(1 for channel in self._channels.values() if channel.pending)

    def flush(self) -> None:
        for channel in list(self._channels.values()):
            channel.flush()

    def _deliver(self, key: tuple[int, str], record_id: int, field: str, value: Any) -> None:
        self._channels.pop(key, None)
        self._sink(record_id, field, value)
