import asyncio

import pytest

from papertrack.scheduling import (
    RECOVERY_MESSAGE,
    AsyncioHost,
    DebounceChannel,
    FailureTracker,
    InputDebouncer,
    ManualHost,
    UpdateScheduler,
)
from papertrack.services.notifications import CollectingNotifier


class RecordingTarget:
    def __init__(self, fail_stats: bool = False) -> None:
        self.calls: list[tuple] = []
        self.fail_stats = fail_stats

    def refresh_record(self, record_id: int) -> None:
        self.calls.append(("record", record_id))

    def refresh_stats(self) -> None:
        if self.fail_stats:
            raise RuntimeError("stats exploded")
        self.calls.append(("stats",))

    def persist(self) -> None:
        self.calls.append(("persist",))

    def refresh_list(self) -> None:
        self.calls.append(("list",))


def _scheduler(target: RecordingTarget, notifier: CollectingNotifier | None = None):
    host = ManualHost()
    failures = FailureTracker(notifier or CollectingNotifier(), threshold=3)
    scheduler = UpdateScheduler(host, failures, list_delay_ms=500)
    scheduler.bind(target)
    return host, failures, scheduler


def test_manual_host_runs_tasks_in_due_order() -> None:
    host = ManualHost()
    seen: list[str] = []
    host.call_later(20, lambda: seen.append("late"))
    host.call_later(10, lambda: seen.append("early"))
    cancelled = host.call_soon(lambda: seen.append("cancelled"))
    cancelled.cancel()

    assert host.advance(15) == 1
    assert seen == ["early"]
    assert host.now_ms() == 15
    host.drain()
    assert seen == ["early", "late"]
    assert host.pending == 0


def test_debounce_channel_rearm_replaces_pending_task() -> None:
    host = ManualHost()
    channel = DebounceChannel("test", host, delay_ms=100)
    seen: list[int] = []
    channel.arm(lambda: seen.append(1))
    host.advance(50)
    channel.arm(lambda: seen.append(2))
    host.advance(99)
    assert seen == []
    host.advance(1)
    assert seen == [2]
    assert not channel.pending


def test_frame_pass_coalesces_a_burst() -> None:
    target = RecordingTarget()
    host, _, scheduler = _scheduler(target)

    scheduler.request_refresh(1)
    scheduler.request_refresh(2)
    host.run_frame()

    assert scheduler.frame_passes == 1
    assert target.calls == [("stats",), ("persist",), ("record", 2)]


def test_list_channel_is_a_trailing_debounce() -> None:
    target = RecordingTarget()
    host, _, scheduler = _scheduler(target)

    scheduler.request_refresh(1)
    host.advance(499)
    assert ("list",) not in target.calls
    scheduler.request_refresh(1)
    host.advance(499)
    assert ("list",) not in target.calls
    host.advance(1)
    assert target.calls.count(("list",)) == 1
    assert scheduler.list_passes == 1


def test_refresh_now_skips_both_windows() -> None:
    target = RecordingTarget()
    host, _, scheduler = _scheduler(target)

    scheduler.request_refresh(3)
    scheduler.refresh_now()

    assert target.calls == [("stats",), ("list",)]
    assert host.pending == 0


def test_repeated_failures_escalate_then_reset() -> None:
    notifier = CollectingNotifier()
    target = RecordingTarget(fail_stats=True)
    host, failures, scheduler = _scheduler(target, notifier)

    for _ in range(2):
        scheduler.request_refresh(1)
        host.run_frame()
    assert notifier.messages == []
    assert failures.consecutive == 2

    scheduler.request_refresh(1)
    host.run_frame()
    assert notifier.messages == [RECOVERY_MESSAGE]
    assert failures.consecutive == 0
    assert failures.total == 3


def test_successful_pass_resets_failure_counter() -> None:
    target = RecordingTarget(fail_stats=True)
    host, failures, scheduler = _scheduler(target)

    scheduler.request_refresh(1)
    host.run_frame()
    assert failures.consecutive == 1

    target.fail_stats = False
    scheduler.request_refresh(1)
    host.run_frame()
    assert failures.consecutive == 0


def test_input_debouncer_delivers_last_value_per_field() -> None:
    host = ManualHost()
    delivered: list[tuple] = []
    debouncer = InputDebouncer(host, lambda *args: delivered.append(args), delay_ms=300)

    debouncer.input(1, "title", "D")
    debouncer.input(1, "title", "De")
    debouncer.input(1, "notes", "n")
    host.advance(299)
    assert delivered == []
    assert debouncer.pending == 2

    host.advance(1)
    assert sorted(delivered) == [(1, "notes", "n"), (1, "title", "De")]


def test_discrete_change_bypasses_debounce() -> None:
    host = ManualHost()
    delivered: list[tuple] = []
    debouncer = InputDebouncer(host, lambda *args: delivered.append(args), delay_ms=300)

    debouncer.input(1, "status", "reading")
    debouncer.change(1, "status", "read")
    assert delivered == [(1, "status", "read")]

    host.advance(300)
    assert delivered == [(1, "status", "read")]


@pytest.mark.asyncio
async def test_asyncio_host_runs_callbacks_on_the_loop() -> None:
    host = AsyncioHost()
    seen: list[str] = []
    host.call_soon(lambda: seen.append("soon"))
    host.call_later(10, lambda: seen.append("later"))
    cancelled = host.call_later(10, lambda: seen.append("cancelled"))
    cancelled.cancel()

    await asyncio.sleep(0)
    assert seen == ["soon"]
    await asyncio.sleep(0.05)
    assert seen == ["soon", "later"]
    assert host.now_ms() > 0


def test_input_debouncer_cancel_by_record() -> None:
    host = ManualHost()
    delivered: list[tuple] = []
    debouncer = InputDebouncer(host, lambda *args: delivered.append(args), delay_ms=300)

    debouncer.input(1, "title", "a")
    debouncer.input(1, "notes", "b")
    debouncer.input(2, "title", "c")
    assert debouncer.cancel(1) == 2

    host.advance(300)
    assert delivered == [(2, "title", "c")]
    assert debouncer.cancel() == 0
