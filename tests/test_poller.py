"""Tests for ExportStatusPoller: attempt budget, failures, terminal states."""

from __future__ import annotations

from typing import Any, List, Optional

import pytest

from case_export.errors import ExportJobFailedError, PollTimeoutError
from case_export.status.models import StatusSnapshot
from case_export.status.normalizer import StatusNormalizer
from case_export.status.poller import ExportStatusPoller
from case_export.telemetry import ProgressEmitter, ProgressEvent

RUNNING = StatusNormalizer().normalize({"state": "RUNNING", "percentage": 30})
CREATING = StatusNormalizer().normalize({"complete": True, "percentage": 100})
DONE = StatusNormalizer().normalize({"complete": True, "packageAvailable": True})
FAILED = StatusNormalizer().normalize({"state": "FAILED", "error": "export crashed"})


class ScriptedCascade:
    """Returns (or raises) the scripted items in order, repeating the last one."""

    def __init__(self, script: List[Any]):
        self.script = script
        self.calls = 0

    async def poll(self, job_id: str) -> Optional[StatusSnapshot]:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return item


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.mark.asyncio
async def test_returns_first_complete_snapshot() -> None:
    cascade = ScriptedCascade([None, RUNNING, CREATING, DONE])
    sleep = RecordingSleep()
    poller = ExportStatusPoller(cascade, max_attempts=10, interval_s=0.5, sleep=sleep)

    snapshot = await poller.wait_for_completion("42")

    assert snapshot is DONE
    assert cascade.calls == 4
    assert sleep.delays == [0.5, 0.5, 0.5]


@pytest.mark.asyncio
async def test_budget_bounds_cascade_calls() -> None:
    cascade = ScriptedCascade([RUNNING])
    sleep = RecordingSleep()
    poller = ExportStatusPoller(cascade, max_attempts=4, interval_s=0.1, sleep=sleep)

    with pytest.raises(PollTimeoutError) as exc_info:
        await poller.wait_for_completion("42")

    assert cascade.calls == 4
    assert len(sleep.delays) == 3
    assert exc_info.value.attempts == 4
    assert exc_info.value.job_id == "42"
    assert exc_info.value.last_snapshot is RUNNING


@pytest.mark.asyncio
async def test_timeout_without_any_answer_has_no_snapshot() -> None:
    poller = ExportStatusPoller(ScriptedCascade([None]), max_attempts=2, sleep=RecordingSleep())

    with pytest.raises(PollTimeoutError) as exc_info:
        await poller.wait_for_completion("42")

    assert exc_info.value.last_snapshot is None


@pytest.mark.asyncio
async def test_exceptions_count_as_attempts() -> None:
    cascade = ScriptedCascade([RuntimeError("network down"), DONE])
    poller = ExportStatusPoller(cascade, max_attempts=3, sleep=RecordingSleep())

    assert await poller.wait_for_completion("42") is DONE
    assert cascade.calls == 2


@pytest.mark.asyncio
async def test_failed_job_ends_polling() -> None:
    cascade = ScriptedCascade([RUNNING, FAILED, DONE])
    poller = ExportStatusPoller(cascade, max_attempts=10, sleep=RecordingSleep())

    with pytest.raises(ExportJobFailedError) as exc_info:
        await poller.wait_for_completion("42")

    assert cascade.calls == 2
    assert exc_info.value.snapshot is FAILED
    assert "export crashed" in exc_info.value.message


@pytest.mark.asyncio
async def test_call_overrides_budget() -> None:
    cascade = ScriptedCascade([RUNNING])
    poller = ExportStatusPoller(cascade, max_attempts=100, sleep=RecordingSleep())

    with pytest.raises(PollTimeoutError):
        await poller.wait_for_completion("42", max_attempts=1)

    assert cascade.calls == 1


@pytest.mark.asyncio
async def test_emits_progress_events() -> None:
    events: List[ProgressEvent] = []
    emitter = ProgressEmitter([events.append])
    poller = ExportStatusPoller(
        ScriptedCascade([None, RUNNING, DONE]), emitter=emitter, sleep=RecordingSleep()
    )

    await poller.wait_for_completion("42")

    assert [(e.stage, e.action) for e in events] == [
        ("poll", "no_answer"),
        ("poll", "tick"),
        ("poll", "tick"),
        ("poll", "done"),
    ]
    assert events[1].data["percentage"] == 30
    assert all(e.job_id == "42" for e in events)
