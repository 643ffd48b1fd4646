from __future__ import annotations

import threading
from datetime import UTC, datetime

from src.domain.events import EventBus, QueueEventSink, StageChanged
from src.workers.jobs import dispatch_stage_changed_job


def _event(**overrides) -> StageChanged:
    data = {
        "submission_kind": "idea",
        "submission_id": "idea-1",
        "from_stage": "submitted",
        "to_stage": "manager_review",
        "actor_id": "manager-1",
        "action": "approve",
        "occurred_at": datetime(2026, 3, 1, 9, 30, tzinfo=UTC),
    }
    data.update(overrides)
    return StageChanged(**data)


class TestStageChanged:
    def test_points_awarded_for_approval_into_manager_review(self) -> None:
        assert _event().awards_points

    def test_points_awarded_for_winner(self) -> None:
        event = _event(
            submission_kind="challenge_submission",
            from_stage="evaluated",
            to_stage="winner",
            action="select_winner",
        )
        assert event.awards_points

    def test_submit_awards_nothing(self) -> None:
        assert not _event(from_stage="draft", to_stage="submitted", action="submit").awards_points

    def test_payload_roundtrip_keeps_fields(self) -> None:
        event = _event(metadata={"review_round": 2})

        payload = event.to_payload()
        restored = StageChanged.from_payload(payload)

        assert payload["occurred_at"] == "2026-03-01T09:30:00+00:00"
        assert payload["awards_points"] is True
        assert restored == event


class TestEventBus:
    async def test_failing_subscriber_does_not_stop_delivery(self) -> None:
        received: list[StageChanged] = []

        async def broken(event: StageChanged) -> None:
            raise RuntimeError("mail server down")

        async def recorder(event: StageChanged) -> None:
            received.append(event)

        bus = EventBus([broken])
        bus.subscribe(recorder)
        await bus.publish(_event())

        assert received == [_event()]


class _FakeQueue:
    name = "events"

    def __init__(self) -> None:
        self.jobs: list[tuple] = []
        self.threads: list[int] = []

    def enqueue(self, func, *args):
        self.threads.append(threading.get_ident())
        self.jobs.append((func, args))


async def test_queue_sink_enqueues_dispatch_job() -> None:
    queue = _FakeQueue()

    await QueueEventSink(queue).publish(_event())

    func, args = queue.jobs[0]
    assert func is dispatch_stage_changed_job
    assert args == (_event().to_payload(),)


async def test_queue_sink_enqueues_off_the_event_loop_thread() -> None:
    queue = _FakeQueue()

    await QueueEventSink(queue).publish(_event())

    assert queue.threads != [threading.get_ident()]


def test_dispatch_job_delivers_payload() -> None:
    result = dispatch_stage_changed_job(_event().to_payload())

    assert result == {
        "submission_id": "idea-1",
        "to_stage": "manager_review",
        "awards_points": True,
        "status": "dispatched",
    }
