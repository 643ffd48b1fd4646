"""Stage-change events and their delivery to downstream collaborators.

Notification dispatch, audit storage and points accounting subscribe to
``StageChanged``. A failing subscriber is logged and never rolls back the
transition that produced the event.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol

import structlog
from src.domain.stages import Action, ChallengeSubmissionStatus, IdeaStage, SubmissionKind

logger = structlog.get_logger()

POINT_AWARD_STAGES = frozenset(
    {
        (SubmissionKind.IDEA.value, IdeaStage.MANAGER_REVIEW.value),
        (SubmissionKind.IDEA.value, IdeaStage.COMPLETED.value),
        (SubmissionKind.CHALLENGE_SUBMISSION.value, ChallengeSubmissionStatus.WINNER.value),
    }
)


@dataclass(frozen=True, slots=True)
class StageChanged:
    submission_kind: str
    submission_id: str
    from_stage: str
    to_stage: str
    actor_id: str
    action: str
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def awards_points(self) -> bool:
        """True for transitions that points accounting rewards (approval or win)."""
        if self.action not in {Action.APPROVE.value, Action.SELECT_WINNER.value}:
            return False
        return (self.submission_kind, self.to_stage) in POINT_AWARD_STAGES

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["occurred_at"] = self.occurred_at.isoformat()
        payload["awards_points"] = self.awards_points
        return payload

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> StageChanged:
        data = {key: value for key, value in payload.items() if key != "awards_points"}
        data["occurred_at"] = datetime.fromisoformat(data["occurred_at"])
        return cls(**data)


class EventSink(Protocol):
    async def publish(self, event: StageChanged) -> None: ...


Subscriber = Callable[[StageChanged], Awaitable[None]]


class EventBus:
    """In-process fan-out to subscribers."""

    def __init__(self, subscribers: list[Subscriber] | None = None) -> None:
        self._subscribers: list[Subscriber] = list(subscribers or [])

    def subscribe(self, subscriber: Subscriber) -> None:
        self._subscribers.append(subscriber)

    async def publish(self, event: StageChanged) -> None:
        for subscriber in self._subscribers:
            try:
                await subscriber(event)
            except Exception:
                # Owning collaborator retries on its own; the transition stands.
                await logger.aexception(
                    "event_subscriber_failed",
                    subscriber=getattr(subscriber, "__name__", repr(subscriber)),
                    submission_id=event.submission_id,
                    to_stage=event.to_stage,
                )


class QueueEventSink:
    """Hands events to the rq worker for at-least-once processing."""

    def __init__(self, queue: Any) -> None:
        self.queue = queue

    async def publish(self, event: StageChanged) -> None:
        from src.workers.jobs import dispatch_stage_changed_job

        await asyncio.to_thread(self.queue.enqueue, dispatch_stage_changed_job, event.to_payload())
        await logger.adebug(
            "stage_changed_enqueued",
            submission_id=event.submission_id,
            queue=getattr(self.queue, "name", None),
        )


async def audit_stage_change(event: StageChanged) -> None:
    """Append-only audit record of the transition."""
    await logger.ainfo(
        "audit_stage_changed",
        entity_type=event.submission_kind,
        entity_id=event.submission_id,
        actor_id=event.actor_id,
        action=event.action,
        old_values={"stage": event.from_stage},
        new_values={"stage": event.to_stage},
        awards_points=event.awards_points,
    )


def build_default_bus() -> EventBus:
    return EventBus([audit_stage_change])
