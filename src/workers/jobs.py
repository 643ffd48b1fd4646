"""
Worker jobs.

- dispatch_stage_changed_job: delivers a queued StageChanged to the subscribers
- sweep_challenge_deadlines_job: closes expired challenges and re-enqueues itself
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import timedelta
from typing import Any

import structlog
from src.core.config import get_settings
from src.domain.events import StageChanged, build_default_bus
from src.domain.services.challenges import ChallengeService
from src.infrastructure.db.session import dispose_engine, get_session_factory
from src.infrastructure.repositories.unit_of_work import UnitOfWork
from src.workers.queues import DEFAULT_QUEUE, build_event_sink, get_queue

logger = structlog.get_logger()


def dispatch_stage_changed_job(payload: dict[str, Any]) -> dict[str, Any]:
    """Entry point for delivering one stage change to the in-process subscribers."""
    return asyncio.run(_dispatch_stage_changed(payload))


def sweep_challenge_deadlines_job(reschedule: bool = True) -> dict[str, Any]:
    """
    Entry point for the periodic deadline sweep.

    Re-enqueues itself after DEADLINE_SWEEP_INTERVAL_SECONDS when ``reschedule``
    is set; the worker must run with its scheduler enabled.
    """
    result = asyncio.run(_sweep_challenge_deadlines())
    if reschedule:
        settings = get_settings()
        get_queue(DEFAULT_QUEUE, settings).enqueue_in(
            timedelta(seconds=settings.deadline_sweep_interval_seconds),
            sweep_challenge_deadlines_job,
            reschedule=True,
        )
    return result


async def _dispatch_stage_changed(payload: dict[str, Any]) -> dict[str, Any]:
    event = StageChanged.from_payload(payload)
    await build_default_bus().publish(event)
    result = {
        "submission_id": event.submission_id,
        "to_stage": event.to_stage,
        "awards_points": event.awards_points,
        "status": "dispatched",
    }
    logger.info("stage_changed_dispatched", **result)
    return result


async def _sweep_challenge_deadlines() -> dict[str, Any]:
    settings = get_settings()
    try:
        async with get_session_factory()() as session:
            service = ChallengeService(
                UnitOfWork(session), events=build_event_sink(settings), settings=settings
            )
            try:
                report = await service.sweep_deadlines()
            except Exception as e:
                logger.error("deadline_sweep_failed", error=str(e), exc_info=True)
                raise
    finally:
        # Pooled connections belong to this job's event loop.
        await dispose_engine()
    return asdict(report)
