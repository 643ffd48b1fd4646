from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis import Redis
from rq import Queue, Worker
from src.core.config import get_settings
from src.core.logging import setup_logging
from src.workers import jobs
from src.workers.queues import DEFAULT_QUEUE

logger = structlog.get_logger()

REGISTERED_JOBS = {
    "dispatch_stage_changed": jobs.dispatch_stage_changed_job,
    "sweep_challenge_deadlines": jobs.sweep_challenge_deadlines_job,
}


async def main() -> None:
    """Bootstrap the worker, schedule the first deadline sweep and start consuming."""
    setup_logging()
    settings = get_settings()
    redis_connection = Redis.from_url(settings.redis_url)
    queue_names: Sequence[str] = (settings.event_queue_name, DEFAULT_QUEUE)
    logger.info(
        "worker_bootstrap",
        queues=list(queue_names),
        redis_url=settings.redis_url,
        jobs=list(REGISTERED_JOBS.keys()),
    )

    Queue(DEFAULT_QUEUE, connection=redis_connection).enqueue(jobs.sweep_challenge_deadlines_job)
    await asyncio.to_thread(_run_worker, redis_connection, queue_names)


def _run_worker(connection: Redis, queue_names: Sequence[str]) -> None:
    """Run the RQ worker in a background thread."""
    queues = [Queue(name, connection=connection) for name in queue_names]
    worker = Worker(queues, connection=connection, name="workflow-worker")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    asyncio.run(main())
