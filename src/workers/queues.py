from __future__ import annotations

from functools import lru_cache

from redis import Redis
from rq import Queue
from src.core.config import Settings, get_settings
from src.domain.events import EventSink, QueueEventSink, build_default_bus

DEFAULT_QUEUE = "default"


@lru_cache
def get_redis(url: str) -> Redis:
    return Redis.from_url(url)


def get_queue(name: str = DEFAULT_QUEUE, settings: Settings | None = None) -> Queue:
    settings = settings or get_settings()
    return Queue(name, connection=get_redis(settings.redis_url))


def build_event_sink(settings: Settings | None = None) -> EventSink:
    """Queue-backed delivery when enabled, otherwise in-process fan-out."""
    settings = settings or get_settings()
    if settings.publish_events_via_queue:
        return QueueEventSink(get_queue(settings.event_queue_name, settings))
    return build_default_bus()
