from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from src.core.config import get_settings

_CONFIGURED = False

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("sqlalchemy.engine", "rq.worker", "httpx")


def setup_logging(level: int | str | None = None) -> None:
    """Configure structlog for JSON output; every line carries the service and environment."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    settings = get_settings()
    resolved = _resolve_level(level if level is not None else settings.log_level)
    logging.basicConfig(level=resolved, format="%(message)s", stream=sys.stdout)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
            _service_fields(settings.app_name, settings.environment),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(resolved),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True


def bind_actor(actor_id: str, **extra: Any) -> None:
    """Attach the acting user to every log line emitted in this context."""
    structlog.contextvars.bind_contextvars(actor_id=actor_id, **extra)


def _resolve_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    return logging.getLevelNamesMapping().get(level.upper(), logging.INFO)


def _service_fields(service: str, environment: str):
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service)
        event_dict.setdefault("environment", environment)
        return event_dict

    return processor
