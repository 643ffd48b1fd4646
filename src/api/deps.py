from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Iterable

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.auth import Role, TokenError, create_access_token, decode_access_token
from src.core.logging import bind_actor
from src.domain import Actor
from src.domain.errors import (
    ConflictError,
    CorruptStateError,
    DuplicateCollaborationError,
    DuplicateSubmissionError,
    InvalidTransitionError,
    MissingRelatedEntityError,
    NotFoundError,
    UnauthorizedError,
    WorkflowError,
)
from src.domain.events import EventSink
from src.infrastructure.db.session import get_session, get_session_factory
from src.infrastructure.repositories.unit_of_work import UnitOfWork
from src.workers.queues import build_event_sink

bearer_scheme = HTTPBearer(auto_error=False)
logger = structlog.get_logger()

GENERIC_DENIAL = "You are not allowed to perform this action"


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Provide an async SQLAlchemy session for API handlers."""
    async for session in get_session():
        yield session


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
    session: AsyncSession = Depends(get_db_session),  # noqa: B008
) -> Actor:
    """Resolve the authenticated actor snapshot from a bearer token."""
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    try:
        payload = decode_access_token(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    actor_id = payload.get("sub")
    roles: Iterable[str] = payload.get("roles", [])
    if not actor_id:
        raise _unauthorized("Token missing subject")

    try:
        actor = Actor.from_claims(
            actor_id,
            roles,
            status=payload.get("status", "active"),
            terms_accepted=bool(payload.get("terms_accepted", False)),
            email=payload.get("email", ""),
        )
    except ValueError as exc:
        raise _unauthorized("Token carries an unknown role or status") from exc
    bind_actor(actor.actor_id, roles=sorted(role.value for role in actor.roles))

    uow = UnitOfWork(session)
    await uow.users.upsert(actor)
    await uow.commit()
    return actor


async def get_uow(session: AsyncSession = Depends(get_db_session)) -> UnitOfWork:  # noqa: B008
    return UnitOfWork(session)


def get_event_sink() -> EventSink:
    return build_event_sink()


def get_uow_factory() -> Callable[[], UnitOfWork]:
    """Independent units of work for handlers that fan out."""
    return UnitOfWork.factory(get_session_factory())


def issue_smoke_token(
    user_id: str,
    *,
    role: Role | Iterable[Role],
    email: str | None = None,
    status: str = "active",
    terms_accepted: bool = True,
) -> str:
    """Generate a signed token for manual smoke testing."""
    roles = [role] if isinstance(role, Role) else list(role)
    return create_access_token(
        user_id,
        roles=[item.value for item in roles],
        email=email,
        status=status,
        terms_accepted=terms_accepted,
    )


def to_http_exception(exc: WorkflowError | ValueError) -> HTTPException:
    """Map a domain failure onto its HTTP status; denial rules stay in the logs."""
    if isinstance(exc, UnauthorizedError):
        return _forbidden(GENERIC_DENIAL)
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError | DuplicateSubmissionError | DuplicateCollaborationError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidTransitionError | ValueError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, CorruptStateError | MissingRelatedEntityError):
        logger.error("workflow_state_error", error=str(exc), error_type=type(exc).__name__)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Submission is in an inconsistent state; an operator has been notified",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
