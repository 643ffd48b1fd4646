from __future__ import annotations

import enum

from fastapi import APIRouter, Depends
from src.api.deps import get_current_actor, get_uow, to_http_exception
from src.api.schemas.submissions import CollaborationResponse
from src.domain import Actor
from src.domain.errors import WorkflowError
from src.domain.services import CollaborationService
from src.infrastructure.repositories.unit_of_work import UnitOfWork

router = APIRouter(prefix="/collaborations", tags=["Collaborations"])


class CollaborationAction(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"
    REMOVE = "remove"
    REINSTATE = "reinstate"


@router.post("/{collaboration_id}/{action}", response_model=CollaborationResponse)
async def respond_to_collaboration(
    collaboration_id: str,
    action: CollaborationAction,
    actor: Actor = Depends(get_current_actor),
    uow: UnitOfWork = Depends(get_uow),
) -> CollaborationResponse:
    try:
        collaboration = await CollaborationService(uow).respond(
            actor, collaboration_id, action.value
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return CollaborationResponse.from_domain(collaboration)
