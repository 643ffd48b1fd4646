from __future__ import annotations

from collections.abc import Iterable

from src.api.deps import issue_smoke_token
from src.core.auth import AccountStatus, Role
from src.domain.events import StageChanged
from src.domain.models import Actor


class RecordingSink:
    """Event sink that keeps every published event in memory."""

    def __init__(self) -> None:
        self.events: list[StageChanged] = []

    async def publish(self, event: StageChanged) -> None:
        self.events.append(event)

    @property
    def stages(self) -> list[tuple[str, str]]:
        return [(event.from_stage, event.to_stage) for event in self.events]


def make_actor(
    actor_id: str,
    *roles: Role,
    status: AccountStatus = AccountStatus.ACTIVE,
    terms_accepted: bool = True,
) -> Actor:
    return Actor(
        actor_id=actor_id,
        roles=frozenset(roles),
        status=status,
        terms_accepted=terms_accepted,
    )


def auth_headers(user_id: str = "user-1", role: Role | Iterable[Role] = Role.USER) -> dict[str, str]:
    token = issue_smoke_token(user_id, role=role)
    return {"Authorization": f"Bearer {token}"}
