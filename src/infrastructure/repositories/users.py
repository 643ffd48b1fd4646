from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.errors import NotFoundError
from src.domain.models import Actor
from src.infrastructure.db.models import UserModel


class UserRepository:
    """Actor snapshots for third parties the request does not authenticate as."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_actor(self, actor_id: str) -> Actor:
        row = await self.session.scalar(
            select(UserModel).where(UserModel.id == actor_id).execution_options(populate_existing=True)
        )
        if row is None:
            raise NotFoundError(f"User {actor_id} not found")
        return Actor.from_claims(
            row.id,
            row.roles or [],
            status=row.status,
            terms_accepted=row.terms_accepted,
            email=row.email or "",
        )

    async def upsert(self, actor: Actor) -> None:
        row = await self.session.get(UserModel, actor.actor_id)
        if row is None:
            row = UserModel(id=actor.actor_id)
            self.session.add(row)
        row.email = actor.email or None
        row.roles = sorted(role.value for role in actor.roles)
        row.status = actor.status.value
        row.terms_accepted = actor.terms_accepted
        await self.session.flush()
