from __future__ import annotations

import logging
from typing import Iterable, Sequence

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from packages.db.models import UserRoleTable, UserTable

from .authorization import Actor, Role

logger = logging.getLogger(__name__)


class UserDirectory:
    """Live view of accounts and their role memberships.

    Role memberships may change between requests, so every lookup goes to the
    database.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ensure_user(
        self,
        user_id: str,
        *,
        username: str | None = None,
        display_name: str | None = None,
        roles: Iterable[Role] = (),
    ) -> Actor:
        async with self._session_factory() as session:
            async with session.begin():
                row = await session.get(UserTable, user_id)
                if row is None:
                    session.add(
                        UserTable(id=user_id, username=username or user_id, display_name=display_name)
                    )
                    await session.flush()
                for role in roles:
                    if await session.get(UserRoleTable, (user_id, role.value)) is None:
                        session.add(UserRoleTable(user_id=user_id, role=role.value))
        return await self.get_actor(user_id)

    async def get_roles(self, user_id: str) -> frozenset[Role]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRoleTable.role)
                .join(UserTable, UserTable.id == UserRoleTable.user_id)
                .where(UserRoleTable.user_id == user_id, UserTable.is_active.is_(True))
            )
            values = result.scalars().all()

        roles: set[Role] = set()
        for value in values:
            try:
                roles.add(Role(value))
            except ValueError:
                logger.warning("Ignoring unknown role %r for user %s", value, user_id)
        return frozenset(roles)

    async def get_actor(self, user_id: str) -> Actor:
        return Actor(id=user_id, roles=await self.get_roles(user_id))

    async def has_role(self, user_id: str, role: Role) -> bool:
        return role in await self.get_roles(user_id)

    async def list_actor_ids_with_role(self, role: Role) -> Sequence[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserRoleTable.user_id)
                .join(UserTable, UserTable.id == UserRoleTable.user_id)
                .where(UserRoleTable.role == role.value, UserTable.is_active.is_(True))
                .order_by(UserRoleTable.user_id)
            )
            return list(result.scalars().all())

    async def grant_role(self, user_id: str, role: Role) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                if await session.get(UserTable, user_id) is None:
                    raise LookupError(f"Unknown user {user_id}")
                if await session.get(UserRoleTable, (user_id, role.value)) is None:
                    session.add(UserRoleTable(user_id=user_id, role=role.value))
        logger.info("Granted role %s to %s", role.value, user_id)

    async def revoke_role(self, user_id: str, role: Role) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(UserRoleTable).where(
                        UserRoleTable.user_id == user_id, UserRoleTable.role == role.value
                    )
                )
        logger.info("Revoked role %s from %s", role.value, user_id)
