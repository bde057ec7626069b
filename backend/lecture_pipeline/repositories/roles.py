from __future__ import annotations

from abc import ABC, abstractmethod
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from lecture_pipeline.db.models.user_role import UserRole

ADMIN_ROLE = "admin"


class RoleRepository(ABC):
    @abstractmethod
    async def has_role(self, user_id: str, role: str) -> bool:
        """True when a role-membership row exists for the user."""


class SqlRoleRepository(RoleRepository):
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def has_role(self, user_id: str, role: str) -> bool:
        try:
            uid = UUID(str(user_id))
        except (TypeError, ValueError):
            return False
        async with self._session_maker() as db:
            res = await db.execute(
                select(UserRole.id).where(UserRole.user_id == uid, UserRole.role == role).limit(1)
            )
            return res.scalar_one_or_none() is not None
