from __future__ import annotations

import argparse
import asyncio
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from lecture_pipeline.core.settings import get_settings
from lecture_pipeline.db.models.user_role import UserRole
from lecture_pipeline.repositories.roles import ADMIN_ROLE


async def main() -> None:
    parser = argparse.ArgumentParser(description="Grant the admin role to an identity-service user.")
    parser.add_argument("--user-id", required=True, help="identity-service user id (UUID)")
    parser.add_argument("--role", default=ADMIN_ROLE)
    args = parser.parse_args()

    user_id = UUID(args.user_id)
    settings = get_settings()
    engine = create_async_engine(settings.database_url, pool_pre_ping=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with SessionLocal() as session:
            res = await session.execute(
                select(UserRole).where(UserRole.user_id == user_id, UserRole.role == args.role)
            )
            if res.scalar_one_or_none() is not None:
                print(f"Role already granted: user_id={user_id} role={args.role}")
                return

            session.add(UserRole(user_id=user_id, role=args.role))
            await session.commit()
            print(f"Granted role: user_id={user_id} role={args.role}")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
