from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from softpoints.database.connection import get_session_factory


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with get_session_factory()() as db:
        try:
            yield db
        except Exception:
            if db.in_transaction():
                await db.rollback()
            raise
