from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from shared.database import create_engine_and_sessions
from .config import DATABASE_URL, SQL_ECHO

engine, async_session_maker = create_engine_and_sessions(DATABASE_URL, echo=SQL_ECHO)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session
