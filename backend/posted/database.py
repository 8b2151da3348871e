# backend/posted/database.py
from sqlalchemy.ext.asyncio import AsyncSession

from posted.core.async_context import get_async_context

async def get_db() -> AsyncSession:
    """
    FastAPI dependency to get an async database session from the shared context.
    """
    async_context = get_async_context()
    session_factory = async_context.session_factory

    async with session_factory() as session:
        yield session
