"""FastAPI dependency injection functions."""

from typing import AsyncIterator

import structlog
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import TokenPayload, get_current_user
from db import database

logger = structlog.get_logger(__name__)


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Provide a database session for API endpoints.

    Yields an async SQLAlchemy session that is automatically
    committed on success or rolled back on error.
    """
    async with database.AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error("database_session_error", error=str(e))
            await session.rollback()
            raise


async def get_current_active_user(
    current_user: TokenPayload = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> TokenPayload:
    """
    Get the current authenticated user and verify they are active in the DB.

    Returns:
        Current user token payload (with verified active status)

    Raises:
        HTTPException: If user is not found or not active
    """
    from db.models.user import User

    result = await db.execute(
        select(User.is_active).where(
            User.id == current_user.sub,
            User.is_deleted == False,  # noqa: E712
        )
    )
    row = result.first()

    if not row:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )

    if not row[0]:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return current_user
