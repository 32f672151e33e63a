from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_database_session

from .repositories import UserRepository


async def get_user_repository(
    session: AsyncSession = Depends(get_database_session),
) -> UserRepository:
    """Provide a request-scoped `UserRepository`.

    Parameters
    ----------
    session: AsyncSession
        Database session of the current request.

    Returns
    -------
    UserRepository
        Repository bound to `session`.
    """
    return UserRepository(session)
