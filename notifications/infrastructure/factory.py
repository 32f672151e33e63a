from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.database import get_database_session

from .repositories import (
    AudienceRuleRepository,
    NotificationRecipientRepository,
    NotificationRepository,
)


async def get_audience_rule_repository(
    session: AsyncSession = Depends(get_database_session),
) -> AudienceRuleRepository:
    """Provide an AudienceRuleRepository instance.

    Parameters
    ----------
    session : AsyncSession
        Asynchronous SQLAlchemy database session, injected as a dependency

    Returns
    -------
    AudienceRuleRepository
        Instance of AudienceRuleRepository
    """
    return AudienceRuleRepository(session)


async def get_notification_repository(
    session: AsyncSession = Depends(get_database_session),
    rule_repository: AudienceRuleRepository = Depends(get_audience_rule_repository),
) -> NotificationRepository:
    """Provide a NotificationRepository sharing its session with the rule store.

    Parameters
    ----------
    session : AsyncSession
        Asynchronous SQLAlchemy database session, injected as a dependency
    rule_repository : AudienceRuleRepository
        Rule store bound to the same request session

    Returns
    -------
    NotificationRepository
        Instance of NotificationRepository
    """
    return NotificationRepository(session, rule_repository)


async def get_notification_recipient_repository(
    session: AsyncSession = Depends(get_database_session),
) -> NotificationRecipientRepository:
    """Provide a NotificationRecipientRepository instance."""
    return NotificationRecipientRepository(session)
