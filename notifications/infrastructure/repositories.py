from collections import defaultdict
from datetime import UTC, datetime
from typing import Any, Callable, Dict, List, Sequence, Tuple

from loguru import logger
from sqlalchemy import delete as sa_delete
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, desc, or_, select

from core.application.exceptions import (
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)

from ..application.ports import AudienceRuleRepository as DomainAudienceRuleRepository
from ..application.ports import NotificationRepository as DomainNotificationRepository
from ..application.ports import (
    NotificationRecipientRepository as DomainNotificationRecipientRepository,
)
from ..domain.entities import AudienceRule as DomainAudienceRule
from ..domain.entities import ConditionLogic
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import (
    NotificationFilters,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from ..domain.entities import Recipient as DomainRecipient
from ..domain.entities import RecipientStatus
from .models import Notification, NotificationAudienceRule, NotificationRecipient


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so `term` matches literally (escape character `\\`)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class AudienceRuleRepository(DomainAudienceRuleRepository):
    """Concrete implementation of `AudienceRuleRepository` backed by SQL storage."""

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository with a database session.

        Parameters
        ----------
        session : AsyncSession
            Asynchronous SQLAlchemy database session
        """
        self._session = session

    async def replace(
        self, notification_id: int, rules: Sequence[DomainAudienceRule]
    ) -> List[DomainAudienceRule]:
        """Delete every rule of the notification, then insert `rules`.

        Joins the caller's transaction: rows are flushed, never committed here.

        Parameters
        ----------
        notification_id : int
            Owning notification
        rules : Sequence[DomainAudienceRule]
            New rule set, may be empty

        Returns
        -------
        List[DomainAudienceRule]
            Stored rules with their assigned ids
        """
        await self._session.execute(
            sa_delete(NotificationAudienceRule).where(
                col(NotificationAudienceRule.notification_id) == notification_id
            )
        )

        pydantic_rules = [
            self._to_pydantic_model(notification_id, rule) for rule in rules
        ]
        self._session.add_all(pydantic_rules)
        await self._session.flush()

        return [self._to_domain_model(rule) for rule in pydantic_rules]

    async def list_for(self, notification_id: int) -> List[DomainAudienceRule]:
        result = await self._session.execute(
            select(NotificationAudienceRule)
            .where(NotificationAudienceRule.notification_id == notification_id)
            .order_by(NotificationAudienceRule.id)
        )
        return [self._to_domain_model(rule) for rule in result.scalars().all()]

    async def list_for_many(
        self, notification_ids: Sequence[int], include_only: bool = True
    ) -> Dict[int, List[DomainAudienceRule]]:
        """Load rules of many notifications in one query.

        Parameters
        ----------
        notification_ids : Sequence[int]
            Notifications to load rules for
        include_only : bool, default=True
            Skip EXCLUDE rules

        Returns
        -------
        Dict[int, List[DomainAudienceRule]]
            Rules grouped by notification id
        """
        if not notification_ids:
            return {}

        query = select(NotificationAudienceRule).where(
            col(NotificationAudienceRule.notification_id).in_(notification_ids)
        )
        if include_only:
            query = query.where(
                NotificationAudienceRule.condition_logic
                == ConditionLogic.INCLUDE.value
            )
        query = query.order_by(NotificationAudienceRule.id)

        result = await self._session.execute(query)

        grouped: Dict[int, List[DomainAudienceRule]] = defaultdict(list)
        for rule in result.scalars().all():
            grouped[rule.notification_id].append(self._to_domain_model(rule))
        return dict(grouped)

    async def get(self, notification_id: int, rule_id: int) -> DomainAudienceRule:
        pydantic_rule = await self._get_row(notification_id, rule_id)
        return self._to_domain_model(pydantic_rule)

    async def add(
        self, notification_id: int, rule: DomainAudienceRule
    ) -> DomainAudienceRule:
        pydantic_rule = self._to_pydantic_model(notification_id, rule)
        self._session.add(pydantic_rule)

        try:
            await self._session.commit()
            await self._session.refresh(pydantic_rule)
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(
                f"Failed to add audience rule to notification {notification_id}"
            )
            raise StorageFailureError("Failed to add audience rule") from e

        return self._to_domain_model(pydantic_rule)

    async def update(
        self, notification_id: int, rule_id: int, changes: Dict[str, Any]
    ) -> DomainAudienceRule:
        pydantic_rule = await self._get_row(notification_id, rule_id)

        for field, value in changes.items():
            setattr(pydantic_rule, field, value)
        self._session.add(pydantic_rule)

        try:
            await self._session.commit()
            await self._session.refresh(pydantic_rule)
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(f"Failed to update audience rule {rule_id}")
            raise StorageFailureError("Failed to update audience rule") from e

        return self._to_domain_model(pydantic_rule)

    async def delete(self, notification_id: int, rule_id: int) -> None:
        pydantic_rule = await self._get_row(notification_id, rule_id)
        await self._session.delete(pydantic_rule)

        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(f"Failed to delete audience rule {rule_id}")
            raise StorageFailureError("Failed to delete audience rule") from e

    async def _get_row(
        self, notification_id: int, rule_id: int
    ) -> NotificationAudienceRule:
        result = await self._session.execute(
            select(NotificationAudienceRule).where(
                NotificationAudienceRule.id == rule_id,
                NotificationAudienceRule.notification_id == notification_id,
            )
        )
        pydantic_rule = result.scalars().first()

        if pydantic_rule is None:
            raise NotFoundError(
                f"Audience rule {rule_id} not found for notification {notification_id}"
            )
        return pydantic_rule

    def _to_pydantic_model(
        self, notification_id: int, rule: DomainAudienceRule
    ) -> NotificationAudienceRule:
        return NotificationAudienceRule(
            notification_id=notification_id,
            audience_type=str(rule.audience_type),
            audience_value=rule.audience_value,
            condition_logic=str(rule.condition_logic),
        )

    def _to_domain_model(
        self, pydantic_rule: NotificationAudienceRule
    ) -> DomainAudienceRule:
        """Convert a stored rule to a domain rule.

        Unrecognised condition values load as EXCLUDE, which is never evaluated.
        """
        try:
            condition_logic = ConditionLogic(pydantic_rule.condition_logic)
        except ValueError:
            logger.warning(
                f"Audience rule {pydantic_rule.id} has unknown condition logic "
                f"'{pydantic_rule.condition_logic}', treating it as EXCLUDE"
            )
            condition_logic = ConditionLogic.EXCLUDE

        return DomainAudienceRule(
            id=pydantic_rule.id,
            notification_id=pydantic_rule.notification_id,
            audience_type=pydantic_rule.audience_type,
            audience_value=pydantic_rule.audience_value,
            condition_logic=condition_logic,
        )


class NotificationRepository(DomainNotificationRepository):
    """Concrete implementation of `NotificationRepository` for database-based notification management.

    Header writes and rule replacement share the repository's session, so a
    create or update either stores everything or nothing.
    """

    def __init__(
        self,
        session: AsyncSession,
        rule_repository: AudienceRuleRepository | None = None,
    ) -> None:
        """Initialize the repository with a database session.

        Parameters
        ----------
        session : AsyncSession
            Asynchronous SQLAlchemy database session
        rule_repository : AudienceRuleRepository | None
            Rule store bound to the same session; built from `session` if omitted
        """
        self._session = session
        self._rule_repository = rule_repository or AudienceRuleRepository(session)

    async def create(
        self, notification: DomainNotification, rules: Sequence[DomainAudienceRule]
    ) -> DomainNotification:
        """Store a notification header and its audience rules.

        The header is always stored with status SENT.

        Parameters
        ----------
        notification : DomainNotification
            Domain notification entity to be created
        rules : Sequence[DomainAudienceRule]
            Audience rules to attach

        Returns
        -------
        DomainNotification
            Created notification entity with database-assigned values

        Raises
        ------
        StorageFailureError
            If any write fails; nothing is stored in that case
        """
        pydantic_notification = self._to_pydantic_model(notification)
        pydantic_notification.status = NotificationStatus.SENT.value
        self._session.add(pydantic_notification)

        try:
            await self._session.flush()
            stored_rules = await self._rule_repository.replace(
                pydantic_notification.id, rules
            )
            await self._session.commit()
            await self._session.refresh(pydantic_notification)
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(f"Failed to create notification '{notification.title}'")
            raise StorageFailureError("Failed to create notification") from e

        return self._to_domain_model(pydantic_notification, stored_rules)

    async def update(
        self,
        notification_id: int,
        changes: Dict[str, Any],
        rules: Sequence[DomainAudienceRule] | None = None,
    ) -> DomainNotification:
        """Update header fields and, when `rules` is given, replace the rule set.

        Parameters
        ----------
        notification_id : int
            ID of the notification
        changes : Dict[str, Any]
            Header fields to overwrite
        rules : Sequence[DomainAudienceRule] | None, default=None
            None keeps the current rules, an empty sequence clears them

        Returns
        -------
        DomainNotification
            Updated notification entity with its current rules

        Raises
        ------
        NotFoundError
            If the notification does not exist
        StorageFailureError
            If any write fails; nothing is changed in that case
        """
        pydantic_notification = await self._get_row(notification_id)

        for field, value in changes.items():
            setattr(pydantic_notification, field, value)
        pydantic_notification.updated_at = utc_now()
        self._session.add(pydantic_notification)

        try:
            await self._session.flush()
            if rules is not None:
                await self._rule_repository.replace(notification_id, rules)
            await self._session.commit()
            await self._session.refresh(pydantic_notification)
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(f"Failed to update notification {notification_id}")
            raise StorageFailureError("Failed to update notification") from e

        stored_rules = await self._rule_repository.list_for(notification_id)
        return self._to_domain_model(pydantic_notification, stored_rules)

    async def get_by_id(
        self, notification_id: int, with_rules: bool = True
    ) -> DomainNotification:
        pydantic_notification = await self._get_row(notification_id)
        rules = (
            await self._rule_repository.list_for(notification_id) if with_rules else []
        )
        return self._to_domain_model(pydantic_notification, rules)

    async def list(
        self, filters: NotificationFilters, limit: int = 10, offset: int = 0
    ) -> Tuple[List[DomainNotification], int]:
        """Retrieve a page of notifications for administration.

        Parameters
        ----------
        filters : NotificationFilters
            Header filters to apply
        limit : int
            Maximum number of notifications to return
        offset : int
            Number of notifications to skip

        Returns
        -------
        Tuple[List[DomainNotification], int]
            Notifications with all their rules, and the total matching count
        """
        query = self._apply_filters(select(Notification), filters)

        total = await self._session.scalar(
            select(func.count()).select_from(query.subquery())
        )

        query = query.order_by(
            desc(Notification.created_at), desc(Notification.id)
        ).limit(limit).offset(offset)
        result = await self._session.execute(query)
        pydantic_notifications = result.scalars().all()

        rules = await self._rule_repository.list_for_many(
            [notification.id for notification in pydantic_notifications],
            include_only=False,
        )
        return [
            self._to_domain_model(notification, rules.get(notification.id, []))
            for notification in pydantic_notifications
        ], total or 0

    async def list_sent_ids(self, filters: NotificationFilters) -> List[int]:
        """Retrieve ids of every SENT notification matching the feed filters, newest first.

        Only `search`, `notification_type` and `priority` apply here.
        """
        feed_filters = NotificationFilters(
            search=filters.search,
            notification_type=filters.notification_type,
            priority=filters.priority,
            status=NotificationStatus.SENT,
        )
        query = self._apply_filters(select(Notification.id), feed_filters).order_by(
            desc(Notification.created_at), desc(Notification.id)
        )
        result = await self._session.execute(query)

        return list(result.scalars().all())

    async def get_many(
        self, notification_ids: Sequence[int]
    ) -> Dict[int, DomainNotification]:
        if not notification_ids:
            return {}

        result = await self._session.execute(
            select(Notification).where(col(Notification.id).in_(notification_ids))
        )
        return {
            notification.id: self._to_domain_model(notification)
            for notification in result.scalars().all()
        }

    async def delete(self, notification_id: int) -> None:
        pydantic_notification = await self._get_row(notification_id)
        await self._session.delete(pydantic_notification)

        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.exception(f"Failed to delete notification {notification_id}")
            raise StorageFailureError("Failed to delete notification") from e

    async def _get_row(self, notification_id: int) -> Notification:
        pydantic_notification = await self._session.get(Notification, notification_id)

        if pydantic_notification is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        return pydantic_notification

    def _apply_filters(self, query, filters: NotificationFilters):
        if filters.search:
            pattern = f"%{escape_like(filters.search.strip())}%"
            query = query.where(
                or_(
                    col(Notification.title).ilike(pattern, escape="\\"),
                    col(Notification.content).ilike(pattern, escape="\\"),
                )
            )
        if filters.notification_type:
            query = query.where(
                Notification.notification_type == str(filters.notification_type)
            )
        if filters.priority:
            query = query.where(Notification.priority == str(filters.priority))
        if filters.status:
            query = query.where(Notification.status == str(filters.status))
        if filters.semester_id is not None:
            query = query.where(Notification.semester_id == filters.semester_id)
        if filters.created_by_user_id is not None:
            query = query.where(
                Notification.created_by_user_id == filters.created_by_user_id
            )
        return query

    def _to_pydantic_model(
        self, domain_notification: DomainNotification
    ) -> Notification:
        """Convert a domain notification entity to a pydantic model.

        Parameters
        ----------
        domain_notification : DomainNotification
            Domain entity to convert

        Returns
        -------
        Notification
            Pydantic model instance
        """
        return Notification(
            title=domain_notification.title,
            content=domain_notification.content,
            notification_type=(
                str(domain_notification.notification_type)
                if domain_notification.notification_type
                else None
            ),
            priority=str(domain_notification.priority),
            status=str(domain_notification.status),
            semester_id=domain_notification.semester_id,
            attachments=list(domain_notification.attachments),
            created_by_user_id=domain_notification.created_by_user_id,
            published_at=domain_notification.published_at,
            expires_at=domain_notification.expires_at,
        )

    def _to_domain_model(
        self,
        pydantic_notification: Notification,
        rules: Sequence[DomainAudienceRule] = (),
    ) -> DomainNotification:
        """Convert a pydantic notification model to a domain entity.

        Parameters
        ----------
        pydantic_notification : Notification
            Pydantic model to convert
        rules : Sequence[DomainAudienceRule]
            Already loaded rules of the notification

        Returns
        -------
        DomainNotification
            Domain notification entity instance
        """
        return DomainNotification(
            id=pydantic_notification.id,
            title=pydantic_notification.title,
            content=pydantic_notification.content,
            notification_type=(
                NotificationType(pydantic_notification.notification_type)
                if pydantic_notification.notification_type
                else None
            ),
            priority=NotificationPriority(pydantic_notification.priority),
            status=NotificationStatus(pydantic_notification.status),
            semester_id=pydantic_notification.semester_id,
            attachments=list(pydantic_notification.attachments or []),
            created_by_user_id=pydantic_notification.created_by_user_id,
            published_at=pydantic_notification.published_at,
            expires_at=pydantic_notification.expires_at,
            audience_rules=list(rules),
            created_at=pydantic_notification.created_at,
            updated_at=pydantic_notification.updated_at,
        )


class NotificationRecipientRepository(DomainNotificationRecipientRepository):
    """Concrete implementation of `NotificationRecipientRepository`.

    Records are created on the first user action, never at send time. Every
    state change goes through `_apply`, which inserts the record when it is
    missing and falls back to the existing row when a concurrent request
    inserted it first.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self, notification_id: int, user_id: int
    ) -> DomainRecipient | None:
        pydantic_recipient = await self._get_row(notification_id, user_id)
        if pydantic_recipient is None:
            return None
        return self._to_domain_model(pydantic_recipient)

    async def get_many(
        self, notification_ids: Sequence[int], user_id: int
    ) -> Dict[int, DomainRecipient]:
        if not notification_ids:
            return {}

        result = await self._session.execute(
            select(NotificationRecipient).where(
                NotificationRecipient.recipient_user_id == user_id,
                col(NotificationRecipient.notification_id).in_(notification_ids),
            )
        )
        return {
            recipient.notification_id: self._to_domain_model(recipient)
            for recipient in result.scalars().all()
        }

    async def mark_read(
        self, notification: DomainNotification, user_id: int
    ) -> DomainRecipient:
        """Move the user's record to READ.

        Only an UNREAD (or missing) record changes; READ, DISMISSED and
        ARCHIVED_BY_USER records are returned untouched, so `read_at` keeps
        the time of the first read.

        Parameters
        ----------
        notification : DomainNotification
            Notification being read
        user_id : int
            ID of the reader

        Returns
        -------
        DomainRecipient
            The user's record after the call
        """

        def transition(recipient: NotificationRecipient) -> bool:
            if recipient.status != RecipientStatus.UNREAD.value:
                return False
            recipient.status = RecipientStatus.READ.value
            recipient.read_at = utc_now()
            return True

        return await self._apply(notification, user_id, transition)

    async def set_status(
        self,
        notification: DomainNotification,
        user_id: int,
        status: RecipientStatus,
    ) -> DomainRecipient:
        """Move the user's record to DISMISSED or ARCHIVED_BY_USER.

        Raises
        ------
        ValidationFailedError
            If `status` is not a terminal user state
        """
        if status not in (RecipientStatus.DISMISSED, RecipientStatus.ARCHIVED_BY_USER):
            raise ValidationFailedError(f"Cannot move a recipient record to {status}")

        def transition(recipient: NotificationRecipient) -> bool:
            if recipient.status == status.value:
                return False
            recipient.status = status.value
            if status == RecipientStatus.DISMISSED:
                recipient.dismissed_at = utc_now()
            return True

        return await self._apply(notification, user_id, transition)

    async def set_pinned(
        self, notification: DomainNotification, user_id: int, is_pinned: bool
    ) -> DomainRecipient:
        def transition(recipient: NotificationRecipient) -> bool:
            if recipient.is_pinned == is_pinned:
                return False
            recipient.is_pinned = is_pinned
            return True

        return await self._apply(notification, user_id, transition)

    async def list_for_notification(
        self, notification_id: int, limit: int = 10, offset: int = 0
    ) -> Tuple[List[DomainRecipient], int]:
        query = select(NotificationRecipient).where(
            NotificationRecipient.notification_id == notification_id
        )

        total = await self._session.scalar(
            select(func.count()).select_from(query.subquery())
        )

        result = await self._session.execute(
            query.order_by(
                desc(NotificationRecipient.received_at),
                desc(NotificationRecipient.id),
            )
            .limit(limit)
            .offset(offset)
        )
        return [
            self._to_domain_model(recipient) for recipient in result.scalars().all()
        ], total or 0

    async def _apply(
        self,
        notification: DomainNotification,
        user_id: int,
        transition: Callable[[NotificationRecipient], bool],
    ) -> DomainRecipient:
        """Run `transition` on the user's record, creating the record if missing.

        `transition` mutates the row in place and returns whether anything
        changed. A missing record whose transition changes nothing is not
        stored. A duplicate-key error on insert means another request created
        the record first: the insert is rolled back and the transition is
        replayed on the stored row.
        """
        pydantic_recipient = await self._get_row(notification.id, user_id)

        if pydantic_recipient is None:
            pydantic_recipient = NotificationRecipient(
                notification_id=notification.id,
                recipient_user_id=user_id,
                received_at=notification.created_at or utc_now(),
                status=RecipientStatus.UNREAD.value,
                is_pinned=False,
            )
            if not transition(pydantic_recipient):
                return self._to_domain_model(pydantic_recipient)

            self._session.add(pydantic_recipient)
            try:
                await self._session.commit()
                await self._session.refresh(pydantic_recipient)
                return self._to_domain_model(pydantic_recipient)
            except IntegrityError as e:
                await self._session.rollback()
                logger.info(
                    f"Recipient record for notification {notification.id} and user "
                    f"{user_id} already exists, reusing it"
                )
                pydantic_recipient = await self._get_row(notification.id, user_id)
                if pydantic_recipient is None:
                    logger.exception(
                        f"Failed to store recipient record for notification {notification.id}"
                    )
                    raise StorageFailureError(
                        "Failed to store recipient record"
                    ) from e
            except SQLAlchemyError as e:
                await self._session.rollback()
                logger.exception(
                    f"Failed to store recipient record for notification {notification.id}"
                )
                raise StorageFailureError("Failed to store recipient record") from e

        if transition(pydantic_recipient):
            self._session.add(pydantic_recipient)
            try:
                await self._session.commit()
                await self._session.refresh(pydantic_recipient)
            except SQLAlchemyError as e:
                await self._session.rollback()
                logger.exception(
                    f"Failed to update recipient record for notification {notification.id}"
                )
                raise StorageFailureError("Failed to update recipient record") from e

        return self._to_domain_model(pydantic_recipient)

    async def _get_row(
        self, notification_id: int, user_id: int
    ) -> NotificationRecipient | None:
        result = await self._session.execute(
            select(NotificationRecipient).where(
                NotificationRecipient.notification_id == notification_id,
                NotificationRecipient.recipient_user_id == user_id,
            )
        )
        return result.scalars().first()

    def _to_domain_model(
        self, pydantic_recipient: NotificationRecipient
    ) -> DomainRecipient:
        return DomainRecipient(
            id=pydantic_recipient.id,
            notification_id=pydantic_recipient.notification_id,
            recipient_user_id=pydantic_recipient.recipient_user_id,
            status=RecipientStatus(pydantic_recipient.status),
            received_at=pydantic_recipient.received_at,
            read_at=pydantic_recipient.read_at,
            dismissed_at=pydantic_recipient.dismissed_at,
            is_pinned=pydantic_recipient.is_pinned,
        )
