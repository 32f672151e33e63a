from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Sequence, Tuple

from loguru import logger

from core.application.exceptions import NotFoundError, ValidationFailedError
from users.domain.entities import User as DomainUser
from users.domain.entities import UserRole

from ..domain.audience import is_visible, parse_user_list, visible_notification_ids
from ..domain.entities import AudienceRule as DomainAudienceRule
from ..domain.entities import AudienceType, FeedItem, effective_status
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import (
    NotificationFilters,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from ..domain.entities import Recipient as DomainRecipient
from ..domain.entities import RecipientStatus
from .ports import (
    AudienceRuleRepository,
    NotificationRecipientRepository,
    NotificationRepository,
)

TITLE_MAX_LENGTH = 255
AUDIENCE_VALUE_MAX_LENGTH = 500
MAX_AUDIENCE_RULES = 10


def validate_audience_rule(
    rule: DomainAudienceRule, value_max_length: int = AUDIENCE_VALUE_MAX_LENGTH
) -> None:
    """Reject a rule whose type is unknown or whose value is malformed.

    Raises
    ------
    ValidationFailedError
        If the rule cannot be stored as given.
    """
    if rule.audience_type not in set(AudienceType):
        raise ValidationFailedError(f"Unknown audience type '{rule.audience_type}'")

    value = (rule.audience_value or "").strip()
    if len(rule.audience_value or "") > value_max_length:
        raise ValidationFailedError(
            f"Audience value must be at most {value_max_length} characters"
        )

    if rule.audience_type == AudienceType.ALL_USERS:
        return

    if not value:
        raise ValidationFailedError(
            f"Audience value is required for audience type {rule.audience_type}"
        )

    if rule.audience_type == AudienceType.ROLE and value not in set(UserRole):
        raise ValidationFailedError(f"Unknown role '{value}'")

    if rule.audience_type in (AudienceType.MAJOR, AudienceType.DEPARTMENT):
        if not value.isdigit():
            raise ValidationFailedError(
                f"Audience value for {rule.audience_type} must be a numeric id"
            )

    if rule.audience_type == AudienceType.USER_LIST:
        tokens = parse_user_list(value)
        if not tokens or not all(token.isdigit() for token in tokens):
            raise ValidationFailedError(
                "Audience value for USER_LIST must be comma-separated user ids"
            )


def validate_audience_rules(
    rules: Sequence[DomainAudienceRule],
    max_rules: int = MAX_AUDIENCE_RULES,
    allow_empty: bool = False,
    value_max_length: int = AUDIENCE_VALUE_MAX_LENGTH,
) -> None:
    """Validate a full rule set before it reaches storage.

    Parameters
    ----------
    rules : Sequence[DomainAudienceRule]
        Rule set to validate
    max_rules : int
        Largest allowed rule set
    allow_empty : bool, default=False
        Accept an empty set (clearing rules on update)
    value_max_length : int
        Largest allowed audience value

    Raises
    ------
    ValidationFailedError
        If the set is empty when it must not be, too large, or holds a bad rule.
    """
    if not rules and not allow_empty:
        raise ValidationFailedError("At least one audience rule is required")
    if len(rules) > max_rules:
        raise ValidationFailedError(f"At most {max_rules} audience rules are allowed")

    for rule in rules:
        validate_audience_rule(rule, value_max_length)


def validate_header(changes: Dict[str, Any]) -> None:
    for field in ("title", "content"):
        if field in changes and not (changes[field] or "").strip():
            raise ValidationFailedError(f"Notification {field} must not be empty")

    if len(changes.get("title") or "") > TITLE_MAX_LENGTH:
        raise ValidationFailedError(
            f"Notification title must be at most {TITLE_MAX_LENGTH} characters"
        )


async def load_visible_notification_ids(
    user: DomainUser,
    filters: NotificationFilters,
    notification_repository: NotificationRepository,
    rule_repository: AudienceRuleRepository,
) -> List[int]:
    """Return ids of the SENT notifications matching `filters` that `user` may see.

    Only ids and INCLUDE rules are read here; headers are loaded later for
    the page actually returned.

    Parameters
    ----------
    user : DomainUser
        The current user
    filters : NotificationFilters
        Feed filters (search, type, priority)
    notification_repository : NotificationRepository
        Source of candidate notifications
    rule_repository : AudienceRuleRepository
        Source of INCLUDE rules for the candidates

    Returns
    -------
    List[int]
        Visible notification ids, newest first
    """
    candidate_ids = await notification_repository.list_sent_ids(filters)
    rules = await rule_repository.list_for_many(candidate_ids, include_only=True)
    visible = visible_notification_ids(user, candidate_ids, rules)

    return [
        notification_id for notification_id in candidate_ids if notification_id in visible
    ]


async def get_visible_notification(
    notification_id: int,
    user: DomainUser,
    notification_repository: NotificationRepository,
) -> DomainNotification:
    """Load one notification the user may see.

    Raises
    ------
    NotFoundError
        If the notification does not exist, is not SENT, or is not visible to `user`.
    """
    notification = await notification_repository.get_by_id(notification_id)

    if notification.status != NotificationStatus.SENT or not is_visible(
        user, notification.audience_rules
    ):
        raise NotFoundError(f"Notification {notification_id} not found")

    return notification


class CreateNotificationRule:
    """Business logic for creating a notification with its audience."""

    def __init__(
        self,
        title: str,
        content: str,
        audience_rules: Sequence[DomainAudienceRule],
        notification_repository: NotificationRepository,
        notification_type: NotificationType | None = None,
        priority: NotificationPriority = NotificationPriority.MEDIUM,
        semester_id: int | None = None,
        attachments: Sequence[str] = (),
        published_at: datetime | None = None,
        expires_at: datetime | None = None,
        created_by_user_id: int | None = None,
        max_audience_rules: int = MAX_AUDIENCE_RULES,
    ) -> None:
        self.title = title
        self.content = content
        self.audience_rules = list(audience_rules)
        self.notification_repository = notification_repository
        self.notification_type = notification_type
        self.priority = priority
        self.semester_id = semester_id
        self.attachments = list(attachments)
        self.published_at = published_at
        self.expires_at = expires_at
        self.created_by_user_id = created_by_user_id
        self.max_audience_rules = max_audience_rules

    async def execute(self) -> DomainNotification:
        """Execute the notification creation process.

        Validates the header and the rule set, then stores both in one
        transaction. The notification is published immediately (status SENT).

        Returns
        -------
        DomainNotification
            Created notification entity with its rules

        Raises
        ------
        ValidationFailedError
            If the header or rule set is invalid; nothing is stored
        StorageFailureError
            If the transaction failed and was rolled back
        """
        validate_header({"title": self.title, "content": self.content})
        validate_audience_rules(self.audience_rules, self.max_audience_rules)

        created_notification = await self.notification_repository.create(
            DomainNotification(
                title=self.title.strip(),
                content=self.content.strip(),
                notification_type=self.notification_type,
                priority=self.priority,
                status=NotificationStatus.SENT,
                semester_id=self.semester_id,
                attachments=self.attachments,
                published_at=self.published_at,
                expires_at=self.expires_at,
                created_by_user_id=self.created_by_user_id,
            ),
            self.audience_rules,
        )
        logger.info(
            f"Created notification {created_notification.id} with "
            f"{len(created_notification.audience_rules)} audience rule(s)"
        )

        return created_notification


class UpdateNotificationRule:
    """Business logic for updating a notification header and its rule set.

    `audience_rules=None` keeps the stored rules; an empty list clears them,
    which leaves the notification visible to every user.
    """

    def __init__(
        self,
        notification_id: int,
        changes: Dict[str, Any],
        notification_repository: NotificationRepository,
        audience_rules: Sequence[DomainAudienceRule] | None = None,
        max_audience_rules: int = MAX_AUDIENCE_RULES,
    ) -> None:
        self.notification_id = notification_id
        self.changes = changes
        self.notification_repository = notification_repository
        self.audience_rules = audience_rules
        self.max_audience_rules = max_audience_rules

    async def execute(self) -> DomainNotification:
        validate_header(self.changes)
        if self.audience_rules is not None:
            validate_audience_rules(
                self.audience_rules, self.max_audience_rules, allow_empty=True
            )

        updated_notification = await self.notification_repository.update(
            self.notification_id,
            self.changes,
            list(self.audience_rules) if self.audience_rules is not None else None,
        )

        if self.audience_rules is not None and not self.audience_rules:
            logger.warning(
                f"Cleared all audience rules of notification {self.notification_id}; "
                "it is now visible to every user"
            )
        logger.info(
            f"Updated notification {self.notification_id} "
            f"(fields: {sorted(self.changes)}, rules replaced: {self.audience_rules is not None})"
        )

        return updated_notification


class GetNotificationRule:
    """Business logic for retrieving one notification with all its rules."""

    def __init__(
        self, notification_id: int, notification_repository: NotificationRepository
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> DomainNotification:
        return await self.notification_repository.get_by_id(self.notification_id)


class ListNotificationsRule:
    """Business logic for the administrative notification listing."""

    def __init__(
        self,
        filters: NotificationFilters,
        notification_repository: NotificationRepository,
        page: int = 1,
        limit: int = 10,
    ) -> None:
        self.filters = filters
        self.notification_repository = notification_repository
        self.page = page
        self.limit = limit

    async def execute(self) -> Tuple[List[DomainNotification], int]:
        """Execute the listing.

        Returns
        -------
        Tuple[List[DomainNotification], int]
            Page of notifications and the total matching count
        """
        return await self.notification_repository.list(
            self.filters, limit=self.limit, offset=(self.page - 1) * self.limit
        )


class DeleteNotificationRule:
    """Business logic for deleting a notification with its rules and recipient records."""

    def __init__(
        self, notification_id: int, notification_repository: NotificationRepository
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> None:
        await self.notification_repository.delete(self.notification_id)
        logger.info(f"Deleted notification {self.notification_id}")


class ListAudienceRulesRule:
    """Business logic for listing every rule of a notification, EXCLUDE rules included."""

    def __init__(
        self, notification_id: int, notification_repository: NotificationRepository
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository

    async def execute(self) -> List[DomainAudienceRule]:
        notification = await self.notification_repository.get_by_id(
            self.notification_id
        )
        return notification.audience_rules


class AddAudienceRuleRule:
    """Business logic for attaching one more rule to an existing notification."""

    def __init__(
        self,
        notification_id: int,
        audience_rule: DomainAudienceRule,
        notification_repository: NotificationRepository,
        rule_repository: AudienceRuleRepository,
        max_audience_rules: int = MAX_AUDIENCE_RULES,
    ) -> None:
        self.notification_id = notification_id
        self.audience_rule = audience_rule
        self.notification_repository = notification_repository
        self.rule_repository = rule_repository
        self.max_audience_rules = max_audience_rules

    async def execute(self) -> DomainAudienceRule:
        """Execute the rule addition.

        Raises
        ------
        NotFoundError
            If the notification does not exist
        ValidationFailedError
            If the rule is malformed or the notification already has the maximum
            number of rules
        """
        notification = await self.notification_repository.get_by_id(
            self.notification_id
        )

        validate_audience_rule(self.audience_rule)
        if len(notification.audience_rules) >= self.max_audience_rules:
            raise ValidationFailedError(
                f"At most {self.max_audience_rules} audience rules are allowed"
            )

        created_rule = await self.rule_repository.add(
            self.notification_id, self.audience_rule
        )
        if notification.status == NotificationStatus.SENT:
            logger.warning(
                f"Added audience rule {created_rule.id} to already sent "
                f"notification {self.notification_id}"
            )

        return created_rule


class UpdateAudienceRuleRule:
    """Business logic for changing one rule of a notification."""

    def __init__(
        self,
        notification_id: int,
        rule_id: int,
        changes: Dict[str, Any],
        notification_repository: NotificationRepository,
        rule_repository: AudienceRuleRepository,
    ) -> None:
        self.notification_id = notification_id
        self.rule_id = rule_id
        self.changes = changes
        self.notification_repository = notification_repository
        self.rule_repository = rule_repository

    async def execute(self) -> DomainAudienceRule:
        notification = await self.notification_repository.get_by_id(
            self.notification_id, with_rules=False
        )
        current_rule = await self.rule_repository.get(self.notification_id, self.rule_id)

        validate_audience_rule(replace(current_rule, **self.changes))

        updated_rule = await self.rule_repository.update(
            self.notification_id, self.rule_id, self.changes
        )
        if notification.status == NotificationStatus.SENT:
            logger.warning(
                f"Changed audience rule {self.rule_id} of already sent "
                f"notification {self.notification_id}"
            )

        return updated_rule


class DeleteAudienceRuleRule:
    """Business logic for removing one rule from a notification."""

    def __init__(
        self,
        notification_id: int,
        rule_id: int,
        notification_repository: NotificationRepository,
        rule_repository: AudienceRuleRepository,
    ) -> None:
        self.notification_id = notification_id
        self.rule_id = rule_id
        self.notification_repository = notification_repository
        self.rule_repository = rule_repository

    async def execute(self) -> None:
        notification = await self.notification_repository.get_by_id(
            self.notification_id, with_rules=False
        )
        await self.rule_repository.delete(self.notification_id, self.rule_id)

        if notification.status == NotificationStatus.SENT:
            logger.warning(
                f"Removed audience rule {self.rule_id} from already sent "
                f"notification {self.notification_id}"
            )


class GetUserNotificationsRule:
    """Business logic for retrieving the current user's feed."""

    def __init__(
        self,
        user: DomainUser,
        notification_repository: NotificationRepository,
        rule_repository: AudienceRuleRepository,
        recipient_repository: NotificationRecipientRepository,
        filters: NotificationFilters | None = None,
        recipient_status: RecipientStatus | None = None,
        is_pinned: bool | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> None:
        self.user = user
        self.notification_repository = notification_repository
        self.rule_repository = rule_repository
        self.recipient_repository = recipient_repository
        self.filters = filters or NotificationFilters()
        self.recipient_status = recipient_status
        self.is_pinned = is_pinned
        self.page = page
        self.limit = limit

    async def execute(self) -> Tuple[List[FeedItem], int]:
        """Execute the feed retrieval process.

        Visibility, recipient status and pin filtering run before pagination,
        so the total counts only what the user can actually page through.
        Pinned notifications come first, then the rest, each newest first.

        Returns
        -------
        Tuple[List[FeedItem], int]
            Page of feed items and the total number of matching items
        """
        notification_ids = await load_visible_notification_ids(
            self.user,
            self.filters,
            self.notification_repository,
            self.rule_repository,
        )
        recipients = await self.recipient_repository.get_many(
            notification_ids, self.user.id
        )

        def pinned(notification_id: int) -> bool:
            recipient = recipients.get(notification_id)
            return recipient is not None and recipient.is_pinned

        if self.recipient_status is not None:
            notification_ids = [
                notification_id
                for notification_id in notification_ids
                if effective_status(recipients.get(notification_id))
                == self.recipient_status
            ]
        if self.is_pinned is not None:
            notification_ids = [
                notification_id
                for notification_id in notification_ids
                if pinned(notification_id) == self.is_pinned
            ]

        # sorted() is stable, so newest-first order holds within each group
        notification_ids = sorted(notification_ids, key=lambda i: not pinned(i))

        offset = (self.page - 1) * self.limit
        page_ids = notification_ids[offset : offset + self.limit]
        notifications = await self.notification_repository.get_many(page_ids)

        items = [
            FeedItem.from_notification(
                notifications[notification_id], recipients.get(notification_id)
            )
            for notification_id in page_ids
            if notification_id in notifications
        ]
        return items, len(notification_ids)


class GetUserNotificationRule:
    """Business logic for one notification as seen by the current user."""

    def __init__(
        self,
        notification_id: int,
        user: DomainUser,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.notification_id = notification_id
        self.user = user
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> FeedItem:
        notification = await get_visible_notification(
            self.notification_id, self.user, self.notification_repository
        )
        recipient = await self.recipient_repository.get(notification.id, self.user.id)
        return FeedItem.from_notification(notification, recipient)


class GetUnreadCountRule:
    """Business logic for counting visible SENT notifications the user has not read."""

    def __init__(
        self,
        user: DomainUser,
        notification_repository: NotificationRepository,
        rule_repository: AudienceRuleRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.user = user
        self.notification_repository = notification_repository
        self.rule_repository = rule_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> int:
        notification_ids = await load_visible_notification_ids(
            self.user,
            NotificationFilters(),
            self.notification_repository,
            self.rule_repository,
        )
        recipients = await self.recipient_repository.get_many(
            notification_ids, self.user.id
        )

        return sum(
            1
            for notification_id in notification_ids
            if effective_status(recipients.get(notification_id))
            == RecipientStatus.UNREAD
        )


class MarkNotificationReadRule:
    """Business logic for marking a notification as read."""

    def __init__(
        self,
        notification_id: int,
        user: DomainUser,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.notification_id = notification_id
        self.user = user
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> DomainRecipient:
        """Execute the mark as read process.

        Idempotent: a second call returns the record from the first.

        Returns
        -------
        DomainRecipient
            The user's recipient record

        Raises
        ------
        NotFoundError
            If the notification does not exist or is not visible to the user
        """
        notification = await get_visible_notification(
            self.notification_id, self.user, self.notification_repository
        )
        return await self.recipient_repository.mark_read(notification, self.user.id)


class DismissNotificationRule:
    """Business logic for dismissing a notification."""

    def __init__(
        self,
        notification_id: int,
        user: DomainUser,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.notification_id = notification_id
        self.user = user
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> DomainRecipient:
        notification = await get_visible_notification(
            self.notification_id, self.user, self.notification_repository
        )
        return await self.recipient_repository.set_status(
            notification, self.user.id, RecipientStatus.DISMISSED
        )


class ArchiveNotificationRule:
    """Business logic for archiving a notification on the user's side."""

    def __init__(
        self,
        notification_id: int,
        user: DomainUser,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.notification_id = notification_id
        self.user = user
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> DomainRecipient:
        notification = await get_visible_notification(
            self.notification_id, self.user, self.notification_repository
        )
        return await self.recipient_repository.set_status(
            notification, self.user.id, RecipientStatus.ARCHIVED_BY_USER
        )


class PinNotificationRule:
    """Business logic for pinning or unpinning a notification."""

    def __init__(
        self,
        notification_id: int,
        user: DomainUser,
        is_pinned: bool,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
    ) -> None:
        self.notification_id = notification_id
        self.user = user
        self.is_pinned = is_pinned
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository

    async def execute(self) -> DomainRecipient:
        notification = await get_visible_notification(
            self.notification_id, self.user, self.notification_repository
        )
        return await self.recipient_repository.set_pinned(
            notification, self.user.id, self.is_pinned
        )


class ListNotificationRecipientsRule:
    """Business logic for listing the recipient records of a notification."""

    def __init__(
        self,
        notification_id: int,
        notification_repository: NotificationRepository,
        recipient_repository: NotificationRecipientRepository,
        page: int = 1,
        limit: int = 10,
    ) -> None:
        self.notification_id = notification_id
        self.notification_repository = notification_repository
        self.recipient_repository = recipient_repository
        self.page = page
        self.limit = limit

    async def execute(self) -> Tuple[List[DomainRecipient], int]:
        await self.notification_repository.get_by_id(
            self.notification_id, with_rules=False
        )
        return await self.recipient_repository.list_for_notification(
            self.notification_id,
            limit=self.limit,
            offset=(self.page - 1) * self.limit,
        )
