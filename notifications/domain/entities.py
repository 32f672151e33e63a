from datetime import datetime
from enum import StrEnum
from typing import List

from pydantic import Field, dataclasses


class NotificationType(StrEnum):
    """Notification categories used for filtering."""

    ACADEMIC = "ACADEMIC"
    EVENT = "EVENT"
    SURVEY = "SURVEY"
    SYSTEM = "SYSTEM"
    FEE = "FEE"
    EXAM = "EXAM"
    GENERAL = "GENERAL"


class NotificationPriority(StrEnum):
    """Priority levels for notifications categorization and filtering."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class NotificationStatus(StrEnum):
    """Publication status of a notification. Only SENT reaches user feeds."""

    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    ARCHIVED_BY_ADMIN = "ARCHIVED_BY_ADMIN"


class AudienceType(StrEnum):
    """Facet an audience rule targets."""

    ALL_USERS = "ALL_USERS"
    ROLE = "ROLE"
    MAJOR = "MAJOR"
    DEPARTMENT = "DEPARTMENT"
    USER_LIST = "USER_LIST"


class ConditionLogic(StrEnum):
    """Inclusion mode of an audience rule. EXCLUDE is stored but not evaluated."""

    INCLUDE = "INCLUDE"
    EXCLUDE = "EXCLUDE"


class RecipientStatus(StrEnum):
    """Per-user delivery state. A missing recipient record means UNREAD."""

    UNREAD = "UNREAD"
    READ = "READ"
    DISMISSED = "DISMISSED"
    ARCHIVED_BY_USER = "ARCHIVED_BY_USER"


@dataclasses.dataclass
class AudienceRule:
    """Stored predicate deciding who may see a notification.

    `audience_type` is kept as a plain string so rows written with a type
    this version does not know about can still be loaded; such rules never
    match.

    Attributes
    ----------
    audience_type : str
        One of `AudienceType`, or an unknown legacy value.
    audience_value : str | None
        Role name, major id, department id, or comma-joined user ids,
        depending on `audience_type`. Unused for ALL_USERS.
    condition_logic : ConditionLogic
        INCLUDE or EXCLUDE.
    notification_id : int | None
        Owning notification.
    id : int | None
        Unique identifier of the rule.
    """

    audience_type: str
    audience_value: str | None = None
    condition_logic: ConditionLogic = ConditionLogic.INCLUDE
    notification_id: int | None = None
    id: int | None = None

    @property
    def is_include(self) -> bool:
        return self.condition_logic == ConditionLogic.INCLUDE


@dataclasses.dataclass
class Notification:
    """Core domain entity representing a notification header.

    Attributes
    ----------
    title : str
        Brief title of the notification.
    content : str
        Body of the notification.
    notification_type : NotificationType | None
        Category of the notification.
    priority : NotificationPriority
        Urgency level of the notification.
    status : NotificationStatus
        Publication status.
    semester_id : int | None
        Semester the notification relates to.
    attachments : List[str]
        Attachment URLs.
    created_by_user_id : int | None
        Author; None once the author account is deleted.
    published_at : datetime | None
        Optional publication timestamp supplied by the author.
    expires_at : datetime | None
        Optional expiry timestamp supplied by the author.
    audience_rules : List[AudienceRule]
        Rules attached to the notification, when loaded.
    created_at : datetime | None
        Datetime when notification was created.
    updated_at : datetime | None
        Datetime of the last header update.
    id : int | None
        Unique identifier of the notification.
    """

    title: str
    content: str
    notification_type: NotificationType | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    status: NotificationStatus = NotificationStatus.DRAFT
    semester_id: int | None = None
    attachments: List[str] = Field(default_factory=list)
    created_by_user_id: int | None = None
    published_at: datetime | None = None
    expires_at: datetime | None = None
    audience_rules: List[AudienceRule] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None


@dataclasses.dataclass
class Recipient:
    """Sparse per-(notification, user) delivery record.

    Attributes
    ----------
    notification_id : int
        Notification the record belongs to.
    recipient_user_id : int
        User the record belongs to.
    status : RecipientStatus
        Delivery state.
    received_at : datetime | None
        When the notification reached the user.
    read_at : datetime | None
        First time the user read it.
    dismissed_at : datetime | None
        When the user dismissed it.
    is_pinned : bool
        Whether the user pinned it.
    id : int | None
        Unique identifier of the record.
    """

    notification_id: int
    recipient_user_id: int
    status: RecipientStatus = RecipientStatus.UNREAD
    received_at: datetime | None = None
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    is_pinned: bool = False
    id: int | None = None


def effective_status(recipient: Recipient | None) -> RecipientStatus:
    """Delivery state of a user's record; UNREAD when the user never acted."""
    if recipient is None:
        return RecipientStatus.UNREAD
    return recipient.status


@dataclasses.dataclass
class FeedItem:
    """A notification as seen by one user, decorated with their delivery state.

    Attributes
    ----------
    notification : Notification
        Notification header.
    recipient_status : RecipientStatus
        Derived status; UNREAD when the user has no recipient record.
    read_at : datetime | None
        From the recipient record, if any.
    dismissed_at : datetime | None
        From the recipient record, if any.
    is_pinned : bool
        From the recipient record; False when absent.
    """

    notification: Notification
    recipient_status: RecipientStatus = RecipientStatus.UNREAD
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    is_pinned: bool = False

    @classmethod
    def from_notification(
        cls, notification: Notification, recipient: Recipient | None
    ) -> "FeedItem":
        """Merge a notification with the user's record, applying the UNREAD default."""
        if recipient is None:
            return cls(notification=notification)

        return cls(
            notification=notification,
            recipient_status=recipient.status,
            read_at=recipient.read_at,
            dismissed_at=recipient.dismissed_at,
            is_pinned=recipient.is_pinned,
        )


@dataclasses.dataclass
class NotificationFilters:
    """Header filters shared by admin listings and user feeds.

    Attributes
    ----------
    search : str | None
        Case-insensitive substring matched against title or content.
    notification_type : NotificationType | None
        Exact type filter.
    priority : NotificationPriority | None
        Exact priority filter.
    status : NotificationStatus | None
        Exact status filter (admin listing only).
    semester_id : int | None
        Exact semester filter (admin listing only).
    created_by_user_id : int | None
        Exact author filter (admin listing only).
    """

    search: str | None = None
    notification_type: NotificationType | None = None
    priority: NotificationPriority | None = None
    status: NotificationStatus | None = None
    semester_id: int | None = None
    created_by_user_id: int | None = None
