from datetime import datetime
from typing import List

from pydantic import BaseModel, Field

from ..domain.entities import AudienceRule as DomainAudienceRule
from ..domain.entities import FeedItem
from ..domain.entities import Notification as DomainNotification
from ..domain.entities import Recipient as DomainRecipient


class AudienceRuleResponse(BaseModel):
    """Response model for an audience rule.

    Attributes
    ----------
    id : int
        Unique identifier of the rule
    notification_id : int
        Owning notification
    audience_type : str
        Facet the rule targets
    audience_value : str | None
        Facet value
    condition_logic : str
        INCLUDE or EXCLUDE
    """

    id: int
    notification_id: int
    audience_type: str
    audience_value: str | None = None
    condition_logic: str

    @classmethod
    def from_domain(cls, rule: DomainAudienceRule) -> "AudienceRuleResponse":
        return cls(
            id=rule.id,
            notification_id=rule.notification_id,
            audience_type=str(rule.audience_type),
            audience_value=rule.audience_value,
            condition_logic=str(rule.condition_logic),
        )


class NotificationResponse(BaseModel):
    """Response model for a notification as seen by administrators.

    Attributes
    ----------
    id : int
        Unique identifier of the notification
    title : str
        Brief title of the notification
    content : str
        Body of the notification
    notification_type : str | None
        Category of the notification
    priority : str
        Urgency level of the notification
    status : str
        Publication status
    semester_id : int | None
        Related semester
    attachments : List[str]
        Attachment URLs
    created_by_user_id : int | None
        Author of the notification
    published_at : datetime | None
        Stored publication timestamp
    expires_at : datetime | None
        Stored expiry timestamp
    created_at : datetime
        Timestamp of notification creation
    updated_at : datetime | None
        Timestamp of the last header update
    audience_rules : List[AudienceRuleResponse]
        Every rule of the notification
    """

    id: int
    title: str
    content: str
    notification_type: str | None = None
    priority: str
    status: str
    semester_id: int | None = None
    attachments: List[str] = Field(default_factory=list)
    created_by_user_id: int | None = None
    published_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime | None = None
    audience_rules: List[AudienceRuleResponse] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, notification: DomainNotification) -> "NotificationResponse":
        return cls(
            id=notification.id,
            title=notification.title,
            content=notification.content,
            notification_type=(
                str(notification.notification_type)
                if notification.notification_type
                else None
            ),
            priority=str(notification.priority),
            status=str(notification.status),
            semester_id=notification.semester_id,
            attachments=notification.attachments,
            created_by_user_id=notification.created_by_user_id,
            published_at=notification.published_at,
            expires_at=notification.expires_at,
            created_at=notification.created_at,
            updated_at=notification.updated_at,
            audience_rules=[
                AudienceRuleResponse.from_domain(rule)
                for rule in notification.audience_rules
            ],
        )


class FeedItemResponse(BaseModel):
    """Response model for a notification in the current user's feed.

    Attributes
    ----------
    id : int
        Unique identifier of the notification
    title : str
        Brief title of the notification
    content : str
        Body of the notification
    notification_type : str | None
        Category of the notification
    priority : str
        Urgency level of the notification
    semester_id : int | None
        Related semester
    attachments : List[str]
        Attachment URLs
    created_at : datetime
        Timestamp of notification creation
    recipient_status : str
        The user's delivery state, UNREAD until the user acts on it
    read_at : datetime | None
        When the user first read it
    dismissed_at : datetime | None
        When the user dismissed it
    is_pinned : bool
        Whether the user pinned it
    """

    id: int
    title: str
    content: str
    notification_type: str | None = None
    priority: str
    semester_id: int | None = None
    attachments: List[str] = Field(default_factory=list)
    published_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime
    recipient_status: str
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    is_pinned: bool = False

    @classmethod
    def from_domain(cls, item: FeedItem) -> "FeedItemResponse":
        notification = item.notification
        return cls(
            id=notification.id,
            title=notification.title,
            content=notification.content,
            notification_type=(
                str(notification.notification_type)
                if notification.notification_type
                else None
            ),
            priority=str(notification.priority),
            semester_id=notification.semester_id,
            attachments=notification.attachments,
            published_at=notification.published_at,
            expires_at=notification.expires_at,
            created_at=notification.created_at,
            recipient_status=str(item.recipient_status),
            read_at=item.read_at,
            dismissed_at=item.dismissed_at,
            is_pinned=item.is_pinned,
        )


class RecipientResponse(BaseModel):
    """Response model for a recipient record.

    `id` is None when the action left the user in the implicit UNREAD state
    and no record was stored.
    """

    id: int | None = None
    notification_id: int
    recipient_user_id: int
    status: str
    received_at: datetime | None = None
    read_at: datetime | None = None
    dismissed_at: datetime | None = None
    is_pinned: bool = False

    @classmethod
    def from_domain(cls, recipient: DomainRecipient) -> "RecipientResponse":
        return cls(
            id=recipient.id,
            notification_id=recipient.notification_id,
            recipient_user_id=recipient.recipient_user_id,
            status=str(recipient.status),
            received_at=recipient.received_at,
            read_at=recipient.read_at,
            dismissed_at=recipient.dismissed_at,
            is_pinned=recipient.is_pinned,
        )


class UnreadCountResponse(BaseModel):
    """Response model for the unread notification counter."""

    unread_count: int
