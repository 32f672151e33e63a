from datetime import UTC, datetime
from typing import List

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from ..domain.entities import (
    ConditionLogic,
    NotificationPriority,
    NotificationStatus,
    RecipientStatus,
)


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class Notification(SQLModel, table=True):
    """SQLModel table representation for the Notification entity.

    Attributes
    ----------
    id : int | None
        Primary key, auto-incrementing integer
    title : str
        Brief title of the notification
    content : str
        Body of the notification
    notification_type : str | None
        Category of the notification (stored as string)
    priority : str
        Urgency level of the notification (stored as string)
    status : str
        Publication status (stored as string)
    semester_id : int | None
        Related semester
    attachments : List[str]
        Attachment URLs, stored as JSON
    created_by_user_id : int | None
        Author, set to NULL when the author is deleted
    published_at : datetime | None
        Publication timestamp supplied by the author
    expires_at : datetime | None
        Expiry timestamp supplied by the author
    created_at : datetime
        Timestamp of notification creation
    updated_at : datetime
        Timestamp of the last header update
    """

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(nullable=False, max_length=255)
    content: str = Field(nullable=False)
    notification_type: str | None = Field(default=None, max_length=50, index=True)
    priority: str = Field(
        default=NotificationPriority.MEDIUM.value, max_length=50, index=True
    )
    status: str = Field(
        default=NotificationStatus.DRAFT.value, max_length=50, index=True
    )
    semester_id: int | None = Field(default=None, nullable=True, index=True)
    attachments: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_by_user_id: int | None = Field(
        default=None,
        sa_column=Column(
            Integer, ForeignKey("user.id", ondelete="SET NULL"), nullable=True
        ),
    )
    published_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    expires_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, onupdate=utc_now),
    )

    audience_rules: List["NotificationAudienceRule"] = Relationship(
        back_populates="notification",
        sa_relationship_kwargs={
            "cascade": "all, delete-orphan",
            "passive_deletes": True,
            "order_by": "NotificationAudienceRule.id",
        },
    )
    recipients: List["NotificationRecipient"] = Relationship(
        back_populates="notification",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "passive_deletes": True},
    )


class NotificationAudienceRule(SQLModel, table=True):
    """SQLModel table representation for an audience rule.

    Attributes
    ----------
    id : int | None
        Primary key
    notification_id : int
        Owning notification, deleted with it
    audience_type : str
        Audience facet (stored as string)
    audience_value : str | None
        Facet value, at most 500 characters
    condition_logic : str
        INCLUDE or EXCLUDE
    """

    __tablename__ = "notification_audience_rule"
    __table_args__ = (
        Index("ix_audience_rule_notification_type", "notification_id", "audience_type"),
    )

    id: int | None = Field(default=None, primary_key=True)
    notification_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("notification.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    audience_type: str = Field(nullable=False, max_length=100)
    audience_value: str | None = Field(default=None, max_length=500, nullable=True)
    condition_logic: str = Field(
        default=ConditionLogic.INCLUDE.value, max_length=50, nullable=False
    )

    notification: Notification | None = Relationship(back_populates="audience_rules")


class NotificationRecipient(SQLModel, table=True):
    """SQLModel table representation for a per-user delivery record.

    Attributes
    ----------
    id : int | None
        Primary key
    notification_id : int
        Notification, deleted with it
    recipient_user_id : int
        User the record belongs to
    received_at : datetime
        When the notification reached the user
    status : str
        Delivery state (stored as string)
    read_at : datetime | None
        First read timestamp
    dismissed_at : datetime | None
        Dismissal timestamp
    is_pinned : bool
        Pinned by the user
    """

    __tablename__ = "notification_recipient"
    __table_args__ = (
        UniqueConstraint(
            "notification_id",
            "recipient_user_id",
            name="uq_notification_recipient_notification_user",
        ),
        Index("ix_notification_recipient_user_status", "recipient_user_id", "status"),
    )

    id: int | None = Field(default=None, primary_key=True)
    notification_id: int = Field(
        sa_column=Column(
            Integer,
            ForeignKey("notification.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )
    )
    recipient_user_id: int = Field(
        sa_column=Column(
            Integer, ForeignKey("user.id", ondelete="CASCADE"), nullable=False
        )
    )
    received_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    status: str = Field(default=RecipientStatus.UNREAD.value, max_length=50)
    read_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    dismissed_at: datetime | None = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    is_pinned: bool = Field(default=False)

    notification: Notification | None = Relationship(back_populates="recipients")
