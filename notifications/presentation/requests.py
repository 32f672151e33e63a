from datetime import datetime
from typing import Any, Dict, List

from pydantic import BaseModel, Field, model_validator

from ..domain.entities import AudienceRule as DomainAudienceRule
from ..domain.entities import (
    AudienceType,
    ConditionLogic,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)

NON_NULLABLE_FIELDS = {"title", "content", "priority", "status"}


class AudienceRuleRequest(BaseModel):
    """Request model for one audience rule.

    Attributes
    ----------
    audience_type : AudienceType
        Facet the rule targets
    audience_value : str | None
        Role name, major id, department id or comma-separated user ids;
        omitted for ALL_USERS
    condition_logic : ConditionLogic
        INCLUDE (default) or EXCLUDE
    """

    audience_type: AudienceType
    audience_value: str | None = Field(default=None, max_length=500)
    condition_logic: ConditionLogic = ConditionLogic.INCLUDE

    @model_validator(mode="after")
    def require_value(self) -> "AudienceRuleRequest":
        if self.audience_type != AudienceType.ALL_USERS and not (
            self.audience_value or ""
        ).strip():
            raise ValueError(
                f"audience_value is required for audience type {self.audience_type}"
            )
        return self

    def to_domain(self) -> DomainAudienceRule:
        return DomainAudienceRule(
            audience_type=self.audience_type,
            audience_value=(
                self.audience_value.strip() if self.audience_value else None
            ),
            condition_logic=self.condition_logic,
        )


class CreateNotificationRequest(BaseModel):
    """Request model for creating a new notification.

    Rule count limits are enforced by the create rule, so an empty
    `audience_rules` list is reported as a validation failure rather than a
    schema error.

    Attributes
    ----------
    title : str
        Brief title of the notification
    content : str
        Body of the notification
    notification_type : NotificationType | None
        Category of the notification
    priority : NotificationPriority
        Urgency level of the notification
    semester_id : int | None
        Related semester
    attachments : List[str]
        Attachment URLs
    published_at : datetime | None
        Publication timestamp to store
    expires_at : datetime | None
        Expiry timestamp to store
    audience_rules : List[AudienceRuleRequest]
        Audience of the notification
    """

    title: str = Field(max_length=255)
    content: str
    notification_type: NotificationType | None = None
    priority: NotificationPriority = NotificationPriority.MEDIUM
    semester_id: int | None = None
    attachments: List[str] = Field(default_factory=list)
    published_at: datetime | None = None
    expires_at: datetime | None = None
    audience_rules: List[AudienceRuleRequest] = Field(default_factory=list)


class UpdateNotificationRequest(BaseModel):
    """Request model for a partial notification update.

    Only fields present in the payload are applied. `audience_rules` is
    tri-state: omitted or null keeps the stored rules, `[]` clears them and a
    non-empty list replaces them.
    """

    title: str | None = Field(default=None, max_length=255)
    content: str | None = None
    notification_type: NotificationType | None = None
    priority: NotificationPriority | None = None
    status: NotificationStatus | None = None
    semester_id: int | None = None
    attachments: List[str] | None = None
    published_at: datetime | None = None
    expires_at: datetime | None = None
    audience_rules: List[AudienceRuleRequest] | None = None

    def header_changes(self) -> Dict[str, Any]:
        """Return the header fields present in the payload.

        An explicit null clears a nullable field and is ignored for the others.
        """
        changes = self.model_dump(exclude_unset=True, exclude={"audience_rules"})
        if changes.get("attachments", []) is None:
            changes["attachments"] = []
        return {
            field: value
            for field, value in changes.items()
            if value is not None or field not in NON_NULLABLE_FIELDS
        }

    def domain_rules(self) -> List[DomainAudienceRule] | None:
        if self.audience_rules is None:
            return None
        return [rule.to_domain() for rule in self.audience_rules]


class UpdateAudienceRuleRequest(BaseModel):
    """Request model for changing one audience rule; absent fields are kept."""

    audience_type: AudienceType | None = None
    audience_value: str | None = Field(default=None, max_length=500)
    condition_logic: ConditionLogic | None = None

    def changes(self) -> Dict[str, Any]:
        changes = self.model_dump(exclude_unset=True)
        return {
            field: value
            for field, value in changes.items()
            if value is not None or field == "audience_value"
        }


class PinNotificationRequest(BaseModel):
    """Request model for pinning or unpinning a notification."""

    is_pinned: bool = True
