from fastapi import APIRouter, Depends, Query, status

from authentication.infrastructure.factory import (
    get_administrator,
    get_notification_manager,
)
from config.base import Settings, get_settings
from core.presentation.responses import (
    CreatedResponse,
    DeletedResponse,
    PaginatedResponse,
    PaginationMeta,
    SuccessResponse,
    UpdatedResponse,
)
from users.domain.entities import User as DomainUser

from ..application.rules import (
    AddAudienceRuleRule,
    CreateNotificationRule,
    DeleteAudienceRuleRule,
    DeleteNotificationRule,
    GetNotificationRule,
    ListAudienceRulesRule,
    ListNotificationRecipientsRule,
    ListNotificationsRule,
    UpdateAudienceRuleRule,
    UpdateNotificationRule,
)
from ..domain.entities import (
    NotificationFilters,
    NotificationPriority,
    NotificationStatus,
    NotificationType,
)
from ..infrastructure.factory import (
    get_audience_rule_repository,
    get_notification_recipient_repository,
    get_notification_repository,
)
from .requests import (
    AudienceRuleRequest,
    CreateNotificationRequest,
    UpdateAudienceRuleRequest,
    UpdateNotificationRequest,
)
from .responses import AudienceRuleResponse, NotificationResponse, RecipientResponse

router = APIRouter(prefix="/notifications")


@router.post("/", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_notification(
    request: CreateNotificationRequest,
    notification_repository=Depends(get_notification_repository),
    settings: Settings = Depends(get_settings),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Create a new notification with its audience rules.

    The notification and its rules are stored in one transaction and the
    notification is published immediately.

    Parameters
    ----------
    request : CreateNotificationRequest
        Notification creation request data
    notification_repository
        Dependency-injected notification repository
    settings : Settings
        Application settings, for the audience rule limit
    current_user : DomainUser
        Current authenticated administrator or academic manager

    Returns
    -------
    CreatedResponse
        Response containing the created notification
    """
    create_notification_rule = CreateNotificationRule(
        title=request.title,
        content=request.content,
        audience_rules=[rule.to_domain() for rule in request.audience_rules],
        notification_repository=notification_repository,
        notification_type=request.notification_type,
        priority=request.priority,
        semester_id=request.semester_id,
        attachments=request.attachments,
        published_at=request.published_at,
        expires_at=request.expires_at,
        created_by_user_id=current_user.id,
        max_audience_rules=settings.notification_max_audience_rules,
    )

    created_notification = await create_notification_rule.execute()

    return CreatedResponse(
        data=NotificationResponse.from_domain(created_notification),
        message="Notification created successfully",
    )


@router.get("/admin", response_model=PaginatedResponse, status_code=status.HTTP_200_OK)
async def list_notifications(
    search: str | None = None,
    notification_type: NotificationType | None = None,
    priority: NotificationPriority | None = None,
    notification_status: NotificationStatus | None = Query(None, alias="status"),
    semester_id: int | None = None,
    created_by_user_id: int | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    notification_repository=Depends(get_notification_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """List every notification regardless of audience, newest first."""
    notifications, total = await ListNotificationsRule(
        filters=NotificationFilters(
            search=search,
            notification_type=notification_type,
            priority=priority,
            status=notification_status,
            semester_id=semester_id,
            created_by_user_id=created_by_user_id,
        ),
        notification_repository=notification_repository,
        page=page,
        limit=limit,
    ).execute()

    return PaginatedResponse(
        data=[NotificationResponse.from_domain(n) for n in notifications],
        metadata=PaginationMeta.build(total, page, limit),
        message="Notifications retrieved successfully",
    )


@router.get(
    "/admin/{notification_id}",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
)
async def get_notification(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Get one notification with all of its audience rules."""
    notification = await GetNotificationRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    ).execute()

    return SuccessResponse(
        data=NotificationResponse.from_domain(notification),
        message="Notification retrieved successfully",
    )


@router.patch(
    "/admin/{notification_id}",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def update_notification(
    notification_id: int,
    request: UpdateNotificationRequest,
    notification_repository=Depends(get_notification_repository),
    settings: Settings = Depends(get_settings),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Update a notification.

    `audience_rules` omitted or null keeps the stored rules, `[]` clears them
    and a non-empty list replaces them, together with the header changes.

    Parameters
    ----------
    notification_id : int
        ID of the notification to update
    request : UpdateNotificationRequest
        Fields to change
    notification_repository
        Dependency-injected notification repository
    settings : Settings
        Application settings, for the audience rule limit
    current_user : DomainUser
        Current authenticated administrator or academic manager

    Returns
    -------
    UpdatedResponse
        Response containing the updated notification
    """
    updated_notification = await UpdateNotificationRule(
        notification_id=notification_id,
        changes=request.header_changes(),
        audience_rules=request.domain_rules(),
        notification_repository=notification_repository,
        max_audience_rules=settings.notification_max_audience_rules,
    ).execute()

    return UpdatedResponse(
        data=NotificationResponse.from_domain(updated_notification),
        message="Notification updated successfully",
    )


@router.delete(
    "/admin/{notification_id}",
    response_model=DeletedResponse,
    status_code=status.HTTP_200_OK,
)
async def delete_notification(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    current_user: DomainUser = Depends(get_administrator),
):
    """Delete a notification together with its rules and recipient records."""
    await DeleteNotificationRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    ).execute()

    return DeletedResponse(message="Notification deleted successfully")


@router.get(
    "/admin/{notification_id}/recipients",
    response_model=PaginatedResponse,
    status_code=status.HTTP_200_OK,
)
async def list_notification_recipients(
    notification_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """List the stored recipient records of a notification, newest first.

    Users who never acted on the notification have no record and are not listed.
    """
    recipients, total = await ListNotificationRecipientsRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
        page=page,
        limit=limit,
    ).execute()

    return PaginatedResponse(
        data=[RecipientResponse.from_domain(r) for r in recipients],
        metadata=PaginationMeta.build(total, page, limit),
        message="Recipients retrieved successfully",
    )


@router.get(
    "/admin/{notification_id}/rules",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
)
async def list_audience_rules(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """List every audience rule of a notification, EXCLUDE rules included."""
    rules = await ListAudienceRulesRule(
        notification_id=notification_id,
        notification_repository=notification_repository,
    ).execute()

    return SuccessResponse(
        data=[AudienceRuleResponse.from_domain(rule) for rule in rules],
        message="Audience rules retrieved successfully",
    )


@router.post(
    "/admin/{notification_id}/rules",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_audience_rule(
    notification_id: int,
    request: AudienceRuleRequest,
    notification_repository=Depends(get_notification_repository),
    rule_repository=Depends(get_audience_rule_repository),
    settings: Settings = Depends(get_settings),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Attach one audience rule to an existing notification."""
    rule = await AddAudienceRuleRule(
        notification_id=notification_id,
        audience_rule=request.to_domain(),
        notification_repository=notification_repository,
        rule_repository=rule_repository,
        max_audience_rules=settings.notification_max_audience_rules,
    ).execute()

    return CreatedResponse(
        data=AudienceRuleResponse.from_domain(rule),
        message="Audience rule created successfully",
    )


@router.get(
    "/admin/{notification_id}/rules/{rule_id}",
    response_model=SuccessResponse,
    status_code=status.HTTP_200_OK,
)
async def get_audience_rule(
    notification_id: int,
    rule_id: int,
    rule_repository=Depends(get_audience_rule_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Get one audience rule of a notification."""
    rule = await rule_repository.get(notification_id, rule_id)

    return SuccessResponse(
        data=AudienceRuleResponse.from_domain(rule),
        message="Audience rule retrieved successfully",
    )


@router.patch(
    "/admin/{notification_id}/rules/{rule_id}",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def update_audience_rule(
    notification_id: int,
    rule_id: int,
    request: UpdateAudienceRuleRequest,
    notification_repository=Depends(get_notification_repository),
    rule_repository=Depends(get_audience_rule_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Change one audience rule of a notification."""
    rule = await UpdateAudienceRuleRule(
        notification_id=notification_id,
        rule_id=rule_id,
        changes=request.changes(),
        notification_repository=notification_repository,
        rule_repository=rule_repository,
    ).execute()

    return UpdatedResponse(
        data=AudienceRuleResponse.from_domain(rule),
        message="Audience rule updated successfully",
    )


@router.delete(
    "/admin/{notification_id}/rules/{rule_id}",
    response_model=DeletedResponse,
    status_code=status.HTTP_200_OK,
)
async def delete_audience_rule(
    notification_id: int,
    rule_id: int,
    notification_repository=Depends(get_notification_repository),
    rule_repository=Depends(get_audience_rule_repository),
    current_user: DomainUser = Depends(get_notification_manager),
):
    """Remove one audience rule from a notification."""
    await DeleteAudienceRuleRule(
        notification_id=notification_id,
        rule_id=rule_id,
        notification_repository=notification_repository,
        rule_repository=rule_repository,
    ).execute()

    return DeletedResponse(message="Audience rule deleted successfully")
