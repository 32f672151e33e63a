from fastapi import APIRouter, Depends, Query, status

from authentication.infrastructure.factory import get_current_user
from core.presentation.responses import (
    PaginatedResponse,
    PaginationMeta,
    SuccessResponse,
    UpdatedResponse,
)
from users.domain.entities import User as DomainUser

from ..application.rules import (
    ArchiveNotificationRule,
    DismissNotificationRule,
    GetUnreadCountRule,
    GetUserNotificationRule,
    GetUserNotificationsRule,
    MarkNotificationReadRule,
    PinNotificationRule,
)
from ..domain.entities import (
    NotificationFilters,
    NotificationPriority,
    NotificationType,
    RecipientStatus,
)
from ..infrastructure.factory import (
    get_audience_rule_repository,
    get_notification_recipient_repository,
    get_notification_repository,
)
from .requests import PinNotificationRequest
from .responses import FeedItemResponse, RecipientResponse, UnreadCountResponse

router = APIRouter(prefix="/notifications")


@router.get("/", response_model=PaginatedResponse, status_code=status.HTTP_200_OK)
async def get_notifications(
    search: str | None = None,
    notification_type: NotificationType | None = None,
    priority: NotificationPriority | None = None,
    recipient_status: RecipientStatus | None = None,
    is_pinned: bool | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    notification_repository=Depends(get_notification_repository),
    rule_repository=Depends(get_audience_rule_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Get the notifications visible to the current user.

    Only SENT notifications whose INCLUDE rules all match the user are
    returned, each decorated with the user's delivery state. Pinned
    notifications are listed first.

    Parameters
    ----------
    search : str | None
        Case-insensitive text matched against title and content
    notification_type : NotificationType | None
        Filter by notification type
    priority : NotificationPriority | None
        Filter by priority
    recipient_status : RecipientStatus | None
        Filter by the user's delivery state; UNREAD includes notifications
        the user never acted on
    is_pinned : bool | None
        Keep only pinned (true) or unpinned (false) notifications
    page : int
        1-based page number
    limit : int
        Page size (1-100)
    current_user : DomainUser
        Current authenticated user

    Returns
    -------
    PaginatedResponse
        Response containing the feed page and pagination metadata
    """
    get_notifications_rule = GetUserNotificationsRule(
        user=current_user,
        notification_repository=notification_repository,
        rule_repository=rule_repository,
        recipient_repository=recipient_repository,
        filters=NotificationFilters(
            search=search, notification_type=notification_type, priority=priority
        ),
        recipient_status=recipient_status,
        is_pinned=is_pinned,
        page=page,
        limit=limit,
    )

    items, total = await get_notifications_rule.execute()

    return PaginatedResponse(
        data=[FeedItemResponse.from_domain(item) for item in items],
        metadata=PaginationMeta.build(total, page, limit),
        message="Notifications retrieved successfully",
    )


@router.get(
    "/unread-count", response_model=SuccessResponse, status_code=status.HTTP_200_OK
)
async def get_unread_count(
    notification_repository=Depends(get_notification_repository),
    rule_repository=Depends(get_audience_rule_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Count visible notifications the current user has not read yet."""
    unread_count = await GetUnreadCountRule(
        user=current_user,
        notification_repository=notification_repository,
        rule_repository=rule_repository,
        recipient_repository=recipient_repository,
    ).execute()

    return SuccessResponse(
        data=UnreadCountResponse(unread_count=unread_count),
        message="Unread count retrieved successfully",
    )


@router.get(
    "/{notification_id}", response_model=SuccessResponse, status_code=status.HTTP_200_OK
)
async def get_notification(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Get one notification with the current user's delivery state.

    Notifications the user may not see are reported as not found.
    """
    item = await GetUserNotificationRule(
        notification_id=notification_id,
        user=current_user,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
    ).execute()

    return SuccessResponse(
        data=FeedItemResponse.from_domain(item),
        message="Notification retrieved successfully",
    )


@router.patch(
    "/{notification_id}/read",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def mark_notification_read(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Mark a specific notification as read.

    Repeated calls succeed and keep the time of the first read.

    Parameters
    ----------
    notification_id : int
        ID of the notification to mark as read
    current_user : DomainUser
        Current authenticated user

    Returns
    -------
    UpdatedResponse
        Response containing the user's recipient record
    """
    mark_notification_rule = MarkNotificationReadRule(
        notification_id=notification_id,
        user=current_user,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
    )

    recipient = await mark_notification_rule.execute()

    return UpdatedResponse(
        data=RecipientResponse.from_domain(recipient),
        message="Notification marked as read",
    )


@router.patch(
    "/{notification_id}/dismiss",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def dismiss_notification(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Dismiss a notification for the current user."""
    recipient = await DismissNotificationRule(
        notification_id=notification_id,
        user=current_user,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
    ).execute()

    return UpdatedResponse(
        data=RecipientResponse.from_domain(recipient),
        message="Notification dismissed",
    )


@router.patch(
    "/{notification_id}/archive",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def archive_notification(
    notification_id: int,
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Archive a notification for the current user."""
    recipient = await ArchiveNotificationRule(
        notification_id=notification_id,
        user=current_user,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
    ).execute()

    return UpdatedResponse(
        data=RecipientResponse.from_domain(recipient),
        message="Notification archived",
    )


@router.patch(
    "/{notification_id}/pin",
    response_model=UpdatedResponse,
    status_code=status.HTTP_200_OK,
)
async def pin_notification(
    notification_id: int,
    request: PinNotificationRequest,
    notification_repository=Depends(get_notification_repository),
    recipient_repository=Depends(get_notification_recipient_repository),
    current_user: DomainUser = Depends(get_current_user),
):
    """Pin or unpin a notification for the current user."""
    recipient = await PinNotificationRule(
        notification_id=notification_id,
        user=current_user,
        is_pinned=request.is_pinned,
        notification_repository=notification_repository,
        recipient_repository=recipient_repository,
    ).execute()

    return UpdatedResponse(
        data=RecipientResponse.from_domain(recipient),
        message="Notification pinned" if request.is_pinned else "Notification unpinned",
    )
