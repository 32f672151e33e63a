from typing import Callable

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config.base import Settings, get_settings
from users.application.ports import UserRepository
from users.domain.entities import User as DomainUser
from users.domain.entities import UserRole
from users.infrastructure.factory import get_user_repository

from ..application.rules import CurrentUserRule
from ..infrastructure.services import JWTTokenService

bearer_scheme = HTTPBearer()


async def get_jwt_token_service(
    settings: Settings = Depends(get_settings),
) -> JWTTokenService:
    """Provide a `JWTTokenService` instance.

    Parameters
    ----------
    settings: Settings
        Application settings, injected as a dependency.

    Returns
    -------
    JWTTokenService
        Instance of `JWTTokenService`.
    """
    return JWTTokenService(settings)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    user_repository: UserRepository = Depends(get_user_repository),
    token_service: JWTTokenService = Depends(get_jwt_token_service),
) -> DomainUser:
    """Provide the current authenticated user based on the bearer token.

    Parameters
    ----------
    credentials: HTTPAuthorizationCredentials
        Bearer credentials from the `Authorization` header.
    user_repository: UserRepository
        Repository for user data access.
    token_service: JWTTokenService
        Service for JWT token operations.

    Returns
    -------
    DomainUser
        `DomainUser` entity of the currently authenticated user.

    Raises
    ------
    HTTPException
        If the token is invalid or the user cannot be found.
    """
    current_user_rule = CurrentUserRule(
        token=credentials.credentials,
        token_service=token_service,
        user_repository=user_repository,
    )
    return await current_user_rule.execute()


def require_roles(*allowed_roles: UserRole) -> Callable:
    """Dependency factory restricting an endpoint to the given roles.

    Parameters
    ----------
    *allowed_roles: UserRole
        Roles allowed to call the endpoint.

    Returns
    -------
    Callable
        Dependency returning the current user when the role is allowed.
    """

    async def role_checker(
        current_user: DomainUser = Depends(get_current_user),
    ) -> DomainUser:
        if current_user.role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {[r.value for r in allowed_roles]}",
            )
        return current_user

    return role_checker


get_notification_manager = require_roles(
    UserRole.ADMINISTRATOR, UserRole.ACADEMIC_MANAGER
)
get_administrator = require_roles(UserRole.ADMINISTRATOR)
