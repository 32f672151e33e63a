from fastapi import HTTPException, status

from core.application.exceptions import NotFoundError
from users.application.ports import UserRepository
from users.domain.entities import User as DomainUser

from .ports import JWTTokenServiceInterface


class CurrentUserRule:
    """Business logic for resolving the authenticated `CurrentUser`."""

    def __init__(
        self,
        token: str,
        token_service: JWTTokenServiceInterface,
        user_repository: UserRepository,
    ) -> None:
        self.token = token
        self.token_service = token_service
        self.user_repository = user_repository

    async def execute(self) -> DomainUser:
        """Decode the token and load the user it identifies.

        Returns
        -------
        DomainUser
            User with fresh role, major and department attributes.

        Raises
        ------
        HTTPException
            If the token is invalid, or the user is missing or inactive.
        """
        payload = await self.token_service.decode_access_token(self.token)

        try:
            user = await self.user_repository.get_by_id(int(payload["user_id"]))
        except NotFoundError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive",
            ) from e

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive",
            )

        return user
