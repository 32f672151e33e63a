from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt
from fastapi import HTTPException, status
from jwt.exceptions import InvalidTokenError

from config.base import Settings
from users.domain.entities import User as DomainUser

from ..application.ports import JWTTokenServiceInterface


class JWTTokenService(JWTTokenServiceInterface):
    """Concrete implementation of `JWTTokenServiceInterface` backed by PyJWT."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._key = settings.secret_key

    async def create_access_token(self, user: DomainUser) -> str:
        """Create a signed JWT access token for the given user.

        Parameters
        ----------
        user: DomainUser
            DomainUser entity for whom to create the token.

        Returns
        -------
        str
            Encoded JWT access token string.
        """
        expiry = datetime.now(timezone.utc) + timedelta(
            minutes=self._settings.access_token_expiry
        )
        return jwt.encode(
            {"user_id": user.id, "type": "access", "exp": expiry},
            self._key,
            algorithm=self._settings.algorithm,
        )

    async def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Decode and validate an access token.

        Expiry is enforced by PyJWT while decoding.

        Parameters
        ----------
        token: str
            Access token string to decode and validate.

        Returns
        -------
        Dict[str, Any]
            Token payload containing at least `user_id`.

        Raises
        ------
        HTTPException
            If token is invalid, expired, or of wrong type.
        """
        try:
            payload = jwt.decode(
                token, self._key, algorithms=[self._settings.algorithm]
            )
            if payload.get("type") != "access" or payload.get("user_id") is None:
                raise InvalidTokenError("Not an access token")
            return payload

        except InvalidTokenError as e:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Failed to decode access token",
            ) from e
