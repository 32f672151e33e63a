from abc import ABC, abstractmethod
from typing import Any, Dict

from users.domain.entities import User as DomainUser


class JWTTokenServiceInterface(ABC):
    """Abstract base class for access token services.

    Tokens only identify the caller; audience attributes (role, major,
    department) are always re-read from the user store.
    """

    @abstractmethod
    async def create_access_token(self, user: DomainUser) -> str:
        """Create a signed access token for `user`.

        Parameters
        ----------
        user: DomainUser
            User the token identifies.

        Returns
        -------
        str
            Encoded token.
        """
        pass

    @abstractmethod
    async def decode_access_token(self, token: str) -> Dict[str, Any]:
        """Decode and validate an access token.

        Parameters
        ----------
        token: str
            Encoded token.

        Returns
        -------
        Dict[str, Any]
            Validated token payload.
        """
        pass
