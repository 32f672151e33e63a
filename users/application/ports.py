from abc import ABC, abstractmethod

from ..domain.entities import User as DomainUser


class UserRepository(ABC):
    """Abstract base class for user data management.

    Only the operations needed to resolve the current user and to seed
    accounts from the command line are defined here; account management
    lives in another system.
    """

    @abstractmethod
    async def create(self, user: DomainUser) -> DomainUser:
        """Create a new user record.

        Parameters
        ----------
        user: DomainUser
            User entity to be created.

        Returns
        -------
        DomainUser
            Created User entity.
        """
        pass

    @abstractmethod
    async def get_by_id(self, user_id: int) -> DomainUser:
        """Retrieve a user by their unique ID.

        Parameters
        ----------
        user_id: int
            ID of user to retrieve.

        Returns
        -------
        DomainUser
            `DomainUser` entity matching ID.
        """
        pass
