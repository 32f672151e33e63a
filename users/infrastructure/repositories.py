from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.application.exceptions import NotFoundError, ValidationFailedError

from ..application.ports import UserRepository as DomainUserRepository
from ..domain.entities import User as DomainUser
from ..domain.entities import UserRole
from ..infrastructure.models import User


class UserRepository(DomainUserRepository):
    """Concrete implementation of `UserRepository` for database-based user management."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: DomainUser) -> DomainUser:
        """Create a new user record in the database.

        Parameters
        ----------
        user: DomainUser
            `DomainUser` entity to be created.

        Returns
        -------
        DomainUser
            Created `DomainUser` entity, hydrated with database-assigned values.

        Raises
        ------
        ValidationFailedError
            If a user with the same email already exists.
        """
        db_user = self._to_pydantic_model(user)
        self._session.add(db_user)

        try:
            await self._session.commit()
            await self._session.refresh(db_user)
        except IntegrityError as e:
            await self._session.rollback()
            if "email" in str(e.orig):
                raise ValidationFailedError(
                    "User with this email already exists"
                ) from e
            raise e
        except Exception as e:
            await self._session.rollback()
            raise e

        return self._to_domain_model(db_user)

    async def get_by_id(self, user_id: int) -> DomainUser:
        """Retrieve a user by their unique ID from the database.

        Raises
        ------
        NotFoundError
            If no user is found with the provided ID.
        """
        db_user = await self._session.get(User, user_id)

        if not db_user:
            raise NotFoundError("User not found")

        return self._to_domain_model(db_user)

    def _to_pydantic_model(self, user: DomainUser) -> User:
        return User(
            id=user.id,
            email=user.email,
            full_name=user.full_name,
            role=user.role.value,
            major_id=user.major_id,
            department_id=user.department_id,
            is_active=user.is_active,
        )

    def _to_domain_model(self, db_user: User) -> DomainUser:
        return DomainUser(
            id=db_user.id,
            email=db_user.email,
            full_name=db_user.full_name,
            role=UserRole(db_user.role),
            major_id=db_user.major_id,
            department_id=db_user.department_id,
            is_active=db_user.is_active,
            created_at=db_user.created_at,
        )
