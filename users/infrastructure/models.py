from datetime import UTC, datetime

from sqlmodel import Field, SQLModel

from ..domain.entities import UserRole


class User(SQLModel, table=True):
    """SQLModel table representation for the User entity.

    Attributes
    ----------
    id: int | None, optional
        Primary key, auto-incrementing integer.
    email: str
        Unique email address of the user, indexed for quick lookups.
    full_name: str
        Display name of the user.
    role: str
        `UserRole` value, stored as string.
    major_id: int | None, optional
        Major of a student account.
    department_id: int | None, optional
        Department of a lecturer account.
    is_active: bool, default=True
        Boolean indicating if the user account is active.
    created_at: datetime
        Datetime when the user record was created.
    """

    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, nullable=False, index=True)
    full_name: str = Field(default="", max_length=255)
    role: str = Field(default=UserRole.STUDENT.value, max_length=50, index=True)
    major_id: int | None = Field(default=None, nullable=True, index=True)
    department_id: int | None = Field(default=None, nullable=True, index=True)
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))
