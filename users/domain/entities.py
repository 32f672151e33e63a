import re
from datetime import datetime
from enum import StrEnum

from pydantic import dataclasses, field_validator


class UserRole(StrEnum):
    """Roles a campus account can hold."""

    GUEST = "GUEST"
    STUDENT = "STUDENT"
    LECTURER = "LECTURER"
    ACADEMIC_MANAGER = "ACADEMIC_MANAGER"
    ADMINISTRATOR = "ADMINISTRATOR"


@dataclasses.dataclass
class User:
    """Core domain entity representing a campus account.

    This is the `CurrentUser` handed to audience matching and delivery
    tracking: only `id`, `role`, `major_id` and `department_id` are read
    there, and never mutated.

    Attributes
    ----------
    email: str
        Unique email address of user.
    role: UserRole, default=UserRole.STUDENT
        Role of the account.
    full_name: str, default=""
        Display name.
    major_id: int | None, optional
        Major the user is enrolled in; only meaningful for students.
    department_id: int | None, optional
        Department the user belongs to; only meaningful for lecturers.
    is_active: bool, default=True
        Boolean indicating if user account is active.
    created_at: datetime | None, optional
        Datetime when user account was created.
    id: int | None, optional
        Unique identifier for user.
    """

    email: str
    role: UserRole = UserRole.STUDENT
    full_name: str = ""
    major_id: int | None = None
    department_id: int | None = None
    is_active: bool = True
    created_at: datetime | None = None
    id: int | None = None

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_lecturer(self) -> bool:
        return self.role == UserRole.LECTURER

    @field_validator("email")
    @classmethod
    def ensure_valid_email(cls, value):
        """Perform email format validation using regex pattern matching.

        Raises
        ------
        ValueError
            If the email address format is invalid.
        """
        if not re.fullmatch(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$", value):
            raise ValueError("Email address is invalid.")

        return value
