from datetime import datetime

from pydantic import BaseModel

from ..domain.entities import UserRole


class UserResponse(BaseModel):
    """Response model for user data.

    Exposes the attributes that decide which notifications a user can see.

    Attributes
    ----------
    id: int
        User's ID.
    email: str
        User's email address.
    full_name: str
        User's display name.
    role: UserRole
        User's role.
    major_id: int | None, optional
        Major of a student.
    department_id: int | None, optional
        Department of a lecturer.
    is_active: bool
        User's active status.
    created_at: datetime | None, optional
        User's creation timestamp.
    """

    id: int
    email: str
    full_name: str
    role: UserRole
    major_id: int | None = None
    department_id: int | None = None
    is_active: bool
    created_at: datetime | None = None
