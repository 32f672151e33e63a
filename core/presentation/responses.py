import math
from typing import Any

from fastapi import status
from pydantic import BaseModel


class PaginationMeta(BaseModel):
    """Pagination metadata attached to listing responses.

    Attributes
    ----------
    total: int
        Number of items matching the query across all pages.
    current_page: int
        1-based page number returned.
    page_size: int
        Maximum number of items per page.
    total_page: int
        Number of pages available.
    next_page: int | None
        Next page number, if any.
    prev_page: int | None
        Previous page number, if any.
    """

    total: int
    current_page: int
    page_size: int
    total_page: int
    next_page: int | None = None
    prev_page: int | None = None

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        """Compute pagination metadata from a total count and page request."""
        total_page = math.ceil(total / limit) if limit else 0
        return cls(
            total=total,
            current_page=page,
            page_size=limit,
            total_page=total_page,
            next_page=page + 1 if page < total_page else None,
            prev_page=page - 1 if page > 1 else None,
        )


class StandardResponse(BaseModel):
    """Base response model for all API operations.

    Attributes
    ----------
    success: bool, default=True
        Boolean indicating if API request was successful.
    data: Any, default=None
        Actual response data payload.
    """

    success: bool = True
    data: Any = None


class SuccessResponse(StandardResponse):
    """Standard response model for successful API operations (HTTP 200 OK).

    Attributes
    ----------
    message: str, default="Resource action successful"
        Descriptive success message.
    status_code: int, default=200
        HTTP status code.
    """

    message: str = "Resource action successful"
    status_code: int = status.HTTP_200_OK


class PaginatedResponse(SuccessResponse):
    """Successful listing response carrying pagination metadata.

    Attributes
    ----------
    metadata: PaginationMeta
        Page information for `data`.
    """

    metadata: PaginationMeta


class CreatedResponse(StandardResponse):
    """Response model for successful resource creation (HTTP 201 Created)."""

    message: str = "Resource creation successful"
    status_code: int = status.HTTP_201_CREATED


class UpdatedResponse(StandardResponse):
    """Response model for successful resource update."""

    message: str = "Resource update successful"
    status_code: int = status.HTTP_200_OK


class DeletedResponse(StandardResponse):
    """Response model for successful resource deletion."""

    message: str = "Resource deletion successful"
    status_code: int = status.HTTP_200_OK
