import json

import pytest
from fastapi import HTTPException, Request, status
from sqlalchemy.exc import IntegrityError, OperationalError

from core.application.exceptions import (
    NotFoundError,
    StorageFailureError,
    ValidationFailedError,
)
from core.infrastructure.exceptions.handler import (
    global_exception_handler,
    normalize_error_detail,
)
from core.infrastructure.services import DataSanitizer


def make_request(path="/notifications/1", method="GET") -> Request:
    return Request(
        {
            "type": "http",
            "method": method,
            "scheme": "http",
            "server": ("test", 80),
            "path": path,
            "query_string": b"",
            "headers": [],
        }
    )


async def handle(exc: Exception):
    response = await global_exception_handler(make_request(), exc)
    return response.status_code, json.loads(response.body)


class TestGlobalExceptionHandler:
    async def test_not_found(self):
        status_code, body = await handle(NotFoundError("Notification 1 not found"))

        assert status_code == status.HTTP_404_NOT_FOUND
        assert body["success"] is False
        assert body["errors"]["detail"] == "Notification 1 not found"
        assert body["path"] == "http://test/notifications/1"

    async def test_validation_failed_is_bad_request(self):
        status_code, body = await handle(
            ValidationFailedError("At least one audience rule is required")
        )

        assert status_code == status.HTTP_400_BAD_REQUEST
        assert body["message"] == "Invalid field items"

    async def test_storage_failure_hides_cause(self):
        cause = OperationalError("INSERT INTO notification", {}, Exception("locked"))
        exc = StorageFailureError("Failed to create notification")
        exc.__cause__ = cause

        status_code, body = await handle(exc)

        assert status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert body["errors"]["detail"] == "Failed to create notification"
        assert "INSERT" not in json.dumps(body)

    async def test_integrity_error_is_conflict(self):
        status_code, body = await handle(
            IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        )

        assert status_code == status.HTTP_409_CONFLICT
        assert body["message"] == "Database constraint violation"

    async def test_http_exception_keeps_status(self):
        status_code, body = await handle(
            HTTPException(status_code=403, detail="Access denied")
        )

        assert status_code == 403
        assert body["message"] == "Permission denied"
        assert body["errors"]["detail"] == "Access denied"

    async def test_unexpected_error_is_masked(self):
        status_code, body = await handle(RuntimeError("secret=hunter2"))

        assert status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert body["errors"]["detail"] == "An unexpected error occurred"


class TestNormalizeErrorDetail:
    @pytest.mark.parametrize(
        "detail, expected",
        [
            ("plain", "plain"),
            ({"field": 1}, {"field": "1"}),
            (["a", 2], ["a", "2"]),
            (42, "42"),
        ],
    )
    def test_normalizes(self, detail, expected):
        assert normalize_error_detail(detail) == expected


class TestDataSanitizer:
    def test_masks_sensitive_keys(self):
        sanitized = DataSanitizer().sanitize_for_logging(
            {"access_token": "abc", "nested": {"password": "x", "title": "Exam"}}
        )

        assert sanitized == {
            "access_token": DataSanitizer.MASK,
            "nested": {"password": DataSanitizer.MASK, "title": "Exam"},
        }

    def test_masks_query_string_tokens_and_emails(self):
        sanitizer = DataSanitizer()

        assert (
            sanitizer.sanitize_for_logging("?token=abc&page=2")
            == "?token=***MASKED***&page=2"
        )
        assert sanitizer.sanitize_for_logging("ada@campus.edu") == "a*a@campus.edu"

    def test_drops_sql_parameters_from_exceptions(self):
        exc = IntegrityError(
            "INSERT INTO user (email) VALUES (?)",
            ("ada@campus.edu",),
            Exception("UNIQUE constraint failed: user.email"),
        )

        message = DataSanitizer().sanitize_exception_for_logging(exc)

        assert "ada@campus.edu" not in message
        assert "***SANITIZED***" in message
