class DomainError(Exception):
    """Base class for errors raised by application rules and repositories.

    Attributes
    ----------
    message: str
        Human-readable description safe to return to API clients.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist or is not visible."""


class ValidationFailedError(DomainError, ValueError):
    """Raised when input is rejected before any storage work begins.

    Subclasses `ValueError` so callers that already treat `ValueError` as a
    client error handle it the same way.
    """


class StorageFailureError(DomainError):
    """Raised after a transactional write failed and was rolled back.

    The original exception is chained as `__cause__`.
    """
