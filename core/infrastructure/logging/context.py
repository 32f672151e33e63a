import contextvars
import uuid
from typing import Any, Dict

request_context: contextvars.ContextVar[Dict[str, Any]] = contextvars.ContextVar(
    "request_context", default={}
)


class RequestContextLogger:
    """Context manager binding request-scoped fields to every log record.

    The bound fields are merged into `record["extra"]` by the patcher
    installed in `setup_logging`, so all logs emitted while handling one
    request share the same `request_id`.

    Parameters
    ----------
    request_id: str | None, optional
        Identifier to bind. A short random id is generated when omitted.
    **context
        Additional fields to bind (method, path, user id, ...).
    """

    def __init__(self, request_id: str | None = None, **context):
        self.request_id = request_id or str(uuid.uuid4())[:8]
        self.context = {"request_id": self.request_id, **context}
        self.token = None

    def __enter__(self):
        self.token = request_context.set(self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.token is not None:
            request_context.reset(self.token)
            self.token = None

    async def __aenter__(self):
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.__exit__(exc_type, exc_val, exc_tb)
