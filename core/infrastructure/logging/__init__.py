from .base import setup_logging
from .context import RequestContextLogger
from .middleware import RequestTrackingMiddleware

__all__ = ["setup_logging", "RequestContextLogger", "RequestTrackingMiddleware"]
