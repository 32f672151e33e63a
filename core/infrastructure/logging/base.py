import logging
import sys
from functools import lru_cache

from loguru import logger

from config.base import get_settings

from .context import request_context
from .format import CustomLogFormat

DEVELOPMENT_ENVIRONMENTS = ("dev", "development", "local", "test", "testing")


class InterceptHandler(logging.Handler):
    """Redirect standard library logging records (uvicorn, SQLAlchemy, alembic) to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        """Re-emit a `logging.LogRecord` through Loguru, preserving caller depth.

        Parameters
        ----------
        record: logging.LogRecord
            `LogRecord` instance from the standard logging library.
        """
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def _context_patcher(record) -> None:
    record["extra"].update(request_context.get({}))


@lru_cache(maxsize=1)
def setup_logging() -> None:
    """Configure Loguru sinks for the application.

    Installs a console sink (colorized in development, JSON elsewhere),
    a rotating JSON file sink and a separate error file sink. Standard
    logging is intercepted and request context is merged into every record.
    """
    settings = get_settings()
    is_development_server = settings.environment.lower() in DEVELOPMENT_ENVIRONMENTS

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(settings.logging_level)

    for name in logging.root.manager.loggerDict.keys():
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    def not_noise(record) -> bool:
        return "changes detected" not in record["message"]

    error_log_file = str(settings.log_file).replace(".log", "_errors.log")

    logger.configure(
        handlers=[
            {
                "sink": sys.stdout,
                "level": settings.logging_level,
                "colorize": is_development_server,
                "serialize": not is_development_server,
                "backtrace": False,
                "diagnose": is_development_server,
                "filter": lambda record: not_noise(record)
                and record["extra"].get("target") != "file",
                "format": lambda record: CustomLogFormat(
                    record=record
                ).log_console_format(),
            },
            {
                "sink": settings.log_file,
                "level": "INFO",
                "serialize": True,
                "enqueue": True,
                "backtrace": True,
                "diagnose": False,
                "rotation": "10 MB",
                "retention": "10 days",
                "compression": "zip",
                "filter": not_noise,
                "format": lambda record: CustomLogFormat(record=record).log_file_format(),
            },
            {
                "sink": error_log_file,
                "level": "ERROR",
                "serialize": True,
                "enqueue": True,
                "backtrace": True,
                "diagnose": False,
                "rotation": "10 MB",
                "retention": "60 days",
                "compression": "zip",
                "format": lambda record: CustomLogFormat(record=record).log_file_format(),
            },
        ],
        patcher=_context_patcher,
    )
