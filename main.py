import uvicorn
from loguru import logger

from config.base import get_settings
from core.infrastructure.logging import RequestTrackingMiddleware, setup_logging


def create_app(run_startup_migrations: bool = True):
    """Create and configure FastAPI application instance

    Sets up application lifespan events, middleware, exception handlers,
    and API routers.

    Parameters
    ----------
    run_startup_migrations : bool, default=True
        Apply pending Alembic migrations when the application starts.

    Returns
    -------
    FastAPI
        Deployment-ready FastAPI instance.

    Raises
    ------
    Exception
        If exception occurs in lifespan or API routers.

    """
    from contextlib import asynccontextmanager

    from fastapi import FastAPI, HTTPException
    from fastapi.exceptions import RequestValidationError, ResponseValidationError
    from pydantic import ValidationError
    from sqlalchemy.exc import IntegrityError, SQLAlchemyError
    from starlette.exceptions import HTTPException as StarletteHTTPException

    from config.database import close_database_engine, run_migrations
    from core.application.exceptions import DomainError
    from core.infrastructure.exceptions import global_exception_handler

    @asynccontextmanager
    async def custom_lifespan(app):
        """Manage application startup and shutdown lifecycle.

        Handles application logging setup, database migrations, and proper
        cleanup of database connections during shutdown.

        Parameters
        ----------
        app : FastAPI
            FastAPI application instance.

        Yields
        ------
        None
            Control to application after startup, and before shutdown.

        Raises
        ------
        Exception
            If database migration fails.
        """
        setup_logging()

        if run_startup_migrations:
            try:
                logger.debug("🔧 Running unapplied database migrations...")
                await run_migrations()

            except Exception as e:
                logger.error(f"📝 Migration failed: {e}")
                raise e

        logger.info("🟢 Application startup completed.")
        logger.info("🚀✨ <green>Campus Notices is now running!</green>")

        yield

        logger.debug("🔧 Starting shutdown cleanup...")

        try:
            logger.info("🔧 Closing database connections 🔧")
            await close_database_engine()
        except Exception as e:
            logger.error(f"🟠 Error closing database: {e}")

        logger.debug("👋 Application shutting down...")

    app = FastAPI(title="Campus Notices", lifespan=custom_lifespan)

    app.add_middleware(RequestTrackingMiddleware)

    app.add_exception_handler(DomainError, global_exception_handler)
    app.add_exception_handler(ValueError, global_exception_handler)
    app.add_exception_handler(IntegrityError, global_exception_handler)
    app.add_exception_handler(SQLAlchemyError, global_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    app.add_exception_handler(ValidationError, global_exception_handler)
    app.add_exception_handler(RequestValidationError, global_exception_handler)
    app.add_exception_handler(ResponseValidationError, global_exception_handler)
    app.add_exception_handler(HTTPException, global_exception_handler)
    app.add_exception_handler(StarletteHTTPException, global_exception_handler)

    from notifications.presentation import router as notification_router
    from users.presentation import router as user_router

    app.include_router(user_router)
    app.include_router(notification_router)

    return app


if __name__ == "__main__":
    """Application entry point for direct execution.

    Configures logging with Loguru and starts the Uvicorn server.
    """
    setup_logging()
    settings = get_settings()
    logger.debug(
        f"🟢 Starting Campus Notices in '{settings.environment.upper()}' mode!"
    )
    uvicorn.run(
        "main:create_app",
        port=8001,
        reload=settings.debug,
        factory=True,
        log_config=None,
    )
