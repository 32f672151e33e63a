import click


def import_from_alembic():
    """Import and configure Alembic command interface.

    Centralizes Alembic imports and configuration setup to ensure consistent migration
    handling across all management commands.

    Returns
    -------
    Tuple[command.Command, config.Config]
        Alembic command module and configured Config instance for executing migrations.
    """
    from alembic import command, config

    alembic_cfg = config.Config("alembic.ini")
    return command, alembic_cfg


@click.group()
def cli():
    """Management command interface for the application.

    Provides subcommands for database migration management, server control,
    and project maintenance utilities.
    """
    pass


@cli.command()
@click.option("--message", "-m", required=True, help="Migration message")
def makemigrations(message):
    """Generate new Alembic migration from model changes.

    Analyzes current SQLModel definitions against database schema
    and creates a new migration file with detected changes.
    Requires a descriptive message for migration identification.

    Parameters
    ----------
    message: str
        Descriptive message explaining the migration purpose.
        Should be concise but informative (e.g., "Add user authentication").

    Examples
    --------
    Create migration for new user table:
        $ python manage.py makemigrations -m "Add user table"

    Create migration for column changes:
        $ python manage.py makemigrations -m "Add email verification field"
    """
    command, alembic_cfg = import_from_alembic()
    command.revision(alembic_cfg, autogenerate=True, message=message)
    click.echo(f"Migration created: {message}")


@cli.command()
def migrate():
    """Apply all pending database migrations.

    Executes unapplied migrations in chronological order to bring database schema
    up to date with current model definitions.

    Raises
    ------
    AlembicError
        If migration conflicts exist or database connection fails.
    """
    command, alembic_cfg = import_from_alembic()
    command.upgrade(alembic_cfg, "head")
    click.echo("Migrations completed")


@cli.command()
def runserver():
    """Start a FastAPI development server instance.

    Launches the application using the main module's entry point
    with development-optimized settings including auto-reload
    and debug logging when configured.
    Uses `runpy` to execute the `main.py` module as a script.
    """
    import runpy

    runpy.run_module("main", run_name="__main__")


@cli.command()
def clean():
    """Remove Python cache and build artifacts.

    Recursively removes __pycache__ directories, .pyc files,
    and Ruff cache directories to resolve import issues and remove clutter
    from development environment.
    """
    import os
    import shutil

    for root, dirs, files in os.walk("."):
        for dir_name in dirs:
            if dir_name == "__pycache__" or dir_name == ".ruff_cache":
                shutil.rmtree(os.path.join(root, dir_name))
        for file_name in files:
            if file_name.endswith(".pyc"):
                os.remove(os.path.join(root, file_name))

    click.echo("Cleaned Python cache and Ruff cache directories.")


async def _create_user(user):
    from sqlalchemy.ext.asyncio import AsyncSession

    from config.database import close_database_engine, get_database_engine
    from users.infrastructure.repositories import UserRepository

    engine = await get_database_engine()
    try:
        async with AsyncSession(bind=engine, expire_on_commit=False) as session:
            return await UserRepository(session).create(user)
    finally:
        await close_database_engine()


async def _issue_token(user_id):
    from sqlalchemy.ext.asyncio import AsyncSession

    from authentication.infrastructure.services import JWTTokenService
    from config.base import get_settings
    from config.database import close_database_engine, get_database_engine
    from users.infrastructure.repositories import UserRepository

    engine = await get_database_engine()
    try:
        async with AsyncSession(bind=engine, expire_on_commit=False) as session:
            user = await UserRepository(session).get_by_id(user_id)
        return await JWTTokenService(get_settings()).create_access_token(user)
    finally:
        await close_database_engine()


@cli.command()
@click.option("--email", required=True, help="Email address of the account")
@click.option("--full-name", default="", help="Display name of the account")
@click.option(
    "--role",
    type=click.Choice(
        ["GUEST", "STUDENT", "LECTURER", "ACADEMIC_MANAGER", "ADMINISTRATOR"],
        case_sensitive=False,
    ),
    default="STUDENT",
    show_default=True,
    help="Role of the account",
)
@click.option("--major-id", type=int, default=None, help="Major of a student")
@click.option("--department-id", type=int, default=None, help="Department of a lecturer")
def createuser(email, full_name, role, major_id, department_id):
    """Create a user with the attributes audience rules are matched against.

    Examples
    --------
    Seed a computer science student:
        $ python manage.py createuser --email ada@campus.edu --role STUDENT --major-id 7

    Seed an administrator:
        $ python manage.py createuser --email admin@campus.edu --role ADMINISTRATOR
    """
    import asyncio

    from core.application.exceptions import ValidationFailedError
    from users.domain.entities import User, UserRole

    try:
        user = asyncio.run(
            _create_user(
                User(
                    email=email,
                    full_name=full_name,
                    role=UserRole(role.upper()),
                    major_id=major_id,
                    department_id=department_id,
                )
            )
        )
    except ValidationFailedError as e:
        raise click.ClickException(e.message) from e

    click.echo(f"Created {user.role} user {user.email} with id {user.id}")


@cli.command()
@click.argument("user_id", type=int)
def issuetoken(user_id):
    """Print a bearer access token for an existing user.

    Intended for local testing of the API.

    Parameters
    ----------
    user_id: int
        ID of the user the token identifies.
    """
    import asyncio

    from core.application.exceptions import NotFoundError

    try:
        token = asyncio.run(_issue_token(user_id))
    except NotFoundError as e:
        raise click.ClickException(e.message) from e

    click.echo(token)


if __name__ == "__main__":
    """CLI entry point for direct script execution.

    Initializes Click command group and processes command-line arguments
    for development task execution.
    """
    cli()
