import asyncio

import pytest
from click.testing import CliRunner

from config.base import get_settings
from config.database import build_database_engine, create_tables
from manage import cli


@pytest.fixture
def cli_database(tmp_path, monkeypatch):
    """Point the application settings at a fresh SQLite file."""
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'cli.sqlite3'}"
    monkeypatch.setenv("DATABASE_URL", database_url)
    get_settings.cache_clear()

    async def prepare():
        engine = build_database_engine(database_url)
        await create_tables(engine)
        await engine.dispose()

    asyncio.run(prepare())

    yield database_url

    get_settings.cache_clear()


class TestUserCommands:
    def test_createuser_then_issuetoken(self, cli_database):
        runner = CliRunner()

        created = runner.invoke(
            cli,
            [
                "createuser",
                "--email",
                "ada@campus.edu",
                "--role",
                "student",
                "--major-id",
                "7",
            ],
        )
        assert created.exit_code == 0, created.output
        assert "Created STUDENT user ada@campus.edu with id 1" in created.output

        issued = runner.invoke(cli, ["issuetoken", "1"])
        assert issued.exit_code == 0, issued.output
        assert issued.output.count(".") == 2

    def test_duplicate_email_is_reported(self, cli_database):
        runner = CliRunner()
        arguments = ["createuser", "--email", "admin@campus.edu", "--role", "ADMINISTRATOR"]

        assert runner.invoke(cli, arguments).exit_code == 0
        duplicate = runner.invoke(cli, arguments)

        assert duplicate.exit_code == 1
        assert "User with this email already exists" in duplicate.output

    def test_issuetoken_for_unknown_user_fails(self, cli_database):
        result = CliRunner().invoke(cli, ["issuetoken", "42"])

        assert result.exit_code == 1
        assert "User not found" in result.output
