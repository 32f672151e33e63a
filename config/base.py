from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings with environment variable integration.

    Attributes
    ----------
    secret_key: str
        Key for JWT signing/verification.
    algorithm: str, default="HS256"
        JWT signing algorithm.
    access_token_expiry: int, default=30
        Access token lifetime in minutes.
    debug: bool, default=False
        Enable/disable debug mode.
    logging_level: str, default="INFO"
        Logging verbosity: e.g., "INFO", "DEBUG".
    base_dir: Path, default=auto-detected
        Project base directory.
    environment: str, default="development"
        Application environment: "development", "production", etc.
    database_url: str | None, optional
        Async SQLAlchemy database URL. Defaults to a SQLite file in `base_dir`.
    logs_dir: Path, derived from base_dir
        Directory for log files.
    log_file: Path, derived from base_dir
        Main log file path.
    notification_max_audience_rules: int, default=10
        Upper bound on audience rules attached to a single notification.

    Raises
    ------
    ValueError
        If required configuration values are missing or invalid.

    Notes
    -----
    Sensitive configuration values like secret keys should always be provided
    via environment variables or secure secret management systems, never
    committed to version control or hardcoded in source files.
    """

    secret_key: str
    algorithm: str = "HS256"
    access_token_expiry: int = 30
    debug: bool = False
    logging_level: str = "INFO"
    base_dir: Path = Path(__file__).resolve().parent.parent
    environment: str = "development"
    database_url: str | None = None
    logs_dir: Path = base_dir / "logs"
    log_file: Path = logs_dir / "campus_notices.log"
    notification_max_audience_rules: int = 10

    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    @model_validator(mode="after")
    def ensure_valid_settings(self) -> "Settings":
        """Validate algorithm requirements and create the log directory.

        Raises
        ------
        ValueError
            If secret key is missing for an HMAC algorithm.
        """
        if self.algorithm.startswith("HS") and not self.secret_key:
            raise ValueError("Secret Key value is required for this algorithm")

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        return self


@lru_cache
def get_settings() -> Settings:
    """Create and cache singleton Settings instance for application use.

    Returns
    -------
    Settings
        Cached singleton instance of application settings with all
        configuration values loaded and validated.
    """
    return Settings()
