"""
mealdesk settings.

Everything configurable (store location, default isolation level, logging,
the anomaly demonstration and seed data) is read from environment
variables or a .env file and validated once, at load time.
"""

from decimal import Decimal
from typing import Dict, Optional
from urllib.parse import quote_plus

from pydantic import Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mealdesk.core.errors import ConfigurationError
from mealdesk.core.isolation import IsolationLevel


def parse_connection_string(value: str) -> Dict[str, str]:
    """
    Split a `key=value;key=value;` connection string into a dict.

    Keys are lower-cased and stripped of spaces, so "Allow User Variables"
    becomes "allowuservariables".

    Raises:
        ValueError: If a segment has no "="
    """
    parts: Dict[str, str] = {}
    for segment in value.split(";"):
        if not segment.strip():
            continue
        if "=" not in segment:
            raise ValueError(f"Malformed connection string segment: {segment.strip()!r}")
        key, _, raw = segment.partition("=")
        parts[key.strip().lower().replace(" ", "")] = raw.strip()
    return parts


def connection_string_to_url(value: str) -> str:
    """
    Convert a MySQL connection string into an SQLAlchemy URL.

    Example:
        >>> connection_string_to_url(
        ...     "server=10.0.0.5;database=lunch;user=app;password=pw;Allow User Variables=true;"
        ... )
        'mysql+aiomysql://app:pw@10.0.0.5/lunch'

    Raises:
        ValueError: If server or database is missing
    """
    parts = parse_connection_string(value)
    server = parts.get("server") or parts.get("host")
    database = parts.get("database")
    if not server or not database:
        raise ValueError("Connection string must define both server and database")

    user = quote_plus(parts.get("user", parts.get("uid", "")))
    password = quote_plus(parts.get("password", parts.get("pwd", "")))
    credentials = ""
    if user:
        credentials = f"{user}:{password}@" if password else f"{user}@"
    return f"mysql+aiomysql://{credentials}{server}/{database}"


class Settings(BaseSettings):
    """
    Validated mealdesk configuration.

    Each field maps to the upper-cased environment variable of the same
    name. Keep passwords in .env, not in shell history.
    """

    # Database Configuration
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/mealdesk.db",
        description="Database connection URL (SQLite for development, MySQL for production)"
    )
    connection_string: Optional[str] = Field(
        default=None,
        description="MySQL connection string (server=..;database=..;user=..;password=..;). "
                    "Overrides database_url when set"
    )
    isolation_level: IsolationLevel = Field(
        default=IsolationLevel.default(),
        description="Isolation level for transactions that do not request one"
    )
    echo_sql: bool = Field(
        default=False,
        description="Log every SQL statement through SQLAlchemy"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Root log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    log_json: bool = Field(
        default=False,
        description="Emit logs as single-line JSON instead of plain text"
    )

    # Non-repeatable read demonstration
    anomaly_username: str = Field(
        default="admin",
        description="Username whose credit the demonstration reads and overwrites"
    )
    anomaly_new_credit: Decimal = Field(
        default=Decimal("500.00"),
        description="Credit value the concurrent writer commits"
    )
    anomaly_stall_seconds: float = Field(
        default=5.0,
        description="Delay between the two reads of the observing transaction"
    )

    # Seed data
    admin_password: str = Field(
        default="admin",
        description="Password given to the seeded admin user"
    )
    admin_initial_credit: Decimal = Field(
        default=Decimal("1000.00"),
        description="Credit given to the seeded admin user"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("isolation_level", mode="before")
    @classmethod
    def parse_isolation_level(cls, v: str | IsolationLevel) -> IsolationLevel:
        """Accept enum names as well as SQL spellings."""
        return IsolationLevel.parse(v)

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"LOG_LEVEL must be a standard logging level. Got: {v}")
        return level

    @field_validator("anomaly_stall_seconds")
    @classmethod
    def validate_stall(cls, v: float) -> float:
        if v < 0:
            raise ValueError("ANOMALY_STALL_SECONDS cannot be negative")
        return v

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Only async drivers the executor can drive are accepted."""
        if not v or v.strip() == "":
            raise ValueError("DATABASE_URL cannot be empty")

        valid_schemes = ["sqlite+aiosqlite", "mysql+aiomysql"]
        if not any(v.startswith(scheme + "://") for scheme in valid_schemes):
            raise ValueError(
                f"DATABASE_URL must start with one of: {', '.join(valid_schemes)}. "
                f"Got: {v[:20]}..."
            )

        return v

    @model_validator(mode="after")
    def apply_connection_string(self) -> "Settings":
        """Derive database_url from connection_string when one is supplied."""
        if self.connection_string:
            self.database_url = connection_string_to_url(self.connection_string)
        return self


def load_settings(**overrides) -> Settings:
    """
    Build Settings, converting validation failures into ConfigurationError.

    Args:
        **overrides: Field values taking precedence over the environment

    Raises:
        ConfigurationError: If any setting is invalid
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration", cause=e) from e


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Forget the loaded settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
