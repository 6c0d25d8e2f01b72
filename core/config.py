"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the auth service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

Startup policy:
  JWT_SECRET and DATASTORE are required. A missing or blank value raises a
  ValidationError when Settings() is built; main.py turns that into a fatal
  log line and exit status 1, so the process never serves with a half-built
  configuration.

  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every issued token.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

logger = logging.getLogger("authority.config")

# Spellings accepted for DATASTORE. "redis" and "postgres" are the values the
# earlier deployments used; keep them working.
_DATASTORE_ALIASES = {
    "relational": "relational",
    "postgres": "relational",
    "postgresql": "relational",
    "sql": "relational",
    "keyvalue": "keyvalue",
    "key-value": "keyvalue",
    "redis": "keyvalue",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Only jwt_secret and datastore lack defaults. Everything else falls back to
    a local-development value (Postgres and Redis on localhost).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    jwt_secret: SecretStr
    datastore: Literal["relational", "keyvalue"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_ttl_seconds: int = 3600
    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # Relational store
    # ------------------------------------------------------------------

    # Full SQLAlchemy URL. Takes precedence over the PG* fields when set
    # (e.g. sqlite+aiosqlite:///./auth.db for local work).
    database_url: str = ""
    pghost: str = "localhost"
    pgport: int = 5432
    pguser: str = "postgres"
    pgpassword: SecretStr = SecretStr("postgres")
    pgdatabase: str = "authdb"
    pgpool_max: int = 10
    pgpool_acquire: int = 30000  # ms
    sql_echo: bool = False

    # ------------------------------------------------------------------
    # Key-value store (sessions, and users when DATASTORE=keyvalue)
    # ------------------------------------------------------------------

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: SecretStr = SecretStr("")
    redis_db: int = 0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    host: str = "0.0.0.0"  # nosec B104 -- container default
    port: int = 3000
    cors_origins: list[str] = ["*"]
    login_rate_limit: str = "5/15minutes"
    global_rate_limit: str = "100/15minutes"

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    log_dir: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("jwt_secret")
    @classmethod
    def validate_jwt_secret(cls, value: SecretStr) -> SecretStr:
        """Reject blank or short signing secrets."""
        raw = value.get_secret_value()
        if not raw.strip():
            raise ValueError("JWT_SECRET must be a non-empty string.")
        if len(raw) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        return value

    @field_validator("datastore", mode="before")
    @classmethod
    def normalize_datastore(cls, value: object) -> object:
        if isinstance(value, str):
            key = value.strip().lower()
            if not key:
                raise ValueError("DATASTORE must be a non-empty string.")
            return _DATASTORE_ALIASES.get(key, key)
        return value

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def sqlalchemy_url(self) -> str:
        """Async SQLAlchemy URL for the relational user store.

        Built with URL.create so credentials containing '@' or '/' are
        percent-encoded correctly.
        """
        if self.database_url:
            return self.database_url
        url = URL.create(
            drivername="postgresql+asyncpg",
            username=self.pguser,
            password=self.pgpassword.get_secret_value(),
            host=self.pghost,
            port=self.pgport,
            database=self.pgdatabase,
        )
        return url.render_as_string(hide_password=False)

    @property
    def redis_url(self) -> str:
        password = self.redis_password.get_secret_value()
        auth = f":{password}@" if password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()


def configure_logging(settings: Settings) -> None:
    """Apply the configured level and, when LOG_DIR is set, add a file handler.

    The console handler is installed by logging.basicConfig in api/main.py;
    this only adjusts it, so calling it twice does not duplicate output.
    """
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    if not settings.log_dir:
        return

    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = str((log_dir / "app.log").resolve())
    for handler in root.handlers:
        if isinstance(handler, logging.FileHandler) and handler.baseFilename == log_file:
            return
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)-5s %(name)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S")
    )
    root.addHandler(file_handler)
    logger.info("File logging enabled at %s", log_file)
