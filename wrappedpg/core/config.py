import os
import logging
import sys
from typing import Optional, Dict, Any

from psycopg.conninfo import make_conninfo
from pydantic import BaseModel, Field, ConfigDict, model_validator, field_validator

from wrappedpg.core.logger import configure_logging


_ENV_LOADED = False


def _load_env_file(path: str, allow_override: bool = False) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - By default, does not override existing environment variables
    """
    if not path or not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if allow_override or key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"ERROR: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise


def load_env_if_present(force_reload: bool = False) -> None:
    """
    Load environment variables from .env files in order of precedence:
    1. WRAPPEDPG_ENV_FILE, when set (only this file is read)
    2. .env.local
    3. .env
    Existing environment variables always win.
    """
    global _ENV_LOADED
    if _ENV_LOADED and not force_reload:
        return

    custom = os.environ.get("WRAPPEDPG_ENV_FILE")
    if custom:
        _load_env_file(custom, allow_override=False)
    else:
        for env_file in ('.env.local', '.env'):
            _load_env_file(env_file, allow_override=False)

    _ENV_LOADED = True


class Settings(BaseModel):
    """
    Process-wide connection defaults, read when a call omits its configuration.
    """
    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    database_url: Optional[str] = Field(None, alias="WRAPPEDPG_DATABASE_URL")

    postgres_user: Optional[str] = Field(None, alias="POSTGRES_USER")
    postgres_password: Optional[str] = Field(None, alias="POSTGRES_PASSWORD")
    postgres_db: Optional[str] = Field(None, alias="POSTGRES_DB")
    postgres_host: Optional[str] = Field(None, alias="POSTGRES_HOST")
    postgres_port: Optional[int] = Field(None, alias="POSTGRES_PORT")

    pool_min_size: int = Field(0, alias="WRAPPEDPG_POOL_MIN_SIZE")
    pool_max_size: int = Field(10, alias="WRAPPEDPG_POOL_MAX_SIZE")
    pool_timeout: float = Field(30.0, alias="WRAPPEDPG_POOL_TIMEOUT")
    connect_timeout: int = Field(10, alias="WRAPPEDPG_CONNECT_TIMEOUT")

    log_level: str = Field("INFO", alias="WRAPPEDPG_LOG_LEVEL")
    log_json: bool = Field(False, alias="WRAPPEDPG_LOG_JSON")

    @field_validator('database_url', 'postgres_user', 'postgres_password', 'postgres_db',
                     'postgres_host', mode='before')
    def blank_to_none(cls, v):
        if v is None:
            return None
        if not isinstance(v, str):
            raise ValueError("Expected string value")
        return v.strip() or None

    @field_validator('postgres_port', mode='before')
    def coerce_port(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        port = int(v.strip()) if isinstance(v, str) else int(v)
        if port < 1 or port > 65535:
            raise ValueError(f"Invalid port number: {port}")
        return port

    @field_validator('log_json', mode='before')
    def coerce_bool(cls, v):
        if isinstance(v, bool):
            return v
        if not isinstance(v, str):
            raise ValueError("Expected string for boolean field")
        val = v.strip().lower()
        if val in ("true", "1", "yes", "y", "on"):
            return True
        if val in ("false", "0", "no", "n", "off", ""):
            return False
        raise ValueError(f"Invalid boolean value: {v}")

    @field_validator('pool_min_size', 'pool_max_size', 'connect_timeout', mode='before')
    def coerce_int(cls, v):
        if isinstance(v, int):
            return v
        if isinstance(v, str):
            return int(v.strip())
        raise ValueError("Expected integer-compatible value")

    @field_validator('pool_timeout', mode='before')
    def coerce_float(cls, v):
        if isinstance(v, (int, float)):
            return float(v)
        if isinstance(v, str):
            return float(v.strip())
        raise ValueError("Expected float-compatible value")

    @field_validator('log_level', mode='before')
    def normalize_level(cls, v):
        level = str(v or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode='after')
    def validate_pool_sizes(self):
        if self.pool_min_size < 0:
            raise ValueError(f"WRAPPEDPG_POOL_MIN_SIZE must be >= 0, got {self.pool_min_size}")
        if self.pool_max_size < 1:
            raise ValueError(f"WRAPPEDPG_POOL_MAX_SIZE must be >= 1, got {self.pool_max_size}")
        if self.pool_max_size < self.pool_min_size:
            raise ValueError(
                f"WRAPPEDPG_POOL_MAX_SIZE ({self.pool_max_size}) is smaller than "
                f"WRAPPEDPG_POOL_MIN_SIZE ({self.pool_min_size})"
            )
        return self

    @property
    def conninfo_params(self) -> Dict[str, Any]:
        params = {
            "dbname": self.postgres_db,
            "user": self.postgres_user,
            "password": self.postgres_password,
            "host": self.postgres_host,
            "port": self.postgres_port,
        }
        return {key: value for key, value in params.items() if value is not None}

    @property
    def default_conninfo(self) -> str:
        """Conninfo used when no configuration is passed; empty means libpq PG* defaults."""
        if self.database_url:
            return self.database_url
        return make_conninfo(**self.conninfo_params)


ENV_KEYS = (
    "WRAPPEDPG_DATABASE_URL",
    "POSTGRES_USER", "POSTGRES_PASSWORD", "POSTGRES_DB", "POSTGRES_HOST", "POSTGRES_PORT",
    "WRAPPEDPG_POOL_MIN_SIZE", "WRAPPEDPG_POOL_MAX_SIZE", "WRAPPEDPG_POOL_TIMEOUT",
    "WRAPPEDPG_CONNECT_TIMEOUT", "WRAPPEDPG_LOG_LEVEL", "WRAPPEDPG_LOG_JSON",
)

_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get settings from the environment. Cached after the first call;
    reload=True re-reads .env files and the environment. The log level and
    format of the wrappedpg loggers follow the loaded settings.
    """
    global _settings
    if _settings is None or reload:
        load_env_if_present(force_reload=reload)
        values = {key: os.environ[key] for key in ENV_KEYS if key in os.environ}
        try:
            _settings = Settings(**values)
        except Exception as e:
            print(f"ERROR: Failed to initialize wrappedpg settings: {e}", file=sys.stderr)
            raise
        configure_logging(_settings.log_level, _settings.log_json)
    return _settings


__all__ = ["Settings", "get_settings", "load_env_if_present"]
