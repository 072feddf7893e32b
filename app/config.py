"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the lesson streaming service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  openai_api_key: str | None
  generation_model: str
  image_model: str
  image_generation_enabled: bool
  generation_max_attempts: int
  generation_backoff_seconds: float
  generation_backoff_max_seconds: float
  stream_poll_seconds: float
  stream_max_lifetime_seconds: float
  stream_close_delay_seconds: float
  broker_grace_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("LESSONS_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("LESSONS_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("LESSONS_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("LESSONS_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("LESSONS_DEBUG"))

  log_max_bytes = _positive_int("LESSONS_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("LESSONS_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("LESSONS_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Allow opt-in logging of 4xx HTTPExceptions for diagnostics.
  log_http_4xx = _parse_bool(os.getenv("LESSONS_LOG_HTTP_4XX"))

  # Generation retries are bounded; the backoff ceiling must not undercut the base delay.
  generation_max_attempts = _positive_int("LESSONS_GENERATION_MAX_ATTEMPTS", "3")
  generation_backoff_seconds = _positive_float("LESSONS_GENERATION_BACKOFF_SECONDS", "1")
  generation_backoff_max_seconds = _positive_float("LESSONS_GENERATION_BACKOFF_MAX_SECONDS", "8")
  if generation_backoff_max_seconds < generation_backoff_seconds:
    raise ValueError("LESSONS_GENERATION_BACKOFF_MAX_SECONDS must be >= LESSONS_GENERATION_BACKOFF_SECONDS.")

  # Stream timings mirror the transport close rules.
  stream_poll_seconds = _positive_float("LESSONS_STREAM_POLL_SECONDS", "2")
  stream_max_lifetime_seconds = _positive_float("LESSONS_STREAM_MAX_LIFETIME_SECONDS", "1800")
  stream_close_delay_seconds = _positive_float("LESSONS_STREAM_CLOSE_DELAY_SECONDS", "0.5")
  broker_grace_seconds = _positive_float("LESSONS_BROKER_GRACE_SECONDS", "1")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("LESSONS_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=log_http_4xx,
    pg_dsn=os.getenv("LESSONS_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=int(os.getenv("LESSONS_PG_CONNECT_TIMEOUT", "5")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    generation_model=(os.getenv("LESSONS_GENERATION_MODEL") or "gpt-5").strip(),
    image_model=(os.getenv("LESSONS_IMAGE_MODEL") or "dall-e-3").strip(),
    image_generation_enabled=_parse_bool(os.getenv("LESSONS_IMAGE_GENERATION_ENABLED")),
    generation_max_attempts=generation_max_attempts,
    generation_backoff_seconds=generation_backoff_seconds,
    generation_backoff_max_seconds=generation_backoff_max_seconds,
    stream_poll_seconds=stream_poll_seconds,
    stream_max_lifetime_seconds=stream_max_lifetime_seconds,
    stream_close_delay_seconds=stream_close_delay_seconds,
    broker_grace_seconds=broker_grace_seconds,
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations and offline scripts don't require unrelated env vars.
  debug = _parse_bool(os.getenv("LESSONS_DEBUG"))
  pg_connect_timeout = int(os.getenv("LESSONS_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("LESSONS_PG_CONNECT_TIMEOUT must be a positive integer.")

  pg_dsn = os.getenv("LESSONS_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
