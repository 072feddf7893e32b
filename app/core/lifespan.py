import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import dispose_db_engine
from app.core.logging import _initialize_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Set up logging once uvicorn is running and release the database pool on shutdown."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except RuntimeError:
    # Console logging still works when the log directory is not writable.
    logger.warning("Log file setup failed; continuing with default handlers.", exc_info=True)

  if settings.pg_dsn:
    logger.info("Lesson storage DSN=%s", _redact_dsn(settings.pg_dsn))
  else:
    logger.warning("LESSONS_PG_DSN is not set; lesson endpoints will return 503.")

  if not settings.openai_api_key:
    logger.warning("OPENAI_API_KEY is not set; lesson generation is disabled.")

  yield

  await dispose_db_engine()
  logger.info("Shutdown complete.")


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
