"""Shared FastAPI dependencies for storage, streaming and the generation pipeline."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, status

from app.ai.providers.openai_provider import OpenAIImageGenerator, OpenAILessonGenerator
from app.config import Settings, get_settings
from app.jobs.pipeline import LessonGenerationPipeline
from app.storage.lessons_repo import LessonsRepository
from app.storage.postgres_lessons_repo import PostgresLessonsRepository
from app.streaming.broker import StreamEventBroker

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_stream_broker() -> StreamEventBroker:
  """Return the process-wide broker; every pipeline and stream must share it."""
  settings = get_settings()
  return StreamEventBroker(grace_seconds=settings.broker_grace_seconds)


def get_lessons_repo() -> LessonsRepository:
  """Return the Postgres repository, or 503 when the database is not configured."""
  try:
    return PostgresLessonsRepository()
  except RuntimeError as exc:
    logger.error("Lesson storage unavailable: %s", exc)
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Lesson storage is not configured.") from exc


def get_generation_pipeline(
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  broker: StreamEventBroker = Depends(get_stream_broker),  # noqa: B008
) -> LessonGenerationPipeline:
  """Build a pipeline wired to the OpenAI generators."""
  if not settings.openai_api_key:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Lesson generation is not configured.")

  generator = OpenAILessonGenerator(settings.generation_model, api_key=settings.openai_api_key)
  image_generator = OpenAIImageGenerator(settings.image_model, api_key=settings.openai_api_key) if settings.image_generation_enabled else None
  return LessonGenerationPipeline(
    repo=repo,
    broker=broker,
    generator=generator,
    image_generator=image_generator,
    image_generation_enabled=settings.image_generation_enabled,
    max_attempts=settings.generation_max_attempts,
    backoff_base=settings.generation_backoff_seconds,
    backoff_ceiling=settings.generation_backoff_max_seconds,
  )
