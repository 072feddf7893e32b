"""Lesson service helpers shared by the API routes."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from fastapi import BackgroundTasks, HTTPException, status

from app.api.models import CreateLessonRequest, CreateLessonResponse, LessonCreated
from app.jobs.models import GenerationOptions, LessonRecord, derive_title
from app.jobs.pipeline import LessonGenerationPipeline
from app.storage.lessons_repo import LessonsRepository
from app.utils.ids import generate_lesson_id

logger = logging.getLogger(__name__)

_LESSON_NOT_FOUND_MSG = "Lesson not found."
_DATE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def _now_iso() -> str:
  return datetime.now(UTC).strftime(_DATE_FORMAT)


async def run_generation_task(pipeline: LessonGenerationPipeline, lesson_id: str, outline: str, options: GenerationOptions) -> None:
  """Run the pipeline in the background.

  A crash has already been recorded on the lesson by the pipeline, so it is
  logged here and not retried: a second run would see a terminal row and stop.
  """
  try:
    result = await pipeline.run(lesson_id, outline, options)
  except Exception:  # noqa: BLE001
    logger.error("Background generation crashed lesson_id=%s", lesson_id, exc_info=True)
    return
  logger.info("Background generation finished lesson_id=%s status=%s", lesson_id, result.status)


async def create_lesson(request: CreateLessonRequest, repo: LessonsRepository, pipeline: LessonGenerationPipeline, background_tasks: BackgroundTasks) -> CreateLessonResponse:
  """Persist a new lesson in `generating` state and schedule its pipeline run."""
  now = _now_iso()
  record = LessonRecord(id=generate_lesson_id(), title=derive_title(request.outline), outline=request.outline, status="generating", created_at=now, updated_at=now)
  record = await repo.create_lesson(record)

  options = GenerationOptions(lesson_type=request.lesson_type, generate_images=request.generate_images)
  background_tasks.add_task(run_generation_task, pipeline, record.id, record.outline, options)
  logger.info("Scheduled lesson generation lesson_id=%s", record.id)
  return CreateLessonResponse(lesson=LessonCreated(id=record.id, status="generating", message="Lesson generation started"))


async def get_lesson_or_404(repo: LessonsRepository, lesson_id: str) -> LessonRecord:
  record = await repo.get_lesson(lesson_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_LESSON_NOT_FOUND_MSG)
  return record


async def delete_lesson(repo: LessonsRepository, lesson_id: str) -> None:
  deleted = await repo.delete_lesson(lesson_id)
  if not deleted:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_LESSON_NOT_FOUND_MSG)
