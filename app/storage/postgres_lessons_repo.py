"""Postgres-backed repository for lessons using SQLAlchemy."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database import get_session_factory
from app.jobs.models import LessonRecord, LessonStatus, is_terminal_status
from app.schema.lessons import Lesson
from app.storage.lessons_repo import LessonsRepository


def _now_iso() -> str:
  return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


class PostgresLessonsRepository(LessonsRepository):
  """Persist lessons to Postgres using SQLAlchemy."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
    self._session_factory = session_factory or get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def create_lesson(self, record: LessonRecord) -> LessonRecord:
    async with self._session_factory() as session:
      row = Lesson(
        id=record.id,
        title=record.title,
        outline=record.outline,
        status=record.status,
        generated_code=record.generated_code,
        error_message=record.error_message,
        metadata_json=dict(record.metadata),
        created_at=record.created_at,
        updated_at=record.updated_at,
      )
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Lesson, lesson_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_lesson(
    self,
    lesson_id: str,
    *,
    title: str | None = None,
    status: LessonStatus | None = None,
    generated_code: str | None = None,
    error_message: str | None = None,
    metadata: dict[str, Any] | None = None,
  ) -> LessonRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Lesson, lesson_id)
      if row is None:
        return None
      if title is not None:
        row.title = title
      if status is not None:
        row.status = status
      if generated_code is not None:
        row.generated_code = generated_code
      if error_message is not None:
        row.error_message = error_message
      if metadata is not None:
        row.metadata_json = dict(metadata)
      row.updated_at = _now_iso()
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def complete_lesson(
    self,
    lesson_id: str,
    *,
    status: LessonStatus,
    generated_code: str | None = None,
    error_message: str | None = None,
    metadata: dict[str, Any] | None = None,
  ) -> LessonRecord | None:
    async with self._session_factory() as session:
      # Lock the row so concurrent terminal writers serialize on it.
      stmt = select(Lesson).where(Lesson.id == lesson_id).with_for_update()
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        return None
      if is_terminal_status(row.status):
        return self._model_to_record(row)

      row.status = status
      if generated_code is not None:
        row.generated_code = generated_code
      if error_message is not None:
        row.error_message = error_message
      if metadata is not None:
        row.metadata_json = dict(metadata)
      row.updated_at = _now_iso()
      session.add(row)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def delete_lesson(self, lesson_id: str) -> bool:
    async with self._session_factory() as session:
      row = await session.get(Lesson, lesson_id)
      if row is None:
        return False
      await session.delete(row)
      await session.commit()
      return True

  async def list_lessons(self, limit: int = 50, offset: int = 0) -> list[LessonRecord]:
    async with self._session_factory() as session:
      stmt = select(Lesson).order_by(Lesson.created_at.desc()).limit(limit).offset(offset)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  def _model_to_record(self, row: Lesson) -> LessonRecord:
    return LessonRecord(
      id=row.id,
      title=row.title,
      outline=row.outline,
      status=row.status,  # type: ignore[arg-type]
      created_at=row.created_at,
      updated_at=row.updated_at,
      generated_code=row.generated_code,
      error_message=row.error_message,
      metadata=dict(row.metadata_json or {}),
    )
