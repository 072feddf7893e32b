"""Storage interface for lesson records."""

from __future__ import annotations

from typing import Any, Protocol

from app.jobs.models import LessonRecord, LessonStatus


class LessonsRepository(Protocol):
  """Repository contract for lesson persistence.

  `update_lesson` is a partial patch: only fields passed as non-None are
  written, and `metadata` replaces the stored map wholesale.
  """

  async def create_lesson(self, record: LessonRecord) -> LessonRecord:
    """Persist an initial lesson record."""

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    """Fetch a lesson by identifier."""

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
    """Apply partial updates to a lesson."""

  async def complete_lesson(
    self,
    lesson_id: str,
    *,
    status: LessonStatus,
    generated_code: str | None = None,
    error_message: str | None = None,
    metadata: dict[str, Any] | None = None,
  ) -> LessonRecord | None:
    """Atomically move a lesson to a terminal status.

    Rows that are already terminal are left untouched. Returns the stored
    record either way, or None when the lesson does not exist.
    """

  async def delete_lesson(self, lesson_id: str) -> bool:
    """Delete a lesson, returning False when it did not exist."""

  async def list_lessons(self, limit: int = 50, offset: int = 0) -> list[LessonRecord]:
    """Return lessons ordered newest first."""
