"""In-memory collaborators used across the test suites."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from app.ai.images import GeneratedImage
from app.ai.providers.base import ChunkCallback, GenerationContext, GenerationResult, TokenUsage
from app.jobs.models import LessonRecord, LessonStatus

VALID_CODE = """import React, { useState } from 'react';

export default function GeneratedLesson() {
  const [step, setStep] = useState(0);
  return (
    <main className="p-8">
      <button onClick={() => setStep(step + 1)}>Next</button>
    </main>
  );
}
"""


class InMemoryLessonsRepo:
  """In-memory lessons repository mirroring the partial-update contract."""

  def __init__(self) -> None:
    self._lessons: dict[str, LessonRecord] = {}
    self.update_calls: list[dict[str, Any]] = []

  def add(self, lesson_id: str = "lesson-1", *, status: LessonStatus = "generating", outline: str = "Explain the water cycle to kids", **kwargs: Any) -> LessonRecord:
    record = LessonRecord(id=lesson_id, title=outline[:50], outline=outline, status=status, created_at="2026-01-01T00:00:00Z", updated_at="2026-01-01T00:00:00Z", **kwargs)
    self._lessons[lesson_id] = record
    return record

  async def create_lesson(self, record: LessonRecord) -> LessonRecord:
    self._lessons[record.id] = record
    return record

  async def get_lesson(self, lesson_id: str) -> LessonRecord | None:
    return self._lessons.get(lesson_id)

  async def update_lesson(self, lesson_id: str, **kwargs: Any) -> LessonRecord | None:
    self.update_calls.append({"lesson_id": lesson_id, **kwargs})
    record = self._lessons.get(lesson_id)
    if record is None:
      return None

    # Apply partial updates to mimic repository behavior.
    updates = {key: value for key, value in kwargs.items() if value is not None}
    if "metadata" in updates:
      updates["metadata"] = dict(updates["metadata"])
    updated = replace(record, updated_at="2026-01-01T00:00:01Z", **updates)
    self._lessons[lesson_id] = updated
    return updated

  async def complete_lesson(self, lesson_id: str, *, status: LessonStatus, **kwargs: Any) -> LessonRecord | None:
    record = self._lessons.get(lesson_id)
    if record is None or record.is_terminal:
      return record
    return await self.update_lesson(lesson_id, status=status, **kwargs)

  async def delete_lesson(self, lesson_id: str) -> bool:
    return self._lessons.pop(lesson_id, None) is not None

  async def list_lessons(self, limit: int = 50, offset: int = 0) -> list[LessonRecord]:
    records = sorted(self._lessons.values(), key=lambda record: record.created_at, reverse=True)
    return records[offset : offset + limit]


class FakeScheduler:
  """Collects delayed callbacks so tests decide when they fire."""

  def __init__(self) -> None:
    self.pending: list[tuple[float, Callable[[], None]]] = []

  def __call__(self, delay: float, fn: Callable[[], None]) -> None:
    self.pending.append((delay, fn))

  def run_all(self) -> None:
    pending, self.pending = self.pending, []
    for _delay, fn in pending:
      fn()


class RecordingSleep:
  """Async sleep replacement that records delays and returns immediately."""

  def __init__(self) -> None:
    self.delays: list[float] = []

  async def __call__(self, delay: float) -> None:
    self.delays.append(delay)
    await asyncio.sleep(0)


@dataclass
class ScriptedAttempt:
  """One scripted `generate` call: chunks to stream, then return code or raise."""

  chunks: Sequence[str] = ()
  code: str | None = None
  error: Exception | None = None
  usage: TokenUsage = TokenUsage(prompt_tokens=100, completion_tokens=50)


class FakeLessonGenerator:
  """LessonGenerator double driven by a script of attempts and fix results."""

  def __init__(self, attempts: Sequence[ScriptedAttempt], fix_result: GenerationResult | Exception | None = None) -> None:
    self._attempts = list(attempts)
    self._fix_result = fix_result
    self.contexts: list[GenerationContext] = []
    self.fix_calls: list[tuple[str, list[str]]] = []
    self.before_return: Callable[[], Any] | None = None

  async def generate(self, outline: str, context: GenerationContext, on_chunk: ChunkCallback) -> GenerationResult:
    self.contexts.append(context)
    attempt = self._attempts.pop(0)
    for chunk in attempt.chunks:
      on_chunk(chunk)
      await asyncio.sleep(0)
    if attempt.error is not None:
      raise attempt.error
    if self.before_return is not None:
      await self.before_return()
    code = attempt.code if attempt.code is not None else "".join(attempt.chunks)
    return GenerationResult(code=code, usage=attempt.usage, model="fake-model")

  async def fix(self, code: str, errors: Sequence[str], context: GenerationContext) -> GenerationResult:
    self.fix_calls.append((code, list(errors)))
    if isinstance(self._fix_result, Exception):
      raise self._fix_result
    assert self._fix_result is not None
    return self._fix_result


class FakeImageGenerator:
  def __init__(self, *, error: Exception | None = None) -> None:
    self._error = error
    self.calls: list[tuple[str, int]] = []

  async def generate_images(self, outline: str, count: int) -> list[GeneratedImage]:
    self.calls.append((outline, count))
    if self._error is not None:
      raise self._error
    return [GeneratedImage(url="https://images.test/water.png", prompt="A diagram of the water cycle", size="1024x1024", generated_at="2026-01-01T00:00:00Z")]
