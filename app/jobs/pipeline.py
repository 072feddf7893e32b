"""Lesson generation pipeline: imaging, generation, validation, auto-fix and persistence."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import Any

from app.ai.backoff import RetryExhaustedError, retry_with_backoff
from app.ai.providers.base import GenerationContext, GenerationResult, ImageGenerator, LessonGenerator
from app.ai.prompts import resolve_lesson_type
from app.ai.validator import ValidationResult, validate_lesson_code
from app.jobs.models import GenerationOptions, LessonRecord, LessonStatus
from app.storage.lessons_repo import LessonsRepository
from app.streaming.broker import StreamEventBroker
from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, StatusEvent, complete_from_record
from app.utils.ids import generate_trace_id

logger = logging.getLogger(__name__)


class PipelineError(Exception):
  """Base class for pipeline failures that are not model or validation outcomes."""


class LessonNotFoundError(PipelineError):
  """The lesson row vanished or never existed."""

  def __init__(self, lesson_id: str) -> None:
    super().__init__(f"Lesson {lesson_id} not found")
    self.lesson_id = lesson_id


@dataclass(frozen=True)
class PipelineResult:
  """Terminal outcome of one run, mirroring the stored lesson."""

  lesson_id: str
  status: str
  code: str | None = None
  error: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)

  @classmethod
  def from_record(cls, record: LessonRecord) -> PipelineResult:
    return cls(lesson_id=record.id, status=record.status, code=record.generated_code, error=record.error_message, metadata=dict(record.metadata))


class LessonGenerationPipeline:
  """Drive one lesson from `generating` to `generated` or `failed`.

  Progress is published to the broker as it happens; the lesson row is only
  written at the terminal transition. Generation is retried with backoff,
  validation failures get exactly one auto-fix attempt, and imaging never
  fails the run. Expected failures end in a `failed` row and a returned
  result; unexpected exceptions are recorded the same way and re-raised.
  """

  def __init__(
    self,
    *,
    repo: LessonsRepository,
    broker: StreamEventBroker,
    generator: LessonGenerator,
    image_generator: ImageGenerator | None = None,
    image_generation_enabled: bool = True,
    max_attempts: int = 3,
    backoff_base: float = 1.0,
    backoff_ceiling: float = 8.0,
    validator: Callable[[str], ValidationResult] = validate_lesson_code,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ) -> None:
    self._repo = repo
    self._broker = broker
    self._generator = generator
    self._image_generator = image_generator
    self._image_generation_enabled = image_generation_enabled
    self._max_attempts = max_attempts
    self._backoff_base = backoff_base
    self._backoff_ceiling = backoff_ceiling
    self._validator = validator
    self._sleep = sleep

  async def run(self, lesson_id: str, outline: str, options: GenerationOptions | None = None) -> PipelineResult:
    """Run the pipeline for an existing lesson row."""
    options = options or GenerationOptions()
    record = await self._repo.get_lesson(lesson_id)
    if record is None:
      raise LessonNotFoundError(lesson_id)

    # Terminal rows never move again.
    if record.is_terminal:
      logger.info("Skipping pipeline for terminal lesson_id=%s status=%s", lesson_id, record.status)
      return PipelineResult.from_record(record)

    lesson_type = resolve_lesson_type(outline, options.lesson_type)
    trace_id = generate_trace_id(lesson_id)
    metadata: dict[str, Any] = dict(record.metadata)
    metadata.update({"trace_id": trace_id, "lesson_type": lesson_type})
    context = GenerationContext(lesson_id=lesson_id, trace_id=trace_id, lesson_type=lesson_type)
    logger.info("Pipeline started lesson_id=%s trace_id=%s lesson_type=%s", lesson_id, trace_id, lesson_type)

    try:
      return await self._run_stages(lesson_id, outline, options, context, metadata)
    except Exception as exc:
      message = str(exc) or type(exc).__name__
      logger.error("Pipeline crashed lesson_id=%s trace_id=%s", lesson_id, trace_id, exc_info=True)
      await self._fail_best_effort(lesson_id, message, metadata)
      raise

  async def _run_stages(self, lesson_id: str, outline: str, options: GenerationOptions, context: GenerationContext, metadata: dict[str, Any]) -> PipelineResult:
    started = time.monotonic()

    # Imaging is optional and best-effort.
    image_urls = await self._generate_images(lesson_id, outline, options, metadata)
    context = replace(context, image_urls=tuple(image_urls))

    # Generation, the only retried step.
    self._status(lesson_id, "generating", "Starting code generation...")
    try:
      result, retry_count = await self._generate_with_retries(outline, context)
    except RetryExhaustedError as exc:
      metadata["retry_count"] = exc.retry_count
      logger.warning("Generation exhausted lesson_id=%s attempts=%s error=%s", lesson_id, exc.attempts, exc.last_error)
      return await self._fail(lesson_id, f"Generation failed after {exc.attempts} attempts: {exc}", metadata)

    metadata["retry_count"] = retry_count
    if result.model:
      metadata["model"] = result.model

    # Validation.
    self._status(lesson_id, "validating", "Validating generated code...")
    validation = self._validator(result.code)
    metadata["validation_warnings"] = list(validation.warnings)
    usage = result.usage

    if validation.is_valid:
      # Validators may return the code they checked; otherwise keep what was generated.
      final_code = validation.code or result.code
      metadata["auto_fix_applied"] = False
      metadata["auto_fix_outcome"] = "not_needed"
    elif not validation.errors:
      metadata["auto_fix_applied"] = False
      metadata["auto_fix_outcome"] = "not_attempted"
      return await self._fail(lesson_id, "Validation failed without reporting any errors", metadata)
    else:
      # Exactly one auto-fix attempt.
      metadata["validation_errors"] = list(validation.errors)
      original_errors = "; ".join(validation.errors)
      self._status(lesson_id, "auto-fixing", f"Fixing {len(validation.errors)} validation error(s)...")
      try:
        fixed = await self._generator.fix(result.code, validation.errors, context)
      except Exception as exc:  # noqa: BLE001
        logger.warning("Auto-fix raised lesson_id=%s error=%s", lesson_id, exc)
        metadata["auto_fix_applied"] = False
        metadata["auto_fix_outcome"] = "fix_raised"
        return await self._fail(lesson_id, f"Validation failed: {original_errors}. Auto-fix failed: {exc}", metadata)

      usage = usage + fixed.usage
      self._status(lesson_id, "validating", "Re-validating fixed code...")
      revalidation = self._validator(fixed.code)
      if not revalidation.is_valid:
        metadata["auto_fix_applied"] = False
        metadata["auto_fix_outcome"] = "fix_failed_validation"
        metadata["fix_validation_errors"] = list(revalidation.errors)
        remaining = "; ".join(revalidation.errors) or "no errors reported"
        return await self._fail(lesson_id, f"Validation failed: {original_errors}. Auto-fix did not resolve: {remaining}", metadata)

      metadata["auto_fix_applied"] = True
      metadata["auto_fix_outcome"] = "fixed"
      metadata["validation_warnings"] = list(revalidation.warnings)
      final_code = revalidation.code or fixed.code
      # Live buffers hold the unfixed code; replace it wholesale.
      self._broker.emit(CodeUpdateEvent(lesson_id=lesson_id, code=final_code))

    # Saving: the one authoritative write of the finished lesson.
    self._status(lesson_id, "saving", "Saving lesson...")
    metadata["prompt_tokens"] = usage.prompt_tokens
    metadata["completion_tokens"] = usage.completion_tokens
    metadata["generation_time_ms"] = int((time.monotonic() - started) * 1000)
    record = await self._write_terminal(lesson_id, status="generated", generated_code=final_code, metadata=metadata)
    logger.info("Pipeline finished lesson_id=%s status=%s", lesson_id, record.status)
    return PipelineResult.from_record(record)

  async def _generate_images(self, lesson_id: str, outline: str, options: GenerationOptions, metadata: dict[str, Any]) -> list[str]:
    image_generator = self._image_generator
    enabled = options.generate_images and self._image_generation_enabled and image_generator is not None
    metadata["image_generation_enabled"] = enabled
    metadata["generated_images"] = []
    if not enabled or image_generator is None:
      return []

    self._status(lesson_id, "imaging", "Generating lesson images...")
    try:
      images = await image_generator.generate_images(outline, options.image_count)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Image generation failed lesson_id=%s error=%s; continuing without images", lesson_id, exc)
      return []

    metadata["generated_images"] = [image.to_metadata() for image in images]
    return [image.url for image in images]

  async def _generate_with_retries(self, outline: str, context: GenerationContext) -> tuple[GenerationResult, int]:
    lesson_id = context.lesson_id
    emitted = False

    def on_chunk(delta: str) -> None:
      nonlocal emitted
      emitted = True
      self._broker.emit(CodeChunkEvent(lesson_id=lesson_id, code=delta))

    async def attempt(number: int) -> GenerationResult:
      nonlocal emitted
      if emitted:
        # Discard the partial output of the failed attempt before streaming again.
        self._broker.clear_cache(lesson_id)
        self._broker.emit(CodeUpdateEvent(lesson_id=lesson_id, code=""))
        emitted = False
      return await self._generator.generate(outline, replace(context, attempt=number), on_chunk)

    return await retry_with_backoff(attempt, max_attempts=self._max_attempts, base=self._backoff_base, ceiling=self._backoff_ceiling, sleep=self._sleep)

  async def _fail(self, lesson_id: str, message: str, metadata: dict[str, Any]) -> PipelineResult:
    record = await self._write_terminal(lesson_id, status="failed", error_message=message, metadata=metadata)
    logger.info("Pipeline failed lesson_id=%s error=%s", lesson_id, message)
    return PipelineResult.from_record(record)

  async def _write_terminal(self, lesson_id: str, *, status: LessonStatus, **fields: Any) -> LessonRecord:
    """Write a terminal status unless another writer got there first, then announce what is stored."""
    record = await self._repo.complete_lesson(lesson_id, status=status, **fields)
    if record is None:
      raise LessonNotFoundError(lesson_id)
    if record.status != status:
      logger.warning("Lesson already terminal lesson_id=%s status=%s; kept stored outcome", lesson_id, record.status)

    self._broker.emit(complete_from_record(record))
    return record

  async def _fail_best_effort(self, lesson_id: str, message: str, metadata: dict[str, Any]) -> None:
    try:
      record = await self._repo.complete_lesson(lesson_id, status="failed", error_message=message, metadata=metadata)
    except Exception:  # noqa: BLE001
      logger.error("Failed to record pipeline failure lesson_id=%s", lesson_id, exc_info=True)
      return

    # Observers only hear a terminal outcome the store agrees with; polling reconciles the rest.
    if record is None or not record.is_terminal:
      logger.warning("No terminal record to announce lesson_id=%s", lesson_id)
      return
    self._broker.emit(complete_from_record(record))

  def _status(self, lesson_id: str, status: str, message: str) -> None:
    self._broker.emit(StatusEvent(lesson_id=lesson_id, status=status, message=message))
