"""Domain models for asynchronous lesson generation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

LessonStatus = Literal["generating", "generated", "failed"]
LessonType = Literal["quiz", "tutorial", "test", "explanation", "auto"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"generated", "failed"})


def is_terminal_status(status: str | None) -> bool:
  """Return True once a lesson can no longer change status."""
  return status in TERMINAL_STATUSES


@dataclass
class LessonRecord:
  """Durable row describing one lesson generation job."""

  id: str
  title: str
  outline: str
  status: LessonStatus
  created_at: str
  updated_at: str
  generated_code: str | None = None
  error_message: str | None = None
  metadata: dict[str, Any] = field(default_factory=dict)

  @property
  def is_terminal(self) -> bool:
    return is_terminal_status(self.status)


@dataclass(frozen=True)
class GenerationOptions:
  """Caller-supplied knobs for one pipeline run."""

  lesson_type: LessonType = "auto"
  generate_images: bool = False
  image_count: int = 1


def derive_title(outline: str) -> str:
  """Use the first 50 characters of the outline as the lesson title."""
  stripped = outline.strip()
  if len(stripped) > 50:
    return f"{stripped[:50]}..."
  return stripped
