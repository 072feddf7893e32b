"""Contracts for the model collaborators used by the lesson pipeline."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

from app.ai.images import GeneratedImage
from app.jobs.models import LessonType

ChunkCallback = Callable[[str], None]


@dataclass(frozen=True)
class TokenUsage:
  prompt_tokens: int = 0
  completion_tokens: int = 0

  def __add__(self, other: TokenUsage) -> TokenUsage:
    return TokenUsage(prompt_tokens=self.prompt_tokens + other.prompt_tokens, completion_tokens=self.completion_tokens + other.completion_tokens)

  @property
  def total_tokens(self) -> int:
    return self.prompt_tokens + self.completion_tokens


@dataclass(frozen=True)
class GenerationResult:
  """Code produced by one model call plus its token usage."""

  code: str
  usage: TokenUsage = TokenUsage()
  model: str | None = None


@dataclass(frozen=True)
class GenerationContext:
  """Identifiers and options passed to every model call of one pipeline run."""

  lesson_id: str
  trace_id: str
  lesson_type: LessonType = "auto"
  attempt: int = 1
  image_urls: tuple[str, ...] = ()


class LessonGenerator(Protocol):
  """Produces lesson code, streaming deltas through `on_chunk` as they arrive."""

  async def generate(self, outline: str, context: GenerationContext, on_chunk: ChunkCallback) -> GenerationResult:
    """Generate a lesson component for the outline."""

  async def fix(self, code: str, errors: Sequence[str], context: GenerationContext) -> GenerationResult:
    """Return a corrected version of code that failed validation."""


class ImageGenerator(Protocol):
  """Produces illustrations for a lesson outline."""

  async def generate_images(self, outline: str, count: int) -> list[GeneratedImage]:
    """Generate up to `count` images; may raise on provider failure."""
