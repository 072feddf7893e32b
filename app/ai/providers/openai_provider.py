"""OpenAI-backed lesson and image generators."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Final

from openai import AsyncOpenAI

from app.ai.images import GeneratedImage, select_image_prompts
from app.ai.prompts import create_lesson_prompt, create_validation_prompt, strip_code_fences
from app.ai.providers.base import ChunkCallback, GenerationContext, GenerationResult, TokenUsage

logger = logging.getLogger(__name__)


def _usage_from(raw: object | None) -> TokenUsage:
  if raw is None:
    return TokenUsage()
  return TokenUsage(prompt_tokens=getattr(raw, "prompt_tokens", 0) or 0, completion_tokens=getattr(raw, "completion_tokens", 0) or 0)


class OpenAILessonGenerator:
  """Generate lesson components with streaming chat completions."""

  def __init__(self, model: str, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
    self.model = model
    if client is None:
      if not api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")
      client = AsyncOpenAI(api_key=api_key)
    self._client = client

  async def generate(self, outline: str, context: GenerationContext, on_chunk: ChunkCallback) -> GenerationResult:
    """Stream a lesson component, forwarding every content delta to on_chunk."""
    prompt = create_lesson_prompt(outline, context.lesson_type, context.image_urls)
    logger.info("Starting streaming generation lesson_id=%s trace_id=%s attempt=%s", context.lesson_id, context.trace_id, context.attempt)

    stream = await self._client.chat.completions.create(model=self.model, messages=[{"role": "user", "content": prompt}], stream=True, stream_options={"include_usage": True})

    parts: list[str] = []
    usage = TokenUsage()
    async for chunk in stream:
      # The final chunk carries usage and no choices.
      if chunk.usage is not None:
        usage = _usage_from(chunk.usage)
      if not chunk.choices:
        continue
      delta = chunk.choices[0].delta.content
      if delta:
        parts.append(delta)
        on_chunk(delta)

    code = strip_code_fences("".join(parts))
    logger.info("Streaming complete lesson_id=%s chars=%s", context.lesson_id, len(code))
    return GenerationResult(code=code, usage=usage, model=self.model)

  async def fix(self, code: str, errors: Sequence[str], context: GenerationContext) -> GenerationResult:
    """Ask the model to repair code that failed validation."""
    prompt = create_validation_prompt(code, errors)
    logger.info("Requesting validation fix lesson_id=%s errors=%s", context.lesson_id, len(errors))

    response = await self._client.chat.completions.create(model=self.model, messages=[{"role": "user", "content": prompt}])

    content = response.choices[0].message.content or ""
    return GenerationResult(code=strip_code_fences(content), usage=_usage_from(response.usage), model=self.model)


class OpenAIImageGenerator:
  """Render lesson illustrations with the OpenAI images API."""

  _SIZE: Final[str] = "1024x1024"

  def __init__(self, model: str, api_key: str | None = None, client: AsyncOpenAI | None = None) -> None:
    self.model = model
    if client is None:
      if not api_key:
        raise ValueError("OPENAI_API_KEY environment variable is required")
      client = AsyncOpenAI(api_key=api_key)
    self._client = client

  async def generate_images(self, outline: str, count: int) -> list[GeneratedImage]:
    images: list[GeneratedImage] = []
    for prompt in select_image_prompts(outline, count):
      response = await self._client.images.generate(model=self.model, prompt=prompt, n=1, size=self._SIZE, quality="standard", style="vivid")
      if not response.data or not response.data[0].url:
        raise RuntimeError(f"No image URL returned by {self.model}")

      image = response.data[0]
      images.append(GeneratedImage(url=image.url, prompt=prompt, size=self._SIZE, generated_at=datetime.now(UTC).isoformat(), revised_prompt=image.revised_prompt))

    logger.info("Generated %s image(s) for lesson", len(images))
    return images
