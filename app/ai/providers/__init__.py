"""Provider implementations."""

from app.ai.providers.base import ChunkCallback, GenerationContext, GenerationResult, ImageGenerator, LessonGenerator, TokenUsage
from app.ai.providers.openai_provider import OpenAIImageGenerator, OpenAILessonGenerator

__all__ = ["ChunkCallback", "GenerationContext", "GenerationResult", "ImageGenerator", "LessonGenerator", "TokenUsage", "OpenAIImageGenerator", "OpenAILessonGenerator"]
