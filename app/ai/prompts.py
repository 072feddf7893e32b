"""Prompt helpers for lesson generation and repair."""

from __future__ import annotations

import re
from collections.abc import Sequence
from functools import lru_cache
from pathlib import Path

from app.jobs.models import LessonType

_TEMPLATES_DIR = Path(__file__).with_name("templates")

# Ordered: the first matching group wins.
_LESSON_TYPE_KEYWORDS: tuple[tuple[LessonType, tuple[str, ...]], ...] = (
  ("quiz", ("quiz", "question", "multiple choice")),
  ("test", ("test", "exam", "assessment")),
  ("tutorial", ("tutorial", "how to", "step by step")),
  ("explanation", ("explain", "understand", "learn about")),
)

_CODE_FENCE = re.compile(r"```(?:typescript|tsx|ts|javascript|jsx|js)?\s*\n?")


@lru_cache(maxsize=8)
def _load_prompt(name: str) -> str:
  """Read a prompt template shipped alongside this module."""
  return (_TEMPLATES_DIR / name).read_text(encoding="utf-8")


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with their values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)

  return rendered


def detect_lesson_type(outline: str) -> LessonType:
  """Guess the lesson type from keywords in the outline."""
  lowered = outline.lower()
  for lesson_type, keywords in _LESSON_TYPE_KEYWORDS:
    if any(keyword in lowered for keyword in keywords):
      return lesson_type
  return "auto"


def resolve_lesson_type(outline: str, lesson_type: LessonType = "auto") -> LessonType:
  """Return the explicit lesson type, or the detected one when `auto`."""
  if lesson_type != "auto":
    return lesson_type
  return detect_lesson_type(outline)


def create_lesson_prompt(outline: str, lesson_type: LessonType = "auto", image_urls: Sequence[str] = ()) -> str:
  """Render the generation prompt for a lesson outline."""
  resolved = resolve_lesson_type(outline, lesson_type)
  focus = f"Focus on creating a {resolved} with appropriate structure and features." if resolved != "auto" else ""

  # Offer generated illustrations to the model so it can embed them.
  images = ""
  if image_urls:
    listed = "\n".join(f"- {url}" for url in image_urls)
    images = f"\nAVAILABLE IMAGES (use them with <img> tags and descriptive alt text):\n{listed}\n"

  template = _load_prompt("lesson.md")
  return _replace_placeholders(template, {"OUTLINE": outline, "LESSON_TYPE": resolved.upper(), "TYPE_FOCUS": focus, "IMAGES": images}).strip()


def create_validation_prompt(code: str, errors: Sequence[str]) -> str:
  """Render the repair prompt for code that failed validation."""
  template = _load_prompt("fix.md")
  return _replace_placeholders(template, {"ERRORS": "\n".join(errors), "CODE": code}).strip()


def strip_code_fences(text: str) -> str:
  """Remove markdown code fences the model adds despite instructions."""
  return _CODE_FENCE.sub("", text).strip()
