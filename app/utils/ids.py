"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_lesson_id() -> str:
  """Return a new lesson identifier."""
  return str(uuid.uuid4())


def generate_trace_id(lesson_id: str) -> str:
  """Return a trace id that correlates one pipeline run with its lesson."""
  return f"lesson-{lesson_id}-{uuid.uuid4().hex[:8]}"
