from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr

from app.jobs.models import LessonRecord

OUTLINE_MIN_CHARS = 10
OUTLINE_MAX_CHARS = 5000


class CreateLessonRequest(BaseModel):
  """Request payload for starting lesson generation."""

  outline: StrictStr = Field(min_length=OUTLINE_MIN_CHARS, max_length=OUTLINE_MAX_CHARS, description="What the lesson should teach.", examples=["A 10 question quiz about the solar system"])
  lesson_type: Literal["quiz", "tutorial", "test", "explanation", "auto"] = Field(default="auto", description="Lesson format; `auto` detects it from the outline.")
  generate_images: StrictBool = Field(default=False, description="Generate one illustration before writing the lesson.")
  model_config = ConfigDict(extra="forbid")


class LessonCreated(BaseModel):
  id: StrictStr
  status: StrictStr
  message: StrictStr


class CreateLessonResponse(BaseModel):
  """Response payload returned when generation starts."""

  lesson: LessonCreated


class LessonResponse(BaseModel):
  """A stored lesson."""

  id: StrictStr
  title: StrictStr
  outline: StrictStr
  status: StrictStr
  generated_code: StrictStr | None = None
  error_message: StrictStr | None = None
  metadata: dict[str, Any] = Field(default_factory=dict)
  created_at: StrictStr
  updated_at: StrictStr

  @classmethod
  def from_record(cls, record: LessonRecord) -> LessonResponse:
    return cls(
      id=record.id,
      title=record.title,
      outline=record.outline,
      status=record.status,
      generated_code=record.generated_code,
      error_message=record.error_message,
      metadata=record.metadata,
      created_at=record.created_at,
      updated_at=record.updated_at,
    )


class LessonEnvelope(BaseModel):
  lesson: LessonResponse


class LessonListResponse(BaseModel):
  lessons: list[LessonResponse]


class MessageResponse(BaseModel):
  message: StrictStr
