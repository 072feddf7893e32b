"""Stream event definitions and the SSE wire codec."""

from __future__ import annotations

import time

import msgspec

from app.jobs.models import LessonRecord


def now_ms() -> int:
  """Return the current wall-clock time in epoch milliseconds."""
  return int(time.time() * 1000)


class StreamEventBase(msgspec.Struct, frozen=True, kw_only=True, tag_field="type", rename="camel"):
  """Fields shared by every event published for one lesson."""

  lesson_id: str
  timestamp: int = msgspec.field(default_factory=now_ms)


class StatusEvent(StreamEventBase, frozen=True, kw_only=True, tag="status"):
  """Lesson status changed or a pipeline stage started."""

  status: str
  message: str | None = None


class CodeChunkEvent(StreamEventBase, frozen=True, kw_only=True, tag="code-chunk"):
  """Incremental code delta; consumers append it to their buffer."""

  code: str


class CodeUpdateEvent(StreamEventBase, frozen=True, kw_only=True, tag="code-update"):
  """Full-buffer replacement; consumers overwrite their buffer with it."""

  code: str


class CompleteEvent(StreamEventBase, frozen=True, kw_only=True, tag="complete"):
  """Terminal event carrying the authoritative code and final status."""

  status: str
  code: str | None = None
  error: str | None = None


class ErrorEvent(StreamEventBase, frozen=True, kw_only=True, tag="error"):
  """Terminal application error for a stream."""

  message: str


StreamEvent = StatusEvent | CodeChunkEvent | CodeUpdateEvent | CompleteEvent | ErrorEvent

_DECODER = msgspec.json.Decoder(StreamEvent)
_ENCODER = msgspec.json.Encoder()


def is_terminal_event(event: StreamEvent) -> bool:
  """Return True for events after which a stream carries nothing further."""
  return isinstance(event, CompleteEvent | ErrorEvent)


def event_type(event: StreamEvent) -> str:
  """Return the wire tag of an event, e.g. ``code-chunk``."""
  return str(event.__struct_config__.tag)


def encode_event(event: StreamEvent) -> bytes:
  """Encode an event as compact JSON."""
  return _ENCODER.encode(event)


def decode_event(payload: bytes | str) -> StreamEvent:
  """Decode one JSON payload into a typed event; raises msgspec.ValidationError/DecodeError."""
  return _DECODER.decode(payload)


def encode_sse(event: StreamEvent) -> bytes:
  """Frame an event as one Server-Sent Events message."""
  return b"data: " + encode_event(event) + b"\n\n"


def complete_from_record(record: LessonRecord) -> CompleteEvent:
  """Build the terminal event for a lesson whose stored status is final."""
  return CompleteEvent(lesson_id=record.id, status=record.status, code=record.generated_code, error=record.error_message)
