"""Async client that follows a lesson stream and reconnects with backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

import httpx
import msgspec

from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, CompleteEvent, ErrorEvent, StatusEvent, StreamEvent, decode_event

logger = logging.getLogger(__name__)

RECONNECT_EXHAUSTED_MESSAGE = "Failed to maintain connection. Please refresh the page."

Sleep = Callable[[float], Awaitable[None]]


def reconnect_delay(attempt: int, *, base: float = 1.0, ceiling: float = 30.0) -> float:
  """Return the wait before reconnect `attempt` (1-based): base * 2^(attempt-1), capped."""
  if attempt < 1:
    raise ValueError("attempt must be >= 1")
  return min(base * (2 ** (attempt - 1)), ceiling)


@dataclass
class CodeStreamState:
  """What an observer currently knows about a lesson."""

  code: str = ""
  status: str = "unknown"
  is_streaming: bool = False
  last_error: str | None = None


def apply_event(state: CodeStreamState, event: StreamEvent) -> bool:
  """Fold one event into state. Returns True when the event ends the stream."""
  match event:
    case CodeChunkEvent(code=code):
      state.code += code
    case CodeUpdateEvent(code=code):
      state.code = code
    case StatusEvent(status=status):
      state.status = status
    case CompleteEvent(code=code, status=status, error=error):
      if code is not None:
        state.code = code
      state.status = status
      if error:
        state.last_error = error
      state.is_streaming = False
      return True
    case ErrorEvent(message=message):
      state.last_error = message
      state.is_streaming = False
      return True
  return False


async def iter_sse_data(lines: AsyncIterator[str]) -> AsyncIterator[str]:
  """Group SSE lines into message payloads; multi-line `data:` fields are joined with newlines."""
  data: list[str] = []
  async for line in lines:
    if line == "":
      if data:
        yield "\n".join(data)
        data = []
      continue
    if line.startswith(":"):
      continue
    field, _, value = line.partition(":")
    if field == "data":
      data.append(value[1:] if value.startswith(" ") else value)
  if data:
    yield "\n".join(data)


class StreamDisconnectedError(Exception):
  """The connection ended or failed before a terminal event arrived."""


class CodeStreamConsumer:
  """Follow `GET {base}/{lesson_id}/stream` and keep a single code buffer.

  Transport failures (connect errors, non-200 responses, a stream that ends
  without `complete`/`error`) trigger reconnects with exponential backoff.
  A successful open resets the attempt counter. Application-level `error`
  events are terminal and never retried.
  """

  def __init__(
    self,
    client: httpx.AsyncClient,
    *,
    path_template: str = "/v1/lessons/{lesson_id}/stream",
    max_reconnect_attempts: int = 5,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    sleep: Sleep = asyncio.sleep,
  ) -> None:
    self._client = client
    self._path_template = path_template
    self._max_reconnect_attempts = max_reconnect_attempts
    self._base_delay = base_delay
    self._max_delay = max_delay
    self._sleep = sleep
    self._task: asyncio.Task[None] | None = None
    self._attempts = 0
    self.state = CodeStreamState()

  @property
  def reconnect_attempts(self) -> int:
    return self._attempts

  def open(self, lesson_id: str) -> CodeStreamState:
    """Start following lesson_id in the background and return the live state object."""
    if self._task is not None and not self._task.done():
      raise RuntimeError("Stream consumer is already open.")
    self.state = CodeStreamState(is_streaming=True)
    self._attempts = 0
    self._task = asyncio.create_task(self._run(lesson_id))
    return self.state

  async def wait(self) -> CodeStreamState:
    """Wait until the stream ends (terminal event, exhaustion or close)."""
    if self._task is not None:
      try:
        await self._task
      except asyncio.CancelledError:
        pass
    return self.state

  async def close(self) -> None:
    """Stop reading and cancel any pending reconnect."""
    self.state.is_streaming = False
    task, self._task = self._task, None
    if task is None or task.done():
      return
    task.cancel()
    try:
      await task
    except asyncio.CancelledError:
      pass

  async def _run(self, lesson_id: str) -> None:
    path = self._path_template.format(lesson_id=lesson_id)
    while True:
      try:
        if await self._read_stream(path):
          return
        raise StreamDisconnectedError("Stream ended before completion.")
      except (httpx.HTTPError, StreamDisconnectedError) as exc:
        self._attempts += 1
        if self._attempts > self._max_reconnect_attempts:
          logger.warning("Giving up on lesson stream lesson_id=%s after %s attempts", lesson_id, self._attempts - 1)
          self.state.last_error = RECONNECT_EXHAUSTED_MESSAGE
          self.state.is_streaming = False
          return
        delay = reconnect_delay(self._attempts, base=self._base_delay, ceiling=self._max_delay)
        logger.info("Lesson stream dropped lesson_id=%s error=%s; reconnect %s/%s in %.1fs", lesson_id, exc, self._attempts, self._max_reconnect_attempts, delay)
        await self._sleep(delay)

  async def _read_stream(self, path: str) -> bool:
    async with self._client.stream("GET", path, headers={"Accept": "text/event-stream"}) as response:
      if response.status_code != 200:
        raise StreamDisconnectedError(f"Unexpected status {response.status_code}")
      self._attempts = 0
      async for payload in iter_sse_data(response.aiter_lines()):
        try:
          event = decode_event(payload)
        except (msgspec.DecodeError, msgspec.ValidationError):
          logger.warning("Skipping malformed stream event: %s", payload[:200])
          continue
        if apply_event(self.state, event):
          return True
    return False
