"""Server-Sent Events connection for a single lesson stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from app.storage.lessons_repo import LessonsRepository
from app.streaming.broker import StreamEventBroker, Unsubscribe
from app.streaming.events import ErrorEvent, StatusEvent, StreamEvent, complete_from_record, encode_sse, is_terminal_event

logger = logging.getLogger(__name__)

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


class LessonStreamConnection:
  """One observer's live view of a lesson.

  Two producers feed a single queue: the broker callback (live pipeline
  events) and a poll task that re-reads the stored lesson. Whichever surfaces
  a terminal event first wins; the queue accepts no further events after it.
  """

  def __init__(
    self,
    lesson_id: str,
    *,
    repo: LessonsRepository,
    broker: StreamEventBroker,
    poll_interval: float = 2.0,
    max_lifetime: float = 1800.0,
    close_delay: float = 0.5,
  ) -> None:
    self.lesson_id = lesson_id
    self._repo = repo
    self._broker = broker
    self._poll_interval = poll_interval
    self._max_lifetime = max_lifetime
    self._close_delay = close_delay
    self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
    self._loop: asyncio.AbstractEventLoop | None = None
    self._unsubscribe: Unsubscribe | None = None
    self._poll_task: asyncio.Task[None] | None = None
    self._closed = False
    self._terminated = False

  @property
  def closed(self) -> bool:
    return self._closed

  async def events(self) -> AsyncIterator[StreamEvent]:
    """Yield events for the lesson until a terminal event, the lifetime bound, or close()."""
    loop = asyncio.get_running_loop()
    self._loop = loop
    deadline = loop.time() + self._max_lifetime

    record = await self._repo.get_lesson(self.lesson_id)
    if record is None:
      logger.info("Stream requested for unknown lesson_id=%s", self.lesson_id)
      yield ErrorEvent(lesson_id=self.lesson_id, message=f"Lesson {self.lesson_id} not found")
      self.close()
      return

    try:
      yield StatusEvent(lesson_id=self.lesson_id, status=record.status, message=f"Connected to stream for lesson {self.lesson_id}")

      # Subscribing replays any accumulated code into the queue.
      self._unsubscribe = self._broker.subscribe(self.lesson_id, self._on_broker_event)
      if record.is_terminal:
        self._offer(complete_from_record(record))
      else:
        self._poll_task = asyncio.create_task(self._poll())

      while not self._closed:
        remaining = deadline - loop.time()
        if remaining <= 0:
          logger.info("Stream lifetime reached lesson_id=%s", self.lesson_id)
          break
        try:
          event = await asyncio.wait_for(self._queue.get(), timeout=remaining)
        except TimeoutError:
          logger.info("Stream lifetime reached lesson_id=%s", self.lesson_id)
          break

        yield event
        if is_terminal_event(event):
          # Give the client a moment to read the terminal frame before closing.
          await asyncio.sleep(self._close_delay)
          break
    finally:
      self.close()

  async def stream(self) -> AsyncIterator[bytes]:
    """Yield SSE-framed bytes for a StreamingResponse."""
    async for event in self.events():
      yield encode_sse(event)

  def close(self) -> None:
    """Stop delivering events; safe to call more than once."""
    self._closed = True
    if self._unsubscribe is not None:
      unsubscribe, self._unsubscribe = self._unsubscribe, None
      unsubscribe()
    if self._poll_task is not None and not self._poll_task.done():
      self._poll_task.cancel()

  def _on_broker_event(self, event: StreamEvent) -> None:
    # The broker may call from another thread; hop onto the connection's loop.
    loop = self._loop
    if loop is None or self._closed:
      return
    try:
      loop.call_soon_threadsafe(self._offer, event)
    except RuntimeError:
      logger.debug("Stream loop closed; dropping subscriber lesson_id=%s", self.lesson_id)
      self._closed = True
      if self._unsubscribe is not None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        unsubscribe()

  def _offer(self, event: StreamEvent) -> None:
    if self._closed or self._terminated:
      return
    if is_terminal_event(event):
      self._terminated = True
    self._queue.put_nowait(event)

  async def _poll(self) -> None:
    while not self._closed and not self._terminated:
      await asyncio.sleep(self._poll_interval)
      try:
        record = await self._repo.get_lesson(self.lesson_id)
      except Exception:  # noqa: BLE001
        logger.warning("Stream poll failed lesson_id=%s", self.lesson_id, exc_info=True)
        continue

      if record is None:
        self._offer(ErrorEvent(lesson_id=self.lesson_id, message=f"Lesson {self.lesson_id} was deleted"))
        return
      if record.is_terminal:
        self._offer(complete_from_record(record))
        return
