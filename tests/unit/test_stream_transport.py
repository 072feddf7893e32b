"""Unit tests for the per-connection SSE event source."""

from __future__ import annotations

import asyncio
import threading

import msgspec
import pytest

from app.streaming.broker import StreamEventBroker
from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, CompleteEvent, ErrorEvent, StatusEvent, StreamEvent, decode_event
from app.streaming.transport import LessonStreamConnection
from tests.doubles import VALID_CODE, InMemoryLessonsRepo


def _connection(repo: InMemoryLessonsRepo, broker: StreamEventBroker, lesson_id: str = "lesson-1", **kwargs) -> LessonStreamConnection:
  kwargs.setdefault("poll_interval", 60.0)
  kwargs.setdefault("max_lifetime", 5.0)
  kwargs.setdefault("close_delay", 0.0)
  return LessonStreamConnection(lesson_id, repo=repo, broker=broker, **kwargs)


async def _collect(connection: LessonStreamConnection) -> list[StreamEvent]:
  return [event async for event in connection.events()]


async def _wait_subscribed(broker: StreamEventBroker, lesson_id: str = "lesson-1") -> None:
  for _ in range(200):
    if broker.subscriber_count(lesson_id):
      return
    await asyncio.sleep(0)
  raise AssertionError(f"no subscriber for {lesson_id}")


@pytest.mark.anyio
async def test_live_events_are_forwarded_until_complete(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)

  broker.emit(StatusEvent(lesson_id="lesson-1", status="generating"))
  broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="import React"))
  broker.emit(CompleteEvent(lesson_id="lesson-1", status="generated", code="import React"))
  events = await asyncio.wait_for(task, timeout=2)

  assert [type(event) for event in events] == [StatusEvent, StatusEvent, CodeChunkEvent, CompleteEvent]
  assert events[0].status == "generating"
  assert events[0].message == "Connected to stream for lesson lesson-1"
  assert connection.closed
  assert broker.subscriber_count("lesson-1") == 0


@pytest.mark.anyio
async def test_late_connection_receives_replay_first(repo, broker) -> None:
  repo.add("lesson-1")
  broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="import "))
  broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="React"))

  connection = _connection(repo, broker)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)
  broker.emit(CompleteEvent(lesson_id="lesson-1", status="generated", code="import React"))
  events = await asyncio.wait_for(task, timeout=2)

  assert isinstance(events[1], CodeUpdateEvent)
  assert events[1].code == "import React"
  assert isinstance(events[-1], CompleteEvent)


@pytest.mark.anyio
async def test_terminal_lesson_completes_immediately(repo, broker) -> None:
  repo.add("lesson-1", status="generated", generated_code=VALID_CODE)

  events = await asyncio.wait_for(_collect(_connection(repo, broker)), timeout=2)

  assert [type(event) for event in events] == [StatusEvent, CompleteEvent]
  assert events[0].status == "generated"
  assert events[1].code == VALID_CODE


@pytest.mark.anyio
async def test_failed_lesson_completes_with_error(repo, broker) -> None:
  repo.add("lesson-1", status="failed", error_message="Generation failed after 3 attempts: boom")

  events = await asyncio.wait_for(_collect(_connection(repo, broker)), timeout=2)

  assert events[-1].status == "failed"
  assert events[-1].code is None
  assert events[-1].error == "Generation failed after 3 attempts: boom"


@pytest.mark.anyio
async def test_poll_detects_completion_without_broker_events(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker, poll_interval=0.01)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)

  await repo.update_lesson("lesson-1", status="generated", generated_code=VALID_CODE)
  events = await asyncio.wait_for(task, timeout=2)

  assert isinstance(events[-1], CompleteEvent)
  assert events[-1].status == "generated"
  assert events[-1].code == VALID_CODE


@pytest.mark.anyio
async def test_poll_reports_deleted_lesson(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker, poll_interval=0.01)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)

  await repo.delete_lesson("lesson-1")
  events = await asyncio.wait_for(task, timeout=2)

  assert isinstance(events[-1], ErrorEvent)
  assert events[-1].message == "Lesson lesson-1 was deleted"


@pytest.mark.anyio
async def test_poll_errors_are_retried(broker) -> None:
  class FlakyRepo(InMemoryLessonsRepo):
    def __init__(self) -> None:
      super().__init__()
      self.calls = 0

    async def get_lesson(self, lesson_id: str):
      self.calls += 1
      if self.calls == 2:
        raise RuntimeError("connection reset")
      if self.calls == 3:
        await self.update_lesson(lesson_id, status="generated", generated_code=VALID_CODE)
      return await super().get_lesson(lesson_id)

  repo = FlakyRepo()
  repo.add("lesson-1")

  events = await asyncio.wait_for(_collect(_connection(repo, broker, poll_interval=0.01)), timeout=2)

  assert repo.calls == 3
  assert isinstance(events[-1], CompleteEvent)


@pytest.mark.anyio
async def test_only_first_terminal_event_is_delivered(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)

  broker.emit(CompleteEvent(lesson_id="lesson-1", status="generated", code="x"))
  broker.emit(ErrorEvent(lesson_id="lesson-1", message="late"))
  broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="late chunk"))
  events = await asyncio.wait_for(task, timeout=2)

  assert [type(event) for event in events] == [StatusEvent, CompleteEvent]


@pytest.mark.anyio
async def test_lifetime_bound_ends_stream(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker, max_lifetime=0.05)

  events = await asyncio.wait_for(_collect(connection), timeout=2)

  assert [type(event) for event in events] == [StatusEvent]
  assert connection.closed
  assert broker.subscriber_count("lesson-1") == 0


@pytest.mark.anyio
async def test_unknown_lesson_yields_single_error(repo, broker) -> None:
  events = await asyncio.wait_for(_collect(_connection(repo, broker, lesson_id="missing")), timeout=2)

  assert len(events) == 1
  assert isinstance(events[0], ErrorEvent)
  assert events[0].message == "Lesson missing not found"


@pytest.mark.anyio
async def test_client_disconnect_unsubscribes(repo, broker) -> None:
  repo.add("lesson-1")
  broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="abc"))
  connection = _connection(repo, broker)
  stream = connection.events()

  assert isinstance(await anext(stream), StatusEvent)
  assert isinstance(await anext(stream), CodeUpdateEvent)
  assert broker.subscriber_count("lesson-1") == 1

  await stream.aclose()

  assert connection.closed
  assert broker.subscriber_count("lesson-1") == 0


@pytest.mark.anyio
async def test_events_emitted_from_worker_threads_arrive(repo, broker) -> None:
  repo.add("lesson-1")
  connection = _connection(repo, broker)
  task = asyncio.create_task(_collect(connection))
  await _wait_subscribed(broker)

  def _worker() -> None:
    broker.emit(CodeChunkEvent(lesson_id="lesson-1", code="from thread"))
    broker.emit(CompleteEvent(lesson_id="lesson-1", status="generated", code="from thread"))

  thread = threading.Thread(target=_worker)
  thread.start()
  thread.join()
  events = await asyncio.wait_for(task, timeout=2)

  assert [type(event) for event in events] == [StatusEvent, CodeChunkEvent, CompleteEvent]


@pytest.mark.anyio
async def test_stream_frames_events_as_sse(repo, broker) -> None:
  repo.add("lesson-1", status="generated", generated_code=VALID_CODE)

  frames = [frame async for frame in _connection(repo, broker).stream()]

  assert len(frames) == 2
  for frame in frames:
    assert frame.startswith(b"data: ")
    assert frame.endswith(b"\n\n")
  payload = msgspec.json.decode(frames[1][len(b"data: ") : -2])
  assert payload["type"] == "complete"
  assert payload["lessonId"] == "lesson-1"
  assert isinstance(payload["timestamp"], int)
  first = decode_event(frames[0][len(b"data: ") : -2])
  assert isinstance(first, StatusEvent)
  assert first.status == "generated"
