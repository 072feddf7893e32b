"""Unit tests for per-lesson fan-out, replay and eviction in the stream broker."""

from __future__ import annotations

import asyncio
import threading

import pytest

from app.streaming.broker import StreamEventBroker
from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, CompleteEvent, ErrorEvent, StatusEvent, StreamEvent


def _collector() -> tuple[list[StreamEvent], object]:
  seen: list[StreamEvent] = []
  return seen, seen.append


def test_subscriber_sees_events_in_emission_order(broker: StreamEventBroker) -> None:
  seen, callback = _collector()
  broker.subscribe("j1", callback)

  events = [
    StatusEvent(lesson_id="j1", status="generating"),
    CodeChunkEvent(lesson_id="j1", code="const"),
    CodeChunkEvent(lesson_id="j1", code=" x=1"),
    CompleteEvent(lesson_id="j1", status="generated", code="const x=1"),
  ]
  for event in events:
    broker.emit(event)

  assert seen == events
  assert broker.get_accumulated("j1") == "const x=1"


def test_late_subscriber_gets_accumulated_code_as_full_replacement(broker: StreamEventBroker) -> None:
  broker.emit(CodeChunkEvent(lesson_id="j2", code="ab"))
  broker.emit(CodeChunkEvent(lesson_id="j2", code="cd"))

  seen, callback = _collector()
  broker.subscribe("j2", callback)

  assert len(seen) == 1
  assert isinstance(seen[0], CodeUpdateEvent)
  assert seen[0].code == "abcd"

  broker.emit(CodeChunkEvent(lesson_id="j2", code="ef"))
  assert [type(event) for event in seen] == [CodeUpdateEvent, CodeChunkEvent]
  assert broker.get_accumulated("j2") == "abcdef"


def test_subscribe_without_cached_code_replays_nothing(broker: StreamEventBroker) -> None:
  seen, callback = _collector()
  broker.subscribe("fresh", callback)
  assert seen == []


def test_topics_are_isolated_per_lesson(broker: StreamEventBroker) -> None:
  seen_a, callback_a = _collector()
  seen_b, callback_b = _collector()
  broker.subscribe("a", callback_a)
  broker.subscribe("b", callback_b)

  broker.emit(CodeChunkEvent(lesson_id="a", code="alpha"))

  assert len(seen_a) == 1
  assert seen_b == []
  assert broker.get_accumulated("b") == ""


def test_failing_subscriber_does_not_block_others(broker: StreamEventBroker) -> None:
  def _boom(_event: StreamEvent) -> None:
    raise RuntimeError("subscriber exploded")

  seen, callback = _collector()
  broker.subscribe("j3", _boom)
  broker.subscribe("j3", callback)

  broker.emit(CodeChunkEvent(lesson_id="j3", code="x"))

  assert len(seen) == 1
  assert broker.get_accumulated("j3") == "x"


def test_unsubscribe_stops_delivery_and_is_idempotent(broker: StreamEventBroker) -> None:
  seen, callback = _collector()
  unsubscribe = broker.subscribe("j4", callback)
  assert broker.subscriber_count("j4") == 1

  unsubscribe()
  unsubscribe()
  broker.emit(StatusEvent(lesson_id="j4", status="generating"))

  assert seen == []
  assert broker.subscriber_count("j4") == 0


def test_terminal_event_schedules_eviction_after_grace(broker: StreamEventBroker, scheduler) -> None:
  seen, callback = _collector()
  broker.subscribe("j5", callback)
  broker.emit(CodeChunkEvent(lesson_id="j5", code="done"))
  broker.emit(CompleteEvent(lesson_id="j5", status="generated", code="done"))

  assert [delay for delay, _fn in scheduler.pending] == [1.0]
  # Still replayable during the grace period.
  late, late_callback = _collector()
  broker.subscribe("j5", late_callback)
  assert isinstance(late[0], CodeUpdateEvent) and late[0].code == "done"

  scheduler.run_all()

  assert broker.get_accumulated("j5") == ""
  assert broker.subscriber_count("j5") == 0


def test_error_event_also_evicts(broker: StreamEventBroker, scheduler) -> None:
  broker.emit(CodeChunkEvent(lesson_id="j6", code="partial"))
  broker.emit(ErrorEvent(lesson_id="j6", message="boom"))
  scheduler.run_all()
  assert broker.get_accumulated("j6") == ""


def test_emit_after_eviction_starts_a_fresh_topic(broker: StreamEventBroker, scheduler) -> None:
  seen, callback = _collector()
  broker.subscribe("j7", callback)
  broker.emit(CodeChunkEvent(lesson_id="j7", code="old"))
  broker.emit(CompleteEvent(lesson_id="j7", status="generated", code="old"))
  scheduler.run_all()

  broker.emit(CodeChunkEvent(lesson_id="j7", code="new"))

  assert broker.get_accumulated("j7") == "new"
  # The evicted topic's subscriber is gone with it.
  assert len(seen) == 2


def test_clear_cache_keeps_subscribers(broker: StreamEventBroker) -> None:
  seen, callback = _collector()
  broker.subscribe("j8", callback)
  broker.emit(CodeChunkEvent(lesson_id="j8", code="abc"))

  broker.clear_cache("j8")

  assert broker.get_accumulated("j8") == ""
  assert broker.subscriber_count("j8") == 1
  broker.clear_cache("unknown")


def test_concurrent_emitters_lose_no_chunks(broker: StreamEventBroker) -> None:
  def _emit_many() -> None:
    for _ in range(200):
      broker.emit(CodeChunkEvent(lesson_id="j9", code="x"))

  seen, callback = _collector()
  broker.subscribe("j9", callback)
  threads = [threading.Thread(target=_emit_many) for _ in range(4)]
  for thread in threads:
    thread.start()
  for thread in threads:
    thread.join()

  assert broker.get_accumulated("j9") == "x" * 800
  assert len(seen) == 800


@pytest.mark.anyio
async def test_default_scheduler_uses_running_loop() -> None:
  broker = StreamEventBroker(grace_seconds=0.01)
  broker.emit(CodeChunkEvent(lesson_id="j10", code="abc"))
  broker.emit(CompleteEvent(lesson_id="j10", status="generated", code="abc"))
  assert broker.get_accumulated("j10") == "abc"

  await asyncio.sleep(0.05)

  assert broker.get_accumulated("j10") == ""
