"""In-process fan-out of lesson stream events with replay for late joiners."""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, StreamEvent, is_terminal_event

logger = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], None]
Unsubscribe = Callable[[], None]
Scheduler = Callable[[float, Callable[[], None]], object]


def default_scheduler(delay: float, fn: Callable[[], None]) -> object:
  """Run fn after delay seconds on the running loop, or on a timer thread when no loop is running."""
  try:
    loop = asyncio.get_running_loop()
  except RuntimeError:
    timer = threading.Timer(delay, fn)
    timer.daemon = True
    timer.start()
    return timer
  return loop.call_later(delay, fn)


@dataclass(eq=False)
class _Subscription:
  callback: EventCallback


@dataclass(eq=False)
class _Topic:
  """Subscribers and accumulated code for one lesson."""

  lesson_id: str
  lock: threading.RLock = field(default_factory=threading.RLock)
  subscribers: list[_Subscription] = field(default_factory=list)
  chunks: list[str] = field(default_factory=list)
  evicted: bool = False

  def accumulated(self) -> str:
    return "".join(self.chunks)


class StreamEventBroker:
  """Route stream events to per-lesson subscribers.

  Each lesson has a topic holding its subscribers (in registration order) and
  the concatenation of every `code-chunk` emitted so far. New subscribers get
  that accumulated code replayed as a single `code-update` before they see
  live events, so a reconnecting observer never appends the same text twice.

  Topics are evicted `grace_seconds` after a terminal event. Eviction detaches
  the topic under the registry lock and marks it, so an emit racing with it
  re-resolves a fresh topic instead of writing into the detached one.
  """

  def __init__(self, *, grace_seconds: float = 1.0, scheduler: Scheduler | None = None) -> None:
    self._grace_seconds = grace_seconds
    self._scheduler = scheduler or default_scheduler
    self._registry_lock = threading.Lock()
    self._topics: dict[str, _Topic] = {}

  def _find_topic(self, lesson_id: str) -> _Topic | None:
    with self._registry_lock:
      return self._topics.get(lesson_id)

  def _topic_for(self, lesson_id: str) -> _Topic:
    with self._registry_lock:
      topic = self._topics.get(lesson_id)
      if topic is None:
        topic = _Topic(lesson_id=lesson_id)
        self._topics[lesson_id] = topic
      return topic

  def subscribe(self, lesson_id: str, callback: EventCallback) -> Unsubscribe:
    """Register callback for lesson_id and replay any accumulated code to it.

    The replay happens synchronously before this method returns.
    """
    subscription = _Subscription(callback=callback)
    while True:
      topic = self._topic_for(lesson_id)
      with topic.lock:
        if topic.evicted:
          continue
        topic.subscribers.append(subscription)
        accumulated = topic.accumulated()
        # Replay inside the topic lock so no live chunk can slip in ahead of it.
        if accumulated:
          self._deliver(subscription, CodeUpdateEvent(lesson_id=lesson_id, code=accumulated))
        break

    logger.debug("Subscribed lesson_id=%s subscribers=%s", lesson_id, len(topic.subscribers))

    def unsubscribe() -> None:
      self._unsubscribe(topic, subscription)

    return unsubscribe

  def _unsubscribe(self, topic: _Topic, subscription: _Subscription) -> None:
    with topic.lock:
      if subscription in topic.subscribers:
        topic.subscribers.remove(subscription)
      if not topic.subscribers and not topic.chunks:
        self._detach(topic)

  def emit(self, event: StreamEvent) -> None:
    """Deliver event to every current subscriber of its lesson.

    Never raises because of a subscriber; callback failures are logged.
    """
    lesson_id = event.lesson_id
    while True:
      topic = self._topic_for(lesson_id)
      with topic.lock:
        if topic.evicted:
          continue
        if isinstance(event, CodeChunkEvent):
          topic.chunks.append(event.code)
        for subscription in list(topic.subscribers):
          self._deliver(subscription, event)
        # Nothing to replay and nobody listening.
        if not topic.subscribers and not topic.chunks:
          self._detach(topic)
        break

    if is_terminal_event(event):
      self._scheduler(self._grace_seconds, lambda: self._evict(topic))

  def _deliver(self, subscription: _Subscription, event: StreamEvent) -> None:
    try:
      subscription.callback(event)
    except Exception:  # noqa: BLE001
      logger.error("Stream subscriber failed lesson_id=%s event_type=%s", event.lesson_id, type(event).__name__, exc_info=True)

  def _evict(self, topic: _Topic) -> None:
    with topic.lock:
      self._detach(topic)
    logger.debug("Evicted stream topic lesson_id=%s", topic.lesson_id)

  def _detach(self, topic: _Topic) -> None:
    with self._registry_lock:
      # Only drop the registry entry if it still points at this topic.
      if self._topics.get(topic.lesson_id) is topic:
        del self._topics[topic.lesson_id]
      topic.evicted = True

  def get_accumulated(self, lesson_id: str) -> str:
    """Return the code accumulated from `code-chunk` events, or an empty string."""
    topic = self._find_topic(lesson_id)
    if topic is None:
      return ""
    with topic.lock:
      return topic.accumulated()

  def clear_cache(self, lesson_id: str) -> None:
    """Forget accumulated code for lesson_id without touching subscribers."""
    topic = self._find_topic(lesson_id)
    if topic is None:
      return
    with topic.lock:
      topic.chunks.clear()
      if not topic.subscribers:
        self._detach(topic)

  def subscriber_count(self, lesson_id: str) -> int:
    topic = self._find_topic(lesson_id)
    if topic is None:
      return 0
    with topic.lock:
      return len(topic.subscribers)
