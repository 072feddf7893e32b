"""Live lesson progress: events, broker, SSE transport and client."""

from app.streaming.broker import StreamEventBroker
from app.streaming.consumer import CodeStreamConsumer, CodeStreamState, reconnect_delay
from app.streaming.events import CodeChunkEvent, CodeUpdateEvent, CompleteEvent, ErrorEvent, StatusEvent, StreamEvent
from app.streaming.transport import LessonStreamConnection

__all__ = ["CodeChunkEvent", "CodeStreamConsumer", "CodeStreamState", "CodeUpdateEvent", "CompleteEvent", "ErrorEvent", "LessonStreamConnection", "StatusEvent", "StreamEvent", "StreamEventBroker", "reconnect_delay"]
