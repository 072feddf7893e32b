import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import StreamingResponse

from app.api.deps import get_generation_pipeline, get_lessons_repo, get_stream_broker
from app.api.models import CreateLessonRequest, CreateLessonResponse, LessonEnvelope, LessonListResponse, LessonResponse, MessageResponse
from app.config import Settings, get_settings
from app.jobs.pipeline import LessonGenerationPipeline
from app.services import lessons as lesson_service
from app.storage.lessons_repo import LessonsRepository
from app.streaming.broker import StreamEventBroker
from app.streaming.transport import SSE_HEADERS, LessonStreamConnection

router = APIRouter()
logger = logging.getLogger("app.api.routes.lessons")


@router.post("", response_model=CreateLessonResponse, status_code=status.HTTP_201_CREATED)
async def create_lesson(  # noqa: B008
  request: CreateLessonRequest,
  background_tasks: BackgroundTasks,
  repo: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  pipeline: LessonGenerationPipeline = Depends(get_generation_pipeline),  # noqa: B008
) -> CreateLessonResponse:
  """Create a lesson and start generating it in the background."""
  return await lesson_service.create_lesson(request, repo, pipeline, background_tasks)


@router.get("", response_model=LessonListResponse)
async def list_lessons(  # noqa: B008
  limit: int = Query(default=50, ge=1, le=200),
  offset: int = Query(default=0, ge=0),
  repo: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
) -> LessonListResponse:
  """List lessons, newest first."""
  records = await repo.list_lessons(limit=limit, offset=offset)
  return LessonListResponse(lessons=[LessonResponse.from_record(record) for record in records])


@router.get("/{lesson_id}", response_model=LessonEnvelope)
async def get_lesson(lesson_id: str, repo: LessonsRepository = Depends(get_lessons_repo)) -> LessonEnvelope:  # noqa: B008
  """Fetch one lesson including its generated code."""
  record = await lesson_service.get_lesson_or_404(repo, lesson_id)
  return LessonEnvelope(lesson=LessonResponse.from_record(record))


@router.delete("/{lesson_id}", response_model=MessageResponse)
async def delete_lesson(lesson_id: str, repo: LessonsRepository = Depends(get_lessons_repo)) -> MessageResponse:  # noqa: B008
  """Delete a lesson."""
  await lesson_service.delete_lesson(repo, lesson_id)
  return MessageResponse(message="Lesson deleted successfully")


@router.get("/{lesson_id}/stream")
async def stream_lesson(  # noqa: B008
  lesson_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  repo: LessonsRepository = Depends(get_lessons_repo),  # noqa: B008
  broker: StreamEventBroker = Depends(get_stream_broker),  # noqa: B008
) -> StreamingResponse:
  """Stream lesson progress as Server-Sent Events until it completes."""
  connection = LessonStreamConnection(
    lesson_id,
    repo=repo,
    broker=broker,
    poll_interval=settings.stream_poll_seconds,
    max_lifetime=settings.stream_max_lifetime_seconds,
    close_delay=settings.stream_close_delay_seconds,
  )
  logger.info("Opening lesson stream lesson_id=%s", lesson_id)
  return StreamingResponse(connection.stream(), media_type="text/event-stream", headers=SSE_HEADERS)
