"""Test configuration shared by unit and integration suites."""

from __future__ import annotations

import os

# Required settings must exist before anything imports app.config.
os.environ.setdefault("LESSONS_ALLOWED_ORIGINS", "http://localhost")
os.environ.pop("LESSONS_PG_DSN", None)
os.environ.pop("DATABASE_URL", None)

import pytest  # noqa: E402

from app.streaming.broker import StreamEventBroker  # noqa: E402
from tests.doubles import FakeScheduler, InMemoryLessonsRepo, RecordingSleep  # noqa: E402


# Force anyio to use asyncio
@pytest.fixture
def anyio_backend():
  return "asyncio"


@pytest.fixture
def repo() -> InMemoryLessonsRepo:
  return InMemoryLessonsRepo()


@pytest.fixture
def scheduler() -> FakeScheduler:
  return FakeScheduler()


@pytest.fixture
def broker(scheduler: FakeScheduler) -> StreamEventBroker:
  return StreamEventBroker(grace_seconds=1.0, scheduler=scheduler)


@pytest.fixture
def sleep() -> RecordingSleep:
  return RecordingSleep()
