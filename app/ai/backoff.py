"""Retry logic with capped exponential backoff."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryExhaustedError(Exception):
  """Raised when every attempt failed; `last_error` holds the final failure."""

  def __init__(self, attempts: int, last_error: BaseException) -> None:
    super().__init__(str(last_error) or type(last_error).__name__)
    self.attempts = attempts
    self.last_error = last_error

  @property
  def retry_count(self) -> int:
    return max(self.attempts - 1, 0)


def backoff_delay(attempt: int, *, base: float, ceiling: float) -> float:
  """Delay before retrying after failed attempt number `attempt` (1-based)."""
  if attempt < 1:
    raise ValueError("attempt must be >= 1")
  return min(base * (2 ** (attempt - 1)), ceiling)


async def retry_with_backoff(
  func: Callable[[int], Awaitable[T]],
  *,
  max_attempts: int,
  base: float,
  ceiling: float,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  on_retry: Callable[[int, Exception], None] | None = None,
) -> tuple[T, int]:
  """
  Call `func(attempt)` until it succeeds or `max_attempts` calls have failed.

  Returns the result and the number of retries it took (0 when the first call
  succeeded). Cancellation is never retried.
  """
  if max_attempts < 1:
    raise ValueError("max_attempts must be >= 1")

  for attempt in range(1, max_attempts + 1):
    try:
      return await func(attempt), attempt - 1
    except Exception as exc:  # noqa: BLE001
      if attempt >= max_attempts:
        raise RetryExhaustedError(attempt, exc) from exc
      delay = backoff_delay(attempt, base=base, ceiling=ceiling)
      logger.warning("Retry attempt %s/%s needed. Error: %s. Retrying in %.1fs...", attempt + 1, max_attempts, exc, delay)
      if on_retry is not None:
        on_retry(attempt, exc)
      await sleep(delay)

  raise AssertionError("unreachable")
