"""Schema package exports."""

from .lessons import Lesson

__all__ = ["Lesson"]
