from __future__ import annotations

from sqlalchemy import CheckConstraint, String, Text, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

_UTC_NOW_ISO = """to_char((now() AT TIME ZONE 'UTC'), 'YYYY-MM-DD"T"HH24:MI:SS"Z"')"""


class Lesson(Base):
  __tablename__ = "lessons"
  __table_args__ = (CheckConstraint("status IN ('generating', 'generated', 'failed')", name="ck_lessons_status"),)

  id: Mapped[str] = mapped_column(String, primary_key=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  outline: Mapped[str] = mapped_column(Text, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  generated_code: Mapped[str | None] = mapped_column(Text, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  # `metadata` is reserved on declarative models; keep the column name stable.
  metadata_json: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, server_default=text("'{}'::jsonb"))
  created_at: Mapped[str] = mapped_column(String, nullable=False, index=True, server_default=text(_UTC_NOW_ISO))
  updated_at: Mapped[str] = mapped_column(String, nullable=False, server_default=text(_UTC_NOW_ISO))
