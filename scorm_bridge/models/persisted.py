"""SQLAlchemy ORM models for persisted SCORM entities.

Separate from the Pydantic models in progress.py which describe the wire
format. This layer manages persistence concerns only.
"""
from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Mapped, mapped_column, declarative_base
from sqlalchemy import (
    String, DateTime, Float, Text, UniqueConstraint
)

Base = declarative_base()


class ScormPackageRecord(Base):
    """Where the uploaded package for one content item lives.

    ``source_path`` is either a ``.zip`` archive or an already extracted
    directory. ``course_id`` is the course that contains the content item and
    is part of every progress key.
    """

    __tablename__ = "scorm_packages"
    __table_args__ = (
        UniqueConstraint(
            "content_id", "content_type", name="uq_scorm_packages_content"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    content_id: Mapped[str] = mapped_column(String(64), index=True)
    content_type: Mapped[str] = mapped_column(String(32))
    course_id: Mapped[str] = mapped_column(String(64), index=True)
    source_path: Mapped[str] = mapped_column(String(500))
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "contentId": self.content_id,
            "contentType": self.content_type,
            "courseId": self.course_id,
            "sourcePath": self.source_path,
            "title": self.title,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


class ProgressRecord(Base):
    """Durable CMI snapshot for one learner and one content item."""

    __tablename__ = "scorm_progress"
    __table_args__ = (
        UniqueConstraint(
            "learner_id",
            "course_id",
            "content_id",
            "content_type",
            name="uq_scorm_progress_key",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(64), index=True)
    course_id: Mapped[str] = mapped_column(String(64))
    content_id: Mapped[str] = mapped_column(String(64))
    content_type: Mapped[str] = mapped_column(String(32))
    lesson_status: Mapped[str] = mapped_column(
        String(32), default="incomplete"
    )
    score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    # score exactly as the content wrote it; CMI values are strings
    score_raw: Mapped[str] = mapped_column(String(32), default="")
    time_spent: Mapped[str] = mapped_column(String(32), default="00:00:00.00")
    suspend_data: Mapped[str] = mapped_column(Text, default="")
    entry: Mapped[str] = mapped_column(String(16), default="ab-initio")
    exit: Mapped[str] = mapped_column(String(16), default="normal")
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def to_dict(self) -> dict:
        return {
            "lessonStatus": self.lesson_status,
            "score": self.score,
            "scoreRaw": self.score_raw,
            "timeSpent": self.time_spent,
            "suspendData": self.suspend_data,
            "entry": self.entry,
            "exit": self.exit,
            "updatedAt": self.updated_at.isoformat(),
        }
