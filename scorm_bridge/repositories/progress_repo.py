"""Repository layer for SCORM progress persistence.

This is the progress persistence service the runtime bridge depends on: one
``get`` and one ``upsert`` keyed by (learner, course, contentId, contentType).
Commits are full-snapshot upserts, so resending the same state is harmless.
"""
from __future__ import annotations
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from scorm_bridge.models.persisted import ProgressRecord
from scorm_bridge.models.progress import ProgressData


class ProgressRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(
        self,
        learner_id: str,
        course_id: str,
        content_id: str,
        content_type: str,
    ) -> Optional[ProgressRecord]:
        result = await self.session.execute(
            select(ProgressRecord).where(
                ProgressRecord.learner_id == learner_id,
                ProgressRecord.course_id == course_id,
                ProgressRecord.content_id == content_id,
                ProgressRecord.content_type == content_type,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        learner_id: str,
        course_id: str,
        content_id: str,
        content_type: str,
        progress: ProgressData,
    ) -> ProgressRecord:
        record = await self.get(learner_id, course_id, content_id, content_type)
        if record is None:
            record = ProgressRecord(
                learner_id=learner_id,
                course_id=course_id,
                content_id=content_id,
                content_type=content_type,
            )
            self._apply(record, progress)
            self.session.add(record)
            try:
                await self.session.commit()
            except IntegrityError:
                # a concurrent commit inserted the row first; update it instead
                await self.session.rollback()
                record = await self.get(
                    learner_id, course_id, content_id, content_type
                )
                if record is None:
                    raise
                self._apply(record, progress)
                await self.session.commit()
        else:
            self._apply(record, progress)
            await self.session.commit()
        await self.session.refresh(record)
        return record

    @staticmethod
    def _apply(record: ProgressRecord, progress: ProgressData) -> None:
        record.lesson_status = progress.lessonStatus
        record.score = progress.score
        record.score_raw = progress.raw_score()
        record.time_spent = progress.timeSpent
        record.suspend_data = progress.suspendData
        record.entry = progress.entry
        record.exit = progress.exit
