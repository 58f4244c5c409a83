"""Repository layer for the SCORM package registry.

Maps a content item (contentId, contentType) to the location of its uploaded
package and to the course that contains it. Uploading and content CRUD live
elsewhere; this is the read side the launch pipeline needs plus a
``register`` used by provisioning scripts.
"""
from __future__ import annotations
from typing import Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from scorm_bridge.models.persisted import ScormPackageRecord


class PackageNotFoundError(Exception):
    """Raised when no package is registered for a content item."""


class PackageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find(
        self, content_id: str, content_type: str
    ) -> Optional[ScormPackageRecord]:
        result = await self.session.execute(
            select(ScormPackageRecord).where(
                ScormPackageRecord.content_id == content_id,
                ScormPackageRecord.content_type == content_type,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, content_id: str, content_type: str) -> ScormPackageRecord:
        record = await self._find(content_id, content_type)
        if not record:
            raise PackageNotFoundError(
                f"No SCORM package registered for {content_type}/{content_id}"
            )
        return record

    async def list(self) -> Sequence[ScormPackageRecord]:
        result = await self.session.execute(select(ScormPackageRecord))
        return result.scalars().all()

    async def register(
        self,
        content_id: str,
        content_type: str,
        course_id: str,
        source_path: str,
        title: Optional[str] = None,
    ) -> ScormPackageRecord:
        record = await self._find(content_id, content_type)
        if record is None:
            record = ScormPackageRecord(
                content_id=content_id,
                content_type=content_type,
                course_id=course_id,
                source_path=source_path,
                title=title,
            )
            self.session.add(record)
        else:
            record.course_id = course_id
            record.source_path = source_path
            if title is not None:
                record.title = title
        await self.session.commit()
        await self.session.refresh(record)
        return record
