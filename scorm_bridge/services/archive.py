"""
SCORM Archive Extraction

Unpacks uploaded SCORM ZIP packages into a stable directory. Extraction is
write-once per target directory: an existing target is returned unchanged.
"""

import asyncio
import logging
import os
import shutil
import tempfile
import weakref
import zipfile
from pathlib import Path, PurePosixPath
from typing import Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# One lock per target directory, dropped once nobody holds it
_extraction_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
    weakref.WeakValueDictionary()
)


def _lock_for(target: Path) -> asyncio.Lock:
    key = str(target.resolve())
    lock = _extraction_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _extraction_locks[key] = lock
    return lock


class ExtractionFailed(Exception):
    """Raised when an archive cannot be unpacked."""

    def __init__(self, archive_path: PathLike, cause: BaseException):
        self.archive_path = str(archive_path)
        self.cause = cause
        super().__init__(
            f"Failed to extract SCORM package {self.archive_path}: {cause}"
        )


def check_member_name(name: str) -> None:
    """Reject archive members that would land outside the target directory."""
    normalized = name.replace("\\", "/")
    if normalized.startswith("/") or (len(normalized) > 1 and normalized[1] == ":"):
        raise ValueError(f"Absolute path not allowed: {name}")
    if ".." in PurePosixPath(normalized).parts:
        raise ValueError(f"Invalid path detected: {name}")


class ArchiveExtractor:
    """Extracts SCORM ZIP packages, at most once per target directory.

    The archive is unpacked into a staging directory next to the target and
    renamed into place when complete, so an existing target directory always
    holds a finished extraction, also across worker processes. Within one
    process concurrent callers for the same target are serialized by a lock
    keyed by the target path.
    """

    async def extract(self, archive_path: PathLike, target_dir: PathLike) -> Path:
        """
        Extract ``archive_path`` into ``target_dir`` unless it already exists.

        Args:
            archive_path: Path to the ZIP file
            target_dir: Directory to extract to

        Returns:
            The target directory

        Raises:
            ExtractionFailed: archive unreadable, corrupt or unsafe
        """
        archive = Path(archive_path)
        target = Path(target_dir)

        if target.is_dir():
            return target

        async with _lock_for(target):
            if target.is_dir():
                logger.debug("Extraction already completed: %s", target)
                return target
            logger.info("Extracting SCORM package %s -> %s", archive, target)
            await asyncio.to_thread(self._extract_atomically, archive, target)
        return target

    def _extract_atomically(self, archive: Path, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        staging = Path(
            tempfile.mkdtemp(prefix=f".{target.name}-", dir=target.parent)
        )
        try:
            self._unpack(archive, staging)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, OSError, ValueError) as exc:
            shutil.rmtree(staging, ignore_errors=True)
            logger.error("SCORM extraction failed for %s: %s", archive, exc)
            raise ExtractionFailed(archive, exc) from exc

        try:
            os.rename(staging, target)
        except OSError as exc:
            shutil.rmtree(staging, ignore_errors=True)
            if not target.is_dir():
                raise ExtractionFailed(archive, exc) from exc
            # another process finished the same extraction first
            logger.info("Extraction of %s completed elsewhere", target)

    def _unpack(self, archive: Path, destination: Path) -> None:
        with zipfile.ZipFile(archive, "r") as zf:
            for member in zf.namelist():
                check_member_name(member)
            zf.extractall(destination)


def remove_extraction(extracted_path: PathLike) -> bool:
    """Delete an extracted package so the next launch extracts it again.

    Returns True when a directory was removed.
    """
    path = Path(extracted_path)
    if not path.is_dir():
        return False
    try:
        shutil.rmtree(path)
    except OSError as exc:
        # cleanup failures shouldn't break the flow
        logger.error("Failed to cleanup SCORM package %s: %s", path, exc)
        return False
    logger.info("Removed extracted SCORM package %s", path)
    return True
