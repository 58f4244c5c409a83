"""
SCORM Package Resolution

Turns a registered package location into something the wrapper can launch:
extracts archives once, checks the package structure and picks the entry
point (manifest first, then well-known file names, then ``index.html``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from scorm_bridge.models.progress import CONTENT_TYPES, PackageMetadata
from scorm_bridge.services.archive import ArchiveExtractor
from scorm_bridge.services.manifest import (
    ManifestParseFailed,
    find_manifest,
    parse_manifest,
)

logger = logging.getLogger(__name__)

FALLBACK_ENTRY_POINTS = ("index.html", "index.htm", "story.html", "story.htm")
DEFAULT_ENTRY_POINT = "index.html"

_CONTENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class InvalidPackage(Exception):
    """Raised when a package is missing or structurally unusable."""

    MISSING_SOURCE = "missing_source"
    MISSING_DIRECTORY = "missing_directory"
    MISSING_MANIFEST = "missing_manifest"
    BAD_REFERENCE = "bad_reference"

    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


@dataclass(frozen=True)
class LaunchLocation:
    content_type: str
    content_id: str
    extracted_path: Path
    extracted_relative_path: str
    entry_point: str


def validate_package(extracted_path: Union[str, Path]) -> Path:
    """
    Check the minimum structure of an extracted package.

    Returns:
        Path to the located manifest

    Raises:
        InvalidPackage: directory missing or no manifest at any candidate path
    """
    path = Path(extracted_path)
    if not path.is_dir():
        raise InvalidPackage(
            "Extracted SCORM package directory does not exist",
            InvalidPackage.MISSING_DIRECTORY,
        )
    manifest = find_manifest(path)
    if manifest is None:
        raise InvalidPackage(
            "Invalid SCORM package: imsmanifest.xml not found",
            InvalidPackage.MISSING_MANIFEST,
        )
    return manifest


async def resolve_entry_point(extracted_path: Union[str, Path]) -> str:
    """Pick the file a launch should load first; never fails."""
    base = Path(extracted_path)
    manifest_path = find_manifest(base)
    if manifest_path is not None:
        try:
            descriptor = await parse_manifest(manifest_path, base)
        except ManifestParseFailed as exc:
            logger.warning(
                "Could not parse manifest, falling back to default entry "
                "points: %s", exc
            )
        else:
            if descriptor.entry_point:
                return descriptor.entry_point

    for candidate in FALLBACK_ENTRY_POINTS:
        if (base / candidate).is_file():
            return candidate
    return DEFAULT_ENTRY_POINT


async def read_package_metadata(extracted_path: Union[str, Path]) -> PackageMetadata:
    """Title, version, entry point and manifest location of a package."""
    base = Path(extracted_path)
    manifest_path = find_manifest(base)
    if manifest_path is None:
        return PackageMetadata(entryPoint=await resolve_entry_point(base))

    try:
        descriptor = await parse_manifest(manifest_path, base)
    except ManifestParseFailed as exc:
        logger.warning("Could not extract full metadata: %s", exc)
        return PackageMetadata(
            entryPoint=await resolve_entry_point(base),
            manifestPath=manifest_path.relative_to(base).as_posix(),
        )

    return PackageMetadata(
        title=descriptor.title or "SCORM Package",
        entryPoint=await resolve_entry_point(base),
        version=descriptor.scorm_version,
        manifestPath=manifest_path.relative_to(base).as_posix(),
    )


class PackageResolver:
    """Resolves (contentType, contentId, source) into a launch location.

    Archives are extracted below ``<upload_root>/scorm/<type>/<id>/extracted``;
    a source that is already a directory is used in place. Either way the
    result must live under ``<upload_root>/scorm`` so it can be served
    statically.
    """

    def __init__(
        self,
        upload_root: Union[str, Path],
        extractor: Optional[ArchiveExtractor] = None,
    ):
        self.upload_root = Path(upload_root)
        self.scorm_root = self.upload_root / "scorm"
        self.extractor = extractor or ArchiveExtractor()

    def extraction_dir(self, content_type: str, content_id: str) -> Path:
        return self.scorm_root / content_type / content_id / "extracted"

    async def resolve(
        self,
        content_type: str,
        content_id: str,
        source_path: Union[str, Path],
    ) -> LaunchLocation:
        """
        Extract (once), validate and pick the entry point of a package.

        Raises:
            InvalidPackage: unknown content type, missing source, package
                outside the upload root or missing extraction directory
            ExtractionFailed: the archive could not be unpacked
        """
        self._check_identity(content_type, content_id)
        source = Path(source_path)
        if not source.is_absolute():
            source = self.upload_root / source
        if not source.exists():
            raise InvalidPackage(
                "SCORM file not found on server", InvalidPackage.MISSING_SOURCE
            )

        if source.is_file() and source.suffix.lower() == ".zip":
            extracted = await self.extractor.extract(
                source, self.extraction_dir(content_type, content_id)
            )
        else:
            extracted = source

        try:
            validate_package(extracted)
        except InvalidPackage as exc:
            if exc.reason != InvalidPackage.MISSING_MANIFEST:
                raise
            logger.warning(
                "SCORM package %s/%s has no manifest, using fallback entry "
                "point", content_type, content_id
            )

        entry_point = await resolve_entry_point(extracted)
        return LaunchLocation(
            content_type=content_type,
            content_id=content_id,
            extracted_path=extracted,
            extracted_relative_path=self.relative_path(extracted),
            entry_point=entry_point,
        )

    def relative_path(self, extracted: Path) -> str:
        """Path of an extraction relative to the upload root, POSIX style.

        Only packages below the served ``scorm`` directory can be launched.
        """
        resolved = extracted.resolve()
        try:
            resolved.relative_to(self.scorm_root.resolve())
            relative = resolved.relative_to(self.upload_root.resolve())
        except ValueError as exc:
            raise InvalidPackage(
                "SCORM package is outside the served content directory",
                InvalidPackage.BAD_REFERENCE,
            ) from exc
        return relative.as_posix()

    @staticmethod
    def _check_identity(content_type: str, content_id: str) -> None:
        if content_type not in CONTENT_TYPES:
            raise InvalidPackage(
                f"Invalid contentType. Must be one of: {', '.join(CONTENT_TYPES)}",
                InvalidPackage.BAD_REFERENCE,
            )
        if not _CONTENT_ID_RE.match(content_id or ""):
            raise InvalidPackage(
                "Invalid contentId", InvalidPackage.BAD_REFERENCE
            )
