"""
SCORM Manifest Locator & Parser

Finds ``imsmanifest.xml`` inside an extracted package and reads the few
things the launch pipeline needs from it: the entry point, the SCORM version
and a display title. Both SCORM 1.2 and 2004 layouts are accepted.
"""

from __future__ import annotations

import logging
import posixpath
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiofiles

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"

# Searched in order, relative to the package root
MANIFEST_CANDIDATES = (
    MANIFEST_NAME,
    f"manifest/{MANIFEST_NAME}",
    f"ims/{MANIFEST_NAME}",
)


class ManifestParseFailed(Exception):
    """Raised when a manifest exists but is not readable XML."""

    def __init__(self, manifest_path: Union[str, Path], cause: BaseException):
        self.manifest_path = str(manifest_path)
        self.cause = cause
        super().__init__(
            f"Failed to parse manifest {self.manifest_path}: {cause}"
        )


@dataclass
class ManifestDescriptor:
    manifest_path: Path
    entry_point: Optional[str] = None
    scorm_version: str = "1.2"
    title: Optional[str] = None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1] if "}" in tag else tag


def _iter_named(element: ET.Element, name: str):
    for child in element.iter():
        if isinstance(child.tag, str) and _local_name(child.tag) == name:
            yield child


def _first_named(element: ET.Element, name: str) -> Optional[ET.Element]:
    return next(_iter_named(element, name), None)


def find_manifest(package_dir: Union[str, Path]) -> Optional[Path]:
    """Return the first manifest found among the candidate locations."""
    root = Path(package_dir)
    for candidate in MANIFEST_CANDIDATES:
        path = root / candidate
        if path.is_file():
            return path
    return None


def detect_scorm_version(root: ET.Element, xml_text: str) -> str:
    """
    Detect SCORM version from the manifest.

    Priority: ``schemaversion`` element, then the ``schemaversion``
    attribute, then 2004 namespaces. Defaults to 1.2.
    """
    schemaversion = _first_named(root, "schemaversion")
    if schemaversion is not None and schemaversion.text:
        text = schemaversion.text.strip()
        if "2004" in text or "CAM 1.3" in text:
            return "2004"
        if "1.2" in text:
            return "1.2"

    attr = root.get("schemaversion") or ""
    if "2004" in attr:
        return "2004"

    if any(marker in xml_text for marker in ("adlcp_v1p3", "adlseq", "adlnav")):
        return "2004"
    return "1.2"


def _read_title(root: ET.Element) -> Optional[str]:
    for organization in _iter_named(root, "organization"):
        for child in organization:
            if not isinstance(child.tag, str):
                continue
            if _local_name(child.tag) == "title" and child.text and child.text.strip():
                return child.text.strip()

    general = _first_named(root, "general")
    if general is not None:
        title = _first_named(general, "title")
        if title is not None:
            node = _first_named(title, "langstring")
            if node is None:
                node = _first_named(title, "string")
            if node is None:
                node = title
            if node.text and node.text.strip():
                return node.text.strip()
    return None


def parse_manifest_text(
    xml_text: str,
    manifest_path: Union[str, Path],
    package_dir: Optional[Union[str, Path]] = None,
) -> ManifestDescriptor:
    """Parse manifest XML; the first ``<resource>`` in document order wins.

    Hrefs are relative to the manifest's own directory. When ``package_dir``
    is given and the manifest sits in a subdirectory, that subdirectory is
    folded into the returned entry point.
    """
    manifest_path = Path(manifest_path)
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as exc:
        raise ManifestParseFailed(manifest_path, exc) from exc

    descriptor = ManifestDescriptor(
        manifest_path=manifest_path,
        scorm_version=detect_scorm_version(root, xml_text),
        title=_read_title(root),
    )

    resource = _first_named(root, "resource")
    href = resource.get("href") if resource is not None else None
    if href and href.strip():
        href = href.strip().replace("\\", "/")
        prefix = _manifest_prefix(manifest_path, package_dir)
        descriptor.entry_point = posixpath.join(prefix, href) if prefix else href
    return descriptor


def _manifest_prefix(
    manifest_path: Path, package_dir: Optional[Union[str, Path]]
) -> str:
    if package_dir is None:
        return ""
    try:
        relative = manifest_path.parent.relative_to(Path(package_dir))
    except ValueError:
        return ""
    prefix = relative.as_posix()
    return "" if prefix == "." else prefix


async def parse_manifest(
    manifest_path: Union[str, Path],
    package_dir: Optional[Union[str, Path]] = None,
) -> ManifestDescriptor:
    """Read and parse a manifest file."""
    try:
        async with aiofiles.open(manifest_path, "r", encoding="utf-8-sig") as fh:
            xml_text = await fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ManifestParseFailed(manifest_path, exc) from exc
    return parse_manifest_text(xml_text, manifest_path, package_dir)
