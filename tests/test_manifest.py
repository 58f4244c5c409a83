"""
Manifest locator and parser tests
"""

import pytest

from scorm_bridge.services.manifest import (
    ManifestParseFailed,
    find_manifest,
    parse_manifest,
    parse_manifest_text,
)


def test_find_manifest_prefers_root_location(tmp_path, scorm_manifest):
    (tmp_path / "manifest").mkdir()
    (tmp_path / "imsmanifest.xml").write_text(scorm_manifest())
    (tmp_path / "manifest" / "imsmanifest.xml").write_text(scorm_manifest())

    assert find_manifest(tmp_path) == tmp_path / "imsmanifest.xml"


@pytest.mark.parametrize("subdir", ["manifest", "ims"])
def test_find_manifest_checks_fallback_directories(tmp_path, scorm_manifest, subdir):
    (tmp_path / subdir).mkdir()
    (tmp_path / subdir / "imsmanifest.xml").write_text(scorm_manifest())

    assert find_manifest(tmp_path) == tmp_path / subdir / "imsmanifest.xml"


def test_find_manifest_returns_none_when_absent(tmp_path):
    (tmp_path / "index.html").write_text("<html></html>")
    (tmp_path / "other").mkdir()
    (tmp_path / "other" / "imsmanifest.xml").write_text("<manifest/>")

    assert find_manifest(tmp_path) is None


def test_parse_scorm_12_manifest(tmp_path, scorm_manifest):
    descriptor = parse_manifest_text(
        scorm_manifest("1.2", "player/launch.html"), tmp_path / "imsmanifest.xml"
    )

    assert descriptor.entry_point == "player/launch.html"
    assert descriptor.scorm_version == "1.2"
    assert descriptor.title == "Phonics Adventure"


def test_parse_scorm_2004_manifest(tmp_path, scorm_manifest):
    descriptor = parse_manifest_text(
        scorm_manifest("2004", "story.html"), tmp_path / "imsmanifest.xml"
    )

    assert descriptor.entry_point == "story.html"
    assert descriptor.scorm_version == "2004"
    assert descriptor.title == "Chant Along"


def test_version_detected_from_namespaces_without_schemaversion(tmp_path):
    xml = """<manifest xmlns="http://www.imsglobal.org/xsd/imscp_v1p1"
        xmlns:adlseq="http://www.adlnet.org/xsd/adlseq_v1p3">
      <resources><resource identifier="r" href="a.html"/></resources>
    </manifest>"""

    descriptor = parse_manifest_text(xml, tmp_path / "imsmanifest.xml")

    assert descriptor.scorm_version == "2004"
    assert descriptor.title is None


def test_first_resource_in_document_order_wins(tmp_path):
    xml = """<manifest>
      <resources>
        <resource identifier="assets" type="webcontent"/>
        <resource identifier="r1" href="first.html"/>
        <resource identifier="r2" href="second.html"/>
      </resources>
    </manifest>"""

    descriptor = parse_manifest_text(xml, tmp_path / "imsmanifest.xml")

    # the first <resource> has no href, so there is no manifest entry point
    assert descriptor.entry_point is None


def test_first_resource_href_is_used(tmp_path):
    xml = """<manifest><resources>
        <resource identifier="r1" href="first.html"/>
        <resource identifier="r2" href="second.html"/>
    </resources></manifest>"""

    descriptor = parse_manifest_text(xml, tmp_path / "imsmanifest.xml")

    assert descriptor.entry_point == "first.html"


def test_href_is_relative_to_manifest_directory(tmp_path, scorm_manifest):
    manifest_path = tmp_path / "manifest" / "imsmanifest.xml"

    descriptor = parse_manifest_text(
        scorm_manifest("1.2", "launch.html"), manifest_path, tmp_path
    )

    assert descriptor.entry_point == "manifest/launch.html"


def test_lom_title_is_used_without_organization_title(tmp_path):
    xml = """<manifest xmlns:imsmd="http://www.imsglobal.org/xsd/imsmd_rootv1p2p1">
      <metadata><imsmd:lom><imsmd:general><imsmd:title>
        <imsmd:langstring xml:lang="en">Alphabet Song</imsmd:langstring>
      </imsmd:title></imsmd:general></imsmd:lom></metadata>
      <resources><resource identifier="r" href="index.html"/></resources>
    </manifest>"""

    descriptor = parse_manifest_text(xml, tmp_path / "imsmanifest.xml")

    assert descriptor.title == "Alphabet Song"


def test_malformed_manifest_raises(tmp_path):
    with pytest.raises(ManifestParseFailed) as exc_info:
        parse_manifest_text("<manifest><resources>", tmp_path / "imsmanifest.xml")

    assert exc_info.value.manifest_path == str(tmp_path / "imsmanifest.xml")


async def test_parse_manifest_reads_file_with_bom(tmp_path, scorm_manifest):
    path = tmp_path / "imsmanifest.xml"
    path.write_bytes(b"\xef\xbb\xbf" + scorm_manifest("1.2", "index.html").encode("utf-8"))

    descriptor = await parse_manifest(path, tmp_path)

    assert descriptor.entry_point == "index.html"
    assert descriptor.manifest_path == path


async def test_parse_manifest_missing_file_raises(tmp_path):
    with pytest.raises(ManifestParseFailed):
        await parse_manifest(tmp_path / "imsmanifest.xml")
