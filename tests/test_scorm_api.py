"""
SCORM endpoint tests: launch, wrapper, progress and metadata.
"""

import json
from urllib.parse import parse_qs, urlparse

import pytest
from bs4 import BeautifulSoup

from scorm_bridge.utils.auth import issue_learner_token


async def test_launch_requires_credentials(client, register_package, zip_factory):
    await register_package("b1", zip_factory())

    r = await client.get("/api/v1/scorm/b1/launch", params={"contentType": "book"})

    assert r.status_code == 401
    assert r.json()["success"] is False


async def test_launch_rejects_forged_token(client, register_package, zip_factory):
    await register_package("b1", zip_factory())

    r = await client.get(
        "/api/v1/scorm/b1/launch",
        params={"contentType": "book"},
        headers={"Authorization": "Bearer not-a-real-token"},
    )

    assert r.status_code == 401


async def test_launch_invalid_content_type(client, auth_headers):
    r = await client.get(
        "/api/v1/scorm/b1/launch",
        params={"contentType": "podcast"},
        headers=auth_headers,
    )

    assert r.status_code == 400
    assert "Invalid contentType" in r.json()["error"]


async def test_launch_unknown_content(client, auth_headers):
    r = await client.get(
        "/api/v1/scorm/nope/launch",
        params={"contentType": "book"},
        headers=auth_headers,
    )

    assert r.status_code == 404
    assert r.json()["error"] == "Content not found"


async def test_launch_extracts_and_returns_wrapper_url(
    client, auth_headers, learner_token, register_package, zip_factory,
    scorm_manifest, settings,
):
    archive = zip_factory(files={
        "imsmanifest.xml": scorm_manifest("1.2", "lesson/start.html"),
        "lesson/start.html": "<html></html>",
    })
    await register_package("b1", archive)

    r = await client.get(
        "/api/v1/scorm/b1/launch",
        params={"contentType": "book"},
        headers=auth_headers,
    )

    assert r.status_code == 200, r.text
    body = r.json()
    assert body["success"] is True
    data = body["data"]
    assert data["entryPoint"] == "lesson/start.html"
    assert data["extractedPath"] == "scorm/book/b1/extracted"
    assert data["contentType"] == "book"
    assert data["contentId"] == "b1"
    assert (settings.scorm_root / "book" / "b1" / "extracted" / "lesson" / "start.html").is_file()

    url = urlparse(data["launchUrl"])
    assert url.path == "/api/v1/scorm/b1/wrapper"
    query = parse_qs(url.query)
    assert query["contentType"] == ["book"]
    assert query["entryPoint"] == ["lesson/start.html"]
    assert query["path"] == ["scorm/book/b1/extracted"]
    assert query["token"] == [learner_token]


async def test_launch_twice_is_idempotent(client, auth_headers, register_package, zip_factory):
    await register_package("b1", zip_factory())
    params = {"contentType": "book"}

    first = await client.get("/api/v1/scorm/b1/launch", params=params, headers=auth_headers)
    second = await client.get("/api/v1/scorm/b1/launch", params=params, headers=auth_headers)

    assert first.status_code == second.status_code == 200
    assert first.json()["data"] == second.json()["data"]


async def test_launch_accepts_token_in_query(
    client, learner_token, register_package, zip_factory
):
    await register_package("b1", zip_factory())

    r = await client.get(
        "/api/v1/scorm/b1/launch",
        params={"contentType": "book", "token": learner_token},
    )

    assert r.status_code == 200


async def test_launch_without_manifest_uses_fallback(
    client, auth_headers, register_package, zip_factory
):
    await register_package("b1", zip_factory(files={"story.html": "<html></html>"}))

    r = await client.get(
        "/api/v1/scorm/b1/launch", params={"contentType": "book"}, headers=auth_headers
    )

    assert r.status_code == 200
    assert r.json()["data"]["entryPoint"] == "story.html"


async def test_launch_missing_package_file_is_unavailable(
    client, auth_headers, register_package, settings
):
    await register_package("b1", settings.upload_root / "packages" / "gone.zip")

    r = await client.get(
        "/api/v1/scorm/b1/launch", params={"contentType": "book"}, headers=auth_headers
    )

    assert r.status_code == 404
    body = r.json()
    assert body["success"] is False
    assert body["status"] == "unavailable"


async def test_launch_corrupt_archive_is_unavailable(
    client, auth_headers, register_package, settings
):
    archive = settings.upload_root / "broken.zip"
    archive.write_bytes(b"garbage")
    await register_package("b1", archive)

    r = await client.get(
        "/api/v1/scorm/b1/launch", params={"contentType": "book"}, headers=auth_headers
    )

    assert r.status_code == 422
    body = r.json()
    assert body["success"] is False
    assert body["status"] == "unavailable"
    assert not (settings.scorm_root / "book" / "b1" / "extracted").exists()


class TestWrapper:
    async def test_wrapper_renders_frame(self, client, learner_token):
        r = await client.get(
            "/api/v1/scorm/b1/wrapper",
            params={
                "contentType": "book",
                "entryPoint": "index.html",
                "path": "scorm/book/b1/extracted",
                "token": learner_token,
            },
        )

        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/html")
        soup = BeautifulSoup(r.text, "html.parser")
        iframe = soup.find("iframe", id="scorm-content")
        assert iframe["src"] == "http://test/scorm/book/b1/extracted/index.html"
        assert "allow-top-navigation" not in iframe["sandbox"]

    async def test_wrapper_keeps_entry_point_query(
        self, client, auth_headers, learner_token, register_package, zip_factory,
        scorm_manifest,
    ):
        archive = zip_factory(files={
            "imsmanifest.xml": scorm_manifest("1.2", "index_lms.html?launch=1"),
            "index_lms.html": "<html></html>",
        })
        await register_package("b1", archive)
        launch = await client.get(
            "/api/v1/scorm/b1/launch", params={"contentType": "book"}, headers=auth_headers
        )
        wrapper_url = urlparse(launch.json()["data"]["launchUrl"])

        r = await client.get(f"{wrapper_url.path}?{wrapper_url.query}")

        assert r.status_code == 200
        iframe = BeautifulSoup(r.text, "html.parser").find("iframe", id="scorm-content")
        assert iframe["src"] == "http://test/scorm/book/b1/extracted/index_lms.html?launch=1"

    async def test_wrapper_trusts_only_configured_host_origins(self, client, learner_token, settings):
        r = await client.get(
            "/api/v1/scorm/b1/wrapper",
            params={
                "contentType": "book",
                "entryPoint": "index.html",
                "path": "scorm/book/b1/extracted",
                "token": learner_token,
            },
        )

        soup = BeautifulSoup(r.text, "html.parser")
        config = json.loads(soup.find("script", id="scorm-config").string)
        assert config["hostOrigins"] == settings.cors_origins

    async def test_wrapper_with_invalid_token_still_renders(self, client, caplog):
        r = await client.get(
            "/api/v1/scorm/b1/wrapper",
            params={
                "contentType": "book",
                "entryPoint": "index.html",
                "path": "scorm/book/b1/extracted",
                "token": "forged",
            },
        )

        assert r.status_code == 200
        assert "Invalid token in wrapper request" in caplog.text

    @pytest.mark.parametrize(
        "params",
        [
            {"contentType": "book", "path": "scorm/book/b1/extracted"},
            {"contentType": "book", "entryPoint": "index.html"},
            {"contentType": "comic", "entryPoint": "index.html", "path": "x"},
        ],
    )
    async def test_wrapper_requires_parameters(self, client, params):
        r = await client.get("/api/v1/scorm/b1/wrapper", params=params)

        assert r.status_code == 400

    @pytest.mark.parametrize(
        "entry_point,path",
        [
            ("../../secret.html", "scorm/book/b1/extracted"),
            ("index.html", "../outside"),
            ("index.html", "/etc"),
        ],
    )
    async def test_wrapper_rejects_traversal(self, client, entry_point, path):
        r = await client.get(
            "/api/v1/scorm/b1/wrapper",
            params={"contentType": "book", "entryPoint": entry_point, "path": path},
        )

        assert r.status_code == 400


class TestProgress:
    async def test_defaults_when_no_record(self, client, auth_headers, register_package, zip_factory):
        await register_package("b1", zip_factory())

        r = await client.get(
            "/api/v1/scorm/b1/progress", params={"contentType": "book"}, headers=auth_headers
        )

        assert r.status_code == 200
        data = r.json()["data"]
        assert data["lessonStatus"] == "not attempted"
        assert data["score"] is None
        assert data["timeSpent"] == "00:00:00.00"
        assert data["suspendData"] == ""

    async def test_save_then_get(self, client, auth_headers, register_package, zip_factory):
        await register_package("b1", zip_factory())
        payload = {
            "contentType": "book",
            "progressData": {
                "lessonStatus": "incomplete",
                "score": 42.5,
                "timeSpent": "00:05:00.00",
                "suspendData": "page=3",
                "entry": "resume",
                "exit": "suspend",
            },
        }

        r = await client.post("/api/v1/scorm/b1/progress", json=payload, headers=auth_headers)
        assert r.status_code == 200, r.text
        assert r.json()["success"] is True
        assert r.json()["data"]["progressData"]["lessonStatus"] == "incomplete"

        r = await client.get(
            "/api/v1/scorm/b1/progress", params={"contentType": "book"}, headers=auth_headers
        )
        data = r.json()["data"]
        assert data["lessonStatus"] == "incomplete"
        assert data["score"] == 42.5
        assert data["scoreRaw"] == "42.5"
        assert data["timeSpent"] == "00:05:00.00"
        assert data["suspendData"] == "page=3"
        assert data["entry"] == "resume"
        assert data["exit"] == "suspend"
        assert data["updatedAt"]

    async def test_save_is_an_upsert(self, client, auth_headers, register_package, zip_factory):
        await register_package("b1", zip_factory())
        for status in ("incomplete", "completed"):
            r = await client.post(
                "/api/v1/scorm/b1/progress",
                json={"contentType": "book", "progressData": {"lessonStatus": status}},
                headers=auth_headers,
            )
            assert r.status_code == 200

        r = await client.get(
            "/api/v1/scorm/b1/progress", params={"contentType": "book"}, headers=auth_headers
        )
        assert r.json()["data"]["lessonStatus"] == "completed"

    async def test_invalid_lesson_status_rejected(
        self, client, auth_headers, register_package, zip_factory
    ):
        await register_package("b1", zip_factory())

        r = await client.post(
            "/api/v1/scorm/b1/progress",
            json={"contentType": "book", "progressData": {"lessonStatus": "finished"}},
            headers=auth_headers,
        )

        assert r.status_code == 400
        assert r.json()["success"] is False

    async def test_save_unknown_content(self, client, auth_headers):
        r = await client.post(
            "/api/v1/scorm/zzz/progress",
            json={"contentType": "book", "progressData": {}},
            headers=auth_headers,
        )

        assert r.status_code == 404

    async def test_progress_is_per_learner(
        self, client, auth_headers, settings, register_package, zip_factory
    ):
        await register_package("b1", zip_factory())
        await client.post(
            "/api/v1/scorm/b1/progress",
            json={"contentType": "book", "progressData": {"lessonStatus": "passed"}},
            headers=auth_headers,
        )
        other = {"Authorization": f"Bearer {issue_learner_token('learner-2', settings)}"}

        r = await client.get(
            "/api/v1/scorm/b1/progress", params={"contentType": "book"}, headers=other
        )

        assert r.json()["data"]["lessonStatus"] == "not attempted"

    async def test_progress_requires_credentials(self, client):
        r = await client.get("/api/v1/scorm/b1/progress", params={"contentType": "book"})

        assert r.status_code == 401


class TestMetadata:
    async def test_metadata_from_manifest(
        self, client, auth_headers, register_package, zip_factory, scorm_manifest
    ):
        archive = zip_factory(files={
            "imsmanifest.xml": scorm_manifest("2004", "play.html"),
            "play.html": "",
        })
        await register_package("c1", archive, content_type="chant")

        r = await client.get(
            "/api/v1/scorm/c1/metadata", params={"contentType": "chant"}, headers=auth_headers
        )

        assert r.status_code == 200
        data = r.json()["data"]
        assert data["title"] == "Chant Along"
        assert data["version"] == "2004"
        assert data["entryPoint"] == "play.html"
        assert data["manifestPath"] == "imsmanifest.xml"
        assert data["valid"] is True
        assert data["validationError"] is None

    async def test_metadata_reports_missing_manifest(
        self, client, auth_headers, register_package, zip_factory
    ):
        await register_package("c2", zip_factory(files={"index.html": ""}), content_type="chant")

        r = await client.get(
            "/api/v1/scorm/c2/metadata", params={"contentType": "chant"}, headers=auth_headers
        )

        data = r.json()["data"]
        assert data["title"] == "SCORM Package"
        assert data["valid"] is False
        assert "imsmanifest.xml not found" in data["validationError"]
