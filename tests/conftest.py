"""
Pytest configuration and fixtures for backend testing
"""

import os
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.pool import NullPool

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test_scorm.db")

from scorm_bridge.main import app
from scorm_bridge.db.config import (
    get_session,
    init_db,
    make_engine,
    make_session_factory,
)
from scorm_bridge.repositories.package_repo import PackageRepository
from scorm_bridge.utils.auth import issue_learner_token
from scorm_bridge.utils.settings import Settings, get_settings

TEST_BASE_URL = "http://test"

MANIFEST_12 = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="course_12" version="1.0"
    xmlns="http://www.imsproject.org/xsd/imscp_rootv1p1p2"
    xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_rootv1p2">
  <metadata>
    <schema>ADL SCORM</schema>
    <schemaversion>1.2</schemaversion>
  </metadata>
  <organizations default="org1">
    <organization identifier="org1">
      <title>Phonics Adventure</title>
      <item identifier="item1" identifierref="res1">
        <title>Lesson 1</title>
      </item>
    </organization>
  </organizations>
  <resources>
    <resource identifier="res1" type="webcontent" adlcp:scormtype="sco" href="{href}">
      <file href="{href}"/>
    </resource>
  </resources>
</manifest>
"""

MANIFEST_2004 = """<?xml version="1.0" encoding="UTF-8"?>
<manifest identifier="course_2004" version="1"
    xmlns="http://www.imsglobal.org/xsd/imscp_v1p1"
    xmlns:adlcp="http://www.adlnet.org/xsd/adlcp_v1p3"
    xmlns:adlseq="http://www.adlnet.org/xsd/adlseq_v1p3">
  <metadata>
    <schema>ADL SCORM</schema>
    <schemaversion>2004 4th Edition</schemaversion>
  </metadata>
  <organizations default="org1">
    <organization identifier="org1">
      <title>Chant Along</title>
      <item identifier="item1" identifierref="res1"><title>Chant</title></item>
    </organization>
  </organizations>
  <resources>
    <resource identifier="res1" type="webcontent" adlcp:scormType="sco" href="{href}"/>
  </resources>
</manifest>
"""


def manifest_12(href: str = "index.html") -> str:
    return MANIFEST_12.format(href=href)


def manifest_2004(href: str = "index.html") -> str:
    return MANIFEST_2004.format(href=href)


def write_zip(path: Path, files: Dict[str, str]) -> Path:
    """Write a ZIP archive holding ``files`` (name -> text content)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


@pytest.fixture
def scorm_manifest():
    """Manifest XML for a SCORM 1.2 or 2004 package."""
    def _manifest(version: str = "1.2", href: str = "index.html") -> str:
        return manifest_2004(href) if version == "2004" else manifest_12(href)
    return _manifest


@pytest.fixture
def zip_factory(tmp_path):
    """Build SCORM ZIP archives inside the test's upload directory."""
    def _build(
        name: str = "package.zip",
        files: Optional[Dict[str, str]] = None,
    ) -> Path:
        if files is None:
            files = {
                "imsmanifest.xml": manifest_12("index.html"),
                "index.html": "<html><body>Lesson</body></html>",
            }
        return write_zip(tmp_path / "uploads" / "packages" / name, files)
    return _build


@pytest.fixture
def settings(tmp_path) -> Settings:
    upload_root = tmp_path / "uploads"
    (upload_root / "scorm").mkdir(parents=True)
    return Settings(
        environment="test",
        upload_root=upload_root,
        base_url=TEST_BASE_URL,
        token_secret="test-secret",
        token_max_age=3600,
        cors_origins=["http://localhost:3000"],
        commit_delay=0.05,
        sample_interval=0.05,
    )


@pytest.fixture
async def session_factory(tmp_path):
    engine = make_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )
    await init_db(engine)

    yield make_session_factory(engine)

    await engine.dispose()


@pytest.fixture
async def test_app(settings, session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_settings] = lambda: settings

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app):
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url=TEST_BASE_URL) as c:
        yield c


@pytest.fixture
def learner_token(settings) -> str:
    return issue_learner_token("learner-1", settings, name="Ada")


@pytest.fixture
def auth_headers(learner_token) -> Dict[str, str]:
    return {"Authorization": f"Bearer {learner_token}"}


@pytest.fixture
def register_package(session_factory):
    """Register a package location for a content item."""
    async def _register(
        content_id: str,
        source_path,
        content_type: str = "book",
        course_id: str = "course-1",
    ):
        async with session_factory() as session:
            return await PackageRepository(session).register(
                content_id, content_type, course_id, str(source_path)
            )
    return _register


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
