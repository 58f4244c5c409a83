"""SCORM router: launch, wrapper document, progress and package metadata.

The launch endpoint turns a registered package into a wrapper URL; the
wrapper page hosts the content and talks back to the progress endpoints with
the learner's token.
"""
from __future__ import annotations
import logging
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from scorm_bridge.db.config import get_session
from scorm_bridge.models.persisted import ScormPackageRecord
from scorm_bridge.models.progress import (
    CONTENT_TYPES,
    DEFAULT_PROGRESS,
    LaunchData,
    ProgressSaveRequest,
)
from scorm_bridge.repositories.package_repo import (
    PackageNotFoundError,
    PackageRepository,
)
from scorm_bridge.repositories.progress_repo import ProgressRepository
from scorm_bridge.services.bridge_document import (
    BridgeParams,
    content_url,
    render_bridge_document,
)
from scorm_bridge.services.package_resolver import (
    InvalidPackage,
    PackageResolver,
    read_package_metadata,
    validate_package,
)
from scorm_bridge.utils.auth import (
    LearnerIdentity,
    get_current_learner,
    verify_learner_token,
)
from scorm_bridge.utils.settings import Settings, get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scorm", tags=["SCORM"])

API_PREFIX = "/api/v1"

# Helpers ------------------------------------------------------------------


async def _get_package_repo(
    session: AsyncSession = Depends(get_session),
) -> PackageRepository:
    return PackageRepository(session)


async def _get_progress_repo(
    session: AsyncSession = Depends(get_session),
) -> ProgressRepository:
    return ProgressRepository(session)


def get_package_resolver(
    settings: Settings = Depends(get_settings),
) -> PackageResolver:
    return PackageResolver(settings.upload_root)


def _check_content_type(content_type: Optional[str]) -> str:
    if not content_type or content_type not in CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=(
                "Invalid contentType. Must be one of: "
                + ", ".join(CONTENT_TYPES)
            ),
        )
    return content_type


async def _get_package(
    repo: PackageRepository, content_id: str, content_type: str
) -> ScormPackageRecord:
    try:
        return await repo.get(content_id, content_type)
    except PackageNotFoundError:
        raise HTTPException(status_code=404, detail="Content not found")


def _check_relative(value: str, name: str) -> str:
    normalized = value.replace("\\", "/")
    parts = PurePosixPath(normalized).parts
    if not normalized or normalized.startswith("/") or ".." in parts:
        raise HTTPException(status_code=400, detail=f"Invalid {name}")
    return normalized


# Endpoints ----------------------------------------------------------------


@router.get("/{content_id}/launch")
async def get_launch_url(
    content_id: str,
    contentType: Optional[str] = Query(None),
    learner: LearnerIdentity = Depends(get_current_learner),
    repo: PackageRepository = Depends(_get_package_repo),
    resolver: PackageResolver = Depends(get_package_resolver),
    settings: Settings = Depends(get_settings),
):
    """Resolve a package and return the wrapper URL that launches it."""
    content_type = _check_content_type(contentType)
    package = await _get_package(repo, content_id, content_type)

    location = await resolver.resolve(
        content_type, content_id, package.source_path
    )
    query = urlencode({
        "contentType": content_type,
        "entryPoint": location.entry_point,
        "path": location.extracted_relative_path,
        "token": learner.token,
    })
    launch_url = (
        f"{settings.base_url}{API_PREFIX}/scorm/{content_id}/wrapper?{query}"
    )
    logger.info(
        "Launching SCORM %s/%s for learner %s",
        content_type, content_id, learner.learner_id,
    )
    data = LaunchData(
        launchUrl=launch_url,
        entryPoint=location.entry_point,
        extractedPath=location.extracted_relative_path,
        contentType=content_type,
        contentId=content_id,
    )
    return {"success": True, "data": data.model_dump()}


@router.get("/{content_id}/wrapper", response_class=HTMLResponse)
async def get_wrapper(
    content_id: str,
    contentType: Optional[str] = Query(None),
    entryPoint: Optional[str] = Query(None),
    path: Optional[str] = Query(None),
    token: str = Query(""),
    settings: Settings = Depends(get_settings),
):
    """HTML page embedding the content with the LMS API attached.

    The token travels in the query because the frame cannot send headers.
    An invalid token still renders the page; the progress calls made from it
    are then rejected.
    """
    content_type = _check_content_type(contentType)
    if not entryPoint or not path:
        raise HTTPException(
            status_code=400, detail="entryPoint and path are required"
        )
    entry_point = _check_relative(entryPoint, "entryPoint")
    relative_path = _check_relative(path, "path")

    learner = verify_learner_token(token, settings)
    if token and learner is None:
        logger.warning("Invalid token in wrapper request for %s", content_id)

    document = render_bridge_document(
        BridgeParams(
            content_id=content_id,
            content_type=content_type,
            learner_token=token,
            content_url=content_url(
                settings.base_url, relative_path, entry_point
            ),
            api_base_url=settings.base_url,
            learner_id=learner.learner_id if learner else "",
            learner_name=learner.name if learner else None,
            commit_delay=settings.commit_delay,
            sample_interval=settings.sample_interval,
            host_origins=settings.cors_origins,
        )
    )
    return HTMLResponse(content=document)


@router.get("/{content_id}/progress")
async def get_progress(
    content_id: str,
    contentType: Optional[str] = Query(None),
    learner: LearnerIdentity = Depends(get_current_learner),
    packages: PackageRepository = Depends(_get_package_repo),
    progress: ProgressRepository = Depends(_get_progress_repo),
):
    content_type = _check_content_type(contentType)
    package = await _get_package(packages, content_id, content_type)
    record = await progress.get(
        learner.learner_id, package.course_id, content_id, content_type
    )
    if record is None:
        return {"success": True, "data": DEFAULT_PROGRESS.model_dump()}
    return {"success": True, "data": record.to_dict()}


@router.post("/{content_id}/progress")
async def save_progress(
    content_id: str,
    payload: ProgressSaveRequest,
    learner: LearnerIdentity = Depends(get_current_learner),
    packages: PackageRepository = Depends(_get_package_repo),
    progress: ProgressRepository = Depends(_get_progress_repo),
):
    """Upsert the learner's CMI snapshot for one content item."""
    package = await _get_package(packages, content_id, payload.contentType)
    record = await progress.upsert(
        learner.learner_id,
        package.course_id,
        content_id,
        payload.contentType,
        payload.progressData,
    )
    return {
        "success": True,
        "message": "SCORM progress saved successfully",
        "data": {
            "contentId": content_id,
            "contentType": payload.contentType,
            "progressData": record.to_dict(),
        },
    }


@router.get("/{content_id}/metadata")
async def get_metadata(
    content_id: str,
    contentType: Optional[str] = Query(None),
    learner: LearnerIdentity = Depends(get_current_learner),
    repo: PackageRepository = Depends(_get_package_repo),
    resolver: PackageResolver = Depends(get_package_resolver),
):
    """Package title, version and entry point plus a strict structure check."""
    content_type = _check_content_type(contentType)
    package = await _get_package(repo, content_id, content_type)
    location = await resolver.resolve(
        content_type, content_id, package.source_path
    )
    metadata = await read_package_metadata(location.extracted_path)

    validation_error = None
    try:
        validate_package(location.extracted_path)
    except InvalidPackage as exc:
        validation_error = str(exc)

    data = metadata.model_dump()
    data.update({
        "valid": validation_error is None,
        "validationError": validation_error,
        "extractedPath": location.extracted_relative_path,
    })
    return {"success": True, "data": data}
