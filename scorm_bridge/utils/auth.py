"""
Learner credentials for the SCORM endpoints.

Tokens are signed learner ids (itsdangerous), passed as a bearer header by the
host application or as ``?token=`` by the wrapper document, whose iframe
cannot set headers.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, HTTPException, Request
from itsdangerous import BadData, URLSafeTimedSerializer

from scorm_bridge.utils.settings import Settings, get_settings

logger = logging.getLogger(__name__)

TOKEN_SALT = "scorm-learner"


@dataclass(frozen=True)
class LearnerIdentity:
    learner_id: str
    token: str
    name: Optional[str] = None


def _get_serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.token_secret, salt=TOKEN_SALT)


def issue_learner_token(
    learner_id: str, settings: Settings, name: Optional[str] = None
) -> str:
    """Sign a learner id (and optional display name) into a URL-safe token."""
    payload: Dict[str, Any] = {"uid": str(learner_id)}
    if name:
        payload["name"] = name
    return _get_serializer(settings).dumps(payload)


def verify_learner_token(token: str, settings: Settings) -> Optional[LearnerIdentity]:
    """Decode a token. Returns None when it is missing, forged or expired."""
    if not token:
        return None
    try:
        payload = _get_serializer(settings).loads(
            token, max_age=settings.token_max_age
        )
    except BadData:
        return None
    if not isinstance(payload, dict) or not payload.get("uid"):
        return None
    return LearnerIdentity(
        learner_id=str(payload["uid"]), token=token, name=payload.get("name")
    )


def extract_token(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip()
    return request.query_params.get("token", "")


async def get_current_learner(
    request: Request, settings: Settings = Depends(get_settings)
) -> LearnerIdentity:
    """FastAPI dependency: the learner behind the request's credential."""
    learner = verify_learner_token(extract_token(request), settings)
    if learner is None:
        raise HTTPException(status_code=401, detail="Not authorized")
    return learner
