"""
HTTP client for the SCORM progress endpoints.

Used by the emulated LMS API to restore and commit a learner's CMI snapshot.
Any transport failure or unsuccessful response becomes
``PersistenceUnavailable``; callers log it and keep their local state.
"""

import logging
from typing import Optional

import httpx

from scorm_bridge.models.progress import ProgressData, ProgressOut

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


class PersistenceUnavailable(Exception):
    """Raised when the progress store cannot be reached or refuses a call."""


class ProgressClient:
    """Talks to ``/api/v1/scorm/{contentId}/progress`` with a bearer token."""

    def __init__(
        self,
        base_url: str,
        token: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            transport=transport,
            timeout=timeout,
        )

    def _progress_url(self, content_id: str) -> str:
        return f"{API_PREFIX}/scorm/{content_id}/progress"

    async def fetch(self, content_id: str, content_type: str) -> Optional[ProgressOut]:
        """Stored progress for the current learner, or None."""
        try:
            response = await self._client.get(
                self._progress_url(content_id),
                params={"contentType": content_type},
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PersistenceUnavailable(f"Failed to load progress: {exc}") from exc

        if not body.get("success"):
            raise PersistenceUnavailable(
                f"Failed to load progress: {body.get('error')}"
            )
        data = body.get("data")
        if not data:
            return None
        try:
            return ProgressOut.model_validate(data)
        except ValueError as exc:
            raise PersistenceUnavailable(f"Unreadable progress: {exc}") from exc

    async def save(
        self, content_id: str, content_type: str, progress: ProgressData
    ) -> None:
        payload = {
            "contentType": content_type,
            "progressData": progress.model_dump(mode="json"),
        }
        try:
            response = await self._client.post(
                self._progress_url(content_id), json=payload
            )
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise PersistenceUnavailable(f"Failed to save progress: {exc}") from exc

        if not body.get("success"):
            raise PersistenceUnavailable(
                f"Failed to save progress: {body.get('error')}"
            )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "ProgressClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
