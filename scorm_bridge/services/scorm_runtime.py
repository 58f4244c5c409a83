"""
Emulated LMS API

Implements the SCORM 1.2 runtime contract (LMSInitialize, LMSGetValue, ...)
plus the SCORM 2004 method names on the same object, backed by the progress
endpoints. Calls are synchronous from the content's point of view; restoring
and committing progress run as background tasks on the running event loop.

State machine: UNINITIALIZED -> INITIALIZED -> TERMINATED (terminal).
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Dict, Optional, Set

from scorm_bridge.models.progress import ProgressData, ProgressOut
from scorm_bridge.utils.settings import DEFAULT_COMMIT_DELAY
from scorm_bridge.services import cmi
from scorm_bridge.services.cmi import RuntimeApiError
from scorm_bridge.services.progress_client import PersistenceUnavailable

logger = logging.getLogger(__name__)

TRUE = "true"
FALSE = "false"


class RuntimeState(Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    TERMINATED = "terminated"


class ScormRuntimeApi:
    """
    One runtime session for one loaded content frame.

    ``client`` must provide ``fetch(content_id, content_type)`` and
    ``save(content_id, content_type, progress)`` coroutines, like
    ``ProgressClient``. Initialize returns before the stored snapshot has been
    fetched; content reading right away sees defaults. Callers that need the
    restored values first can ``await wait_until_restored()``. Values the
    content writes before the restore lands are kept.
    """

    def __init__(
        self,
        client,
        content_id: str,
        content_type: str,
        learner_id: str = "",
        learner_name: Optional[str] = None,
        commit_delay: float = DEFAULT_COMMIT_DELAY,
    ):
        self.client = client
        self.content_id = content_id
        self.content_type = content_type
        self.commit_delay = commit_delay

        self.state = RuntimeState.UNINITIALIZED
        self.cmi: Dict[str, str] = {}
        self.last_error = cmi.NO_ERROR
        self.last_diagnostic = ""
        self.has_uncommitted_changes = False

        self._identity = {"cmi.core.student_id": learner_id or ""}
        if learner_name:
            self._identity["cmi.core.student_name"] = learner_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._commit_handle: Optional[asyncio.TimerHandle] = None
        self._restore_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._written: Set[str] = set()
        self._revision = 0

    @property
    def initialized(self) -> bool:
        return self.state is RuntimeState.INITIALIZED

    # SCORM API ------------------------------------------------------------
    def initialize(self, parameter: str = "") -> str:
        if self.state is RuntimeState.INITIALIZED:
            return self._fail(cmi.GENERAL_EXCEPTION, "Already initialized")
        if self.state is RuntimeState.TERMINATED:
            return self._fail(cmi.GENERAL_EXCEPTION, "Content instance terminated")

        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            return self._fail(cmi.GENERAL_EXCEPTION, "No event loop to run the session on")

        self.state = RuntimeState.INITIALIZED
        self._restore_task = self._spawn(self._restore())
        return self._succeed()

    def get_value(self, element: Any) -> str:
        if not self.initialized:
            self._set_error(cmi.NOT_INITIALIZED)
            return ""
        try:
            key = cmi.canonical_element(element)
            cmi.check_readable(key)
        except RuntimeApiError as exc:
            self._set_error(exc.code, exc.diagnostic)
            return ""
        self._set_error(cmi.NO_ERROR)
        return self._read(key)

    def set_value(self, element: Any, value: Any) -> str:
        if not self.initialized:
            return self._fail(cmi.NOT_INITIALIZED)
        try:
            key = cmi.canonical_element(element)
            if value is None:
                raise RuntimeApiError(cmi.INVALID_ARGUMENT, "Value is required")
            value = cmi.normalize_value(key, str(value))
            cmi.check_writable(key, value)
        except RuntimeApiError as exc:
            return self._fail(exc.code, exc.diagnostic)

        self.cmi[key] = value
        self._written.add(key)
        self._revision += 1
        self.has_uncommitted_changes = True
        self._schedule_auto_commit()
        return self._succeed()

    def commit(self, parameter: str = "") -> str:
        if not self.initialized:
            return self._fail(cmi.NOT_INITIALIZED)
        self._cancel_auto_commit()
        self._send_snapshot()
        return self._succeed()

    def finish(self, parameter: str = "") -> str:
        if not self.initialized:
            return self._fail(cmi.NOT_INITIALIZED)
        self._cancel_auto_commit()
        self._send_snapshot()
        self.state = RuntimeState.TERMINATED
        return self._succeed()

    def get_last_error(self) -> str:
        return str(self.last_error)

    def get_error_string(self, error_code: Any = None) -> str:
        if error_code in (None, ""):
            error_code = self.last_error
        return cmi.error_string(error_code)

    def get_diagnostic(self, error_code: Any = None) -> str:
        if error_code in (None, "") or str(error_code) == str(self.last_error):
            return self.last_diagnostic or cmi.error_string(self.last_error)
        return cmi.error_string(error_code)

    # SCORM 1.2 names
    LMSInitialize = initialize
    LMSFinish = finish
    LMSGetValue = get_value
    LMSSetValue = set_value
    LMSCommit = commit
    LMSGetLastError = get_last_error
    LMSGetErrorString = get_error_string
    LMSGetDiagnostic = get_diagnostic

    # SCORM 2004 names
    Initialize = initialize
    Terminate = finish
    GetValue = get_value
    SetValue = set_value
    Commit = commit
    GetLastError = get_last_error
    GetErrorString = get_error_string
    GetDiagnostic = get_diagnostic

    # Host side ------------------------------------------------------------
    def peek(self, element: str) -> str:
        """Read an element without touching the content-visible error state."""
        try:
            return self._read(cmi.canonical_element(element))
        except RuntimeApiError:
            return ""

    def snapshot_progress(self) -> ProgressData:
        """The progress record a commit would send right now."""
        raw = self.cmi.get(cmi.SCORE_RAW, "")
        return ProgressData(
            lessonStatus=self.cmi.get(cmi.LESSON_STATUS) or "incomplete",
            score=float(raw) if raw else None,
            scoreRaw=raw,
            timeSpent=self.cmi.get(cmi.TOTAL_TIME) or "00:00:00.00",
            suspendData=self.cmi.get(cmi.SUSPEND_DATA, ""),
            entry=self.cmi.get(cmi.ENTRY) or "ab-initio",
            exit=self.cmi.get(cmi.EXIT) or "normal",
        )

    async def wait_until_restored(self) -> None:
        if self._restore_task is not None:
            await asyncio.wait({self._restore_task})

    async def drain(self) -> None:
        """Wait for every in-flight restore and commit."""
        while self._pending:
            await asyncio.wait(set(self._pending))

    def flush(self) -> bool:
        """Host-side commit: send the snapshot now, leaving the error state alone.

        Returns False when there is no active session to flush.
        """
        if not self.initialized:
            return False
        self._cancel_auto_commit()
        self._send_snapshot()
        return True

    def cancel_timers(self) -> None:
        self._cancel_auto_commit()

    # Internals ------------------------------------------------------------
    def _read(self, key: str) -> str:
        if key in self.cmi:
            return self.cmi[key]
        if key in self._identity:
            return self._identity[key]
        return cmi.default_value(key)

    def _succeed(self) -> str:
        self._set_error(cmi.NO_ERROR)
        return TRUE

    def _fail(self, code: int, diagnostic: Optional[str] = None) -> str:
        self._set_error(code, diagnostic)
        return FALSE

    def _set_error(self, code: int, diagnostic: Optional[str] = None) -> None:
        self.last_error = code
        self.last_diagnostic = diagnostic or ""

    def _schedule_auto_commit(self) -> None:
        self._cancel_auto_commit()
        self._commit_handle = self._loop.call_later(self.commit_delay, self._auto_commit)

    def _cancel_auto_commit(self) -> None:
        if self._commit_handle is not None:
            self._commit_handle.cancel()
            self._commit_handle = None

    def _auto_commit(self) -> None:
        self._commit_handle = None
        if self.initialized and self.has_uncommitted_changes:
            logger.debug("Auto-commit for %s/%s", self.content_type, self.content_id)
            self.commit()

    def _send_snapshot(self) -> None:
        self._spawn(self._save(self.snapshot_progress(), self._revision))

    async def _save(self, progress: ProgressData, revision: int) -> None:
        try:
            await self.client.save(self.content_id, self.content_type, progress)
        except PersistenceUnavailable as exc:
            logger.warning(
                "Failed to save SCORM progress for %s/%s: %s",
                self.content_type, self.content_id, exc,
            )
            return
        if revision == self._revision:
            self.has_uncommitted_changes = False

    async def _restore(self) -> None:
        try:
            stored = await self.client.fetch(self.content_id, self.content_type)
        except PersistenceUnavailable as exc:
            logger.warning(
                "Failed to load SCORM progress for %s/%s: %s",
                self.content_type, self.content_id, exc,
            )
            return
        if stored is not None:
            self._merge_restored(stored)

    def _merge_restored(self, stored: ProgressOut) -> None:
        restored: Dict[str, str] = {}
        if stored.lessonStatus and stored.lessonStatus != "not attempted":
            restored[cmi.LESSON_STATUS] = stored.lessonStatus
        raw = stored.raw_score()
        if raw:
            restored[cmi.SCORE_RAW] = raw
        if stored.timeSpent:
            restored[cmi.TOTAL_TIME] = stored.timeSpent
        if stored.suspendData:
            restored[cmi.SUSPEND_DATA] = stored.suspendData
            restored[cmi.ENTRY] = "resume"
        for key, value in restored.items():
            if key not in self._written:
                self.cmi[key] = value

    def _spawn(self, coro) -> asyncio.Task:
        task = self._loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "SCORM runtime task failed for %s/%s",
                self.content_type, self.content_id, exc_info=exc,
            )


class ContentFrame:
    """The global namespace of one embedded content frame.

    Content discovers its LMS by looking up ``API`` (SCORM 1.2) or
    ``API_1484_11`` (SCORM 2004) on its own or a parent frame, so one runtime
    object is attached under both names, once.
    """

    API_NAMES = ("API", "API_1484_11")

    def __init__(self, url: str = ""):
        self.url = url
        self.window: Dict[str, Any] = {}

    def install_api(self, api: ScormRuntimeApi) -> None:
        if any(name in self.window for name in self.API_NAMES):
            raise RuntimeError("An LMS API is already attached to this frame")
        for name in self.API_NAMES:
            self.window[name] = api

    def find_api(self, version: str = "1.2") -> Optional[ScormRuntimeApi]:
        name = "API_1484_11" if version == "2004" else "API"
        return self.window.get(name)
