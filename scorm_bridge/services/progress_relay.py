"""
Progress relay between a content frame and its host page.

Samples the runtime on a fixed interval and posts ``SCORM_PROGRESS``
messages to the host; accepts ``SCORM_SAVE`` and ``SCORM_FINISH`` commands
back from it.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

from scorm_bridge.models.progress import (
    COMPLETED_STATUSES,
    HostCommand,
    ProgressMessage,
    ProgressSample,
)
from scorm_bridge.utils.settings import DEFAULT_SAMPLE_INTERVAL
from scorm_bridge.services import cmi
from scorm_bridge.services.scorm_runtime import ContentFrame, RuntimeState, ScormRuntimeApi

logger = logging.getLogger(__name__)

PostMessage = Callable[[Dict[str, Any]], None]


class ProgressRelay:
    def __init__(
        self,
        api: ScormRuntimeApi,
        post_message: PostMessage,
        interval: float = DEFAULT_SAMPLE_INTERVAL,
    ):
        self.api = api
        self.post_message = post_message
        self.interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def sample(self) -> ProgressMessage:
        """Current runtime state as a host message. Reads bypass LastError."""
        status = self.api.peek(cmi.LESSON_STATUS)
        raw = self.api.peek(cmi.SCORE_RAW)
        try:
            score = float(raw) if raw else None
        except ValueError:
            score = None
        return ProgressMessage(
            data=ProgressSample(
                status=status,
                score=score,
                timeSpent=self.api.peek(cmi.TOTAL_TIME),
                isCompleted=status in COMPLETED_STATUSES,
            )
        )

    def publish(self) -> None:
        self.post_message(self.sample().model_dump())

    def handle_message(self, message: Any) -> None:
        """Dispatch a host command; anything else is ignored."""
        try:
            command = HostCommand.model_validate(message)
        except ValidationError:
            return

        if command.type == "SCORM_SAVE":
            self.api.flush()
        elif command.type == "SCORM_FINISH":
            if self.api.flush():
                self.api.finish()
            self.stop()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if self.api.state is RuntimeState.TERMINATED:
                break
            if self.api.initialized:
                try:
                    self.publish()
                except Exception:
                    logger.exception("Failed to post SCORM progress")


def launch_in_frame(
    frame: ContentFrame,
    api: ScormRuntimeApi,
    post_message: PostMessage,
    interval: float = DEFAULT_SAMPLE_INTERVAL,
) -> ProgressRelay:
    """Frame load handler: attach the API and start streaming progress."""
    frame.install_api(api)
    relay = ProgressRelay(api, post_message, interval=interval)
    relay.start()
    logger.info("SCORM API attached to frame %s", frame.url)
    return relay
