"""Follow-up work queued after a successful track.

Web requests hand jobs to FastAPI's ``BackgroundTasks`` so they run after the
response has been sent. The CLI has no request to attach them to and only
logs what it skipped.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from fastapi import BackgroundTasks

from app.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

JobPayload = dict[str, Any]
JobHandler = Callable[[JobPayload], Awaitable[Any]]


class JobKind(str, Enum):
    CONFIRM_PLAYER_TYPE = "ConfirmPlayerType"
    IMPORT_PLAYER = "ImportPlayer"


class JobDispatcher(Protocol):
    def enqueue(self, kind: JobKind, payload: JobPayload) -> None:
        """Schedule a job; must not block and must not raise."""
        ...


class JobRunner:
    """Registered job handlers plus the retry policy they run under.

    Jobs that fail with UpstreamUnavailable are retried up to
    ``max_attempts`` times, ``retry_delay`` seconds apart. Any other failure
    is final and only logged; callers never see job outcomes.
    """

    def __init__(
        self,
        handlers: Mapping[JobKind, JobHandler] | None = None,
        *,
        max_attempts: int = 3,
        retry_delay: float = 30.0,
    ) -> None:
        self._handlers: dict[JobKind, JobHandler] = dict(handlers or {})
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay

    def register(self, kind: JobKind, handler: JobHandler) -> None:
        self._handlers[kind] = handler

    def handles(self, kind: JobKind) -> bool:
        return kind in self._handlers

    async def run(self, kind: JobKind, payload: JobPayload) -> None:
        """Run one job to completion; never raises."""
        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning(f"No handler registered for job {kind.value}; dropping it")
            return

        for attempt in range(1, self.max_attempts + 1):
            try:
                await handler(payload)
                logger.debug(f"Job {kind.value} finished: {payload}")
                return
            except UpstreamUnavailable as exc:
                if attempt == self.max_attempts:
                    logger.error(
                        f"Job {kind.value} gave up after {attempt} attempt(s): {exc}"
                    )
                    return
                logger.warning(
                    f"Job {kind.value} attempt {attempt} failed ({exc}); "
                    f"retrying in {self.retry_delay:.0f}s"
                )
                await asyncio.sleep(self.retry_delay)
            except Exception:
                logger.exception(f"Job {kind.value} failed for {payload}")
                return


class BackgroundTasksDispatcher:
    """Queues jobs on a request's ``BackgroundTasks``."""

    def __init__(self, background_tasks: BackgroundTasks, runner: JobRunner) -> None:
        self.background_tasks = background_tasks
        self.runner = runner

    def enqueue(self, kind: JobKind, payload: JobPayload) -> None:
        if not self.runner.handles(kind):
            logger.warning(f"No handler registered for job {kind.value}; dropping it")
            return
        self.background_tasks.add_task(self.runner.run, kind, dict(payload))


class LoggingDispatcher:
    """Dispatcher that only records what a web request would have queued."""

    def enqueue(self, kind: JobKind, payload: JobPayload) -> None:
        logger.debug(f"Skipping {kind.value} job for {payload.get('username')}")
