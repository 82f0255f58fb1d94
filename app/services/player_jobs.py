"""Background job handlers queued after a successful track.

Each handler opens its own database session, so it is safe to run after
the request that queued it has finished.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import ImportTooSoon
from app.services.job_dispatcher import (
    JobHandler,
    JobKind,
    JobPayload,
    JobRunner,
)
from app.services.player_service import PlayerService

logger = logging.getLogger(__name__)


def build_job_handlers(
    service: PlayerService,
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[JobKind, JobHandler]:
    """Return the handler for each job kind, bound to a service and session factory."""

    async def confirm_player_type(payload: JobPayload) -> None:
        username = payload["username"]
        async with session_factory() as db:
            account_type = await service.assert_type(db, username, force=False)
        logger.info(f"Confirmed {username} as {account_type.value}")

    async def import_player(payload: JobPayload) -> None:
        username = payload["username"]
        async with session_factory() as db:
            try:
                count = await service.import_history(db, username)
            except ImportTooSoon as exc:
                # Expected on every re-track inside the import window
                logger.debug(f"Skipping CML import for {username}: {exc}")
                return
        logger.info(f"{count} snapshots imported from CML for {username}")

    return {
        JobKind.CONFIRM_PLAYER_TYPE: confirm_player_type,
        JobKind.IMPORT_PLAYER: import_player,
    }


def register_player_jobs(
    runner: JobRunner,
    service: PlayerService,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    for kind, handler in build_job_handlers(service, session_factory).items():
        runner.register(kind, handler)
