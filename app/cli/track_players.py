"""Run player tracking operations from the command line.

Usage:
    python -m app.cli.track_players track "Iron Mammal" zezima
    python -m app.cli.track_players import "Iron Mammal"
    python -m app.cli.track_players assert-type --force zezima

Follow-up jobs are not queued from the CLI; run ``import`` or
``assert-type`` explicitly instead.

Exit codes:
    0 - Every username succeeded
    1 - At least one username failed (check logs for details)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from app.config import settings
from app.errors import PlayerError
from app.logging_config import setup_logging
from app.services.job_dispatcher import LoggingDispatcher
from app.services.player_service import PlayerService, build_player_service
from app.utils.db_async import SessionLocal, dispose_engine

logger = logging.getLogger("track_players")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track, import or classify players.")
    parser.add_argument(
        "command",
        choices=("track", "import", "assert-type"),
        help="Operation to run for each username",
    )
    parser.add_argument("usernames", nargs="+", help="One or more usernames")
    parser.add_argument(
        "--force",
        action="store_true",
        help="assert-type: recompute even if a type is already stored",
    )
    return parser.parse_args(argv)


async def run_command(
    service: PlayerService,
    command: str,
    username: str,
    *,
    force: bool = False,
) -> str:
    """Run one operation and return a one-line summary of the outcome."""
    async with SessionLocal() as db:
        if command == "track":
            player = await service.track(db, username)
            return f"tracked {player.username} (id={player.id})"
        if command == "import":
            count = await service.import_history(db, username)
            return f"{count} snapshots imported from CML"
        account_type = await service.assert_type(db, username, force=force)
        return f"type is {account_type.value}"


async def main_async(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    service = build_player_service(LoggingDispatcher())

    failures = 0
    try:
        for username in args.usernames:
            try:
                summary = await run_command(service, args.command, username, force=args.force)
                logger.info(f"{username}: {summary}")
            except PlayerError as exc:
                failures += 1
                logger.error(f"{username}: {exc.message}")
    finally:
        await dispose_engine()

    return 1 if failures else 0


def main() -> None:
    setup_logging(
        level=settings.log_level,
        access_log=False,
        upstream_level=settings.upstream_log_level,
    )
    sys.exit(asyncio.run(main_async()))


if __name__ == "__main__":
    main()
