"""Player ingestion pipeline: view, search, track, type assertion and import.

Routes and jobs should be thin wrappers around PlayerService. Every database
unit of work is an ``async with db.begin()`` block; nothing here calls
commit() or rollback() directly.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Optional, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import (
    IMPORTED_TOO_SOON,
    INVALID_PLAYER_ID,
    INVALID_USERNAME,
    ImportTooSoon,
    InvalidFormat,
    NotFound,
    NotTracked,
    PlayerNotFound,
    TooSoon,
    UpdateFailure,
    UpstreamUnavailable,
    not_tracked_message,
)
from app.models.fields import AccountType
from app.models.players import PlayerRead, SnapshotRead
from app.schemas.players import Player, Snapshot
from app.services.cml_client import CmlClient
from app.services.hiscores_client import HiscoresClient, HiscoresResult
from app.services.job_dispatcher import JobDispatcher, JobKind, LoggingDispatcher
from app.services.player_directory import (
    create_player,
    find_player_by_id,
    find_player_by_key,
    lock_player_by_key,
    lock_player_row,
    search_players,
    update_player,
)
from app.services.snapshot_store import (
    create_snapshot,
    create_snapshots,
    existing_timestamps,
    find_latest_snapshot,
    snapshot_exists_at,
)
from app.utils.cooldown import check_cooldown, utcnow
from app.utils.keyed_lock import KeyedLock
from app.utils.username import normalize_username, username_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

# One retry after a unique-key conflict with a concurrent writer
WRITE_ATTEMPTS = 2


def to_player_read(player: Player, latest: Optional[Snapshot] = None) -> PlayerRead:
    """Build the response model for a player and (optionally) its latest snapshot."""
    if player.id is None:
        raise ValueError("Player ID is required")
    latest_read = None
    if latest is not None and latest.id is not None:
        latest_read = SnapshotRead(
            id=latest.id,
            player_id=latest.player_id,
            observed_at=latest.observed_at,
            stats=dict(latest.stats),
        )
    return PlayerRead(
        id=player.id,
        username=player.username,
        type=player.type,
        last_updated_at=player.last_updated_at,
        last_imported_at=player.last_imported_at,
        created_at=player.created_at,
        updated_at=player.updated_at,
        latest_snapshot=latest_read,
    )


class PlayerService:
    """Orchestrates the hiscores and CML clients against the player store.

    Tracking and importing each hold a per-player lock from the cooldown
    check through the final write, so two concurrent requests for the same
    player cannot both pass the cooldown. The lock is per process; the
    cooldown is checked again on the row locked for writing so another
    process that got there first still wins. Different players never block
    each other.
    """

    def __init__(
        self,
        *,
        hiscores: HiscoresClient,
        history: CmlClient,
        dispatcher: Optional[JobDispatcher] = None,
        track_cooldown: Optional[timedelta] = None,
        import_cooldown: Optional[timedelta] = None,
        search_limit: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.hiscores = hiscores
        self.history = history
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.track_cooldown = (
            track_cooldown
            if track_cooldown is not None
            else timedelta(seconds=settings.track_cooldown_seconds)
        )
        self.import_cooldown = (
            import_cooldown
            if import_cooldown is not None
            else timedelta(hours=settings.import_cooldown_hours)
        )
        self.search_limit = search_limit or settings.search_limit
        self._clock = clock
        self._track_locks = KeyedLock()
        self._import_locks = KeyedLock()

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    async def view(
        self,
        db: AsyncSession,
        *,
        player_id: Optional[int] = None,
        username: Optional[str] = None,
    ) -> PlayerRead:
        """Fetch one tracked player with its latest snapshot.

        A username takes precedence over an id when both are given.

        Raises:
            InvalidFormat: Neither a username nor an id was provided
            NotFound: No player matches
        """
        if username:
            key = username_key(username)
            if not key:
                raise InvalidFormat(INVALID_USERNAME)
            async with db.begin():
                player = await find_player_by_key(db, key)
                latest = await find_latest_snapshot(db, player.id) if player else None  # type: ignore[arg-type]
            if player is None:
                raise NotFound(not_tracked_message(username))
        elif player_id is not None:
            async with db.begin():
                player = await find_player_by_id(db, player_id)
                latest = await find_latest_snapshot(db, player_id) if player else None
            if player is None:
                raise NotFound(not_tracked_message(f"Player of id {player_id}"))
        else:
            raise InvalidFormat(INVALID_PLAYER_ID)

        return to_player_read(player, latest)

    async def search(self, db: AsyncSession, fragment: Optional[str]) -> list[PlayerRead]:
        """Case-insensitive substring search over tracked usernames."""
        key = username_key(fragment) if fragment else ""
        if not key:
            raise InvalidFormat(INVALID_USERNAME)
        async with db.begin():
            players = await search_players(db, key, self.search_limit)
        return [to_player_read(p) for p in players]

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    async def track(
        self,
        db: AsyncSession,
        raw_username: Optional[str],
        *,
        dispatcher: Optional[JobDispatcher] = None,
    ) -> PlayerRead:
        """Fetch current hiscores for a player and store a new snapshot.

        New players are created in the same transaction as their first
        snapshot, so a failed first track leaves nothing behind. On success
        a type confirmation and a history import are queued.

        The cooldown is checked before the upstream call and again on the
        locked row before writing, so a track that finished elsewhere while
        this one was fetching still wins.

        Args:
            db: Async database session
            raw_username: Untrusted username
            dispatcher: Where follow-up jobs go; defaults to the service's own

        Returns:
            The updated player with its latest snapshot

        Raises:
            InvalidFormat: The username fails normalization (no I/O done)
            UpdateFailure: Cooldown or hiscores failure, wrapped under the
                "Failed to update:" prefix
        """
        name = normalize_username(raw_username)

        async with self._track_locks.hold(name.key):
            async with db.begin():
                existing = await find_player_by_key(db, name.key)

            try:
                if existing is not None:
                    self._check_track_cooldown(existing.username, existing.last_updated_at)
                result = await self.hiscores.fetch(name.key)
            except (TooSoon, PlayerNotFound, UpstreamUnavailable) as exc:
                logger.info(f"Track failed for {name.display}: {exc}")
                raise UpdateFailure(exc) from exc

            now = self._clock()
            observed_at = result.observed_at or now

            async def store() -> tuple[Player, Optional[Snapshot]]:
                player = await lock_player_by_key(db, name.key)
                if player is None:
                    player = await create_player(db, name.key)
                    logger.info(f"Tracking new player {player.username} (id={player.id})")
                else:
                    self._check_track_cooldown(player.username, player.last_updated_at)

                player_id = player.id
                if player_id is None:
                    raise ValueError("Player ID is required")

                if await snapshot_exists_at(db, player_id, observed_at):
                    logger.debug(f"Snapshot at {observed_at} already stored for {player.username}")
                else:
                    await create_snapshot(
                        db, player_id=player_id, observed_at=observed_at, stats=result.stats
                    )
                await update_player(db, player, last_updated_at=now)
                return player, await find_latest_snapshot(db, player_id)

            try:
                player, latest = await self._write(db, store, name.display)
            except TooSoon as exc:
                logger.info(f"Track of {name.display} lost to a concurrent update: {exc}")
                raise UpdateFailure(exc) from exc

        logger.info(f"Tracked {player.username} at {observed_at:%Y-%m-%d %H:%M:%S}")
        self._dispatch_followups(player, dispatcher or self.dispatcher)
        return to_player_read(player, latest)

    def _check_track_cooldown(self, username: str, last_updated_at: Optional[datetime]) -> None:
        check_cooldown(
            last_updated_at,
            self.track_cooldown,
            self._clock(),
            error=lambda remaining: TooSoon(
                f"{username} was updated less than "
                f"{int(self.track_cooldown.total_seconds())} seconds ago."
            ),
        )

    async def _write(self, db: AsyncSession, work: Callable[[], Awaitable[T]], subject: str) -> T:
        """Run ``work`` in its own transaction.

        A unique-key conflict means another writer stored the same player or
        observation first. The work is retried once so it re-reads that row
        instead of surfacing the IntegrityError.
        """
        attempt = 1
        while True:
            try:
                async with db.begin():
                    return await work()
            except IntegrityError:
                if attempt >= WRITE_ATTEMPTS:
                    raise
                attempt += 1
                logger.info(f"Concurrent write for {subject}; retrying")

    def _dispatch_followups(self, player: Player, dispatcher: JobDispatcher) -> None:
        payload = {"username": player.username}
        for kind in (JobKind.CONFIRM_PLAYER_TYPE, JobKind.IMPORT_PLAYER):
            try:
                dispatcher.enqueue(kind, dict(payload))
            except Exception:
                # The response is already decided; a lost follow-up job is only logged
                logger.exception(f"Could not enqueue {kind.value} for {player.username}")

    # ------------------------------------------------------------------
    # Type classification
    # ------------------------------------------------------------------

    async def assert_type(
        self,
        db: AsyncSession,
        raw_username: Optional[str],
        force: bool = False,
    ) -> AccountType:
        """Determine (and store) a tracked player's account type.

        Without ``force`` a previously determined type is returned as-is and
        no upstream call is made. There is no cooldown here; callers decide
        how often to force a recompute.

        Raises:
            InvalidFormat: The username fails normalization
            NotTracked: The player has never been tracked
            PlayerNotFound: No hiscores table knows the username
            UpstreamUnavailable: Transport failure talking to the hiscores
        """
        name = normalize_username(raw_username)

        async with db.begin():
            player = await find_player_by_key(db, name.key)
        if player is None or player.id is None:
            raise NotTracked(not_tracked_message(name.display))

        if not force and player.type != AccountType.unknown:
            return player.type

        account_type = await self.classify(name.key)

        async with db.begin():
            locked = await lock_player_row(db, player.id)
            if locked is None:
                raise NotTracked(not_tracked_message(name.display))
            if locked.type != account_type:
                logger.info(
                    f"{locked.username} type changed: {locked.type.value} -> {account_type.value}"
                )
            await update_player(db, locked, type=account_type)

        return account_type

    async def classify(self, key: str) -> AccountType:
        """Infer the account type by comparing the per-mode hiscores tables.

        An account shows up on the ironman tables only while it is (or was)
        that mode. De-ironed accounts keep a stale ironman entry with less
        experience than the regular table, and dead hardcores keep a stale
        hardcore entry with less experience than the ironman table.
        """
        regular = await self.hiscores.fetch(key, AccountType.regular)

        ironman = await self._fetch_optional(key, AccountType.ironman)
        if ironman is None or ironman.overall_experience < regular.overall_experience:
            return AccountType.regular

        hardcore = await self._fetch_optional(key, AccountType.hardcore)
        if hardcore is not None and hardcore.overall_experience >= ironman.overall_experience:
            return AccountType.hardcore

        ultimate = await self._fetch_optional(key, AccountType.ultimate)
        if ultimate is not None and ultimate.overall_experience >= ironman.overall_experience:
            return AccountType.ultimate

        return AccountType.ironman

    async def _fetch_optional(self, key: str, account_type: AccountType) -> Optional[HiscoresResult]:
        try:
            return await self.hiscores.fetch(key, account_type)
        except PlayerNotFound:
            return None

    # ------------------------------------------------------------------
    # History import
    # ------------------------------------------------------------------

    async def import_history(self, db: AsyncSession, raw_username: Optional[str]) -> int:
        """Backfill snapshots from CML, skipping timestamps already stored.

        Args:
            db: Async database session
            raw_username: Untrusted username

        Returns:
            Number of newly stored snapshots (zero is a valid outcome)

        Raises:
            InvalidFormat: The username fails normalization
            NotTracked: The player has never been tracked
            ImportTooSoon: The import cooldown has not elapsed
            HistoryUnavailable: CML could not be reached or returned garbage
        """
        name = normalize_username(raw_username)

        async with self._import_locks.hold(name.key):
            async with db.begin():
                player = await find_player_by_key(db, name.key)
            if player is None or player.id is None:
                raise NotTracked(not_tracked_message(name.display))

            player_id = player.id
            self._check_import_cooldown(player.last_imported_at)

            entries = await self.history.fetch_history(name.key)

            async def store() -> tuple[str, int]:
                locked = await lock_player_row(db, player_id)
                if locked is None:
                    raise NotTracked(not_tracked_message(name.display))
                self._check_import_cooldown(locked.last_imported_at)

                stored = await existing_timestamps(db, player_id, (e.observed_at for e in entries))
                fresh: dict[datetime, dict[str, int]] = {}
                for entry in entries:
                    if entry.observed_at in stored or entry.observed_at in fresh:
                        continue
                    fresh[entry.observed_at] = entry.stats

                if fresh:
                    await create_snapshots(db, player_id, list(fresh.items()))
                await update_player(db, locked, last_imported_at=self._clock())
                return locked.username, len(fresh)

            username, imported = await self._write(db, store, name.display)

        logger.info(f"Imported {imported} of {len(entries)} CML snapshot(s) for {username}")
        return imported

    def _check_import_cooldown(self, last_imported_at: Optional[datetime]) -> None:
        check_cooldown(
            last_imported_at,
            self.import_cooldown,
            self._clock(),
            error=lambda remaining: ImportTooSoon(
                f"{IMPORTED_TOO_SOON}, please wait another "
                f"{max(1, -(-int(remaining.total_seconds()) // 60))} minutes."
            ),
        )


def build_player_service(dispatcher: Optional[JobDispatcher] = None) -> PlayerService:
    """Create a PlayerService wired to the real upstream clients."""
    return PlayerService(
        hiscores=HiscoresClient(),
        history=CmlClient(),
        dispatcher=dispatcher,
    )
