"""Persistence helpers for stat snapshots."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.players import Snapshot


async def create_snapshot(
    db: AsyncSession,
    *,
    player_id: int,
    observed_at: datetime,
    stats: dict[str, int],
) -> Snapshot:
    snapshot = Snapshot(player_id=player_id, observed_at=observed_at, stats=dict(stats))
    db.add(snapshot)
    await db.flush()
    return snapshot


async def create_snapshots(
    db: AsyncSession,
    player_id: int,
    entries: Sequence[tuple[datetime, dict[str, int]]],
) -> list[Snapshot]:
    """Insert a batch of snapshots for one player in a single flush."""
    snapshots = [
        Snapshot(player_id=player_id, observed_at=observed_at, stats=dict(stats))
        for observed_at, stats in entries
    ]
    db.add_all(snapshots)
    await db.flush()
    return snapshots


async def find_latest_snapshot(db: AsyncSession, player_id: int) -> Optional[Snapshot]:
    """Return the snapshot with the greatest observed_at for a player."""
    result = await db.execute(
        select(Snapshot)
        .where(Snapshot.player_id == player_id)
        .order_by(desc(Snapshot.observed_at))  # type: ignore[arg-type]
        .limit(1)
    )
    return result.scalar_one_or_none()


async def snapshot_exists_at(db: AsyncSession, player_id: int, observed_at: datetime) -> bool:
    result = await db.execute(
        select(Snapshot.id).where(  # type: ignore[call-overload]
            Snapshot.player_id == player_id,
            Snapshot.observed_at == observed_at,
        )
    )
    return result.first() is not None


async def existing_timestamps(
    db: AsyncSession,
    player_id: int,
    candidates: Iterable[datetime],
) -> set[datetime]:
    """Return which of ``candidates`` already have a snapshot for the player."""
    wanted = list(set(candidates))
    if not wanted:
        return set()
    result = await db.execute(
        select(Snapshot.observed_at).where(  # type: ignore[call-overload]
            Snapshot.player_id == player_id,
            Snapshot.observed_at.in_(wanted),  # type: ignore[attr-defined]
        )
    )
    return set(result.scalars().all())
