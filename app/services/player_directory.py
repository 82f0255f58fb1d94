"""Storage-backed lookup, search and creation of Player records.

Functions here never open transactions; callers wrap them in
``async with db.begin()`` so a lookup and the writes that follow it share
one unit of work.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.fields import AccountType
from app.schemas.players import Player
from app.utils.cooldown import utcnow
from app.utils.username import display_name


async def find_player_by_key(db: AsyncSession, key: str) -> Optional[Player]:
    """Fetch a player by normalized (lowercase) username."""
    result = await db.execute(select(Player).where(Player.username_key == key))
    return result.scalar_one_or_none()


async def find_player_by_id(db: AsyncSession, player_id: int) -> Optional[Player]:
    return await db.get(Player, player_id)


async def lock_player_row(db: AsyncSession, player_id: int) -> Optional[Player]:
    """Re-read a player with ``SELECT ... FOR UPDATE``.

    Postgres holds the row lock until the surrounding transaction ends;
    dialects without row locks (SQLite) ignore the clause.
    """
    return await _lock_one(db, Player.id == player_id)  # type: ignore[arg-type]


async def lock_player_by_key(db: AsyncSession, key: str) -> Optional[Player]:
    """Like lock_player_row(), looked up by normalized username."""
    return await _lock_one(db, Player.username_key == key)


async def _lock_one(db: AsyncSession, clause) -> Optional[Player]:
    result = await db.execute(
        select(Player)
        .where(clause)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def search_players(db: AsyncSession, key_fragment: str, limit: int) -> list[Player]:
    """Case-insensitive substring search over normalized usernames.

    Args:
        db: Async database session
        key_fragment: Already-lowercased search fragment
        limit: Maximum results to return

    Returns:
        Players ordered by display username
    """
    escaped = (
        key_fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    )
    query = (
        select(Player)
        .where(Player.username_key.like(f"%{escaped}%", escape="\\"))  # type: ignore[attr-defined]
        .order_by(Player.username)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_player(
    db: AsyncSession,
    username: str,
    *,
    player_id: Optional[int] = None,
) -> Player:
    """Insert a new player from an already-normalized key.

    Constructing the row runs the storage-level username validators, so a
    caller that skipped normalize_username() gets ValidationFailure here,
    before any SQL is issued.

    Args:
        db: Async database session
        username: Lookup key (or raw name on administrative paths)
        player_id: Explicit id for administrative/test inserts

    Returns:
        The flushed Player with its id assigned
    """
    key = username.lower()
    player = Player(
        id=player_id,
        username=display_name(key),
        username_key=key,
        type=AccountType.unknown,
    )
    db.add(player)
    await db.flush()
    return player


async def update_player(db: AsyncSession, player: Player, **changes: object) -> Player:
    """Apply attribute changes to a player and flush them."""
    for field, value in changes.items():
        setattr(player, field, value)
    player.updated_at = utcnow()
    db.add(player)
    await db.flush()
    return player
