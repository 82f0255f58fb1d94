"""Stub upstreams and small database helpers shared by the test suite."""

import asyncio
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.errors import HISCORES_NOT_FOUND, HistoryUnavailable, PlayerError, PlayerNotFound
from app.models.fields import SKILLS, AccountType
from app.schemas.players import Player, Snapshot
from app.services.cml_client import HistoryEntry
from app.services.hiscores_client import HiscoresResult
from app.services.job_dispatcher import JobKind, JobPayload


def make_stats(overall_experience: int = 1_000_000, rank: int = 5_000) -> dict[str, int]:
    """Build a full stat mapping with every skill filled in."""
    stats: dict[str, int] = {}
    for skill in SKILLS:
        experience = overall_experience if skill == "overall" else overall_experience // 23
        stats[f"{skill}_rank"] = rank
        stats[f"{skill}_level"] = 99 if skill != "overall" else 2277
        stats[f"{skill}_experience"] = experience
    return stats


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: Optional[datetime] = None) -> None:
        self.now = now or datetime(2026, 10, 19, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class Gate:
    """Holds a stubbed upstream call open until the test releases it."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()
        self.released = asyncio.Event()

    async def pass_through(self) -> None:
        self.entered.set()
        await self.released.wait()


class StubHiscores:
    """In-memory stand-in for HiscoresClient keyed by (username, table)."""

    def __init__(self) -> None:
        self.tables: dict[tuple[str, AccountType], dict[str, int]] = {}
        self.calls: list[tuple[str, AccountType]] = []
        self.error: Optional[PlayerError] = None
        self.observed_at: Optional[datetime] = None
        self.gate: Optional[Gate] = None

    def add(
        self,
        username: str,
        overall_experience: int = 1_000_000,
        account_type: AccountType = AccountType.regular,
    ) -> None:
        self.tables[(username, account_type)] = make_stats(overall_experience)

    async def fetch(
        self,
        username: str,
        account_type: AccountType = AccountType.regular,
    ) -> HiscoresResult:
        self.calls.append((username, account_type))
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.pass_through()
        if self.error is not None:
            raise self.error
        stats = self.tables.get((username, account_type))
        if stats is None:
            raise PlayerNotFound(HISCORES_NOT_FOUND)
        return HiscoresResult(stats=dict(stats), observed_at=self.observed_at)


class StubHistory:
    """In-memory stand-in for CmlClient."""

    def __init__(self) -> None:
        self.entries: dict[str, list[HistoryEntry]] = {}
        self.calls: list[str] = []
        self.error: Optional[HistoryUnavailable] = None
        self.gate: Optional[Gate] = None

    async def fetch_history(self, username: str) -> list[HistoryEntry]:
        self.calls.append(username)
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.pass_through()
        if self.error is not None:
            raise self.error
        return list(self.entries.get(username, []))


class RecordingDispatcher:
    """Job dispatcher that records instead of running anything."""

    def __init__(self, fail: bool = False) -> None:
        self.jobs: list[tuple[JobKind, JobPayload]] = []
        self.fail = fail

    def enqueue(self, kind: JobKind, payload: JobPayload) -> None:
        if self.fail:
            raise RuntimeError("dispatcher unavailable")
        self.jobs.append((kind, payload))


async def count_snapshots(
    session_factory: async_sessionmaker[AsyncSession],
    player_id: int,
) -> int:
    async with session_factory() as session:
        result = await session.execute(
            select(func.count(Snapshot.id)).where(Snapshot.player_id == player_id)  # type: ignore[arg-type]
        )
        return int(result.scalar_one())


async def load_player(
    session_factory: async_sessionmaker[AsyncSession],
    player_id: int,
) -> Optional[Player]:
    async with session_factory() as session:
        return await session.get(Player, player_id)
