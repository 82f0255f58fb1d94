"""Client for CrystalMathLabs (CML) historical datapoints."""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Optional

import httpx

from app.config import settings
from app.errors import HISTORY_UNAVAILABLE, HistoryUnavailable
from app.models.fields import SKILLS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    """One historical observation: when, and the stat values seen then."""

    observed_at: datetime
    stats: dict[str, int]


def parse_datapoint(row: str) -> HistoryEntry:
    """Parse one CML datapoint row.

    Rows look like ``"<unix_ts> <exp,exp,...> <rank,rank,...>"`` with one
    value per skill in SKILLS order.

    Raises:
        ValueError: If the row does not have that shape
    """
    parts = row.split()
    if len(parts) != 3:
        raise ValueError(f"expected 3 space-separated groups, got {len(parts)}")

    timestamp, exp_group, rank_group = parts
    experiences = [int(v) for v in exp_group.split(",")]
    ranks = [int(v) for v in rank_group.split(",")]
    if len(experiences) != len(SKILLS) or len(ranks) != len(SKILLS):
        raise ValueError(
            f"expected {len(SKILLS)} values per group, "
            f"got {len(experiences)} exp / {len(ranks)} ranks"
        )

    stats: dict[str, int] = {}
    for skill, experience, rank in zip(SKILLS, experiences, ranks):
        stats[f"{skill}_rank"] = rank
        stats[f"{skill}_experience"] = experience

    observed_at = datetime.fromtimestamp(int(timestamp), UTC).replace(tzinfo=None)
    return HistoryEntry(observed_at=observed_at, stats=stats)


def parse_datapoints(body: str) -> list[HistoryEntry]:
    """Parse a full datapoints response, oldest first.

    CML reports errors as a bare negative integer body (e.g. ``-1`` for an
    unknown player, ``-4`` when its API is down).

    Raises:
        ValueError: On an error code body or any malformed row
    """
    text = body.strip()
    if not text:
        return []
    if text.startswith("-") and text[1:].isdigit():
        raise ValueError(f"CML error code {text}")

    entries = [parse_datapoint(line) for line in text.splitlines() if line.strip()]
    entries.sort(key=lambda e: e.observed_at)
    return entries


class CmlClient:
    """Fetches a player's historical snapshots from CML."""

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        period: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url or settings.cml_base_url
        self.period = period or settings.cml_history_period
        self.timeout = httpx.Timeout(timeout or settings.upstream_timeout_seconds)
        self._transport = transport

    async def fetch_history(self, username: str) -> list[HistoryEntry]:
        """Fetch every datapoint CML has for ``username`` within the period.

        Raises:
            HistoryUnavailable: Transport failure, non-200 status, an error
                code body or unparseable rows
        """
        params = {"type": "datapoints", "player": username, "time": self.period}
        try:
            async with httpx.AsyncClient(
                headers={"User-Agent": settings.user_agent},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(self.base_url, params=params)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(f"CML request failed for {username}: {exc}")
            raise HistoryUnavailable(HISTORY_UNAVAILABLE) from exc

        try:
            return parse_datapoints(response.text)
        except ValueError as exc:
            logger.warning(f"Unusable CML response for {username}: {exc}")
            raise HistoryUnavailable(HISTORY_UNAVAILABLE) from exc
