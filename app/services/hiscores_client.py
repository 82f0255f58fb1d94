"""Client for the Old School RuneScape hiscores "index_lite" endpoint."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import httpx

from app.config import settings
from app.errors import (
    HISCORES_NOT_FOUND,
    HISCORES_UNAVAILABLE,
    PlayerNotFound,
    UpstreamUnavailable,
)
from app.models.fields import SKILLS, AccountType

logger = logging.getLogger(__name__)

# Hiscores table per account type ("m=" path segment)
HISCORES_TABLES: dict[AccountType, str] = {
    AccountType.regular: "hiscore_oldschool",
    AccountType.ironman: "hiscore_oldschool_ironman",
    AccountType.hardcore: "hiscore_oldschool_hardcore_ironman",
    AccountType.ultimate: "hiscore_oldschool_ultimate",
}


@dataclass
class HiscoresResult:
    """Stats returned by one hiscores lookup.

    ``observed_at`` stays None because the hiscores do not report when the
    values were sampled; the tracker falls back to its own clock.
    """

    stats: dict[str, int] = field(default_factory=dict)
    observed_at: Optional[datetime] = None

    @property
    def overall_experience(self) -> int:
        return self.stats.get("overall_experience", -1)


def parse_hiscores_csv(body: str) -> dict[str, int]:
    """Parse the index_lite CSV body into a stat mapping.

    The first 24 lines are ``rank,level,experience`` for each skill; the
    activity/boss lines that follow are ignored. Unranked values come back
    as -1 and are kept as-is.

    Raises:
        ValueError: If fewer than 24 skill lines are present or a value is
            not an integer
    """
    lines = [line.strip() for line in body.strip().splitlines() if line.strip()]
    if len(lines) < len(SKILLS):
        raise ValueError(f"expected {len(SKILLS)} skill rows, got {len(lines)}")

    stats: dict[str, int] = {}
    for skill, line in zip(SKILLS, lines):
        parts = line.split(",")
        if len(parts) != 3:
            raise ValueError(f"malformed skill row for {skill}: {line!r}")
        rank, level, experience = (int(p) for p in parts)
        stats[f"{skill}_rank"] = rank
        stats[f"{skill}_level"] = level
        stats[f"{skill}_experience"] = experience
    return stats


class HiscoresClient:
    """Fetches current stats for a player from one of the hiscores tables.

    Every call opens its own ``httpx.AsyncClient``; pass ``transport`` to
    route requests elsewhere (tests use ``httpx.MockTransport``). Failures
    are never retried here.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.hiscores_base_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout or settings.upstream_timeout_seconds)
        self._transport = transport

    def url_for(self, account_type: AccountType) -> str:
        table = HISCORES_TABLES.get(account_type, HISCORES_TABLES[AccountType.regular])
        return f"{self.base_url}/m={table}/index_lite.ws"

    async def fetch(
        self,
        username: str,
        account_type: AccountType = AccountType.regular,
    ) -> HiscoresResult:
        """Fetch a player's stats.

        Args:
            username: Normalized username (lookup key)
            account_type: Which hiscores table to query

        Returns:
            HiscoresResult with the parsed stat mapping

        Raises:
            PlayerNotFound: The table has no entry for this username
            UpstreamUnavailable: Transport error, non-200 status or a body
                that does not parse
        """
        url = self.url_for(account_type)
        try:
            async with httpx.AsyncClient(
                headers={"User-Agent": settings.user_agent},
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(url, params={"player": username})
        except httpx.HTTPError as exc:
            logger.warning(f"Hiscores request failed for {username} ({account_type.value}): {exc}")
            raise UpstreamUnavailable(HISCORES_UNAVAILABLE) from exc

        if response.status_code == 404:
            raise PlayerNotFound(HISCORES_NOT_FOUND)
        if response.status_code != 200:
            logger.warning(
                f"Hiscores returned {response.status_code} for {username} ({account_type.value})"
            )
            raise UpstreamUnavailable(HISCORES_UNAVAILABLE)

        try:
            stats = parse_hiscores_csv(response.text)
        except ValueError as exc:
            logger.warning(f"Unparseable hiscores body for {username}: {exc}")
            raise UpstreamUnavailable(HISCORES_UNAVAILABLE) from exc

        return HiscoresResult(stats=stats)
