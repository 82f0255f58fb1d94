from datetime import datetime
from typing import Optional

from sqlmodel import SQLModel

from app.models.fields import AccountType


class SnapshotRead(SQLModel):
    """Response model for a single stat snapshot."""

    id: int
    player_id: int
    observed_at: datetime
    stats: dict[str, int]


class PlayerRead(SQLModel):
    """Response model for a tracked player.

    ``latest_snapshot`` is populated by view/track and left empty in search
    results.
    """

    id: int
    username: str
    type: AccountType
    last_updated_at: Optional[datetime] = None
    last_imported_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    latest_snapshot: Optional[SnapshotRead] = None


class UsernameRequest(SQLModel):
    """Body for track / assert-type / import requests.

    ``username`` stays optional so that a missing value reaches the
    normalizer and fails with the "Invalid username." message.
    """

    username: Optional[str] = None


class AccountTypeResponse(SQLModel):
    type: AccountType


class MessageResponse(SQLModel):
    message: str


__all__ = [
    "AccountTypeResponse",
    "MessageResponse",
    "PlayerRead",
    "SnapshotRead",
    "UsernameRequest",
]
