"""
SQLModels for tracked players and their stat snapshots.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import validates
from sqlmodel import Field, SQLModel

from app.errors import (
    USERNAME_CHARSET_VALIDATION,
    USERNAME_LENGTH_VALIDATION,
    ValidationFailure,
)
from app.models.fields import AccountType
from app.utils.cooldown import utcnow
from app.utils.username import (
    MAX_USERNAME_LENGTH,
    MIN_USERNAME_LENGTH,
    USERNAME_PATTERN,
)

STATS_JSON = JSON().with_variant(JSONB(), "postgresql")


class Player(SQLModel, table=True):  # type: ignore[call-arg]
    __tablename__ = "players"

    id: Optional[int] = Field(default=None, primary_key=True)
    username: str = Field(index=True, max_length=MAX_USERNAME_LENGTH)
    username_key: str = Field(unique=True, index=True, max_length=MAX_USERNAME_LENGTH)
    type: AccountType = Field(
        default=AccountType.unknown,
        sa_column=Column(
            "type",
            SAEnum(AccountType, name="account_type_enum"),
            nullable=False,
            default=AccountType.unknown,
        ),
    )

    last_updated_at: Optional[datetime] = Field(default=None, sa_type=DateTime())
    last_imported_at: Optional[datetime] = Field(default=None, sa_type=DateTime())

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())

    @validates("username", "username_key")
    def validate_username(self, key: str, value: str) -> str:
        """Storage-level guard for callers that skip normalize_username()."""
        if value is None or not MIN_USERNAME_LENGTH <= len(value) <= MAX_USERNAME_LENGTH:
            raise ValidationFailure(USERNAME_LENGTH_VALIDATION)
        if not USERNAME_PATTERN.match(value):
            raise ValidationFailure(USERNAME_CHARSET_VALIDATION)
        return value


class Snapshot(SQLModel, table=True):  # type: ignore[call-arg]
    """Immutable point-in-time set of stat values for a player."""

    __tablename__ = "snapshots"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "observed_at", name="uq_snapshots_player_observed_at"
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    player_id: int = Field(foreign_key="players.id", index=True)

    observed_at: datetime = Field(
        index=True, sa_type=DateTime(), description="When the stats were observed"
    )
    stats: dict[str, int] = Field(
        default_factory=dict,
        sa_column=Column(STATS_JSON, nullable=False),
    )

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime())
