"""Create players and snapshots tables.

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op  # type: ignore[attr-defined]
from sqlalchemy.dialects import postgresql

revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    account_type_enum = postgresql.ENUM(
        "regular",
        "ironman",
        "hardcore",
        "ultimate",
        "unknown",
        name="account_type_enum",
        create_type=False,
    )
    account_type_enum.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "players",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(length=12), nullable=False),
        sa.Column("username_key", sa.String(length=12), nullable=False),
        sa.Column("type", account_type_enum, nullable=False),
        sa.Column("last_updated_at", sa.DateTime(), nullable=True),
        sa.Column("last_imported_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_players_username", "players", ["username"])
    op.create_index("ix_players_username_key", "players", ["username_key"], unique=True)

    op.create_table(
        "snapshots",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("player_id", sa.Integer(), nullable=False),
        sa.Column("observed_at", sa.DateTime(), nullable=False),
        sa.Column("stats", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["player_id"], ["players.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "player_id", "observed_at", name="uq_snapshots_player_observed_at"
        ),
    )
    op.create_index("ix_snapshots_player_id", "snapshots", ["player_id"])
    op.create_index("ix_snapshots_observed_at", "snapshots", ["observed_at"])


def downgrade() -> None:
    op.drop_index("ix_snapshots_observed_at", table_name="snapshots")
    op.drop_index("ix_snapshots_player_id", table_name="snapshots")
    op.drop_table("snapshots")
    op.drop_index("ix_players_username_key", table_name="players")
    op.drop_index("ix_players_username", table_name="players")
    op.drop_table("players")
    sa.Enum(name="account_type_enum").drop(op.get_bind(), checkfirst=True)
