"""Create users, hikes and observations tables

Revision ID: 001
Revises: None
Create Date: 2025-11-02 00:00:00.000000+00:00

What:  Initial M-Hike schema.
How:   Portable column types only, so the same revision runs on SQLite
       (default) and PostgreSQL. Child rows cascade on delete.

Asset columns:
    users.avatar             default sentinel or /uploads/<name>
    observations.photo_url   NULL or /uploads/<name>

Rollback: downgrade() drops all three tables (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("password", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column(
            "avatar",
            sa.String(255),
            nullable=True,
            server_default=sa.text("'default_avatar.png'"),
            comment="Default sentinel or /uploads/<name> reference",
        ),
        *_timestamps(),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="1"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("username"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "hikes",
        sa.Column("hike_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("location", sa.String(255), nullable=False),
        sa.Column("hike_date", sa.Date(), nullable=False),
        sa.Column("parking_available", sa.Boolean(), nullable=False),
        sa.Column("length", sa.Float(), nullable=False),
        sa.Column("difficulty_level", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("estimated_duration", sa.String(100), nullable=True),
        sa.Column("elevation_gain", sa.Integer(), nullable=True),
        sa.Column("trail_type", sa.String(100), nullable=True),
        sa.Column("equipment_needed", sa.Text(), nullable=True),
        sa.Column("weather_conditions", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("hike_id"),
    )
    op.create_index("idx_hikes_user_id", "hikes", ["user_id"])
    op.create_index("idx_hikes_name", "hikes", ["name"])

    op.create_table(
        "observations",
        sa.Column("observation_id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("hike_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("observation", sa.Text(), nullable=False),
        sa.Column("observation_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("observation_type", sa.String(50), nullable=True),
        sa.Column(
            "photo_url",
            sa.String(255),
            nullable=True,
            comment="NULL or /uploads/<name> reference",
        ),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["hike_id"], ["hikes.hike_id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("observation_id"),
    )
    op.create_index("idx_observations_hike_id", "observations", ["hike_id"])
    op.create_index("idx_observations_user_id", "observations", ["user_id"])


def downgrade() -> None:
    """Drop every table. All data is lost."""
    op.drop_index("idx_observations_user_id", table_name="observations")
    op.drop_index("idx_observations_hike_id", table_name="observations")
    op.drop_table("observations")
    op.drop_index("idx_hikes_name", table_name="hikes")
    op.drop_index("idx_hikes_user_id", table_name="hikes")
    op.drop_table("hikes")
    op.drop_table("users")
