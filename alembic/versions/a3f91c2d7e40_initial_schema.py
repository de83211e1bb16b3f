"""initial_schema

Creates spaces, stations, monitored routes with their itinerary and status,
and the per-route disruption cache.

Revision ID: a3f91c2d7e40
Revises:
Create Date: 2026-10-19 09:12:44.518203

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "a3f91c2d7e40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "spaces",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("is_personal", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_by", sa.String(length=255), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "space_members",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("space_id", sa.UUID(), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column(
            "role",
            postgresql.ENUM("creator", "admin", "member", name="space_role"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["space_id"], ["spaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("space_id", "user_id", name="uq_space_member"),
    )
    op.create_index(op.f("ix_space_members_space_id"), "space_members", ["space_id"], unique=False)
    op.create_index(op.f("ix_space_members_user_id"), "space_members", ["user_id"], unique=False)

    op.create_table(
        "stations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("code", sa.String(length=16), nullable=False),
        sa.Column("uic_code", sa.String(length=16), nullable=False, server_default=""),
        sa.Column("name_long", sa.String(length=255), nullable=False),
        sa.Column("name_medium", sa.String(length=255), nullable=False),
        sa.Column("name_short", sa.String(length=64), nullable=False),
        sa.Column("synonyms", sa.JSON(), nullable=False),
        sa.Column("lat", sa.Float(), nullable=True),
        sa.Column("lng", sa.Float(), nullable=True),
        sa.Column("country", sa.String(length=8), nullable=False, server_default="NL"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    # Unique index doubles as the ON CONFLICT target of the station sync
    op.create_index(op.f("ix_stations_code"), "stations", ["code"], unique=True)
    op.create_index(op.f("ix_stations_uic_code"), "stations", ["uic_code"], unique=False)

    op.create_table(
        "routes",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("owner_id", sa.String(length=255), nullable=False),
        sa.Column("space_id", sa.UUID(), nullable=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("origin_code", sa.String(length=16), nullable=False),
        sa.Column("origin_name", sa.String(length=255), nullable=False),
        sa.Column("destination_code", sa.String(length=16), nullable=False),
        sa.Column("destination_name", sa.String(length=255), nullable=False),
        sa.Column("schedule_days", sa.JSON(), nullable=False),
        sa.Column("departure_time", sa.String(length=5), nullable=False),
        sa.Column(
            "urgency_level",
            postgresql.ENUM("normal", "important", name="urgency_level"),
            nullable=False,
        ),
        *_timestamps(),
        sa.ForeignKeyConstraint(["space_id"], ["spaces.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_routes_owner_id"), "routes", ["owner_id"], unique=False)
    op.create_index(op.f("ix_routes_space_id"), "routes", ["space_id"], unique=False)

    op.create_table(
        "route_stations",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("route_id", sa.UUID(), nullable=False),
        sa.Column("station_code", sa.String(length=16), nullable=False),
        sa.Column("station_name", sa.String(length=255), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id", "order", name="uq_route_station_order"),
    )
    op.create_index(op.f("ix_route_stations_route_id"), "route_stations", ["route_id"], unique=False)

    op.create_table(
        "route_status",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("route_id", sa.UUID(), nullable=False),
        sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("has_active_disruptions", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("changed_since_last_view", sa.Boolean(), nullable=False, server_default="false"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id"),
    )

    op.create_table(
        "disruptions",
        sa.Column("id", sa.UUID(), nullable=False),
        sa.Column("route_id", sa.UUID(), nullable=False),
        sa.Column(
            "disruption_id",
            sa.String(length=255),
            nullable=False,
            comment="External identifier assigned by the provider",
        ),
        sa.Column(
            "type",
            postgresql.ENUM("MAINTENANCE", "DISRUPTION", "CALAMITY", name="disruption_type"),
            nullable=False,
        ),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("period", sa.String(length=255), nullable=False),
        sa.Column("advice", sa.Text(), nullable=True),
        sa.Column("additional_travel_time_label", sa.String(length=255), nullable=True),
        sa.Column("additional_travel_time_short_label", sa.String(length=64), nullable=True),
        sa.Column("additional_travel_time_min", sa.Integer(), nullable=True),
        sa.Column("additional_travel_time_max", sa.Integer(), nullable=True),
        sa.Column("cause_label", sa.String(length=255), nullable=True),
        sa.Column("impact_value", sa.Integer(), nullable=True),
        sa.Column("alternative_transport_label", sa.String(length=255), nullable=True),
        sa.Column("affected_stations", sa.JSON(), nullable=False),
        sa.Column(
            "content_hash",
            sa.String(length=64),
            nullable=False,
            comment="SHA-256 over the mutable content fields",
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("last_seen", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["route_id"], ["routes.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("route_id", "disruption_id", name="uq_disruption_route_external_id"),
    )
    op.create_index(op.f("ix_disruptions_route_id"), "disruptions", ["route_id"], unique=False)
    op.create_index("ix_disruptions_route_active", "disruptions", ["route_id", "is_active"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index("ix_disruptions_route_active", table_name="disruptions")
    op.drop_index(op.f("ix_disruptions_route_id"), table_name="disruptions")
    op.drop_table("disruptions")
    op.drop_table("route_status")
    op.drop_index(op.f("ix_route_stations_route_id"), table_name="route_stations")
    op.drop_table("route_stations")
    op.drop_index(op.f("ix_routes_space_id"), table_name="routes")
    op.drop_index(op.f("ix_routes_owner_id"), table_name="routes")
    op.drop_table("routes")
    op.drop_index(op.f("ix_stations_uic_code"), table_name="stations")
    op.drop_index(op.f("ix_stations_code"), table_name="stations")
    op.drop_table("stations")
    op.drop_index(op.f("ix_space_members_user_id"), table_name="space_members")
    op.drop_index(op.f("ix_space_members_space_id"), table_name="space_members")
    op.drop_table("space_members")
    op.drop_table("spaces")

    sa.Enum(name="disruption_type").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="urgency_level").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="space_role").drop(op.get_bind(), checkfirst=True)
