"""Initial schema for dogpile sync.

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "shelters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("name", sa.String(255), default=""),
        sa.Column("base_url", sa.String(500), nullable=False),
        sa.Column("city", sa.String(100), default=""),
        sa.Column("adapter", sa.String(100), default="fixture"),
        sa.Column("options_json", sa.Text(), default="{}"),
        sa.Column("active", sa.Boolean(), default=True),
        sa.Column("status", sa.String(20), default="active"),
        sa.Column("last_sync", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_shelters_slug", "shelters", ["slug"], unique=True)
    op.create_index("ix_shelters_status", "shelters", ["status"])

    op.create_table(
        "listings",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shelter_id",
            sa.String(36),
            sa.ForeignKey("shelters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("fingerprint", sa.String(128), nullable=False),
        sa.Column("status", sa.String(20), default="pending"),
        sa.Column("last_seen_at", sa.DateTime(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("raw_description", sa.Text(), default=""),
        sa.Column("source_url", sa.String(1000), nullable=True),
        sa.Column("sex", sa.String(10), nullable=True),
        sa.Column("photos_json", sa.Text(), default="[]"),
        sa.Column("location_name", sa.String(255), nullable=True),
        sa.Column("location_city", sa.String(100), nullable=True),
        sa.Column("is_foster", sa.Boolean(), nullable=True),
        # Enrichment
        sa.Column("breed_estimates_json", sa.Text(), default="[]"),
        sa.Column("size_estimate_json", sa.Text(), nullable=True),
        sa.Column("age_estimate_json", sa.Text(), nullable=True),
        sa.Column("weight_estimate_json", sa.Text(), nullable=True),
        sa.Column("personality_tags_json", sa.Text(), default="[]"),
        sa.Column("vaccinated", sa.Boolean(), nullable=True),
        sa.Column("sterilized", sa.Boolean(), nullable=True),
        sa.Column("chipped", sa.Boolean(), nullable=True),
        sa.Column("good_with_kids", sa.Boolean(), nullable=True),
        sa.Column("good_with_dogs", sa.Boolean(), nullable=True),
        sa.Column("good_with_cats", sa.Boolean(), nullable=True),
        sa.Column("fur_length", sa.String(20), nullable=True),
        sa.Column("fur_type", sa.String(20), nullable=True),
        sa.Column("color_primary", sa.String(50), nullable=True),
        sa.Column("color_secondary", sa.String(50), nullable=True),
        sa.Column("color_pattern", sa.String(20), nullable=True),
        sa.Column("ear_type", sa.String(20), nullable=True),
        sa.Column("tail_type", sa.String(20), nullable=True),
        sa.Column("generated_bio", sa.Text(), nullable=True),
        sa.Column("urgent", sa.Boolean(), default=False),
    )
    op.create_index("ix_listings_shelter_id", "listings", ["shelter_id"])
    op.create_index("ix_listings_external_id", "listings", ["external_id"])
    op.create_index("ix_listings_fingerprint", "listings", ["fingerprint"], unique=True)
    op.create_index("ix_listings_status", "listings", ["status"])
    op.create_index("ix_listings_last_seen_at", "listings", ["last_seen_at"])
    op.create_index("ix_listings_location_city", "listings", ["location_city"])
    op.create_index("ix_listings_urgent", "listings", ["urgent"])

    op.create_table(
        "sync_runs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "shelter_id",
            sa.String(36),
            sa.ForeignKey("shelters.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime(), nullable=True),
        sa.Column("dogs_added", sa.Integer(), default=0),
        sa.Column("dogs_updated", sa.Integer(), default=0),
        sa.Column("dogs_removed", sa.Integer(), default=0),
        sa.Column("errors_json", sa.Text(), default="[]"),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_sync_runs_shelter_id", "sync_runs", ["shelter_id"])
    op.create_index("ix_sync_runs_started_at", "sync_runs", ["started_at"])

    op.create_table(
        "api_costs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("operation", sa.String(50), nullable=False),
        sa.Column("model", sa.String(100), nullable=False),
        sa.Column("input_tokens", sa.Integer(), default=0),
        sa.Column("output_tokens", sa.Integer(), default=0),
        sa.Column("cost_usd", sa.Float(), default=0.0),
    )
    op.create_index("ix_api_costs_created_at", "api_costs", ["created_at"])


def downgrade() -> None:
    op.drop_table("api_costs")
    op.drop_table("sync_runs")
    op.drop_table("listings")
    op.drop_table("shelters")
