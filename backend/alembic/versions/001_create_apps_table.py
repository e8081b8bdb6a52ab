"""Create apps table

Revision ID: 001
Revises: None
Create Date: 2026-10-18 00:00:00.000000+00:00

What:  Creates the `apps` table holding the catalog and the store data merged
       into it by the sync pipeline.
How:   Portable column types only (String/Text/JSON/TIMESTAMP WITH TIME ZONE).

Rollback: downgrade() drops the table (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "apps",

        # Identity: human-chosen slug, immutable once created
        sa.Column("id", sa.String(128), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column(
            "query_name",
            sa.String(255),
            nullable=True,
            comment="Lower-cased search key matched by the search endpoint",
        ),

        # Catalog fields, edited through the API
        sa.Column("env", sa.String(50), nullable=True),
        sa.Column("tenant", sa.String(255), nullable=True),
        sa.Column("city", sa.String(255), nullable=True),
        sa.Column("country", sa.String(255), nullable=True),
        sa.Column("region", sa.String(255), nullable=True),
        sa.Column("ios_folder", sa.Text(), nullable=True),
        sa.Column("android_folder", sa.Text(), nullable=True),
        sa.Column("color_specs", sa.Text(), nullable=True),
        sa.Column("figma_app_name", sa.String(255), nullable=True),
        sa.Column("web_app_figma_link", sa.Text(), nullable=True),
        sa.Column("web_app_link", sa.Text(), nullable=True),
        sa.Column("pso", sa.String(255), nullable=True),
        sa.Column("psm", sa.String(255), nullable=True),

        # Store linkage: NULL means the platform is not tracked
        sa.Column("ios_app_id", sa.String(64), nullable=True),
        sa.Column("android_app_id", sa.String(255), nullable=True),

        # Store enrichment, written only by the sync pipeline
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("ios_link", sa.Text(), nullable=True),
        sa.Column("ios_bundle_id", sa.String(255), nullable=True),
        sa.Column("ios_version", sa.String(64), nullable=True),
        sa.Column("ios_release", sa.String(32), nullable=True),
        sa.Column("ios_screenshots", sa.JSON(), nullable=True),
        sa.Column("ios_current_version_release_date", sa.String(32), nullable=True),
        sa.Column("android_link", sa.Text(), nullable=True),
        sa.Column("android_version", sa.String(64), nullable=True),
        sa.Column("android_screenshots", sa.JSON(), nullable=True),
        sa.Column("android_current_version_release_date", sa.String(32), nullable=True),
        sa.Column("languages", sa.JSON(), nullable=True),
        sa.Column(
            "last_store_update",
            sa.TIMESTAMP(timezone=True),
            nullable=True,
            comment="When store data was last merged into this row (UTC)",
        ),

        sa.PrimaryKeyConstraint("id"),
    )

    op.create_index("idx_apps_query_name", "apps", ["query_name"])


def downgrade() -> None:
    op.drop_index("idx_apps_query_name", table_name="apps")
    op.drop_table("apps")
