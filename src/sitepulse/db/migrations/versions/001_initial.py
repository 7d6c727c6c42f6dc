"""Initial schema - sites, pageviews, unique_visitors.

Revision ID: 001_initial
Revises: None
Create Date: 2024-06-01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Sites table
    op.create_table(
        "sites",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_sites_owner_domain", "sites", ["owner_id", "domain"], unique=True
    )

    # Pageviews table (append-only)
    op.create_table(
        "pageviews",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "site_id",
            sa.String(36),
            sa.ForeignKey("sites.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("path", sa.Text(), nullable=True),
        sa.Column("referrer", sa.Text(), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("browser_language", sa.String(64), nullable=True),
        sa.Column("screen_resolution", sa.String(32), nullable=True),
        sa.Column("viewport_width", sa.Integer(), nullable=True),
        sa.Column("viewport_height", sa.Integer(), nullable=True),
        sa.Column("user_id", sa.String(255), nullable=True),
        sa.Column("visitor_id", sa.String(64), nullable=False),
        sa.Column("country", sa.String(8), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
    )
    op.create_index("ix_pageviews_visitor_id", "pageviews", ["visitor_id"])
    op.create_index(
        "ix_pageviews_site_id_timestamp", "pageviews", ["site_id", "timestamp"]
    )

    # Unique visitors table; the primary key enforces first-write-wins.
    # The cookie is shared across sites, so a visitor outlives its first site.
    op.create_table(
        "unique_visitors",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "site_id",
            sa.String(36),
            sa.ForeignKey("sites.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_unique_visitors_site_id_created_at",
        "unique_visitors",
        ["site_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("unique_visitors")
    op.drop_table("pageviews")
    op.drop_table("sites")
