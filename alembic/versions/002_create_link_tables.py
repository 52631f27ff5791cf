"""Create links, deeplinks and short_links tables.

Revision ID: 002
Revises: 001
Create Date: 2025-03-02

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create the link tables.

    Short codes are unique within each table; the application checks both
    tables before handing a code out.
    """
    op.create_table(
        "links",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column(
            "url",
            sa.Text(),
            nullable=False,
            comment="Destination for plain and QR links; canonical URL for deeplinks",
        ),
        sa.Column(
            "link_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'plain'"),
            comment="One of 'plain', 'deeplink', 'qr'",
        ),
        sa.Column("short_code", sa.String(20), nullable=True),
        sa.Column(
            "position",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Display order on the profile page",
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
            comment="Whether the link is active (soft delete)",
        ),
        sa.Column(
            "click_count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total click count (approximate, denormalized)",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_links")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_links_user_id_profiles"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(op.f("ix_links_short_code"), "links", ["short_code"], unique=True)
    op.create_index(op.f("ix_links_user_id"), "links", ["user_id"])

    op.create_table(
        "deeplinks",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("link_id", sa.UUID(), nullable=False),
        sa.Column("original_url", sa.Text(), nullable=False),
        sa.Column("ios_url", sa.Text(), nullable=True),
        sa.Column("android_url", sa.Text(), nullable=True),
        sa.Column("desktop_url", sa.Text(), nullable=True),
        sa.Column("fallback_url", sa.Text(), nullable=True),
        sa.Column(
            "user_agent_rules",
            postgresql.JSONB(),
            nullable=True,
            comment="Ordered [pattern, url] pairs checked before platform detection",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_deeplinks")),
        sa.ForeignKeyConstraint(
            ["link_id"],
            ["links.id"],
            name=op.f("fk_deeplinks_link_id_links"),
            ondelete="CASCADE",
        ),
    )
    op.create_index(op.f("ix_deeplinks_link_id"), "deeplinks", ["link_id"], unique=True)

    op.create_table(
        "short_links",
        sa.Column(
            "id",
            sa.UUID(),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", sa.UUID(), nullable=False),
        sa.Column(
            "link_id",
            sa.UUID(),
            nullable=True,
            comment="Owning link record (holds the deeplink config)",
        ),
        sa.Column("short_code", sa.String(20), nullable=False),
        sa.Column(
            "original_url",
            sa.Text(),
            nullable=False,
            comment="The URL to redirect to when no deeplink rule applies",
        ),
        sa.Column(
            "link_type",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'plain'"),
            comment="One of 'plain', 'deeplink', 'qr'",
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            nullable=False,
            server_default=sa.text("true"),
            comment="Whether the short link is active (soft delete)",
        ),
        sa.Column(
            "click_count",
            sa.Integer(),
            nullable=False,
            server_default=sa.text("0"),
            comment="Total click count (approximate, denormalized)",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name=op.f("pk_short_links")),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["profiles.id"],
            name=op.f("fk_short_links_user_id_profiles"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["link_id"],
            ["links.id"],
            name=op.f("fk_short_links_link_id_links"),
            ondelete="SET NULL",
        ),
    )
    op.create_index(op.f("ix_short_links_short_code"), "short_links", ["short_code"], unique=True)
    op.create_index(op.f("ix_short_links_user_id"), "short_links", ["user_id"])


def downgrade() -> None:
    """Drop the link tables."""
    op.drop_index(op.f("ix_short_links_user_id"), table_name="short_links")
    op.drop_index(op.f("ix_short_links_short_code"), table_name="short_links")
    op.drop_table("short_links")
    op.drop_index(op.f("ix_deeplinks_link_id"), table_name="deeplinks")
    op.drop_table("deeplinks")
    op.drop_index(op.f("ix_links_user_id"), table_name="links")
    op.drop_index(op.f("ix_links_short_code"), table_name="links")
    op.drop_table("links")
