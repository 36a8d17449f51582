"""Add published flag and idea version history.

Revision ID: 0002_add_publishing_and_versions
Revises: 0001_initial
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_add_publishing_and_versions"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "ideas",
        sa.Column("published", sa.Boolean(), nullable=False, server_default=sa.false()),
    )

    op.create_table(
        "idea_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "idea_id",
            sa.Integer(),
            sa.ForeignKey("ideas.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("version_number", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("rank", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("idea_id", "version_number", name="uq_idea_version_number"),
    )
    op.create_index("ix_idea_versions_idea_id", "idea_versions", ["idea_id"])


def downgrade() -> None:
    op.drop_index("ix_idea_versions_idea_id", table_name="idea_versions")
    op.drop_table("idea_versions")
    op.drop_column("ideas", "published")
