"""business ideas and partnership requests

Revision ID: 20260302_0002
Revises: 20260301_0001
Create Date: 2026-03-02

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260302_0002"
down_revision = "20260301_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "business_ideas",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("images_json", sa.Text(), nullable=False, server_default="[]"),
        sa.Column("budget_min", sa.Float(), nullable=False),
        sa.Column("budget_max", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("budget_min <= budget_max", name="ck_business_ideas_budget_range"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_business_ideas_created_at", "business_ideas", ["created_at"], unique=False)

    op.create_table(
        "partnership_requests",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("business_idea_id", sa.String(length=36), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["business_idea_id"], ["business_ideas.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_partnership_requests_idea_created_at",
        "partnership_requests",
        ["business_idea_id", "created_at"],
        unique=False,
    )
    op.create_index("ix_partnership_requests_status", "partnership_requests", ["status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_partnership_requests_status", table_name="partnership_requests")
    op.drop_index("ix_partnership_requests_idea_created_at", table_name="partnership_requests")
    op.drop_table("partnership_requests")
    op.drop_index("ix_business_ideas_created_at", table_name="business_ideas")
    op.drop_table("business_ideas")
