"""anonymous submissions, image links and audit log

Revision ID: 20260304_0004
Revises: 20260303_0003
Create Date: 2026-03-04

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260304_0004"
down_revision = "20260303_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "anonymous_submissions",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("budget_min", sa.Float(), nullable=False),
        sa.Column("budget_max", sa.Float(), nullable=False),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("contact_phone", sa.String(length=32), nullable=True),
        sa.Column("submitter_ip", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="PENDING"),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("flagged_for_review", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("flag_reason", sa.Text(), nullable=True),
        sa.Column("approved_by_id", sa.String(length=36), nullable=True),
        sa.Column("rejected_by_id", sa.String(length=36), nullable=True),
        sa.Column("business_idea_id", sa.String(length=36), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("budget_min <= budget_max", name="ck_anonymous_submissions_budget_range"),
        sa.ForeignKeyConstraint(["approved_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["rejected_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["business_idea_id"], ["business_ideas.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("business_idea_id", name="uq_anonymous_submissions_business_idea_id"),
    )
    op.create_index(
        "ix_anonymous_submissions_status_submitted_at",
        "anonymous_submissions",
        ["status", "submitted_at"],
        unique=False,
    )
    op.create_index(
        "ix_anonymous_submissions_submitter_ip_submitted_at",
        "anonymous_submissions",
        ["submitter_ip", "submitted_at"],
        unique=False,
    )
    op.create_index(
        "ix_anonymous_submissions_flagged",
        "anonymous_submissions",
        ["flagged_for_review"],
        unique=False,
    )

    op.create_table(
        "anonymous_submission_images",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("submission_id", sa.String(length=36), nullable=False),
        sa.Column("image_id", sa.String(length=36), nullable=False),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["submission_id"], ["anonymous_submissions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["image_id"], ["images.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("image_id", name="uq_anonymous_submission_images_image_id"),
    )
    op.create_index(
        "ix_anonymous_submission_images_submission_order",
        "anonymous_submission_images",
        ["submission_id", "order"],
        unique=False,
    )

    op.create_table(
        "submission_audit_logs",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("submission_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=16), nullable=False),
        sa.Column("performed_by", sa.String(length=36), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.ForeignKeyConstraint(["submission_id"], ["anonymous_submissions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["performed_by"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_submission_audit_logs_submission_created_at",
        "submission_audit_logs",
        ["submission_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_submission_audit_logs_submission_created_at", table_name="submission_audit_logs")
    op.drop_table("submission_audit_logs")
    op.drop_index("ix_anonymous_submission_images_submission_order", table_name="anonymous_submission_images")
    op.drop_table("anonymous_submission_images")
    op.drop_index("ix_anonymous_submissions_flagged", table_name="anonymous_submissions")
    op.drop_index("ix_anonymous_submissions_submitter_ip_submitted_at", table_name="anonymous_submissions")
    op.drop_index("ix_anonymous_submissions_status_submitted_at", table_name="anonymous_submissions")
    op.drop_table("anonymous_submissions")
