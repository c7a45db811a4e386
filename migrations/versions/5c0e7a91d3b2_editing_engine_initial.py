"""Editing engine initial schema

Revision ID: 5c0e7a91d3b2
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "5c0e7a91d3b2"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ── Teams & modules ──
    op.create_table(
        "team_members",
        sa.Column("team_id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), primary_key=True, index=True),
        sa.Column("role_id", sa.Integer(), nullable=True, index=True),
        sa.Column("permissions", sa.JSON(), nullable=False),
    )
    op.create_table(
        "modules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("team_id", sa.Integer(), nullable=False, index=True),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source_id", sa.Integer(), nullable=True, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )

    # ── Process definitions ──
    op.create_table(
        "edit_processes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("team_id", sa.Integer(), nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "edit_process_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("process_id", sa.Integer(),
                  sa.ForeignKey("edit_processes.id", ondelete="RESTRICT"),
                  nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_table(
        "edit_process_slots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("version_id", sa.Integer(),
                  sa.ForeignKey("edit_process_versions.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("roles", sa.JSON(), nullable=False),
        sa.Column("autofill", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("version_id", "name", name="uq_edit_process_slot_name"),
    )
    op.create_table(
        "edit_process_steps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("version_id", sa.Integer(),
                  sa.ForeignKey("edit_process_versions.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("is_start", sa.Boolean(), nullable=False),
        sa.UniqueConstraint("version_id", "name", name="uq_edit_process_step_name"),
    )
    op.create_table(
        "edit_process_step_slots",
        sa.Column("step_id", sa.Integer(),
                  sa.ForeignKey("edit_process_steps.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("slot_id", sa.Integer(),
                  sa.ForeignKey("edit_process_slots.id", ondelete="CASCADE"),
                  primary_key=True, index=True),
        sa.Column("permission", sa.String(32), primary_key=True),
    )
    op.create_table(
        "edit_process_links",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("from_step_id", sa.Integer(),
                  sa.ForeignKey("edit_process_steps.id", ondelete="CASCADE"),
                  nullable=False, index=True),
        sa.Column("to_step_id", sa.Integer(),
                  sa.ForeignKey("edit_process_steps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("slot_id", sa.Integer(),
                  sa.ForeignKey("edit_process_slots.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.UniqueConstraint("from_step_id", "name", name="uq_edit_process_link_name"),
        sa.UniqueConstraint("to_step_id", "slot_id", name="uq_edit_process_link_target_slot"),
        sa.CheckConstraint("from_step_id <> to_step_id", name="ck_edit_process_link_no_loop"),
    )

    # ── Drafts ──
    op.create_table(
        "drafts",
        sa.Column("module_id", sa.String(36),
                  sa.ForeignKey("modules.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("team_id", sa.Integer(), nullable=False, index=True),
        sa.Column("version_id", sa.Integer(),
                  sa.ForeignKey("edit_process_versions.id", ondelete="RESTRICT"),
                  nullable=False, index=True),
        sa.Column("step_id", sa.Integer(),
                  sa.ForeignKey("edit_process_steps.id", ondelete="RESTRICT"),
                  nullable=False, index=True),
        sa.Column("document_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_table(
        "draft_slots",
        sa.Column("draft_id", sa.String(36),
                  sa.ForeignKey("drafts.module_id", ondelete="CASCADE"), primary_key=True),
        sa.Column("slot_id", sa.Integer(),
                  sa.ForeignKey("edit_process_slots.id", ondelete="RESTRICT"), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
    )
    op.create_table(
        "draft_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("module_id", sa.String(36), nullable=False, index=True),
        sa.Column("version_id", sa.Integer(),
                  sa.ForeignKey("edit_process_versions.id", ondelete="RESTRICT"),
                  nullable=False, index=True),
        sa.Column("outcome", sa.String(20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── Events ──
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, index=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("is_unread", sa.Boolean()),
        sa.Column("created_at", sa.DateTime(timezone=True)),
    )


def downgrade():
    op.drop_table("events")
    op.drop_table("draft_runs")
    op.drop_table("draft_slots")
    op.drop_table("drafts")
    op.drop_table("edit_process_links")
    op.drop_table("edit_process_step_slots")
    op.drop_table("edit_process_steps")
    op.drop_table("edit_process_slots")
    op.drop_table("edit_process_versions")
    op.drop_table("edit_processes")
    op.drop_table("documents")
    op.drop_table("modules")
    op.drop_table("team_members")
