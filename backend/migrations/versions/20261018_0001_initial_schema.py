"""Initial schema — users, projects, data sources, summaries, synthesis matrix.

Revision ID: 0001
Revises:
Create Date: 2026-10-18 00:00:00.000000

If the database already exists (created via init_db / create_all), run:

    alembic stamp head

to mark it as up-to-date without re-running DDL.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # ── users ──────────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )

    # ── projects ───────────────────────────────────────────────────────────────
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id", sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_projects_user_id", "projects", ["user_id"])

    # ── data_sources ───────────────────────────────────────────────────────────
    op.create_table(
        "data_sources",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id", sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("content_url", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("metadata", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_data_sources_project_id", "data_sources", ["project_id"])

    # ── summaries ──────────────────────────────────────────────────────────────
    op.create_table(
        "summaries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "data_source_id", sa.String(36),
            sa.ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "parent_id", sa.String(36),
            sa.ForeignKey("summaries.id", ondelete="CASCADE"), nullable=True,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("level", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index("ix_summaries_data_source_id", "summaries", ["data_source_id"])

    # ── synthesis_parameters ───────────────────────────────────────────────────
    op.create_table(
        "synthesis_parameters",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "project_id", sa.String(36),
            sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_system", sa.Boolean(), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_synthesis_parameters_project_id", "synthesis_parameters", ["project_id"]
    )

    # ── synthesis_values ───────────────────────────────────────────────────────
    op.create_table(
        "synthesis_values",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "parameter_id", sa.String(36),
            sa.ForeignKey("synthesis_parameters.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "data_source_id", sa.String(36),
            sa.ForeignKey("data_sources.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("extracted_value", sa.Text(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("context", sa.Text(), nullable=True),
        sa.Column("is_verified", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint(
            "parameter_id", "data_source_id", name="_parameter_source_uc",
        ),
    )
    op.create_index("ix_synthesis_values_parameter_id", "synthesis_values", ["parameter_id"])
    op.create_index("ix_synthesis_values_data_source_id", "synthesis_values", ["data_source_id"])


def downgrade() -> None:
    op.drop_table("synthesis_values")
    op.drop_table("synthesis_parameters")
    op.drop_table("summaries")
    op.drop_table("data_sources")
    op.drop_table("projects")
    op.drop_table("users")
