"""Create projects table.

Revision ID: 20260301_create_projects
Revises:
Create Date: 2026-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_create_projects"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "projects",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("external_id", sa.String(64), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("creation_mode", sa.String(20), nullable=False, server_default="ai-original"),
        sa.Column("current_step", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("script_content", sa.Text(), nullable=True),
        sa.Column("generation_mode", sa.String(40), nullable=True),
        sa.Column("aspect_ratio", sa.String(10), nullable=False, server_default="16:9"),
        sa.Column("style_settings_json", sa.JSON(), nullable=True),
        sa.Column("segments_json", sa.JSON(), nullable=True),
        sa.Column("visual_bible_json", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_projects_external_id", "projects", ["external_id"], unique=True)
    op.create_index("ix_projects_created_at", "projects", ["created_at"])


def downgrade():
    op.drop_index("ix_projects_created_at", table_name="projects")
    op.drop_index("ix_projects_external_id", table_name="projects")
    op.drop_table("projects")
