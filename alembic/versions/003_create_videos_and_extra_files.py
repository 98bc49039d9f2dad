"""create videos and extra_files tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-19

"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "videos",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("owner_user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("download_size", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("length", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index("ix_videos_owner_user_id", "videos", ["owner_user_id"])
    op.create_index("ix_videos_timestamp", "videos", ["timestamp"])
    op.create_table(
        "extra_files",
        sa.Column("video_id", sa.String(64), sa.ForeignKey("videos.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("extra_index", sa.Integer(), primary_key=True),
    )


def downgrade() -> None:
    op.drop_table("extra_files")
    op.drop_index("ix_videos_timestamp", table_name="videos")
    op.drop_index("ix_videos_owner_user_id", table_name="videos")
    op.drop_table("videos")
