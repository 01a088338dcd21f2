"""generation core

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261017_0001"
down_revision = None
branch_labels = None
depends_on = None


MEDIA_TABLES = ["images", "videos"]


def _is_postgresql() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("subscription_tier", sa.String(length=24), nullable=False, server_default="free"),
        sa.Column("credits_remaining", sa.Integer(), nullable=False, server_default="100"),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "prompts",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("model_used", sa.String(length=120), nullable=False),
        sa.Column("size", sa.String(length=24), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("aspect_ratio", sa.String(length=16), nullable=True),
        sa.Column("guidance_scale", sa.Float(), nullable=True),
        sa.Column("watermark", sa.Boolean(), nullable=True),
        sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("type IN ('image', 'video')", name="ck_prompts_type"),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_prompts_status",
        ),
    )
    op.create_index("ix_prompts_user_created_at", "prompts", ["user_id", "created_at"], unique=False)
    op.create_index("ix_prompts_user_type_created_at", "prompts", ["user_id", "type", "created_at"], unique=False)
    op.create_index("ix_prompts_status", "prompts", ["status"], unique=False)

    op.create_table(
        "images",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("prompt_id", sa.String(length=36), nullable=False),
        sa.Column("external_url", sa.Text(), nullable=False),
        sa.Column("owned_url", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.String(length=255), nullable=True),
        sa.Column("size", sa.String(length=24), nullable=False),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(length=64), nullable=False, server_default="image/png"),
        *_timestamps(),
        sa.ForeignKeyConstraint(["prompt_id"], ["prompts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_images_prompt_created_at", "images", ["prompt_id", "created_at"], unique=False)

    op.create_table(
        "videos",
        sa.Column("id", sa.String(length=36), nullable=False),
        sa.Column("prompt_id", sa.String(length=36), nullable=False),
        sa.Column("task_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="queued"),
        sa.Column("external_url", sa.Text(), nullable=True),
        sa.Column("owned_url", sa.Text(), nullable=True),
        sa.Column("storage_path", sa.String(length=255), nullable=True),
        sa.Column("duration", sa.Integer(), nullable=True),
        sa.Column("aspect_ratio", sa.String(length=16), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        sa.Column("mime_type", sa.String(length=64), nullable=False, server_default="video/mp4"),
        sa.Column("error_message", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["prompt_id"], ["prompts.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('queued', 'running', 'succeeded', 'failed', 'cancelled')",
            name="ck_videos_status",
        ),
    )
    op.create_index("ix_videos_prompt_created_at", "videos", ["prompt_id", "created_at"], unique=False)
    op.create_index("ix_videos_status", "videos", ["status"], unique=False)
    op.create_index("ix_videos_task_id", "videos", ["task_id"], unique=False)

    if _is_postgresql():
        op.execute(
            """
            CREATE OR REPLACE FUNCTION app_current_user_id()
            RETURNS text
            LANGUAGE sql
            STABLE
            AS $$
                SELECT NULLIF(current_setting('app.current_user_id', true), '');
            $$;
            """
        )

        for table_name in ["users", "prompts", *MEDIA_TABLES]:
            op.execute(f"ALTER TABLE {table_name} ENABLE ROW LEVEL SECURITY;")
            op.execute(f"ALTER TABLE {table_name} FORCE ROW LEVEL SECURITY;")

        # An unset owner is the service role used by the video sync sweep.
        op.execute(
            """
            CREATE POLICY users_owner_policy ON users
            FOR ALL USING (app_current_user_id() IS NULL OR id = app_current_user_id())
            WITH CHECK (app_current_user_id() IS NULL OR id = app_current_user_id());
            """
        )
        op.execute(
            """
            CREATE POLICY prompts_owner_policy ON prompts
            FOR ALL USING (app_current_user_id() IS NULL OR user_id = app_current_user_id())
            WITH CHECK (app_current_user_id() IS NULL OR user_id = app_current_user_id());
            """
        )
        for table_name in MEDIA_TABLES:
            op.execute(
                f"""
                CREATE POLICY {table_name}_owner_policy ON {table_name}
                FOR ALL USING (
                    app_current_user_id() IS NULL OR EXISTS (
                        SELECT 1 FROM prompts
                        WHERE prompts.id = {table_name}.prompt_id
                          AND prompts.user_id = app_current_user_id()
                    )
                )
                WITH CHECK (
                    app_current_user_id() IS NULL OR EXISTS (
                        SELECT 1 FROM prompts
                        WHERE prompts.id = {table_name}.prompt_id
                          AND prompts.user_id = app_current_user_id()
                    )
                );
                """
            )


def downgrade() -> None:
    if _is_postgresql():
        for table_name in [*MEDIA_TABLES, "prompts", "users"]:
            op.execute(f"DROP POLICY IF EXISTS {table_name}_owner_policy ON {table_name};")
            op.execute(f"ALTER TABLE {table_name} DISABLE ROW LEVEL SECURITY;")
        op.execute("DROP FUNCTION IF EXISTS app_current_user_id();")

    op.drop_index("ix_videos_task_id", table_name="videos")
    op.drop_index("ix_videos_status", table_name="videos")
    op.drop_index("ix_videos_prompt_created_at", table_name="videos")
    op.drop_table("videos")

    op.drop_index("ix_images_prompt_created_at", table_name="images")
    op.drop_table("images")

    op.drop_index("ix_prompts_status", table_name="prompts")
    op.drop_index("ix_prompts_user_type_created_at", table_name="prompts")
    op.drop_index("ix_prompts_user_created_at", table_name="prompts")
    op.drop_table("prompts")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
