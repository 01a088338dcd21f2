from __future__ import annotations

from pathlib import Path


def test_generation_migration_declares_tables_constraints_and_rls() -> None:
    migration_path = Path("migrations/versions/20261017_0001_generation_core.py")
    source = migration_path.read_text(encoding="utf-8")

    for table_name in ("users", "prompts", "images", "videos"):
        assert f'"{table_name}"' in source

    assert "ck_prompts_type" in source
    assert "ck_prompts_status" in source
    assert "ck_videos_status" in source
    assert 'ondelete="CASCADE"' in source

    assert "ix_prompts_user_created_at" in source
    assert "ix_images_prompt_created_at" in source
    assert "ix_videos_task_id" in source

    assert "ENABLE ROW LEVEL SECURITY" in source
    assert "FORCE ROW LEVEL SECURITY" in source
    assert "CREATE POLICY" in source
    assert "app.current_user_id" in source
    assert 'down_revision = None' in source
