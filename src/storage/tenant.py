"""Owner-scoped DB context helpers."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import text
from sqlalchemy.orm import Session


def set_owner_context(session: Session, owner_id: Optional[str]) -> None:
    """Set owner context for PostgreSQL RLS policies."""

    bind = session.get_bind()
    if bind is None or bind.dialect.name != "postgresql":
        return

    value = owner_id or ""
    session.execute(
        text("SELECT set_config('app.current_user_id', :owner_id, true)"),
        {"owner_id": value},
    )


def reset_owner_context(session: Session) -> None:
    set_owner_context(session=session, owner_id=None)
