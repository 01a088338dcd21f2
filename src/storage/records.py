"""Owner-scoped record store over the prompts/images/videos tables."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

from sqlalchemy import Select, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.core.logger import get_logger
from src.generation.errors import PersistenceError, RecordNotFoundError
from src.storage.models import ImageRecord, Prompt, User, VideoRecord
from src.storage.tenant import reset_owner_context, set_owner_context


Row = Dict[str, Any]

TABLE_MODELS = {
    "users": User,
    "prompts": Prompt,
    "images": ImageRecord,
    "videos": VideoRecord,
}
MEDIA_TABLES = ("images", "videos")
FILTER_OPERATORS = ("eq", "neq", "in", "not_in", "contains", "gte", "lte")

logger = get_logger("ark_studio.storage.records")


@dataclass(frozen=True)
class RowFilter:
    column: str
    op: str
    value: Any

    @classmethod
    def eq(cls, column: str, value: Any) -> "RowFilter":
        return cls(column=column, op="eq", value=value)


class RecordStore(Protocol):
    def insert(self, table: str, row: Mapping[str, Any], *, owner_id: Optional[str]) -> Row:
        ...

    def update(self, table: str, row_id: str, patch: Mapping[str, Any], *, owner_id: Optional[str]) -> Row:
        ...

    def get(self, table: str, row_id: str, *, owner_id: Optional[str]) -> Optional[Row]:
        ...

    def query(
        self,
        table: str,
        *,
        owner_id: Optional[str],
        filters: Sequence[RowFilter] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        ...

    def count(self, table: str, *, owner_id: Optional[str], filters: Sequence[RowFilter] = ()) -> int:
        ...

    def delete(self, table: str, row_id: str, *, owner_id: Optional[str]) -> None:
        ...


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _model_for(table: str):
    model = TABLE_MODELS.get(table)
    if model is None:
        raise ValueError(f"Unknown table: {table}")
    return model


def _column(model, name: str):
    if name not in model.__table__.columns:
        raise ValueError(f"Unknown column {model.__tablename__}.{name}")
    return getattr(model, name)


def to_row(instance) -> Row:
    return {column.name: getattr(instance, column.name) for column in instance.__table__.columns}


def _apply_filters(statement: Select, model, filters: Iterable[RowFilter]) -> Select:
    for row_filter in filters:
        column = _column(model, row_filter.column)
        op = row_filter.op
        value = row_filter.value
        if op == "eq":
            statement = statement.where(column == value)
        elif op == "neq":
            statement = statement.where(column != value)
        elif op == "in":
            statement = statement.where(column.in_(list(value)))
        elif op == "not_in":
            statement = statement.where(column.not_in(list(value)))
        elif op == "contains":
            statement = statement.where(func.lower(column).contains(str(value).lower(), autoescape=True))
        elif op == "gte":
            statement = statement.where(column >= value)
        elif op == "lte":
            statement = statement.where(column <= value)
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
    return statement


def _scope_to_owner(statement: Select, table: str, owner_id: Optional[str]) -> Select:
    if owner_id is None:
        return statement
    if table == "prompts":
        return statement.where(Prompt.user_id == owner_id)
    if table == "users":
        return statement.where(User.id == owner_id)
    model = _model_for(table)
    return statement.join(Prompt, model.prompt_id == Prompt.id).where(Prompt.user_id == owner_id)


class SqlRecordStore:
    """RecordStore backed by SQLAlchemy sessions, one short transaction per call.

    ``owner_id=None`` is the service-role scope used by background sweeps.
    Any other value restricts reads and writes to rows owned by that user,
    joining media tables through their owning prompt.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _open(self, owner_id: Optional[str]) -> Session:
        session = self._session_factory()
        set_owner_context(session, owner_id)
        return session

    def _close(self, session: Session) -> None:
        try:
            reset_owner_context(session)
        finally:
            session.close()

    def _load(self, session: Session, table: str, row_id: str, owner_id: Optional[str]):
        model = _model_for(table)
        statement = _scope_to_owner(select(model), table, owner_id).where(model.id == row_id)
        return session.scalar(statement)

    def insert(self, table: str, row: Mapping[str, Any], *, owner_id: Optional[str]) -> Row:
        model = _model_for(table)
        values = dict(row)
        for name in values:
            _column(model, name)

        session = self._open(owner_id)
        try:
            if owner_id is not None:
                if table == "prompts" and values.get("user_id") != owner_id:
                    raise PersistenceError("prompt_owner_mismatch")
                if table in MEDIA_TABLES and self._load(session, "prompts", str(values.get("prompt_id")), owner_id) is None:
                    raise PersistenceError(f"{table}_owner_prompt_not_found")
            instance = model(**values)
            session.add(instance)
            session.commit()
            session.refresh(instance)
            return to_row(instance)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("record_insert_failed", table=table, error=str(exc))
            raise PersistenceError(f"{table}_insert_failed: {exc}") from exc
        finally:
            self._close(session)

    def update(self, table: str, row_id: str, patch: Mapping[str, Any], *, owner_id: Optional[str]) -> Row:
        model = _model_for(table)
        changes = dict(patch)
        for name in changes:
            _column(model, name)
        if "updated_at" in model.__table__.columns:
            changes.setdefault("updated_at", _now_utc())

        session = self._open(owner_id)
        try:
            instance = self._load(session, table, row_id, owner_id)
            if instance is None:
                raise RecordNotFoundError(table, row_id)
            for name, value in changes.items():
                setattr(instance, name, value)
            session.commit()
            session.refresh(instance)
            return to_row(instance)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("record_update_failed", table=table, row_id=row_id, error=str(exc))
            raise PersistenceError(f"{table}_update_failed: {exc}") from exc
        finally:
            self._close(session)

    def get(self, table: str, row_id: str, *, owner_id: Optional[str]) -> Optional[Row]:
        session = self._open(owner_id)
        try:
            instance = self._load(session, table, row_id, owner_id)
            return to_row(instance) if instance is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{table}_read_failed: {exc}") from exc
        finally:
            self._close(session)

    def query(
        self,
        table: str,
        *,
        owner_id: Optional[str],
        filters: Sequence[RowFilter] = (),
        order_by: str = "created_at",
        descending: bool = True,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Row]:
        model = _model_for(table)
        order_column = _column(model, order_by)
        statement = _apply_filters(_scope_to_owner(select(model), table, owner_id), model, filters)
        if descending:
            statement = statement.order_by(order_column.desc(), model.id.desc())
        else:
            statement = statement.order_by(order_column.asc(), model.id.asc())
        if offset:
            statement = statement.offset(max(0, offset))
        if limit is not None:
            statement = statement.limit(max(1, limit))

        session = self._open(owner_id)
        try:
            return [to_row(instance) for instance in session.scalars(statement).all()]
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{table}_query_failed: {exc}") from exc
        finally:
            self._close(session)

    def count(self, table: str, *, owner_id: Optional[str], filters: Sequence[RowFilter] = ()) -> int:
        model = _model_for(table)
        statement = _apply_filters(_scope_to_owner(select(func.count(model.id)), table, owner_id), model, filters)
        session = self._open(owner_id)
        try:
            return int(session.scalar(statement) or 0)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"{table}_count_failed: {exc}") from exc
        finally:
            self._close(session)

    def delete(self, table: str, row_id: str, *, owner_id: Optional[str]) -> None:
        session = self._open(owner_id)
        try:
            instance = self._load(session, table, row_id, owner_id)
            if instance is None:
                raise RecordNotFoundError(table, row_id)
            session.delete(instance)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("record_delete_failed", table=table, row_id=row_id, error=str(exc))
            raise PersistenceError(f"{table}_delete_failed: {exc}") from exc
        finally:
            self._close(session)
