"""
Durable storage adapter on SQLAlchemy.

Each execution is one row of ``trace_executions``: the full camelCase
document lives in a JSON column, and the fields used for lookups are
promoted to indexed columns.

Indexes:
- id            primary key (unique)
- pipeline_name secondary
- status        secondary
- started_at    descending, for "most recent N" listings

Works with SQLite out of the box; any SQLAlchemy URL is accepted.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import ValidationError
from sqlalchemy import JSON, Column, DateTime, Index, String, create_engine, insert, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from decision_trail.storage.base import matches, normalize_filter
from decision_trail.trace.errors import MalformedDocumentError, StorageError
from decision_trail.trace.models import Execution

logger = structlog.get_logger(__name__)

Base = declarative_base()

# Document keys that map onto indexed columns
_INDEXED_KEYS = {
    "id": "id",
    "pipelineName": "pipeline_name",
    "status": "status",
}

# Dialects with a native INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": postgresql_insert,
}


class ExecutionRecord(Base):
    __tablename__ = "trace_executions"

    id = Column(String(64), primary_key=True)
    pipeline_name = Column(String(200), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    document = Column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_trace_executions_started_at_desc", started_at.desc()),
    )

    def __repr__(self):
        return f"<ExecutionRecord(id={self.id!r}, pipeline={self.pipeline_name!r}, status={self.status!r})>"


def create_sql_engine(database_url: str) -> Engine:
    """Create an engine, preparing the SQLite file location when needed."""
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False  # Accessed from worker threads
        if url.database and url.database != ":memory:":
            Path(url.database).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(database_url, connect_args=connect_args)


class SQLStorage:
    """Execution documents in a relational table.

    Blocking database work runs in a worker thread so the adapter can be
    awaited from the event loop.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if database_url is None:
                raise ValueError("SQLStorage needs a database_url or an engine")
            engine = create_sql_engine(database_url)
        self.engine = engine
        self._session_factory = sessionmaker(autoflush=False, bind=engine)
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        """Create the table and its indexes if they don't exist."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not create execution table: {e}") from e

    # -------------------------------------------------------------------------
    # Contract
    # -------------------------------------------------------------------------

    async def save(self, execution: Execution) -> None:
        await asyncio.to_thread(self._save_sync, execution)

    async def get(self, execution_id: str) -> Optional[Execution]:
        return await asyncio.to_thread(self._get_sync, execution_id)

    async def query(self, filter: dict[str, Any]) -> list[Execution]:
        return await asyncio.to_thread(self._query_sync, filter)

    async def delete(self, execution_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, execution_id)

    def close(self) -> None:
        self.engine.dispose()

    # -------------------------------------------------------------------------
    # Blocking implementations
    # -------------------------------------------------------------------------

    def _save_sync(self, execution: Execution) -> None:
        values = {
            "id": execution.id,
            "pipeline_name": execution.pipeline_name,
            "status": execution.status.value,
            "started_at": execution.started_at,
            "completed_at": execution.completed_at,
            "document": execution.to_document(),
        }
        try:
            try:
                with self._session_factory.begin() as session:
                    self._upsert(session, values)
            except IntegrityError:
                # A concurrent save inserted the row first; the retry updates it
                with self._session_factory.begin() as session:
                    self._upsert(session, values)
        except SQLAlchemyError as e:
            logger.error("sql_save_failed", execution_id=execution.id, error=str(e))
            raise StorageError(f"Failed to save execution {execution.id}: {e}") from e

    def _upsert(self, session: Session, values: dict[str, Any]) -> None:
        """Insert or wholesale-replace one row without a read-then-write race."""
        fields = {key: value for key, value in values.items() if key != "id"}

        dialect_insert = _UPSERT_INSERTS.get(self.engine.dialect.name)
        if dialect_insert is not None:
            statement = dialect_insert(ExecutionRecord).values(**values)
            statement = statement.on_conflict_do_update(
                index_elements=["id"],
                set_={key: statement.excluded[key] for key in fields},
            )
            session.execute(statement)
            return

        replace = update(ExecutionRecord).where(ExecutionRecord.id == values["id"]).values(**fields)
        if not session.execute(replace).rowcount:
            session.execute(insert(ExecutionRecord).values(**values))

    def _get_sync(self, execution_id: str) -> Optional[Execution]:
        try:
            with self._session_factory() as session:
                record = session.get(ExecutionRecord, execution_id)
                document = record.document if record is not None else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load execution {execution_id}: {e}") from e

        if document is None:
            return None
        return _parse(execution_id, document)

    def _query_sync(self, filter: dict[str, Any]) -> list[Execution]:
        criteria = normalize_filter(filter)

        statement = select(ExecutionRecord.id, ExecutionRecord.document)
        for key, column_name in _INDEXED_KEYS.items():
            if key in criteria:
                statement = statement.where(getattr(ExecutionRecord, column_name) == criteria[key])

        try:
            with self._session_factory() as session:
                rows = session.execute(statement).all()
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query executions: {e}") from e

        executions = [_parse(row.id, row.document) for row in rows]
        return [e for e in executions if matches(e, criteria)]

    def _delete_sync(self, execution_id: str) -> None:
        try:
            with self._session_factory.begin() as session:
                record = session.get(ExecutionRecord, execution_id)
                if record is not None:
                    session.delete(record)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete execution {execution_id}: {e}") from e


def _parse(execution_id: str, document: Any) -> Execution:
    if not isinstance(document, dict):
        raise MalformedDocumentError(execution_id, f"expected an object, got {type(document).__name__}")
    try:
        return Execution.from_document(document)
    except ValidationError as e:
        raise MalformedDocumentError(execution_id, str(e)) from e
