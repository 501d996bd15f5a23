"""Persistent queue backend backed by SQLModel + SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from enum import Enum
from pathlib import Path
from uuid import uuid4

from sqlalchemy import Column, DateTime, Text, event, func
from sqlalchemy import update as sa_update
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from sonic.models import Task
from sonic.queue.base import DEFAULT_POLL_INTERVAL_SECONDS, PollingQueue

logger = logging.getLogger(__name__)

DEFAULT_BUSY_TIMEOUT_MS = 5000
DEFAULT_STALE_CLAIM_SECONDS = 1800


class QueuedTaskStatus(str, Enum):
    QUEUED = "queued"
    CLAIMED = "claimed"


class QueuedTask(SQLModel, table=True):
    __tablename__ = "queued_tasks"  # type: ignore[bad-override]

    task_id: str = Field(primary_key=True)
    topic: str = Field(index=True)
    seq: int = Field(index=True)
    body: str = Field(sa_column=Column(Text, nullable=False))
    tags_json: str = Field(default="{}", sa_column=Column(Text, nullable=False))
    status: str = Field(default=QueuedTaskStatus.QUEUED.value, index=True)
    deliveries: int = 0
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    claimed_at: datetime | None = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


class SQLiteQueue(PollingQueue):
    """Queue persisted in a SQLite file, shareable between processes.

    Claims are conditional updates so two consumers never receive the same
    delivery. Acknowledged tasks are deleted; requeued tasks go to the tail.
    """

    def __init__(
        self,
        db_path: Path,
        *,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        stale_claim_seconds: int = DEFAULT_STALE_CLAIM_SECONDS,
    ) -> None:
        super().__init__(poll_interval_seconds=poll_interval_seconds)
        self.db_path = db_path
        self.stale_claim_seconds = stale_claim_seconds
        self.engine = _build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        SQLModel.metadata.create_all(self.engine, tables=[QueuedTask.__table__])

    def connect(self, topics: Iterable[str]) -> None:
        super().connect(topics)
        recovered = self.recover_stale_claims()
        if recovered:
            logger.warning("Returned %s stale claimed task(s) to the queue", recovered)

    def disconnect(self) -> None:
        self.engine.dispose()

    def publish(self, topic: str, task: Task) -> Task:
        task_id = task.task_id or str(uuid4())
        with Session(self.engine) as session:
            session.add(
                QueuedTask(
                    task_id=task_id,
                    topic=topic,
                    seq=_next_seq(session),
                    body=task.body,
                    tags_json=json.dumps(task.tags, sort_keys=True),
                    created_at=_to_db_datetime(utc_now()),
                ),
            )
            session.commit()
        return Task(body=task.body, tags=dict(task.tags), task_id=task_id)

    def pending(self, topic: str) -> list[Task]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(QueuedTask)
                .where(QueuedTask.topic == topic)
                .order_by(col(QueuedTask.seq).asc()),
            ).all()
            return [_to_task(row) for row in rows]

    def deliveries(self, task_id: str) -> int:
        with Session(self.engine) as session:
            row = session.get(QueuedTask, task_id)
            return 0 if row is None else row.deliveries

    def recover_stale_claims(self) -> int:
        """Return tasks claimed by a consumer that never released them."""

        if not self.topics:
            return 0
        cutoff = _to_db_datetime(utc_now() - timedelta(seconds=self.stale_claim_seconds))
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(QueuedTask)
                .where(
                    col(QueuedTask.topic).in_(self.topics),
                    col(QueuedTask.status) == QueuedTaskStatus.CLAIMED.value,
                    col(QueuedTask.claimed_at) <= cutoff,
                )
                .values(status=QueuedTaskStatus.QUEUED.value, claimed_at=None),
            )
            session.commit()
            return result.rowcount or 0

    def _claim(self, topic: str) -> Task | None:
        while True:
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(QueuedTask)
                    .where(
                        QueuedTask.topic == topic,
                        QueuedTask.status == QueuedTaskStatus.QUEUED.value,
                    )
                    .order_by(col(QueuedTask.seq).asc())
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                result = session.exec(
                    sa_update(QueuedTask)
                    .where(
                        col(QueuedTask.task_id) == candidate.task_id,
                        col(QueuedTask.status) == QueuedTaskStatus.QUEUED.value,
                    )
                    .values(
                        status=QueuedTaskStatus.CLAIMED.value,
                        deliveries=candidate.deliveries + 1,
                        claimed_at=_to_db_datetime(utc_now()),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue
                task = _to_task(candidate)
                session.commit()
                return task

    def _acknowledge(self, topic: str, task: Task) -> None:
        with Session(self.engine) as session:
            row = session.get(QueuedTask, task.task_id)
            if row is None:
                return
            session.delete(row)
            session.commit()

    def _requeue(self, topic: str, task: Task) -> None:
        with Session(self.engine) as session:
            row = session.get(QueuedTask, task.task_id)
            if row is None:
                return
            row.status = QueuedTaskStatus.QUEUED.value
            row.claimed_at = None
            row.seq = _next_seq(session)
            session.add(row)
            session.commit()


def _next_seq(session: Session) -> int:
    current = session.exec(select(func.max(QueuedTask.seq))).one()
    return (current or 0) + 1


def _to_task(row: QueuedTask) -> Task:
    return Task(body=row.body, tags=json.loads(row.tags_json or "{}"), task_id=row.task_id)


def _to_db_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )
    event.listen(
        engine,
        "connect",
        lambda dbapi_connection, _: _apply_sqlite_pragmas(
            dbapi_connection,
            busy_timeout_ms=busy_timeout_ms,
        ),
    )
    return engine


def _apply_sqlite_pragmas(dbapi_connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.close()
