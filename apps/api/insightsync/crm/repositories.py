from __future__ import annotations

import copy
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from insightsync.core.config import Settings
from insightsync.core.database import Base, build_engine, build_session_factory
from insightsync.crm.models import (
    CRMActivity,
    CRMCustomer,
    CRMDeal,
    CRMPipelineStage,
    CRMProduct,
    CRMTask,
    CRMTicket,
    CRMUser,
)
from insightsync.crm.schemas import (
    ActivityRead,
    CustomerRead,
    DealRead,
    PipelineStageRead,
    ProductRead,
    TaskRead,
    TicketRead,
    UserRecord,
)

RecordT = TypeVar("RecordT", bound=BaseModel)

_STORE_MANAGED_FIELDS = frozenset({"id", "created_at"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Repository(Protocol[RecordT]):
    """Per-entity collection. Absence is reported as ``None``/``False``, never raised."""

    def create(self, data: dict[str, Any]) -> RecordT: ...

    def get(self, record_id: int) -> RecordT | None: ...

    def list(self) -> list[RecordT]: ...

    def list_by(self, field_name: str, value: Any) -> list[RecordT]: ...

    def update(self, record_id: int, changes: dict[str, Any]) -> RecordT | None: ...

    def delete(self, record_id: int) -> bool: ...


class InMemoryRepository(Generic[RecordT]):
    def __init__(
        self,
        record_type: type[RecordT],
        lock: threading.RLock,
        *,
        sort_key: str | None = None,
    ) -> None:
        self._record_type = record_type
        self._lock = lock
        self._sort_key = sort_key
        self._records: dict[int, RecordT] = {}
        self._next_id = 1

    def create(self, data: dict[str, Any]) -> RecordT:
        payload = {key: value for key, value in copy.deepcopy(data).items() if key not in _STORE_MANAGED_FIELDS}
        with self._lock:
            record_id = self._next_id
            self._next_id += 1
            record = self._record_type.model_validate({**payload, "id": record_id, "created_at": utcnow()})
            self._records[record_id] = record
            return record.model_copy(deep=True)

    def get(self, record_id: int) -> RecordT | None:
        with self._lock:
            record = self._records.get(record_id)
            return record.model_copy(deep=True) if record is not None else None

    def list(self) -> list[RecordT]:
        with self._lock:
            records = [record.model_copy(deep=True) for record in self._records.values()]
        if self._sort_key is not None:
            sort_key = self._sort_key
            records.sort(key=lambda record: (getattr(record, sort_key), getattr(record, "id")))
        return records

    def list_by(self, field_name: str, value: Any) -> list[RecordT]:
        return [record for record in self.list() if getattr(record, field_name) == value]

    def update(self, record_id: int, changes: dict[str, Any]) -> RecordT | None:
        updates = {key: value for key, value in copy.deepcopy(changes).items() if key not in _STORE_MANAGED_FIELDS}
        with self._lock:
            current = self._records.get(record_id)
            if current is None:
                return None
            merged = current.model_copy(update=updates, deep=True)
            self._records[record_id] = merged
            return merged.model_copy(deep=True)

    def delete(self, record_id: int) -> bool:
        with self._lock:
            return self._records.pop(record_id, None) is not None


class SqlRepository(Generic[RecordT]):
    def __init__(
        self,
        model: type[Base],
        record_type: type[RecordT],
        session_factory: sessionmaker[Session],
        lock: threading.RLock,
        *,
        sort_key: str | None = None,
        column_aliases: dict[str, str] | None = None,
    ) -> None:
        self._model = model
        self._record_type = record_type
        self._session_factory = session_factory
        self._lock = lock
        self._sort_key = sort_key
        self._column_aliases = column_aliases or {}

    def create(self, data: dict[str, Any]) -> RecordT:
        with self._lock, self._session_factory() as session:
            row = self._model(**self._to_columns(data), created_at=utcnow())
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def get(self, record_id: int) -> RecordT | None:
        with self._lock, self._session_factory() as session:
            row = session.get(self._model, record_id)
            return self._to_record(row) if row is not None else None

    def list(self) -> list[RecordT]:
        return self._select()

    def list_by(self, field_name: str, value: Any) -> list[RecordT]:
        column = getattr(self._model, self._column_aliases.get(field_name, field_name))
        return self._select(column == value)

    def update(self, record_id: int, changes: dict[str, Any]) -> RecordT | None:
        with self._lock, self._session_factory() as session:
            row = session.get(self._model, record_id)
            if row is None:
                return None
            for attr_name, value in self._to_columns(changes).items():
                setattr(row, attr_name, value)
            session.commit()
            session.refresh(row)
            return self._to_record(row)

    def delete(self, record_id: int) -> bool:
        with self._lock, self._session_factory() as session:
            row = session.get(self._model, record_id)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            return True

    def _select(self, *criteria: Any) -> list[RecordT]:
        id_column = getattr(self._model, "id")
        stmt = select(self._model).where(*criteria)
        if self._sort_key is not None:
            stmt = stmt.order_by(getattr(self._model, self._sort_key).asc(), id_column.asc())
        else:
            stmt = stmt.order_by(id_column.asc())
        with self._lock, self._session_factory() as session:
            return [self._to_record(row) for row in session.scalars(stmt).all()]

    def _to_columns(self, data: dict[str, Any]) -> dict[str, Any]:
        return {
            self._column_aliases.get(key, key): copy.deepcopy(value)
            for key, value in data.items()
            if key not in _STORE_MANAGED_FIELDS
        }

    def _to_record(self, row: Any) -> RecordT:
        values = {attr.key: getattr(row, attr.key) for attr in sa_inspect(row).mapper.column_attrs}
        for field_name, attr_name in self._column_aliases.items():
            values[field_name] = values.pop(attr_name)
        return self._record_type.model_validate(values)


@dataclass
class CRMStore:
    users: Repository[UserRecord]
    customers: Repository[CustomerRead]
    products: Repository[ProductRead]
    pipeline_stages: Repository[PipelineStageRead]
    deals: Repository[DealRead]
    tasks: Repository[TaskRead]
    tickets: Repository[TicketRead]
    activities: Repository[ActivityRead]
    lock: threading.RLock = field(default_factory=threading.RLock)
    backend: str = "memory"

    @contextmanager
    def transaction(self) -> Iterator[CRMStore]:
        """Holds the store lock across several operations so they observe each other's writes."""
        with self.lock:
            yield self

    def find_user_by_username(self, username: str) -> UserRecord | None:
        matches = self.users.list_by("username", username)
        return matches[0] if matches else None

    def list_deals_by_stage(self, stage_id: int) -> list[DealRead]:
        return self.deals.list_by("stage_id", stage_id)

    def list_deals_by_customer(self, customer_id: int) -> list[DealRead]:
        return self.deals.list_by("customer_id", customer_id)

    def list_tasks_by_assignee(self, assigned_to: int) -> list[TaskRead]:
        return self.tasks.list_by("assigned_to", assigned_to)

    def list_tickets_by_customer(self, customer_id: int) -> list[TicketRead]:
        return self.tickets.list_by("customer_id", customer_id)

    def list_tickets_by_assignee(self, assigned_to: int) -> list[TicketRead]:
        return self.tickets.list_by("assigned_to", assigned_to)

    def is_empty(self) -> bool:
        return not self.users.list()


def build_memory_store() -> CRMStore:
    lock = threading.RLock()
    return CRMStore(
        users=InMemoryRepository(UserRecord, lock),
        customers=InMemoryRepository(CustomerRead, lock),
        products=InMemoryRepository(ProductRead, lock),
        pipeline_stages=InMemoryRepository(PipelineStageRead, lock, sort_key="order"),
        deals=InMemoryRepository(DealRead, lock),
        tasks=InMemoryRepository(TaskRead, lock),
        tickets=InMemoryRepository(TicketRead, lock),
        activities=InMemoryRepository(ActivityRead, lock),
        lock=lock,
        backend="memory",
    )


def build_sql_store(session_factory: sessionmaker[Session]) -> CRMStore:
    lock = threading.RLock()
    return CRMStore(
        users=SqlRepository(CRMUser, UserRecord, session_factory, lock),
        customers=SqlRepository(CRMCustomer, CustomerRead, session_factory, lock),
        products=SqlRepository(CRMProduct, ProductRead, session_factory, lock),
        pipeline_stages=SqlRepository(CRMPipelineStage, PipelineStageRead, session_factory, lock, sort_key="order"),
        deals=SqlRepository(CRMDeal, DealRead, session_factory, lock),
        tasks=SqlRepository(CRMTask, TaskRead, session_factory, lock),
        tickets=SqlRepository(CRMTicket, TicketRead, session_factory, lock),
        activities=SqlRepository(
            CRMActivity,
            ActivityRead,
            session_factory,
            lock,
            column_aliases={"metadata": "metadata_json"},
        ),
        lock=lock,
        backend="sql",
    )


def build_store(settings: Settings) -> CRMStore:
    backend = settings.storage_backend.lower()
    if backend == "memory":
        return build_memory_store()
    if backend == "sql":
        engine = build_engine(settings.database_url)
        Base.metadata.create_all(bind=engine)
        return build_sql_store(build_session_factory(engine))
    raise ValueError(f"unsupported storage backend: {settings.storage_backend}")
