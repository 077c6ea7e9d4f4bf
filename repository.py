"""Generic record store used by the services.

Each repository wraps one mapped model and exposes the small CRUD + index
lookup contract the budgeting logic relies on. Writes are flushed, never
committed: the calling service owns the transaction, so a batch of writes
either lands as a whole or is rolled back as a whole.
"""

from typing import Any, Generic, Optional, Sequence, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from database import Base

ModelT = TypeVar("ModelT", bound=Base)

# Audit columns are owned by the store, callers may not write them.
AUDIT_FIELDS = frozenset({"id", "created_at", "updated_at"})


class RecordNotFound(LookupError):
    def __init__(self, model: type, record_id: object) -> None:
        super().__init__(f"{model.__name__} {record_id} not found")
        self.model = model
        self.record_id = record_id


class Repository(Generic[ModelT]):
    def __init__(self, session: Session, model: type[ModelT]) -> None:
        self.session = session
        self.model = model

    def _column(self, field: str):
        column = getattr(self.model, field, None)
        if column is None or field not in self.model.__table__.columns:
            raise ValueError(f"Unknown field {field!r} for {self.model.__name__}")
        return column

    def get_all(self, *, order_by: Optional[str] = None) -> list[ModelT]:
        stmt = select(self.model)
        if order_by:
            stmt = stmt.order_by(self._column(order_by), self.model.id)
        else:
            stmt = stmt.order_by(self.model.id)
        return list(self.session.scalars(stmt).all())

    def get_by_id(self, record_id: int) -> Optional[ModelT]:
        return self.session.get(self.model, record_id)

    def require(self, record_id: int) -> ModelT:
        record = self.get_by_id(record_id)
        if record is None:
            raise RecordNotFound(self.model, record_id)
        return record

    def get_by_index(
        self, field: str, value: Any, *, order_by: Optional[str] = None
    ) -> list[ModelT]:
        stmt = select(self.model).where(self._column(field) == value)
        if order_by:
            stmt = stmt.order_by(self._column(order_by), self.model.id)
        else:
            stmt = stmt.order_by(self.model.id)
        return list(self.session.scalars(stmt).all())

    def add(self, record: ModelT) -> ModelT:
        self.session.add(record)
        self.session.flush()
        return record

    def add_many(self, records: Sequence[ModelT]) -> list[ModelT]:
        # One flush per record keeps ids assigned in insertion order.
        created: list[ModelT] = []
        for record in records:
            created.append(self.add(record))
        return created

    def update(self, record_id: int, changes: dict[str, Any]) -> ModelT:
        record = self.require(record_id)
        for field, value in changes.items():
            if field in AUDIT_FIELDS:
                raise ValueError(f"Field {field!r} is managed by the store")
            self._column(field)
            setattr(record, field, value)
        self.session.flush()
        return record

    def delete(self, record_id: int) -> None:
        record = self.require(record_id)
        self.session.delete(record)
        self.session.flush()
