"""Record store for generated content.

Jobs talk to persistence only through the RecordStore interface:
insert / find / count / delete_many with a small filter vocabulary
(equality, created_at range, text search). SQLRecordStore implements it on
SQLAlchemy async sessions over a SQLModel table.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

logger = logging.getLogger(__name__)


class StoreError(RuntimeError):
    """Raised when the persistence layer fails or is unreachable."""


@dataclass
class RecordFilter:
    """Conditions combined with AND. An empty filter matches every record."""

    equals: dict[str, Any] = field(default_factory=dict)
    created_before: Optional[datetime] = None
    created_after: Optional[datetime] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class DeleteResult:
    deleted_count: int


class RecordStore(ABC):
    """Durable store for generated records."""

    @abstractmethod
    async def insert(self, record: Any) -> Any:
        """Persist a record and return it (with its id populated)."""
        pass

    @abstractmethod
    async def find(
        self,
        filter: Optional[RecordFilter] = None,
        sort: str = "-created_at",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Any]:
        """
        Query records.

        Args:
            filter: Conditions to match (None = all records).
            sort: Field name, prefixed with "-" for descending order.
            limit: Max records to return (None = no limit).
            offset: Records to skip.
        """
        pass

    @abstractmethod
    async def count(self, filter: Optional[RecordFilter] = None) -> int:
        """Count records matching filter."""
        pass

    @abstractmethod
    async def delete_many(self, filter: RecordFilter) -> DeleteResult:
        """Delete records matching filter."""
        pass


class SQLRecordStore(RecordStore):
    """RecordStore over one SQLModel table."""

    def __init__(
        self,
        model: type,
        session_factory: sessionmaker,
        text_fields: tuple[str, ...] = ("title", "description", "content"),
    ):
        self.model = model
        self._session_factory = session_factory
        self._text_fields = text_fields

    @property
    def name(self) -> str:
        return self.model.__tablename__

    def _column(self, name: str):
        column = getattr(self.model, name, None)
        if column is None:
            raise StoreError(f"{self.name} has no field {name!r}")
        return column

    def _conditions(self, record_filter: Optional[RecordFilter]) -> list:
        if record_filter is None:
            return []

        conditions = [self._column(name) == value for name, value in record_filter.equals.items()]

        created_at = self._column("created_at")
        if record_filter.created_before is not None:
            conditions.append(created_at < record_filter.created_before)
        if record_filter.created_after is not None:
            conditions.append(created_at >= record_filter.created_after)

        if record_filter.text:
            pattern = f"%{record_filter.text}%"
            conditions.append(or_(*[self._column(name).ilike(pattern) for name in self._text_fields]))

        return conditions

    async def insert(self, record: Any) -> Any:
        try:
            async with self._session_factory() as session:
                session.add(record)
                await session.commit()
                await session.refresh(record)
        except SQLAlchemyError as e:
            raise StoreError(f"Insert into {self.name} failed: {e}") from e
        return record

    async def find(
        self,
        filter: Optional[RecordFilter] = None,
        sort: str = "-created_at",
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Any]:
        descending = sort.startswith("-")
        order_column = self._column(sort.lstrip("-"))
        order = order_column.desc() if descending else order_column.asc()

        query = select(self.model).where(*self._conditions(filter)).order_by(order).offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StoreError(f"Query on {self.name} failed: {e}") from e

    async def count(self, filter: Optional[RecordFilter] = None) -> int:
        query = select(func.count()).select_from(self.model).where(*self._conditions(filter))
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                return result.scalar() or 0
        except SQLAlchemyError as e:
            raise StoreError(f"Count on {self.name} failed: {e}") from e

    async def delete_many(self, filter: RecordFilter) -> DeleteResult:
        query = delete(self.model).where(*self._conditions(filter))
        try:
            async with self._session_factory() as session:
                result = await session.execute(query)
                await session.commit()
        except SQLAlchemyError as e:
            raise StoreError(f"Delete on {self.name} failed: {e}") from e

        deleted = result.rowcount or 0
        if deleted > 0:
            logger.info(f"[STORE:{self.name}] Deleted {deleted} records")
        return DeleteResult(deleted_count=deleted)
