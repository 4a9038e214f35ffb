"""
Persistence gateway interface for the portal service.

Rows are plain dicts keyed by column name. Filters are equality maps; a key
suffixed with ``__gte`` or ``__lte`` expresses an inclusive range bound.
``order_by`` is a sequence of ``(column, "asc" | "desc")`` pairs.

Unique-constraint violations raise ``ConflictError`` carrying the constraint
name; a dangling foreign key raises ``ValidationError``.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

Row = Dict[str, Any]
Filter = Dict[str, Any]
OrderBy = Sequence[Tuple[str, str]]

RANGE_SUFFIXES = ("__gte", "__lte")


def split_filter_key(key: str) -> Tuple[str, Optional[str]]:
    """Split ``column__op`` into (column, op); op is None for equality."""
    for suffix in RANGE_SUFFIXES:
        if key.endswith(suffix):
            return key[: -len(suffix)], suffix[2:]
    return key, None


class PersistenceGateway(ABC):
    """Per-table CRUD and upsert over a relational store."""

    async def start(self):
        """Open connections and create the schema."""

    async def stop(self):
        """Release connections."""

    async def health_check(self) -> bool:
        return True

    @abstractmethod
    async def create(self, table: str, fields: Row) -> Row:
        ...

    @abstractmethod
    async def find_by_id(self, table: str, row_id: int) -> Optional[Row]:
        ...

    @abstractmethod
    async def find_by_unique(self, table: str, key: Row) -> Optional[Row]:
        """Find the row matching every column of ``key``."""

    @abstractmethod
    async def find_many(
        self,
        table: str,
        filter: Optional[Filter] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Row]:
        ...

    @abstractmethod
    async def count(self, table: str, filter: Optional[Filter] = None) -> int:
        ...

    @abstractmethod
    async def update(self, table: str, row_id: int, fields: Row) -> Optional[Row]:
        """Apply a partial update. Returns None when the row does not exist."""

    @abstractmethod
    async def delete(self, table: str, row_id: int) -> bool:
        ...

    @abstractmethod
    async def upsert(self, table: str, unique_key: Row, create_fields: Row, update_fields: Row) -> Tuple[Row, bool]:
        """Insert or update the row identified by ``unique_key``.

        Returns (row, created).
        """
