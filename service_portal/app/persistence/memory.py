"""
In-memory persistence adapter.

Used by default when no PostgreSQL DSN is configured, and by the tests.
Every call completes without suspending, so each operation is atomic with
respect to other coroutines.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from shared.errors import ConflictError, ValidationError
from shared.logging import get_logger
from .base import Filter, OrderBy, PersistenceGateway, Row, split_filter_key
from .schema import TABLES, TableSchema, get_table


def _matches(row: Row, filter: Optional[Filter]) -> bool:
    for key, expected in (filter or {}).items():
        column, op = split_filter_key(key)
        actual = row.get(column)
        if op is None:
            if actual != expected:
                return False
        elif actual is None:
            return False
        elif op == "gte" and actual < expected:
            return False
        elif op == "lte" and actual > expected:
            return False
    return True


def _sort(rows: List[Row], order_by: Optional[OrderBy]) -> List[Row]:
    # Stable sorts applied from the last key to the first
    for column, direction in reversed(list(order_by or [("id", "asc")])):
        descending = direction.lower() == "desc"
        present = [r for r in rows if r.get(column) is not None]
        missing = [r for r in rows if r.get(column) is None]
        present.sort(key=lambda r: r[column], reverse=descending)
        rows = present + missing
    return rows


class InMemoryStore(PersistenceGateway):
    """Dict-backed store enforcing the shared table constraints."""

    def __init__(self):
        self.logger = get_logger("portal.persistence.memory")
        self._rows: Dict[str, Dict[int, Row]] = {name: {} for name in TABLES}
        self._next_id: Dict[str, int] = {name: 1 for name in TABLES}

    async def start(self):
        self.logger.info("In-memory store started")

    def _table(self, table: str) -> Tuple[TableSchema, Dict[int, Row]]:
        return get_table(table), self._rows[table]

    def _check_columns(self, schema: TableSchema, fields: Row):
        unknown = set(fields) - set(schema.columns)
        if unknown:
            raise ValueError(f"Unknown columns for {schema.name}: {sorted(unknown)}")

    def _check_unique(self, schema: TableSchema, rows: Dict[int, Row], candidate: Row):
        for constraint in schema.unique:
            if not constraint.applies_to(candidate):
                continue
            values = tuple(candidate.get(column) for column in constraint.columns)
            if any(value is None for value in values):
                continue
            for row_id, row in rows.items():
                if row_id == candidate.get("id") or not constraint.applies_to(row):
                    continue
                if tuple(row.get(column) for column in constraint.columns) == values:
                    raise ConflictError(
                        f"Duplicate value for {', '.join(constraint.columns)}",
                        constraint=constraint.name,
                    )

    def _check_foreign_keys(self, schema: TableSchema, candidate: Row):
        for fk in schema.foreign_keys:
            value = candidate.get(fk.column)
            if value is not None and value not in self._rows[fk.references]:
                raise ValidationError(
                    f"{fk.column} references a missing {fk.references} row",
                    details={"field": fk.column},
                )

    async def create(self, table: str, fields: Row) -> Row:
        schema, rows = self._table(table)
        self._check_columns(schema, fields)

        now = datetime.now(timezone.utc)
        row = {column: None for column in schema.columns}
        row.update({column: now for column in schema.timestamps})
        row.update({k: v for k, v in fields.items() if k != "id"})
        row["id"] = self._next_id[table]

        self._check_foreign_keys(schema, row)
        self._check_unique(schema, rows, row)

        rows[row["id"]] = row
        self._next_id[table] += 1
        return dict(row)

    async def find_by_id(self, table: str, row_id: int) -> Optional[Row]:
        _, rows = self._table(table)
        row = rows.get(row_id)
        return dict(row) if row is not None else None

    async def find_by_unique(self, table: str, key: Row) -> Optional[Row]:
        _, rows = self._table(table)
        for row in rows.values():
            if all(row.get(column) == value for column, value in key.items()):
                return dict(row)
        return None

    async def find_many(
        self,
        table: str,
        filter: Optional[Filter] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Row]:
        _, rows = self._table(table)
        matched = _sort([r for r in rows.values() if _matches(r, filter)], order_by)
        end = None if take is None else skip + take
        return [dict(r) for r in matched[skip:end]]

    async def count(self, table: str, filter: Optional[Filter] = None) -> int:
        _, rows = self._table(table)
        return sum(1 for r in rows.values() if _matches(r, filter))

    async def update(self, table: str, row_id: int, fields: Row) -> Optional[Row]:
        schema, rows = self._table(table)
        self._check_columns(schema, fields)
        current = rows.get(row_id)
        if current is None:
            return None

        candidate = dict(current)
        candidate.update({k: v for k, v in fields.items() if k != "id"})
        if "updated_at" in schema.timestamps:
            candidate["updated_at"] = datetime.now(timezone.utc)

        self._check_foreign_keys(schema, candidate)
        self._check_unique(schema, rows, candidate)

        rows[row_id] = candidate
        return dict(candidate)

    async def delete(self, table: str, row_id: int) -> bool:
        _, rows = self._table(table)
        if rows.pop(row_id, None) is None:
            return False

        # Cascade to dependants
        for child in TABLES.values():
            for fk in child.foreign_keys:
                if fk.references == table and fk.on_delete_cascade:
                    child_rows = self._rows[child.name]
                    for child_id in [i for i, r in child_rows.items() if r.get(fk.column) == row_id]:
                        await self.delete(child.name, child_id)
        return True

    async def upsert(self, table: str, unique_key: Row, create_fields: Row, update_fields: Row) -> Tuple[Row, bool]:
        existing = await self.find_by_unique(table, unique_key)
        if existing is None:
            return await self.create(table, {**create_fields, **unique_key}), True

        if not update_fields:
            return existing, False
        return await self.update(table, existing["id"], update_fields), False

    def reset(self):
        """Drop all rows (test helper)."""
        for name in TABLES:
            self._rows[name].clear()
            self._next_id[name] = 1
