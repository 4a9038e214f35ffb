"""
PostgreSQL persistence layer for the portal service.
"""

from contextlib import asynccontextmanager
from typing import Any, List, Optional, Tuple

import asyncpg

from shared.errors import ConflictError, PortalException, ValidationError
from shared.logging import get_logger
from .base import Filter, OrderBy, PersistenceGateway, Row, split_filter_key
from .schema import TableSchema, get_table


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS stations (
        id SERIAL PRIMARY KEY,
        code VARCHAR(64) NOT NULL,
        name VARCHAR(255) NOT NULL,
        river_name VARCHAR(255),
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT stations_code_key UNIQUE (code)
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS water_levels (
        id SERIAL PRIMARY KEY,
        station_id INTEGER NOT NULL REFERENCES stations(id) ON DELETE CASCADE,
        water_level DOUBLE PRECISION NOT NULL,
        measured_at TIMESTAMP WITH TIME ZONE NOT NULL,
        source VARCHAR(64),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT water_levels_station_measured_key UNIQUE (station_id, measured_at)
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_water_levels_measured_at ON water_levels(measured_at DESC);
    """,
    """
    CREATE TABLE IF NOT EXISTS users (
        id SERIAL PRIMARY KEY,
        email VARCHAR(255) NOT NULL,
        password_hash VARCHAR(255) NOT NULL,
        name VARCHAR(255) NOT NULL,
        role VARCHAR(32) NOT NULL,
        agency VARCHAR(32),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        CONSTRAINT users_email_key UNIQUE (email)
    );
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS users_master_admin_agency_key
        ON users(agency) WHERE role = 'MASTER_ADMIN';
    """,
    """
    CREATE TABLE IF NOT EXISTS infographics (
        id SERIAL PRIMARY KEY,
        title VARCHAR(255) NOT NULL,
        description TEXT,
        image_url TEXT NOT NULL,
        link_url TEXT,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        sort_order INTEGER NOT NULL DEFAULT 0,
        start_at TIMESTAMP WITH TIME ZONE,
        end_at TIMESTAMP WITH TIME ZONE,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS feedback (
        id SERIAL PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        email VARCHAR(255) NOT NULL,
        description TEXT NOT NULL,
        whatsapp VARCHAR(64) NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    );
    """,
]


def _where(schema: TableSchema, filter: Optional[Filter], start: int = 1) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    args: List[Any] = []
    for key, value in (filter or {}).items():
        column, op = split_filter_key(key)
        _check_column(schema, column)
        if op is None and value is None:
            clauses.append(f"{column} IS NULL")
            continue
        args.append(value)
        operator = {"gte": ">=", "lte": "<="}.get(op, "=")
        clauses.append(f"{column} {operator} ${start + len(args) - 1}")
    sql = " WHERE " + " AND ".join(clauses) if clauses else ""
    return sql, args


def _check_column(schema: TableSchema, column: str):
    # Column names are interpolated into SQL; only schema columns are allowed
    if column not in schema.columns:
        raise ValueError(f"Unknown column for {schema.name}: {column}")


class PostgresStore(PersistenceGateway):
    """asyncpg-backed store."""

    def __init__(self, dsn: str):
        self.dsn = dsn
        self.logger = get_logger("portal.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Start the persistence layer."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=2,
                max_size=10,
                command_timeout=30
            )
            await self._create_tables()
            self.logger.info("PostgreSQL persistence started")

        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL persistence", error=str(e))
            raise PortalException("POSTGRES_START_FAILED", str(e))

    async def stop(self):
        """Stop the persistence layer."""
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL persistence stopped")

    async def health_check(self) -> bool:
        if self.pool is None:
            return False
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.warning("PostgreSQL health check failed", error=str(e))
            return False

    async def _create_tables(self):
        """Create database tables."""
        async with self.pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)

    @asynccontextmanager
    async def _connection(self):
        """Acquire a connection, translating constraint violations."""
        if self.pool is None:
            raise PortalException("POSTGRES_NOT_STARTED", "PostgreSQL persistence is not started")
        async with self.pool.acquire() as conn:
            try:
                yield conn
            except asyncpg.UniqueViolationError as e:
                raise ConflictError(
                    e.detail or "Duplicate value",
                    constraint=e.constraint_name,
                ) from e
            except asyncpg.ForeignKeyViolationError as e:
                raise ValidationError(
                    e.detail or "Referenced row does not exist",
                    details={"constraint": e.constraint_name},
                ) from e

    def _fields(self, schema: TableSchema, fields: Row) -> Row:
        fields = {k: v for k, v in fields.items() if k != "id"}
        for column in fields:
            _check_column(schema, column)
        return fields

    async def create(self, table: str, fields: Row) -> Row:
        schema = get_table(table)
        fields = self._fields(schema, fields)
        columns = list(fields)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
                *fields.values()
            )
        return dict(row)

    async def find_by_id(self, table: str, row_id: int) -> Optional[Row]:
        get_table(table)
        async with self._connection() as conn:
            row = await conn.fetchrow(f"SELECT * FROM {table} WHERE id = $1", row_id)
        return dict(row) if row else None

    async def find_by_unique(self, table: str, key: Row) -> Optional[Row]:
        schema = get_table(table)
        where, args = _where(schema, key)
        async with self._connection() as conn:
            row = await conn.fetchrow(f"SELECT * FROM {table}{where} LIMIT 1", *args)
        return dict(row) if row else None

    async def find_many(
        self,
        table: str,
        filter: Optional[Filter] = None,
        skip: int = 0,
        take: Optional[int] = None,
        order_by: Optional[OrderBy] = None,
    ) -> List[Row]:
        schema = get_table(table)
        where, args = _where(schema, filter)

        ordering = []
        for column, direction in order_by or [("id", "asc")]:
            _check_column(schema, column)
            ordering.append(f"{column} {'DESC' if direction.lower() == 'desc' else 'ASC'} NULLS LAST")

        sql = f"SELECT * FROM {table}{where} ORDER BY {', '.join(ordering)}"
        if take is not None:
            args.append(take)
            sql += f" LIMIT ${len(args)}"
        if skip:
            args.append(skip)
            sql += f" OFFSET ${len(args)}"

        async with self._connection() as conn:
            rows = await conn.fetch(sql, *args)
        return [dict(r) for r in rows]

    async def count(self, table: str, filter: Optional[Filter] = None) -> int:
        schema = get_table(table)
        where, args = _where(schema, filter)
        async with self._connection() as conn:
            return await conn.fetchval(f"SELECT COUNT(*) FROM {table}{where}", *args)

    def _assignments(self, schema: TableSchema, fields: Row, start: int) -> str:
        assignments = [f"{column} = ${start + i}" for i, column in enumerate(fields)]
        if "updated_at" in schema.timestamps and "updated_at" not in fields:
            assignments.append("updated_at = NOW()")
        return ", ".join(assignments)

    async def update(self, table: str, row_id: int, fields: Row) -> Optional[Row]:
        schema = get_table(table)
        fields = self._fields(schema, fields)
        if not fields:
            return await self.find_by_id(table, row_id)

        sql = (
            f"UPDATE {table} SET {self._assignments(schema, fields, 2)} "
            f"WHERE id = $1 RETURNING *"
        )
        async with self._connection() as conn:
            row = await conn.fetchrow(sql, row_id, *fields.values())
        return dict(row) if row else None

    async def delete(self, table: str, row_id: int) -> bool:
        get_table(table)
        async with self._connection() as conn:
            result = await conn.execute(f"DELETE FROM {table} WHERE id = $1", row_id)
        return result.endswith(" 1")

    async def upsert(self, table: str, unique_key: Row, create_fields: Row, update_fields: Row) -> Tuple[Row, bool]:
        schema = get_table(table)
        constraint = schema.constraint_for(unique_key)
        if constraint is None:
            raise ValueError(f"No unique constraint on {table} for {sorted(unique_key)}")

        insert = self._fields(schema, {**create_fields, **unique_key})
        update = self._fields(schema, update_fields)
        columns = list(insert)
        placeholders = ", ".join(f"${i}" for i in range(1, len(columns) + 1))

        if update:
            assignments = self._assignments(schema, update, len(columns) + 1)
        else:
            # No-op update so RETURNING yields the existing row
            first = constraint.columns[0]
            assignments = f"{first} = EXCLUDED.{first}"

        sql = (
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT ({', '.join(constraint.columns)}) DO UPDATE SET {assignments} "
            f"RETURNING *, (xmax = 0) AS _inserted"
        )
        async with self._connection() as conn:
            row = await conn.fetchrow(sql, *insert.values(), *update.values())

        result = dict(row)
        created = bool(result.pop("_inserted"))
        return result, created
