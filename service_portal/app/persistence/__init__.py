"""
Persistence package.

A table-oriented gateway with two adapters sharing one schema definition:

- memory: In-process store used by default and by the tests.
- postgres: asyncpg pool with DDL created at start.
"""

from typing import Optional

from .base import PersistenceGateway
from .memory import InMemoryStore
from .schema import FEEDBACK, INFOGRAPHICS, STATIONS, USERS, WATER_LEVELS


def create_store(postgres_dsn: Optional[str] = None) -> PersistenceGateway:
    """Pick the PostgreSQL adapter when a DSN is configured."""
    if postgres_dsn:
        from .postgres import PostgresStore
        return PostgresStore(postgres_dsn)
    return InMemoryStore()


__all__ = [
    "PersistenceGateway",
    "InMemoryStore",
    "create_store",
    "FEEDBACK",
    "INFOGRAPHICS",
    "STATIONS",
    "USERS",
    "WATER_LEVELS",
]
