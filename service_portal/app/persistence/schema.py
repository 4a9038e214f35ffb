"""
Table definitions shared by the storage adapters.

The in-memory store enforces the same unique constraints, foreign keys and
cascades the PostgreSQL DDL declares, so services see identical conflict
signals from both.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


STATIONS = "stations"
WATER_LEVELS = "water_levels"
USERS = "users"
INFOGRAPHICS = "infographics"
FEEDBACK = "feedback"


@dataclass(frozen=True)
class UniqueConstraint:
    """A (possibly partial) unique constraint.

    ``where`` restricts the constraint to rows whose columns equal the given
    values, mirroring a PostgreSQL partial unique index.
    """
    name: str
    columns: Tuple[str, ...]
    where: Dict[str, Any] = field(default_factory=dict)

    def applies_to(self, row: Dict[str, Any]) -> bool:
        return all(row.get(column) == value for column, value in self.where.items())


@dataclass(frozen=True)
class ForeignKey:
    """A reference from ``column`` to ``references``.id."""
    column: str
    references: str
    on_delete_cascade: bool = True


@dataclass(frozen=True)
class TableSchema:
    name: str
    columns: Tuple[str, ...]
    unique: Tuple[UniqueConstraint, ...] = ()
    foreign_keys: Tuple[ForeignKey, ...] = ()
    # Columns maintained by the store on create/update
    timestamps: Tuple[str, ...] = ("created_at",)

    def constraint(self, name: str) -> Optional[UniqueConstraint]:
        for constraint in self.unique:
            if constraint.name == name:
                return constraint
        return None

    def constraint_for(self, columns) -> Optional[UniqueConstraint]:
        """Find the unique constraint covering exactly ``columns``."""
        wanted = set(columns)
        for constraint in self.unique:
            if set(constraint.columns) == wanted:
                return constraint
        return None


TABLES: Dict[str, TableSchema] = {
    STATIONS: TableSchema(
        name=STATIONS,
        columns=(
            "id", "code", "name", "river_name", "latitude", "longitude",
            "is_active", "created_at", "updated_at",
        ),
        unique=(UniqueConstraint("stations_code_key", ("code",)),),
        timestamps=("created_at", "updated_at"),
    ),
    WATER_LEVELS: TableSchema(
        name=WATER_LEVELS,
        columns=("id", "station_id", "water_level", "measured_at", "source", "created_at"),
        unique=(UniqueConstraint("water_levels_station_measured_key", ("station_id", "measured_at")),),
        foreign_keys=(ForeignKey("station_id", STATIONS),),
    ),
    USERS: TableSchema(
        name=USERS,
        columns=("id", "email", "password_hash", "name", "role", "agency", "created_at"),
        unique=(
            UniqueConstraint("users_email_key", ("email",)),
            UniqueConstraint("users_master_admin_agency_key", ("agency",), where={"role": "MASTER_ADMIN"}),
        ),
    ),
    INFOGRAPHICS: TableSchema(
        name=INFOGRAPHICS,
        columns=(
            "id", "title", "description", "image_url", "link_url", "is_active",
            "sort_order", "start_at", "end_at", "created_at", "updated_at",
        ),
        timestamps=("created_at", "updated_at"),
    ),
    FEEDBACK: TableSchema(
        name=FEEDBACK,
        columns=("id", "name", "email", "description", "whatsapp", "created_at"),
    ),
}


def get_table(name: str) -> TableSchema:
    try:
        return TABLES[name]
    except KeyError:
        raise ValueError(f"Unknown table: {name}") from None
