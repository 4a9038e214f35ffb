"""
Station and water-level service.

Reads go through the TTL cache; writes invalidate the listing namespaces
they touch. Authorization is decided before any storage access.
"""

from typing import Any, Dict, Optional

from shared.errors import ConflictError, NotFoundError, ValidationError
from shared.logging import get_logger
from ..authz import Action, Actor, AuthorizationEngine, Resource, ResourceTarget
from ..caching import (
    STATIONS_LIST_PREFIX, WATER_LEVELS_LIST_PREFIX, TtlCache,
    stations_list_key, water_levels_list_key,
)
from ..persistence import STATIONS, WATER_LEVELS, PersistenceGateway
from ..validation import (
    clean_text, is_number, normalize_limit, normalize_page, optional_number,
    parse_instant, require_instant, require_number, require_text,
)

STATION_SUMMARY_FIELDS = ("id", "code", "name", "river_name", "latitude", "longitude", "is_active")


def station_summary(station: Dict[str, Any]) -> Dict[str, Any]:
    return {field: station.get(field) for field in STATION_SUMMARY_FIELDS}


class StationService:
    """Stations and their water-level readings."""

    def __init__(
        self,
        store: PersistenceGateway,
        cache: TtlCache,
        authz: AuthorizationEngine,
        stations_list_ttl_ms: int = 60000,
        water_levels_list_ttl_ms: int = 10000,
    ):
        self.store = store
        self.cache = cache
        self.authz = authz
        self.stations_list_ttl_ms = stations_list_ttl_ms
        self.water_levels_list_ttl_ms = water_levels_list_ttl_ms
        self.logger = get_logger("portal.stations")

    # Stations

    def _station_fields(self, data: Dict[str, Any], partial: bool) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if not partial or "code" in data:
            fields["code"] = require_text(data, "code", min_length=2)
        if not partial or "name" in data:
            fields["name"] = require_text(data, "name", min_length=2)
        if "river_name" in data:
            fields["river_name"] = clean_text(data.get("river_name"))
        for field in ("latitude", "longitude"):
            if field in data:
                fields[field] = optional_number(data, field)
        if "is_active" in data and data["is_active"] is not None:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean", details={"field": "is_active"})
            fields["is_active"] = data["is_active"]
        return fields

    async def create_station(self, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.STATION))

        fields = self._station_fields(data, partial=False)
        fields.setdefault("is_active", True)

        try:
            station = await self.store.create(STATIONS, fields)
        except ConflictError as e:
            raise ConflictError("Station code is already registered", constraint=e.constraint) from e

        self.cache.delete_by_prefix(STATIONS_LIST_PREFIX)
        self.logger.info("Station created", station_id=station["id"], code=station["code"])
        return station

    async def list_stations(
        self,
        page: Any = 1,
        limit: Any = 20,
        include_inactive: bool = False,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        decision = self.authz.require(
            actor, Action.READ, ResourceTarget(Resource.STATION, include_inactive=include_inactive)
        )
        page = normalize_page(page)
        limit = normalize_limit(limit, default=20, maximum=100)
        include_inactive = decision.include_inactive

        async def load():
            filter = None if include_inactive else {"is_active": True}
            items = await self.store.find_many(
                STATIONS,
                filter=filter,
                skip=(page - 1) * limit,
                take=limit,
                order_by=[("name", "asc"), ("id", "asc")],
            )
            total = await self.store.count(STATIONS, filter)
            return {"items": items, "page": page, "limit": limit, "total": total}

        key = stations_list_key(include_inactive, page, limit)
        return await self.cache.get_or_set(key, self.stations_list_ttl_ms, load)

    async def get_station(
        self,
        station_id: int,
        include_inactive: bool = False,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        decision = self.authz.require(
            actor, Action.READ, ResourceTarget(Resource.STATION, include_inactive=include_inactive)
        )
        station = await self.store.find_by_id(STATIONS, station_id)
        if station is None or (not station["is_active"] and not decision.include_inactive):
            raise NotFoundError("Station not found", details={"station_id": station_id})
        return station

    async def update_station(self, station_id: int, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.STATION))

        if await self.store.find_by_id(STATIONS, station_id) is None:
            raise NotFoundError("Station not found", details={"station_id": station_id})

        fields = self._station_fields(data, partial=True)
        try:
            station = await self.store.update(STATIONS, station_id, fields)
        except ConflictError as e:
            raise ConflictError("Station code is already registered", constraint=e.constraint) from e
        if station is None:
            raise NotFoundError("Station not found", details={"station_id": station_id})

        self.cache.delete_by_prefix(STATIONS_LIST_PREFIX)
        self.logger.info("Station updated", station_id=station_id, fields=sorted(fields))
        return station

    async def delete_station(self, station_id: int, actor: Optional[Actor]):
        self.authz.require(actor, Action.DELETE, ResourceTarget(Resource.STATION))

        if not await self.store.delete(STATIONS, station_id):
            raise NotFoundError("Station not found", details={"station_id": station_id})

        # Readings cascade with the station
        self.cache.delete_by_prefix(STATIONS_LIST_PREFIX)
        self.cache.delete_by_prefix(WATER_LEVELS_LIST_PREFIX)
        self.logger.info("Station deleted", station_id=station_id)

    # Water levels

    async def _with_station(self, reading: Dict[str, Any]) -> Dict[str, Any]:
        station = await self.store.find_by_id(STATIONS, reading["station_id"])
        return {**reading, "station": station_summary(station) if station else None}

    async def _require_station(self, station_id: Any) -> Dict[str, Any]:
        if not is_number(station_id) or int(station_id) != station_id:
            raise ValidationError("station_id must be an integer", details={"field": "station_id"})
        station = await self.store.find_by_id(STATIONS, int(station_id))
        if station is None:
            raise NotFoundError("Station not found", details={"station_id": station_id})
        return station

    async def create_water_level(self, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.WATER_LEVEL))

        if data.get("station_id") is None or data.get("measured_at") is None:
            raise ValidationError("station_id, water_level and measured_at are required")
        water_level = require_number(data, "water_level")
        station = await self._require_station(data["station_id"])
        measured_at = require_instant(data, "measured_at")

        try:
            reading = await self.store.create(WATER_LEVELS, {
                "station_id": station["id"],
                "water_level": water_level,
                "measured_at": measured_at,
                "source": clean_text(data.get("source")),
            })
        except ConflictError as e:
            raise ConflictError(
                "A reading for this station and measured_at already exists",
                constraint=e.constraint
            ) from e

        self.cache.delete_by_prefix(WATER_LEVELS_LIST_PREFIX)
        self.logger.info("Water level created", reading_id=reading["id"], station_id=station["id"])
        return {**reading, "station": station_summary(station)}

    async def list_water_levels(
        self,
        page: Any = 1,
        limit: Any = 50,
        station_id: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> Dict[str, Any]:
        page = normalize_page(page)
        limit = normalize_limit(limit, default=50, maximum=200)

        filter: Dict[str, Any] = {}
        if station_id is not None:
            filter["station_id"] = station_id
        if date_from:
            parsed = parse_instant(date_from)
            if parsed is None:
                raise ValidationError("from is not a valid ISO-8601 date", details={"field": "from"})
            filter["measured_at__gte"] = parsed
        if date_to:
            parsed = parse_instant(date_to)
            if parsed is None:
                raise ValidationError("to is not a valid ISO-8601 date", details={"field": "to"})
            filter["measured_at__lte"] = parsed

        async def load():
            rows = await self.store.find_many(
                WATER_LEVELS,
                filter=filter,
                skip=(page - 1) * limit,
                take=limit,
                order_by=[("measured_at", "desc"), ("id", "desc")],
            )
            items = [await self._with_station(row) for row in rows]
            total = await self.store.count(WATER_LEVELS, filter)
            return {"items": items, "page": page, "limit": limit, "total": total}

        # Only the hot path (latest page, no window) is cached
        if page == 1 and not date_from and not date_to:
            key = water_levels_list_key(station_id, limit)
            return await self.cache.get_or_set(key, self.water_levels_list_ttl_ms, load)
        return await load()

    async def get_water_level(self, reading_id: int) -> Dict[str, Any]:
        reading = await self.store.find_by_id(WATER_LEVELS, reading_id)
        if reading is None:
            raise NotFoundError("Water level not found", details={"reading_id": reading_id})
        reading = await self._with_station(reading)
        if reading["station"] is None or not reading["station"]["is_active"]:
            raise NotFoundError("Water level not found", details={"reading_id": reading_id})
        return reading

    async def update_water_level(self, reading_id: int, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.WATER_LEVEL))

        if await self.store.find_by_id(WATER_LEVELS, reading_id) is None:
            raise NotFoundError("Water level not found", details={"reading_id": reading_id})

        fields: Dict[str, Any] = {}
        if data.get("measured_at") is not None:
            fields["measured_at"] = require_instant(data, "measured_at")
        if data.get("station_id") is not None:
            fields["station_id"] = (await self._require_station(data["station_id"]))["id"]
        if data.get("water_level") is not None:
            fields["water_level"] = require_number(data, "water_level")
        if "source" in data:
            fields["source"] = clean_text(data.get("source"))

        try:
            reading = await self.store.update(WATER_LEVELS, reading_id, fields)
        except ConflictError as e:
            raise ConflictError(
                "A reading for this station and measured_at already exists",
                constraint=e.constraint
            ) from e
        if reading is None:
            raise NotFoundError("Water level not found", details={"reading_id": reading_id})

        self.cache.delete_by_prefix(WATER_LEVELS_LIST_PREFIX)
        self.logger.info("Water level updated", reading_id=reading_id, fields=sorted(fields))
        return await self._with_station(reading)

    async def delete_water_level(self, reading_id: int, actor: Optional[Actor]):
        self.authz.require(actor, Action.DELETE, ResourceTarget(Resource.WATER_LEVEL))

        if not await self.store.delete(WATER_LEVELS, reading_id):
            raise NotFoundError("Water level not found", details={"reading_id": reading_id})

        self.cache.delete_by_prefix(WATER_LEVELS_LIST_PREFIX)
        self.logger.info("Water level deleted", reading_id=reading_id)
