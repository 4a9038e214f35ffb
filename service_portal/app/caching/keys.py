"""
Cache namespaces and key builders shared by readers, writers and the sync job.

Every listing key starts with its ``*_LIST_PREFIX`` so a single
``delete_by_prefix`` drops all filter/page variants.
"""

from typing import Optional

STATIONS_LIST_PREFIX = "stations:list:"
WATER_LEVELS_LIST_PREFIX = "water-levels:list:"
INFOGRAPHICS_LIST_PREFIX = "infographics:list:"
INFOGRAPHIC_ACTIVE_PREFIX = "infographics:id:active:"


def _visibility(include_inactive: bool) -> str:
    return "all" if include_inactive else "active"


def stations_list_key(include_inactive: bool, page: int, limit: int) -> str:
    return f"{STATIONS_LIST_PREFIX}{_visibility(include_inactive)}:{page}:{limit}"


def water_levels_list_key(station_id: Optional[int], limit: int) -> str:
    station = "all" if station_id is None else station_id
    return f"{WATER_LEVELS_LIST_PREFIX}{station}:{limit}"


def infographics_list_key(include_inactive: bool, page: int, limit: int) -> str:
    return f"{INFOGRAPHICS_LIST_PREFIX}{_visibility(include_inactive)}:{page}:{limit}"


def infographic_active_key(infographic_id: int) -> str:
    return f"{INFOGRAPHIC_ACTIVE_PREFIX}{infographic_id}"
