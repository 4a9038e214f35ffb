"""
Read-through caching for the portal service.
"""

from .ttl_cache import CacheEntry, TtlCache
from .keys import (
    INFOGRAPHIC_ACTIVE_PREFIX,
    INFOGRAPHICS_LIST_PREFIX,
    STATIONS_LIST_PREFIX,
    WATER_LEVELS_LIST_PREFIX,
    infographic_active_key,
    infographics_list_key,
    stations_list_key,
    water_levels_list_key,
)

__all__ = [
    "CacheEntry",
    "TtlCache",
    "INFOGRAPHIC_ACTIVE_PREFIX",
    "INFOGRAPHICS_LIST_PREFIX",
    "STATIONS_LIST_PREFIX",
    "WATER_LEVELS_LIST_PREFIX",
    "infographic_active_key",
    "infographics_list_key",
    "stations_list_key",
    "water_levels_list_key",
]
