"""
Feed synchronization package.

- feed_client: HTTP fetch of the external reading batch (httpx).
- job: Per-item validation, upserts, cache invalidation and the scheduler.
"""

from .feed_client import FeedClient, extract_items
from .job import SyncJob, SyncResult, SyncSchedule, resolve_interval_ms

__all__ = [
    "FeedClient",
    "SyncJob",
    "SyncResult",
    "SyncSchedule",
    "extract_items",
    "resolve_interval_ms",
]
