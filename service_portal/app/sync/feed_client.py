"""
External water-level feed client.
"""

from typing import Any, List, Optional

import httpx

from shared.errors import ExternalFetchError
from shared.logging import get_logger


def extract_items(payload: Any) -> List[Any]:
    """Accept a top-level array or ``{"items": [...]}``; anything else is empty."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("items"), list):
        return payload["items"]
    return []


class FeedClient:
    """Fetches the raw reading batch from the configured feed URL."""

    def __init__(
        self,
        url: str,
        timeout_ms: int = 15000,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = max(timeout_ms, 1) / 1000.0
        # Injected by tests (httpx.MockTransport)
        self.transport = transport
        self.logger = get_logger("portal.sync.feed")

    async def fetch(self) -> List[Any]:
        """Fetch and decode one batch.

        Raises ExternalFetchError on timeout, network failure, non-2xx status
        or a body that is not JSON.
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.url, headers={"Accept": "application/json"})
        except httpx.TimeoutException as exc:
            self.logger.error("Feed request timed out", url=self.url, timeout_s=self.timeout)
            raise ExternalFetchError("Request timed out", details={"url": self.url}) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Feed request failed", url=self.url, error=str(exc))
            raise ExternalFetchError(str(exc) or "Request failed", details={"url": self.url}) from exc

        if not response.is_success:
            self.logger.error(
                "Feed returned an error status",
                url=self.url,
                status_code=response.status_code,
            )
            raise ExternalFetchError(
                f"Unexpected status {response.status_code}",
                details={"url": self.url, "status_code": response.status_code}
            )

        try:
            payload = response.json()
        except ValueError as exc:
            self.logger.error("Feed returned invalid JSON", url=self.url)
            raise ExternalFetchError("Invalid JSON body", details={"url": self.url}) from exc

        items = extract_items(payload)
        self.logger.debug("Feed batch fetched", url=self.url, items=len(items))
        return items
