"""
Unit tests for the external feed client.
"""

import httpx
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import ExternalFetchError
from service_portal.app.sync import FeedClient, extract_items


FEED_URL = "http://feed.test/readings"


def client_for(handler) -> FeedClient:
    return FeedClient(FEED_URL, timeout_ms=1000, transport=httpx.MockTransport(handler))


class TestExtractItems:
    """Test cases for payload shape handling."""

    def test_top_level_list(self):
        assert extract_items([{"a": 1}]) == [{"a": 1}]

    def test_items_wrapper(self):
        assert extract_items({"items": [1, 2]}) == [1, 2]

    @pytest.mark.parametrize("payload", [None, {}, {"items": "nope"}, {"data": []}, "text", 42])
    def test_other_shapes_are_empty(self, payload):
        """Test unrecognized payloads yield no items."""
        assert extract_items(payload) == []


class TestFeedClient:
    """Test cases for FeedClient."""

    @pytest.mark.asyncio
    async def test_fetch_list(self):
        """Test a JSON array body is returned as items."""
        items = [{"stationCode": "S1", "waterLevel": 1.0, "measuredAt": "2024-01-01T00:00:00Z"}]

        def handler(request: httpx.Request) -> httpx.Response:
            assert str(request.url) == FEED_URL
            assert request.headers["accept"] == "application/json"
            return httpx.Response(200, json=items)

        assert await client_for(handler).fetch() == items

    @pytest.mark.asyncio
    async def test_fetch_items_wrapper(self):
        """Test the {"items": [...]} body shape."""
        client = client_for(lambda request: httpx.Response(200, json={"items": [{"x": 1}]}))

        assert await client.fetch() == [{"x": 1}]

    @pytest.mark.asyncio
    async def test_fetch_unrecognized_shape_is_empty(self):
        """Test an object without items is an empty batch."""
        client = client_for(lambda request: httpx.Response(200, json={"status": "ok"}))

        assert await client.fetch() == []

    @pytest.mark.asyncio
    async def test_non_2xx_raises(self):
        """Test error statuses become ExternalFetchError."""
        client = client_for(lambda request: httpx.Response(503, text="maintenance"))

        with pytest.raises(ExternalFetchError) as exc_info:
            await client.fetch()

        assert exc_info.value.details["status_code"] == 503
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        """Test a non-JSON body becomes ExternalFetchError."""
        client = client_for(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(ExternalFetchError):
            await client.fetch()

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        """Test timeouts become ExternalFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ExternalFetchError) as exc_info:
            await client_for(handler).fetch()

        assert "timed out" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_connection_error_raises(self):
        """Test network failures become ExternalFetchError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(ExternalFetchError):
            await client_for(handler).fetch()
