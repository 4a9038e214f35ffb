"""
Integration tests for the feed sync flow through the HTTP API.
"""

import pytest
import httpx

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared.test_helpers import mock_token_generator, portal_data_factory
from service_portal.app.main import PortalService


class FeedServer:
    """In-process stand-in for the external water-level feed."""

    def __init__(self):
        self.items = []
        self.status_code = 200
        self.requests = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests += 1
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="unavailable")
        return httpx.Response(200, json=self.items)


class TestSyncFlow:
    """Feed -> sync -> cached listings."""

    @pytest.fixture
    def feed(self):
        """Create feed stand-in."""
        return FeedServer()

    @pytest.fixture
    def service(self, feed):
        """Create PortalService wired to the feed stand-in."""
        config = get_config(
            "portal",
            8000,
            jwt_secret="test-secret",
            bcrypt_rounds=4,
            feed_url="http://feed.test/readings",
        )
        return PortalService(config=config, feed_transport=httpx.MockTransport(feed.handle))

    @pytest.fixture
    def admin_headers(self):
        """Authorization header for the BBWS MASTER_ADMIN."""
        return mock_token_generator.auth_header(portal_data_factory.create_admin_users()[1])

    def client_for(self, service):
        return httpx.AsyncClient(transport=httpx.ASGITransport(app=service.app), base_url="http://portal.test")

    @pytest.mark.asyncio
    async def test_sync_refreshes_cached_listings(self, service, feed, admin_headers):
        """Test a sync makes new stations visible despite a warm cache."""
        async with self.client_for(service) as client:
            before = (await client.get("/api/bbws/stations")).json()
            assert before["total"] == 0

            feed.items = portal_data_factory.create_feed_batch()
            result = (await client.post("/api/bbws/sync", headers=admin_headers)).json()
            assert result == {"stations_upserted": 2, "readings_upserted": 2, "skipped": 3, "total": 5}

            stations = (await client.get("/api/bbws/stations")).json()
            assert sorted(s["code"] for s in stations["items"]) == ["KRG-01", "KRG-02"]

            readings = (await client.get("/api/bbws/water-levels")).json()
            assert readings["total"] == 2

    @pytest.mark.asyncio
    async def test_failed_sync_keeps_previous_state(self, service, feed, admin_headers):
        """Test a feed outage reports 502 and leaves data and cache intact."""
        async with self.client_for(service) as client:
            feed.items = [portal_data_factory.create_feed_item()]
            await client.post("/api/bbws/sync", headers=admin_headers)
            cached = (await client.get("/api/bbws/water-levels")).json()

            feed.status_code = 503
            failed = await client.post("/api/bbws/sync", headers=admin_headers)
            assert failed.status_code == 502

            assert (await client.get("/api/bbws/water-levels")).json() == cached
            assert service.cache.stats()["hits"] >= 1

    @pytest.mark.asyncio
    async def test_repeated_sync_is_stable(self, service, feed, admin_headers):
        """Test re-syncing an unchanged feed keeps one reading per instant."""
        feed.items = [portal_data_factory.create_feed_item("S1", 12.5)]

        async with self.client_for(service) as client:
            for _ in range(3):
                response = await client.post("/api/bbws/sync", headers=admin_headers)
                assert response.status_code == 200

            readings = (await client.get("/api/bbws/water-levels")).json()

        assert feed.requests == 3
        assert readings["total"] == 1
        assert readings["items"][0]["water_level"] == 12.5

    @pytest.mark.asyncio
    async def test_admin_deactivation_survives_sync(self, service, feed, admin_headers):
        """Test the sync never re-activates a station an admin hid."""
        feed.items = [portal_data_factory.create_feed_item()]

        async with self.client_for(service) as client:
            await client.post("/api/bbws/sync", headers=admin_headers)
            station = (await client.get("/api/bbws/stations")).json()["items"][0]

            await client.put(f"/api/bbws/stations/{station['id']}", json={"is_active": False}, headers=admin_headers)
            await client.post("/api/bbws/sync", headers=admin_headers)

            public = (await client.get("/api/bbws/stations")).json()

        assert public["total"] == 0
