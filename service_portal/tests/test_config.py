"""
Unit tests for environment-driven configuration.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import get_config
from shared import test_helpers


class TestConfig:
    """Test cases for ServiceConfig."""

    def test_defaults(self, monkeypatch):
        """Test defaults without PORTAL_* variables."""
        for name in list(os.environ):
            if name.startswith("PORTAL_"):
                monkeypatch.delenv(name)

        config = get_config("portal", 8000)

        assert config.postgres_dsn is None
        assert config.feed_url is None
        assert config.sync_enabled is False
        assert config.sync_interval_ms == 300000
        assert config.stations_list_ttl_ms == 60000
        assert config.water_levels_list_ttl_ms == 10000
        assert config.infographics_list_ttl_ms == 30000
        assert config.cors_origin_list == ["*"]
        assert config.is_production is False

    def test_environment_overrides(self, monkeypatch):
        """Test PORTAL_* variables are read."""
        for name, value in test_helpers.TestEnvironment.get_mock_config().items():
            monkeypatch.setenv(name, value)
        monkeypatch.setenv("PORTAL_CORS_ORIGINS", "https://portal.example.org, https://admin.example.org")

        config = get_config("portal", 8000)

        assert config.env == "test"
        assert config.jwt_secret == "test-secret"
        assert config.bcrypt_rounds == 4
        assert config.feed_url == "http://feed.test/readings"
        assert config.cors_origin_list == ["https://portal.example.org", "https://admin.example.org"]

    def test_keyword_overrides_win(self, monkeypatch):
        """Test explicit overrides beat the environment."""
        monkeypatch.setenv("PORTAL_JWT_SECRET", "from-env")

        config = get_config("portal", 8000, jwt_secret="explicit")

        assert config.jwt_secret == "explicit"
        assert config.service_name == "portal"
        assert config.port == 8000

    def test_bcrypt_rounds_lower_bound(self):
        """Test an unsafe bcrypt cost is rejected."""
        with pytest.raises(ValueError):
            get_config("portal", 8000, bcrypt_rounds=2)
