"""
Unit tests for shared logging processors and the metrics collector.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.logging import (
    add_correlation_context, clear_context, redact_sensitive, set_actor_context, set_request_id,
)
from shared.metrics import MetricsCollector


class TestLoggingProcessors:
    """Test cases for structlog processors."""

    @pytest.fixture(autouse=True)
    def reset_context(self):
        """Clear correlation context around each test."""
        clear_context()
        yield
        clear_context()

    def test_correlation_context(self):
        """Test request and actor fields are attached."""
        set_request_id("req-1")
        set_actor_context("2", "MASTER_ADMIN", "BBWS")

        event = add_correlation_context(None, "info", {"event": "Station created"})

        assert event["request_id"] == "req-1"
        assert event["actor_id"] == "2"
        assert event["actor_role"] == "MASTER_ADMIN"
        assert event["agency"] == "BBWS"

    def test_explicit_fields_win(self):
        """Test an event's own field is not overwritten by context."""
        set_actor_context("2", "MASTER_ADMIN", "BBWS")

        event = add_correlation_context(None, "info", {"event": "User created", "agency": "BMKG"})

        assert event["agency"] == "BMKG"

    def test_generated_request_id(self):
        """Test a request id is generated when none is sent."""
        assert set_request_id(None)
        assert set_request_id("") != ""

    def test_redaction(self):
        """Test secrets never reach the rendered event."""
        event = redact_sensitive(None, "info", {"event": "Login", "password": "secret123", "email": "a@b.io"})

        assert event["password"] == "[redacted]"
        assert event["email"] == "a@b.io"


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_isolated(self):
        """Test two collectors in one process do not clash."""
        first = MetricsCollector("portal")
        second = MetricsCollector("portal")

        first.increment_counter("sync_runs_total", outcome="success")

        assert first.registry.get_sample_value("sync_runs_total", {"outcome": "success"}) == 1.0
        assert second.registry.get_sample_value("sync_runs_total", {"outcome": "success"}) is None

    def test_increment_with_amount(self):
        """Test counters accept an explicit amount."""
        metrics = MetricsCollector("portal")

        metrics.increment_counter("sync_items_total", 3, kind="reading")

        assert metrics.registry.get_sample_value("sync_items_total", {"kind": "reading"}) == 3.0

    def test_unknown_metric_is_ignored(self):
        """Test unknown names are a no-op."""
        metrics = MetricsCollector("portal")

        metrics.increment_counter("does_not_exist")
        metrics.observe_histogram("does_not_exist", 1.0)

        assert metrics.get_metric("does_not_exist") is None
        assert metrics.get_metric("sync_duration_seconds") is not None

    def test_render(self):
        """Test Prometheus text exposition."""
        metrics = MetricsCollector("portal")
        metrics.record_http_request("GET", "/api/bbws/stations", 200, 0.01)

        assert b"http_requests_total" in metrics.render()
