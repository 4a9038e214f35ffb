"""
Unit tests for the feedback service and its rate limiter.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import AuthorizationDenied, RateLimitError, ValidationError
from service_portal.app.authz import Actor, Agency, AuthorizationEngine, Role
from service_portal.app.persistence import InMemoryStore
from service_portal.app.ratelimit import FixedWindowRateLimiter
from service_portal.app.services import FeedbackService


ADMIN = Actor(id=3, role=Role.ADMIN, tenant=Agency.BBWS)


def feedback_payload(**overrides):
    payload = {
        "name": "Warga",
        "email": "warga@example.org",
        "description": "Sensor at the bridge looks broken",
        "whatsapp": "+628123456789",
    }
    payload.update(overrides)
    return payload


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestFixedWindowRateLimiter:
    """Test cases for FixedWindowRateLimiter."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def limiter(self, clock):
        """Create limiter allowing 2 requests per minute."""
        return FixedWindowRateLimiter(2, 60, clock=clock)

    def test_allows_up_to_limit(self, limiter):
        """Test requests within the limit are allowed."""
        first = limiter.check_rate_limit("1.2.3.4", "feedback")
        second = limiter.check_rate_limit("1.2.3.4", "feedback")
        third = limiter.check_rate_limit("1.2.3.4", "feedback")

        assert first["allowed"] is True and first["remaining"] == 1
        assert second["allowed"] is True and second["remaining"] == 0
        assert third["allowed"] is False
        assert third["retry_after"] == 60

    def test_clients_are_independent(self, limiter):
        """Test each client has its own window."""
        limiter.check_rate_limit("a", "feedback")
        limiter.check_rate_limit("a", "feedback")

        assert limiter.check_rate_limit("b", "feedback")["allowed"] is True

    def test_window_resets(self, limiter, clock):
        """Test the budget refills after the window."""
        limiter.check_rate_limit("a", "feedback")
        limiter.check_rate_limit("a", "feedback")

        clock.now = 60.0

        assert limiter.check_rate_limit("a", "feedback")["allowed"] is True

    def test_expired_windows_are_evicted(self, limiter, clock):
        """Test windows of clients that never return are dropped."""
        for i in range(1000):
            limiter.check_rate_limit(f"10.0.{i // 256}.{i % 256}", "feedback")
        assert limiter.tracked_windows == 1000

        clock.now = 10000.0
        limiter.check_rate_limit("192.0.2.1", "feedback")

        assert limiter.tracked_windows == 1

    def test_sweep_keeps_live_windows(self, limiter, clock):
        """Test a sweep does not reset a client still inside its window."""
        limiter.check_rate_limit("old", "feedback")
        clock.now = 30.0
        limiter.check_rate_limit("a", "feedback")
        limiter.check_rate_limit("a", "feedback")

        clock.now = 61.0
        blocked = limiter.check_rate_limit("a", "feedback")

        assert blocked["allowed"] is False
        assert limiter.tracked_windows == 1

    def test_enforce_raises(self, limiter):
        """Test enforce raises RateLimitError with retry_after."""
        limiter.enforce("a", "feedback")
        limiter.enforce("a", "feedback")

        with pytest.raises(RateLimitError) as exc_info:
            limiter.enforce("a", "feedback")

        assert exc_info.value.status_code == 429
        assert exc_info.value.details["retry_after"] == 60

    def test_reset(self, limiter):
        """Test resetting a client's window."""
        limiter.enforce("a", "feedback")

        assert limiter.reset("a", "feedback") is True
        assert limiter.reset("a", "feedback") is False


class TestFeedbackService:
    """Test cases for FeedbackService."""

    @pytest.fixture
    def service(self):
        """Create FeedbackService with a 2-per-window limiter."""
        return FeedbackService(InMemoryStore(), AuthorizationEngine(), FixedWindowRateLimiter(2, 900))

    @pytest.mark.asyncio
    async def test_submit_feedback(self, service):
        """Test a complete submission is stored trimmed."""
        feedback = await service.submit_feedback(feedback_payload(name="  Warga  "), client_id="1.1.1.1")

        assert feedback["id"] == 1
        assert feedback["name"] == "Warga"
        assert feedback["created_at"] is not None

    @pytest.mark.asyncio
    async def test_missing_fields_listed(self, service):
        """Test every missing field is reported."""
        with pytest.raises(ValidationError) as exc_info:
            await service.submit_feedback(feedback_payload(whatsapp="", description=None))

        assert exc_info.value.details["missing"] == ["description", "whatsapp"]

    @pytest.mark.asyncio
    async def test_invalid_email(self, service):
        """Test email format is validated."""
        with pytest.raises(ValidationError):
            await service.submit_feedback(feedback_payload(email="warga"))

    @pytest.mark.asyncio
    async def test_rate_limit_counts_invalid_submissions(self, service):
        """Test the limit applies before validation."""
        await service.submit_feedback(feedback_payload(), client_id="9.9.9.9")
        with pytest.raises(ValidationError):
            await service.submit_feedback({}, client_id="9.9.9.9")

        with pytest.raises(RateLimitError):
            await service.submit_feedback(feedback_payload(), client_id="9.9.9.9")

    @pytest.mark.asyncio
    async def test_list_requires_admin(self, service):
        """Test anonymous callers cannot read feedback."""
        with pytest.raises(AuthorizationDenied):
            await service.list_feedback(None)

    @pytest.mark.asyncio
    async def test_list_newest_first(self, service):
        """Test any administrator lists newest first."""
        await service.submit_feedback(feedback_payload(name="First"))
        await service.submit_feedback(feedback_payload(name="Second"))

        items = await service.list_feedback(ADMIN)

        assert [i["name"] for i in items] == ["Second", "First"]
