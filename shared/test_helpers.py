"""
Test helper functions and factory methods for the River Monitoring Portal.
"""

import time
from typing import Dict, Any, Optional, List
from dataclasses import dataclass
import jwt


@dataclass
class SeedUser:
    """Administrator fixture data."""
    user_id: int
    email: str
    name: str
    role: str
    agency: Optional[str]
    password: str = "password123"


class PortalDataFactory:
    """Factory for creating test data."""

    @staticmethod
    def create_admin_users() -> List[SeedUser]:
        """One administrator per role, MASTER_ADMIN/ADMIN in BBWS."""
        return [
            SeedUser(
                user_id=1,
                email="superadmin@system.com",
                name="Super Admin",
                role="SUPER_ADMIN",
                agency="SYSTEM"
            ),
            SeedUser(
                user_id=2,
                email="master@bbws.go.id",
                name="BBWS Master",
                role="MASTER_ADMIN",
                agency="BBWS"
            ),
            SeedUser(
                user_id=3,
                email="admin@bbws.go.id",
                name="BBWS Admin",
                role="ADMIN",
                agency="BBWS"
            )
        ]

    @staticmethod
    def create_feed_item(
        station_code: str = "S1",
        water_level: Any = 12.5,
        measured_at: Any = "2024-01-01T00:00:00Z",
        **extra: Any
    ) -> Dict[str, Any]:
        """Build one external feed item in the feed's camelCase shape."""
        item = {
            "stationCode": station_code,
            "waterLevel": water_level,
            "measuredAt": measured_at,
        }
        item.update(extra)
        return item

    @staticmethod
    def create_feed_batch() -> List[Dict[str, Any]]:
        """A mixed batch: two valid readings and three invalid items."""
        return [
            PortalDataFactory.create_feed_item(
                "KRG-01",
                1.75,
                "2024-03-01T06:00:00Z",
                stationName="Karang Anyar",
                riverName="Ciliwung",
                latitude=-6.2,
                longitude=106.8,
                source="TELEMETRY"
            ),
            PortalDataFactory.create_feed_item("KRG-02", 2.1, "2024-03-01T06:00:00+07:00"),
            PortalDataFactory.create_feed_item("   ", 1.0),
            PortalDataFactory.create_feed_item("KRG-03", "high"),
            PortalDataFactory.create_feed_item("KRG-04", 3.3, "not-a-date"),
        ]

    @staticmethod
    def create_station_payload(code: str = "STA-01", name: str = "Station One", **extra: Any) -> Dict[str, Any]:
        payload = {"code": code, "name": name, "river_name": "Citarum", "latitude": -6.9, "longitude": 107.6}
        payload.update(extra)
        return payload

    @staticmethod
    def create_infographic_payload(title: str = "Flood season", **extra: Any) -> Dict[str, Any]:
        payload = {
            "title": title,
            "description": "Monthly rainfall outlook",
            "image_url": "https://cdn.example.org/infographics/flood.png",
            "link_url": "https://example.org/flood",
            "sort_order": 0,
        }
        payload.update(extra)
        return payload


class MockTokenGenerator:
    """Generate HS256 tokens shaped like the ones the portal issues."""

    def __init__(self, secret: str = "test-secret"):
        self.secret = secret

    def generate_access_token(self, user: SeedUser, expires_in: int = 3600) -> str:
        """Generate access token for user."""
        now = int(time.time())
        payload = {
            "sub": str(user.user_id),
            "id": user.user_id,
            "email": user.email,
            "role": user.role,
            "agency": user.agency,
            "iat": now,
            "exp": now + expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm="HS256")

    def auth_header(self, user: SeedUser, expires_in: int = 3600) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.generate_access_token(user, expires_in)}"}


class TestEnvironment:
    """Test environment configuration."""

    @staticmethod
    def get_mock_config() -> Dict[str, Any]:
        """Get mock environment configuration."""
        return {
            "PORTAL_ENV": "test",
            "PORTAL_LOG_LEVEL": "debug",
            "PORTAL_JWT_SECRET": "test-secret",
            "PORTAL_BCRYPT_ROUNDS": "4",
            "PORTAL_FEED_URL": "http://feed.test/readings",
            "PORTAL_SYNC_ENABLED": "false",
        }


# Global instances for easy access
portal_data_factory = PortalDataFactory()
mock_token_generator = MockTokenGenerator()
