"""
Request models for the portal API.

Models only shape the payload; field rules (lengths, URL and date formats,
finiteness) are enforced by the services so they apply to every caller.
Update models are applied with ``model_dump(exclude_unset=True)``.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class RequestModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    def changes(self) -> Dict[str, Any]:
        """Fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class LoginRequest(RequestModel):
    email: Optional[str] = None
    password: Optional[str] = None


class UserCreateRequest(RequestModel):
    email: Optional[str] = None
    password: Optional[str] = None
    name: Optional[str] = None
    role: Optional[str] = None
    agency: Optional[str] = None


class StationCreateRequest(RequestModel):
    code: Optional[str] = None
    name: Optional[str] = None
    river_name: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: Optional[bool] = None


class StationUpdateRequest(StationCreateRequest):
    pass


class WaterLevelCreateRequest(RequestModel):
    station_id: Optional[int] = None
    water_level: Optional[float] = None
    measured_at: Optional[str] = None
    source: Optional[str] = None


class WaterLevelUpdateRequest(WaterLevelCreateRequest):
    pass


class InfographicCreateRequest(RequestModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    link_url: Optional[str] = None
    is_active: Optional[bool] = None
    sort_order: Optional[int] = None
    start_at: Optional[str] = None
    end_at: Optional[str] = None


class InfographicUpdateRequest(InfographicCreateRequest):
    pass


class FeedbackCreateRequest(RequestModel):
    name: Optional[str] = None
    email: Optional[str] = None
    description: Optional[str] = None
    whatsapp: Optional[str] = None
