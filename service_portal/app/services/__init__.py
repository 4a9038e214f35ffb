"""
Service layer.

Each service validates input, asks the authorization engine for a decision,
then reads through the cache or writes to storage and invalidates:

- stations: Gauge stations and water-level readings.
- users: Administrator accounts, login and bootstrap.
- infographics: Public infographic listings.
- feedback: Rate-limited public feedback box.
"""

from .feedback import FeedbackService
from .infographics import InfographicService
from .stations import StationService
from .users import UserService

__all__ = [
    "FeedbackService",
    "InfographicService",
    "StationService",
    "UserService",
]
