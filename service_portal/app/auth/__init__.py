"""
Authentication helpers for the portal service.
"""

from .middleware import BearerAuthenticator
from .passwords import hash_password, verify_password
from .tokens import TokenService

__all__ = [
    "BearerAuthenticator",
    "TokenService",
    "hash_password",
    "verify_password",
]
