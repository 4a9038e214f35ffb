"""
Rate limiting package for the portal.

Holds the in-process fixed-window limiter guarding the public feedback form.
"""

from .window import FixedWindowRateLimiter

__all__ = ["FixedWindowRateLimiter"]
