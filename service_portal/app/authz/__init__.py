"""
Authorization package.

Role and tenant rules for the portal. Every service-layer operation asks the
engine for a decision before touching storage.

Modules of interest:
- models: Role, Agency, Actor, targets and the Decision value.
- engine: The pure ``authorize`` function and the logging/metrics wrapper.
"""

from .engine import AuthorizationEngine, authorize
from .models import (
    Action, Actor, Agency, Decision, DenyReason, ExistingUserTarget,
    NewUserTarget, Resource, ResourceTarget, Role, parse_agency, parse_role,
)

__all__ = [
    "AuthorizationEngine",
    "authorize",
    "Action",
    "Actor",
    "Agency",
    "Decision",
    "DenyReason",
    "ExistingUserTarget",
    "NewUserTarget",
    "Resource",
    "ResourceTarget",
    "Role",
    "parse_agency",
    "parse_role",
]
