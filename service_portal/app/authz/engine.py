"""
Authorization engine for the portal service.

``authorize`` is a pure decision over (actor, action, target). The
``AuthorizationEngine`` wrapper adds logging, metrics and a raising
``require`` used by the service layer.
"""

from typing import Optional, TYPE_CHECKING

from shared.errors import AuthorizationDenied, NotFoundError, ValidationError
from shared.logging import get_logger
from .models import (
    Action, Actor, Decision, DenyReason, ExistingUserTarget,
    NewUserTarget, PUBLIC_RESOURCES, Resource, ResourceTarget, Role, Target,
)

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


def authorize(actor: Optional[Actor], action: Action, target: Target = None) -> Decision:
    """Decide whether actor may perform action on target.

    ``actor`` is None for anonymous callers. Deny carries a stable reason;
    Allow carries the normalized ``include_inactive`` flag and tenant.
    """
    if action in (Action.WRITE, Action.DELETE, Action.TRIGGER_SYNC):
        return _authorize_mutation(actor)

    if action == Action.READ:
        return _authorize_read(actor, target)

    if action == Action.CREATE_USER:
        if not isinstance(target, NewUserTarget):
            raise TypeError("create_user requires a NewUserTarget")
        return _authorize_create_user(actor, target)

    if action == Action.DELETE_USER:
        return _authorize_delete_user(actor, target)

    raise ValueError(f"Unknown action: {action}")


def _authorize_mutation(actor: Optional[Actor]) -> Decision:
    if actor is None or not actor.is_writer:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "Only SUPER_ADMIN or MASTER_ADMIN may modify data")
    return Decision.allow(tenant=actor.tenant)


def _authorize_read(actor: Optional[Actor], target: Target) -> Decision:
    if isinstance(target, ExistingUserTarget) or target is None:
        return _authorize_read_user(actor, target)

    if not isinstance(target, ResourceTarget):
        raise TypeError("read requires a ResourceTarget or ExistingUserTarget")

    if target.resource in PUBLIC_RESOURCES:
        # Unauthorized requests for inactive rows degrade to active-only
        include_inactive = bool(target.include_inactive and actor is not None and actor.is_writer)
        return Decision.allow(include_inactive=include_inactive, tenant=actor.tenant if actor else None)

    if actor is None:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "Authentication required")

    if target.resource == Resource.USER:
        # None means every tenant
        scope = None if actor.role is Role.SUPER_ADMIN else actor.tenant
        return Decision.allow(include_inactive=True, tenant=scope)

    return Decision.allow(include_inactive=True, tenant=actor.tenant)


def _authorize_read_user(actor: Optional[Actor], target: Optional[ExistingUserTarget]) -> Decision:
    if actor is None:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "Authentication required")
    if target is None:
        return Decision.deny(DenyReason.NOT_FOUND, "User not found")
    if actor.role is not Role.SUPER_ADMIN and target.tenant != actor.tenant:
        return Decision.deny(DenyReason.CROSS_TENANT, "User belongs to another agency")
    return Decision.allow(tenant=target.tenant)


def _authorize_create_user(actor: Optional[Actor], target: NewUserTarget) -> Decision:
    if actor is None:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "Authentication required")

    if target.role is Role.SUPER_ADMIN:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "SUPER_ADMIN accounts cannot be created")

    if actor.role is Role.SUPER_ADMIN:
        if target.tenant is None or not target.tenant.is_real:
            return Decision.deny(DenyReason.INVALID_TENANT, f"Agency is required for {target.role.value}")
        if target.role is Role.MASTER_ADMIN and target.tenant_has_master_admin:
            return Decision.deny(
                DenyReason.DUPLICATE_TENANT_ADMIN,
                f"Agency {target.tenant.value} already has a MASTER_ADMIN"
            )
        return Decision.allow(tenant=target.tenant)

    if actor.role is Role.MASTER_ADMIN:
        if target.role is not Role.ADMIN:
            return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "MASTER_ADMIN may only create ADMIN accounts")
        if target.tenant is None:
            return Decision.allow(tenant=actor.tenant)
        if target.tenant != actor.tenant:
            return Decision.deny(DenyReason.CROSS_TENANT, "MASTER_ADMIN may only create users in its own agency")
        return Decision.allow(tenant=actor.tenant)

    return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "ADMIN may not create users")


def _authorize_delete_user(actor: Optional[Actor], target: Target) -> Decision:
    if target is None:
        return Decision.deny(DenyReason.NOT_FOUND, "User not found")
    if not isinstance(target, ExistingUserTarget):
        raise TypeError("delete_user requires an ExistingUserTarget")

    if actor is None:
        return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "Authentication required")

    if actor.role is Role.SUPER_ADMIN:
        return Decision.allow(tenant=target.tenant)

    if actor.role is Role.MASTER_ADMIN:
        if target.role is not Role.ADMIN:
            return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "MASTER_ADMIN may only delete ADMIN accounts")
        if target.tenant != actor.tenant:
            return Decision.deny(DenyReason.CROSS_TENANT, "MASTER_ADMIN may only delete users in its own agency")
        return Decision.allow(tenant=actor.tenant)

    return Decision.deny(DenyReason.ROLE_INSUFFICIENT, "ADMIN may not delete users")


class AuthorizationEngine:
    """Authorization decisions with logging and metrics."""

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.logger = get_logger("portal.authz")
        self.metrics = metrics

    def decide(self, actor: Optional[Actor], action: Action, target: Target = None) -> Decision:
        """Evaluate and record a decision without raising."""
        decision = authorize(actor, action, target)

        outcome = "allow" if decision.allowed else decision.reason.value
        if self.metrics is not None:
            self.metrics.increment_counter("authz_decisions_total", action=action.value, decision=outcome)

        log = self.logger.debug if decision.allowed else self.logger.info
        log(
            "Authorization decision",
            action=action.value,
            actor_id=actor.id if actor else None,
            actor_role=actor.role.value if actor else None,
            actor_tenant=actor.tenant.value if actor and actor.tenant else None,
            decision=outcome,
        )
        return decision

    def require(self, actor: Optional[Actor], action: Action, target: Target = None) -> Decision:
        """Evaluate a decision and raise if it denies."""
        decision = self.decide(actor, action, target)
        if decision.allowed:
            return decision

        if decision.reason == DenyReason.NOT_FOUND:
            raise NotFoundError(decision.message or "Not found", details={"reason": decision.reason.value})
        if decision.reason == DenyReason.INVALID_TENANT:
            raise ValidationError(decision.message or "Invalid agency", details={"field": "agency"})
        raise AuthorizationDenied(decision.reason.value, decision.message)
