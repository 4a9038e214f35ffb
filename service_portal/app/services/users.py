"""
Administrator accounts: creation, deletion, directory and login.
"""

import asyncio
from typing import Any, Dict, List, Optional

from shared.errors import AuthenticationError, AuthorizationDenied, ConflictError, ValidationError
from shared.logging import get_logger
from ..auth import TokenService, hash_password, verify_password
from ..authz import (
    Action, Actor, Agency, AuthorizationEngine, DenyReason, ExistingUserTarget,
    NewUserTarget, Resource, ResourceTarget, Role, parse_agency, parse_role,
)
from ..persistence import USERS, PersistenceGateway
from ..validation import require_text, validate_email, validate_password

MASTER_ADMIN_CONSTRAINT = "users_master_admin_agency_key"

PUBLIC_USER_FIELDS = ("id", "email", "name", "role", "agency", "created_at")


def public_user(row: Dict[str, Any]) -> Dict[str, Any]:
    """Strip the password hash from a user row."""
    return {field: row.get(field) for field in PUBLIC_USER_FIELDS}


def _existing_target(row: Optional[Dict[str, Any]]) -> Optional[ExistingUserTarget]:
    if row is None:
        return None
    return ExistingUserTarget(
        id=row["id"],
        role=parse_role(row["role"]),
        tenant=parse_agency(row.get("agency")),
    )


class UserService:
    """User management on behalf of authenticated administrators."""

    def __init__(
        self,
        store: PersistenceGateway,
        authz: AuthorizationEngine,
        tokens: TokenService,
        bcrypt_rounds: int = 12,
    ):
        self.store = store
        self.authz = authz
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds
        self.logger = get_logger("portal.users")

    async def _hash(self, password: str) -> str:
        # bcrypt is CPU bound; keep it off the event loop
        return await asyncio.to_thread(hash_password, password, self.bcrypt_rounds)

    async def create_user(self, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        """Create an administrator account.

        Email uniqueness is left to the store's unique constraint; its
        ConflictError is passed on with the constraint name.
        """
        if not data.get("email") or not data.get("password") or not data.get("name") or not data.get("role"):
            raise ValidationError("email, password, name and role are required")

        email = validate_email(data.get("email"))
        password = validate_password(data.get("password"))
        name = require_text(data, "name")

        role = parse_role(data.get("role"))
        if role is None:
            raise ValidationError(
                "role must be one of SUPER_ADMIN, MASTER_ADMIN, ADMIN",
                details={"field": "role"}
            )

        requested_tenant = None
        if data.get("agency") is not None:
            requested_tenant = parse_agency(data.get("agency"))
            if requested_tenant is None:
                raise ValidationError(
                    f"agency must be one of {', '.join(a.value for a in Agency if a.is_real)}",
                    details={"field": "agency"}
                )

        has_master_admin = False
        if role is Role.MASTER_ADMIN and requested_tenant is not None:
            existing = await self.store.find_by_unique(
                USERS, {"role": Role.MASTER_ADMIN.value, "agency": requested_tenant.value}
            )
            has_master_admin = existing is not None

        decision = self.authz.require(
            actor,
            Action.CREATE_USER,
            NewUserTarget(role=role, tenant=requested_tenant, tenant_has_master_admin=has_master_admin),
        )

        try:
            user = await self.store.create(USERS, {
                "email": email,
                "password_hash": await self._hash(password),
                "name": name,
                "role": role.value,
                "agency": decision.tenant.value,
            })
        except ConflictError as e:
            if e.constraint == MASTER_ADMIN_CONSTRAINT:
                # Lost a race with a concurrent MASTER_ADMIN creation
                self.logger.info("Duplicate MASTER_ADMIN rejected by store", agency=decision.tenant.value)
                raise AuthorizationDenied(
                    DenyReason.DUPLICATE_TENANT_ADMIN.value,
                    f"Agency {decision.tenant.value} already has a MASTER_ADMIN"
                ) from e
            raise ConflictError("Email is already registered", constraint=e.constraint) from e

        self.logger.info(
            "User created",
            user_id=user["id"],
            role=user["role"],
            agency=user["agency"],
            created_by=actor.id,
        )
        return public_user(user)

    async def delete_user(self, user_id: int, actor: Optional[Actor]):
        # Existence is checked before permission
        target = _existing_target(await self.store.find_by_id(USERS, user_id))
        self.authz.require(actor, Action.DELETE_USER, target)

        await self.store.delete(USERS, user_id)
        self.logger.info("User deleted", user_id=user_id, deleted_by=actor.id)

    async def list_users(self, actor: Optional[Actor]) -> List[Dict[str, Any]]:
        decision = self.authz.require(actor, Action.READ, ResourceTarget(Resource.USER))
        filter = None if decision.tenant is None else {"agency": decision.tenant.value}
        rows = await self.store.find_many(USERS, filter=filter, order_by=[("id", "asc")])
        return [public_user(row) for row in rows]

    async def get_user(self, user_id: int, actor: Optional[Actor]) -> Dict[str, Any]:
        row = await self.store.find_by_id(USERS, user_id)
        self.authz.require(actor, Action.READ, _existing_target(row))
        return public_user(row)

    async def login(self, email: Any, password: Any) -> Dict[str, Any]:
        """Verify credentials and issue an access token."""
        if not email or not password:
            raise ValidationError("email and password are required")

        user = await self.store.find_by_unique(USERS, {"email": str(email).strip()})
        if user is None or not isinstance(password, str):
            self.logger.info("Login rejected", reason="unknown_email")
            raise AuthenticationError("Invalid email or password")

        valid = await asyncio.to_thread(verify_password, password, user["password_hash"])
        if not valid:
            self.logger.info("Login rejected", reason="bad_password", user_id=user["id"])
            raise AuthenticationError("Invalid email or password")

        self.logger.info("Login succeeded", user_id=user["id"], role=user["role"])
        return {
            "user": public_user(user),
            "token": self.tokens.issue(user),
            "token_type": "Bearer",
            "expires_in": self.tokens.expire_seconds,
        }

    async def ensure_super_admin(self, email: str, password: str, name: str = "Super Admin") -> Dict[str, Any]:
        """Create the SUPER_ADMIN account unless the email already exists."""
        email = validate_email(email)
        existing = await self.store.find_by_unique(USERS, {"email": email})
        if existing is not None:
            self.logger.info("Super admin already exists", user_id=existing["id"])
            return public_user(existing)

        user = await self.store.create(USERS, {
            "email": email,
            "password_hash": await self._hash(validate_password(password)),
            "name": name,
            "role": Role.SUPER_ADMIN.value,
            "agency": Agency.SYSTEM.value,
        })
        self.logger.info("Super admin created", user_id=user["id"])
        return public_user(user)
