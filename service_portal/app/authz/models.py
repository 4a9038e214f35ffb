"""
Authorization data models for the portal service.

Roles and tenants are closed enumerations that do not depend on the storage
schema; persisted rows are converted into these types at the service seam.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union


class Role(str, Enum):
    """Administrative roles, most privileged first."""
    SUPER_ADMIN = "SUPER_ADMIN"
    MASTER_ADMIN = "MASTER_ADMIN"
    ADMIN = "ADMIN"


class Agency(str, Enum):
    """Tenants. SYSTEM is the sentinel tenant of SUPER_ADMIN only."""
    BBWS = "BBWS"
    BMKG = "BMKG"
    BPBD = "BPBD"
    PUPR = "PUPR"
    SYSTEM = "SYSTEM"

    @property
    def is_real(self) -> bool:
        return self is not Agency.SYSTEM


class Action(str, Enum):
    """Actions the engine can decide on."""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    TRIGGER_SYNC = "trigger_sync"
    CREATE_USER = "create_user"
    DELETE_USER = "delete_user"


class Resource(str, Enum):
    """Resource collections."""
    STATION = "station"
    WATER_LEVEL = "water_level"
    INFOGRAPHIC = "infographic"
    FEEDBACK = "feedback"
    USER = "user"
    SYNC = "sync"


# Records publicly listed, with admin-only visibility of inactive rows
PUBLIC_RESOURCES = frozenset({Resource.STATION, Resource.WATER_LEVEL, Resource.INFOGRAPHIC})

# Domain records only SUPER_ADMIN / MASTER_ADMIN may mutate
DOMAIN_RESOURCES = frozenset({Resource.STATION, Resource.WATER_LEVEL, Resource.INFOGRAPHIC})

WRITER_ROLES = frozenset({Role.SUPER_ADMIN, Role.MASTER_ADMIN})


class DenyReason(str, Enum):
    """Stable deny categories."""
    DUPLICATE_TENANT_ADMIN = "duplicate-tenant-admin"
    CROSS_TENANT = "cross-tenant-denied"
    ROLE_INSUFFICIENT = "role-insufficient"
    NOT_FOUND = "not-found"
    INVALID_TENANT = "invalid-tenant"


def parse_role(value: Any) -> Optional[Role]:
    """Parse a role name, returning None when it is not a known role."""
    if isinstance(value, Role):
        return value
    try:
        return Role(str(value).strip().upper())
    except ValueError:
        return None


def parse_agency(value: Any) -> Optional[Agency]:
    """Parse an agency name, returning None when it is not a known agency."""
    if value is None:
        return None
    if isinstance(value, Agency):
        return value
    try:
        return Agency(str(value).strip().upper())
    except ValueError:
        return None


@dataclass(frozen=True)
class Actor:
    """An authenticated administrator."""
    id: int
    role: Role
    tenant: Optional[Agency]
    email: Optional[str] = None

    def __post_init__(self):
        if self.role is Role.SUPER_ADMIN:
            # SUPER_ADMIN is unscoped; its tenant is always the sentinel
            object.__setattr__(self, "tenant", Agency.SYSTEM)
        elif self.tenant is None or not self.tenant.is_real:
            raise ValueError(f"{self.role.value} requires a real tenant")

    @property
    def is_writer(self) -> bool:
        return self.role in WRITER_ROLES


@dataclass(frozen=True)
class ResourceTarget:
    """A collection or record of a resource type."""
    resource: Resource
    include_inactive: bool = False
    tenant: Optional[Agency] = None


@dataclass(frozen=True)
class NewUserTarget:
    """The user an actor wants to create.

    ``tenant_has_master_admin`` is looked up by the caller for the requested
    tenant so the decision itself stays pure.
    """
    role: Role
    tenant: Optional[Agency] = None
    tenant_has_master_admin: bool = False


@dataclass(frozen=True)
class ExistingUserTarget:
    """A user an actor wants to act on; ``None`` fields mean unknown."""
    id: int
    role: Role
    tenant: Optional[Agency]


Target = Union[ResourceTarget, NewUserTarget, ExistingUserTarget, None]


@dataclass(frozen=True)
class Decision:
    """Allow (with normalized outputs) or Deny(reason)."""
    allowed: bool
    reason: Optional[DenyReason] = None
    include_inactive: bool = False
    tenant: Optional[Agency] = None
    message: Optional[str] = None

    @classmethod
    def allow(cls, *, include_inactive: bool = False, tenant: Optional[Agency] = None) -> "Decision":
        return cls(allowed=True, include_inactive=include_inactive, tenant=tenant)

    @classmethod
    def deny(cls, reason: DenyReason, message: Optional[str] = None) -> "Decision":
        return cls(allowed=False, reason=reason, message=message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason.value if self.reason else None,
            "include_inactive": self.include_inactive,
            "tenant": self.tenant.value if self.tenant else None,
        }
