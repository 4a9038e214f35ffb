"""
Unit tests for the user service.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.errors import (
    AuthenticationError, AuthorizationDenied, ConflictError, NotFoundError, ValidationError,
)
from service_portal.app.auth import TokenService
from service_portal.app.authz import Actor, Agency, AuthorizationEngine, Role
from service_portal.app.persistence import USERS, InMemoryStore
from service_portal.app.services import UserService


SUPER = Actor(id=1, role=Role.SUPER_ADMIN, tenant=None)


def user_payload(email, role="ADMIN", agency="BBWS", **extra):
    payload = {"email": email, "password": "secret123", "name": "Test User", "role": role}
    if agency is not None:
        payload["agency"] = agency
    payload.update(extra)
    return payload


def as_actor(user):
    return Actor(id=user["id"], role=Role(user["role"]), tenant=Agency(user["agency"]))


class TestUserService:
    """Test cases for UserService."""

    @pytest.fixture
    def store(self):
        """Create InMemoryStore instance."""
        return InMemoryStore()

    @pytest.fixture
    def tokens(self):
        """Create TokenService instance."""
        return TokenService("test-secret", expire_seconds=3600)

    @pytest.fixture
    def service(self, store, tokens):
        """Create UserService instance with cheap hashing."""
        return UserService(store, AuthorizationEngine(), tokens, bcrypt_rounds=4)

    @pytest.mark.asyncio
    async def test_super_admin_creates_master_admin(self, service, store):
        """Test the first MASTER_ADMIN of an agency is created."""
        user = await service.create_user(user_payload("master@bbws.go.id", "MASTER_ADMIN"), SUPER)

        assert user["role"] == "MASTER_ADMIN"
        assert user["agency"] == "BBWS"
        assert "password_hash" not in user

        stored = await store.find_by_id(USERS, user["id"])
        assert stored["password_hash"] != "secret123"
        assert stored["password_hash"].startswith("$2")

    @pytest.mark.asyncio
    async def test_second_master_admin_denied(self, service):
        """Test an agency cannot get a second MASTER_ADMIN."""
        await service.create_user(user_payload("master@bbws.go.id", "MASTER_ADMIN"), SUPER)

        with pytest.raises(AuthorizationDenied) as exc_info:
            await service.create_user(user_payload("master2@bbws.go.id", "MASTER_ADMIN"), SUPER)

        assert exc_info.value.reason == "duplicate-tenant-admin"

    @pytest.mark.asyncio
    async def test_store_constraint_maps_to_duplicate_tenant_admin(self, service, store):
        """Test a lost race on the MASTER_ADMIN constraint is still a deny."""
        await service.create_user(user_payload("master@bbws.go.id", "MASTER_ADMIN"), SUPER)
        original = store.find_by_unique

        async def stale_lookup(table, key):
            # Simulate a concurrent creator that has not committed yet
            if key.get("role") == "MASTER_ADMIN":
                return None
            return await original(table, key)

        store.find_by_unique = stale_lookup

        with pytest.raises(AuthorizationDenied) as exc_info:
            await service.create_user(user_payload("master2@bbws.go.id", "MASTER_ADMIN"), SUPER)

        assert exc_info.value.reason == "duplicate-tenant-admin"

    @pytest.mark.asyncio
    async def test_master_admin_tenant_rules(self, service):
        """Test MASTER_ADMIN creates ADMIN only in its own agency."""
        master = await service.create_user(user_payload("master@bbws.go.id", "MASTER_ADMIN"), SUPER)
        actor = as_actor(master)

        with pytest.raises(AuthorizationDenied) as exc_info:
            await service.create_user(user_payload("admin@bmkg.go.id", agency="BMKG"), actor)
        assert exc_info.value.reason == "cross-tenant-denied"

        admin = await service.create_user(user_payload("admin@bbws.go.id", agency=None), actor)
        assert admin["agency"] == "BBWS"
        assert admin["role"] == "ADMIN"

    @pytest.mark.asyncio
    async def test_admin_cannot_create_users(self, service):
        """Test ADMIN is role-insufficient."""
        admin = await service.create_user(user_payload("admin@bbws.go.id"), SUPER)

        with pytest.raises(AuthorizationDenied) as exc_info:
            await service.create_user(user_payload("other@bbws.go.id"), as_actor(admin))

        assert exc_info.value.reason == "role-insufficient"

    @pytest.mark.asyncio
    async def test_super_admin_must_name_agency(self, service):
        """Test SUPER_ADMIN creating without agency is invalid."""
        with pytest.raises(ValidationError) as exc_info:
            await service.create_user(user_payload("admin@bbws.go.id", agency=None), SUPER)

        assert exc_info.value.details["field"] == "agency"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"email": "a@b.io", "password": "secret123", "name": "X"},
        user_payload("not-an-email"),
        user_payload("a@b.io", password="123"),
        user_payload("a@b.io", password="x" * 73),
        user_payload("a@b.io", role="OWNER"),
        user_payload("a@b.io", agency="ACME"),
    ])
    async def test_create_user_validation(self, service, payload):
        """Test malformed payloads are rejected before authorization."""
        with pytest.raises(ValidationError):
            await service.create_user(payload, SUPER)

    @pytest.mark.asyncio
    async def test_duplicate_email_conflicts(self, service, store):
        """Test emails are unique, enforced by the store constraint."""
        await service.create_user(user_payload("admin@bbws.go.id"), SUPER)
        original = store.find_by_unique
        lookups = []

        async def recording_lookup(table, key):
            lookups.append(key)
            return await original(table, key)

        store.find_by_unique = recording_lookup

        with pytest.raises(ConflictError) as exc_info:
            await service.create_user(user_payload("admin@bbws.go.id", agency="BMKG"), SUPER)

        assert exc_info.value.constraint == "users_email_key"
        assert not any("email" in key for key in lookups)

    @pytest.mark.asyncio
    async def test_delete_user_rules(self, service, store):
        """Test MASTER_ADMIN deletes its own ADMIN but not others."""
        master = await service.create_user(user_payload("master@bbws.go.id", "MASTER_ADMIN"), SUPER)
        own_admin = await service.create_user(user_payload("admin@bbws.go.id"), SUPER)
        foreign_admin = await service.create_user(user_payload("admin@bmkg.go.id", agency="BMKG"), SUPER)
        actor = as_actor(master)

        with pytest.raises(AuthorizationDenied) as exc_info:
            await service.delete_user(foreign_admin["id"], actor)
        assert exc_info.value.reason == "cross-tenant-denied"

        with pytest.raises(AuthorizationDenied):
            await service.delete_user(master["id"], actor)

        await service.delete_user(own_admin["id"], actor)
        assert await store.find_by_id(USERS, own_admin["id"]) is None

    @pytest.mark.asyncio
    async def test_delete_missing_user_is_not_found(self, service):
        """Test existence is checked before permission."""
        admin = await service.create_user(user_payload("admin@bbws.go.id"), SUPER)

        with pytest.raises(NotFoundError):
            await service.delete_user(999, as_actor(admin))

    @pytest.mark.asyncio
    async def test_list_users_is_tenant_scoped(self, service):
        """Test the directory only shows the caller's agency."""
        await service.create_user(user_payload("admin@bbws.go.id"), SUPER)
        await service.create_user(user_payload("admin@bmkg.go.id", agency="BMKG"), SUPER)
        bbws_admin = await service.create_user(user_payload("second@bbws.go.id"), SUPER)

        scoped = await service.list_users(as_actor(bbws_admin))
        everyone = await service.list_users(SUPER)

        assert {u["email"] for u in scoped} == {"admin@bbws.go.id", "second@bbws.go.id"}
        assert len(everyone) == 3
        assert all("password_hash" not in u for u in everyone)

    @pytest.mark.asyncio
    async def test_get_user_cross_tenant(self, service):
        """Test reading another agency's user is denied."""
        bbws = await service.create_user(user_payload("admin@bbws.go.id"), SUPER)
        bmkg = await service.create_user(user_payload("admin@bmkg.go.id", agency="BMKG"), SUPER)

        assert (await service.get_user(bbws["id"], as_actor(bbws)))["email"] == "admin@bbws.go.id"
        with pytest.raises(AuthorizationDenied):
            await service.get_user(bmkg["id"], as_actor(bbws))
        with pytest.raises(NotFoundError):
            await service.get_user(404, SUPER)

    @pytest.mark.asyncio
    async def test_login_issues_verifiable_token(self, service, tokens):
        """Test valid credentials yield a token for the same actor."""
        created = await service.create_user(user_payload("admin@bbws.go.id"), SUPER)

        session = await service.login("admin@bbws.go.id", "secret123")

        assert session["token_type"] == "Bearer"
        assert session["expires_in"] == 3600
        assert session["user"]["id"] == created["id"]
        actor = tokens.verify(session["token"])
        assert actor.role is Role.ADMIN
        assert actor.tenant is Agency.BBWS

    @pytest.mark.asyncio
    async def test_login_rejects_bad_credentials(self, service):
        """Test unknown email and wrong password look the same."""
        await service.create_user(user_payload("admin@bbws.go.id"), SUPER)

        with pytest.raises(AuthenticationError) as wrong_password:
            await service.login("admin@bbws.go.id", "wrong-pass")
        with pytest.raises(AuthenticationError) as unknown_email:
            await service.login("ghost@bbws.go.id", "secret123")

        assert wrong_password.value.message == unknown_email.value.message

    @pytest.mark.asyncio
    async def test_login_requires_fields(self, service):
        """Test missing credentials are a validation error."""
        with pytest.raises(ValidationError):
            await service.login("", None)

    @pytest.mark.asyncio
    async def test_ensure_super_admin_is_idempotent(self, service, store):
        """Test bootstrapping twice keeps a single SUPER_ADMIN."""
        first = await service.ensure_super_admin("root@system.com", "rootpass")
        second = await service.ensure_super_admin("root@system.com", "rootpass")

        assert first["id"] == second["id"]
        assert first["role"] == "SUPER_ADMIN"
        assert first["agency"] == "SYSTEM"
        assert await store.count(USERS) == 1
