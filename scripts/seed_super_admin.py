#!/usr/bin/env python3
"""
Create the SUPER_ADMIN account for a fresh portal database.

Safe to run repeatedly: when the email already exists the account is left
untouched. Connects to the PostgreSQL DSN from ``PORTAL_POSTGRES_DSN`` unless
``--dsn`` is given.
"""

import argparse
import asyncio
import json
from typing import Optional
import sys
import os

sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from shared.config import get_config  # noqa: E402
from shared.logging import configure_logging  # noqa: E402
from shared.metrics import get_metrics_collector  # noqa: E402
from service_portal.app.auth import TokenService  # noqa: E402
from service_portal.app.authz import AuthorizationEngine  # noqa: E402
from service_portal.app.persistence import create_store  # noqa: E402
from service_portal.app.services import UserService  # noqa: E402


async def seed(*, dsn: Optional[str], email: str, password: str, name: str, bcrypt_rounds: int) -> dict:
    """Ensure the SUPER_ADMIN exists and return its public record."""
    store = create_store(dsn)
    await store.start()
    try:
        users = UserService(
            store,
            AuthorizationEngine(get_metrics_collector("portal-seed")),
            TokenService("unused"),
            bcrypt_rounds=bcrypt_rounds,
        )
        return await users.ensure_super_admin(email, password, name)
    finally:
        await store.stop()


def _parse_args() -> argparse.Namespace:
    config = get_config("portal-seed", 0)
    parser = argparse.ArgumentParser(description="Create the portal SUPER_ADMIN account.")
    parser.add_argument("--dsn", default=config.postgres_dsn, help="PostgreSQL DSN (defaults to PORTAL_POSTGRES_DSN)")
    parser.add_argument("--email", default=config.bootstrap_admin_email or "superadmin@system.com", help="Account email")
    parser.add_argument("--password", default=config.bootstrap_admin_password or os.getenv("SEED_PASSWORD"), help="Account password")
    parser.add_argument("--name", default=config.bootstrap_admin_name, help="Display name")
    parser.add_argument("--bcrypt-rounds", type=int, default=config.bcrypt_rounds, help="bcrypt cost factor")
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    configure_logging("portal-seed", "info")

    if not args.dsn:
        print("[seed] no DSN configured; refusing to seed an in-memory store", file=sys.stderr)
        return 2
    if not args.password:
        print("[seed] --password (or PORTAL_BOOTSTRAP_ADMIN_PASSWORD) is required", file=sys.stderr)
        return 2

    try:
        user = asyncio.run(
            seed(
                dsn=args.dsn,
                email=args.email,
                password=args.password,
                name=args.name,
                bcrypt_rounds=args.bcrypt_rounds,
            )
        )
    except KeyboardInterrupt:
        return 130
    except Exception as exc:  # pragma: no cover - CLI surface
        print(f"[seed] failed: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(user, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
