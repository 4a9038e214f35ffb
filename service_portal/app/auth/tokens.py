"""
HS256 bearer tokens for portal administrators.
"""

import time
from typing import Any, Dict

import jwt

from shared.errors import AuthenticationError
from shared.logging import get_logger
from ..authz import Actor, parse_agency, parse_role


class TokenService:
    """Issues and verifies signed access tokens."""

    def __init__(self, secret: str, algorithm: str = "HS256", expire_seconds: int = 7 * 24 * 3600):
        self.secret = secret
        self.algorithm = algorithm
        self.expire_seconds = expire_seconds
        self.logger = get_logger("portal.auth.tokens")

    def issue(self, user: Dict[str, Any]) -> str:
        """Sign a token carrying id, email, role and agency."""
        now = int(time.time())
        payload = {
            "sub": str(user["id"]),
            "id": user["id"],
            "email": user["email"],
            "role": user["role"],
            "agency": user.get("agency"),
            "iat": now,
            "exp": now + self.expire_seconds,
        }
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            return jwt.decode(token, self.secret, algorithms=[self.algorithm])
        except jwt.ExpiredSignatureError as exc:
            raise AuthenticationError("Token has expired") from exc
        except jwt.InvalidTokenError as exc:
            raise AuthenticationError("Invalid token", details={"error": str(exc)}) from exc

    def verify(self, token: str) -> Actor:
        """Decode a token into the Actor it was issued for."""
        claims = self.decode(token)

        role = parse_role(claims.get("role"))
        user_id = claims.get("id")
        if role is None or not isinstance(user_id, int) or isinstance(user_id, bool):
            raise AuthenticationError("Token claims are incomplete")

        try:
            return Actor(
                id=user_id,
                role=role,
                tenant=parse_agency(claims.get("agency")),
                email=claims.get("email"),
            )
        except ValueError as exc:
            raise AuthenticationError("Token tenant is invalid", details={"error": str(exc)}) from exc
