"""
Bearer authentication for portal routes.
"""

from typing import Optional

from fastapi import Request

from shared.errors import AuthenticationError
from shared.logging import get_logger, set_actor_context
from ..authz import Actor
from .tokens import TokenService


class BearerAuthenticator:
    """Resolves the Authorization header into an Actor."""

    def __init__(self, tokens: TokenService):
        self.tokens = tokens
        self.logger = get_logger("portal.auth")

    def _extract_token(self, header: str) -> str:
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthenticationError("Invalid authorization header format")
        return token.strip()

    async def authenticate_request(self, request: Request) -> Actor:
        """Authenticate a request that must carry a bearer token."""
        header = request.headers.get("Authorization")
        if not header:
            raise AuthenticationError("Authorization header required")
        return self._authenticate(request, header)

    async def authenticate_optional(self, request: Request) -> Optional[Actor]:
        """Anonymous when no header is sent; a bad header is still rejected."""
        header = request.headers.get("Authorization")
        if header is None:
            return None
        return self._authenticate(request, header)

    def _authenticate(self, request: Request, header: str) -> Actor:
        token = self._extract_token(header)
        try:
            actor = self.tokens.verify(token)
        except AuthenticationError as e:
            self.logger.warning("Bearer authentication failed", error=e.message)
            raise

        set_actor_context(str(actor.id), actor.role.value, actor.tenant.value if actor.tenant else None)
        request.state.actor = actor
        self.logger.debug("Request authenticated", user_id=actor.id, role=actor.role.value)
        return actor
