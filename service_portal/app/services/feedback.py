"""
Public feedback box.
"""

from typing import Any, Dict, List, Optional

from shared.errors import ValidationError
from shared.logging import get_logger
from ..authz import Action, Actor, AuthorizationEngine, Resource, ResourceTarget
from ..persistence import FEEDBACK, PersistenceGateway
from ..ratelimit import FixedWindowRateLimiter
from ..validation import clean_text, validate_email

FEEDBACK_FIELDS = ("name", "email", "description", "whatsapp")


class FeedbackService:
    """Accepts anonymous submissions; only administrators read them."""

    def __init__(
        self,
        store: PersistenceGateway,
        authz: AuthorizationEngine,
        rate_limiter: Optional[FixedWindowRateLimiter] = None,
    ):
        self.store = store
        self.authz = authz
        self.rate_limiter = rate_limiter
        self.logger = get_logger("portal.feedback")

    async def submit_feedback(self, data: Dict[str, Any], client_id: Optional[str] = None) -> Dict[str, Any]:
        """Store a submission; ``client_id`` is the caller's address for rate limiting."""
        if self.rate_limiter is not None and client_id is not None:
            self.rate_limiter.enforce(client_id, "feedback")

        fields = {field: clean_text(data.get(field)) for field in FEEDBACK_FIELDS}
        missing = [field for field, value in fields.items() if value is None]
        if missing:
            raise ValidationError(
                "name, email, description and whatsapp are required",
                details={"missing": missing}
            )
        fields["email"] = validate_email(fields["email"])

        feedback = await self.store.create(FEEDBACK, fields)
        self.logger.info("Feedback submitted", feedback_id=feedback["id"])
        return feedback

    async def list_feedback(self, actor: Optional[Actor]) -> List[Dict[str, Any]]:
        self.authz.require(actor, Action.READ, ResourceTarget(Resource.FEEDBACK))
        return await self.store.find_many(FEEDBACK, order_by=[("created_at", "desc"), ("id", "desc")])
