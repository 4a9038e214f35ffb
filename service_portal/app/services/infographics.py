"""
Infographic listings shown on the public portal.
"""

from typing import Any, Dict, Optional

from shared.errors import NotFoundError, ValidationError
from shared.logging import get_logger
from ..authz import Action, Actor, AuthorizationEngine, Resource, ResourceTarget
from ..caching import INFOGRAPHICS_LIST_PREFIX, TtlCache, infographic_active_key, infographics_list_key
from ..persistence import INFOGRAPHICS, PersistenceGateway
from ..validation import (
    clean_text, is_valid_url, normalize_limit, normalize_page, optional_instant, require_text,
)


class InfographicService:
    """CRUD for infographics with cached public reads."""

    def __init__(
        self,
        store: PersistenceGateway,
        cache: TtlCache,
        authz: AuthorizationEngine,
        list_ttl_ms: int = 30000,
        item_ttl_ms: int = 60000,
    ):
        self.store = store
        self.cache = cache
        self.authz = authz
        self.list_ttl_ms = list_ttl_ms
        self.item_ttl_ms = item_ttl_ms
        self.logger = get_logger("portal.infographics")

    def _fields(self, data: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        partial = existing is not None
        fields: Dict[str, Any] = {}

        if not partial or "title" in data:
            fields["title"] = require_text(data, "title", min_length=3)

        if not partial or "image_url" in data:
            if not is_valid_url(data.get("image_url")):
                raise ValidationError("image_url must be a valid URL", details={"field": "image_url"})
            fields["image_url"] = data["image_url"].strip()

        if "link_url" in data:
            link_url = clean_text(data.get("link_url"))
            if link_url is not None and not is_valid_url(link_url):
                raise ValidationError("link_url must be a valid URL", details={"field": "link_url"})
            fields["link_url"] = link_url

        if "description" in data:
            fields["description"] = clean_text(data.get("description"))

        if data.get("is_active") is not None:
            if not isinstance(data["is_active"], bool):
                raise ValidationError("is_active must be a boolean", details={"field": "is_active"})
            fields["is_active"] = data["is_active"]

        if data.get("sort_order") is not None:
            if not isinstance(data["sort_order"], int) or isinstance(data["sort_order"], bool):
                raise ValidationError("sort_order must be an integer", details={"field": "sort_order"})
            fields["sort_order"] = data["sort_order"]

        for field in ("start_at", "end_at"):
            if field in data:
                fields[field] = optional_instant(data, field)

        start_at = fields.get("start_at", existing.get("start_at") if existing else None)
        end_at = fields.get("end_at", existing.get("end_at") if existing else None)
        if start_at and end_at and start_at > end_at:
            raise ValidationError("start_at must not be later than end_at", details={"field": "start_at"})

        return fields

    def _invalidate(self, infographic_id: int):
        self.cache.delete_by_prefix(INFOGRAPHICS_LIST_PREFIX)
        self.cache.delete(infographic_active_key(infographic_id))

    async def create_infographic(self, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.INFOGRAPHIC))

        fields = self._fields(data)
        fields.setdefault("is_active", True)
        fields.setdefault("sort_order", 0)

        infographic = await self.store.create(INFOGRAPHICS, fields)
        self._invalidate(infographic["id"])
        self.logger.info("Infographic created", infographic_id=infographic["id"])
        return infographic

    async def get_infographic(
        self,
        infographic_id: int,
        include_inactive: bool = False,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        decision = self.authz.require(
            actor, Action.READ, ResourceTarget(Resource.INFOGRAPHIC, include_inactive=include_inactive)
        )
        key = infographic_active_key(infographic_id)

        if not decision.include_inactive:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        infographic = await self.store.find_by_id(INFOGRAPHICS, infographic_id)
        if infographic is None or (not infographic["is_active"] and not decision.include_inactive):
            raise NotFoundError("Infographic not found", details={"infographic_id": infographic_id})

        if infographic["is_active"]:
            self.cache.set(key, infographic, self.item_ttl_ms)
        return infographic

    async def list_infographics(
        self,
        page: Any = 1,
        limit: Any = 20,
        include_inactive: bool = False,
        actor: Optional[Actor] = None,
    ) -> Dict[str, Any]:
        decision = self.authz.require(
            actor, Action.READ, ResourceTarget(Resource.INFOGRAPHIC, include_inactive=include_inactive)
        )
        page = normalize_page(page)
        limit = normalize_limit(limit, default=20, maximum=100)
        include_inactive = decision.include_inactive

        async def load():
            filter = None if include_inactive else {"is_active": True}
            items = await self.store.find_many(
                INFOGRAPHICS,
                filter=filter,
                skip=(page - 1) * limit,
                take=limit,
                order_by=[("sort_order", "asc"), ("created_at", "desc"), ("id", "desc")],
            )
            total = await self.store.count(INFOGRAPHICS, filter)
            return {"items": items, "page": page, "limit": limit, "total": total}

        key = infographics_list_key(include_inactive, page, limit)
        return await self.cache.get_or_set(key, self.list_ttl_ms, load)

    async def update_infographic(self, infographic_id: int, data: Dict[str, Any], actor: Optional[Actor]) -> Dict[str, Any]:
        self.authz.require(actor, Action.WRITE, ResourceTarget(Resource.INFOGRAPHIC))

        existing = await self.store.find_by_id(INFOGRAPHICS, infographic_id)
        if existing is None:
            raise NotFoundError("Infographic not found", details={"infographic_id": infographic_id})

        fields = self._fields(data, existing)
        infographic = await self.store.update(INFOGRAPHICS, infographic_id, fields)
        if infographic is None:
            raise NotFoundError("Infographic not found", details={"infographic_id": infographic_id})

        self._invalidate(infographic_id)
        self.logger.info("Infographic updated", infographic_id=infographic_id, fields=sorted(fields))
        return infographic

    async def delete_infographic(self, infographic_id: int, actor: Optional[Actor]):
        self.authz.require(actor, Action.DELETE, ResourceTarget(Resource.INFOGRAPHIC))

        if not await self.store.delete(INFOGRAPHICS, infographic_id):
            raise NotFoundError("Infographic not found", details={"infographic_id": infographic_id})

        self._invalidate(infographic_id)
        self.logger.info("Infographic deleted", infographic_id=infographic_id)
