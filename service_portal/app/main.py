"""
Portal service for the River Monitoring Portal.
"""

from typing import Dict, Optional

import httpx
from fastapi import Depends, Query, Request

from shared.base_service import BaseService
from shared.config import ServiceConfig

from .auth import BearerAuthenticator, TokenService
from .authz import Action, Actor, AuthorizationEngine, Resource, ResourceTarget
from .caching import TtlCache
from .persistence import PersistenceGateway, create_store
from .ratelimit import FixedWindowRateLimiter
from .schemas import (
    FeedbackCreateRequest, InfographicCreateRequest, InfographicUpdateRequest,
    LoginRequest, StationCreateRequest, StationUpdateRequest, UserCreateRequest,
    WaterLevelCreateRequest, WaterLevelUpdateRequest,
)
from .services import FeedbackService, InfographicService, StationService, UserService
from .sync import FeedClient, SyncJob, SyncSchedule


class PortalService(BaseService):
    """Portal service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        store: Optional[PersistenceGateway] = None,
        feed_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__("portal", 8000, config)

        # Initialize components
        self.cache = TtlCache(metrics=self.metrics)
        self.store = store or create_store(self.config.postgres_dsn)
        self.authz = AuthorizationEngine(self.metrics)
        self.tokens = TokenService(
            self.config.jwt_secret,
            algorithm=self.config.jwt_algorithm,
            expire_seconds=self.config.jwt_expire_seconds,
        )
        self.authenticator = BearerAuthenticator(self.tokens)
        self.rate_limiter = FixedWindowRateLimiter(
            self.config.feedback_rate_limit,
            self.config.feedback_rate_window_seconds,
        )

        feed_client = None
        if self.config.feed_url:
            feed_client = FeedClient(self.config.feed_url, self.config.feed_timeout_ms, transport=feed_transport)
        self.sync_job = SyncJob(
            self.store,
            self.cache,
            feed_client,
            default_source=self.config.sync_default_source,
            metrics=self.metrics,
        )
        self.schedule: Optional[SyncSchedule] = None

        self.stations = StationService(
            self.store,
            self.cache,
            self.authz,
            stations_list_ttl_ms=self.config.stations_list_ttl_ms,
            water_levels_list_ttl_ms=self.config.water_levels_list_ttl_ms,
        )
        self.users = UserService(self.store, self.authz, self.tokens, bcrypt_rounds=self.config.bcrypt_rounds)
        self.infographics = InfographicService(
            self.store,
            self.cache,
            self.authz,
            list_ttl_ms=self.config.infographics_list_ttl_ms,
            item_ttl_ms=self.config.infographic_item_ttl_ms,
        )
        self.feedback = FeedbackService(self.store, self.authz, self.rate_limiter)

        self._setup_portal_routes()

    def _setup_portal_routes(self):
        """Set up portal-specific routes."""

        async def current_actor(request: Request) -> Actor:
            return await self.authenticator.authenticate_request(request)

        async def optional_actor(request: Request) -> Optional[Actor]:
            return await self.authenticator.authenticate_optional(request)

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "portal",
                "message": "River Monitoring Portal - Portal Service",
                "version": "1.0.0",
                "capabilities": ["stations", "water_levels", "infographics", "feedback", "feed_sync"],
                "sync": {
                    "configured": self.sync_job.configured,
                    "scheduled": self.schedule is not None and self.schedule.active,
                },
            }

        # Auth and users

        @self.app.post("/api/auth/login")
        async def login(request: LoginRequest):
            """Exchange email and password for a bearer token."""
            return await self.users.login(request.email, request.password)

        @self.app.get("/api/users")
        async def list_users(actor: Actor = Depends(current_actor)):
            """List users visible to the caller's agency."""
            return {"items": await self.users.list_users(actor)}

        @self.app.get("/api/users/{user_id}")
        async def get_user(user_id: int, actor: Actor = Depends(current_actor)):
            return await self.users.get_user(user_id, actor)

        @self.app.post("/api/users", status_code=201)
        async def create_user(request: UserCreateRequest, actor: Actor = Depends(current_actor)):
            """Create an administrator account."""
            user = await self.users.create_user(request.changes(), actor)
            self.metrics.record_business_event("user_created")
            return user

        @self.app.delete("/api/users/{user_id}")
        async def delete_user(user_id: int, actor: Actor = Depends(current_actor)):
            await self.users.delete_user(user_id, actor)
            return {"id": user_id, "deleted": True}

        # Stations

        @self.app.get("/api/bbws/stations")
        async def list_stations(
            page: Optional[str] = None,
            limit: Optional[str] = None,
            include_inactive: bool = False,
            actor: Optional[Actor] = Depends(optional_actor),
        ):
            """List stations; inactive ones only for authorized admins."""
            return await self.stations.list_stations(
                page=page or 1, limit=limit or 20, include_inactive=include_inactive, actor=actor
            )

        @self.app.get("/api/bbws/stations/{station_id}")
        async def get_station(
            station_id: int,
            include_inactive: bool = False,
            actor: Optional[Actor] = Depends(optional_actor),
        ):
            return await self.stations.get_station(station_id, include_inactive=include_inactive, actor=actor)

        @self.app.post("/api/bbws/stations", status_code=201)
        async def create_station(request: StationCreateRequest, actor: Actor = Depends(current_actor)):
            return await self.stations.create_station(request.changes(), actor)

        @self.app.put("/api/bbws/stations/{station_id}")
        async def update_station(
            station_id: int,
            request: StationUpdateRequest,
            actor: Actor = Depends(current_actor),
        ):
            return await self.stations.update_station(station_id, request.changes(), actor)

        @self.app.delete("/api/bbws/stations/{station_id}")
        async def delete_station(station_id: int, actor: Actor = Depends(current_actor)):
            await self.stations.delete_station(station_id, actor)
            return {"id": station_id, "deleted": True}

        # Water levels

        @self.app.get("/api/bbws/water-levels")
        async def list_water_levels(
            page: Optional[str] = None,
            limit: Optional[str] = None,
            station_id: Optional[int] = None,
            date_from: Optional[str] = Query(None, alias="from"),
            date_to: Optional[str] = Query(None, alias="to"),
        ):
            """List readings, newest first."""
            return await self.stations.list_water_levels(
                page=page or 1,
                limit=limit or 50,
                station_id=station_id,
                date_from=date_from,
                date_to=date_to,
            )

        @self.app.get("/api/bbws/water-levels/{reading_id}")
        async def get_water_level(reading_id: int):
            return await self.stations.get_water_level(reading_id)

        @self.app.post("/api/bbws/water-levels", status_code=201)
        async def create_water_level(request: WaterLevelCreateRequest, actor: Actor = Depends(current_actor)):
            return await self.stations.create_water_level(request.changes(), actor)

        @self.app.put("/api/bbws/water-levels/{reading_id}")
        async def update_water_level(
            reading_id: int,
            request: WaterLevelUpdateRequest,
            actor: Actor = Depends(current_actor),
        ):
            return await self.stations.update_water_level(reading_id, request.changes(), actor)

        @self.app.delete("/api/bbws/water-levels/{reading_id}")
        async def delete_water_level(reading_id: int, actor: Actor = Depends(current_actor)):
            await self.stations.delete_water_level(reading_id, actor)
            return {"id": reading_id, "deleted": True}

        # Feed sync

        @self.app.post("/api/bbws/sync")
        async def trigger_sync(actor: Actor = Depends(current_actor)):
            """Run the feed sync now; 409 while another run is in flight."""
            self.authz.require(actor, Action.TRIGGER_SYNC, ResourceTarget(Resource.SYNC))
            result = await self.sync_job.trigger()
            self.metrics.record_business_event("sync_triggered")
            return result.to_dict()

        # Infographics

        @self.app.get("/api/infographics")
        async def list_infographics(
            page: Optional[str] = None,
            limit: Optional[str] = None,
            include_inactive: bool = False,
            actor: Optional[Actor] = Depends(optional_actor),
        ):
            return await self.infographics.list_infographics(
                page=page or 1, limit=limit or 20, include_inactive=include_inactive, actor=actor
            )

        @self.app.get("/api/infographics/{infographic_id}")
        async def get_infographic(
            infographic_id: int,
            include_inactive: bool = False,
            actor: Optional[Actor] = Depends(optional_actor),
        ):
            return await self.infographics.get_infographic(
                infographic_id, include_inactive=include_inactive, actor=actor
            )

        @self.app.post("/api/infographics", status_code=201)
        async def create_infographic(request: InfographicCreateRequest, actor: Actor = Depends(current_actor)):
            return await self.infographics.create_infographic(request.changes(), actor)

        @self.app.put("/api/infographics/{infographic_id}")
        async def update_infographic(
            infographic_id: int,
            request: InfographicUpdateRequest,
            actor: Actor = Depends(current_actor),
        ):
            return await self.infographics.update_infographic(infographic_id, request.changes(), actor)

        @self.app.delete("/api/infographics/{infographic_id}")
        async def delete_infographic(infographic_id: int, actor: Actor = Depends(current_actor)):
            await self.infographics.delete_infographic(infographic_id, actor)
            return {"id": infographic_id, "deleted": True}

        # Feedback

        @self.app.post("/api/feedback", status_code=201)
        async def submit_feedback(request: FeedbackCreateRequest, http_request: Request):
            """Public feedback form, rate limited per client address."""
            client_id = http_request.client.host if http_request.client else "unknown"
            feedback = await self.feedback.submit_feedback(request.changes(), client_id=client_id)
            self.metrics.record_business_event("feedback_submitted")
            return feedback

        @self.app.get("/api/feedback")
        async def list_feedback(actor: Actor = Depends(current_actor)):
            return {"items": await self.feedback.list_feedback(actor)}

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check portal service dependencies."""
        return {"store": "ok" if await self.store.health_check() else "error"}

    async def start(self):
        """Start portal service components."""
        await self.store.start()

        if self.config.bootstrap_admin_email and self.config.bootstrap_admin_password:
            await self.users.ensure_super_admin(
                self.config.bootstrap_admin_email,
                self.config.bootstrap_admin_password,
                self.config.bootstrap_admin_name,
            )

        if self.config.sync_enabled:
            if self.sync_job.configured:
                self.schedule = self.sync_job.start(self.config.sync_interval_ms)
            else:
                self.logger.warning("Sync enabled but no feed URL configured; scheduler not started")

        self.logger.info("Portal service started")

    async def stop(self):
        """Stop portal service components."""
        if self.schedule is not None:
            self.schedule.stop()
            await self.schedule.wait_closed()
            self.schedule = None

        await self.store.stop()
        self.logger.info("Portal service stopped")


def create_app():
    """Create portal service application."""
    service = PortalService()
    return service.app


if __name__ == "__main__":
    service = PortalService()
    service.run()
