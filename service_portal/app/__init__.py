"""
Portal Service package for the River Monitoring Portal.

This package exposes the FastAPI application serving gauge stations, water
level readings, infographics and public feedback, administered through a
multi-tenant role hierarchy:

- app.main: Application entrypoint that wires routes and lifecycle.
- app.caching: In-process TTL cache with prefix invalidation.
- app.authz: Role/tenant authorization decisions.
- app.persistence: Storage gateway with in-memory and PostgreSQL adapters.
- app.sync: External feed client and the periodic sync job.
- app.services: Station, user, infographic and feedback services.
- app.ratelimit: Fixed-window limiter for public submissions.

Design notes:
- Module import must not perform IO; stores, schedulers and HTTP clients
  are started from the application lifespan.
- Use the shared/ utilities for config, logging, metrics and errors.
"""
