"""
Main FastAPI application (entrypoint).

Responsibilities:
- Wire API routers (bookings / notifications / admin)
- Register centralized exception handlers
- Provide middleware: request-id logging
- Add health / readiness endpoints
- Build the service container on startup (from DATABASE_URL)
Notes:
- Tables are created on startup for local dev; use Alembic migrations in production.
- Tests pass their own container to create_app() and skip the startup wiring.
"""
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api import routes_admin, routes_bookings, routes_notifications
from config.settings import settings
from core import db
from core.container import ServiceContainer
from core.exception_handlers import register_exception_handlers
from core.logging import configure_logging, request_logging_middleware
from core.response import error, ok

logger = logging.getLogger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title=settings.API_TITLE, version=settings.API_VERSION)
    app.state.container = container

    # CORS - adjust origins for production
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(routes_bookings.router, prefix="/bookings", tags=["bookings"])
    app.include_router(routes_notifications.router, prefix="/notifications", tags=["notifications"])
    app.include_router(routes_admin.router, prefix="/admin", tags=["admin"])

    register_exception_handlers(app)

    # Add request logging middleware (adds X-Request-ID header and logs)
    app.middleware("http")(request_logging_middleware)

    @app.get("/health")
    async def health():
        """Simple health endpoint used by load balancers and orchestrators."""
        return ok({"status": "ok"})

    @app.get("/ready")
    async def ready(request: Request):
        """Readiness: the database answers a trivial query."""
        services = request.app.state.container
        if services is None:
            return JSONResponse(status_code=503, content=error("db_unreachable", "DB not configured", retryable=True))
        try:
            async with services.session_maker() as session:
                await session.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            logger.warning("Readiness check failed: %s", e)
            return JSONResponse(status_code=503, content=error("db_unreachable", "DB unavailable", retryable=True))
        return ok({"ready": True})

    @app.on_event("startup")
    async def on_startup():
        """
        On startup:
        - configure logging
        - create DB tables (development convenience) and the service container
        """
        configure_logging()
        if app.state.container is not None:
            return
        if db.engine is None or db.async_session_maker is None:
            logger.warning("No database configured; booking and notification endpoints are unavailable")
            return
        try:
            await db.create_all(db.engine)
        except SQLAlchemyError as e:
            # Do not crash the process for missing DB during local dev
            logger.warning("DB initialization failed on startup (ok for local dev): %s", e)
        app.state.container = ServiceContainer(db.async_session_maker)

    @app.on_event("shutdown")
    async def on_shutdown():
        if app.state.container is not None:
            await app.state.container.close()

    return app


app = create_app()

if __name__ == "__main__":
    # Run with: python main.py for local dev. For production use uvicorn/gunicorn with workers.
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
