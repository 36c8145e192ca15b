import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orgtree.config import settings
from orgtree.database import Base, engine
from orgtree.exception_handlers import register_exception_handlers
from orgtree.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from orgtree.routes import entitlements, organizations

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create the FastAPI application."""
    setup_structured_logging(
        log_level=settings.log_level,
        json_format=settings.environment == "production",
    )

    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant organization hierarchy and entitlement service",
        debug=settings.debug,
        version=settings.app_version,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)

    app.include_router(organizations.router, prefix="/api/v1")
    app.include_router(entitlements.router, prefix="/api/v1")

    if settings.debug:
        logger.info(f"Running in {settings.environment} mode")
        logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting up the application...")
        # Migrations own the schema outside of debug runs
        if settings.debug:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database tables created (if not existing).")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down the application...")
        await engine.dispose()

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok", "version": settings.app_version}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run("orgtree.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
