import logging
from typing import Optional
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from identity.base_microservice import BaseMicroservice, create_engine_and_sessions, create_tables
from identity.config import Settings
from identity.auth.router import router as auth_router
from identity.auth.stores import SQLAlchemyUserStore, SQLAlchemyActivityStore
from identity.auth.users import AuthenticationService

# Create shared base microservice instance
base_service = BaseMicroservice()

def create_app(
    settings: Optional[Settings] = None,
    auth_service: Optional[AuthenticationService] = None,
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        settings: Runtime settings, read from the environment when omitted
        auth_service: Prebuilt service; when omitted the lifespan builds one
            on a SQLAlchemy engine for ``settings.database_url``
    """
    settings = settings or Settings.from_env()
    # Root level, so the "microservice" and "identity.auth" loggers both follow it
    logging.getLogger().setLevel(settings.log_level.upper())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Lifespan context manager for FastAPI.
        Handles startup and shutdown events.
        """
        if auth_service is not None:
            base_service.log_event("service.startup", {"service": "auth"})
            yield
            base_service.log_event("service.shutdown", {"service": "auth"})
            return

        engine, session_factory = create_engine_and_sessions(settings.database_url)
        service = None
        try:
            await create_tables(engine)
            service = AuthenticationService.from_settings(
                settings,
                user_store=SQLAlchemyUserStore(session_factory),
                activity_store=SQLAlchemyActivityStore(session_factory),
            )
            app.state.auth_service = service
            base_service.log_event("service.startup", {"service": "auth"})
            yield
        finally:
            base_service.log_event("service.shutdown", {"service": "auth"})
            if service is not None:
                service.close()
            await engine.dispose()

    app = FastAPI(
        title="Identity API",
        description="Credential and token service",
        lifespan=lifespan,
    )
    app.state.auth_service = auth_service

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, replace with specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router, prefix="/auth", tags=["auth"])

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint returning API information."""
        return {
            "name": "Identity API",
            "version": "0.1.0",
            "services": ["auth"],
        }

    @app.get("/health", tags=["health"])
    async def health_check():
        """Overall system health check."""
        return {
            "status": "ok",
            "services": {
                "auth": "online" if app.state.auth_service is not None else "offline",
            }
        }

    return app
