"""
FastAPI application factory for the Book Review API.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorClient

from bookreview_api.config import APIConfig
from bookreview_api.database import CatalogRepository
from bookreview_api.errors import register_exception_handlers
from bookreview_api.models import HealthResponse
from bookreview_api.routes import api_router
from utilities.logger import RequestLogger, get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects to MongoDB unless a repository was injected into ``create_app``.
    """
    logger.info("Starting Book Review API")
    config: APIConfig = app.state.config
    client = None

    if getattr(app.state, "repository", None) is None:
        try:
            client = AsyncIOMotorClient(config.mongodb_url)
            database = client[config.mongodb_database]

            # Test connection
            await database.command("ping")
            logger.info("Database connection established", database=config.mongodb_database)

            repository = CatalogRepository(database)
            await repository.create_indexes()
            app.state.repository = repository

        except Exception as e:
            logger.error("Failed to connect to database", error=str(e))
            if client is not None:
                client.close()
            raise

    yield

    logger.info("Shutting down Book Review API")
    if client is not None:
        client.close()
        app.state.repository = None


def create_app(config: Optional[APIConfig] = None, repository: Optional[CatalogRepository] = None) -> FastAPI:
    """
    Build the application.

    Args:
        config: Settings; read from the environment when omitted
        repository: Persistence façade to use instead of connecting at startup

    Returns:
        Configured FastAPI instance
    """
    if config is None:
        config = APIConfig()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_file,
        debug=config.debug
    )

    app = FastAPI(
        title=config.api_title,
        description=config.api_description,
        version=config.api_version,
        lifespan=lifespan
    )
    app.state.config = config
    app.state.repository = repository

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=config.cors_allow_credentials,
        allow_methods=config.cors_allow_methods,
        allow_headers=config.cors_allow_headers,
    )

    request_logger = RequestLogger()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = request_logger.start()
        response = await call_next(request)
        request_logger.log_request(request.method, request.url.path, response.status_code, started)
        return response

    register_exception_handlers(app)

    # Health check endpoint (no authentication required)
    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check(request: Request):
        """Health check that also pings the database; 503 when it is unreachable."""
        db_health = await request.app.state.repository.health_check()
        if db_health.get("status") != "healthy":
            logger.warning("Health check degraded", database=db_health)
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content=HealthResponse(status="unavailable").model_dump()
            )
        return HealthResponse(status="ok")

    app.include_router(api_router, prefix="/api")
    return app
