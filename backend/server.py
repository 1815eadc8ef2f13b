from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
import uuid
from contextlib import asynccontextmanager
from typing import Optional
import logging

from database import Database
from drivecrm import __version__
from drivecrm.config import Settings
from drivecrm.errors import CRMError
from drivecrm.routes import activities, comments, imports, leads, reminders, statuses, users
from drivecrm.services import CRMServices, build_services
from drivecrm.utils.rate_limiter import TokenBucketRateLimiter

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Lifespan context manager for startup/shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("Starting DriveCRM API")
    database = None
    if app.state.services is None:
        database = Database(app.state.settings)
        await database.connect()
        app.state.services = build_services(database.get_db(), app.state.settings)

    yield

    # Shutdown
    logger.info("Shutting down DriveCRM API")
    if database is not None:
        await database.close()


def create_app(settings: Optional[Settings] = None, services: Optional[CRMServices] = None) -> FastAPI:
    """Build the API. ``services`` skips the MongoDB connection (tests, scripts)."""
    settings = settings or Settings.from_env()

    app = FastAPI(
        title="DriveCRM API",
        description="Multi-tenant lead assignment and activity audit",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.services = services
    app.state.rate_limiter = TokenBucketRateLimiter(
        capacity=settings.rate_limit_capacity,
        refill_per_second=settings.rate_limit_refill_per_second,
    )

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins.split(','),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(leads.router)
    app.include_router(comments.router)
    app.include_router(activities.router)
    app.include_router(users.router)
    app.include_router(statuses.router)
    app.include_router(reminders.router)
    app.include_router(imports.router)

    # Health check
    @app.get("/api/health")
    async def health_check():
        return {
            "status": "healthy",
            "environment": settings.environment,
            "version": __version__,
        }

    @app.exception_handler(CRMError)
    async def crm_error_handler(request: Request, exc: CRMError):
        if exc.status_code >= 500:
            logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        request_id = str(uuid.uuid4())
        errors = exc.errors()
        logger.warning(
            "Request validation failed request_id=%s path=%s errors=%s",
            request_id,
            request.url.path,
            [(e.get("loc"), e.get("msg"), e.get("type")) for e in errors],
        )
        return JSONResponse(
            status_code=422,
            content={
                "error": "INVALID_REQUEST",
                "message": "Request validation failed",
                "detail": [{"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in errors],
                "request_id": request_id,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "INTERNAL_ERROR", "message": "Internal server error"}
        )

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "server:app",
        host="0.0.0.0",
        port=8001,
        reload=app.state.settings.environment == "development"
    )
