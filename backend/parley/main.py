"""
Main FastAPI application.
This is the entry point for the backend server.
"""
import logging
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import uvicorn
from parley.core.config import settings
from parley.core.errors import PersistenceError, ValidationError
from parley.core.logging_config import setup_logging
from parley.db.database import init_db
from parley.api.endpoints import chat


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    setup_logging(settings.LOG_LEVEL)
    logger.info("Environment: %s", settings.ENVIRONMENT)
    await init_db()
    logger.info("Database initialized")

    yield

    logger.info("Shutting down")


async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "message": str(exc)},
    )


async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"success": False, "message": "Service temporarily unavailable"},
    )


def create_app(use_lifespan: bool = True) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        use_lifespan: Run database initialization on startup
    """
    application = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        description="Bilingual intent-routed chat backend",
        lifespan=lifespan if use_lifespan else None
    )

    # Configure CORS
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_exception_handler(ValidationError, validation_error_handler)
    application.add_exception_handler(PersistenceError, persistence_error_handler)

    application.include_router(chat.router)

    @application.get("/")
    async def root():
        """Root endpoint - health check"""
        return {
            "message": settings.APP_NAME,
            "version": settings.VERSION,
            "status": "running"
        }

    @application.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    return application


app = create_app()


def run():
    """Serve the app with uvicorn using HOST/PORT from settings"""
    uvicorn.run("parley.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
