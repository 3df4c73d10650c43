"""TableBook — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tablebook.api.v1.availability import router as availability_router
from tablebook.api.v1.bookings import router as bookings_router
from tablebook.api.v1.restaurants import router as restaurants_router
from tablebook.config import settings
from tablebook.exceptions import (
    BookingError,
    InvalidTransition,
    NotFound,
    ServiceUnavailable,
    SlotUnavailable,
    Unauthorized,
    ValidationError,
)

# Configure root logger so all tablebook.* loggers output to stderr (captured by Docker).
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[BookingError], int] = {
    ValidationError: 422,
    SlotUnavailable: 409,
    NotFound: 404,
    Unauthorized: 403,
    InvalidTransition: 409,
    ServiceUnavailable: 503,
}


def status_code_for(exc: BookingError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    from tablebook.database import async_session_factory, engine
    from tablebook.services.engine import ReservationEngine

    # Startup
    app.state.engine = ReservationEngine(async_session_factory)
    logger.info("%s %s started (%s)", settings.app_name, settings.app_version, settings.environment)
    yield
    # Shutdown: close live subscriptions and flush notifications before disposing connections
    await app.state.engine.close()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Restaurant table reservations: availability, bookings and live booking lists.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=code, content={"detail": exc.to_dict()})


# Routers
app.include_router(availability_router)
app.include_router(bookings_router)
app.include_router(restaurants_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
