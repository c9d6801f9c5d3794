"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI, Request

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import APIRouter
from fastapi.middleware.cors import CORSMiddleware

from src.booking.service import BookingService
from src.config.settings import Settings, get_settings
from src.services.token_provider import TokenProvider
from src.shared.errors import CredentialUnavailableError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    Creates the single TokenProvider and BookingService for the
    process on startup, and waits for background return-trip bookings
    on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        Control to the running application.
    """
    settings: Settings = app.state.settings
    if getattr(app.state, "booking_service", None) is None:
        token_provider = TokenProvider(settings)
        app.state.token_provider = token_provider
        app.state.booking_service = BookingService(settings, token_provider)
    logger.info(
        "booker_engine_started",
        extra={"environment": settings.environment, "mock_booking": settings.mock_booking},
    )
    yield
    await app.state.booking_service.drain()


def create_app(
    settings: Settings | None = None,
    booking_service: BookingService | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override; loaded from env when omitted.
        booking_service: Pre-built service (tests inject one).

    Returns:
        Configured FastAPI instance.
    """
    settings = settings or get_settings()
    app = FastAPI(
        title="Booker Orchestrator",
        description="Order orchestration and amendment engine for the Booker dispatch API",
        version="0.1.0",
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.booking_service = booking_service
    if booking_service is not None:
        app.state.token_provider = booking_service.token_provider

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(_health_router())

    from src.api.booking_routes import router as booking_router

    app.include_router(booking_router)

    return app


def _health_router() -> APIRouter:
    """Create health check router.

    Returns:
        Router with health endpoints.
    """
    from fastapi import APIRouter

    router = APIRouter(tags=["health"])

    @router.get("/health")
    async def health() -> dict[str, str]:
        """Return application health status.

        Returns:
            Dict with status key.
        """
        return {"status": "ok"}

    @router.get("/health/booker")
    async def booker_health(request: Request) -> dict[str, Any]:
        """Report Booker configuration and whether a token can be issued.

        Returns:
            Dict with configuration flags and token status.
        """
        settings: Settings = request.app.state.settings
        report: dict[str, Any] = {
            "status": "ok",
            "domain": settings.booker_api_domain,
            "api_key_configured": bool(settings.booker_api_key),
            "company_id_configured": bool(settings.booker_company_id),
            "provider_id": settings.effective_provider_id,
            "mock_booking": settings.mock_booking,
        }
        if settings.mock_booking:
            report["token"] = "skipped"
            return report
        try:
            await request.app.state.token_provider.get_token()
        except CredentialUnavailableError as exc:
            report["status"] = "degraded"
            report["token"] = "unavailable"
            report["token_error"] = exc.message
        else:
            report["token"] = "ok"
        return report

    return router


app = create_app()
