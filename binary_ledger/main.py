"""
FastAPI application entry point.
Configures middleware, routes, error rendering and the settlement lifecycle.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from binary_ledger import __version__
from binary_ledger.config import get_settings
from binary_ledger.db.database import init_db, async_session_factory
from binary_ledger.core.exceptions import AppException, ValidationError
from binary_ledger.core.logging_service import (
    setup_structured_logging,
    RequestLoggingMiddleware,
    log_system_event,
)
from binary_ledger.core.websocket import connection_manager
from binary_ledger.api.routes import trades_router, trading_router, wallet_router, websocket_router
from binary_ledger.services.price_source import build_price_source
from binary_ledger.services.trading_service import TradingService


app_settings = get_settings()

if not app_settings.debug:
    setup_structured_logging(level="INFO", json_output=True)
else:
    setup_structured_logging(level="DEBUG", json_output=False)

logger = logging.getLogger(__name__)


async def _heartbeat_loop() -> None:
    while True:
        await asyncio.sleep(connection_manager.heartbeat_interval)
        await connection_manager.send_heartbeat()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates tables, builds the trading service and starts settlement
    (which reschedules every trade left active by a previous run).
    """
    logger.info(f"Starting {app_settings.app_name}")
    await init_db()

    service = TradingService.from_settings(
        app_settings,
        async_session_factory,
        build_price_source(app_settings),
        connection_manager,
    )
    app.state.trading_service = service
    await service.start()
    heartbeat = asyncio.create_task(_heartbeat_loop(), name="ws-heartbeat")

    log_system_event(
        "startup",
        "api",
        environment="debug" if app_settings.debug else "production",
        price_feed=app_settings.price_feed,
    )

    yield

    logger.info(f"Shutting down {app_settings.app_name}")
    heartbeat.cancel()
    await asyncio.gather(heartbeat, return_exceptions=True)
    await service.stop()
    log_system_event("shutdown", "api", reason="normal")


app = FastAPI(
    title="Binary Ledger",
    description="Binary trade placement and settlement service",
    version=__version__,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.cors_origins_list,
    allow_credentials=app_settings.cors_allow_credentials,
    allow_methods=app_settings.cors_methods_list,
    allow_headers=app_settings.cors_headers_list,
)
app.add_middleware(RequestLoggingMiddleware)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Renders domain errors as {"error", "message", "details"}."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests get the same error body as domain errors."""
    error = ValidationError(
        "Request validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
    return JSONResponse(status_code=422, content=error.to_dict())


app.include_router(trades_router, prefix="/api/v1")
app.include_router(trading_router, prefix="/api/v1")
app.include_router(wallet_router, prefix="/api/v1")
app.include_router(websocket_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """
    Basic health check endpoint for load balancers.
    """
    service: TradingService | None = getattr(app.state, "trading_service", None)
    return {
        "status": "healthy",
        "app": app_settings.app_name,
        "version": __version__,
        "pending_settlements": service.engine.pending_count if service else 0,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
