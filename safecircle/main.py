"""safecircle FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from safecircle.api import alerts, auth, checkins, circles, health, users, ws
from safecircle.core.config import settings
from safecircle.core.errors import SafeCircleError
from safecircle.core.events import ALERT_CREATED, ALERT_ESCALATED, Event
from safecircle.core.scheduler import start_scheduler
from safecircle.core.ws_manager import ConnectionRegistry
from safecircle.db.session import SessionLocal
from safecircle.services import alert_service

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)

LEDGER_EVENTS = (ALERT_CREATED, ALERT_ESCALATED)


def _record_deliveries(alert_id: int, results: list[tuple[int, str | None]]) -> None:
    db = SessionLocal()
    try:
        alert_service.record_deliveries(db, alert_id, results)
    finally:
        db.close()


async def record_alert_deliveries(event: Event, results: list[tuple[int, str | None]]) -> None:
    """Feed socket fan-out outcomes of alert events into the delivery ledger."""
    if event.name not in LEDGER_EVENTS or not results:
        return
    await run_in_threadpool(_record_deliveries, event.data["alertId"], results)


@asynccontextmanager
async def lifespan(app: FastAPI):
    channel = ConnectionRegistry()
    channel.add_delivery_listener(record_alert_deliveries)
    await channel.start()
    app.state.channel = channel

    scheduler = start_scheduler(channel) if settings.escalation_sweep_enabled else None
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await channel.stop()
        app.state.channel = None


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan,
)


@app.exception_handler(SafeCircleError)
async def safecircle_error_handler(request: Request, exc: SafeCircleError):
    return JSONResponse(status_code=exc.status_code, content=exc.envelope())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        msg = err.get("msg", "Invalid value").removeprefix("Value error, ")
        errors.append(f"{'.'.join(loc)}: {msg}" if loc else msg)
    logger.debug("Validation error on %s: %s", request.url.path, errors)
    return JSONResponse(
        status_code=400,
        content={"success": False, "message": "Validation failed", "code": "validation_error", "errors": errors},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "code": "server_error"},
    )


app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(circles.router)
app.include_router(checkins.router)
app.include_router(alerts.router)
app.include_router(ws.router)
