"""WebSocket endpoint with JWT auth."""

from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.concurrency import run_in_threadpool

from safecircle.core.config import settings
from safecircle.core.deps import user_from_access_token
from safecircle.core.errors import AuthenticationError, InactiveAccountError
from safecircle.core.events import circle_group
from safecircle.core.ws_manager import Connection, ConnectionRegistry
from safecircle.db.session import SessionLocal
from safecircle.models.circle import Circle
from safecircle.services import circle_service

logger = logging.getLogger(__name__)

router = APIRouter()

CLOSE_UNAUTHENTICATED = 4401
CLOSE_FORBIDDEN = 4403
CLOSE_HEARTBEAT_TIMEOUT = 4408

PRESENCE_STATUS_MAX = 32


def _token_from(websocket: WebSocket) -> str | None:
    token = websocket.query_params.get("token")
    if token:
        return token
    scheme, _, credentials = websocket.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


def _authenticate(token: str | None) -> tuple[int, list[int]]:
    """Resolve the credential to a user id and that user's circles."""
    db = SessionLocal()
    try:
        user = user_from_access_token(db, token)
        return user.id, circle_service.user_circle_ids(db, user.id)
    finally:
        db.close()


def _can_join(user_id: int, circle_id: int) -> bool:
    db = SessionLocal()
    try:
        circle = db.get(Circle, circle_id)
        return circle is not None and circle.is_active and circle_service.is_member(circle, user_id)
    finally:
        db.close()


async def _send(websocket: WebSocket, event: str, data: dict | None = None) -> None:
    frame = {"event": event} if data is None else {"event": event, "data": data}
    await websocket.send_text(json.dumps(frame))


async def _handle_message(
    websocket: WebSocket,
    channel: ConnectionRegistry,
    conn: Connection,
    raw: str,
) -> None:
    try:
        message = json.loads(raw)
        event = message["event"]
        data = message.get("data") or {}
    except (ValueError, KeyError, TypeError, AttributeError):
        await _send(websocket, "error", {"message": "Malformed message"})
        return

    if event == "presence.update":
        status = data.get("status") if isinstance(data, dict) else None
        if not isinstance(status, str) or not 0 < len(status.strip()) <= PRESENCE_STATUS_MAX:
            await _send(websocket, "error", {"message": f"status must be 1 to {PRESENCE_STATUS_MAX} characters"})
            return
        channel.update_presence(conn.id, status.strip())
        return

    if event not in ("circle.join", "circle.leave"):
        await _send(websocket, "error", {"message": f"Unknown event: {event}"})
        return
    try:
        circle_id = int(data["circleId"])
    except (KeyError, TypeError, ValueError):
        await _send(websocket, "error", {"message": "circleId is required"})
        return

    if event == "circle.leave":
        channel.leave_group(conn.id, circle_group(circle_id))
        await _send(websocket, "circle.left", {"circleId": circle_id})
        return

    if not await run_in_threadpool(_can_join, conn.user_id, circle_id):
        await _send(websocket, "error", {"message": "You are not a member of this circle", "circleId": circle_id})
        return
    channel.join_group(conn.id, circle_group(circle_id))
    await _send(websocket, "circle.joined", {"circleId": circle_id})


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint. Client connects with ?token=<jwt> or an Authorization header.
    Server pushes {"event", "data"} frames for the user's circles; the client may
    send "ping", circle.join, circle.leave and presence.update.
    """
    channel: ConnectionRegistry = websocket.app.state.channel
    await websocket.accept()

    try:
        user_id, circle_ids = await run_in_threadpool(_authenticate, _token_from(websocket))
    except InactiveAccountError as exc:
        logger.warning("WS rejected: %s", exc.message)
        await websocket.close(code=CLOSE_FORBIDDEN, reason="Account is deactivated")
        return
    except AuthenticationError as exc:
        logger.warning("WS rejected: %s", exc.message)
        await websocket.close(code=CLOSE_UNAUTHENTICATED, reason=exc.message)
        return

    conn = channel.register(websocket, user_id, circle_ids)
    try:
        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=settings.ws_heartbeat_timeout_seconds)
            except asyncio.TimeoutError:
                logger.info("WS heartbeat timeout: user=%s", user_id)
                await websocket.close(code=CLOSE_HEARTBEAT_TIMEOUT, reason="Heartbeat timeout")
                break
            if raw == "ping":
                await _send(websocket, "pong")
                continue
            await _handle_message(websocket, channel, conn, raw)
    except WebSocketDisconnect:
        pass
    finally:
        channel.unregister(conn.id)
