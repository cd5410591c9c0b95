"""WebSocket connection registry for real-time events."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable

from fastapi import WebSocket

from safecircle.core import clock
from safecircle.core.events import PRESENCE_CHANGED, Event, EventBus, circle_group, user_group

logger = logging.getLogger(__name__)

# (event, [(user_id, error or None), ...]) after each fan-out
DeliveryListener = Callable[[Event, list[tuple[int, str | None]]], Awaitable[None]]


@dataclass
class Connection:
    """One live socket and the groups it is subscribed to."""

    id: str
    user_id: int
    websocket: WebSocket
    groups: set[str] = field(default_factory=set)


class ConnectionRegistry(EventBus):
    """Owns the connection -> group membership table and delivers events.

    Created once per process and started/stopped by the application
    lifespan. ``publish`` may be called from any thread; events are queued
    and a single dispatcher task delivers them in publish order.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._groups: dict[str, set[str]] = {}
        self._ids = itertools.count(1)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._queue: asyncio.Queue[Event] | None = None
        self._dispatcher: asyncio.Task | None = None
        self._listeners: list[DeliveryListener] = []

    # ---------- lifecycle ----------

    async def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._dispatcher = asyncio.create_task(self._dispatch())
        logger.info("Connection registry started")

    async def stop(self) -> None:
        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
        for conn in list(self._connections.values()):
            try:
                await conn.websocket.close(code=1001, reason="Server shutting down")
            except Exception:
                logger.debug("Socket %s already closed", conn.id)
        self._connections.clear()
        self._groups.clear()
        self._dispatcher = None
        self._queue = None
        self._loop = None
        logger.info("Connection registry stopped")

    def add_delivery_listener(self, listener: DeliveryListener) -> None:
        self._listeners.append(listener)

    # ---------- membership ----------

    def register(self, websocket: WebSocket, user_id: int, circle_ids: list[int]) -> Connection:
        """Track an accepted socket and subscribe it to its user and circle groups."""
        first_for_user = not self.user_connection_ids(user_id)
        conn = Connection(id=f"c{next(self._ids)}", user_id=user_id, websocket=websocket)
        self._connections[conn.id] = conn
        self.join_group(conn.id, user_group(user_id))
        for circle_id in circle_ids:
            self.join_group(conn.id, circle_group(circle_id))
        logger.info("WS connected: user=%s (total=%s)", user_id, self.total_connections)
        if first_for_user:
            self._publish_presence(conn, "online")
        return conn

    def unregister(self, connection_id: str) -> None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return
        for group in list(conn.groups):
            self._drop_from_group(connection_id, group)
        logger.info("WS disconnected: user=%s (total=%s)", conn.user_id, self.total_connections)
        if not self.user_connection_ids(conn.user_id):
            self._publish_presence(conn, "offline")

    def join_group(self, connection_id: str, group: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        conn.groups.add(group)
        self._groups.setdefault(group, set()).add(connection_id)

    def leave_group(self, connection_id: str, group: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        conn.groups.discard(group)
        self._drop_from_group(connection_id, group)

    def _drop_from_group(self, connection_id: str, group: str) -> None:
        members = self._groups.get(group)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self._groups[group]

    def user_connection_ids(self, user_id: int) -> list[str]:
        return [c.id for c in self._connections.values() if c.user_id == user_id]

    def group_members(self, group: str) -> set[str]:
        return set(self._groups.get(group, set()))

    @property
    def total_connections(self) -> int:
        return len(self._connections)

    # ---------- publishing ----------

    def publish(self, event: Event) -> None:
        loop, queue = self._loop, self._queue
        if loop is None or queue is None or loop.is_closed():
            logger.debug("Registry not running, dropping %s for %s", event.name, event.group)
            return
        loop.call_soon_threadsafe(queue.put_nowait, event)

    def update_presence(self, connection_id: str, status: str) -> None:
        """Announce a client-chosen status (e.g. "busy") to the connection's circles."""
        conn = self._connections.get(connection_id)
        if conn is not None:
            self._publish_presence(conn, status)

    def _publish_presence(self, conn: Connection, status: str) -> None:
        data = {"userId": conn.user_id, "status": status, "timestamp": clock.utcnow().isoformat()}
        for group in conn.groups:
            if group.startswith("circle:"):
                self.publish(Event(PRESENCE_CHANGED, group, data, exclude_user=conn.user_id))

    async def _dispatch(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            except Exception:
                logger.exception("Failed to deliver %s to %s", event.name, event.group)

    async def _deliver(self, event: Event) -> None:
        payload = json.dumps({"event": event.name, "data": event.data}, default=str)
        results: list[tuple[int, str | None]] = []
        dead: list[str] = []
        for connection_id in sorted(self.group_members(event.group)):
            conn = self._connections.get(connection_id)
            if conn is None or conn.user_id == event.exclude_user:
                continue
            try:
                await conn.websocket.send_text(payload)
                results.append((conn.user_id, None))
            except Exception as exc:
                dead.append(connection_id)
                results.append((conn.user_id, str(exc) or exc.__class__.__name__))
        for connection_id in dead:
            self.unregister(connection_id)
        for listener in self._listeners:
            try:
                await listener(event, results)
            except Exception:
                logger.exception("Delivery listener failed for %s", event.name)
