from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Set
from uuid import UUID

from starlette.websockets import WebSocket, WebSocketState

from src.schemas.realtime import DashboardEvent, WsEnvelope

logger = logging.getLogger(__name__)


class BroadcastManager:
    """
    Simple in-process pub-sub manager for WebSocket topics.

    Topics:
      - dashboard:{tenant_id}
    """

    def __init__(self) -> None:
        self._topics: Dict[str, Set[WebSocket]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._global_lock = asyncio.Lock()

    def _topic_lock(self, topic: str) -> asyncio.Lock:
        if topic not in self._locks:
            self._locks[topic] = asyncio.Lock()
        return self._locks[topic]

    # PUBLIC_INTERFACE
    def dashboard_topic(self, tenant_id: UUID | str) -> str:
        """Return dashboard topic name for tenant."""
        return f"dashboard:{tenant_id}"

    async def _ensure_topic(self, topic: str) -> None:
        async with self._global_lock:
            if topic not in self._topics:
                self._topics[topic] = set()

    def subscriber_count(self, topic: str) -> int:
        return len(self._topics.get(topic, ()))

    # PUBLIC_INTERFACE
    async def connect(self, topic: str, websocket: WebSocket) -> None:
        """Add an accepted websocket to topic subscribers."""
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            self._topics[topic].add(websocket)
            logger.info("WebSocket connected to topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def disconnect(self, topic: str, websocket: WebSocket) -> None:
        """Remove websocket from topic subscribers."""
        if topic not in self._topics:
            return
        async with self._topic_lock(topic):
            self._topics[topic].discard(websocket)
            logger.info("WebSocket disconnected from topic=%s; subscribers=%d", topic, len(self._topics[topic]))

    # PUBLIC_INTERFACE
    async def broadcast(self, topic: str, message: dict, exclude: Optional[WebSocket] = None) -> None:
        """
        Broadcast a dict message to all subscribers in the topic.
        """
        await self._ensure_topic(topic)
        async with self._topic_lock(topic):
            to_drop: list[WebSocket] = []
            for ws in list(self._topics[topic]):
                if exclude is not None and ws is exclude:
                    continue
                try:
                    if ws.application_state == WebSocketState.DISCONNECTED or ws.client_state == WebSocketState.DISCONNECTED:
                        to_drop.append(ws)
                        continue
                    await ws.send_json(message)
                except Exception:
                    logger.exception("Failed to send message to websocket; scheduling drop")
                    to_drop.append(ws)
            for ws in to_drop:
                self._topics[topic].discard(ws)

    # PUBLIC_INTERFACE
    async def publish_dashboard_snapshot(self, tenant_id: UUID | str, snapshot: dict) -> None:
        """Publish a full dashboard stats snapshot to the tenant's dashboard topic."""
        env = WsEnvelope(type="dashboard.snapshot", payload=snapshot)
        await self.broadcast(self.dashboard_topic(tenant_id), env.model_dump(mode="json"))

    # PUBLIC_INTERFACE
    async def publish_dashboard_event(self, tenant_id: UUID | str, event: DashboardEvent) -> None:
        """Publish a business event to the tenant's dashboard topic."""
        env = WsEnvelope(type=event.event, payload=event.model_dump(mode="json"), user_id=event.user_id)
        await self.broadcast(self.dashboard_topic(tenant_id), env.model_dump(mode="json"))


async def notify_dashboard(tenant_id: UUID | str, event: str, details: dict, user_id: Optional[UUID] = None) -> None:
    """Best-effort push of a business event; failures are logged, never raised."""
    topic = broadcast_manager.dashboard_topic(tenant_id)
    if not broadcast_manager.subscriber_count(topic):
        return
    try:
        await broadcast_manager.publish_dashboard_event(
            tenant_id, DashboardEvent(event=event, details=details, user_id=user_id)
        )
    except Exception:
        logger.exception("Failed to publish dashboard event %s", event)


# Singleton instance
broadcast_manager = BroadcastManager()
