"""
WebSocket handler relaying simulation events to session clients.
"""

import logging
import asyncio
import json
from typing import Dict, List, Optional
from datetime import datetime

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from dkasim.core.event_bus import EventBus
from dkasim.engine.simulation_engine import get_simulation_engine
from dkasim.models.events import SimEvent

logger = logging.getLogger(__name__)

router = APIRouter()


class ConnectionManager:
    """
    Manages WebSocket connections per session and relays every published
    SimEvent to the clients of the session it belongs to.
    """

    def __init__(self):
        self.connections: Dict[str, List[WebSocket]] = {}
        self._lock = asyncio.Lock()
        self._bus: Optional[EventBus] = None

    def attach(self, event_bus: EventBus) -> None:
        """Subscribe to every event on the bus."""
        if self._bus is event_bus:
            return
        if self._bus is not None:
            self._bus.unsubscribe_all(self._on_event)
        event_bus.subscribe_all(self._on_event, priority=10)
        self._bus = event_bus
        logger.info("WebSocket manager subscribed to simulation events")

    def detach(self) -> None:
        if self._bus is not None:
            self._bus.unsubscribe_all(self._on_event)
            self._bus = None

    async def connect(self, session_id: str, websocket: WebSocket) -> None:
        """Accept and register a new WebSocket connection."""
        await websocket.accept()
        async with self._lock:
            self.connections.setdefault(session_id, []).append(websocket)

        logger.info(
            f"WebSocket connected to session {session_id}. "
            f"Session connections: {len(self.connections[session_id])}"
        )

    async def disconnect(self, session_id: str, websocket: WebSocket) -> None:
        """Remove a WebSocket connection."""
        async with self._lock:
            sockets = self.connections.get(session_id, [])
            if websocket in sockets:
                sockets.remove(websocket)
            if not sockets:
                self.connections.pop(session_id, None)

        logger.info(f"WebSocket disconnected from session {session_id}")

    async def broadcast(self, session_id: str, message: dict) -> None:
        """Send a message to every client of one session."""
        sockets = list(self.connections.get(session_id, []))
        if not sockets:
            return

        message_json = json.dumps(message, default=str)

        disconnected = []
        for connection in sockets:
            try:
                await connection.send_text(message_json)
            except Exception as e:
                logger.warning(f"Failed to send to client: {e}")
                disconnected.append(connection)

        for conn in disconnected:
            await self.disconnect(session_id, conn)

    async def send_to_client(self, session_id: str, websocket: WebSocket, message: dict) -> None:
        try:
            await websocket.send_text(json.dumps(message, default=str))
        except Exception as e:
            logger.warning(f"Failed to send to client: {e}")
            await self.disconnect(session_id, websocket)

    async def _on_event(self, event: SimEvent) -> None:
        await self.broadcast(event.session_id, event.to_dict())

    def connection_count(self, session_id: Optional[str] = None) -> int:
        if session_id is not None:
            return len(self.connections.get(session_id, []))
        return sum(len(sockets) for sockets in self.connections.values())


# Global connection manager
manager = ConnectionManager()


@router.websocket("/ws/{session_id}")
async def websocket_endpoint(websocket: WebSocket, session_id: str):
    """
    Real-time channel for one session.

    Clients receive the full session state on connect and then every
    simulation event for the session. They can send:
    - {"type": "ping"} for keepalive
    - {"type": "request_state"} to re-sync
    """
    engine = get_simulation_engine()
    if engine.repository.get_session(session_id) is None:
        await websocket.close(code=4404)
        return

    await manager.connect(session_id, websocket)

    try:
        await _send_session_state(session_id, websocket)
        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to_client(session_id, websocket, {
                    "type": "error",
                    "message": "Invalid JSON"
                })
                continue
            await _handle_client_message(session_id, websocket, message)

    except WebSocketDisconnect:
        await manager.disconnect(session_id, websocket)
    except Exception as e:
        logger.error(f"WebSocket error: {e}", exc_info=True)
        await manager.disconnect(session_id, websocket)


async def _send_session_state(session_id: str, websocket: WebSocket) -> None:
    state = get_simulation_engine().get_session_state(session_id)
    if state is None:
        return
    await manager.send_to_client(session_id, websocket, {
        "type": "session:state",
        "timestamp": datetime.now().isoformat(),
        "data": state.to_public()
    })


async def _handle_client_message(session_id: str, websocket: WebSocket, message: dict) -> None:
    msg_type = message.get("type", "") if isinstance(message, dict) else ""

    if msg_type == "ping":
        await manager.send_to_client(session_id, websocket, {
            "type": "pong",
            "timestamp": datetime.now().isoformat()
        })

    elif msg_type == "request_state":
        await _send_session_state(session_id, websocket)

    else:
        await manager.send_to_client(session_id, websocket, {
            "type": "error",
            "message": f"Unknown message type: {msg_type}"
        })


@router.get("/ws/status")
async def websocket_status():
    """Get WebSocket connection status."""
    return {
        "active_connections": manager.connection_count(),
        "sessions": {sid: len(sockets) for sid, sockets in manager.connections.items()}
    }
