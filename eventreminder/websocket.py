import json
import logging
from typing import Any, Dict, List, Mapping

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.requests import HTTPConnection

logger = logging.getLogger(__name__)

REMINDER_OPTIONS = ["Done", "Remind me later"]


def build_reminder_payload(address: str, event: Mapping[str, Any]) -> Dict[str, Any]:
    return {
        "phoneNumber": address,
        "message": f"Reminder: {event.get('name')} at {event.get('time')}",
        "options": list(REMINDER_OPTIONS),
    }


class LiveNotificationEmitter:
    """Fan-out of ad-hoc reminder prompts to WebSocket clients, keyed by messaging address.

    Fire-and-forget: nothing is persisted or retried, and send failures only
    drop the failing socket.
    """

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, address: str):
        await websocket.accept()
        if address not in self.active_connections:
            self.active_connections[address] = []
        self.active_connections[address].append(websocket)
        logger.info(f"📡 [Live] New client connected for {address}")

    def disconnect(self, websocket: WebSocket, address: str):
        if address in self.active_connections:
            try:
                self.active_connections[address].remove(websocket)
            except ValueError:
                return  # already removed
            if not self.active_connections[address]:
                del self.active_connections[address]
            logger.info(f"🔌 [Live] Client disconnected for {address}")

    @property
    def client_count(self) -> int:
        return sum(len(conns) for conns in self.active_connections.values())

    async def emit(self, address: str, event: Mapping[str, Any]) -> int:
        """Push a reminder prompt to every client subscribed under ``address``.

        Returns the number of clients that received it.
        """
        payload = build_reminder_payload(address, event)
        connections = list(self.active_connections.get(address, []))
        if not connections:
            logger.debug(f"[Live] No active connections for {address}")
            return 0

        delivered = 0
        for connection in connections:
            try:
                await connection.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ [Live] Dropping client for {address}: {e!r}")
                self.disconnect(connection, address)
        return delivered


router = APIRouter()


def get_emitter(connection: HTTPConnection) -> LiveNotificationEmitter:
    """The emitter owned by the running app."""
    return connection.app.state.emitter


@router.websocket("/ws/{address}")
async def reminder_socket(websocket: WebSocket, address: str):
    """Subscribe to reminder prompts for ``address``.

    Clients may send ``{"type": "notify", "phoneNumber": ..., "event": {"name": ..., "time": ...}}``
    to have a prompt emitted to every client of that address. Frames that are
    not JSON objects are ignored.
    """
    live = get_emitter(websocket)
    await live.connect(websocket, address)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                logger.debug(f"[Live] Ignoring non-JSON frame from {address}")
                continue
            if not isinstance(data, dict) or data.get("type") != "notify":
                continue
            event = data.get("event")
            if not isinstance(event, dict):
                continue
            await live.emit(data.get("phoneNumber") or address, event)
    except WebSocketDisconnect:
        pass
    finally:
        live.disconnect(websocket, address)
