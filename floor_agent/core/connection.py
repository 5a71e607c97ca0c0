"""
WebSocket connection management.

Each agent session owns one ConnectionManager: the set of browser tabs
subscribed to that session's replicated state.
"""
from typing import Any, List
from fastapi import WebSocket
import json


class ConnectionManager:
    """
    Manages WebSocket connections for one session.

    Handles:
    - Connection tracking
    - Safe message broadcasting
    - Automatic disconnection cleanup
    """

    def __init__(self):
        self.active_connections: List[WebSocket] = []

    async def connect(self, websocket: WebSocket):
        """Accept and track a new WebSocket connection."""
        await websocket.accept()
        self.active_connections.append(websocket)

    def disconnect(self, websocket: WebSocket):
        """Remove a WebSocket from tracked connections."""
        if websocket in self.active_connections:
            self.active_connections.remove(websocket)

    async def broadcast(self, message: str):
        """
        Broadcast a message to all connected clients.

        Sends are awaited one after another, so each subscriber receives
        messages in the order broadcast() was called. A failed send only
        drops that subscriber.
        """
        disconnected = []
        for connection in list(self.active_connections):
            try:
                await connection.send_text(message)
            except Exception:
                disconnected.append(connection)

        # Remove disconnected clients
        for conn in disconnected:
            self.disconnect(conn)

    async def broadcast_json(self, message_type: str, content: Any):
        """Broadcast a JSON message with type and content fields."""
        message = json.dumps({"type": message_type, "content": content})
        await self.broadcast(message)

    async def broadcast_state(self, snapshot: dict):
        """Push a full aggregate-state snapshot."""
        await self.broadcast_json("state", snapshot)
