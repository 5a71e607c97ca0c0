"""
WebSocket message handlers.

Handles incoming WebSocket message types and routes them to the session's aggregator.
"""

import json
from typing import Any, Awaitable, Callable, Dict
from fastapi import WebSocket

from ..core.sessions import AgentSession
from ..core.state import UnknownServerError


class MessageHandler:
    """
    Handles incoming WebSocket messages for one subscriber.

    Each method handles a specific message type from the client.
    """

    def __init__(
        self,
        websocket: WebSocket,
        session: AgentSession,
        send_state: Callable[[dict], Awaitable[None]],
    ):
        self.websocket = websocket
        self.session = session
        self.send_state = send_state

    async def handle(self, data: Dict[str, Any]):
        """Route a message to the appropriate handler."""
        msg_type = data.get("type")
        handler = getattr(self, f"_handle_{msg_type}", None)

        if handler:
            await handler(data)
        # Silently ignore unknown types

    async def _handle_remove_server(self, data: Dict[str, Any]):
        """Handle server removal; the resulting snapshot is broadcast by the aggregator."""
        server_id = data.get("id")
        if not server_id:
            return
        try:
            await self.session.aggregator.remove_server(server_id)
        except UnknownServerError:
            await self.websocket.send_text(
                json.dumps({"type": "error", "content": f"Unknown server: {server_id}"})
            )

    async def _handle_get_state(self, data: Dict[str, Any]):
        """Re-send the current snapshot to this subscriber only."""
        await self.session.aggregator.send_snapshot(self.send_state)
