"""
WebSocket endpoint for real-time state replication.

Each browser tab subscribes to exactly one session's aggregate state.
"""
import json
from fastapi import WebSocket, WebSocketDisconnect

from ..core.sessions import agent_sessions
from .handlers import MessageHandler


async def websocket_endpoint(websocket: WebSocket):
    """
    Session WebSocket: /agents/{session_id}/ws

    Client -> Server messages (JSON):
      - remove_server: Remove an upstream server by id
      - get_state: Ask for the current snapshot again

    Server -> Client messages (JSON):
      - state: Full aggregate-state snapshot (servers, tools, prompts, resources).
               Sent on connect and after every change.
      - error: Error message
    """
    session_id = websocket.path_params.get("session_id", "")
    try:
        session = await agent_sessions.get_or_create(session_id)
    except ValueError:
        await websocket.close(code=1008)
        return

    await session.connections.connect(websocket)

    async def send_state(snapshot: dict):
        await websocket.send_text(json.dumps({"type": "state", "content": snapshot}))

    handler = MessageHandler(websocket, session, send_state)

    try:
        # Initial snapshot so a fresh tab renders without waiting for a change
        await session.aggregator.send_snapshot(send_state)

        while True:
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except Exception:
                continue  # Ignore malformed messages
            if not isinstance(data, dict):
                continue

            await handler.handle(data)

    except WebSocketDisconnect:
        session.connections.disconnect(websocket)
