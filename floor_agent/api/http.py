"""
HTTP REST API endpoints.

Use for:
- Health checks
- Registering / removing upstream MCP servers for a session (add-mcp)
- The OAuth redirect target upstream authorization servers send users back to
- Proxying a tool call to a ready upstream

Live state is not polled here: it is pushed over the session websocket.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

from ..config import ADD_SERVER_WAIT_SECONDS, STATIC_DIR, ConnectionState
from ..core.sessions import AgentSession, agent_sessions
from ..core.state import UnknownServerError
from ..mcp_integration.manager import ServerNotReadyError


router = APIRouter()


async def _session(session_id: str) -> AgentSession:
    try:
        return await agent_sessions.get_or_create(session_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ============================================
# Browser client + health
# ============================================


@router.get("/", response_class=HTMLResponse)
async def index():
    """Serve the minimal browser client."""
    return HTMLResponse((STATIC_DIR / "index.html").read_text(encoding="utf-8"))


@router.get("/api/health")
async def health_check():
    """Check if the server is running."""
    return {"status": "healthy"}


# ============================================
# Upstream servers
# ============================================


class AddServerRequest(BaseModel):
    """Request body for add-mcp."""

    url: str


class ToolCallRequest(BaseModel):
    """Request body for proxying a tool call."""

    arguments: Dict[str, Any] = Field(default_factory=dict)


@router.post("/agents/{session_id}/add-mcp")
async def add_mcp_server(session_id: str, body: AddServerRequest):
    """
    Register an upstream MCP server for this session.

    Connecting continues in the background. We wait briefly for the first
    transition so that, when the upstream needs authorization, the response
    already carries authUrl for the browser to open in a popup. Later
    transitions (ready / error) only arrive over the websocket.
    """
    if not body.url.strip():
        raise HTTPException(status_code=400, detail="Server URL cannot be empty")

    session = await _session(session_id)
    record = await session.aggregator.add_server(body.url)
    current = await session.aggregator.wait_for_progress(record.id, ADD_SERVER_WAIT_SECONDS)
    if current is None:
        raise HTTPException(status_code=404, detail=f"Server {record.id} was removed while connecting")

    response: Dict[str, Any] = {"id": current.id, "state": current.state}
    if current.state == ConnectionState.AUTHENTICATING and current.auth_url:
        response["authUrl"] = current.auth_url
    return response


@router.get("/agents/{session_id}/state")
async def get_state(session_id: str):
    """Current aggregate-state snapshot (same shape as the websocket pushes)."""
    session = await _session(session_id)
    return session.aggregator.snapshot()


@router.delete("/agents/{session_id}/servers/{server_id}")
async def remove_mcp_server(session_id: str, server_id: str):
    """Remove a server record and every tool/prompt/resource it contributed."""
    session = await _session(session_id)
    try:
        await session.aggregator.remove_server(server_id)
    except UnknownServerError:
        raise HTTPException(status_code=404, detail=f"Unknown server: {server_id}")
    return {"status": "removed", "id": server_id}


@router.post("/agents/{session_id}/servers/{server_id}/tools/{tool_name}")
async def call_mcp_tool(session_id: str, server_id: str, tool_name: str, body: ToolCallRequest):
    """Proxy a tool call to a ready upstream server."""
    session = await _session(session_id)
    try:
        return await session.aggregator.call_tool(server_id, tool_name, body.arguments)
    except UnknownServerError:
        raise HTTPException(status_code=404, detail=f"Unknown server: {server_id}")
    except ServerNotReadyError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.delete("/agents/{session_id}")
async def end_session(session_id: str):
    """End a session (sign-out): every upstream connection is closed."""
    ended = await agent_sessions.end(session_id)
    return {"status": "ended" if ended else "not_found"}


# ============================================
# OAuth redirect target
# ============================================


_CALLBACK_PAGE = """<!doctype html>
<html><head><title>{title}</title></head>
<body><p>{message}</p>
<script>setTimeout(function () {{ window.close(); }}, 1500);</script>
</body></html>"""


@router.get("/agents/{session_id}/callback/{server_id}", response_class=HTMLResponse)
async def oauth_callback(
    session_id: str,
    server_id: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    error_description: Optional[str] = None,
):
    """
    Where the upstream authorization server redirects the popup.

    Hands the code to the connector waiting in the aggregator; the record then
    moves to ready (or error) and the new state is broadcast.
    """
    session = agent_sessions.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="Unknown session")

    if error:
        reason = f"Authorization failed: {error_description or error}"
        if not session.aggregator.fail_authorization(server_id, reason):
            raise HTTPException(status_code=404, detail="No pending authorization")
        print(f"[HTTP] {reason} (server {server_id})")
        return HTMLResponse(
            _CALLBACK_PAGE.format(title="Authorization failed", message=reason),
            status_code=400,
        )

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    if not session.aggregator.complete_authorization(server_id, code, state):
        raise HTTPException(status_code=404, detail="No pending authorization")

    return HTMLResponse(
        _CALLBACK_PAGE.format(
            title="Authorization complete",
            message="Authorization complete. You can close this window.",
        )
    )
