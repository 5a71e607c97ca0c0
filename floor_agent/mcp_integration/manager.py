"""
Upstream MCP connection aggregator.

Tracks the upstream MCP servers one agent session has asked for and merges
their tools, prompts and resources into the session's AggregateState.
"""

import asyncio
import secrets
from contextlib import asynccontextmanager
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import httpx

from ..config import (
    AUTH_TIMEOUT_SECONDS,
    DISCONNECT_GRACE_SECONDS,
    TOOL_CALL_TIMEOUT_SECONDS,
    ConnectionState,
)
from ..core.state import (
    AggregateState,
    PromptDescriptor,
    ResourceDescriptor,
    ServerConnection,
    ToolDescriptor,
)
from .oauth import InMemoryTokenStorage, build_oauth_provider


# Streamable HTTP keeps a long-lived GET open for server pushes
UPSTREAM_HTTP_TIMEOUT = httpx.Timeout(30.0, read=300.0)


class AuthorizationError(RuntimeError):
    """The user-driven authorization step failed, was refused, or timed out."""


class ServerNotReadyError(RuntimeError):
    """A tool call was routed to a server that is not in the ready state."""


class UpstreamConnection:
    """Runtime side of one server record: task, live session, pending OAuth callback."""

    def __init__(self, server_id: str, url: str):
        self.server_id = server_id
        self.url = url
        self.task: Optional[asyncio.Task] = None
        self.session: Any = None  # mcp.ClientSession once ready
        self.token_storage = InMemoryTokenStorage()
        self.authorization: Optional[asyncio.Future] = None
        self.progressed = asyncio.Event()  # first move out of "connecting"
        self.closed = asyncio.Event()


Connector = Callable[["SessionAggregator", UpstreamConnection], Awaitable[None]]
Broadcast = Callable[[Dict[str, Any]], Awaitable[None]]


def new_server_id() -> str:
    return secrets.token_hex(4)


class SessionAggregator:
    """
    Per-session connection aggregator.

    Every record moves through connecting -> (authenticating ->) ready, or
    into error. All mutations of the aggregate state and the snapshot
    broadcast that follows them happen under one lock, so subscribers see
    transitions in the order they happened.

    The connector does the protocol work for one server and reports back
    through mark_authenticating / wait_for_authorization / mark_ready. An
    exception escaping the connector moves the record to error; it is never
    raised to whoever called add_server().
    """

    def __init__(
        self,
        session_id: str,
        broadcast: Broadcast,
        connector: Optional[Connector] = None,
        auth_timeout: float = AUTH_TIMEOUT_SECONDS,
    ):
        self.session_id = session_id
        self.state = AggregateState()
        self._broadcast = broadcast
        self._connector = connector or connect_upstream
        self._auth_timeout = auth_timeout
        self._connections: Dict[str, UpstreamConnection] = {}
        self._lock = asyncio.Lock()

    def snapshot(self) -> Dict[str, Any]:
        return self.state.snapshot()

    async def send_snapshot(self, send: Broadcast):
        """Deliver the current snapshot through *send*, serialized with broadcasts."""
        async with self._lock:
            await send(self.state.snapshot())

    async def _publish(self):
        # Caller holds self._lock
        await self._broadcast(self.state.snapshot())

    # ── Lifecycle of one server ───────────────────────────────────────

    async def add_server(self, url: str) -> ServerConnection:
        """Create a connecting record and start connecting in the background."""
        url = url.strip()
        if not url:
            raise ValueError("Server URL cannot be empty")

        async with self._lock:
            server_id = new_server_id()
            while server_id in self.state.servers:
                server_id = new_server_id()
            record = self.state.add_server(ServerConnection(id=server_id, url=url))
            conn = UpstreamConnection(server_id, url)
            self._connections[server_id] = conn
            print(f"[Agent] Session {self.session_id}: connecting to {url} (id: {server_id})")
            await self._publish()

        conn.task = asyncio.create_task(self._run(conn), name=f"mcp-upstream-{server_id}")
        return record

    async def _run(self, conn: UpstreamConnection):
        try:
            await self._connector(self, conn)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            message = describe_error(e)
            print(f"[MCP] ERROR connecting to '{conn.url}' (id: {conn.server_id}): {message}")
            await self.mark_error(conn.server_id, message)
        finally:
            conn.session = None
            conn.progressed.set()

    async def _transition(self, server_id: str, new_state: str, **changes) -> Optional[ServerConnection]:
        async with self._lock:
            if server_id not in self.state.servers:
                return None  # removed while the connector was still running
            record = self.state.transition(server_id, new_state, **changes)
            await self._publish()
        conn = self._connections.get(server_id)
        if conn:
            conn.progressed.set()
        return record

    async def mark_authenticating(self, server_id: str, auth_url: str) -> Optional[ServerConnection]:
        """
        The upstream wants the user to authorize; expose the URL on the record.

        Only a connecting or authenticating record can take this step. A ready
        record gets here when the SDK cannot refresh its tokens mid-session:
        the live session is unusable, so the record moves to error and no
        callback is awaited.

        Raises:
            AuthorizationError: the record is ready or already in error
        """
        conn = self._connections.get(server_id)
        async with self._lock:
            record = self.state.servers.get(server_id)
            if record is None:
                return None

            if record.state == ConnectionState.READY:
                message = "Re-authorization required: the upstream session's tokens expired"
                self.state.transition(server_id, ConnectionState.ERROR, error=message)
                await self._publish()
                print(f"[Agent] Server {server_id}: {message}")
                if conn is not None:
                    conn.closed.set()
                raise AuthorizationError(message)
            if record.state == ConnectionState.ERROR:
                raise AuthorizationError(record.error or f"Server '{server_id}' is in error")

            if conn is not None and conn.authorization is None:
                conn.authorization = asyncio.get_running_loop().create_future()

            if record.state == ConnectionState.AUTHENTICATING:
                # A fresh authorization URL for the same pending step
                record.auth_url = auth_url
            else:
                print(f"[Agent] Server {server_id} needs authorization")
                self.state.transition(server_id, ConnectionState.AUTHENTICATING, auth_url=auth_url)
            await self._publish()

        if conn is not None:
            conn.progressed.set()
        return record

    async def mark_ready(
        self,
        server_id: str,
        tools: List[ToolDescriptor],
        prompts: List[PromptDescriptor],
        resources: List[ResourceDescriptor],
    ) -> Optional[ServerConnection]:
        """Capability negotiation succeeded: install descriptors and go ready in one broadcast."""
        async with self._lock:
            if server_id not in self.state.servers:
                return None
            record = self.state.transition(server_id, ConnectionState.READY)
            self.state.set_descriptors(server_id, tools, prompts, resources)
            await self._publish()
        conn = self._connections.get(server_id)
        if conn:
            conn.progressed.set()
        print(
            f"[MCP] Connected to '{record.url}' — {len(tools)} tool(s), "
            f"{len(prompts)} prompt(s), {len(resources)} resource(s)"
        )
        return record

    async def mark_error(self, server_id: str, message: str) -> Optional[ServerConnection]:
        record = self.state.servers.get(server_id)
        if record is not None and record.state == ConnectionState.ERROR:
            return record
        return await self._transition(server_id, ConnectionState.ERROR, error=message)

    # ── OAuth callback ────────────────────────────────────────────────

    async def wait_for_authorization(self, server_id: str) -> Tuple[str, Optional[str]]:
        """
        Block the connector until the user completes the redirect.

        Raises:
            AuthorizationError: refused by the user, the server was removed, or
                no callback arrived within the auth timeout.
        """
        conn = self._connections.get(server_id)
        if conn is None:
            raise AuthorizationError(f"Server '{server_id}' is no longer registered")
        if conn.authorization is None:
            conn.authorization = asyncio.get_running_loop().create_future()

        try:
            return await asyncio.wait_for(conn.authorization, timeout=self._auth_timeout)
        except asyncio.TimeoutError:
            raise AuthorizationError(
                f"Authorization was not completed within {self._auth_timeout:.0f}s"
            ) from None
        finally:
            conn.authorization = None

    def complete_authorization(self, server_id: str, code: str, state: Optional[str]) -> bool:
        """Hand the authorization code to the waiting connector. False if nothing is pending."""
        future = self._pending_authorization(server_id)
        if future is None:
            return False
        future.set_result((code, state))
        return True

    def fail_authorization(self, server_id: str, reason: str) -> bool:
        future = self._pending_authorization(server_id)
        if future is None:
            return False
        future.set_exception(AuthorizationError(reason))
        return True

    def _pending_authorization(self, server_id: str) -> Optional[asyncio.Future]:
        conn = self._connections.get(server_id)
        if conn is None or conn.authorization is None or conn.authorization.done():
            return None
        return conn.authorization

    # ── Queries used by the HTTP layer ────────────────────────────────

    async def wait_for_progress(self, server_id: str, timeout: float) -> Optional[ServerConnection]:
        """Wait (bounded) for the first transition out of connecting; return the current record."""
        conn = self._connections.get(server_id)
        if conn is not None:
            try:
                await asyncio.wait_for(conn.progressed.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
        return self.state.servers.get(server_id)

    async def call_tool(self, server_id: str, tool_name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Route a tool call to a ready upstream server."""
        record = self.state.get_server(server_id)
        conn = self._connections.get(server_id)
        if record.state != ConnectionState.READY or conn is None or conn.session is None:
            raise ServerNotReadyError(f"Server '{server_id}' is {record.state}, not ready")

        try:
            result = await asyncio.wait_for(
                conn.session.call_tool(tool_name, arguments=arguments),
                timeout=TOOL_CALL_TIMEOUT_SECONDS,
            )
        except asyncio.TimeoutError:
            return {
                "isError": True,
                "content": f"Error: Tool '{tool_name}' (server '{server_id}') timed out after {TOOL_CALL_TIMEOUT_SECONDS:.0f}s",
            }
        except Exception as e:
            print(f"[MCP] Tool '{tool_name}' on server '{server_id}' failed: {describe_error(e)}")
            return {"isError": True, "content": f"Error: {describe_error(e)}"}

        output_parts = []
        for block in result.content:
            if hasattr(block, "text"):
                output_parts.append(block.text)
            else:
                output_parts.append(str(block))

        return {
            "isError": bool(result.isError),
            "content": "\n".join(output_parts) if output_parts else "Tool returned no output.",
        }

    # ── Teardown ──────────────────────────────────────────────────────

    async def remove_server(self, server_id: str) -> ServerConnection:
        """
        Delete a record and every descriptor that references it, broadcast,
        then shut its connection down.

        Raises:
            UnknownServerError: no record with this id
        """
        async with self._lock:
            record = self.state.remove_server(server_id)
            conn = self._connections.pop(server_id, None)
            await self._publish()

        print(f"[Agent] Session {self.session_id}: removed server {server_id}")
        if conn is not None:
            await self._stop(conn)
        return record

    async def _stop(self, conn: UpstreamConnection):
        conn.closed.set()
        if conn.authorization is not None and not conn.authorization.done():
            conn.authorization.set_exception(AuthorizationError("Server was removed"))

        task = conn.task
        if task is None or task.done():
            return
        _, pending = await asyncio.wait({task}, timeout=DISCONNECT_GRACE_SECONDS)
        if pending:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def close(self):
        """Remove every server; used when the owning session ends."""
        for server_id in list(self.state.servers):
            try:
                await self.remove_server(server_id)
            except Exception as e:
                print(f"[Agent] Error removing server {server_id}: {e}")


# ============================================
# Default connector (real MCP over HTTP)
# ============================================


@asynccontextmanager
async def open_transport(url: str, auth):
    """
    Open read/write streams to *url*.

    URLs whose path ends in /sse use the legacy SSE transport; everything
    else uses streamable HTTP.
    """
    if urlparse(url).path.rstrip("/").endswith("/sse"):
        from mcp.client.sse import sse_client

        async with sse_client(url, auth=auth) as (read, write):
            yield read, write
    else:
        from mcp.client.streamable_http import streamable_http_client

        async with httpx.AsyncClient(
            auth=auth, follow_redirects=True, timeout=UPSTREAM_HTTP_TIMEOUT
        ) as http_client:
            async with streamable_http_client(url, http_client=http_client) as (read, write, _):
                yield read, write


async def list_capabilities(session, capabilities, server_id: str):
    """Descriptors for whatever the upstream advertised in its initialize result."""
    tools: List[ToolDescriptor] = []
    prompts: List[PromptDescriptor] = []
    resources: List[ResourceDescriptor] = []

    if capabilities is None or capabilities.tools:
        result = await session.list_tools()
        tools = [
            ToolDescriptor(
                server_id=server_id,
                name=t.name,
                description=t.description,
                input_schema=t.inputSchema or {"type": "object", "properties": {}},
            )
            for t in result.tools
        ]

    if capabilities is not None and capabilities.prompts:
        result = await session.list_prompts()
        prompts = [
            PromptDescriptor(
                server_id=server_id,
                name=p.name,
                description=p.description,
                arguments=[a.model_dump(exclude_none=True) for a in (p.arguments or [])],
            )
            for p in result.prompts
        ]

    if capabilities is not None and capabilities.resources:
        result = await session.list_resources()
        resources = [
            ResourceDescriptor(
                server_id=server_id,
                name=r.name,
                description=r.description,
                uri=str(r.uri),
                mime_type=r.mimeType,
            )
            for r in result.resources
        ]

    return tools, prompts, resources


async def connect_upstream(aggregator: SessionAggregator, conn: UpstreamConnection):
    """
    Connect to one upstream MCP server and keep the session open until removal.

    The OAuth provider only kicks in if the server answers 401; otherwise the
    record goes straight from connecting to ready.
    """
    from mcp import ClientSession

    provider = build_oauth_provider(aggregator, conn.server_id, conn.url, conn.token_storage)

    async with open_transport(conn.url, provider) as (read, write):
        async with ClientSession(read, write) as session:
            init_result = await session.initialize()
            tools, prompts, resources = await list_capabilities(
                session, init_result.capabilities, conn.server_id
            )
            conn.session = session
            await aggregator.mark_ready(conn.server_id, tools, prompts, resources)
            await conn.closed.wait()


def describe_error(exc: BaseException) -> str:
    """Readable message for an exception, unwrapping anyio exception groups."""
    inner = getattr(exc, "exceptions", None)
    while inner:
        exc = inner[0]
        inner = getattr(exc, "exceptions", None)
    return str(exc) or exc.__class__.__name__
