"""
Replicated aggregate state.

One AggregateState per agent session holds every upstream server record and
the tool/prompt/resource descriptors merged from the servers that reached
``ready``. The snapshot() of this object is exactly what the browser
receives on every broadcast.

Invariant: every descriptor's server_id is a key of ``servers``. Descriptors
can only be installed for a known server, and removing a server drops all of
its descriptors in the same step.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from ..config import ConnectionState

# Legal moves of the per-server state machine. "error" is terminal; "ready"
# is terminal on success but a live connection can still fail later.
ALLOWED_TRANSITIONS: Dict[str, frozenset] = {
    ConnectionState.CONNECTING: frozenset(
        {ConnectionState.AUTHENTICATING, ConnectionState.READY, ConnectionState.ERROR}
    ),
    ConnectionState.AUTHENTICATING: frozenset({ConnectionState.READY, ConnectionState.ERROR}),
    ConnectionState.READY: frozenset({ConnectionState.ERROR}),
    ConnectionState.ERROR: frozenset(),
}


class UnknownServerError(KeyError):
    """Raised when an operation names a server id that has no record."""


class InvalidTransitionError(ValueError):
    """Raised when a record is asked to move along an edge the state machine does not have."""


# ============================================
# Descriptors
# ============================================


class _Descriptor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    server_id: str = Field(alias="serverId")
    name: str
    description: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.name}-{self.server_id}"


class ToolDescriptor(_Descriptor):
    kind: Literal["tool"] = "tool"
    input_schema: Dict[str, Any] = Field(default_factory=dict, alias="inputSchema")


class PromptDescriptor(_Descriptor):
    kind: Literal["prompt"] = "prompt"
    arguments: List[Dict[str, Any]] = Field(default_factory=list)


class ResourceDescriptor(_Descriptor):
    kind: Literal["resource"] = "resource"
    uri: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")

    @property
    def key(self) -> str:
        return f"{self.uri}-{self.server_id}"


Descriptor = Union[ToolDescriptor, PromptDescriptor, ResourceDescriptor]


# ============================================
# Server records
# ============================================


class ServerConnection(BaseModel):
    """
    One upstream server as the browser sees it.

    The id is assigned by the aggregator, never by the caller. ``error`` is
    kept for logs and the HTTP API but is not part of the broadcast shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    state: str = ConnectionState.CONNECTING
    auth_url: Optional[str] = Field(default=None, alias="authUrl")
    error: Optional[str] = None

    def public(self) -> Dict[str, Any]:
        """The {url, state, authUrl?} shape pushed to clients."""
        data: Dict[str, Any] = {"url": self.url, "state": self.state}
        if self.auth_url:
            data["authUrl"] = self.auth_url
        return data


class AggregateState:
    """Servers plus the merged descriptor lists of one session."""

    def __init__(self):
        self.servers: Dict[str, ServerConnection] = {}
        self.tools: List[ToolDescriptor] = []
        self.prompts: List[PromptDescriptor] = []
        self.resources: List[ResourceDescriptor] = []

    def add_server(self, record: ServerConnection) -> ServerConnection:
        if record.id in self.servers:
            raise ValueError(f"Server id '{record.id}' already exists")
        self.servers[record.id] = record
        return record

    def get_server(self, server_id: str) -> ServerConnection:
        record = self.servers.get(server_id)
        if record is None:
            raise UnknownServerError(server_id)
        return record

    def transition(
        self,
        server_id: str,
        new_state: str,
        auth_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> ServerConnection:
        """
        Move a record along one edge of the state machine.

        Raises:
            UnknownServerError: no record with this id
            InvalidTransitionError: the edge does not exist (e.g. out of "error")
        """
        record = self.get_server(server_id)
        if new_state not in ALLOWED_TRANSITIONS.get(record.state, frozenset()):
            raise InvalidTransitionError(
                f"Server '{server_id}' cannot move from {record.state} to {new_state}"
            )
        record.state = new_state
        if new_state == ConnectionState.AUTHENTICATING:
            record.auth_url = auth_url
        elif new_state == ConnectionState.READY:
            record.auth_url = None
        if new_state == ConnectionState.ERROR:
            record.error = error
        return record

    def set_descriptors(
        self,
        server_id: str,
        tools: List[ToolDescriptor],
        prompts: List[PromptDescriptor],
        resources: List[ResourceDescriptor],
    ):
        """Replace everything this server contributes to the merged lists."""
        self.get_server(server_id)
        for item in [*tools, *prompts, *resources]:
            if item.server_id != server_id:
                raise ValueError(
                    f"Descriptor '{item.name}' belongs to '{item.server_id}', not '{server_id}'"
                )
        self._drop_descriptors(server_id)
        self.tools.extend(tools)
        self.prompts.extend(prompts)
        self.resources.extend(resources)

    def remove_server(self, server_id: str) -> ServerConnection:
        """Delete the record and every descriptor pointing at it."""
        record = self.servers.pop(server_id, None)
        if record is None:
            raise UnknownServerError(server_id)
        self._drop_descriptors(server_id)
        return record

    def _drop_descriptors(self, server_id: str):
        self.tools = [t for t in self.tools if t.server_id != server_id]
        self.prompts = [p for p in self.prompts if p.server_id != server_id]
        self.resources = [r for r in self.resources if r.server_id != server_id]

    def snapshot(self) -> Dict[str, Any]:
        """Full replicated state; there is no delta protocol."""
        return {
            "servers": {sid: record.public() for sid, record in self.servers.items()},
            "tools": [t.model_dump(by_alias=True) for t in self.tools],
            "prompts": [p.model_dump(by_alias=True) for p in self.prompts],
            "resources": [r.model_dump(by_alias=True) for r in self.resources],
        }
