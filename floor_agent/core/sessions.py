"""
Agent sessions.

A session is what one browser identity (its persisted sessionId) binds to:
a ConnectionManager for its websocket subscribers plus a SessionAggregator
that owns its upstream servers. Sessions are created on first use and live
until they are ended explicitly or the app shuts down. Nothing is shared
between sessions.
"""

import asyncio
import re
from typing import Dict, Optional

from .connection import ConnectionManager
from ..mcp_integration.manager import Connector, SessionAggregator

_SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")


def is_valid_session_id(session_id: str) -> bool:
    return bool(_SESSION_ID_PATTERN.match(session_id or ""))


class AgentSession:
    """Subscribers + aggregator of one session."""

    def __init__(self, session_id: str, connector: Optional[Connector] = None):
        self.session_id = session_id
        self.connections = ConnectionManager()
        self.aggregator = SessionAggregator(
            session_id, self.connections.broadcast_state, connector=connector
        )

    async def close(self):
        await self.aggregator.close()


class SessionRegistry:
    """
    Process-wide map of session id -> AgentSession.

    The connector is injectable so tests can drive the state machine without
    real upstream servers.
    """

    def __init__(self, connector: Optional[Connector] = None):
        self._sessions: Dict[str, AgentSession] = {}
        self._lock = asyncio.Lock()
        self.connector = connector

    def get(self, session_id: str) -> Optional[AgentSession]:
        return self._sessions.get(session_id)

    async def get_or_create(self, session_id: str) -> AgentSession:
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")
        async with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = AgentSession(session_id, connector=self.connector)
                self._sessions[session_id] = session
                print(f"[Agent] New session {session_id}")
            return session

    async def end(self, session_id: str) -> bool:
        """Tear a session down: every upstream connection is closed."""
        async with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        print(f"[Agent] Session {session_id} ended")
        return True

    async def close_all(self):
        for session_id in list(self._sessions):
            await self.end(session_id)


# Global session registry instance
agent_sessions = SessionRegistry()
