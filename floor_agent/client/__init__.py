"""
Minimal Python client for the agent.

Mirrors what the browser page does: keep a persisted session id, register
upstream servers, and open authorization URLs for the user.
"""
from .session import SESSION_KEY, FileStorage, clear_session_id, ensure_session_id
from .agent_client import AgentClient, parse_auth_url

__all__ = [
    'SESSION_KEY',
    'FileStorage',
    'clear_session_id',
    'ensure_session_id',
    'AgentClient',
    'parse_auth_url',
]
