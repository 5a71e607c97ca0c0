"""
Application lifecycle management.

Handles startup and shutdown of the agent: on shutdown every session's
upstream MCP connections are closed.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .sessions import agent_sessions


async def cleanup_resources():
    """Clean up all resources when shutting down."""
    print("Cleaning up resources...")
    try:
        await agent_sessions.close_all()
        print("MCP connections closed")
    except Exception as e:
        print(f"Error closing MCP connections: {e}")
    print("Cleanup completed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    print("[Agent] Ready")
    yield
    await cleanup_resources()
