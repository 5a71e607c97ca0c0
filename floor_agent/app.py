"""
FastAPI application factory.

Creates and configures the FastAPI application instance.
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.websocket import websocket_endpoint
from .api.http import router as http_router
from .core.lifecycle import lifespan


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    app = FastAPI(
        title="Factory-Floor Agent",
        description="Aggregates upstream MCP servers per browser session",
        version="0.1.0",
        lifespan=lifespan,
    )

    # OAuth popups and the browser client may be served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register WebSocket endpoint (one per session)
    app.add_api_websocket_route("/agents/{session_id}/ws", websocket_endpoint)

    # Register HTTP REST routes (e.g., /agents/{session_id}/add-mcp, /api/health)
    app.include_router(http_router)

    return app


# Create the app instance for uvicorn
app = create_app()
