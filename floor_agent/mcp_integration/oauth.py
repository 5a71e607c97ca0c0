"""
OAuth client plumbing for upstream MCP servers.

When an upstream answers 401, the mcp SDK's OAuthClientProvider discovers
the authorization server, registers this agent as a client, and then needs
two things from us:

1. redirect_handler(auth_url): the URL the *user* must open. We put it on
   the server record (state -> authenticating) so the browser can open it
   in a popup.
2. callback_handler() -> (code, state): waits until the user comes back to
   /agents/{session}/callback/{server_id}. The HTTP route resolves the
   pending future through SessionAggregator.complete_authorization().
"""

from typing import TYPE_CHECKING, Optional

from mcp.client.auth import OAuthClientProvider, TokenStorage
from mcp.shared.auth import OAuthClientInformationFull, OAuthClientMetadata, OAuthToken

from ..config import OAUTH_CLIENT_NAME, OAUTH_SCOPE, PUBLIC_BASE_URL

if TYPE_CHECKING:
    from .manager import SessionAggregator


class InMemoryTokenStorage(TokenStorage):
    """Tokens and client registration for one upstream connection, kept in memory."""

    def __init__(self):
        self.tokens: Optional[OAuthToken] = None
        self.client_info: Optional[OAuthClientInformationFull] = None

    async def get_tokens(self) -> Optional[OAuthToken]:
        return self.tokens

    async def set_tokens(self, tokens: OAuthToken) -> None:
        self.tokens = tokens

    async def get_client_info(self) -> Optional[OAuthClientInformationFull]:
        return self.client_info

    async def set_client_info(self, client_info: OAuthClientInformationFull) -> None:
        self.client_info = client_info


def callback_url(session_id: str, server_id: str) -> str:
    """Redirect URI registered with the upstream authorization server."""
    return f"{PUBLIC_BASE_URL}/agents/{session_id}/callback/{server_id}"


def build_oauth_provider(
    aggregator: "SessionAggregator",
    server_id: str,
    server_url: str,
    storage: TokenStorage,
) -> OAuthClientProvider:
    """OAuthClientProvider whose redirect and callback go through *aggregator*."""

    async def redirect_handler(auth_url: str) -> None:
        await aggregator.mark_authenticating(server_id, auth_url)

    async def callback_handler() -> tuple[str, Optional[str]]:
        return await aggregator.wait_for_authorization(server_id)

    client_metadata = OAuthClientMetadata(
        client_name=OAUTH_CLIENT_NAME,
        redirect_uris=[callback_url(aggregator.session_id, server_id)],
        grant_types=["authorization_code", "refresh_token"],
        response_types=["code"],
        token_endpoint_auth_method="none",
        scope=OAUTH_SCOPE,
    )

    return OAuthClientProvider(
        server_url=server_url,
        client_metadata=client_metadata,
        storage=storage,
        redirect_handler=redirect_handler,
        callback_handler=callback_handler,
    )
