"""
Bearer-token verification for the Factory-Floor Log MCP server.

The server is an OAuth *resource server*: tokens are issued elsewhere, and
here we only ask the authorization server whether a token is active
(RFC 7662 introspection). A verified token is turned into a
FactoryAccessToken carrying the caller's email and permission set.

Flow:
1. Client calls /mcp with "Authorization: Bearer <token>"
2. The MCP SDK's bearer middleware calls FactoryTokenVerifier.verify_token()
3. We POST the token to the introspection endpoint
4. Inactive token, unreachable endpoint, or email outside ALLOWED_EMAILS
   -> return None -> the SDK answers 401 and no tool ever runs
5. Otherwise permissions = role table rows for the email + token scopes
"""

from typing import Any, Dict, List, Optional

import httpx
from mcp.server.auth.provider import AccessToken, TokenVerifier

from mcp_servers.servers.factory_floor.permissions import normalize_permissions
from mcp_servers.servers.factory_floor.thread_pool import run_in_thread


class FactoryAccessToken(AccessToken):
    """AccessToken plus the identity and permissions the tools need."""

    email: Optional[str] = None
    name: Optional[str] = None
    permissions: List[str] = []


class FactoryTokenVerifier(TokenVerifier):
    """Validates bearer tokens through an introspection endpoint."""

    def __init__(
        self,
        introspection_endpoint: str,
        db,
        allowed_emails: Optional[List[str]] = None,
        client_id: str = "",
        client_secret: str = "",
        timeout: float = 10.0,
    ):
        self.introspection_endpoint = introspection_endpoint
        self.db = db
        self.allowed_emails = {e.strip().lower() for e in (allowed_emails or []) if e.strip()}
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    async def verify_token(self, token: str) -> Optional[AccessToken]:
        claims = await self._introspect(token)
        if claims is None or not claims.get("active"):
            return None

        email = _claims_email(claims)
        if not self.is_allowed(email):
            print(f"[Auth] Rejected session for {email or 'unknown'}: not on the allow-list")
            return None

        scopes = _claims_scopes(claims)
        granted: List[str] = []
        if email:
            granted = await run_in_thread(self.db.get_permissions, email)

        return FactoryAccessToken(
            token=token,
            client_id=str(claims.get("client_id") or "unknown"),
            scopes=scopes,
            expires_at=claims.get("exp"),
            resource=_claims_resource(claims),
            email=email,
            name=claims.get("name"),
            permissions=sorted(normalize_permissions([*granted, *scopes])),
        )

    def is_allowed(self, email: Optional[str]) -> bool:
        """An empty allow-list admits every verified caller."""
        if not self.allowed_emails:
            return True
        return bool(email) and email.lower() in self.allowed_emails

    async def _introspect(self, token: str) -> Optional[Dict[str, Any]]:
        auth = None
        if self.client_id:
            auth = httpx.BasicAuth(self.client_id, self.client_secret)

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.introspection_endpoint,
                    data={"token": token},
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    auth=auth,
                )
        except httpx.HTTPError as e:
            print(f"[Auth] Introspection request failed: {e}")
            return None

        if response.status_code != 200:
            print(f"[Auth] Introspection returned HTTP {response.status_code}")
            return None

        try:
            return response.json()
        except ValueError:
            print("[Auth] Introspection returned a non-JSON body")
            return None


def _claims_email(claims: Dict[str, Any]) -> Optional[str]:
    for key in ("email", "username", "sub"):
        value = claims.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip().lower()
    return None


def _claims_scopes(claims: Dict[str, Any]) -> List[str]:
    """The "scope" claim is a space-separated string per RFC 7662; some servers send a list."""
    raw = claims.get("scope") or ""
    if isinstance(raw, list):
        return [s for s in raw if isinstance(s, str) and s]
    return [s for s in str(raw).split() if s]


def _claims_resource(claims: Dict[str, Any]) -> Optional[str]:
    aud = claims.get("aud")
    if isinstance(aud, list):
        return aud[0] if aud else None
    return aud
