"""
Permission gate for factory-floor tool handlers.

Every data tool is registered as ``require_permission("<perm>", handler)``.
The gate reads the caller's permission set from the explicit invocation
context and either forwards the call or answers with a 403 result. A denied
call never reaches the handler, so it never touches the store.

Permission strings are compared trimmed and case-insensitively on both
sides: " Read_Daily " granted matches "read_daily" required.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional

DENIED_STATUS = 403
OK_STATUS = 200


def normalize_permission(permission: str) -> str:
    return permission.strip().lower()


def normalize_permissions(permissions: Optional[Iterable[str]]) -> FrozenSet[str]:
    """Build a permission set; None or an empty iterable gives the empty set."""
    if not permissions:
        return frozenset()
    return frozenset(
        normalize_permission(p) for p in permissions if isinstance(p, str) and p.strip()
    )


@dataclass(frozen=True)
class ToolResult:
    """What a gated handler hands back to the protocol adapter."""

    text: str
    status: int = OK_STATUS

    @property
    def denied(self) -> bool:
        return self.status == DENIED_STATUS

    @classmethod
    def permission_denied(cls, permission: str) -> "ToolResult":
        return cls(text=f"Permission denied - need {permission}", status=DENIED_STATUS)


@dataclass(frozen=True)
class ToolContext:
    """
    Per-call invocation context.

    Built by the server for every incoming tool call from the verified access
    token, and dropped once the call returns.

    Attributes:
        permissions: normalized permission set of the caller
        db: the FactoryDatabase handle the handlers run statements against
        email / name: caller identity, for whoAmI
    """

    permissions: FrozenSet[str] = frozenset()
    db: Any = None
    email: Optional[str] = None
    name: Optional[str] = None
    client_id: Optional[str] = None
    scopes: tuple = field(default_factory=tuple)

    @classmethod
    def build(cls, permissions: Optional[Iterable[str]] = None, **kwargs) -> "ToolContext":
        return cls(permissions=normalize_permissions(permissions), **kwargs)


Handler = Callable[[Dict[str, Any], Optional[ToolContext]], Awaitable[ToolResult]]


def permissions_of(context: Any) -> FrozenSet[str]:
    """Caller permissions from *context*; a missing context or attribute means none."""
    return normalize_permissions(getattr(context, "permissions", None))


def require_permission(permission: str, handler: Handler) -> Handler:
    """
    Wrap *handler* so it only runs for callers holding *permission*.

    Raises:
        ValueError: if *permission* is empty after trimming. This is a
            registration-time mistake, not a caller error.
    """
    want = normalize_permission(permission)
    if not want:
        raise ValueError("required permission must be a non-empty string")

    @functools.wraps(handler)
    async def gated(arguments: Dict[str, Any], context: Optional[ToolContext] = None) -> ToolResult:
        if want not in permissions_of(context):
            who = getattr(context, "email", None) or "anonymous"
            print(f"[Auth] Denied '{handler.__name__}' for {who}: missing '{want}'")
            return ToolResult.permission_denied(permission)
        return await handler(arguments, context)

    gated.required_permission = want
    return gated
