"""Session token lifecycle management for async API clients."""

from .application_context import SessionContext
from .auth_token.coordinator import RefreshCoordinator
from .auth_token.gateway import RequestGateway
from .auth_token.store import FileTokenStore, MemoryTokenStore, TokenStore
from .auth_token.types import (
    CredentialPair,
    GatewayResponse,
    OutboundRequest,
    RefreshState,
    TokenKind,
)
from .auth_token.watcher import ExpirationWatcher

__all__ = [
    "SessionContext",
    "RefreshCoordinator",
    "RequestGateway",
    "ExpirationWatcher",
    "TokenStore",
    "MemoryTokenStore",
    "FileTokenStore",
    "CredentialPair",
    "GatewayResponse",
    "OutboundRequest",
    "RefreshState",
    "TokenKind",
]
