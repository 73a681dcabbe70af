"""Gateway REST helpers used to bootstrap the streaming session."""

from .session_client import AuthStatusResponse, GatewayError, GatewaySessionClient, TickleResponse

__all__ = [
    "GatewaySessionClient",
    "GatewayError",
    "TickleResponse",
    "AuthStatusResponse",
]
