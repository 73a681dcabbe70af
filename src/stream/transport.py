"""Transport-level helpers: gateway URL, TLS policy and connect headers."""

from __future__ import annotations

import ipaddress
import ssl
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import websockets

DEFAULT_GATEWAY_URL = "wss://localhost:5000/v1/api/ws"
DEFAULT_USER_AGENT = "ibkr-stream-python/0.1"

LOCAL_HOSTNAMES = frozenset({"localhost", "localhost.localdomain", "ip6-localhost"})

# Anything with the signature of ``websockets.connect`` returning an async
# context manager around a socket. Tests inject an in-memory fake.
Connector = Callable[..., Any]


def is_local_target(url: str) -> bool:
    """Return True when ``url`` points at this machine."""

    host = (urlsplit(url).hostname or "").lower()
    if host in LOCAL_HOSTNAMES or host.endswith(".localhost"):
        return True
    try:
        return ipaddress.ip_address(host).is_loopback
    except ValueError:
        return False


def build_ssl_context(url: str, verify: Optional[bool] = None) -> Optional[ssl.SSLContext]:
    """TLS context for ``url``, or None for plain ``ws://``.

    The local gateway serves a self-signed certificate, so loopback targets
    skip verification unless ``verify`` forces it. Remote targets verify the
    peer unless ``verify`` is explicitly False.
    """

    if urlsplit(url).scheme != "wss":
        return None
    if verify is None:
        verify = not is_local_target(url)

    context = ssl.create_default_context()
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def connect_headers(user_agent: str, session_token: Optional[str] = None) -> List[Tuple[str, str]]:
    headers = [("User-Agent", user_agent)]
    if session_token:
        headers.append(("Cookie", f"api={session_token}"))
    return headers


def connect_kwargs(
    url: str, ssl_context: Optional[ssl.SSLContext], headers: List[Tuple[str, str]]
) -> Dict[str, Any]:
    kwargs: Dict[str, Any] = {
        "additional_headers": headers,
        # The gateway has its own application-level keepalive.
        "ping_interval": None,
        "open_timeout": 10,
    }
    if ssl_context is not None:
        kwargs["ssl"] = ssl_context
    return kwargs


def default_connector() -> Connector:
    return websockets.connect


__all__ = [
    "DEFAULT_GATEWAY_URL",
    "DEFAULT_USER_AGENT",
    "Connector",
    "is_local_target",
    "build_ssl_context",
    "connect_headers",
    "connect_kwargs",
    "default_connector",
]
