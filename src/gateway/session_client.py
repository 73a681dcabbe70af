"""Minimal REST calls against the gateway needed to open a stream.

The streaming socket is authorized by the API session token returned from
``/tickle``. The same call keeps the brokerage session alive, so the
reconnecting runner issues it before every connection attempt.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests


class GatewayError(Exception):
    """REST call to the gateway failed or returned an unusable payload."""


@dataclass
class TickleResponse:
    session: Optional[str]
    authenticated: Optional[bool]
    connected: Optional[bool]
    competing: Optional[bool]
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthStatusResponse:
    authenticated: Optional[bool]
    competing: Optional[bool]
    connected: Optional[bool]
    message: Optional[str]
    fail: Optional[str]
    server_name: Optional[str]
    server_version: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


class GatewaySessionClient:
    """Fetches the session token and auth status from the gateway REST API."""

    def __init__(
        self,
        base_url: str,
        verify: bool = True,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.verify = verify
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger(__name__)

    def tickle(self) -> TickleResponse:
        payload = self._post("/tickle")
        auth = ((payload.get("iserver") or {}).get("authStatus")) or {}
        response = TickleResponse(
            session=payload.get("session"),
            authenticated=auth.get("authenticated"),
            connected=auth.get("connected"),
            competing=auth.get("competing"),
            raw=payload,
        )
        self.logger.debug(
            "Gateway tickle ok", extra={"event": "tickle", "authenticated": response.authenticated}
        )
        return response

    def auth_status(self) -> AuthStatusResponse:
        payload = self._post("/iserver/auth/status")
        server_info = payload.get("serverInfo") or {}
        return AuthStatusResponse(
            authenticated=payload.get("authenticated"),
            competing=payload.get("competing"),
            connected=payload.get("connected"),
            message=payload.get("message"),
            fail=payload.get("fail"),
            server_name=server_info.get("serverName"),
            server_version=server_info.get("serverVersion"),
            raw=payload,
        )

    def _post(self, path: str) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.post(url, json={}, timeout=self.timeout, verify=self.verify)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            raise GatewayError(f"POST {url} failed: {exc}") from exc
        except ValueError as exc:
            raise GatewayError(f"POST {url} returned non-JSON body") from exc
        if not isinstance(payload, dict):
            raise GatewayError(f"POST {url} returned {type(payload).__name__}, expected an object")
        return payload


__all__ = ["GatewaySessionClient", "GatewayError", "TickleResponse", "AuthStatusResponse"]
