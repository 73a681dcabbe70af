"""Client-side reconstruction of the gateway session.

The gateway reports accounts, authentication and trading mode through
asynchronous ``act``/``sts``/``system`` frames. :func:`apply_event` folds those
events into an immutable :class:`SessionState`; every other event leaves the
state untouched.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from src.stream.events import Activation, Event, Status, System


@dataclass(frozen=True)
class AuthState:
    authenticated: Optional[bool] = None
    competing: Optional[bool] = None
    connected: Optional[bool] = None
    username: Optional[str] = None
    server_name: Optional[str] = None
    server_version: Optional[str] = None


@dataclass(frozen=True)
class SystemState:
    is_paper: Optional[bool] = None
    is_financial_trader: Optional[bool] = None
    success: Optional[str] = None


@dataclass(frozen=True)
class SessionState:
    """Snapshot of everything the gateway has told us about the session."""

    accounts: List[str] = field(default_factory=list)
    selected_account: Optional[str] = None
    acct_props: Dict[str, Any] = field(default_factory=dict)
    server_info: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None
    auth: AuthState = field(default_factory=AuthState)
    system: SystemState = field(default_factory=SystemState)

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable view of the session."""

        return {
            "accounts": list(self.accounts),
            "selected_account": self.selected_account,
            "acct_props": dict(self.acct_props),
            "server_info": dict(self.server_info),
            "session_id": self.session_id,
            "auth": {
                "authenticated": self.auth.authenticated,
                "competing": self.auth.competing,
                "connected": self.auth.connected,
                "username": self.auth.username,
                "server_name": self.auth.server_name,
                "server_version": self.auth.server_version,
            },
            "system": {
                "is_paper": self.system.is_paper,
                "is_financial_trader": self.system.is_financial_trader,
                "success": self.system.success,
            },
        }


def apply_event(state: SessionState, event: Event) -> SessionState:
    """Return ``state`` updated with the session fields carried by ``event``.

    Only the sub-record matching the event type is overwritten; fields learned
    from earlier events of other types are preserved. Values are not validated,
    so a field the gateway omitted is stored as ``None``.
    """

    if isinstance(event, Activation):
        return replace(
            state,
            accounts=list(event.accounts),
            selected_account=event.selected_account,
            acct_props=dict(event.acct_props),
            server_info=dict(event.server_info),
            session_id=event.session_id,
        )
    if isinstance(event, Status):
        return replace(
            state,
            auth=replace(
                state.auth,
                authenticated=event.authenticated,
                competing=event.competing,
                connected=event.connected,
                username=event.username,
                server_name=event.server_name,
                server_version=event.server_version,
            ),
        )
    if isinstance(event, System):
        return replace(
            state,
            system=replace(
                state.system,
                is_paper=event.is_paper_trading,
                is_financial_trader=event.is_financial_trader,
                success=event.success,
            ),
        )
    return state


__all__ = ["SessionState", "AuthState", "SystemState", "apply_event"]
