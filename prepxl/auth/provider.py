from __future__ import annotations

from typing import Any, Dict, Optional

from prepxl.auth.models import Identity, Session


class ProviderError(Exception):
    """
    Raw failure reported by the identity provider: `{message, code, type}`.

    `status` mirrors the HTTP code the provider attached; `type` is the
    provider's machine-readable error type (e.g. `user_session_already_exists`).
    """

    def __init__(self, message: str = "", *, status: Optional[int] = None, type: Optional[str] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = str(message or "")
        self.status = status
        self.type = type
        self.payload = dict(payload or {})

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], *, status: Optional[int] = None) -> "ProviderError":
        code = payload.get("code")
        try:
            code = int(code) if code is not None else status
        except (TypeError, ValueError):
            code = status
        return cls(str(payload.get("message") or ""), status=code, type=payload.get("type"), payload=payload)

    def __repr__(self) -> str:
        return f"ProviderError(status={self.status!r}, type={self.type!r}, message={self.message!r})"


class IdentityProvider:
    """
    Identity provider client interface.

    All calls are opaque, possibly-failing remote calls:
    - sign_in()               -> create a session from credentials
    - get_current_session()   -> read-only lookup of the stored session
    - get_identity()          -> profile for the current session
    - refresh_session()       -> mint/extend a session from implicit credentials
    - clear_current_session() -> delete only the current session
    - clear_all_sessions()    -> delete every session for the account
    """

    name: str = "base"

    def sign_in(self, email: str, password: str) -> Session:
        raise NotImplementedError

    def get_current_session(self) -> Session:
        raise NotImplementedError

    def get_identity(self) -> Identity:
        raise NotImplementedError

    def refresh_session(self) -> Session:
        raise NotImplementedError

    def clear_current_session(self) -> None:
        raise NotImplementedError

    def clear_all_sessions(self) -> None:
        raise NotImplementedError
