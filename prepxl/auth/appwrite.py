"""
HTTP identity provider for the hosted backend's account API.

Endpoints used:
1. POST   /account/sessions/email   -> sign in
2. GET    /account/sessions/current -> current session (read-only)
3. PATCH  /account/sessions/current -> refresh/extend current session
4. GET    /account                  -> identity
5. DELETE /account/sessions/current -> clear current session
6. DELETE /account/sessions         -> clear all sessions
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from prepxl.auth.models import Identity, Session
from prepxl.auth.provider import IdentityProvider, ProviderError
from prepxl.core.errors import TransportError


class AppwriteIdentityProvider(IdentityProvider):
    name: str = "appwrite"

    def __init__(self, *, endpoint: str, project_id: str, timeout_seconds: float = 10.0, http: Optional[requests.Session] = None) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.project_id = project_id
        self.timeout_seconds = float(timeout_seconds)
        self.http = http or requests.Session()
        self._session_secret: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: Any) -> "AppwriteIdentityProvider":
        return cls(endpoint=cfg.endpoint, project_id=cfg.project_id, timeout_seconds=cfg.timeout_seconds)

    def _url(self, path: str) -> str:
        return f"{self.endpoint}{path}"

    def _headers(self) -> Dict[str, str]:
        h = {"X-Appwrite-Project": self.project_id, "Content-Type": "application/json"}
        if self._session_secret:
            h["X-Appwrite-Session"] = self._session_secret
        return h

    # ── HTTP helpers ───────────────────────────────────────────────

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            r = self.http.request(method, self._url(path), json=payload, headers=self._headers(), timeout=self.timeout_seconds)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise TransportError(method=method, path=path, error=str(e)) from e
        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = {"message": getattr(r, "text", "") or f"HTTP {r.status_code}"}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            raise ProviderError.from_payload(body, status=r.status_code)
        if r.status_code == 204:
            return {}
        try:
            data = r.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _to_session(data: Dict[str, Any]) -> Session:
        if not data.get("$id"):
            raise ProviderError("Session response missing $id", status=500, type="general_server_error", payload=data)
        return Session(
            session_id=str(data["$id"]),
            user_id=str(data.get("userId") or ""),
            secret=str(data.get("secret") or ""),
            provider=str(data.get("provider") or "email"),
            expires_at=data.get("expire"),
        )

    # ── IdentityProvider ───────────────────────────────────────────

    def sign_in(self, email: str, password: str) -> Session:
        data = self._request("POST", "/account/sessions/email", {"email": email, "password": password})
        session = self._to_session(data)
        if session.secret:
            self._session_secret = session.secret
        return session

    def get_current_session(self) -> Session:
        return self._to_session(self._request("GET", "/account/sessions/current"))

    def get_identity(self) -> Identity:
        data = self._request("GET", "/account")
        labels = [str(x) for x in (data.get("labels") or [])]
        prefs = data.get("prefs") or {}
        return Identity(
            user_id=str(data.get("$id") or ""),
            name=str(data.get("name") or ""),
            email=str(data.get("email") or ""),
            is_admin=("admin" in labels) or bool(prefs.get("isAdmin")),
            labels=labels,
        )

    def refresh_session(self) -> Session:
        return self._to_session(self._request("PATCH", "/account/sessions/current"))

    def clear_current_session(self) -> None:
        self._request("DELETE", "/account/sessions/current")
        self._session_secret = None

    def clear_all_sessions(self) -> None:
        self._request("DELETE", "/account/sessions")
        self._session_secret = None
