from __future__ import annotations

from typing import Any, Dict, Optional, Tuple, Type

import requests

from prepxl.auth.models import ConflictCategory, ErrorInfo
from prepxl.core.errors import (
    AllSessionsClearFailed,
    ExistingSessionConflict,
    PrepXLError,
    ResolutionInProgressError,
    SessionNotFoundError,
    Severity,
    TransportError,
    UnauthorizedError,
    UnknownSessionError,
)

_TAXONOMY: Tuple[Tuple[Type[PrepXLError], ConflictCategory], ...] = (
    (ExistingSessionConflict, ConflictCategory.EXISTING_SESSION),
    (AllSessionsClearFailed, ConflictCategory.ALL_SESSIONS_CLEAR_FAILED),
    (ResolutionInProgressError, ConflictCategory.RESOLUTION_IN_PROGRESS),
    (UnauthorizedError, ConflictCategory.UNAUTHORIZED),
    (SessionNotFoundError, ConflictCategory.UNAUTHORIZED),
    (TransportError, ConflictCategory.TRANSPORT),
    (UnknownSessionError, ConflictCategory.UNKNOWN),
)

EXISTING_SESSION_TYPES = {"user_session_already_exists"}
EXISTING_SESSION_PHRASES = (
    "session already active",
    "session is already active",
    "session already exists",
    "existing session",
    "prohibited when a session is active",
)

CLEAR_ALL_FAILED_TYPES = {"all_sessions_clear_failed"}
CLEAR_ALL_FAILED_PHRASES = (
    "could not clear all sessions",
    "failed to clear all sessions",
    "failed to resolve session conflict",
)

UNAUTHORIZED_STATUSES = {401, 403}
UNAUTHORIZED_TYPES = {
    "general_unauthorized_scope",
    "user_unauthorized",
    "user_invalid_credentials",
    "user_jwt_invalid",
    "user_session_not_found",
    "session_not_found",
}

TRANSPORT_PHRASES = ("network", "timed out", "failed to fetch", "connection refused", "connection reset")

_SEVERITY: Dict[ConflictCategory, Severity] = {
    ConflictCategory.ALL_SESSIONS_CLEAR_FAILED: Severity.ERROR,
    ConflictCategory.UNKNOWN: Severity.ERROR,
    ConflictCategory.UNAUTHORIZED: Severity.WARN,
    ConflictCategory.TRANSPORT: Severity.WARN,
}

_MAX_CAUSE_DEPTH = 3


def _field(error: Any, name: str) -> Any:
    if isinstance(error, dict):
        return error.get(name)
    return getattr(error, name, None)


def error_status(error: Any) -> Optional[int]:
    if isinstance(error, PrepXLError):
        return None
    for name in ("status", "status_code", "code"):
        v = _field(error, name)
        if isinstance(v, bool):
            continue
        if isinstance(v, int):
            return v
        if isinstance(v, str) and v.isdigit():
            return int(v)
    response = _field(error, "response")
    v = getattr(response, "status_code", None)
    return v if isinstance(v, int) else None


def error_type(error: Any) -> str:
    if isinstance(error, PrepXLError):
        return error.code
    v = _field(error, "type")
    return str(v).strip().lower() if isinstance(v, str) else ""


def error_message(error: Any) -> str:
    if error is None:
        return ""
    if isinstance(error, str):
        return error
    if isinstance(error, PrepXLError):
        return error.user_message
    v = _field(error, "message")
    if isinstance(v, str) and v:
        return v
    if isinstance(error, BaseException):
        return str(error)
    return ""


def _is_transport(error: Any, msg: str) -> bool:
    if isinstance(error, (ConnectionError, TimeoutError, requests.ConnectionError, requests.Timeout)):
        return True
    if type(error).__name__ == "NetworkError" or _field(error, "name") == "NetworkError":
        return True
    return any(p in msg for p in TRANSPORT_PHRASES)


def _classify_once(error: Any) -> ConflictCategory:
    if error is None:
        return ConflictCategory.UNKNOWN
    for cls, category in _TAXONOMY:
        if isinstance(error, cls):
            return category
    if isinstance(error, PrepXLError):
        return ConflictCategory.UNKNOWN

    typ = error_type(error)
    msg = error_message(error).lower()
    status = error_status(error)

    # The provider reports a duplicate session with status 401; check it before the generic 401 rule.
    if typ in EXISTING_SESSION_TYPES or any(p in msg for p in EXISTING_SESSION_PHRASES):
        return ConflictCategory.EXISTING_SESSION
    if typ in CLEAR_ALL_FAILED_TYPES or any(p in msg for p in CLEAR_ALL_FAILED_PHRASES):
        return ConflictCategory.ALL_SESSIONS_CLEAR_FAILED
    if status in UNAUTHORIZED_STATUSES or typ in UNAUTHORIZED_TYPES or "unauthorized" in typ or "unauthorized" in msg:
        return ConflictCategory.UNAUTHORIZED
    if _is_transport(error, msg):
        return ConflictCategory.TRANSPORT
    return ConflictCategory.UNKNOWN


def classify(error: Any) -> ConflictCategory:
    """
    Map any provider failure shape (exception, dict payload, message string, None)
    to a ConflictCategory. Pure and total: the same shape always yields the same category.

    Wrapped errors (`original_error` / `__cause__`) are consulted when the outer
    error carries no recognizable signal.
    """
    current = error
    for _ in range(_MAX_CAUSE_DEPTH):
        category = _classify_once(current)
        if category != ConflictCategory.UNKNOWN:
            return category
        inner = _field(current, "original_error") if current is not None else None
        if inner is None and isinstance(current, BaseException):
            inner = current.__cause__
        if inner is None or inner is current:
            break
        current = inner
    return ConflictCategory.UNKNOWN


def severity_for(category: ConflictCategory) -> Severity:
    return _SEVERITY.get(category, Severity.INFO)


def describe(error: Any, category: Optional[ConflictCategory] = None) -> ErrorInfo:
    cat = category or classify(error)
    return ErrorInfo(
        category=cat,
        message=error_message(error)[:300],
        status=error_status(error),
        type=error_type(error) or None,
        severity=severity_for(cat),
    )


def to_error(error: Any, category: Optional[ConflictCategory] = None) -> PrepXLError:
    """
    Normalize a raw failure into the session error taxonomy (passthrough for taxonomy errors).
    """
    if isinstance(error, PrepXLError):
        return error
    cat = category or classify(error)
    ctx = {"status": error_status(error), "type": error_type(error) or None, "error": error_message(error)[:300]}
    if cat == ConflictCategory.EXISTING_SESSION:
        return ExistingSessionConflict(**ctx)
    if cat == ConflictCategory.ALL_SESSIONS_CLEAR_FAILED:
        return AllSessionsClearFailed(**ctx)
    if cat == ConflictCategory.UNAUTHORIZED:
        return UnauthorizedError(**ctx)
    if cat == ConflictCategory.TRANSPORT:
        return TransportError(**ctx)
    if cat == ConflictCategory.RESOLUTION_IN_PROGRESS:
        return ResolutionInProgressError(**ctx)
    return UnknownSessionError(**ctx)
