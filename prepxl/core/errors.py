from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from prepxl.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class PrepXLError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


# ---- Core types ----
class ConfigError(PrepXLError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class StateTransitionError(PrepXLError):
    def __init__(self, user_message: str = "Internal state error.", **ctx: Any):
        super().__init__("state_transition_error", user_message, severity=Severity.ERROR, recoverable=True, context=ctx)


# ---- Session conflict taxonomy ----
class TransportError(PrepXLError):
    def __init__(self, user_message: str = "Unable to reach the sign-in service.", **ctx: Any):
        super().__init__("transport_error", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ExistingSessionConflict(PrepXLError):
    def __init__(self, user_message: str = "A session is already active. Attempting to resolve session conflict.", **ctx: Any):
        super().__init__("existing_session", user_message, severity=Severity.INFO, recoverable=True, context=ctx)


class AllSessionsClearFailed(PrepXLError):
    def __init__(self, user_message: str = "Failed to resolve session conflict.", **ctx: Any):
        super().__init__("all_sessions_clear_failed", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class UnauthorizedError(PrepXLError):
    def __init__(self, user_message: str = "Authentication required. Please log in again.", **ctx: Any):
        super().__init__("unauthorized", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class SessionNotFoundError(PrepXLError):
    def __init__(self, user_message: str = "No valid session found.", **ctx: Any):
        super().__init__("session_not_found", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class UnknownSessionError(PrepXLError):
    def __init__(self, user_message: str = "Something went wrong while signing in.", **ctx: Any):
        super().__init__("unknown_error", user_message, severity=Severity.ERROR, recoverable=False, context=ctx)


class ResolutionInProgressError(PrepXLError):
    def __init__(self, user_message: str = "Please wait while we resolve the session conflict.", **ctx: Any):
        super().__init__("resolution_in_progress", user_message, severity=Severity.INFO, recoverable=True, context=ctx)
