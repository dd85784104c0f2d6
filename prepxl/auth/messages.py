from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from prepxl.auth.machine import Attempting, Exhausted, Failed, Idle, State, Success
from prepxl.auth.models import ConflictCategory
from prepxl.core.errors import Severity


@dataclass(frozen=True)
class ConflictMessage:
    title: str
    message: str
    user_message: str
    debug_message: str
    recoverable: bool
    severity: Severity


CATALOG: Dict[ConflictCategory, ConflictMessage] = {
    ConflictCategory.EXISTING_SESSION: ConflictMessage(
        "Session Conflict Detected",
        "You already have an active session. We'll clear it and log you in.",
        "Resolving session conflict...",
        "Detected existing session during login attempt",
        True,
        Severity.WARN,
    ),
    ConflictCategory.ALL_SESSIONS_CLEAR_FAILED: ConflictMessage(
        "Session Resolution Failed",
        "Unable to resolve session conflict automatically.",
        "Please try signing out from all sessions manually or contact support.",
        "All session clearing attempts failed",
        False,
        Severity.ERROR,
    ),
    ConflictCategory.RESOLUTION_IN_PROGRESS: ConflictMessage(
        "Resolving Session Conflict",
        "Clearing existing session and logging you in...",
        "Please wait while we resolve the session conflict.",
        "Session conflict resolution in progress",
        True,
        Severity.INFO,
    ),
    ConflictCategory.RESOLUTION_SUCCESS: ConflictMessage(
        "Session Resolved",
        "Session conflict resolved successfully.",
        "You have been logged in successfully.",
        "Session conflict resolved and new session created",
        True,
        Severity.INFO,
    ),
    ConflictCategory.UNAUTHORIZED: ConflictMessage(
        "Authentication Required",
        "Your session has expired or is invalid.",
        "Please log in again to continue.",
        "Provider rejected the stored credentials",
        False,
        Severity.WARN,
    ),
    ConflictCategory.TRANSPORT: ConflictMessage(
        "Connection Problem",
        "Unable to reach the sign-in service.",
        "Please check your connection and try again.",
        "Transport failure while talking to the identity provider",
        True,
        Severity.WARN,
    ),
    ConflictCategory.UNKNOWN: ConflictMessage(
        "Sign-in Error",
        "Something went wrong while signing in.",
        "Please try again or contact support.",
        "Unclassified provider failure",
        False,
        Severity.ERROR,
    ),
}

DEFAULT_STATUS = "Your session has expired or is invalid."
MANUAL_LOGIN_MESSAGE = "Your session has expired. Please log in again to continue."


def message_for(category: ConflictCategory) -> ConflictMessage:
    return CATALOG.get(category, CATALOG[ConflictCategory.EXISTING_SESSION])


def status_message(state: State) -> str:
    if isinstance(state, Attempting):
        return "Attempting to recover your session..."
    if isinstance(state, Success):
        return "Session recovered successfully!"
    if isinstance(state, Failed):
        return f"Recovery attempt {state.record.attempts} failed. Retrying in {state.countdown}s..."
    if isinstance(state, Exhausted):
        return "Unable to recover your session automatically. Please try the options below."
    return DEFAULT_STATUS


def _action(action_id: str, label: str) -> Dict[str, str]:
    return {"id": action_id, "label": label}


def notice(state: State, *, show_manual_options: bool = True) -> Dict[str, Any]:
    """
    Display descriptor for the current state: {type, title, message, persistent, actions}.

    Exhausted notices stay up until the user picks an action; the rest are transient.
    """
    if isinstance(state, Idle):
        return {"type": "none"}

    record = state.record
    category = record.category if record is not None else ConflictCategory.EXISTING_SESSION
    if isinstance(state, Success):
        msg = message_for(ConflictCategory.RESOLUTION_SUCCESS)
        return {"type": "completed", "title": msg.title, "message": msg.user_message, "persistent": False, "actions": []}
    if isinstance(state, (Attempting, Failed)):
        msg = message_for(ConflictCategory.RESOLUTION_IN_PROGRESS)
        payload: Dict[str, Any] = {
            "type": "progress",
            "title": msg.title,
            "message": status_message(state),
            "persistent": False,
            "actions": [],
        }
        if isinstance(state, Failed):
            payload["countdown"] = int(state.countdown)
            payload["actions"] = [_action("retry", "Retry now")]
        return payload

    msg = message_for(category)
    actions: List[Dict[str, str]] = []
    if show_manual_options:
        if category == ConflictCategory.ALL_SESSIONS_CLEAR_FAILED:
            actions.append(_action("clear_all_sessions", "Clear All Sessions"))
        actions.append(_action("manual_login", "Go to Login Page"))
        actions.append(_action("retry", "Retry"))
    return {
        "type": "failed",
        "title": msg.title,
        "message": status_message(state),
        "remediation": msg.user_message,
        "persistent": True,
        "actions": actions,
    }
