from __future__ import annotations

import json
import os
import threading
import time
from typing import Any, Callable, Dict, List, Optional

REDACTED = "***REDACTED***"

# Matched case-insensitively against dict keys at any depth.
SENSITIVE_KEYS = frozenset(
    k.lower()
    for k in (
        "password",
        "secret",
        "session_secret",
        "token",
        "api_key",
        "key",
        "authorization",
        "cookie",
        "x-appwrite-session",
        "providerAccessToken",
        "providerRefreshToken",
    )
)


def redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: (REDACTED if str(k).lower() in SENSITIVE_KEYS else redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    return obj


def utc_timestamp() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class JsonlFile:
    """
    Append-only JSON-lines file. Writers share one lock per instance; unreadable
    lines are skipped on the way back out.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def append(self, entry: Dict[str, Any]) -> None:
        line = json.dumps(entry, ensure_ascii=False, default=str)
        with self._lock:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")

    def tail(self, n: int = 20, *, where: Optional[Callable[[Dict[str, Any]], bool]] = None) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                lines = f.readlines()
        except FileNotFoundError:
            return []
        out: List[Dict[str, Any]] = []
        for line in lines:
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                continue
            if where is None or where(entry):
                out.append(entry)
        return out[-max(1, int(n)) :]

    def by_trace_id(self, trace_id: str, n: int = 1000) -> List[Dict[str, Any]]:
        return self.tail(n, where=lambda e: e.get("trace_id") == trace_id)


class EventLogger(JsonlFile):
    """Session lifecycle trail: state transitions, logins, logouts, manual clears."""

    def __init__(self, path: str = os.path.join("logs", "events.jsonl")):
        super().__init__(path)

    def log(self, trace_id: str, event_type: str, details: Optional[Dict[str, Any]] = None) -> None:
        self.append({"ts": utc_timestamp(), "trace_id": trace_id, "event": event_type, "details": redact(details or {})})
