from __future__ import annotations

import os
import traceback
from dataclasses import dataclass
from typing import Any, Dict, Optional

from prepxl.core.errors import PrepXLError, UnknownSessionError
from prepxl.core.events import JsonlFile, redact, utc_timestamp


@dataclass
class ErrorReporterConfig:
    include_tracebacks: bool = False
    traceback_limit: int = 30


class ErrorReporter(JsonlFile):
    """
    errors.jsonl sink for conflict failures worth keeping (clear-all failures,
    unknown errors). Entries carry the login-cycle trace id so they can be joined
    with the event trail.
    """

    def __init__(self, *, path: str = os.path.join("logs", "errors.jsonl"), cfg: Optional[ErrorReporterConfig] = None):
        super().__init__(path)
        self.cfg = cfg or ErrorReporterConfig()

    def report_exception(self, exc: BaseException, *, trace_id: str, subsystem: str, context: Optional[Dict[str, Any]] = None) -> PrepXLError:
        err = normalize_exception(exc, context=context or {})
        self.write_error(err, trace_id=trace_id, subsystem=subsystem, internal_exc=exc)
        return err

    def write_error(self, err: PrepXLError, *, trace_id: str, subsystem: str, internal_exc: Optional[BaseException] = None) -> None:
        entry: Dict[str, Any] = {"ts": utc_timestamp(), "trace_id": trace_id, "subsystem": subsystem}
        entry.update(
            error_code=err.code,
            severity=err.severity.value,
            recoverable=bool(err.recoverable),
            user_message=err.user_message,
            safe_context=redact(err.context or {}),
        )
        if internal_exc is not None and self.cfg.include_tracebacks:
            tb = traceback.format_exception(type(internal_exc), internal_exc, internal_exc.__traceback__, limit=self.cfg.traceback_limit)
            entry["internal_context"] = {"traceback": "".join(tb)}
        self.append(entry)


def normalize_exception(exc: BaseException, *, context: Dict[str, Any]) -> PrepXLError:
    if isinstance(exc, PrepXLError):
        return exc
    return UnknownSessionError(error=str(exc), error_type=type(exc).__name__, **dict(context or {}))
