from __future__ import annotations

import contextlib
import contextvars
import uuid
from typing import Iterator, Optional

# One id per login cycle. Every log line, event and error record written while
# the cycle is being driven carries it, including work done on timer threads.
_LOGIN_TRACE: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("prepxl.login_trace", default=None)


def new_trace_id() -> str:
    return uuid.uuid4().hex


def current_trace_id() -> Optional[str]:
    return _LOGIN_TRACE.get() or None


def resolve_trace_id(trace_id: Optional[str] = None) -> str:
    """Caller-supplied id, else the one bound to this context, else a fresh one."""
    return str(trace_id) if trace_id else (current_trace_id() or new_trace_id())


@contextlib.contextmanager
def login_trace(trace_id: Optional[str] = None) -> Iterator[str]:
    """
    Bind a login-cycle id for the duration of the block.

    Timer callbacks start with an empty context, so the resolver re-binds the
    cycle id each time it drives the state machine.
    """
    tid = resolve_trace_id(trace_id)
    token = _LOGIN_TRACE.set(tid)
    try:
        yield tid
    finally:
        _LOGIN_TRACE.reset(token)
