"""
Session conflict resolution state machine.

States and events are frozen values; `reduce()` is the only place transitions
are decided. It performs no IO: the resolver runs the side effects for each
state it enters (oracle call, local clear, settle timer, refresh, countdown).

    Idle --LoginConflict(RETRY)--> Attempting(VALIDATING)
    Attempting(VALIDATING) --OracleChecked(valid)--> Success
    Attempting(VALIDATING) --OracleChecked(invalid)--> Attempting(SETTLING)
    Attempting(SETTLING) --SettleElapsed--> Attempting(REFRESHING)
    Attempting(REFRESHING) --RefreshSucceeded--> Success
    Attempting(*) --AttemptFailed(RETRY)--> Failed(countdown)
    Attempting(*) --AttemptFailed(other)--> Exhausted
    Failed --Tick--> Failed(countdown - 1) | Attempting(VALIDATING)
    Failed | Exhausted --RetryRequested--> Attempting(VALIDATING)
    * --Reset--> Idle
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from prepxl.auth.models import ConflictCategory, ConflictRecord, ErrorInfo, ValidityResult
from prepxl.auth.strategy import Action, RecoveryStrategy
from prepxl.core.errors import StateTransitionError


class AttemptStep(str, Enum):
    VALIDATING = "VALIDATING"
    SETTLING = "SETTLING"
    REFRESHING = "REFRESHING"


# ---- States ----
@dataclass(frozen=True)
class Idle:
    kind: ClassVar[str] = "IDLE"
    record: ClassVar[Optional[ConflictRecord]] = None


@dataclass(frozen=True)
class Attempting:
    kind: ClassVar[str] = "ATTEMPTING"
    record: ConflictRecord
    step: AttemptStep = AttemptStep.VALIDATING
    is_public_page: bool = True


@dataclass(frozen=True)
class Failed:
    kind: ClassVar[str] = "FAILED"
    record: ConflictRecord
    countdown: int
    is_public_page: bool = True


@dataclass(frozen=True)
class Success:
    kind: ClassVar[str] = "SUCCESS"
    record: ConflictRecord
    result: Optional[ValidityResult] = None


@dataclass(frozen=True)
class Exhausted:
    kind: ClassVar[str] = "EXHAUSTED"
    record: ConflictRecord
    action: Action = Action.REDIRECT
    is_public_page: bool = True


State = Union[Idle, Attempting, Failed, Success, Exhausted]


# ---- Events ----
@dataclass(frozen=True)
class LoginConflict:
    category: ConflictCategory
    error: Optional[ErrorInfo] = None
    is_public_page: bool = True


@dataclass(frozen=True)
class OracleChecked:
    valid: bool
    result: Optional[ValidityResult] = None
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class SettleElapsed:
    pass


@dataclass(frozen=True)
class RefreshSucceeded:
    result: ValidityResult


@dataclass(frozen=True)
class AttemptFailed:
    category: ConflictCategory
    error: Optional[ErrorInfo] = None


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class Reset:
    reason: str = "reset"


Event = Union[LoginConflict, OracleChecked, SettleElapsed, RefreshSucceeded, AttemptFailed, Tick, RetryRequested, Reset]


def is_active(state: State) -> bool:
    """True while a resolution sequence owns the session (an attempt or a pending retry)."""
    return isinstance(state, (Attempting, Failed))


def _invalid(state: State, event: Event) -> StateTransitionError:
    return StateTransitionError(state=state.kind, event=type(event).__name__)


def _next_attempt(record: ConflictRecord, policy: RecoveryStrategy, is_public_page: bool) -> State:
    if record.attempts >= policy.max_attempts:
        return Exhausted(record, Action.REDIRECT, is_public_page)
    return Attempting(record.model_copy(update={"attempts": record.attempts + 1}), AttemptStep.VALIDATING, is_public_page)


def reduce(state: State, event: Event, policy: RecoveryStrategy) -> State:
    if isinstance(event, Reset):
        return Idle()

    if isinstance(state, Idle):
        if not isinstance(event, LoginConflict):
            raise _invalid(state, event)
        decision = policy.decide(event.category, policy.context(attempts_so_far=0, is_public_page=event.is_public_page))
        if decision.action == Action.IGNORE:
            return state
        if decision.action == Action.REDIRECT:
            return Exhausted(ConflictRecord(category=event.category, attempts=0, last_error=event.error), Action.REDIRECT, event.is_public_page)
        record = ConflictRecord(category=event.category, attempts=1, last_error=event.error)
        step = AttemptStep.VALIDATING if decision.action == Action.RETRY else AttemptStep.REFRESHING
        return Attempting(record, step, event.is_public_page)

    if isinstance(state, Attempting):
        record = state.record
        if isinstance(event, AttemptFailed):
            failed = record.model_copy(update={"last_error": event.error})
            decision = policy.decide(event.category, policy.context(attempts_so_far=record.attempts, is_public_page=state.is_public_page))
            if decision.action == Action.RETRY:
                return Failed(failed, max(1, int(decision.retry_after_seconds)), state.is_public_page)
            return Exhausted(failed, decision.action, state.is_public_page)
        if state.step == AttemptStep.VALIDATING and isinstance(event, OracleChecked):
            if event.valid:
                return Success(record.model_copy(update={"resolved": True}), event.result)
            if event.error is not None:
                record = record.model_copy(update={"last_error": event.error})
            return Attempting(record, AttemptStep.SETTLING, state.is_public_page)
        if state.step == AttemptStep.SETTLING and isinstance(event, SettleElapsed):
            return Attempting(record, AttemptStep.REFRESHING, state.is_public_page)
        if state.step == AttemptStep.REFRESHING and isinstance(event, RefreshSucceeded):
            return Success(record.model_copy(update={"resolved": True}), event.result)
        raise _invalid(state, event)

    if isinstance(state, Failed):
        if isinstance(event, Tick):
            if state.countdown > 1:
                return Failed(state.record, state.countdown - 1, state.is_public_page)
            return _next_attempt(state.record, policy, state.is_public_page)
        if isinstance(event, RetryRequested):
            return _next_attempt(state.record, policy, state.is_public_page)
        raise _invalid(state, event)

    if isinstance(state, Exhausted):
        if isinstance(event, RetryRequested):
            # User-initiated: a fresh budget for the same conflict.
            record = ConflictRecord(category=state.record.category, attempts=1)
            return Attempting(record, AttemptStep.VALIDATING, state.is_public_page)
        raise _invalid(state, event)

    raise _invalid(state, event)
