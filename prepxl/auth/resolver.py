"""
Effect runner for the conflict state machine.

The resolver owns everything `reduce()` must not touch: provider calls, the
local credential clear, timers, store mirroring and the JSONL trail. Provider
calls run outside the resolver lock with `_busy` set; every re-entry checks the
generation it started under, so logout() or a new login always wins over a
stale callback.
"""
from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from prepxl.auth.appwrite import AppwriteIdentityProvider
from prepxl.auth.classifier import classify, describe, error_message, severity_for, to_error
from prepxl.auth.machine import (
    AttemptFailed,
    Attempting,
    AttemptStep,
    Event,
    Exhausted,
    Failed,
    Idle,
    LoginConflict,
    OracleChecked,
    RefreshSucceeded,
    Reset,
    RetryRequested,
    SettleElapsed,
    State,
    Success,
    Tick,
    reduce,
)
from prepxl.auth.messages import MANUAL_LOGIN_MESSAGE, notice, status_message
from prepxl.auth.models import ConflictCategory, ConflictRecord, ResolutionMethod
from prepxl.auth.oracle import SessionValidityOracle
from prepxl.auth.provider import IdentityProvider
from prepxl.auth.scheduler import Scheduler, TaskSlot, ThreadingScheduler
from prepxl.auth.storage import CredentialStorage, JsonFileCredentialStorage, MemoryCredentialStorage, delete_keys
from prepxl.auth.store import AuthSessionStore
from prepxl.auth.strategy import Action, RecoveryStrategy
from prepxl.core.config.models import RecoveryConfigFile, SessionConfig
from prepxl.core.config.paths import ConfigFsPaths
from prepxl.core.error_reporter import ErrorReporter, ErrorReporterConfig
from prepxl.core.errors import ResolutionInProgressError, Severity, StateTransitionError
from prepxl.core.events import EventLogger
from prepxl.core.logger import get_logger, setup_logging
from prepxl.core.trace import login_trace, new_trace_id, resolve_trace_id

log = get_logger("auth.resolver")

_HIGH_SEVERITY = {Severity.ERROR, Severity.CRITICAL}


@dataclass(frozen=True)
class RedirectDescriptor:
    path: str
    from_path: Optional[str]
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "state": {"from": self.from_path, "message": self.message}}


class ConflictResolver:
    """
    Coordinates login, automatic conflict recovery and the manual fallbacks.

    UI-facing surface:
    - submit_login(), retry_now(), manual_login(), logout()
    - clear_all_sessions(), clear_current_session() (user-triggered only)
    - state, countdown, conflict_record, status_message(), notice()
    """

    def __init__(
        self,
        *,
        provider: IdentityProvider,
        store: Optional[AuthSessionStore] = None,
        oracle: Optional[SessionValidityOracle] = None,
        storages: Sequence[CredentialStorage] = (),
        auth_keys: Iterable[str] = ("auth-storage",),
        cfg: Optional[RecoveryConfigFile] = None,
        scheduler: Optional[Scheduler] = None,
        event_logger: Optional[EventLogger] = None,
        error_reporter: Optional[ErrorReporter] = None,
        on_recovered: Optional[Callable[[Success], None]] = None,
        on_dismiss: Optional[Callable[[], None]] = None,
        on_redirect: Optional[Callable[[RedirectDescriptor], None]] = None,
    ):
        self.provider = provider
        self.store = store or AuthSessionStore()
        self.cfg = cfg or RecoveryConfigFile()
        self.oracle = oracle or SessionValidityOracle(provider, transport_retries=self.cfg.transport_retries)
        self.storages = list(storages)
        self.auth_keys = list(auth_keys)
        self.policy = RecoveryStrategy.from_config(self.cfg)
        self.event_logger = event_logger
        self.error_reporter = error_reporter
        self.on_recovered = on_recovered
        self.on_dismiss = on_dismiss
        self.on_redirect = on_redirect

        self._slot = TaskSlot(scheduler or ThreadingScheduler(), name="conflict")
        self._lock = threading.RLock()
        self._state: State = Idle()
        self._gen = 0
        self._busy = False
        self._trace_id = new_trace_id()
        self._from_path: Optional[str] = None

    @classmethod
    def from_config(
        cls,
        cfg: SessionConfig,
        *,
        fs: Optional[ConfigFsPaths] = None,
        provider: Optional[IdentityProvider] = None,
        store: Optional[AuthSessionStore] = None,
        scheduler: Optional[Scheduler] = None,
        **callbacks: Any,
    ) -> "ConflictResolver":
        fs = fs or ConfigFsPaths(".")
        log_dir = fs.resolve(cfg.logging.log_dir)
        setup_logging(log_dir, level=cfg.logging.level, console=cfg.logging.console)
        return cls(
            provider=provider or AppwriteIdentityProvider.from_config(cfg.provider),
            store=store,
            storages=[MemoryCredentialStorage(), JsonFileCredentialStorage(fs.resolve(cfg.storage.persisted_path))],
            auth_keys=cfg.storage.auth_keys,
            cfg=cfg.recovery,
            scheduler=scheduler,
            event_logger=EventLogger(os.path.join(log_dir, "events.jsonl")),
            error_reporter=ErrorReporter(
                path=os.path.join(log_dir, "errors.jsonl"),
                cfg=ErrorReporterConfig(include_tracebacks=cfg.logging.include_tracebacks),
            ),
            **callbacks,
        )

    # ---- read side ----
    @property
    def state(self) -> State:
        with self._lock:
            return self._state

    @property
    def countdown(self) -> Optional[int]:
        with self._lock:
            return self._state.countdown if isinstance(self._state, Failed) else None

    @property
    def conflict_record(self) -> Optional[ConflictRecord]:
        return self.store.get_conflict_record()

    @property
    def trace_id(self) -> str:
        return self._trace_id

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._busy

    def status_message(self) -> str:
        return status_message(self.state)

    def notice(self) -> Dict[str, Any]:
        return notice(self.state, show_manual_options=self.cfg.show_manual_options)

    # ---- login ----
    def submit_login(
        self,
        email: str,
        password: str,
        *,
        is_public_page: bool = True,
        from_path: Optional[str] = None,
        trace_id: Optional[str] = None,
    ) -> State:
        """
        Sign in. A conflict-classified failure hands over to automatic recovery and the
        resulting state is returned; failures the recovery table ignores are re-raised unchanged.
        """
        with self._lock:
            if self._busy:
                raise ResolutionInProgressError(op="submit_login")
            self._cancel_locked()
            if not isinstance(self._state, Idle):
                self._set_state(Idle(), {"reason": "new_login"})
            elif self.store.get_conflict_record() is not None:
                self.store.clear_conflict_record()
            self._trace_id = resolve_trace_id(trace_id)
            self._from_path = from_path
            self._busy = True
            gen = self._gen

        try:
            with login_trace(self._trace_id):
                session = self.provider.sign_in(email, password)
                identity = self.provider.get_identity()
        except Exception as e:  # noqa: BLE001
            category = classify(e)
            with self._lock:
                if gen != self._gen:
                    raise
                decision = self.policy.decide(category, self.policy.context(attempts_so_far=0, is_public_page=is_public_page))
                if decision.action == Action.IGNORE:
                    self._busy = False
                    self._report(category, e)
                    raise
            log.info(f"login failed ({category.value}); recovery action {decision.action.value}")
            self._drive(gen, LoginConflict(category, describe(e, category), is_public_page))
            return self.state

        with self._lock:
            if gen == self._gen:
                self._busy = False
                self.store.set_credentials(identity, session)
                self._log_event("session.login", {"user_id": identity.user_id, "session_id": session.session_id})
            return self._state

    def retry_now(self) -> State:
        with self._lock:
            if self._busy:
                raise ResolutionInProgressError(op="retry_now")
            if not isinstance(self._state, (Failed, Exhausted)):
                raise StateTransitionError(state=self._state.kind, event="RetryRequested")
            self._cancel_locked()
            self._busy = True
            gen = self._gen
        self._drive(gen, RetryRequested())
        return self.state

    # ---- manual paths ----
    def logout(self, *, remote: bool = True) -> None:
        with self._lock:
            self._cancel_locked()
            self._busy = False
            if not isinstance(self._state, Idle):
                self._set_state(Idle(), {"reason": "logout"}, mirror=False)
            self.store.logout()
            delete_keys(self.storages, self.auth_keys)
            self._log_event("session.logout", {"remote": bool(remote)})
        if remote:
            try:
                self.provider.clear_current_session()
            except Exception as e:  # noqa: BLE001
                log.warning(f"remote session delete on logout failed: {error_message(e)}")

    def manual_login(self) -> RedirectDescriptor:
        from_path = self._from_path
        self.logout()
        desc = RedirectDescriptor(path=self.cfg.login_path, from_path=from_path, message=MANUAL_LOGIN_MESSAGE)
        self._log_event("session.manual_login", desc.to_dict())
        self._fire(self.on_redirect, desc)
        return desc

    def clear_all_sessions(self) -> ConflictRecord:
        return self._manual_clear(ResolutionMethod.ALL, self.provider.clear_all_sessions, ConflictCategory.ALL_SESSIONS_CLEAR_FAILED)

    def clear_current_session(self) -> ConflictRecord:
        return self._manual_clear(ResolutionMethod.CURRENT, self.provider.clear_current_session, None)

    def _manual_clear(self, method: ResolutionMethod, call: Callable[[], None], fail_category: Optional[ConflictCategory]) -> ConflictRecord:
        with self._lock:
            if self._busy:
                raise ResolutionInProgressError(op=f"clear_{method.value.lower()}")
            self._cancel_locked()
            self._busy = True
            gen = self._gen
            base = self._state.record or self.store.get_conflict_record() or ConflictRecord(category=ConflictCategory.EXISTING_SESSION)
            record = base.model_copy(update={"method": method, "resolved": False})
            self.store.record_conflict_start(record)
            self._log_event("session.manual_clear", {"method": method.value, "phase": "start"})

        try:
            call()
        except Exception as e:  # noqa: BLE001
            category = fail_category or classify(e)
            err = to_error(e, category)
            with self._lock:
                if gen == self._gen:
                    self._busy = False
                    failed = record.model_copy(update={"category": category, "last_error": describe(e, category)})
                    page = getattr(self._state, "is_public_page", True)
                    self._set_state(Exhausted(failed, Action.REDIRECT, page), {"reason": "manual_clear_failed", "method": method.value})
                    self._report(category, e)
            if err is e:
                raise
            raise err from e

        with self._lock:
            if gen != self._gen:
                return record
            self._busy = False
            self.store.clear_credentials()
            delete_keys(self.storages, self.auth_keys)
            resolved = record.model_copy(update={"resolved": True})
            self.store.record_conflict_resolved(resolved)
            if not isinstance(self._state, Idle):
                self._set_state(Idle(), {"reason": "manual_clear", "method": method.value}, mirror=False)
            self._log_event("session.manual_clear", {"method": method.value, "phase": "resolved"})
            self._slot.schedule(self.cfg.manual_clear_reset_seconds, lambda: self._reset_record(gen), label="manual_reset")
            return resolved

    # ---- driving the machine ----
    def _drive(self, gen: int, event: Optional[Event]) -> None:
        with login_trace(self._trace_id):
            self._run(gen, event)

    def _run(self, gen: int, event: Optional[Event]) -> None:
        while event is not None:
            after: List[Callable[[], None]] = []
            with self._lock:
                if gen != self._gen:
                    return
                try:
                    new_state = reduce(self._state, event, self.policy)
                    self._set_state(new_state, {"event": type(event).__name__})
                    effect = self._enter(new_state, gen, after)
                except Exception:
                    self._busy = False
                    raise
                self._busy = effect is not None
            for fn in after:
                fn()
            event = effect() if effect is not None else None

    def _enter(self, state: State, gen: int, after: List[Callable[[], None]]) -> Optional[Callable[[], Event]]:
        if isinstance(state, Attempting):
            if state.step == AttemptStep.VALIDATING:
                return self._validate
            if state.step == AttemptStep.REFRESHING:
                return self._refresh
            try:
                self._clear_local()
            except Exception as e:  # noqa: BLE001
                category = classify(e)
                info = describe(e, category)
                return lambda: AttemptFailed(category, info)
            self._slot.schedule(self.cfg.settle_delay_seconds, lambda: self._drive(gen, SettleElapsed()), label="settle")
            return None

        if isinstance(state, Failed):
            if self.cfg.auto_retry:
                self._slot.schedule(self.cfg.tick_seconds, lambda: self._drive(gen, Tick()), label="countdown")
            return None

        if isinstance(state, Success):
            after.append(lambda: self._fire(self.on_recovered, state))
            self._slot.schedule(self.cfg.success_dismiss_seconds, lambda: self._dismiss(gen), label="dismiss")
            return None

        if isinstance(state, Exhausted):
            last = state.record.last_error
            self._report(last.category if last else state.record.category, last)
            if not self.cfg.show_manual_options:
                self._slot.schedule(self.cfg.exhausted_redirect_seconds, lambda: self._auto_redirect(gen), label="redirect")
            return None
        return None

    def _validate(self) -> Event:
        try:
            result = self.oracle.check_validity()
        except Exception as e:  # noqa: BLE001
            category = classify(e)
            log.warning(f"validity check failed ({category.value}): {error_message(e)}")
            return OracleChecked(valid=False, error=describe(e, category))
        if not result.valid:
            return OracleChecked(valid=False, error=result.error)
        return OracleChecked(valid=True, result=result)

    def _refresh(self) -> Event:
        try:
            result = self.oracle.refresh_and_validate()
        except Exception as e:  # noqa: BLE001
            category = classify(e)
            log.info(f"refresh failed ({category.value}): {error_message(e)}")
            return AttemptFailed(category, describe(e, category))
        return RefreshSucceeded(result)

    def _clear_local(self) -> None:
        self.store.clear_credentials()
        n = delete_keys(self.storages, self.auth_keys)
        self._log_event("session.clear_local", {"keys": list(self.auth_keys), "deletes": n})

    def _dismiss(self, gen: int) -> None:
        with self._lock:
            if gen != self._gen or not isinstance(self._state, Success):
                return
            self._drive_reset("dismissed")
        self._fire(self.on_dismiss)

    def _auto_redirect(self, gen: int) -> None:
        with self._lock:
            if gen != self._gen or not isinstance(self._state, Exhausted):
                return
        self.manual_login()

    def _reset_record(self, gen: int) -> None:
        with self._lock:
            if gen == self._gen and isinstance(self._state, Idle):
                self.store.clear_conflict_record()

    def _drive_reset(self, reason: str) -> None:
        self._set_state(reduce(self._state, Reset(reason), self.policy), {"reason": reason})

    # ---- bookkeeping ----
    def _cancel_locked(self) -> None:
        self._slot.cancel()
        self._gen += 1

    def _set_state(self, new_state: State, details: Optional[Dict[str, Any]] = None, *, mirror: bool = True) -> None:
        old = self._state
        self._state = new_state
        payload: Dict[str, Any] = {"from": old.kind, "to": new_state.kind, **(details or {})}
        record = new_state.record
        if record is not None:
            payload["category"] = record.category.value
            payload["attempts"] = record.attempts
        if isinstance(new_state, Attempting):
            payload["step"] = new_state.step.value
        if isinstance(new_state, Failed):
            payload["countdown"] = new_state.countdown
        if mirror:
            self._mirror(new_state)
        self._log_event("session.state", payload)
        if isinstance(old, Failed) and isinstance(new_state, Failed):
            log.debug(f"retry countdown {new_state.countdown}s")
        else:
            log.info(f"session state {old.kind} -> {new_state.kind}")

    def _mirror(self, state: State) -> None:
        if isinstance(state, Attempting):
            self.store.record_conflict_start(state.record)
        elif isinstance(state, Failed):
            self.store.record_conflict_failed(state.record, in_progress=True)
        elif isinstance(state, Success):
            result = state.result
            self.store.record_conflict_resolved(
                state.record,
                identity=result.user if result else None,
                session=result.session if result else None,
            )
        elif isinstance(state, Exhausted):
            self.store.record_conflict_failed(state.record, in_progress=False)
        else:
            self.store.clear_conflict_record()

    def _log_event(self, event_type: str, details: Dict[str, Any]) -> None:
        if self.event_logger is None:
            return
        try:
            self.event_logger.log(self._trace_id, event_type, details)
        except OSError as e:
            log.warning(f"event trail write failed ({event_type}): {e}")

    def _report(self, category: ConflictCategory, error: Any) -> None:
        if severity_for(category) not in _HIGH_SEVERITY:
            return
        err = to_error(error, category)
        log.error(f"session conflict failure [{category.value}]: {err.user_message}")
        if self.error_reporter is not None:
            exc = error if isinstance(error, BaseException) else None
            try:
                self.error_reporter.write_error(err, trace_id=self._trace_id, subsystem="auth.conflict", internal_exc=exc)
            except OSError as e:
                log.warning(f"error report write failed: {e}")

    @staticmethod
    def _fire(callback: Optional[Callable[..., None]], *args: Any) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:  # noqa: BLE001
            log.warning(f"resolver callback failed: {e}")
