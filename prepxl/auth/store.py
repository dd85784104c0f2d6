from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from prepxl.auth.models import ConflictRecord, Identity, ResolutionMethod, Session
from prepxl.core.logger import get_logger

log = get_logger("auth.store")


@dataclass(frozen=True)
class StoreSnapshot:
    identity: Optional[Identity]
    session: Optional[Session]
    conflict: Optional[ConflictRecord]
    conflict_in_progress: bool

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None and self.session is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authenticated": self.is_authenticated,
            "user_id": self.identity.user_id if self.identity else None,
            "session_id": self.session.session_id if self.session else None,
            "conflict": self.conflict.model_dump(mode="json") if self.conflict else None,
            "conflict_in_progress": bool(self.conflict_in_progress),
        }


Listener = Callable[[StoreSnapshot], None]


class AuthSessionStore:
    """
    Process-wide holder of the signed-in Identity, its Session, and the active
    ConflictRecord.

    Identity and Session are set and cleared together by the credential
    mutators; logout() empties all three under one lock so a reader never
    observes a half-cleared store.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._identity: Optional[Identity] = None
        self._session: Optional[Session] = None
        self._conflict: Optional[ConflictRecord] = None
        self._in_progress = False
        self._listeners: List[Listener] = []

    # ---- readers ----
    def get_identity(self) -> Optional[Identity]:
        with self._lock:
            return self._identity

    def get_session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    def get_conflict_record(self) -> Optional[ConflictRecord]:
        with self._lock:
            return self._conflict

    def is_authenticated(self) -> bool:
        with self._lock:
            return self._identity is not None and self._session is not None

    def is_conflict_in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    def conflict_method(self) -> Optional[ResolutionMethod]:
        with self._lock:
            return self._conflict.method if self._conflict else None

    def snapshot(self) -> StoreSnapshot:
        with self._lock:
            return StoreSnapshot(self._identity, self._session, self._conflict, self._in_progress)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    # ---- mutators ----
    def set_identity(self, identity: Optional[Identity]) -> None:
        with self._lock:
            self._identity = identity
        self._notify()

    def set_session(self, session: Optional[Session]) -> None:
        with self._lock:
            self._session = session
        self._notify()

    def set_credentials(self, identity: Identity, session: Session) -> None:
        with self._lock:
            self._identity = identity
            self._session = session
        self._notify()

    def record_conflict_start(self, record: ConflictRecord) -> None:
        with self._lock:
            self._conflict = record
            self._in_progress = True
        self._notify()

    def record_conflict_resolved(self, record: ConflictRecord, *, identity: Optional[Identity] = None, session: Optional[Session] = None) -> None:
        with self._lock:
            if identity is not None:
                self._identity = identity
            if session is not None:
                self._session = session
            self._conflict = record.model_copy(update={"resolved": True})
            self._in_progress = False
        self._notify()

    def record_conflict_failed(self, record: ConflictRecord, *, in_progress: bool = False) -> None:
        with self._lock:
            self._conflict = record.model_copy(update={"resolved": False})
            self._in_progress = bool(in_progress)
        self._notify()

    def clear_conflict_record(self) -> None:
        with self._lock:
            self._conflict = None
            self._in_progress = False
        self._notify()

    def clear_credentials(self) -> None:
        with self._lock:
            self._identity = None
            self._session = None
        self._notify()

    def logout(self) -> None:
        with self._lock:
            self._identity = None
            self._session = None
            self._conflict = None
            self._in_progress = False
        self._notify()

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
            snap = StoreSnapshot(self._identity, self._session, self._conflict, self._in_progress)
        for listener in listeners:
            try:
                listener(snap)
            except Exception as e:  # noqa: BLE001
                log.warning(f"store listener failed: {e}")
