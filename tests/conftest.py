from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

import pytest

from prepxl.auth.resolver import ConflictResolver, RedirectDescriptor
from prepxl.auth.storage import JsonFileCredentialStorage, MemoryCredentialStorage
from prepxl.auth.store import AuthSessionStore
from prepxl.core.config.models import RecoveryConfigFile
from prepxl.core.error_reporter import ErrorReporter
from prepxl.core.events import EventLogger

from .helpers.fakes import FakeProvider, ManualScheduler

AUTH_KEY = "auth-storage"


@dataclass
class Rig:
    resolver: ConflictResolver
    provider: FakeProvider
    scheduler: ManualScheduler
    store: AuthSessionStore
    memory: MemoryCredentialStorage
    persisted: JsonFileCredentialStorage
    events: EventLogger
    errors: ErrorReporter
    recovered: List[Any] = field(default_factory=list)
    dismissed: List[int] = field(default_factory=list)
    redirects: List[RedirectDescriptor] = field(default_factory=list)


@pytest.fixture
def make_rig(tmp_path) -> Callable[..., Rig]:
    def _make(**recovery: Any) -> Rig:
        provider = FakeProvider()
        scheduler = ManualScheduler()
        store = AuthSessionStore()
        memory = MemoryCredentialStorage()
        persisted = JsonFileCredentialStorage(str(tmp_path / "runtime" / "auth_storage.json"))
        blob: Dict[str, Any] = {"user": {"id": "u1"}, "token": "cached"}
        memory.set(AUTH_KEY, blob)
        persisted.set(AUTH_KEY, blob)
        events = EventLogger(str(tmp_path / "logs" / "events.jsonl"))
        errors = ErrorReporter(path=str(tmp_path / "logs" / "errors.jsonl"))
        rig = Rig(
            resolver=None,  # type: ignore[arg-type]
            provider=provider,
            scheduler=scheduler,
            store=store,
            memory=memory,
            persisted=persisted,
            events=events,
            errors=errors,
        )
        rig.resolver = ConflictResolver(
            provider=provider,
            store=store,
            storages=[memory, persisted],
            auth_keys=[AUTH_KEY],
            cfg=RecoveryConfigFile(**recovery),
            scheduler=scheduler,
            event_logger=events,
            error_reporter=errors,
            on_recovered=rig.recovered.append,
            on_dismiss=lambda: rig.dismissed.append(1),
            on_redirect=rig.redirects.append,
        )
        return rig

    return _make
