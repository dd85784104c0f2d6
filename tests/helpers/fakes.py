from __future__ import annotations

from typing import Any, Callable, List, Optional, Union

from prepxl.auth.models import Identity, Session
from prepxl.auth.provider import IdentityProvider, ProviderError
from prepxl.auth.scheduler import Handle, Scheduler


class FakeClock:
    def __init__(self, start: float = 0.0):
        self._t = float(start)

    def time(self) -> float:
        return self._t

    def advance(self, seconds: float) -> None:
        self._t += float(seconds)

    def set(self, t: float) -> None:
        self._t = float(t)


class ManualHandle(Handle):
    def __init__(self, due: float, seq: int, fn: Callable[[], None]):
        self.due = due
        self.seq = seq
        self.fn = fn
        self.fired = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler(Scheduler):
    """
    Deterministic scheduler: callbacks only run when the test advances the clock.
    """

    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.handles: List[ManualHandle] = []
        self._seq = 0

    def call_later(self, delay_seconds: float, fn: Callable[[], None]) -> Handle:
        self._seq += 1
        h = ManualHandle(self.clock.time() + float(delay_seconds), self._seq, fn)
        self.handles.append(h)
        return h

    def pending(self) -> List[ManualHandle]:
        return [h for h in self.handles if not h.cancelled and not h.fired]

    def _next_due(self, until: Optional[float]) -> Optional[ManualHandle]:
        live = [h for h in self.pending() if until is None or h.due <= until + 1e-9]
        if not live:
            return None
        return min(live, key=lambda h: (h.due, h.seq))

    def _fire(self, h: ManualHandle) -> None:
        if h.due > self.clock.time():
            self.clock.set(h.due)
        h.fired = True
        h.fn()

    def advance(self, seconds: float) -> None:
        target = self.clock.time() + float(seconds)
        while True:
            h = self._next_due(target)
            if h is None:
                break
            self._fire(h)
        self.clock.set(target)

    def run_until_idle(self, limit: int = 200) -> int:
        n = 0
        while n < limit:
            h = self._next_due(None)
            if h is None:
                return n
            self._fire(h)
            n += 1
        raise AssertionError("scheduler did not go idle")


def conflict_error() -> ProviderError:
    return ProviderError(
        "Creation of a session is prohibited when a session is active.",
        status=401,
        type="user_session_already_exists",
    )


def guest_error() -> ProviderError:
    return ProviderError("User (role: guests) missing scope (account)", status=401, type="general_unauthorized_scope")


RefreshOutcome = Union[Session, BaseException, None, str]


class FakeProvider(IdentityProvider):
    """
    In-memory identity provider. `current_session is None` means "not logged in".
    """

    name = "fake"

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.sign_in_errors: List[BaseException] = []
        self.refresh_results: List[RefreshOutcome] = []
        self.current_session: Optional[Session] = None
        self.identity = Identity(user_id="u1", name="Ada", email="ada@example.com")
        self.clear_current_error: Optional[BaseException] = None
        self.clear_all_error: Optional[BaseException] = None
        self.on_refresh: Optional[Callable[[], Any]] = None
        self._refreshes = 0

    def count(self, name: str) -> int:
        return self.calls.count(name)

    def sign_in(self, email: str, password: str) -> Session:
        self.calls.append("sign_in")
        if self.sign_in_errors:
            raise self.sign_in_errors.pop(0)
        self.current_session = Session(session_id="s-login", user_id="u1", secret="login-secret")
        return self.current_session

    def get_current_session(self) -> Session:
        self.calls.append("get_current_session")
        if self.current_session is None:
            raise guest_error()
        return self.current_session

    def get_identity(self) -> Identity:
        self.calls.append("get_identity")
        if self.current_session is None:
            raise guest_error()
        return self.identity

    def refresh_session(self) -> Session:
        self.calls.append("refresh_session")
        if self.on_refresh is not None:
            self.on_refresh()
        outcome: RefreshOutcome = self.refresh_results.pop(0) if self.refresh_results else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        if outcome is None:
            return None  # type: ignore[return-value]
        if isinstance(outcome, Session):
            self.current_session = outcome
            return outcome
        self._refreshes += 1
        self.current_session = Session(session_id=f"s-refreshed-{self._refreshes}", user_id="u1", secret="refreshed-secret")
        return self.current_session

    def clear_current_session(self) -> None:
        self.calls.append("clear_current_session")
        if self.clear_current_error is not None:
            raise self.clear_current_error
        self.current_session = None

    def clear_all_sessions(self) -> None:
        self.calls.append("clear_all_sessions")
        if self.clear_all_error is not None:
            raise self.clear_all_error
        self.current_session = None


class StubResponse:
    def __init__(self, status_code: int = 200, json_data: Any = None, text: str = ""):
        self.status_code = status_code
        self._json_data = json_data
        self.text = text

    def json(self):
        if self._json_data is None:
            raise ValueError("no json")
        return self._json_data


class StubHttp:
    """
    Stands in for requests.Session: replays queued responses and records requests.
    """

    def __init__(self) -> None:
        self.responses: List[Union[StubResponse, BaseException]] = []
        self.requests: List[dict] = []

    def queue(self, *items: Union[StubResponse, BaseException]) -> None:
        self.responses.extend(items)

    def request(self, method: str, url: str, **kwargs: Any) -> StubResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        item = self.responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item
