from __future__ import annotations

from typing import Callable, Optional, TypeVar

from prepxl.auth.classifier import classify, describe, error_message
from prepxl.auth.models import ConflictCategory, Identity, Session, ValidityResult
from prepxl.auth.provider import IdentityProvider
from prepxl.core.errors import SessionNotFoundError, TransportError
from prepxl.core.logger import get_logger

T = TypeVar("T")

log = get_logger("auth.oracle")


class SessionValidityOracle:
    """
    Answers "is the stored session usable?" without forcing a new login.

    - check_validity() is read-only; "not logged in" and other provider failures are
      a normal valid=False result (non-auth failures keep the classified error)
    - transport failures get `transport_retries` extra tries here, then raise TransportError
    - refresh_and_validate() is the heavier path, used only after local state was cleared
    """

    def __init__(self, provider: IdentityProvider, *, transport_retries: int = 1):
        self.provider = provider
        self.transport_retries = max(0, int(transport_retries))

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        last: Optional[BaseException] = None
        for attempt in range(self.transport_retries + 1):
            try:
                return fn()
            except Exception as e:  # noqa: BLE001
                if classify(e) != ConflictCategory.TRANSPORT:
                    raise
                last = e
                log.warning(f"{op}: transport failure (attempt {attempt + 1}/{self.transport_retries + 1}): {error_message(e)}")
        if isinstance(last, TransportError):
            raise last
        raise TransportError(op=op, error=error_message(last)) from last

    def check_validity(self) -> ValidityResult:
        try:
            session: Session = self._call("get_current_session", self.provider.get_current_session)
            user: Identity = self._call("get_identity", self.provider.get_identity)
        except TransportError:
            raise
        except Exception as e:  # noqa: BLE001
            category = classify(e)
            if category == ConflictCategory.UNAUTHORIZED:
                return ValidityResult(valid=False, reason=error_message(e) or "not_logged_in")
            log.info(f"validity check: session unusable ({category.value}): {error_message(e)}")
            return ValidityResult(valid=False, reason=error_message(e) or category.value, error=describe(e, category))
        return ValidityResult(valid=True, session=session, user=user)

    def refresh_and_validate(self) -> ValidityResult:
        # An explicit provider rejection propagates unchanged.
        refreshed = self._call("refresh_session", self.provider.refresh_session)
        if refreshed is None:
            raise SessionNotFoundError(op="refresh_session")
        result = self.check_validity()
        if not result.valid:
            raise SessionNotFoundError(op="refresh_and_validate", reason=result.reason)
        return result
