from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from prepxl.auth.models import ConflictCategory


class Action(str, Enum):
    RETRY = "RETRY"
    REDIRECT = "REDIRECT"
    REFRESH = "REFRESH"
    IGNORE = "IGNORE"


@dataclass(frozen=True)
class StrategyContext:
    is_public_page: bool = True
    attempts_so_far: int = 0
    max_attempts: int = 3


@dataclass(frozen=True)
class Decision:
    action: Action
    user_message: str
    retry_after_seconds: float = 0.0


def strategy_for(category: ConflictCategory, context: StrategyContext) -> Action:
    # Deterministic lookup, no side effects.
    if category == ConflictCategory.EXISTING_SESSION:
        if int(context.attempts_so_far) < int(context.max_attempts):
            return Action.RETRY
        return Action.REDIRECT
    if category == ConflictCategory.ALL_SESSIONS_CLEAR_FAILED:
        # Clearing every session is destructive; never repeated without user input.
        return Action.REDIRECT
    if category == ConflictCategory.UNAUTHORIZED:
        return Action.REDIRECT if context.is_public_page else Action.REFRESH
    return Action.IGNORE


_USER_MESSAGES = {
    Action.RETRY: "Resolving session conflict...",
    Action.REDIRECT: "Please log in again to continue.",
    Action.REFRESH: "Your session needs to be refreshed.",
    Action.IGNORE: "An unexpected error occurred.",
}


class RecoveryStrategy:
    def __init__(self, *, max_attempts: int = 3, countdown_seconds: int = 5):
        self.max_attempts = int(max_attempts)
        self.countdown_seconds = int(countdown_seconds)

    @classmethod
    def from_config(cls, cfg) -> "RecoveryStrategy":  # noqa: ANN001
        return cls(max_attempts=cfg.max_attempts, countdown_seconds=cfg.countdown_seconds)

    def context(self, *, attempts_so_far: int, is_public_page: bool = True) -> StrategyContext:
        return StrategyContext(is_public_page=bool(is_public_page), attempts_so_far=int(attempts_so_far), max_attempts=self.max_attempts)

    def decide(self, category: ConflictCategory, context: StrategyContext) -> Decision:
        action = strategy_for(category, context)
        retry_after = float(self.countdown_seconds) if action == Action.RETRY else 0.0
        return Decision(action, _USER_MESSAGES[action], retry_after_seconds=retry_after)
