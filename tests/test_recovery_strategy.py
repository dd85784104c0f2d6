from __future__ import annotations

import pytest

from prepxl.auth.models import ConflictCategory
from prepxl.auth.strategy import Action, RecoveryStrategy, StrategyContext, strategy_for
from prepxl.core.config.models import RecoveryConfigFile


@pytest.mark.parametrize("attempts,expected", [(0, Action.RETRY), (2, Action.RETRY), (3, Action.REDIRECT), (7, Action.REDIRECT)])
def test_existing_session_retries_until_budget(attempts, expected):
    assert strategy_for(ConflictCategory.EXISTING_SESSION, StrategyContext(attempts_so_far=attempts)) == expected


def test_clear_all_failure_is_never_retried():
    for attempts in range(4):
        ctx = StrategyContext(attempts_so_far=attempts)
        assert strategy_for(ConflictCategory.ALL_SESSIONS_CLEAR_FAILED, ctx) == Action.REDIRECT


def test_unauthorized_depends_on_page():
    assert strategy_for(ConflictCategory.UNAUTHORIZED, StrategyContext(is_public_page=True)) == Action.REDIRECT
    assert strategy_for(ConflictCategory.UNAUTHORIZED, StrategyContext(is_public_page=False)) == Action.REFRESH


@pytest.mark.parametrize(
    "category",
    [ConflictCategory.UNKNOWN, ConflictCategory.TRANSPORT, ConflictCategory.RESOLUTION_IN_PROGRESS, ConflictCategory.RESOLUTION_SUCCESS],
)
def test_everything_else_is_ignored(category):
    assert strategy_for(category, StrategyContext()) == Action.IGNORE


def test_policy_reads_budget_from_config():
    policy = RecoveryStrategy.from_config(RecoveryConfigFile(max_attempts=2, countdown_seconds=9))
    ctx = policy.context(attempts_so_far=1)
    assert ctx.max_attempts == 2

    d = policy.decide(ConflictCategory.EXISTING_SESSION, ctx)
    assert d.action == Action.RETRY
    assert d.retry_after_seconds == 9.0

    d = policy.decide(ConflictCategory.EXISTING_SESSION, policy.context(attempts_so_far=2))
    assert d.action == Action.REDIRECT
    assert d.retry_after_seconds == 0.0
    assert d.user_message
