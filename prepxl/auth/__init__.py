from __future__ import annotations

from prepxl.auth.classifier import classify, describe, severity_for
from prepxl.auth.machine import Attempting, AttemptStep, Exhausted, Failed, Idle, Success, reduce
from prepxl.auth.models import ConflictCategory, ConflictRecord, ErrorInfo, Identity, ResolutionMethod, Session, ValidityResult
from prepxl.auth.oracle import SessionValidityOracle
from prepxl.auth.provider import IdentityProvider, ProviderError
from prepxl.auth.resolver import ConflictResolver, RedirectDescriptor
from prepxl.auth.store import AuthSessionStore
from prepxl.auth.strategy import Action, RecoveryStrategy, StrategyContext, strategy_for

__all__ = [
    "Action",
    "AttemptStep",
    "Attempting",
    "AuthSessionStore",
    "ConflictCategory",
    "ConflictRecord",
    "ConflictResolver",
    "ErrorInfo",
    "Exhausted",
    "Failed",
    "Identity",
    "IdentityProvider",
    "Idle",
    "ProviderError",
    "RecoveryStrategy",
    "RedirectDescriptor",
    "ResolutionMethod",
    "Session",
    "SessionValidityOracle",
    "StrategyContext",
    "Success",
    "ValidityResult",
    "classify",
    "describe",
    "reduce",
    "severity_for",
    "strategy_for",
]
