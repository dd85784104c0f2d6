from __future__ import annotations

import time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from prepxl.core.errors import Severity


def _iso_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class ConflictCategory(str, Enum):
    EXISTING_SESSION = "EXISTING_SESSION"
    ALL_SESSIONS_CLEAR_FAILED = "ALL_SESSIONS_CLEAR_FAILED"
    RESOLUTION_IN_PROGRESS = "RESOLUTION_IN_PROGRESS"
    RESOLUTION_SUCCESS = "RESOLUTION_SUCCESS"
    UNAUTHORIZED = "UNAUTHORIZED"
    TRANSPORT = "TRANSPORT"
    UNKNOWN = "UNKNOWN"


class ResolutionMethod(str, Enum):
    CURRENT = "CURRENT"
    ALL = "ALL"


class Session(BaseModel):
    """Opaque provider session plus an expiry hint."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    session_id: str
    user_id: str = ""
    secret: str = ""
    provider: str = "email"
    expires_at: Optional[str] = None
    created_at: str = Field(default_factory=_iso_now)


class Identity(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    user_id: str
    name: str = Field(default="", max_length=128)
    email: str = ""
    is_admin: bool = False
    labels: List[str] = Field(default_factory=list)


class ErrorInfo(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    category: ConflictCategory
    message: str = ""
    status: Optional[int] = None
    type: Optional[str] = None
    severity: Severity = Severity.INFO
    ts: str = Field(default_factory=_iso_now)


class ConflictRecord(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    category: ConflictCategory
    attempts: int = Field(default=0, ge=0)
    method: Optional[ResolutionMethod] = None
    resolved: bool = False
    last_error: Optional[ErrorInfo] = None


class ValidityResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    valid: bool
    session: Optional[Session] = None
    user: Optional[Identity] = None
    reason: Optional[str] = None
    error: Optional[ErrorInfo] = None

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"session": {"secret"}})
