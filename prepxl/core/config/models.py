from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AppFileConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    config_version: int = Field(default=1, ge=1)
    created_at: str = "1970-01-01T00:00:00Z"
    backups: Dict[str, Any] = Field(default_factory=lambda: {"max_backups_per_file": 10})


class RecoveryConfigFile(BaseModel):
    """
    Timing and budget for automatic session-conflict recovery.
    """

    model_config = ConfigDict(extra="forbid")
    max_attempts: int = Field(default=3, ge=1, le=10)
    countdown_seconds: int = Field(default=5, ge=1, le=60)
    tick_seconds: float = Field(default=1.0, gt=0.0, le=10.0)
    settle_delay_seconds: float = Field(default=0.8, ge=0.0, le=10.0)
    success_dismiss_seconds: float = Field(default=1.5, ge=0.0, le=30.0)
    exhausted_redirect_seconds: float = Field(default=2.0, ge=0.0, le=30.0)
    manual_clear_reset_seconds: float = Field(default=2.0, ge=0.0, le=30.0)
    transport_retries: int = Field(default=1, ge=0, le=3)
    auto_retry: bool = True
    show_manual_options: bool = True
    login_path: str = "/login"


class StorageConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")
    auth_keys: List[str] = Field(default_factory=lambda: ["auth-storage"])
    persisted_path: str = "runtime/auth_storage.json"

    @field_validator("auth_keys", mode="before")
    @classmethod
    def _coerce_keys(cls, v: Any) -> List[str]:
        if v is None:
            return ["auth-storage"]
        if isinstance(v, str):
            v = [v]
        out: List[str] = []
        for item in list(v):
            s = str(item or "").strip()
            if s and s not in out:
                out.append(s)
        return out


class ProviderConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")
    endpoint: str = "https://cloud.appwrite.io/v1"
    project_id: str = ""
    timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)

    @field_validator("endpoint")
    @classmethod
    def _http_endpoint(cls, v: str) -> str:
        v = str(v or "").strip().rstrip("/")
        if not (v.startswith("http://") or v.startswith("https://")):
            raise ValueError("endpoint must be an http(s) URL")
        return v


class LoggingConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    console: bool = True
    include_tracebacks: bool = False

    @field_validator("level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = str(v or "INFO").upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return v


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    app: AppFileConfig = Field(default_factory=AppFileConfig)
    recovery: RecoveryConfigFile = Field(default_factory=RecoveryConfigFile)
    storage: StorageConfigFile = Field(default_factory=StorageConfigFile)
    provider: ProviderConfigFile = Field(default_factory=ProviderConfigFile)
    logging: LoggingConfigFile = Field(default_factory=LoggingConfigFile)


def default_session_config(overrides: Optional[Dict[str, Any]] = None) -> SessionConfig:
    data = SessionConfig().model_dump()
    for section, values in (overrides or {}).items():
        if isinstance(values, dict) and isinstance(data.get(section), dict):
            data[section].update(values)
        else:
            data[section] = values
    return SessionConfig.model_validate(data)
