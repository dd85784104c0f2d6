from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from prepxl.core.config.io import (
    MISSING,
    atomic_write_json,
    ensure_dirs,
    read_json_file,
    recover_from_corrupt,
    snapshot_last_known_good,
)
from prepxl.core.config.models import SessionConfig
from prepxl.core.config.paths import ConfigFsPaths
from prepxl.core.errors import ConfigError


class ConfigManager:
    """
    Owns config/session.json.

    - missing file  -> defaults are written (unless read_only)
    - corrupt JSON  -> parked in backups, last-known-good restored, else defaults
    - schema errors -> ConfigError; whatever was loaded before stays in effect

    Every successful load (read-write mode) refreshes the last-known-good copy.
    """

    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self._cfg: Optional[SessionConfig] = None
        self._raw_last: Dict[str, Any] = {}

    def load_all(self) -> SessionConfig:
        if not self.read_only:
            ensure_dirs(self.fs.config_dir, self.fs.backups_dir, self.fs.last_known_good_dir)
        raw = self._load_raw()
        self._apply(raw, self._validate(raw))
        if not self.read_only:
            snapshot_last_known_good(self.fs.session, self.fs.last_known_good_dir)
        return self.get()

    def get(self) -> SessionConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def save(self, data: Dict[str, Any]) -> SessionConfig:
        if self.read_only:
            raise ConfigError("Config manager is read-only.")
        if not isinstance(data, dict):
            raise ConfigError("Config data must be an object.")
        cfg = self._validate(data)
        self._write(cfg.model_dump())
        return self.load_all()

    def reload_if_changed(self) -> bool:
        """Pick up external edits to session.json. A bad edit is logged and ignored."""
        if self._cfg is None:
            return False
        raw = self._load_raw()
        if raw == self._raw_last:
            return False
        try:
            cfg = self._validate(raw)
        except ConfigError as e:
            self._log("warning", f"session.json edit rejected, keeping previous config: {e.user_message}")
            return False
        self._apply(raw, cfg)
        self._log("info", "session.json reloaded")
        return True

    def _apply(self, raw: Dict[str, Any], cfg: SessionConfig) -> None:
        self._cfg = cfg
        self._raw_last = dict(raw)

    def _write(self, data: Dict[str, Any]) -> None:
        limit = int(((self._cfg or SessionConfig()).app.backups or {}).get("max_backups_per_file", 10))
        atomic_write_json(self.fs.session, data, self.fs.backups_dir, max_backups=limit)

    def _load_raw(self) -> Dict[str, Any]:
        rr = read_json_file(self.fs.session)
        if rr.ok:
            return rr.data
        defaults = SessionConfig().model_dump()
        if rr.error == MISSING:
            if not self.read_only:
                self._write(defaults)
                self._log("info", f"wrote default {os.path.basename(self.fs.session)}")
            return defaults
        if rr.is_corrupt and not self.read_only:
            data, recovered = recover_from_corrupt(self.fs.session, self.fs.backups_dir, self.fs.last_known_good_dir)
            self._log("warning", f"session.json was corrupt; restored_last_known_good={recovered}")
            return data if recovered else defaults
        raise ConfigError("Unable to read configuration.", path=self.fs.session, error=rr.error)

    def _validate(self, raw: Dict[str, Any]) -> SessionConfig:
        try:
            return SessionConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError("Invalid session configuration.", errors=e.errors(include_url=False)) from e

    def _log(self, level: str, msg: str) -> None:
        if self.logger is not None:
            getattr(self.logger, level)(msg)
