from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    """
    On-disk layout below one project root. Relative paths found in session.json
    (log_dir, persisted credential file) are anchored here via `resolve`.
    """

    root: str = "."

    def resolve(self, path: str) -> str:
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.root, path))

    @property
    def config_dir(self) -> str:
        return self.resolve("config")

    @property
    def session(self) -> str:
        return os.path.join(self.config_dir, "session.json")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def last_known_good_dir(self) -> str:
        return os.path.join(self.backups_dir, "last_known_good")
