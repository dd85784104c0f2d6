from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

MISSING = "missing"
CORRUPT = "corrupt_json"


@dataclass(frozen=True)
class ReadResult:
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_corrupt(self) -> bool:
        return bool(self.error and self.error.startswith(CORRUPT))


def ensure_dirs(*dirs: str) -> None:
    for d in dirs:
        os.makedirs(d, exist_ok=True)


def read_json_file(path: str) -> ReadResult:
    """Read a JSON object from disk. Never raises; the failure is reported in `error`."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except FileNotFoundError:
        return ReadResult(error=MISSING)
    except json.JSONDecodeError as e:
        return ReadResult(error=f"{CORRUPT}:{e.msg}")
    except OSError as e:
        return ReadResult(error=str(e))
    if not isinstance(obj, dict):
        # a list or scalar at top level is as unusable as a syntax error
        return ReadResult(error=f"{CORRUPT}:not an object")
    return ReadResult(data=obj)


def _stamped_name(path: str, reason: str) -> str:
    return f"{os.path.basename(path)}.{time.strftime('%Y%m%d_%H%M%S', time.gmtime())}.{reason}.json"


def _prune(backups_dir: str, base: str, keep: int) -> None:
    names = [n for n in os.listdir(backups_dir) if n.startswith(base + ".")]
    paths = sorted((os.path.join(backups_dir, n) for n in names), key=os.path.getmtime, reverse=True)
    for stale in paths[max(0, keep):]:
        try:
            os.remove(stale)
        except OSError:
            continue


def backup_file(path: str, backups_dir: str, *, reason: str, max_backups: int = 10) -> Optional[str]:
    if not os.path.isfile(path):
        return None
    ensure_dirs(backups_dir)
    target = os.path.join(backups_dir, _stamped_name(path, reason))
    try:
        shutil.copy2(path, target)
    except OSError:
        return None
    _prune(backups_dir, os.path.basename(path), max_backups)
    return target


def atomic_write_json(path: str, data: Dict[str, Any], backups_dir: Optional[str] = None, *, max_backups: int = 10) -> None:
    """
    Write via a temp file in the same directory and os.replace it into place, so
    readers see either the old or the new document. With `backups_dir` the previous
    file is copied aside first.
    """
    folder = os.path.dirname(path) or "."
    ensure_dirs(folder)
    if backups_dir:
        backup_file(path, backups_dir, reason="prewrite", max_backups=max_backups)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=folder)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def recover_from_corrupt(path: str, backups_dir: str, last_known_good_dir: str, *, max_backups: int = 10) -> Tuple[Dict[str, Any], bool]:
    """
    Park the unreadable file as backups/<name>.<ts>.corrupt.json, then put the
    last-known-good copy back in place if one exists. Returns (data, recovered).
    """
    ensure_dirs(backups_dir, last_known_good_dir)
    if os.path.exists(path):
        try:
            shutil.move(path, os.path.join(backups_dir, _stamped_name(path, "corrupt")))
        except OSError:
            pass
    lkg = read_json_file(os.path.join(last_known_good_dir, os.path.basename(path)))
    if not lkg.ok:
        return {}, False
    atomic_write_json(path, lkg.data, backups_dir, max_backups=max_backups)
    return lkg.data, True


def snapshot_last_known_good(path: str, last_known_good_dir: str) -> bool:
    if not os.path.isfile(path):
        return False
    ensure_dirs(last_known_good_dir)
    try:
        shutil.copy2(path, os.path.join(last_known_good_dir, os.path.basename(path)))
    except OSError:
        return False
    return True
