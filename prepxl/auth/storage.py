"""
Client-side credential blobs (the persisted auth snapshot and its in-memory twin).

Only whole-key operations are exposed; there is no partial mutation of a blob.
"""
from __future__ import annotations

import os
import threading
from typing import Any, Dict, Iterable, List, Optional

from prepxl.core.config.io import atomic_write_json, read_json_file


class CredentialStorage:
    name: str = "base"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, key: str, value: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> List[str]:
        raise NotImplementedError


class MemoryCredentialStorage(CredentialStorage):
    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._data: Dict[str, Dict[str, Any]] = {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            v = self._data.get(key)
            return dict(v) if v is not None else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            self._data[key] = dict(value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data.keys())


class JsonFileCredentialStorage(CredentialStorage):
    """
    Persisted key-value blob in a single JSON file (atomic replace on every write).
    A corrupt file reads as empty and is overwritten by the next set() or delete().
    """

    name = "file"

    def __init__(self, path: str = os.path.join("runtime", "auth_storage.json")) -> None:
        self.path = path
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        rr = read_json_file(self.path)
        return rr.data if rr.ok else {}

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            v = self._read().get(key)
            return dict(v) if isinstance(v, dict) else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        with self._lock:
            data = self._read()
            data[key] = dict(value)
            atomic_write_json(self.path, data)

    def delete(self, key: str) -> None:
        with self._lock:
            rr = read_json_file(self.path)
            if rr.is_corrupt:
                # unreadable blob may still hold the key; drop it wholesale
                atomic_write_json(self.path, {})
                return
            if key not in rr.data:
                return
            data = dict(rr.data)
            data.pop(key, None)
            atomic_write_json(self.path, data)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._read().keys())


def delete_keys(storages: Iterable[CredentialStorage], keys: Iterable[str]) -> int:
    """Whole-key delete across every storage; returns the number of delete calls made."""
    n = 0
    key_list = list(keys)
    for storage in storages:
        for key in key_list:
            storage.delete(key)
            n += 1
    return n
