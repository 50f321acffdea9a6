from __future__ import annotations

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger("safetyhotspots.cache.store")


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[bytes]:
        ...

    def set(self, key: str, value: bytes) -> None:
        ...


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, bytes] = {}

    def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)

    def keys(self) -> list[str]:
        return list(self._data.keys())


class JsonDirectoryStore(KeyValueStore):
    """One file per key under ``root``; the file name is a digest of the key."""

    def __init__(self, root: str) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        digest = hashlib.sha1(key.encode("utf-8")).hexdigest()
        return self._root / f"{digest}.json"

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_bytes(value)
        os.replace(tmp, path)


def create_store(cfg: Dict[str, Any]) -> KeyValueStore:
    backend = str(cfg.get("backend", "memory")).lower()
    if backend == "memory":
        return MemoryStore()
    if backend == "json_dir":
        path = str(cfg.get("path", "") or "")
        if not path:
            raise ValueError("cache.path is required when cache.backend=json_dir")
        return JsonDirectoryStore(path)
    raise ValueError(f"Unknown cache.backend: {backend}")
