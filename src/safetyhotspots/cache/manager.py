from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Sequence, TypeVar

from safetyhotspots.cache.codec import event_from_dict, event_to_dict, position_from_list, position_to_list
from safetyhotspots.cache.store import KeyValueStore
from safetyhotspots.utils.types import DetectedEvent, PositionSample, ScanEvent


logger = logging.getLogger("safetyhotspots.cache.manager")

# v3: incident records carry window-start speed and the window stats
CACHE_VERSION = 3

T = TypeVar("T")


@dataclass(frozen=True)
class CacheConfig:
    version: int = CACHE_VERSION
    namespace: str = "safetyhotspots"
    backend: str = "memory"
    path: str = ""

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CacheConfig":
        return CacheConfig(
            version=int(d.get("version", CACHE_VERSION)),
            namespace=str(d.get("namespace", "safetyhotspots")),
            backend=str(d.get("backend", "memory")).lower(),
            path=str(d.get("path", "") or ""),
        )


@dataclass(frozen=True)
class CacheEnvelope(Generic[T]):
    version: int
    key: str
    payload: List[T]
    saved_at: float
    fingerprint: Optional[str] = None


def dataset_fingerprint(events: Sequence[ScanEvent]) -> Optional[str]:
    """Approximate identity of an event list: count plus first/last timestamps.

    Edits in the middle of the list that keep the count and both ends intact
    produce the same fingerprint.
    """
    if not events:
        return None
    first = events[0].timestamp or ""
    last = events[-1].timestamp or ""
    return f"{len(events)}_{first}_{last}"


class CacheManager:
    def __init__(self, store: KeyValueStore, cfg: CacheConfig = CacheConfig()) -> None:
        self._store = store
        self._cfg = cfg

    @property
    def version(self) -> int:
        return self._cfg.version

    def event_key(self, kind: str, event_id: str) -> str:
        return f"{self._cfg.namespace}:event:{kind}:{event_id}"

    def dataset_key(self, kind: str) -> str:
        return f"{self._cfg.namespace}:dataset:{kind}"

    def load_event(self, kind: str, event_id: str) -> Optional[List[DetectedEvent]]:
        env = self._load(self.event_key(kind, event_id), event_from_dict)
        return None if env is None else env.payload

    def save_event(self, kind: str, event_id: str, items: Sequence[DetectedEvent]) -> None:
        self._save(self.event_key(kind, event_id), [event_to_dict(e) for e in items])

    def load_dataset_positions(self, events: Sequence[ScanEvent]) -> Optional[List[PositionSample]]:
        return self.load_dataset("positions", events, position_from_list)

    def save_dataset_positions(self, events: Sequence[ScanEvent], points: Sequence[PositionSample]) -> None:
        self.save_dataset("positions", events, [position_to_list(p) for p in points])

    def load_dataset(self, kind: str, events: Sequence[ScanEvent], decode: Callable[[Any], T]) -> Optional[List[T]]:
        fingerprint = dataset_fingerprint(events)
        if fingerprint is None:
            return None
        env = self._load(self.dataset_key(kind), decode)
        if env is None:
            return None
        if env.fingerprint != fingerprint:
            logger.debug("dataset cache miss: kind=%s stored=%s current=%s", kind, env.fingerprint, fingerprint)
            return None
        return env.payload

    def save_dataset(self, kind: str, events: Sequence[ScanEvent], payload: List[Any]) -> None:
        fingerprint = dataset_fingerprint(events)
        if fingerprint is None:
            return
        self._save(self.dataset_key(kind), payload, fingerprint=fingerprint)

    def _save(self, key: str, payload: List[Any], fingerprint: Optional[str] = None) -> None:
        doc: Dict[str, Any] = {
            "version": int(self._cfg.version),
            "key": key,
            "saved_at": time.time(),
            "payload": payload,
        }
        if fingerprint is not None:
            doc["fingerprint"] = fingerprint
        data = json.dumps(doc, ensure_ascii=False).encode("utf-8")
        try:
            self._store.set(key, data)
        except OSError:
            logger.warning("Failed to write cache entry: %s", key, exc_info=True)
            return
        logger.debug("cache saved: key=%s items=%d", key, len(payload))

    def _load(self, key: str, decode: Callable[[Any], T]) -> Optional[CacheEnvelope[T]]:
        try:
            raw = self._store.get(key)
        except OSError:
            logger.warning("Failed to read cache entry: %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            doc = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("Discarding unparsable cache entry: %s", key)
            return None
        if not isinstance(doc, dict) or not isinstance(doc.get("payload"), list):
            logger.warning("Discarding malformed cache entry: %s", key)
            return None
        version = doc.get("version")
        if type(version) is not int or version != self._cfg.version:
            logger.info("Discarding cache entry with version %r (current %d): %s", version, self._cfg.version, key)
            return None
        try:
            payload = [decode(item) for item in doc["payload"]]
            saved_at = float(doc.get("saved_at", 0.0) or 0.0)
        except (KeyError, TypeError, ValueError):
            logger.warning("Discarding cache entry with bad records: %s", key)
            return None
        fingerprint = doc.get("fingerprint")
        return CacheEnvelope(
            version=version,
            key=str(doc.get("key", key)),
            payload=payload,
            saved_at=saved_at,
            fingerprint=None if fingerprint is None else str(fingerprint),
        )
