from .manager import CACHE_VERSION, CacheConfig, CacheEnvelope, CacheManager, dataset_fingerprint
from .store import JsonDirectoryStore, KeyValueStore, MemoryStore, create_store

__all__ = [
    "CACHE_VERSION",
    "CacheConfig",
    "CacheEnvelope",
    "CacheManager",
    "JsonDirectoryStore",
    "KeyValueStore",
    "MemoryStore",
    "create_store",
    "dataset_fingerprint",
]
