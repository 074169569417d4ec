# core/fingerprint_store.py

"""
Keyed fingerprint cache with expiration.

Fingerprints are stored as JSON records of the form
{"hashes": [...], "timestamp": "<RFC3339>"} under keys derived from the
video identity ("video:" + first 12 hex chars of its SHA-256).
"""

import fnmatch
import hashlib
import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Sequence, Tuple, Union

import redis

from core.errors import StoreError

logger = logging.getLogger(__name__)

KEY_PREFIX = "video:"
KEY_HASH_LENGTH = 12
DEFAULT_EXPIRATION = timedelta(hours=24)

TTL = Union[timedelta, float, int, None]


def video_cache_key(identity: str, prefix: str = KEY_PREFIX) -> str:
    """Derive the namespaced cache key for a video path or content reference"""
    digest = hashlib.sha256(identity.encode('utf-8')).hexdigest()
    return prefix + digest[:KEY_HASH_LENGTH]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Fingerprint:
    """Ordered frame hashes of one video plus the time they were produced"""
    hashes: Tuple[str, ...]
    timestamp: datetime = field(default_factory=_utcnow)

    @classmethod
    def create(cls, hashes: Sequence[str]) -> 'Fingerprint':
        return cls(hashes=tuple(hashes))

    def __len__(self) -> int:
        return len(self.hashes)

    @property
    def is_empty(self) -> bool:
        return not self.hashes

    def to_dict(self) -> dict:
        return {
            'hashes': list(self.hashes),
            'timestamp': self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> 'Fingerprint':
        try:
            hashes = data['hashes']
            timestamp = datetime.fromisoformat(data['timestamp'])
        except (KeyError, TypeError, ValueError) as e:
            raise StoreError(f"malformed fingerprint record: {e}") from e

        # A fingerprint that failed on every frame is stored as null
        if hashes is None:
            hashes = []
        if not isinstance(hashes, list) or not all(isinstance(h, str) for h in hashes):
            raise StoreError("malformed fingerprint record: hashes must be a list of strings")

        return cls(hashes=tuple(hashes), timestamp=timestamp)

    @classmethod
    def from_json(cls, payload: Union[str, bytes]) -> 'Fingerprint':
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise StoreError(f"malformed fingerprint payload: {e}") from e

        if not isinstance(data, dict):
            raise StoreError("malformed fingerprint payload: expected an object")

        return cls.from_dict(data)


def _ttl_seconds(ttl: TTL, default: timedelta) -> int:
    """Normalize a TTL; zero or None falls back to the default expiration"""
    if isinstance(ttl, timedelta):
        seconds = ttl.total_seconds()
    else:
        seconds = float(ttl or 0)

    if seconds <= 0:
        seconds = default.total_seconds()

    return max(1, int(seconds))


class FingerprintStore(ABC):
    """Keyed cache of fingerprints"""

    def __init__(self, default_expiration: timedelta = DEFAULT_EXPIRATION):
        self.default_expiration = default_expiration

    @abstractmethod
    def set(self, key: str, fingerprint: Fingerprint, ttl: TTL = None) -> str:
        """Store a fingerprint, replacing any existing entry; returns the key"""

    @abstractmethod
    def get(self, key: str) -> Optional[Fingerprint]:
        """Fetch a fingerprint; None on cache miss"""

    @abstractmethod
    def invalidate_pattern(self, pattern: str) -> int:
        """Remove every key matching a glob pattern; returns number removed"""

    def close(self):
        """Release backend resources"""


class RedisFingerprintStore(FingerprintStore):
    """Redis-backed fingerprint store for shared deployments"""

    def __init__(self, client: redis.Redis,
                 default_expiration: timedelta = DEFAULT_EXPIRATION):
        super().__init__(default_expiration)
        self._client = client

    @classmethod
    def from_config(cls, config) -> 'RedisFingerprintStore':
        """Build from a CacheConfig"""
        client = redis.Redis(
            host=config.host,
            port=config.port,
            password=config.password or None,
            db=config.db,
        )
        return cls(client, timedelta(seconds=config.default_expiration_seconds))

    def set(self, key: str, fingerprint: Fingerprint, ttl: TTL = None) -> str:
        seconds = _ttl_seconds(ttl, self.default_expiration)
        try:
            self._client.set(key, fingerprint.to_json(), ex=seconds)
        except redis.RedisError as e:
            raise StoreError(f"failed to store fingerprint: {e}", key) from e

        logger.debug("Stored %d hashes under %s (ttl=%ds)", len(fingerprint), key, seconds)
        return key

    def get(self, key: str) -> Optional[Fingerprint]:
        try:
            payload = self._client.get(key)
        except redis.RedisError as e:
            raise StoreError(f"redis get error: {e}", key) from e

        if payload is None:
            return None

        try:
            return Fingerprint.from_json(payload)
        except StoreError as e:
            raise StoreError(str(e), key) from e

    def invalidate_pattern(self, pattern: str) -> int:
        removed = 0
        try:
            for key in self._client.scan_iter(match=pattern):
                removed += self._client.delete(key)
        except redis.RedisError as e:
            raise StoreError(f"failed to invalidate pattern {pattern!r}: {e}") from e

        logger.info("Invalidated %d cache entries matching %s", removed, pattern)
        return removed

    def close(self):
        self._client.close()


class InMemoryFingerprintStore(FingerprintStore):
    """Process-local fingerprint store with expiry, for tests and single runs"""

    def __init__(self, default_expiration: timedelta = DEFAULT_EXPIRATION,
                 clock=time.monotonic):
        super().__init__(default_expiration)
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def set(self, key: str, fingerprint: Fingerprint, ttl: TTL = None) -> str:
        seconds = _ttl_seconds(ttl, self.default_expiration)
        # Serialize so stored values behave like the Redis store's
        payload = fingerprint.to_json()
        with self._lock:
            self._entries[key] = (payload, self._clock() + seconds)
        return key

    def get(self, key: str) -> Optional[Fingerprint]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            payload, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None

        try:
            return Fingerprint.from_json(payload)
        except StoreError as e:
            raise StoreError(str(e), key) from e

    def invalidate_pattern(self, pattern: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if fnmatch.fnmatchcase(k, pattern)]
            for key in keys:
                del self._entries[key]

        logger.info("Invalidated %d cache entries matching %s", len(keys), pattern)
        return len(keys)

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._entries.values() if expires_at > now)


def create_store(config) -> FingerprintStore:
    """Instantiate the configured cache backend from a CacheConfig"""
    if config.backend == 'redis':
        return RedisFingerprintStore.from_config(config)

    if config.backend == 'memory':
        return InMemoryFingerprintStore(
            timedelta(seconds=config.default_expiration_seconds)
        )

    raise ValueError(f"Unsupported cache backend: {config.backend!r}")
