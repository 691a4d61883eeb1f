"""
Cache backends for the authorization cache layer.

Every backend stores values forever: entries only disappear through an
explicit ``forget`` or a tag ``flush``. Each operation is a single atomic
unit on the backend; nothing here spans several calls in a transaction.
"""

import copy
import json
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Set

import redis

from shared.logging import get_logger
from shared.errors import CacheBackendError


class TaggedCache(ABC):
    """A view of a backend whose entries can be flushed together."""

    tag: str

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Cached value or ``None``."""

    @abstractmethod
    def forever(self, key: str, value: Any) -> None:
        """Store ``value`` without expiry."""

    @abstractmethod
    def forget(self, key: str) -> bool:
        """Delete one entry."""

    @abstractmethod
    def flush(self) -> None:
        """Drop every entry written through this tag."""


class CacheBackend(ABC):
    """Key/value cache with no expiry."""

    supports_tags: bool = False

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Cached value or ``None``."""

    @abstractmethod
    def forever(self, key: str, value: Any) -> None:
        """Store ``value`` without expiry."""

    @abstractmethod
    def forget(self, key: str) -> bool:
        """Delete one entry."""

    def tags(self, tag: str) -> TaggedCache:
        raise CacheBackendError(
            f"{type(self).__name__} does not support tagging",
            {"tag": tag}
        )


class TaggableCache(CacheBackend):
    """Backend capability: entries can be grouped under a tag and flushed."""

    supports_tags = True

    @abstractmethod
    def tags(self, tag: str) -> TaggedCache:
        """Tagged view over this backend."""


class InMemoryCacheBackend(TaggableCache):
    """Process-local backend.

    Values are deep-copied in and out so callers never share live
    references with the cache. Pass ``tagging=False`` to behave like a
    backend without tag support.
    """

    def __init__(self, tagging: bool = True):
        self.supports_tags = tagging
        self.logger = get_logger("authorization.cache.memory")
        self._entries: Dict[str, Any] = {}
        self._tagged_keys: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key not in self._entries:
                return None
            return copy.deepcopy(self._entries[key])

    def forever(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = copy.deepcopy(value)

    def forget(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def tags(self, tag: str) -> TaggedCache:
        if not self.supports_tags:
            return super().tags(tag)
        return InMemoryTaggedCache(self, tag)

    def keys(self):
        with self._lock:
            return list(self._entries)

    def _track(self, tag: str, key: str):
        with self._lock:
            self._tagged_keys.setdefault(tag, set()).add(key)

    def _flush_tag(self, tag: str) -> int:
        with self._lock:
            keys = self._tagged_keys.pop(tag, set())
            for key in keys:
                self._entries.pop(key, None)
            return len(keys)


class InMemoryTaggedCache(TaggedCache):
    """Tag view over the in-memory backend."""

    def __init__(self, backend: InMemoryCacheBackend, tag: str):
        self.backend = backend
        self.tag = tag

    def _key(self, key: str) -> str:
        return f"{self.tag}:{key}"

    def get(self, key: str) -> Optional[Any]:
        return self.backend.get(self._key(key))

    def forever(self, key: str, value: Any) -> None:
        tagged_key = self._key(key)
        self.backend.forever(tagged_key, value)
        self.backend._track(self.tag, tagged_key)

    def forget(self, key: str) -> bool:
        return self.backend.forget(self._key(key))

    def flush(self) -> None:
        count = self.backend._flush_tag(self.tag)
        self.backend.logger.info("Cache tag flushed", tag=self.tag, count=count)


class RedisCacheBackend(TaggableCache):
    """Redis backend storing JSON payloads."""

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        client: Optional[redis.Redis] = None,
        prefix: str = "",
        tagging: bool = True,
    ):
        if client is None and redis_url is None:
            raise CacheBackendError("Redis backend needs a URL or a client")

        self.redis_url = redis_url
        self.prefix = prefix
        self.supports_tags = tagging
        self.logger = get_logger("authorization.cache.redis")
        self.client = client or redis.Redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
            retry_on_timeout=True,
            health_check_interval=30
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str) -> Optional[Any]:
        return _decode(self.client.get(self._key(key)))

    def forever(self, key: str, value: Any) -> None:
        self.client.set(self._key(key), json.dumps(value))

    def forget(self, key: str) -> bool:
        return bool(self.client.delete(self._key(key)))

    def tags(self, tag: str) -> TaggedCache:
        if not self.supports_tags:
            return super().tags(tag)
        return RedisTaggedCache(self, tag)

    def health_check(self) -> bool:
        """Check Redis health."""
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False


class RedisTaggedCache(TaggedCache):
    """Tag view over Redis using a versioned key namespace.

    Entries live under ``<prefix><tag>:<version>:<key>``. Flushing writes a
    new version, which makes every older entry unreachable in one command;
    the previous namespace's keys are then deleted from its member set.
    """

    def __init__(self, backend: RedisCacheBackend, tag: str):
        self.backend = backend
        self.client = backend.client
        self.tag = tag
        self.version_key = backend._key(f"tag:{tag}:version")

    def _version(self) -> str:
        version = self.client.get(self.version_key)
        if version is None:
            self.client.setnx(self.version_key, uuid.uuid4().hex)
            version = self.client.get(self.version_key)
        return _text(version)

    def _members_key(self, version: str) -> str:
        return self.backend._key(f"tag:{self.tag}:{version}:keys")

    def _key(self, key: str, version: Optional[str] = None) -> str:
        return self.backend._key(f"{self.tag}:{version or self._version()}:{key}")

    def get(self, key: str) -> Optional[Any]:
        return _decode(self.client.get(self._key(key)))

    def forever(self, key: str, value: Any) -> None:
        version = self._version()
        tagged_key = self._key(key, version)
        pipeline = self.client.pipeline()
        pipeline.set(tagged_key, json.dumps(value))
        pipeline.sadd(self._members_key(version), tagged_key)
        pipeline.execute()

    def forget(self, key: str) -> bool:
        return bool(self.client.delete(self._key(key)))

    def flush(self) -> None:
        previous = _text(self.client.get(self.version_key))
        self.client.set(self.version_key, uuid.uuid4().hex)

        if previous is not None:
            members_key = self._members_key(previous)
            stale = list(self.client.smembers(members_key))
            if stale:
                self.client.delete(*stale)
            self.client.delete(members_key)
            self.backend.logger.info("Cache tag flushed", tag=self.tag, count=len(stale))


def _text(raw: Any) -> Optional[str]:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    return raw


def _decode(raw: Any) -> Optional[Any]:
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8")
    return json.loads(raw)
