"""
Bulk invalidation strategies for the cached resolver.

The strategy is picked once, when the resolver is given its cache:
backends with tag support flush a single tag, the others fall back to
forgetting the entries of every actor the store knows about.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from shared.errors import AccessLayerException, CacheBackendError
from .backends import TaggedCache

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from .cached_resolver import CachedDecisionResolver


class InvalidationStrategy(ABC):
    """How ``refresh()`` without an actor clears the cache."""

    name = ""

    @abstractmethod
    def refresh_all(self, resolver: "CachedDecisionResolver") -> int:
        """Invalidate everything; returns how many actors were refreshed (0 for a flush)."""


class TagFlushStrategy(InvalidationStrategy):
    """Flush the single tag every entry was written under."""

    name = "tag_flush"

    def __init__(self, cache: TaggedCache):
        self.cache = cache

    def refresh_all(self, resolver: "CachedDecisionResolver") -> int:
        try:
            self.cache.flush()
        except AccessLayerException:
            raise
        except Exception as e:
            raise CacheBackendError("Cache tag flush failed", {"tag": self.cache.tag, "error": str(e)}) from e
        return 0


class IterativeRefreshStrategy(InvalidationStrategy):
    """Forget the entries of every user-like actor and every role.

    Blocking and O(N) in the number of actors: each actor costs three
    sequential deletes. Run it from maintenance paths, not request handlers.
    """

    name = "iterative"

    def refresh_all(self, resolver: "CachedDecisionResolver") -> int:
        count = 0
        actors = resolver._from_store("iter_actors", lambda: list(resolver.store.iter_actors()))
        for actor in actors:
            resolver.refresh_for(actor)
            count += 1
        return count
