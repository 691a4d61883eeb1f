"""
Cached decision resolver.

Fronts the resolver's two store reads (ability collections and role
lookups) with a read-through cache that never expires. Correctness after a
mutation depends entirely on the caller invoking ``refresh_for`` or
``refresh``.
"""

from typing import Any, Callable, List, Optional

from shared.errors import AccessLayerException, CacheBackendError
from shared.metrics import MetricsCollector
from ..rules.engine import DecisionResolver
from ..rules.models import Ability, Actor, Entity, RoleLookup, as_actor
from ..scope import Scope
from .backends import CacheBackend
from .invalidation import InvalidationStrategy, IterativeRefreshStrategy, TagFlushStrategy


DEFAULT_TAG = "access-authorization"


class CachedDecisionResolver(DecisionResolver):
    """Decision resolver with cache-aside ability and role collections.

    Cache keys:

    - ``{tag}-abilities-{actor_type}-{actor_id}-{a|f}``
    - ``{tag}-roles-{actor_type}-{actor_id}``

    where ``tag`` is the base tag with the active scope appended, so
    several tenants can share one physical cache.

    Read failures on the backend degrade to a fresh store read; failures
    while invalidating raise ``CacheBackendError``.
    """

    def __init__(
        self,
        store,
        cache: CacheBackend,
        *,
        scope: Optional[Scope] = None,
        tag: str = DEFAULT_TAG,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(store, metrics)
        self.base_tag = tag
        self.scope = scope or getattr(store, "scope", None) or Scope()
        self.set_cache(cache)

    def set_cache(self, cache: CacheBackend) -> "CachedDecisionResolver":
        """Attach a backend and pick its invalidation strategy."""
        self.backend = cache
        if cache.supports_tags:
            self.cache = cache.tags(self.tag())
            self.invalidation: InvalidationStrategy = TagFlushStrategy(self.cache)
        else:
            self.cache = cache
            self.invalidation = IterativeRefreshStrategy()

        self.logger.info(
            "Cache attached",
            backend=type(cache).__name__,
            strategy=self.invalidation.name,
            tag=self.tag()
        )
        return self

    def get_cache(self):
        return self.cache

    def tag(self) -> str:
        return self.scope.append_to_cache_key(self.base_tag)

    def get_cache_key(self, actor: Entity, kind: str, allowed: Optional[bool] = True) -> str:
        parts = [self.tag(), kind, actor.type_name, str(actor.id)]
        if allowed is not None:
            parts.append("a" if allowed else "f")
        return "-".join(parts)

    # Cached reads

    def get_abilities(self, actor: Entity, allowed: bool = True) -> List[Ability]:
        key = self.get_cache_key(actor, "abilities", allowed)

        cached = self._cache_get(key, "abilities")
        if isinstance(cached, list):
            return [Ability.from_attributes(attributes) for attributes in cached]

        abilities = self.get_fresh_abilities(actor, allowed)
        self._cache_put(key, [ability.to_attributes() for ability in abilities])
        return abilities

    def get_fresh_abilities(self, actor: Entity, allowed: bool = True) -> List[Ability]:
        """Bypass the cache."""
        return super().get_abilities(actor, allowed)

    def get_roles_lookup(self, actor: Entity) -> RoleLookup:
        key = self.get_cache_key(actor, "roles", None)
        data = self._sear(key, "roles", lambda: super(CachedDecisionResolver, self).get_roles_lookup(actor).to_dict())
        return RoleLookup.from_dict(data)

    # Invalidation

    def refresh(self, actor: Optional[Actor] = None) -> "CachedDecisionResolver":
        """Clear one actor's entries, or everything when no actor is given."""
        if actor is not None:
            return self.refresh_for(actor)

        refreshed = self.invalidation.refresh_all(self)
        self.logger.info("Authorization cache refreshed", strategy=self.invalidation.name, actors=refreshed)
        if self.metrics:
            self.metrics.increment_counter("authorization_cache_refresh_total", strategy=self.invalidation.name)
        return self

    def refresh_for(self, actor: Actor) -> "CachedDecisionResolver":
        actor = as_actor(actor)
        keys = [
            self.get_cache_key(actor, "abilities", True),
            self.get_cache_key(actor, "abilities", False),
            self.get_cache_key(actor, "roles", None),
        ]
        for key in keys:
            try:
                self.cache.forget(key)
            except AccessLayerException:
                raise
            except Exception as e:
                self.logger.error("Cache invalidation failed", key=key, error=str(e))
                raise CacheBackendError("Cache invalidation failed", {"key": key, "error": str(e)}) from e

        self.logger.debug("Actor cache refreshed", actor_type=actor.type_name, actor_id=actor.id)
        return self

    # Internals

    def _sear(self, key: str, kind: str, compute: Callable[[], Any]) -> Any:
        """Read ``key``; on a miss compute the value and store it forever."""
        value = self._cache_get(key, kind)
        if value is None:
            value = compute()
            self._cache_put(key, value)
        return value

    def _cache_get(self, key: str, kind: str) -> Optional[Any]:
        try:
            value = self.cache.get(key)
        except Exception as e:
            self.logger.warning("Cache read failed, using store", key=key, error=str(e))
            self._record_lookup(kind, "error")
            return None

        self._record_lookup(kind, "miss" if value is None else "hit")
        return value

    def _cache_put(self, key: str, value: Any):
        try:
            self.cache.forever(key, value)
        except Exception as e:
            self.logger.warning("Cache write failed", key=key, error=str(e))

    def _record_lookup(self, kind: str, result: str):
        if self.metrics:
            self.metrics.increment_counter("authorization_cache_requests_total", kind=kind, result=result)
