"""
Config-driven wiring of the authorization engine.
"""

from typing import Optional

from shared.config import AuthorizationConfig, get_config
from shared.errors import AccessLayerException
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .cache.backends import CacheBackend, InMemoryCacheBackend, RedisCacheBackend
from .cache.cached_resolver import CachedDecisionResolver
from .rules.engine import DecisionResolver
from .scope import Scope
from .store.base import AbilityStore
from .store.memory import InMemoryAbilityStore


logger = get_logger("authorization.factory")


def configure_observability(config: Optional[AuthorizationConfig] = None) -> Optional[MetricsCollector]:
    """Configure logging and, when enabled, return a metrics collector."""
    config = config or get_config()
    configure_logging(config.service_name, config.log_level)

    if not config.metrics_enabled:
        return None
    return get_metrics_collector(config.service_name)


def create_cache_backend(config: AuthorizationConfig) -> CacheBackend:
    if config.cache_backend == "memory":
        return InMemoryCacheBackend()
    if config.cache_backend == "redis":
        return RedisCacheBackend(config.redis_url, prefix=f"{config.cache_tag}:")

    raise AccessLayerException(
        "INVALID_CONFIGURATION",
        f"Unknown cache backend: {config.cache_backend}",
        {"cache_backend": config.cache_backend}
    )


def create_memory_store(config: Optional[AuthorizationConfig] = None) -> InMemoryAbilityStore:
    config = config or get_config()
    return InMemoryAbilityStore(guard_name=config.guard_name, scope=Scope(config.scope))


def create_resolver(
    store: AbilityStore,
    config: Optional[AuthorizationConfig] = None,
    cache: Optional[CacheBackend] = None,
    scope: Optional[Scope] = None,
    metrics: Optional[MetricsCollector] = None,
) -> DecisionResolver:
    """Build a cached resolver, or a plain one when caching is disabled.

    The resolver shares the store's scope object when it has one, so
    changing the active tenant also changes the cache tag.
    """
    config = config or get_config()
    scope = scope or store.scope or Scope(config.scope)

    if not config.cache_enabled:
        logger.info("Authorization cache disabled")
        return DecisionResolver(store, metrics)

    cache = cache or create_cache_backend(config)
    return CachedDecisionResolver(store, cache, scope=scope, tag=config.cache_tag, metrics=metrics)
