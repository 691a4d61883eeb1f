"""
Unit tests for the cache backends and the cached resolver.
"""

import json
import pytest
import redis
from unittest.mock import MagicMock, patch

from shared.errors import CacheBackendError
from service_authorization.app.cache.backends import InMemoryCacheBackend, RedisCacheBackend
from service_authorization.app.cache.cached_resolver import CachedDecisionResolver
from service_authorization.app.cache.invalidation import IterativeRefreshStrategy, TagFlushStrategy
from service_authorization.app.rules.engine import DecisionResolver
from service_authorization.app.rules.models import Entity


class TestCacheKeys:
    """Test cases for the cache key scheme."""

    @pytest.fixture
    def resolver(self, scoped_store):
        """Create a cached resolver without tag support."""
        return CachedDecisionResolver(scoped_store, InMemoryCacheBackend(tagging=False))

    def test_ability_keys(self, resolver, user):
        assert resolver.get_cache_key(user, "abilities", True) == "access-authorization-abilities-user-1-a"
        assert resolver.get_cache_key(user, "abilities", False) == "access-authorization-abilities-user-1-f"

    def test_roles_key(self, resolver, user):
        assert resolver.get_cache_key(user, "roles", None) == "access-authorization-roles-user-1"

    def test_scope_is_part_of_the_tag(self, resolver, scoped_store, user):
        scoped_store.scope.to(3)

        assert resolver.tag() == "access-authorization-3"
        assert resolver.get_cache_key(user, "abilities") == "access-authorization-3-abilities-user-1-a"

    def test_stored_keys(self, resolver, user):
        resolver.check(user, "edit", "post")

        assert sorted(resolver.backend.keys()) == [
            "access-authorization-abilities-user-1-a",
            "access-authorization-abilities-user-1-f",
        ]


class TestCachedResolver:
    """Test cases for CachedDecisionResolver."""

    @pytest.fixture
    def backend(self):
        """Create a tag-capable in-memory backend."""
        return InMemoryCacheBackend()

    @pytest.fixture
    def resolver(self, store, backend, metrics):
        """Create a cached resolver over the in-memory store."""
        return CachedDecisionResolver(store, backend, metrics=metrics)

    def test_strategy_follows_tag_support(self, store):
        tagged = CachedDecisionResolver(store, InMemoryCacheBackend())
        untagged = CachedDecisionResolver(store, InMemoryCacheBackend(tagging=False))

        assert isinstance(tagged.invalidation, TagFlushStrategy)
        assert isinstance(untagged.invalidation, IterativeRefreshStrategy)

    def test_same_decisions_as_uncached(self, resolver, store, user, other_user):
        """Test that caching does not change any decision."""
        role = store.find_or_create_role("editor")
        store.assign_role(user, role)
        store.allow(role, "edit", "post")
        store.forbid(user, "delete", "post")
        store.allow(other_user, "edit", "post", only_owned=True)
        plain = DecisionResolver(store)

        cases = [
            (user, "edit", "post"),
            (user, "delete", "post"),
            (user, "view", None),
            (other_user, "edit", Entity("post", 1, {"actor_type": "user", "actor_id": other_user.id})),
            (other_user, "edit", Entity("post", 2)),
        ]
        for _ in range(2):
            for actor, action, target in cases:
                assert resolver.check_get_id(actor, action, target) == plain.check_get_id(actor, action, target)

    def test_second_read_served_from_cache(self, user, backend):
        store = MagicMock()
        store.scope = None
        store.get_abilities.return_value = []
        resolver = CachedDecisionResolver(store, backend)

        resolver.check(user, "edit", "post")
        resolver.check(user, "edit", "post")

        assert store.get_abilities.call_count == 2

    def test_stale_until_refreshed(self, resolver, store, user):
        """Test that grants made after caching need an explicit refresh."""
        assert resolver.check(user, "edit", "post") is False

        store.allow(user, "edit", "post")
        assert resolver.check(user, "edit", "post") is False

        resolver.refresh_for(user)
        assert resolver.check(user, "edit", "post") is True

    def test_cached_abilities_are_rehydrated(self, resolver, store, user):
        store.allow(user, "edit", "post")

        first = resolver.get_abilities(user)
        second = resolver.get_abilities(user)

        assert second == first
        assert second[0] is not first[0]

    def test_get_fresh_abilities_bypasses_cache(self, resolver, store, user):
        resolver.get_abilities(user)
        store.allow(user, "edit", "post")

        assert resolver.get_abilities(user) == []
        assert [a.identifier for a in resolver.get_fresh_abilities(user)] == ["edit-post"]

    def test_roles_are_cached(self, resolver, store, user):
        store.assign_role(user, "editor")
        assert resolver.get_roles(user) == ["editor"]

        store.assign_role(user, "admin")
        assert resolver.get_roles(user) == ["editor"]

        resolver.refresh(user)
        assert resolver.get_roles(user) == ["editor", "admin"]

    def test_refresh_all_with_tags(self, resolver, store, user, metrics):
        resolver.check(user, "edit", "post")
        store.allow(user, "edit", "post")

        resolver.refresh()

        assert resolver.check(user, "edit", "post") is True
        assert metrics.get_sample_value(
            "authorization_cache_refresh_total", {"strategy": "tag_flush"}
        ) == 1.0

    def test_refresh_all_iterates_actors_without_tags(self, store, user, other_user):
        """Test the iterative fallback clears users and roles alike."""
        backend = InMemoryCacheBackend(tagging=False)
        resolver = CachedDecisionResolver(store, backend)
        role = store.find_or_create_role("editor")
        store.add_user(user)
        store.add_user(other_user)

        resolver.check(user, "edit", "post")
        resolver.check(other_user, "edit", "post")
        resolver.check(role, "edit", "post")
        assert len(backend.keys()) == 6

        resolver.refresh()

        assert backend.keys() == []

    def test_iterative_refresh_counts_actors(self, store, user):
        resolver = CachedDecisionResolver(store, InMemoryCacheBackend(tagging=False))
        store.add_user(user)
        store.find_or_create_role("editor")

        assert resolver.invalidation.refresh_all(resolver) == 2

    def test_refresh_without_tags_covers_unregistered_actors(self, store):
        """Test that actors never added to the store are still refreshed."""
        resolver = CachedDecisionResolver(store, InMemoryCacheBackend(tagging=False))
        visitor = Entity("user", 7)
        assert resolver.check(visitor, "view", "post") is False

        store.allow_everyone("view", "post")
        resolver.refresh()

        assert resolver.check(visitor, "view", "post") is True

    def test_get_cache_returns_tagged_view(self, store):
        backend = InMemoryCacheBackend()
        untagged = InMemoryCacheBackend(tagging=False)

        assert CachedDecisionResolver(store, backend).get_cache() is not backend
        assert CachedDecisionResolver(store, untagged).get_cache() is untagged

    def test_read_failure_falls_back_to_store(self, store, user, metrics):
        """Test that a broken cache read degrades to a fresh fetch."""
        backend = InMemoryCacheBackend(tagging=False)
        resolver = CachedDecisionResolver(store, backend, metrics=metrics)
        store.allow(user, "edit", "post")

        with patch.object(backend, "get", side_effect=ConnectionError("cache down")):
            assert resolver.check(user, "edit", "post") is True

        assert metrics.get_sample_value(
            "authorization_cache_requests_total", {"kind": "abilities", "result": "error"}
        ) == 2.0

    def test_write_failure_still_returns_value(self, store, user):
        backend = InMemoryCacheBackend(tagging=False)
        resolver = CachedDecisionResolver(store, backend)
        store.allow(user, "edit", "post")

        with patch.object(backend, "forever", side_effect=ConnectionError("cache down")):
            assert resolver.check(user, "edit", "post") is True

    def test_invalidation_failure_raises(self, store, user):
        backend = InMemoryCacheBackend(tagging=False)
        resolver = CachedDecisionResolver(store, backend)

        with patch.object(backend, "forget", side_effect=ConnectionError("cache down")):
            with pytest.raises(CacheBackendError):
                resolver.refresh_for(user)

    def test_flush_failure_raises(self, resolver):
        with patch.object(resolver.cache, "flush", side_effect=ConnectionError("cache down")):
            with pytest.raises(CacheBackendError):
                resolver.refresh()

    def test_hit_and_miss_metrics(self, resolver, user, metrics):
        resolver.get_abilities(user)
        resolver.get_abilities(user)

        labels = {"kind": "abilities", "result": "miss"}
        assert metrics.get_sample_value("authorization_cache_requests_total", labels) == 1.0
        labels["result"] = "hit"
        assert metrics.get_sample_value("authorization_cache_requests_total", labels) == 1.0


class TestInMemoryCacheBackend:
    """Test cases for InMemoryCacheBackend."""

    def test_values_are_copied(self):
        backend = InMemoryCacheBackend()
        value = [{"id": 1}]
        backend.forever("k", value)
        value[0]["id"] = 2

        cached = backend.get("k")
        cached[0]["id"] = 3

        assert backend.get("k") == [{"id": 1}]

    def test_tag_flush_only_touches_its_tag(self):
        backend = InMemoryCacheBackend()
        backend.forever("plain", 1)
        backend.tags("one").forever("k", 1)
        backend.tags("two").forever("k", 2)

        backend.tags("one").flush()

        assert backend.get("plain") == 1
        assert backend.tags("one").get("k") is None
        assert backend.tags("two").get("k") == 2

    def test_tags_unsupported(self):
        with pytest.raises(CacheBackendError):
            InMemoryCacheBackend(tagging=False).tags("one")


class TestRedisCacheBackend:
    """Test cases for RedisCacheBackend."""

    @pytest.fixture
    def backend(self, redis_client):
        """Create a Redis backend over the mocked client."""
        return RedisCacheBackend(client=redis_client, prefix="authz:")

    def test_requires_url_or_client(self):
        with pytest.raises(CacheBackendError):
            RedisCacheBackend()

    def test_from_url(self):
        with patch.object(redis.Redis, "from_url") as from_url:
            backend = RedisCacheBackend("redis://localhost:6379/1")

        from_url.assert_called_once()
        assert backend.client is from_url.return_value

    def test_json_payloads(self, backend, redis_client):
        backend.forever("k", {"ids": [[1, "editor"]]})

        assert json.loads(redis_client.data["authz:k"]) == {"ids": [[1, "editor"]]}
        assert backend.get("k") == {"ids": [[1, "editor"]]}
        assert backend.forget("k") is True
        assert backend.get("k") is None

    def test_bytes_payloads_are_decoded(self, backend, redis_client):
        redis_client.data["authz:k"] = b'[1, 2]'

        assert backend.get("k") == [1, 2]

    def test_tag_flush_bumps_version(self, backend, redis_client):
        tagged = backend.tags("access-authorization")
        tagged.forever("abilities", [1])
        redis_client.pipeline.return_value.execute.assert_called_once()
        old_version = redis_client.data["authz:tag:access-authorization:version"]

        tagged.flush()

        assert redis_client.data["authz:tag:access-authorization:version"] != old_version
        assert tagged.get("abilities") is None
        assert not any(key.endswith(":abilities") for key in redis_client.data)

    def test_health_check(self, backend, redis_client):
        assert backend.health_check() is True

    def test_cached_resolver_over_redis(self, backend, store, user):
        resolver = CachedDecisionResolver(store, backend)
        store.allow(user, "edit", "post")

        assert resolver.check(user, "edit", "post") is True
        store.forbid(user, "edit", "post")
        assert resolver.check(user, "edit", "post") is True

        resolver.refresh()
        assert resolver.check(user, "edit", "post") is False
