"""
Shared fixtures for authorization engine tests.
"""

import pytest
from typing import Any, Dict, Set
from unittest.mock import MagicMock

from prometheus_client import CollectorRegistry

from shared.metrics import MetricsCollector
from service_authorization.app.rules.models import Entity
from service_authorization.app.scope import Scope
from service_authorization.app.store.memory import InMemoryAbilityStore


@pytest.fixture
def store():
    """Create an empty in-memory ability store."""
    return InMemoryAbilityStore()


@pytest.fixture
def scoped_store():
    """Create a store whose scope object tests can switch."""
    return InMemoryAbilityStore(scope=Scope())


@pytest.fixture
def user():
    """Create a persisted user."""
    return Entity("user", 1, {"name": "alice"})


@pytest.fixture
def other_user():
    """Create a second persisted user."""
    return Entity("user", 2, {"name": "bob"})


@pytest.fixture
def post_class():
    """The post type, without an instance."""
    return "post"


@pytest.fixture
def metrics():
    """Create a metrics collector on an isolated registry."""
    return MetricsCollector("authorization-test", CollectorRegistry())


@pytest.fixture
def redis_client():
    """Create a mocked redis client backed by plain dicts."""
    data: Dict[str, Any] = {}
    sets: Dict[str, Set[str]] = {}

    def set_value(key, value):
        data[key] = value
        return True

    def setnx(key, value):
        if key in data:
            return False
        data[key] = value
        return True

    def delete(*keys):
        return sum((data.pop(key, None) is not None) + (sets.pop(key, None) is not None) for key in keys)

    def sadd(key, *members):
        sets.setdefault(key, set()).update(members)
        return len(members)

    client = MagicMock()
    client.data = data
    client.get.side_effect = data.get
    client.set.side_effect = set_value
    client.setnx.side_effect = setnx
    client.delete.side_effect = delete
    client.sadd.side_effect = sadd
    client.smembers.side_effect = lambda key: set(sets.get(key, set()))
    client.ping.return_value = True

    pipeline = client.pipeline.return_value
    pipeline.set.side_effect = set_value
    pipeline.sadd.side_effect = sadd
    pipeline.execute.return_value = []
    return client
