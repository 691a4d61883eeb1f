"""
Tenant scope for abilities, roles and cache keys.
"""

import json
from typing import Any, Callable, Dict, Optional, TypeVar


T = TypeVar("T")


class Scope:
    """The active tenant/application partition.

    Records with no scope are shared by every tenant; scoped records only
    apply while the same scope is active.
    """

    def __init__(self, scope: Any = None):
        self._scope = scope
        self._only_scope_relations = False
        self._scope_role_abilities = True

    def to(self, scope: Any) -> "Scope":
        self._scope = scope
        return self

    def get(self) -> Any:
        return self._scope

    def remove(self) -> "Scope":
        self._scope = None
        return self

    def only_relations(self, enabled: bool = True) -> "Scope":
        self._only_scope_relations = enabled
        return self

    def dont_scope_role_abilities(self) -> "Scope":
        self._scope_role_abilities = False
        return self

    @property
    def scopes_role_abilities(self) -> bool:
        return self._scope_role_abilities

    def once_to(self, scope: Any, callback: Callable[[], T]) -> T:
        """Run ``callback`` with ``scope`` active, then restore."""
        previous = self._scope
        self._scope = scope
        try:
            return callback()
        finally:
            self._scope = previous

    def remove_once(self, callback: Callable[[], T]) -> T:
        return self.once_to(None, callback)

    def append_to_cache_key(self, key: str) -> str:
        if self._scope is None:
            return key
        if isinstance(self._scope, (str, int, float, bool)):
            return f"{key}-{self._scope}"
        return f"{key}-{json.dumps(self._scope, sort_keys=True, default=str)}"

    def matches(self, record_scope: Any, is_relation: bool = True) -> bool:
        """Whether a record stored under ``record_scope`` is visible."""
        if record_scope is None:
            return True
        if self._only_scope_relations and not is_relation:
            return True
        return self._scope is not None and record_scope == self._scope

    def get_attach_attributes(self, is_role: bool = False) -> Dict[str, Any]:
        """Scope attributes to stamp on a new assignment edge."""
        if self._scope is None:
            return {}
        if is_role and not self._scope_role_abilities:
            return {}
        return {"scope": self._scope}

    def __repr__(self) -> str:
        return f"Scope({self._scope!r})"
