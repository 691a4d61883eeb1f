"""
Ownership resolution for only-owned abilities.
"""

from typing import Any, Callable, Dict, Optional, Union

from ..rules.models import Entity, WILDCARD


OwnershipRule = Union[str, Callable[[Entity, Entity], bool]]


class OwnershipRegistry:
    """Decides whether an actor owns a target entity.

    Without configuration a target is owned when its ``actor_type`` and
    ``actor_id`` attributes point at the actor. ``owned_via`` overrides
    that per target type, or for every type with ``"*"``.
    """

    def __init__(self):
        self._ownership: Dict[str, OwnershipRule] = {}

    def owned_via(self, type_name: Union[str, OwnershipRule], rule: Optional[OwnershipRule] = None) -> "OwnershipRegistry":
        """``owned_via("post", "author_id")``; ``owned_via("author_id")`` for all types."""
        if rule is None:
            self._ownership[WILDCARD] = type_name
        else:
            self._ownership[type_name] = rule
        return self

    def is_owned_by(self, actor: Entity, target: Any) -> bool:
        if not isinstance(target, Entity) or not target.exists:
            return False

        rule = self._ownership.get(target.type_name, self._ownership.get(WILDCARD))
        if rule is None:
            return (
                target.get_attribute("actor_type") == actor.type_name
                and target.get_attribute("actor_id") == actor.id
            )
        if callable(rule):
            return bool(rule(target, actor))
        return target.get_attribute(rule) == actor.id

    def reset(self):
        self._ownership.clear()
