"""
Ability store contract.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, List, Optional

from ..rules.models import Ability, Entity, RoleLookup
from ..scope import Scope


class AbilityStore(ABC):
    """Read side of the persistence layer, as consumed by the resolver.

    Implementations combine three sources for ``get_abilities``: grants
    made to the actor directly, grants made to any role assigned to the
    actor, and grants made to everyone. Every call is a blocking read and
    may raise; the resolver propagates such failures.
    """

    scope: Optional[Scope] = None

    @abstractmethod
    def get_abilities(self, actor: Entity, allowed: bool = True) -> List[Ability]:
        """Abilities of the requested polarity reachable by ``actor``."""

    @abstractmethod
    def get_role_lookup(self, actor: Entity) -> RoleLookup:
        """Roles assigned to ``actor``."""

    @abstractmethod
    def is_owned_by(self, actor: Entity, target: Any) -> bool:
        """Whether ``actor`` owns ``target``."""

    @abstractmethod
    def iter_actors(self) -> Iterable[Entity]:
        """Every user-like actor and every role known to the store."""
