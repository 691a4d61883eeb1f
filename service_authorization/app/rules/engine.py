"""
Decision resolver for the authorization engine.
"""

import re
import time
from typing import Any, Callable, Iterable, List, Optional, Set, TypeVar, Union

from shared.logging import get_logger, set_actor_context
from shared.errors import AccessLayerException, StoreUnavailableError, InvalidModelIdentifierError
from shared.metrics import MetricsCollector
from ..scope import Scope
from ..identifiers.compiler import Target, compile_identifiers, owned_identifiers, is_existing_entity
from .models import Ability, Actor, Decision, Entity, Role, RoleLookup, as_actor


T = TypeVar("T")

_UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_ULID_PATTERN = re.compile(r"^[0-7][0-9A-HJKMNP-TV-Z]{25}$", re.IGNORECASE)

RoleReference = Union[str, int, Role]


def is_uuid_or_ulid(value: str) -> bool:
    return bool(_UUID_PATTERN.match(value) or _ULID_PATTERN.match(value))


class DecisionResolver:
    """Resolves whether an actor may perform an action.

    Forbidden abilities are always consulted first and win outright. Only
    when nothing forbids the action are the allowed abilities scanned.
    Ownership-scoped identifiers are tried only after the plain ones fail,
    so the ownership lookup is skipped whenever a plain grant applies.
    """

    def __init__(self, store, metrics: Optional[MetricsCollector] = None):
        self.store = store
        self.metrics = metrics
        self.logger = get_logger("authorization.resolver")

    # Decisions

    def check(self, actor: Actor, action: str, target: Target = None) -> bool:
        return self.decide(actor, action, target).allowed

    def check_get_id(self, actor: Actor, action: str, target: Target = None) -> Any:
        """``False`` when forbidden, ``None`` when no rule applies, else the ability id."""
        decision = self.decide(actor, action, target)
        if decision.forbidden:
            return False
        return decision.matched_ability_id

    def decide(self, actor: Actor, action: str, target: Target = None) -> Decision:
        start_time = time.time()
        actor = as_actor(actor)
        set_actor_context(actor.type_name, actor.id, self._scope_value())
        applicable = compile_identifiers(action, target)

        forbidding = self._find_matching_ability(
            self.get_forbidden_abilities(actor), applicable, actor, target, allowed=False
        )

        if forbidding is not None:
            decision = Decision(
                allowed=False,
                matched_ability_id=forbidding.id,
                forbidden=True,
                reason=f"Forbidden by ability '{forbidding.identifier}'"
            )
        else:
            allowing = self._find_matching_ability(
                self.get_abilities(actor), applicable, actor, target, allowed=True
            )
            if allowing is not None:
                decision = Decision(
                    allowed=True,
                    matched_ability_id=allowing.id,
                    reason=f"Allowed by ability '{allowing.identifier}'"
                )
            else:
                decision = Decision(allowed=False, reason="No matching ability")

        duration = time.time() - start_time
        decision.evaluation_time_ms = duration * 1000

        self.logger.debug(
            "Authorization decision",
            actor_type=actor.type_name,
            actor_id=actor.id,
            action=action,
            decision=decision.outcome,
            ability_id=decision.matched_ability_id
        )
        if self.metrics:
            self.metrics.record_decision(decision.outcome, duration)

        return decision

    # Roles

    def check_role(self, actor: Actor, roles: Union[RoleReference, Iterable[RoleReference]], boolean: str = "or") -> bool:
        """``or``: any of the roles; ``and``: all of them; ``not``: none of them."""
        if isinstance(roles, (str, int, Role)):
            roles = [roles]
        roles = list(roles)
        count = self._count_matching_roles(as_actor(actor), roles)

        if boolean == "or":
            return count > 0
        if boolean == "not":
            return count == 0
        return count == len(roles)

    def get_roles(self, actor: Actor) -> List[str]:
        return list(self.get_roles_lookup(as_actor(actor)).names)

    def get_roles_lookup(self, actor: Entity) -> RoleLookup:
        return self._from_store("get_role_lookup", self.store.get_role_lookup, actor)

    # Abilities

    def get_abilities(self, actor: Entity, allowed: bool = True) -> List[Ability]:
        return list(self._from_store("get_abilities", self.store.get_abilities, actor, allowed))

    def get_forbidden_abilities(self, actor: Entity) -> List[Ability]:
        return self.get_abilities(actor, False)

    def is_owned_by(self, actor: Entity, target: Target) -> bool:
        if not is_existing_entity(target):
            return False
        return bool(self._from_store("is_owned_by", self.store.is_owned_by, actor, target))

    # Internals

    def _find_matching_ability(self, abilities: List[Ability], applicable: List[str],
                               actor: Entity, target: Target, allowed: bool) -> Optional[Ability]:
        ability = self._match(abilities, set(applicable), actor, target, allowed)
        if ability is not None:
            return ability

        if self.is_owned_by(actor, target):
            return self._match(abilities, set(owned_identifiers(applicable)), actor, target, allowed)

        return None

    def _match(self, abilities: List[Ability], candidates: Set[str],
               actor: Entity, target: Target, allowed: bool) -> Optional[Ability]:
        for ability in abilities:
            if ability.identifier in candidates and self._passes_constraints(ability, actor, target, allowed):
                return ability
        return None

    def _passes_constraints(self, ability: Ability, actor: Entity, target: Target, allowed: bool) -> bool:
        if not ability.has_constraints():
            return True
        if not is_existing_entity(target):
            # Nothing to evaluate against: constrained forbids hold, constrained grants don't
            return not allowed
        return ability.get_constraints().check(target, actor)

    def _count_matching_roles(self, actor: Entity, roles: List[RoleReference]) -> int:
        lookup = self.get_roles_lookup(actor)
        return sum(1 for role in roles if self._role_in_lookup(role, lookup))

    def _role_in_lookup(self, role: RoleReference, lookup: RoleLookup) -> bool:
        if isinstance(role, str):
            if is_uuid_or_ulid(role):
                return role in lookup.ids
            return role in lookup.names
        if isinstance(role, int) and not isinstance(role, bool):
            return role in lookup.ids
        if isinstance(role, Role):
            return role.id in lookup.ids
        raise InvalidModelIdentifierError(role)

    def _scope_value(self) -> Any:
        scope = getattr(self.store, "scope", None)
        return scope.get() if isinstance(scope, Scope) else None

    def _from_store(self, operation: str, fetch: Callable[..., T], *args: Any) -> T:
        try:
            return fetch(*args)
        except AccessLayerException:
            raise
        except Exception as e:
            self.logger.error("Ability store read failed", operation=operation, error=str(e))
            if self.metrics:
                self.metrics.increment_counter("authorization_store_errors_total", operation=operation)
                self.metrics.record_error(type(e).__name__)
            raise StoreUnavailableError(operation, str(e)) from e
