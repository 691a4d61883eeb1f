"""
In-memory ability store.

Keeps abilities, roles and assignment edges in process memory. It is the
reference implementation of the store contract and what the engine's tests
run against; a database-backed store answers the same three queries.
"""

import itertools
import threading
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Union

from shared.logging import get_logger
from ..constraints.models import Constraint
from ..rules.models import (
    Ability, Role, Permission, RoleAssignment, RoleLookup, Entity, Actor,
    ROLE_TYPE, as_actor
)
from ..scope import Scope
from .base import AbilityStore
from .ownership import OwnershipRegistry


class InMemoryAbilityStore(AbilityStore):
    """Ability store held in dictionaries."""

    def __init__(
        self,
        guard_name: str = "web",
        scope: Optional[Scope] = None,
        ownership: Optional[OwnershipRegistry] = None,
    ):
        self.logger = get_logger("authorization.store.memory")
        self.guard_name = guard_name
        self.scope = scope or Scope()
        self.ownership = ownership or OwnershipRegistry()

        self.abilities: Dict[Any, Ability] = {}
        self.roles: Dict[Any, Role] = {}
        self.permissions: List[Permission] = []
        self.assignments: List[RoleAssignment] = []
        self.users: Dict[Tuple[str, Any], Entity] = {}

        self._ability_ids = itertools.count(1)
        self._role_ids = itertools.count(1)
        self._lock = threading.RLock()

    # Writes

    def add_user(self, user: Entity) -> Entity:
        """Register a user-like actor so bulk refreshes can reach it."""
        with self._lock:
            self.users[(user.type_name, user.id)] = user
        return user

    def find_or_create_ability(
        self,
        name: str,
        target: Any = None,
        only_owned: bool = False,
        title: Optional[str] = None,
        constraints: Optional[Constraint] = None,
    ) -> Ability:
        candidate = Ability.make_for_target(
            None,
            name,
            target,
            only_owned=only_owned,
            guard_name=self.guard_name,
            scope=self.scope.get_attach_attributes().get("scope"),
            title=title,
        )

        with self._lock:
            ability = next(
                (existing for existing in self.abilities.values() if existing.identity == candidate.identity),
                None
            )
            if ability is None:
                candidate.id = next(self._ability_ids)
                self.abilities[candidate.id] = candidate
                ability = candidate
                self.logger.debug("Ability created", ability_id=ability.id, identifier=ability.identifier)

            if constraints is not None:
                ability.set_constraints(constraints)

        return ability

    def find_or_create_role(self, name: str, title: Optional[str] = None) -> Role:
        scope = self.scope.get_attach_attributes().get("scope")
        with self._lock:
            for role in self.roles.values():
                if role.name == name and role.guard_name == self.guard_name and role.scope == scope:
                    return role

            role = Role(id=next(self._role_ids), name=name, title=title, guard_name=self.guard_name, scope=scope)
            self.roles[role.id] = role
            self.logger.debug("Role created", role_id=role.id, name=name)
            return role

    def allow(self, actor: Actor, ability: Union[str, Ability], target: Any = None,
              only_owned: bool = False, constraints: Optional[Constraint] = None) -> Permission:
        return self._grant(actor, ability, target, only_owned, constraints, forbidden=False)

    def forbid(self, actor: Actor, ability: Union[str, Ability], target: Any = None,
               only_owned: bool = False, constraints: Optional[Constraint] = None) -> Permission:
        return self._grant(actor, ability, target, only_owned, constraints, forbidden=True)

    def allow_everyone(self, ability: Union[str, Ability], target: Any = None,
                       only_owned: bool = False, constraints: Optional[Constraint] = None) -> Permission:
        return self._grant(None, ability, target, only_owned, constraints, forbidden=False)

    def forbid_everyone(self, ability: Union[str, Ability], target: Any = None,
                        only_owned: bool = False, constraints: Optional[Constraint] = None) -> Permission:
        return self._grant(None, ability, target, only_owned, constraints, forbidden=True)

    def assign_role(self, actor: Entity, role: Union[str, Role]) -> RoleAssignment:
        role_record = role if isinstance(role, Role) else self.find_or_create_role(role)
        self.add_user(actor)

        assignment = RoleAssignment(
            role_id=role_record.id,
            actor_type=actor.type_name,
            actor_id=actor.id,
            scope=self.scope.get_attach_attributes().get("scope"),
        )
        with self._lock:
            if assignment not in self.assignments:
                self.assignments.append(assignment)
        return assignment

    def _grant(self, actor: Optional[Actor], ability: Union[str, Ability], target: Any,
               only_owned: bool, constraints: Optional[Constraint], forbidden: bool) -> Permission:
        if isinstance(ability, Ability):
            ability_record = ability
        else:
            ability_record = self.find_or_create_ability(ability, target, only_owned, constraints=constraints)

        actor_type, actor_id, is_role = None, None, False
        if actor is not None:
            entity = as_actor(actor)
            actor_type, actor_id = entity.type_name, entity.id
            is_role = entity.type_name == ROLE_TYPE
            if not is_role:
                self.add_user(entity)

        permission = Permission(
            ability_id=ability_record.id,
            actor_type=actor_type,
            actor_id=actor_id,
            forbidden=forbidden,
            scope=self.scope.get_attach_attributes(is_role=is_role).get("scope"),
        )
        with self._lock:
            if permission not in self.permissions:
                self.permissions.append(permission)

        self.logger.debug(
            "Permission granted",
            ability=ability_record.identifier,
            actor_type=actor_type,
            actor_id=actor_id,
            forbidden=forbidden
        )
        return permission

    # Reads

    def get_abilities(self, actor: Entity, allowed: bool = True) -> List[Ability]:
        self._remember(actor)
        forbidden = not allowed
        role_ids = set(self._role_ids_for(actor))

        with self._lock:
            direct = self._ability_ids_where(
                lambda p: p.actor_type == actor.type_name and p.actor_id == actor.id, forbidden
            )
            inherited = self._ability_ids_where(
                lambda p: p.actor_type == ROLE_TYPE and p.actor_id in role_ids, forbidden
            )
            everyone = self._ability_ids_where(lambda p: p.is_for_everyone, forbidden)

            ability_ids = dict.fromkeys(direct + inherited + everyone)
            return [
                self.abilities[ability_id]
                for ability_id in ability_ids
                if self._is_visible(self.abilities[ability_id])
            ]

    def get_role_lookup(self, actor: Entity) -> RoleLookup:
        self._remember(actor)
        with self._lock:
            return RoleLookup.from_roles([self.roles[role_id] for role_id in self._role_ids_for(actor)])

    def is_owned_by(self, actor: Entity, target: Any) -> bool:
        return self.ownership.is_owned_by(actor, target)

    def iter_actors(self) -> Iterable[Entity]:
        with self._lock:
            actors = list(self.users.values())
            actors.extend(role.as_actor() for role in self.roles.values())
        return actors

    def _remember(self, actor: Entity):
        # Bulk refreshes walk every actor the store has answered for
        if actor.type_name != ROLE_TYPE and (actor.type_name, actor.id) not in self.users:
            self.add_user(actor)

    def _role_ids_for(self, actor: Entity) -> List[Any]:
        with self._lock:
            role_ids = [
                assignment.role_id
                for assignment in self.assignments
                if assignment.actor_type == actor.type_name
                and assignment.actor_id == actor.id
                and assignment.context_type is None
                and self.scope.matches(assignment.scope)
            ]
            return [
                role_id for role_id in dict.fromkeys(role_ids)
                if role_id in self.roles
                and self.roles[role_id].guard_name == self.guard_name
                and self.scope.matches(self.roles[role_id].scope, is_relation=False)
            ]

    def _ability_ids_where(self, predicate: Callable[[Permission], bool], forbidden: bool) -> List[Any]:
        return [
            permission.ability_id
            for permission in self.permissions
            if permission.forbidden == forbidden
            and permission.context_type is None
            and self.scope.matches(permission.scope)
            and predicate(permission)
        ]

    def _is_visible(self, ability: Ability) -> bool:
        return ability.guard_name == self.guard_name and self.scope.matches(ability.scope, is_relation=False)
