"""
Authorization data models.

Abilities, roles and the two assignment edges (permissions and role
assignments) are plain records read from the ability store. The engine
never mutates them; it only reads collections and computes derived values
such as an ability's identifier.
"""

from typing import Dict, Any, Optional, List, Union
from dataclasses import dataclass, field, fields, asdict

from shared.errors import InvalidModelIdentifierError
from ..constraints.models import Constraint, Group, constraint_from_dict


WILDCARD = "*"
ROLE_TYPE = "role"


@dataclass
class Entity:
    """An actor or a target instance.

    ``exists`` tells whether the entity is persisted; a non-existent entity
    only contributes its type to identifier compilation.
    """
    type_name: str
    id: Any = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    exists: Optional[bool] = None

    def __post_init__(self):
        if self.exists is None:
            self.exists = self.id is not None

    def get_attribute(self, name: str, default: Any = None) -> Any:
        """Read an attribute; ``id`` falls back to the entity key."""
        if name in self.attributes:
            return self.attributes[name]
        if name == "id":
            return self.id
        return default


@dataclass
class Ability:
    """A named permission grant definition."""
    id: Any
    name: str
    subject_type: Optional[str] = None
    subject_id: Any = None
    only_owned: bool = False
    guard_name: str = "web"
    scope: Any = None
    title: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def identifier(self) -> str:
        """Lookup key derived from name, subject and ownership."""
        slug = self.name
        if self.subject_type is not None:
            slug += f"-{self.subject_type}"
        if self.subject_id is not None:
            slug += f"-{self.subject_id}"
        if self.only_owned:
            slug += "-owned"
        return slug.lower()

    @property
    def identity(self) -> tuple:
        return (self.name, self.subject_type, self.subject_id, self.only_owned, self.guard_name, self.scope)

    @classmethod
    def make_for_target(cls, ability_id: Any, name: str, target: Any = None, **attributes) -> "Ability":
        """Build an ability scoped the way ``target`` is.

        ``None`` gives a global ability, ``"*"`` a blanket one, a type name
        a type-scoped one and an existing entity an instance-scoped one.
        """
        if target is None:
            return cls(id=ability_id, name=name, **attributes)
        if target == WILDCARD:
            return cls(id=ability_id, name=name, subject_type=WILDCARD, **attributes)
        if isinstance(target, str):
            return cls(id=ability_id, name=name, subject_type=target, **attributes)
        if isinstance(target, Entity):
            return cls(
                id=ability_id,
                name=name,
                subject_type=target.type_name,
                subject_id=target.id if target.exists else None,
                **attributes
            )
        raise InvalidModelIdentifierError(target)

    def has_constraints(self) -> bool:
        return bool(self.options.get("constraints"))

    def get_constraints(self) -> Constraint:
        """Rebuild the attached constraint tree (an empty AND group if none)."""
        if not self.has_constraints():
            return Group()
        return constraint_from_dict(self.options["constraints"])

    def set_constraints(self, constraint: Constraint) -> "Ability":
        self.options = {**self.options, "constraints": constraint.data()}
        return self

    def to_attributes(self) -> Dict[str, Any]:
        """Plain attribute map, no derived fields."""
        return asdict(self)

    @classmethod
    def from_attributes(cls, attributes: Dict[str, Any]) -> "Ability":
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in attributes.items() if key in names})


@dataclass
class Role:
    """A named bundle of abilities."""
    id: Any
    name: str
    title: Optional[str] = None
    guard_name: str = "web"
    scope: Any = None

    def as_actor(self) -> Entity:
        return Entity(type_name=ROLE_TYPE, id=self.id, attributes={"name": self.name})


@dataclass
class Permission:
    """Links an actor (or everyone, when the actor is unset) to an ability."""
    ability_id: Any
    actor_type: Optional[str] = None
    actor_id: Any = None
    forbidden: bool = False
    scope: Any = None
    context_type: Optional[str] = None
    context_id: Any = None

    @property
    def is_for_everyone(self) -> bool:
        return self.actor_type is None


@dataclass
class RoleAssignment:
    """Links an actor to a role."""
    role_id: Any
    actor_type: str
    actor_id: Any
    scope: Any = None
    context_type: Optional[str] = None
    context_id: Any = None


@dataclass
class RoleLookup:
    """Roles of one actor indexed both ways."""
    ids: Dict[Any, str] = field(default_factory=dict)
    names: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_roles(cls, roles: List[Role]) -> "RoleLookup":
        ids = {role.id: role.name for role in roles}
        return cls(ids=ids, names={name: role_id for role_id, name in ids.items()})

    def to_dict(self) -> Dict[str, Any]:
        # Pairs keep non-string keys intact through JSON
        return {"ids": [[role_id, name] for role_id, name in self.ids.items()]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RoleLookup":
        ids = {role_id: name for role_id, name in data.get("ids", [])}
        return cls(ids=ids, names={name: role_id for role_id, name in ids.items()})


@dataclass
class Decision:
    """Result of one authorization decision."""
    allowed: bool
    matched_ability_id: Any = None
    forbidden: bool = False
    reason: Optional[str] = None
    evaluation_time_ms: float = 0.0

    @property
    def outcome(self) -> str:
        if self.allowed:
            return "allowed"
        return "forbidden" if self.forbidden else "no_match"


Actor = Union[Entity, Role]


def as_actor(actor: Actor) -> Entity:
    """Normalize a role or entity into the entity used for lookups."""
    if isinstance(actor, Role):
        return actor.as_actor()
    if isinstance(actor, Entity):
        return actor
    raise InvalidModelIdentifierError(actor)
