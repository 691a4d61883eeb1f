"""
Ability identifier compilation.

Turns an (action, target) pair into the candidate identifiers a stored
ability must carry to apply. Candidates are ordered from most to least
specific, but matching only ever tests membership.
"""

from typing import Any, List, Optional, Union, Iterable

from shared.errors import InvalidModelIdentifierError
from ..rules.models import Entity, WILDCARD


OWNED_SUFFIX = "-owned"

Target = Optional[Union[str, Entity]]


def compile_identifiers(action: str, target: Target = None) -> List[str]:
    """Candidate identifiers for ``action`` on ``target``, lowercased."""
    if target is None:
        identifiers = [action, "*-*", WILDCARD]
    else:
        identifiers = _compile_target_identifiers(action, target)

    return _unique([identifier.lower() for identifier in identifiers])


def owned_identifiers(identifiers: Iterable[str]) -> List[str]:
    """The ownership-scoped variants of already compiled identifiers."""
    return [identifier + OWNED_SUFFIX for identifier in identifiers]


def is_existing_entity(target: Any) -> bool:
    return isinstance(target, Entity) and bool(target.exists)


def target_type(target: Target) -> Optional[str]:
    if target is None:
        return None
    if isinstance(target, str):
        return target
    if isinstance(target, Entity):
        return target.type_name
    raise InvalidModelIdentifierError(target)


def _compile_target_identifiers(action: str, target: Union[str, Entity]) -> List[str]:
    if target == WILDCARD:
        return [f"{action}-*", "*-*"]

    type_name = target_type(target)
    identifiers = [
        f"{action}-{type_name}",
        f"{action}-*",
        f"*-{type_name}",
        "*-*",
    ]

    if is_existing_entity(target):
        identifiers = [
            f"{action}-{type_name}-{target.id}",
            f"*-{type_name}-{target.id}",
        ] + identifiers

    return identifiers


def _unique(identifiers: List[str]) -> List[str]:
    return list(dict.fromkeys(identifiers))
