"""
Gate adapter.

Plugs the resolver into a host authorization gate that offers ``before``
and ``after`` hooks. Only one of the two hooks is active at a time: in the
``before`` slot the resolver overrides later policy checks, in the
``after`` slot it only answers when no policy has.
"""

from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from shared.logging import get_logger
from shared.errors import InvalidGateSlotError
from .cache.cached_resolver import CachedDecisionResolver
from .rules.engine import DecisionResolver
from .rules.models import Actor, Entity


SLOTS = ("before", "after")


@dataclass
class GateResponse:
    """A positive gate answer."""
    allowed: bool
    message: Optional[str] = None

    def __bool__(self) -> bool:
        return self.allowed


GateResult = Union[GateResponse, bool, None]


class AuthorizationGate:
    """Bridges the decision resolver to a before/after gate."""

    def __init__(self, resolver: DecisionResolver, slot: str = "after"):
        self.resolver = resolver
        self.logger = get_logger("authorization.gate")
        self._slot = "after"
        self.slot(slot)

    def set_resolver(self, resolver: DecisionResolver) -> "AuthorizationGate":
        self.resolver = resolver
        return self

    def uses_cached_resolver(self) -> bool:
        return isinstance(self.resolver, CachedDecisionResolver)

    def slot(self, slot: Optional[str] = None) -> Union[str, "AuthorizationGate"]:
        """Current slot when called without arguments, otherwise set it."""
        if slot is None:
            return self._slot
        if slot not in SLOTS:
            raise InvalidGateSlotError(slot)
        self._slot = slot
        return self

    def before(self, actor: Actor, ability: str, arguments: Sequence[Any] = ()) -> GateResult:
        if self._slot != "before":
            return None
        return self._check_arguments(actor, ability, arguments)

    def after(self, actor: Actor, ability: str, result: Any, arguments: Sequence[Any] = ()) -> GateResult:
        # An earlier answer from a policy stands
        if result is not None:
            return result
        if self._slot != "after":
            return None
        return self._check_arguments(actor, ability, arguments)

    def _check_arguments(self, actor: Actor, ability: str, arguments: Sequence[Any]) -> GateResult:
        # Calls with extra policy arguments are not ours to answer
        if len(arguments) > 2:
            return None

        target = arguments[0] if arguments else None
        if target is not None and not isinstance(target, (str, Entity)):
            return None

        return self._check(actor, ability, target)

    def _check(self, actor: Actor, ability: str, target: Union[str, Entity, None]) -> GateResult:
        ability_id = self.resolver.check_get_id(actor, ability, target)

        if ability_id is False:
            self.logger.debug("Gate denied by forbidden ability", ability=ability)
            return False
        if ability_id is None:
            return None

        return GateResponse(allowed=True, message=f"Granted permission via ability #{ability_id}")
