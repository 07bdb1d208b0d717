"""
ntlm-remote-auth State Machine

Rule-driven state machine used to track one handshake run. Rules and
invariants are plain data handed in by the owner, so the machine itself
knows nothing about NTLM:

    rules = {
        (State.IDLE, Started): (State.RUNNING, lambda event, ctx: ctx),
    }
    machine = StateMachine(state=State.IDLE, context=ctx, rules=rules)
    machine.process_event(Started())   # Success(State.RUNNING)

An event with no rule for the current state yields a ``Failure`` and
leaves the machine untouched. A broken invariant raises.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Mapping, Tuple, TypeVar

import attrs
import structlog
from returns.result import Failure, Result, Success

from ntlm_remote_auth.core.exceptions import InvariantViolation

logger = structlog.get_logger()


S = TypeVar("S", bound=Enum)
C = TypeVar("C")

# (next_state, context_updater); updaters return a new context
Rule = Tuple[Any, Callable[[Any, Any], Any]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@attrs.define(frozen=True, slots=True)
class Transition:
    """One committed state change."""

    from_state: Enum
    event_type: str
    to_state: Enum
    timestamp: datetime = attrs.field(factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state.name,
            "event": self.event_type,
            "to": self.to_state.name,
            "at": self.timestamp.isoformat(),
        }


@attrs.define(frozen=True, slots=True)
class Invariant:
    """Named predicate over (state, context) that must hold after every step."""

    name: str
    check: Callable[[Any, Any], bool]


@attrs.define
class StateMachine(Generic[S, C]):
    """
    State machine driven by a ``(state, event type) -> Rule`` mapping.

    Attributes:
        state: Current state
        context: Data accumulated so far (replaced, never mutated)
        rules: Allowed transitions
        invariants: Checked against the candidate state and context
            before a transition is committed
        history: Committed transitions, oldest first
    """

    state: S
    context: C
    rules: Mapping[Tuple[Any, type], Rule] = attrs.field(factory=dict, repr=False)
    invariants: Tuple[Invariant, ...] = attrs.field(default=(), repr=False)
    history: List[Transition] = attrs.field(factory=list, repr=False)

    def process_event(self, event: Any) -> Result[S, str]:
        """
        Apply ``event`` to the current state.

        Returns:
            Success(new_state), or Failure(reason) when no rule applies or
            the context updater raised

        Raises:
            InvariantViolation: If the resulting state breaks an invariant
        """
        event_name = type(event).__name__
        rule = self.rules.get((self.state, type(event)))
        if rule is None:
            logger.warning(
                "invalid_transition",
                state=self.state.name,
                event_type=event_name,
            )
            return Failure(f"No transition for state {self.state.name} with event {event_name}")

        next_state, update = rule
        try:
            context = update(event, self.context)
        except Exception as e:
            logger.error(
                "context_update_failed",
                state=self.state.name,
                event_type=event_name,
                error=str(e),
            )
            return Failure(f"Context update failed: {e}")

        broken = [inv.name for inv in self.invariants if not inv.check(next_state, context)]
        if broken:
            logger.error(
                "invariant_violated",
                invariants=broken,
                from_state=self.state.name,
                to_state=next_state.name,
            )
            raise InvariantViolation(f"Invariant '{broken[0]}' violated")

        self.history.append(Transition(self.state, event_name, next_state))
        logger.debug(
            "state_transition",
            from_state=self.state.name,
            to_state=next_state.name,
            event_type=event_name,
        )
        self.state = next_state
        self.context = context
        return Success(next_state)

    def get_trace(self) -> List[Transition]:
        """Copy of the committed transitions."""
        return list(self.history)

    def state_path(self) -> List[str]:
        """Names of the states visited so far, initial state first."""
        if not self.history:
            return [self.state.name]
        return [self.history[0].from_state.name] + [t.to_state.name for t in self.history]
