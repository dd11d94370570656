"""
Canonical workflow types (``fulfillment_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the order, shipment and batch state machines, plus
the single guard function every orchestrator calls before changing a
status.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* No backward transitions: every status change goes through
  ``require_transition`` and is rejected unless declared.
"""

from __future__ import annotations

from dataclasses import dataclass

from fulfillment_kernel.exceptions import InvalidTransitionError


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Contract: frozen, descriptive only.
    Non-goals: does not evaluate the condition -- the orchestrator does.
    """

    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``moves_stock=True`` marks transitions that call the inventory ledger.
    """

    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for an entity lifecycle.

    Contract: frozen; ``transitions`` reference only states in ``states``.
    """

    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state {self.initial_state!r} "
                "is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.action!r} "
                    "references an undeclared state"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def allowed_targets(self, from_state: str) -> tuple[str, ...]:
        return tuple(
            t.to_state for t in self.transitions if t.from_state == from_state
        )


def require_transition(
    workflow: Workflow,
    entity_id,
    from_state: str,
    to_state: str,
) -> Transition:
    """
    Return the declared transition or raise.

    Raises:
        InvalidTransitionError: If ``from_state -> to_state`` is not declared.
    """
    from_value = getattr(from_state, "value", from_state)
    to_value = getattr(to_state, "value", to_state)
    transition = workflow.find_transition(from_value, to_value)
    if transition is None:
        raise InvalidTransitionError(
            entity_type=workflow.name,
            entity_id=entity_id,
            from_status=from_value,
            to_status=to_value,
        )
    return transition
