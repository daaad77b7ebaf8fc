"""
State machine declarations for purchasing documents.

The purchase order and purchase return lifecycles are both declared as a
``Workflow`` of named states and ``Transition`` edges.  These are plain
frozen values with no I/O; the owning module supplies the check behind
each ``Guard`` (see ``purchase_order.workflows.require_guard``).

Construction raises ``ValueError`` when any state is referenced without
being declared, and when a terminal state has an outgoing edge.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """Named precondition of a transition, checked by the service."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """An allowed edge between two states.

    ``automatic=True`` marks a transition that is only ever produced as a
    side effect of another operation (e.g. receiving goods) and can never
    be requested through a manual status change.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    automatic: bool = False


@dataclass(frozen=True)
class Workflow:
    """States and allowed edges of one document lifecycle."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.initial_state not in self.states:
            raise ValueError(
                f"Workflow {self.name}: initial state '{self.initial_state}' is not a declared state"
            )
        for t in self.transitions:
            if t.from_state not in self.states or t.to_state not in self.states:
                raise ValueError(
                    f"Workflow {self.name}: transition {t.from_state}->{t.to_state} "
                    "references an undeclared state"
                )
            if t.from_state in self.terminal_states:
                raise ValueError(
                    f"Workflow {self.name}: terminal state '{t.from_state}' has an outgoing transition"
                )

    def find_transition(self, from_state: str, to_state: str) -> Transition | None:
        """Return the transition between two states, or None."""
        for t in self.transitions:
            if t.from_state == from_state and t.to_state == to_state:
                return t
        return None

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def is_terminal(self, state: str) -> bool:
        return state in self.terminal_states
