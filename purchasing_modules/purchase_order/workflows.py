"""
Purchase Order Workflows.

State machines for purchase order and purchase return processing, plus the
checks that decide whether a caller may request a status change directly
and whether the transition's guard holds.
"""

from collections.abc import Callable
from typing import Any

from purchasing_kernel.domain.statuses import PurchaseOrderStatus, ReturnStatus
from purchasing_kernel.domain.workflow import Guard, Transition, Workflow
from purchasing_kernel.exceptions import InvalidTransitionError, ValidationError
from purchasing_kernel.logging_config import get_logger
from purchasing_modules.purchase_order.models import PurchaseOrder

logger = get_logger("modules.purchase_order.workflows")

_PO = PurchaseOrderStatus
_RET = ReturnStatus


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_LINES = Guard(
    name="has_lines",
    description="Order carries at least one line item",
)

APPROVER_RECORDED = Guard(
    name="approver_recorded",
    description="Approving actor is recorded on the order",
)

SOME_LINES_RECEIVED = Guard(
    name="some_lines_received",
    description="At least one unit received, at least one line still pending",
)

ALL_LINES_RECEIVED = Guard(
    name="all_lines_received",
    description="All PO lines fully received",
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle",
    initial_state=_PO.DRAFT.value,
    states=tuple(s.value for s in PurchaseOrderStatus),
    transitions=(
        Transition(_PO.DRAFT.value, _PO.PENDING.value, action="submit", guard=HAS_LINES),
        Transition(_PO.PENDING.value, _PO.APPROVED.value, action="approve", guard=APPROVER_RECORDED),
        Transition(_PO.APPROVED.value, _PO.ORDERED.value, action="mark_ordered"),
        Transition(_PO.APPROVED.value, _PO.PARTIAL.value, action="receive", guard=SOME_LINES_RECEIVED, automatic=True),
        Transition(_PO.APPROVED.value, _PO.RECEIVED.value, action="receive", guard=ALL_LINES_RECEIVED, automatic=True),
        Transition(_PO.ORDERED.value, _PO.PARTIAL.value, action="receive", guard=SOME_LINES_RECEIVED, automatic=True),
        Transition(_PO.ORDERED.value, _PO.RECEIVED.value, action="receive", guard=ALL_LINES_RECEIVED, automatic=True),
        Transition(_PO.PARTIAL.value, _PO.RECEIVED.value, action="receive", guard=ALL_LINES_RECEIVED, automatic=True),
        Transition(_PO.DRAFT.value, _PO.CANCELLED.value, action="cancel"),
        Transition(_PO.PENDING.value, _PO.CANCELLED.value, action="cancel"),
        Transition(_PO.APPROVED.value, _PO.CANCELLED.value, action="cancel"),
        Transition(_PO.ORDERED.value, _PO.CANCELLED.value, action="cancel"),
    ),
    terminal_states=(_PO.RECEIVED.value, _PO.CANCELLED.value),
)

logger.info(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)

# States from which goods may be received.
RECEIVABLE_STATES = frozenset(
    PurchaseOrderStatus(t.from_state)
    for t in PURCHASE_ORDER_WORKFLOW.transitions
    if t.action == "receive"
)


# -----------------------------------------------------------------------------
# Purchase Return Workflow
# -----------------------------------------------------------------------------

PURCHASE_RETURN_WORKFLOW = Workflow(
    name="purchase_return",
    description="Purchase return lifecycle",
    initial_state=_RET.PENDING.value,
    states=tuple(s.value for s in ReturnStatus),
    transitions=(
        Transition(_RET.PENDING.value, _RET.APPROVED.value, action="approve"),
        Transition(_RET.PENDING.value, _RET.REJECTED.value, action="reject"),
        Transition(_RET.APPROVED.value, _RET.COMPLETED.value, action="complete"),
    ),
    terminal_states=(_RET.COMPLETED.value, _RET.REJECTED.value),
)

logger.info(
    "purchase_return_workflow_registered",
    extra={
        "workflow_name": PURCHASE_RETURN_WORKFLOW.name,
        "state_count": len(PURCHASE_RETURN_WORKFLOW.states),
        "transition_count": len(PURCHASE_RETURN_WORKFLOW.transitions),
        "initial_state": PURCHASE_RETURN_WORKFLOW.initial_state,
    },
)


def require_manual_transition(
    workflow: Workflow,
    entity_id: Any,
    from_state: str,
    to_state: str,
) -> Transition:
    """
    Return the transition a caller may request directly, or raise.

    Raises:
        InvalidTransitionError: No transition exists between the states,
            the source state is terminal, or the transition is one that only
            receiving may produce.
    """
    if workflow.is_terminal(from_state):
        raise InvalidTransitionError(
            workflow.name, entity_id, from_state, to_state,
            reason=f"'{from_state}' is a terminal state",
        )
    transition = workflow.find_transition(from_state, to_state)
    if transition is None:
        raise InvalidTransitionError(workflow.name, entity_id, from_state, to_state)
    if transition.automatic:
        raise InvalidTransitionError(
            workflow.name, entity_id, from_state, to_state,
            reason=f"'{to_state}' is set by receiving goods only",
        )
    return transition


# Receiving guards are not listed: derive_order_status decides those edges.
_GUARD_CHECKS: dict[str, Callable[[PurchaseOrder, str | None], bool]] = {
    HAS_LINES.name: lambda order, actor: bool(order.lines),
    APPROVER_RECORDED.name: lambda order, actor: bool(actor and actor.strip()),
}


def require_guard(transition: Transition, order: PurchaseOrder, actor: str | None) -> None:
    """
    Evaluate the guard of a manually requested transition.

    Raises:
        ValidationError: The guard does not hold for this order and actor.
    """
    guard = transition.guard
    if guard is None or guard.name not in _GUARD_CHECKS:
        return
    if not _GUARD_CHECKS[guard.name](order, actor):
        logger.info(
            "purchase_order_guard_failed",
            extra={
                "order_id": str(order.id),
                "action": transition.action,
                "guard": guard.name,
            },
        )
        raise ValidationError(
            f"{transition.action} requires: {guard.description}", field=guard.name,
        )
