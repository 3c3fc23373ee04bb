"""Decision tables for the label-gated handlers.

Routing functions return string literals, the same way graph routers do, so
every branch is enumerable and testable on its own.
"""

from typing import Dict, Literal, Tuple

AssignmentAction = Literal[
    "register",
    "mark_not_ready",
    "revert_unassigned",
    "revert_not_ready",
]

CloseGate = Literal["ignore_unassigned", "ignore_paid", "proceed"]

PaymentAction = Literal["rollback", "cancel", "pay"]

# (has_open_for_pickup, has_not_ready, had_assignee) -> action
ASSIGNMENT_TABLE: Dict[Tuple[bool, bool, bool], AssignmentAction] = {
    (True, False, False): "register",
    (True, False, True): "register",
    (True, True, False): "register",
    (True, True, True): "register",
    (False, False, False): "mark_not_ready",
    (False, True, False): "mark_not_ready",
    (False, False, True): "revert_unassigned",
    (False, True, True): "revert_not_ready",
}


def decide_assignment(
    has_open_for_pickup: bool, has_not_ready: bool, had_assignee: bool
) -> AssignmentAction:
    """Pick the assignment action for a mapped assignee."""
    return ASSIGNMENT_TABLE[(has_open_for_pickup, has_not_ready, had_assignee)]


def should_cancel(has_fix_accepted: bool, primary_prize) -> bool:
    """A closed issue is cancelled rather than paid without the fix-accepted
    label or when it carries no prize money."""
    return not has_fix_accepted or primary_prize == 0


def decide_close(has_assignee: bool, has_paid_label: bool) -> CloseGate:
    """Whether a closed issue is actionable at all.

    An unassigned issue is ignored before the paid label is looked at.
    """
    if not has_assignee:
        return "ignore_unassigned"
    if has_paid_label:
        return "ignore_paid"
    return "proceed"


def decide_payment(assignee_mapped: bool, cancel: bool) -> PaymentAction:
    """Pick what happens to the challenge of an actionable closed issue."""
    if not assignee_mapped:
        return "rollback"
    return "cancel" if cancel else "pay"
