"""Request-for-change review workflow.

``PROPOSED -> UNDER_REVIEW -> APPROVED -> IMPLEMENTED``, with ``REJECTED`` and
``CANCELLED`` as exits from the two open states.
"""

from __future__ import annotations

from dataclasses import dataclass

EDITABLE_STATUSES = frozenset({"PROPOSED", "UNDER_REVIEW"})

MANAGER = "manager"
REQUESTER_OR_ADMIN = "requester_or_admin"
ANY_MEMBER = "member"


@dataclass(frozen=True)
class Transition:
    allowed_from: frozenset[str]
    actor: str
    state_message: str
    permission_message: str = ""


TRANSITIONS: dict[str, Transition] = {
    "UNDER_REVIEW": Transition(
        frozenset({"PROPOSED"}),
        MANAGER,
        "RFC must be in PROPOSED status to start review",
        "Only admin or project lead can start review",
    ),
    "APPROVED": Transition(
        frozenset({"UNDER_REVIEW"}),
        MANAGER,
        "RFC must be UNDER_REVIEW to be approved",
        "Only admin or project lead can approve RFC",
    ),
    "REJECTED": Transition(
        frozenset({"PROPOSED", "UNDER_REVIEW"}),
        MANAGER,
        "Invalid status transition",
        "Only admin or project lead can reject RFC",
    ),
    "IMPLEMENTED": Transition(
        frozenset({"APPROVED"}),
        ANY_MEMBER,
        "RFC must be APPROVED to be implemented",
    ),
    "CANCELLED": Transition(
        frozenset({"PROPOSED", "UNDER_REVIEW"}),
        REQUESTER_OR_ADMIN,
        "Cannot cancel RFC with status: {current}",
        "Only requester or admin can cancel RFC",
    ),
}


class RFCWorkflowError(Exception):
    """Base class for rejected RFC status changes."""


class RFCTransitionError(RFCWorkflowError):
    """The requested status cannot be reached from the current one."""


class RFCPermissionError(RFCWorkflowError):
    """The acting user may not perform this status change."""


def check_transition(
    current: str,
    target: str,
    *,
    is_manager: bool,
    is_requester: bool,
    is_workspace_admin: bool,
    rejection_reason: str | None = None,
) -> None:
    """Validate a status change, raising on the first broken rule.

    The current state is checked before the actor's permission, so a
    non-manager asking for an impossible transition gets a 400, not a 403.
    """
    transition = TRANSITIONS.get(target)
    if transition is None:
        raise RFCTransitionError(f"Invalid status: {target}")

    if current not in transition.allowed_from:
        raise RFCTransitionError(transition.state_message.format(current=current))

    if transition.actor == MANAGER and not is_manager:
        raise RFCPermissionError(transition.permission_message)
    if transition.actor == REQUESTER_OR_ADMIN and not (is_requester or is_workspace_admin):
        raise RFCPermissionError(transition.permission_message)

    if target == "REJECTED" and not (rejection_reason or "").strip():
        raise RFCTransitionError("Rejection reason is required")


def is_editable(status: str) -> bool:
    return status in EDITABLE_STATUSES


def next_rfc_code(existing_count: int) -> str:
    return f"RFC-{existing_count + 1:03d}"
