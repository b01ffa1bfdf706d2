"""Submission statuses, audit actions and the PENDING-only transition guard."""

from __future__ import annotations

from typing import FrozenSet

from partner_me.core.errors import StateError


STATUS_PENDING = "PENDING"
STATUS_APPROVED = "APPROVED"
STATUS_REJECTED = "REJECTED"

SUBMISSION_STATUSES: FrozenSet[str] = frozenset({STATUS_PENDING, STATUS_APPROVED, STATUS_REJECTED})
TERMINAL_STATUSES: FrozenSet[str] = frozenset({STATUS_APPROVED, STATUS_REJECTED})

ACTION_CREATED = "CREATED"
ACTION_EDITED = "EDITED"
ACTION_APPROVED = "APPROVED"
ACTION_REJECTED = "REJECTED"
ACTION_FLAGGED = "FLAGGED"
ACTION_UNFLAGGED = "UNFLAGGED"

AUDIT_ACTIONS: FrozenSet[str] = frozenset(
    {ACTION_CREATED, ACTION_EDITED, ACTION_APPROVED, ACTION_REJECTED, ACTION_FLAGGED, ACTION_UNFLAGGED}
)

_ACTION_VERBS = {
    "approve": "approved",
    "reject": "rejected",
    "edit": "edited",
    "flag": "flagged",
    "unflag": "unflagged",
}


def is_terminal(status: str | None) -> bool:
    return str(status or "").upper() in TERMINAL_STATUSES


def transition_error(status: str, action: str) -> StateError:
    participle = _ACTION_VERBS.get(action, f"{action}ed")
    return StateError(
        f"Cannot {action} submission with status {status}. Only PENDING submissions can be {participle}.",
        current_status=status,
    )


def ensure_pending(status: str, action: str) -> None:
    """Raise StateError unless the submission is still awaiting review."""

    if status != STATUS_PENDING:
        raise transition_error(status, action)
