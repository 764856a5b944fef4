from __future__ import annotations

from datetime import datetime
from typing import Optional

from tancms.models import ContentStatus

STATES: list[str] = [s.value for s in ContentStatus]


class WorkflowError(Exception):
    """Raised when a status transition is invalid."""


def list_states() -> list[str]:
    return list(STATES)


_TRANSITIONS: dict[str, list[str]] = {
    "DRAFT": ["PUBLISHED", "SCHEDULED", "ARCHIVED"],
    "SCHEDULED": ["PUBLISHED", "DRAFT", "ARCHIVED"],
    "PUBLISHED": ["DRAFT", "ARCHIVED"],
    "ARCHIVED": ["DRAFT"],
}


def normalize_status(status: str) -> str:
    if not status:
        return status
    return str(getattr(status, "value", status)).strip().upper()


def allowed_transitions(from_status: str) -> list[str]:
    s = normalize_status(from_status)
    if s not in _TRANSITIONS:
        # Unknown status from storage: nothing is reachable.
        return []
    return list(_TRANSITIONS[s])


def validate_schedule(status: str, scheduled_at: Optional[datetime]) -> None:
    if normalize_status(status) == "SCHEDULED" and scheduled_at is None:
        raise WorkflowError("scheduled_at is required when status is SCHEDULED")


def validate_transition(from_status: str, to_status: str, scheduled_at: Optional[datetime] = None) -> None:
    """
    Raises WorkflowError if the transition is not permitted.
    Re-applying the current status is accepted as a no-op.
    """
    s_from = normalize_status(from_status)
    s_to = normalize_status(to_status)

    if s_from not in STATES:
        raise WorkflowError(f"Unknown from_status: {from_status}")

    if s_to not in STATES:
        raise WorkflowError(f"Unknown to_status: {to_status}")

    validate_schedule(s_to, scheduled_at)

    if s_from == s_to:
        return

    allowed = allowed_transitions(s_from)
    if s_to not in allowed:
        raise WorkflowError(f"Transition not allowed: {s_from} -> {s_to}. Allowed: {allowed}")
