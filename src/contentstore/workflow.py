"""Workflow state transition guard.

The repository stores any state it is given. This allow-list is consulted by
the service only when ``workflow.enforce_transitions`` is enabled.

    draft      -> in_review, archived
    in_review  -> draft, approved, archived
    approved   -> in_review, published, archived
    published  -> archived
    archived   -> draft
"""

from __future__ import annotations

from contentstore.db.models import WorkflowState

TRANSITIONS: dict[WorkflowState, frozenset[WorkflowState]] = {
    WorkflowState.DRAFT: frozenset({WorkflowState.IN_REVIEW, WorkflowState.ARCHIVED}),
    WorkflowState.IN_REVIEW: frozenset(
        {WorkflowState.DRAFT, WorkflowState.APPROVED, WorkflowState.ARCHIVED}
    ),
    WorkflowState.APPROVED: frozenset(
        {WorkflowState.IN_REVIEW, WorkflowState.PUBLISHED, WorkflowState.ARCHIVED}
    ),
    WorkflowState.PUBLISHED: frozenset({WorkflowState.ARCHIVED}),
    WorkflowState.ARCHIVED: frozenset({WorkflowState.DRAFT}),
}


class InvalidTransitionError(ValueError):
    """Raised when a state change is not in the allow-list."""

    def __init__(self, current: WorkflowState, target: WorkflowState) -> None:
        allowed = ", ".join(sorted(s.value for s in TRANSITIONS[current])) or "(none)"
        super().__init__(
            f"Cannot move from '{current.value}' to '{target.value}' (allowed: {allowed})"
        )
        self.current = current
        self.target = target


def can_transition(current: WorkflowState, target: WorkflowState) -> bool:
    """Staying in the same state is always allowed."""
    current, target = WorkflowState(current), WorkflowState(target)
    return current == target or target in TRANSITIONS[current]


def check_transition(current: WorkflowState, target: WorkflowState) -> None:
    """Raise InvalidTransitionError unless *current* may move to *target*."""
    if not can_transition(current, target):
        raise InvalidTransitionError(WorkflowState(current), WorkflowState(target))
