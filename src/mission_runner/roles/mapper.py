from __future__ import annotations

from collections.abc import Iterable

from mission_runner.models import Phase, Role

PHASE_ROLES: dict[Phase, tuple[Role, ...]] = {
    Phase.PLANNING: (Role.PLANNER, Role.PM),
    Phase.DEVELOPMENT: (Role.DEV,),
    Phase.REVIEW: (Role.REVIEWER, Role.UIUX),
    Phase.DONE: (),
}

# Planning waiting on developer feedback keeps dev engaged.
DEV_FEEDBACK_ROLES: tuple[Role, ...] = (Role.PLANNER, Role.PM, Role.DEV)
# Development waiting on review feedback hands over to reviewers early.
REVIEW_FEEDBACK_ROLES: tuple[Role, ...] = (Role.REVIEWER, Role.UIUX)


def default_roles(
    phase: Phase,
    *,
    dev_feedback_pending: bool = False,
    review_feedback_pending: bool = False,
) -> tuple[Role, ...]:
    if phase is Phase.PLANNING and dev_feedback_pending:
        return DEV_FEEDBACK_ROLES
    if phase is Phase.DEVELOPMENT and review_feedback_pending:
        return REVIEW_FEEDBACK_ROLES
    return PHASE_ROLES[phase]


def required_roles(
    assignees: Iterable[Role],
    phase: Phase,
    *,
    dev_feedback_pending: bool = False,
    review_feedback_pending: bool = False,
) -> tuple[Role, ...]:
    """Roles that must be active for a task in ``phase``.

    Declared assignees narrow the phase defaults. When none of them is relevant
    to the phase the full default set applies, so a phase is never left
    without its required roles.
    """
    defaults = default_roles(
        phase,
        dev_feedback_pending=dev_feedback_pending,
        review_feedback_pending=review_feedback_pending,
    )
    if not defaults:
        return ()
    declared = set(assignees)
    if not declared:
        return defaults
    narrowed = tuple(role for role in defaults if role in declared)
    return narrowed or defaults
