"""Status transition rules for lot runs, step runs and non-conformances.

Every status write in the services goes through one of the functions
here.  Each returns the validated target state or raises
`InvalidTransitionError`; none of them touch the database.

Step runs:

    PENDING      → IN_PROGRESS | SKIPPED
    IN_PROGRESS  → COMPLETED | FAILED | SKIPPED
    FAILED       → IN_PROGRESS            (retry)
    COMPLETED, SKIPPED                    terminal

Writing the current status again is a no-op and always allowed.

Lot runs:

    IN_PROGRESS → COMPLETED   only when every step run is COMPLETED or SKIPPED

Non-conformances:

    unresolved → resolved     one way
"""

from typing import Iterable

from nutaria.middleware.exceptions import InvalidTransitionError
from nutaria.models.process import LotRunStatus, StepRunStatus

STEP_RUN_TRANSITIONS: dict[StepRunStatus, frozenset[StepRunStatus]] = {
    StepRunStatus.PENDING: frozenset({StepRunStatus.IN_PROGRESS, StepRunStatus.SKIPPED}),
    StepRunStatus.IN_PROGRESS: frozenset({
        StepRunStatus.COMPLETED, StepRunStatus.FAILED, StepRunStatus.SKIPPED,
    }),
    StepRunStatus.FAILED: frozenset({StepRunStatus.IN_PROGRESS}),
    StepRunStatus.COMPLETED: frozenset(),
    StepRunStatus.SKIPPED: frozenset(),
}

STEP_RUN_DONE: frozenset[StepRunStatus] = frozenset({
    StepRunStatus.COMPLETED, StepRunStatus.SKIPPED,
})


def _coerce(enum_cls, value, entity: str, current: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidTransitionError(entity, current, str(value))


def transition_step_run(current: str, target: str) -> StepRunStatus:
    """Validate a step run status change and return the target status."""
    src = _coerce(StepRunStatus, current, "Step run", str(current))
    dst = _coerce(StepRunStatus, target, "Step run", src.value)
    if dst == src:
        return dst
    if dst not in STEP_RUN_TRANSITIONS[src]:
        raise InvalidTransitionError("Step run", src.value, dst.value)
    return dst


def can_complete_lot_run(step_statuses: Iterable[str]) -> bool:
    return all(StepRunStatus(s) in STEP_RUN_DONE for s in step_statuses)


def transition_lot_run(
    current: str,
    target: str,
    step_statuses: Iterable[str] = (),
) -> LotRunStatus:
    """Validate a lot run status change.

    Completing requires every step run to be finished; an unfinished
    step reports as `IN_PROGRESS → COMPLETED` being refused.
    """
    src = _coerce(LotRunStatus, current, "Lot run", str(current))
    dst = _coerce(LotRunStatus, target, "Lot run", src.value)
    if dst == src:
        return dst
    if src == LotRunStatus.COMPLETED:
        raise InvalidTransitionError("Lot run", src.value, dst.value)
    if dst == LotRunStatus.COMPLETED and not can_complete_lot_run(step_statuses):
        raise InvalidTransitionError("Lot run", src.value, dst.value)
    return dst


def resolve_non_conformance(resolved: bool) -> bool:
    """`unresolved → resolved`; resolving twice is refused."""
    if resolved:
        raise InvalidTransitionError("Non-conformance", "resolved", "resolved")
    return True
