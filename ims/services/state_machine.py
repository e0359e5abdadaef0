# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Incident status state machine, kept as data:
    NEW         ─► TRIAGED | IN_PROGRESS
    TRIAGED     ─► IN_PROGRESS | ON_HOLD | RESOLVED
    IN_PROGRESS ─► ON_HOLD | RESOLVED
    ON_HOLD     ─► IN_PROGRESS | RESOLVED
    RESOLVED    ─► CLOSED | REOPENED
    CLOSED      ─► REOPENED
    REOPENED    ─► IN_PROGRESS | ON_HOLD | RESOLVED

No state is terminal: RESOLVED and CLOSED can both be reopened.
"""
from typing import Dict, FrozenSet, Optional

from ims.core.errors import InvalidTransitionError
from ims.models.domain import IncidentStatus as S

INITIAL_STATUS = S.NEW

ALLOWED_TRANSITIONS: Dict[S, FrozenSet[S]] = {
    S.NEW:         frozenset({S.TRIAGED, S.IN_PROGRESS}),
    S.TRIAGED:     frozenset({S.IN_PROGRESS, S.ON_HOLD, S.RESOLVED}),
    S.IN_PROGRESS: frozenset({S.ON_HOLD, S.RESOLVED}),
    S.ON_HOLD:     frozenset({S.IN_PROGRESS, S.RESOLVED}),
    S.RESOLVED:    frozenset({S.CLOSED, S.REOPENED}),
    S.CLOSED:      frozenset({S.REOPENED}),
    S.REOPENED:    frozenset({S.IN_PROGRESS, S.ON_HOLD, S.RESOLVED}),
}

# Milestone timestamp stamped the first time each status is entered.
MILESTONE_FIELDS: Dict[S, str] = {
    S.TRIAGED: "triaged_at",
    S.IN_PROGRESS: "in_progress_at",
    S.RESOLVED: "resolved_at",
    S.CLOSED: "closed_at",
}


def allowed_next(current: S) -> FrozenSet[S]:
    return ALLOWED_TRANSITIONS.get(S(current), frozenset())


def can_transition(current: S, target: S) -> bool:
    return S(target) in allowed_next(current)


def validate_transition(current: S, target: S) -> None:
    """Raise InvalidTransitionError unless ``target`` is reachable from ``current``.
    Same-status moves are never listed, so they are rejected too."""
    if not can_transition(current, target):
        allowed = sorted(s.value for s in allowed_next(current))
        raise InvalidTransitionError(
            current, target,
            f"Cannot transition from '{S(current).value}' to '{S(target).value}'. "
            f"Allowed: {allowed}",
        )


def milestone_field(status: S) -> Optional[str]:
    return MILESTONE_FIELDS.get(S(status))
