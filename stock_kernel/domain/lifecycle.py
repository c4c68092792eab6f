"""
Stocktaking lifecycle (``stock_kernel.domain.lifecycle``).

Responsibility
--------------
Declares, in one table, which actions a stocktaking session accepts in
each status and the status each action leads to.  Every service that
mutates a session asks this table first.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Every StocktakingStatus member has an entry, terminal ones with no
  outgoing transitions.
* COMPLETED and CANCELLED are reachable only from IN_PROGRESS.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from stock_kernel.exceptions import InvalidStateError
from stock_kernel.models.stocktaking import StocktakingStatus


@dataclass(frozen=True)
class Transition:
    """A valid (status, action) pair and the status it leads to."""
    from_state: StocktakingStatus
    to_state: StocktakingStatus
    action: str


RECORD_COUNT = "record_count"
COMPLETE = "complete"
CANCEL = "cancel"

TRANSITIONS: dict[StocktakingStatus, tuple[Transition, ...]] = {
    StocktakingStatus.IN_PROGRESS: (
        Transition(StocktakingStatus.IN_PROGRESS, StocktakingStatus.IN_PROGRESS, RECORD_COUNT),
        Transition(StocktakingStatus.IN_PROGRESS, StocktakingStatus.COMPLETED, COMPLETE),
        Transition(StocktakingStatus.IN_PROGRESS, StocktakingStatus.CANCELLED, CANCEL),
    ),
    StocktakingStatus.COMPLETED: (),
    StocktakingStatus.CANCELLED: (),
}

TERMINAL_STATES: frozenset[StocktakingStatus] = frozenset(
    status for status, transitions in TRANSITIONS.items() if not transitions
)


def allowed_actions(status: StocktakingStatus | str) -> frozenset[str]:
    """Actions accepted by a session in ``status``."""
    return frozenset(t.action for t in TRANSITIONS[StocktakingStatus(status)])


def is_terminal(status: StocktakingStatus | str) -> bool:
    return StocktakingStatus(status) in TERMINAL_STATES


def require_transition(
    session_id: UUID,
    status: StocktakingStatus | str,
    action: str,
) -> StocktakingStatus:
    """
    Resolve ``action`` from ``status`` or raise.

    Returns:
        The status the session moves to.

    Raises:
        InvalidStateError: The table has no such transition.
    """
    current = StocktakingStatus(status)
    for transition in TRANSITIONS[current]:
        if transition.action == action:
            return transition.to_state
    raise InvalidStateError(
        session_id=session_id,
        status=current.value,
        operation=action,
    )
