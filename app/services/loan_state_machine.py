from __future__ import annotations

from datetime import datetime, timezone

from app.models.loan import Loan
from app.schemas.loan import LoanState
from app.services.workflow_errors import InvalidTransition


VALID_TRANSITIONS: dict[LoanState, frozenset[LoanState]] = {
    LoanState.PROPOSED: frozenset({LoanState.APPROVED}),
    LoanState.APPROVED: frozenset({LoanState.INVESTED}),
    LoanState.INVESTED: frozenset({LoanState.DISBURSED}),
    LoanState.DISBURSED: frozenset(),
}


def _state_value(state: LoanState | str | None) -> str:
    if isinstance(state, LoanState):
        return state.value
    return str(state)


def can_transition(current: LoanState | str | None, target: LoanState | str) -> None:
    """Raise ``InvalidTransition`` unless ``current -> target`` is in the table."""
    try:
        current_state = LoanState(current)
    except ValueError:
        raise InvalidTransition(
            _state_value(current), _state_value(target), "unknown current state"
        ) from None

    try:
        target_state = LoanState(target)
    except ValueError:
        target_state = None

    if target_state is None or target_state not in VALID_TRANSITIONS[current_state]:
        raise InvalidTransition(
            current_state.value, _state_value(target), "transition not allowed"
        )


def transition(loan: Loan, target: LoanState | str) -> None:
    can_transition(loan.state, target)
    loan.state = LoanState(target).value
    loan.updated_at = datetime.now(timezone.utc)
