#domain_verifier\core\state_machine.py

from domain_verifier.core.errors import VerificationConcurrencyError
from domain_verifier.core.models import AttemptStatus


ALLOWED_TRANSITIONS = {
    AttemptStatus.PENDING: {
        AttemptStatus.PENDING,
        AttemptStatus.VERIFIED,
        AttemptStatus.FAILED,
        AttemptStatus.TIMEOUT,
    },
}


class InvalidStateTransition(VerificationConcurrencyError):
    pass


def assert_transition(current: AttemptStatus, new_state: AttemptStatus) -> None:
    """Terminal states have no outgoing edges."""
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if new_state not in allowed:
        raise InvalidStateTransition(
            f"Cannot transition from {current.value} to {new_state.value}"
        )
