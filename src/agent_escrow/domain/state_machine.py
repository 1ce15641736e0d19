"""Escrow Job State Machine Guard.

Uses python-statemachine to enforce legal status edges at the domain level.
No matter what a front door or a stale read suggests, an illegal edge
(e.g., Completed -> Disputed) raises TransitionNotAllowed here before any
transaction is built.

The machine is instantiated per-check from the job's projected status; it
never holds state between requests.

Transition table:
    Created        -> WorkSubmitted   (submit_work)
    Created        -> Cancelled       (cancel_job)
    Created        -> Disputed        (dispute_job)
    WorkSubmitted  -> Completed       (approve_work)
    WorkSubmitted  -> Disputed        (dispute_job)
    Disputed       -> Completed       (resolve_for_worker)
    Disputed       -> Cancelled       (resolve_for_employer)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

EVENT_NAMES = (
    "submit_work",
    "approve_work",
    "cancel_job",
    "dispute_job",
    "resolve_for_worker",
    "resolve_for_employer",
)


class JobStateMachine(StateMachine):
    """State machine that guards escrow job lifecycle transitions.

    Usage:
        sm = JobStateMachine(current_status="Created")
        sm.submit_work()   # transitions to WorkSubmitted
        sm.status          # 'WorkSubmitted'
    """

    # --- States ---
    CREATED = State("Created", value="Created", initial=True)
    WORK_SUBMITTED = State("WorkSubmitted", value="WorkSubmitted")
    COMPLETED = State("Completed", value="Completed", final=True)
    CANCELLED = State("Cancelled", value="Cancelled", final=True)
    DISPUTED = State("Disputed", value="Disputed")

    # --- Events / Transitions ---

    # Happy path
    submit_work = CREATED.to(WORK_SUBMITTED)
    approve_work = WORK_SUBMITTED.to(COMPLETED)

    # Deadline expiry refund
    cancel_job = CREATED.to(CANCELLED)

    # Disputes
    dispute_job = CREATED.to(DISPUTED) | WORK_SUBMITTED.to(DISPUTED)
    resolve_for_worker = DISPUTED.to(COMPLETED)
    resolve_for_employer = DISPUTED.to(CANCELLED)

    def __init__(self, current_status: str = "Created") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current JobStatus value (e.g., "Created").
                            "Unknown" and unrecognized values are rejected.
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=current_status)

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches JobStatus)."""
        return str(self.current_state.value)

    def get_allowed_events(self) -> list[str]:
        """Return the event names that can fire from the current status."""
        return [name for name in EVENT_NAMES if can_fire(self.status, name)]


def can_fire(current_status: str, event_name: str) -> bool:
    """Return True if the event is legal from the given status."""
    try:
        validate_transition(current_status, event_name)
    except (TransitionNotAllowed, ValueError):
        return False
    return True


def validate_transition(current_status: str, event_name: str) -> str:
    """Validate a state transition and return the new status.

    Creates a temporary state machine, fires the named event, and returns
    the resulting status string.

    Args:
        current_status: Current JobStatus value.
        event_name: The event to fire (e.g., "submit_work").

    Returns:
        The new status string after the transition.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or event name is invalid.
    """
    if event_name not in EVENT_NAMES:
        raise ValueError(
            f"Unknown event '{event_name}'. Known events: {list(EVENT_NAMES)}"
        )
    sm = JobStateMachine(current_status=current_status)
    getattr(sm, event_name)()
    return sm.status
