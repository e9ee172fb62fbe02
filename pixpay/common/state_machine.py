"""Payment attempt state machine transitions enforced by the orchestrator."""

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "IDLE": {"VALIDATING"},
    "VALIDATING": {"CREATING", "FAILED"},
    "CREATING": {"COMPLETE", "AWAITING_POLL", "FAILED"},
    "AWAITING_POLL": {"POLLING", "FAILED"},
    "POLLING": {"COMPLETE", "TIMED_OUT", "FAILED"},
    "COMPLETE": set(),
    "TIMED_OUT": set(),
    "FAILED": set(),
}

TERMINAL_STATES: frozenset[str] = frozenset(
    state for state, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def is_terminal(state: str) -> bool:
    return state in TERMINAL_STATES
