"""Unit tests for payment attempt state-machine guardrails."""

import pytest

from pixpay.common.state_machine import ALLOWED_TRANSITIONS, is_terminal, validate_transition


def test_valid_transition():
    """Sanity check: a legal transition should pass."""

    validate_transition("CREATING", "AWAITING_POLL")


def test_invalid_transition():
    """Skipping creation must raise to protect orchestration correctness."""

    with pytest.raises(ValueError):
        validate_transition("VALIDATING", "POLLING")


def test_terminal_states_have_no_exits():
    """Complete, timed-out and failed attempts never move again."""

    for state in ("COMPLETE", "TIMED_OUT", "FAILED"):
        assert is_terminal(state)
        with pytest.raises(ValueError):
            validate_transition(state, "VALIDATING")


def test_polling_reachable_only_through_awaiting_poll():
    sources = {state for state, targets in ALLOWED_TRANSITIONS.items() if "POLLING" in targets}
    assert sources == {"AWAITING_POLL"}
