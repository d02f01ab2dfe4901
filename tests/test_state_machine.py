"""Unit tests for order status guardrails."""

import pytest

from marketpay.common.state_machine import FULFILLED_STATUSES, validate_transition


def test_valid_transition():
    """First access moves a completed order to shipped."""

    validate_transition("completed", "shipped")
    validate_transition("completed", "cancelled")


@pytest.mark.parametrize("current,new", [("shipped", "completed"), ("cancelled", "shipped"), ("delivered", "shipped")])
def test_invalid_transition(current, new):
    """No transition leaves a terminal status."""

    with pytest.raises(ValueError):
        validate_transition(current, new)


def test_fulfilled_statuses_exclude_cancelled():
    assert "cancelled" not in FULFILLED_STATUSES
    assert {"shipped", "delivered"} == set(FULFILLED_STATUSES)
