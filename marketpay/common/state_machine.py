"""Order status transitions enforced on first content access."""

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "completed": {"shipped", "delivered", "cancelled"},
    "shipped": set(),
    "delivered": set(),
    "cancelled": set(),
}

FULFILLED_STATUSES = frozenset({"shipped", "delivered"})


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")
