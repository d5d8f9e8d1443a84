"""Axis state machines for the order ledger.

Fulfillment: pending -> processing -> shipped -> delivered, with `cancelled`
reachable from any non-terminal state except delivered.

Payment: pending -> paid | failed, failed -> pending (retry), paid -> refunded.
A settled payment can only leave `paid` through `refunded`.
"""
from collections.abc import Iterable

from src.sf_common.enums import OrderStatus, PaymentStatus, StatusAxis
from src.sf_common.errors import InvalidTransitionError
from src.sf_order.domain.models import StatusHistoryEntry

_F = OrderStatus
_P = PaymentStatus

FULFILLMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    _F.PENDING.value: frozenset({_F.PROCESSING.value, _F.CANCELLED.value}),
    _F.PROCESSING.value: frozenset({_F.SHIPPED.value, _F.CANCELLED.value}),
    _F.SHIPPED.value: frozenset({_F.DELIVERED.value, _F.CANCELLED.value}),
    _F.DELIVERED.value: frozenset(),
    _F.CANCELLED.value: frozenset(),
}

PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    _P.PENDING.value: frozenset({_P.PAID.value, _P.FAILED.value}),
    _P.FAILED.value: frozenset({_P.PENDING.value}),
    _P.PAID.value: frozenset({_P.REFUNDED.value}),
    _P.REFUNDED.value: frozenset(),
}

_TABLES = {
    StatusAxis.FULFILLMENT.value: FULFILLMENT_TRANSITIONS,
    StatusAxis.PAYMENT.value: PAYMENT_TRANSITIONS,
}

INITIAL_STATE = {
    StatusAxis.FULFILLMENT.value: _F.PENDING.value,
    StatusAxis.PAYMENT.value: _P.PENDING.value,
}


def transitions_for(axis: str) -> dict[str, frozenset[str]]:
    try:
        return _TABLES[axis]
    except KeyError:
        raise ValueError(f"Unknown status axis: {axis}") from None


def is_terminal(axis: str, value: str) -> bool:
    return not transitions_for(axis).get(value)


def can_transition(axis: str, current: str, target: str) -> bool:
    return target in transitions_for(axis).get(current, frozenset())


def validate_transition(axis: str, current: str, target: str) -> None:
    """Raise InvalidTransitionError unless `current -> target` is an edge on `axis`.

    Unknown target values are rejected the same way as unreachable ones.
    """
    if not can_transition(axis, current, target):
        raise InvalidTransitionError(axis, current, target)


def fold_history(axis: str, entries: Iterable[StatusHistoryEntry]) -> str | None:
    """Replay an axis log in order and return the resulting value.

    Each entry must start from the value the previous one produced (the
    creation entry starts from None), otherwise the log is corrupt and
    ValueError is raised. Returns None for an empty log.
    """
    state: str | None = None
    for entry in entries:
        if entry.axis != axis:
            continue
        if entry.old_status != state:
            raise ValueError(
                f"History gap on {axis}: expected from {state!r}, "
                f"entry {entry.id} starts from {entry.old_status!r}"
            )
        if state is None:
            if entry.new_status != INITIAL_STATE[axis]:
                raise ValueError(f"Creation entry {entry.id} must open in {INITIAL_STATE[axis]}")
        else:
            validate_transition(axis, state, entry.new_status)
        state = entry.new_status
    return state
