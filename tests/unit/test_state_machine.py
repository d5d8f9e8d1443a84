"""Tests for the fulfillment and payment state machines."""

import pytest

from src.sf_common.errors import InvalidTransitionError
from src.sf_order.domain.models import StatusHistoryEntry
from src.sf_order.domain.state_machine import (
    can_transition,
    fold_history,
    is_terminal,
    transitions_for,
    validate_transition,
)

F = "fulfillment"
P = "payment"


class TestFulfillmentAxis:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("pending", "processing"),
            ("processing", "shipped"),
            ("shipped", "delivered"),
            ("pending", "cancelled"),
            ("processing", "cancelled"),
            ("shipped", "cancelled"),
        ],
    )
    def test_allowed(self, current: str, target: str) -> None:
        validate_transition(F, current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("pending", "shipped"),
            ("pending", "delivered"),
            ("delivered", "cancelled"),
            ("cancelled", "pending"),
            ("shipped", "processing"),
            ("pending", "pending"),
            ("pending", "lost"),
        ],
    )
    def test_rejected(self, current: str, target: str) -> None:
        with pytest.raises(InvalidTransitionError) as exc_info:
            validate_transition(F, current, target)
        assert exc_info.value.current == current
        assert exc_info.value.target == target

    def test_terminal_states(self) -> None:
        assert is_terminal(F, "delivered")
        assert is_terminal(F, "cancelled")
        assert not is_terminal(F, "shipped")


class TestPaymentAxis:
    @pytest.mark.parametrize(
        ("current", "target"),
        [("pending", "paid"), ("pending", "failed"), ("failed", "pending"), ("paid", "refunded")],
    )
    def test_allowed(self, current: str, target: str) -> None:
        assert can_transition(P, current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            ("paid", "failed"),
            ("paid", "pending"),
            ("failed", "paid"),
            ("refunded", "paid"),
            ("pending", "refunded"),
        ],
    )
    def test_rejected(self, current: str, target: str) -> None:
        assert not can_transition(P, current, target)

    def test_refunded_is_terminal(self) -> None:
        assert is_terminal(P, "refunded")


class TestUnknownAxis:
    def test_raises(self) -> None:
        with pytest.raises(ValueError):
            transitions_for("shipping")


def _entry(axis: str, old: str | None, new: str, entry_id: int) -> StatusHistoryEntry:
    return StatusHistoryEntry(order_id="o-1", axis=axis, old_status=old, new_status=new, id=entry_id)


class TestFoldHistory:
    def test_empty_log(self) -> None:
        assert fold_history(P, []) is None

    def test_replays_to_current_value(self) -> None:
        log = [
            _entry(P, None, "pending", 1),
            _entry(P, "pending", "failed", 2),
            _entry(P, "failed", "pending", 3),
            _entry(P, "pending", "paid", 4),
            _entry(P, "paid", "refunded", 5),
        ]
        assert fold_history(P, log) == "refunded"

    def test_ignores_other_axis(self) -> None:
        log = [
            _entry(F, None, "pending", 1),
            _entry(P, None, "pending", 2),
            _entry(F, "pending", "processing", 3),
        ]
        assert fold_history(F, log) == "processing"
        assert fold_history(P, log) == "pending"

    def test_gap_is_corruption(self) -> None:
        log = [_entry(F, None, "pending", 1), _entry(F, "processing", "shipped", 2)]
        with pytest.raises(ValueError, match="History gap"):
            fold_history(F, log)

    def test_creation_must_open_in_initial_state(self) -> None:
        with pytest.raises(ValueError):
            fold_history(F, [_entry(F, None, "shipped", 1)])

    def test_illegal_edge_in_log(self) -> None:
        log = [_entry(P, None, "pending", 1), _entry(P, "pending", "refunded", 2)]
        with pytest.raises(InvalidTransitionError):
            fold_history(P, log)
