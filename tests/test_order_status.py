"""Unit tests for execution.status."""

import itertools

import pytest

from algo_engine.core.types import OrderStatus
from algo_engine.execution.status import ORDER_STATUS_MAP, can_transition, map_order_status

RANK = {
    OrderStatus.PENDING: 0,
    OrderStatus.SUBMITTED: 1,
    OrderStatus.PARTIALLY_FILLED: 2,
    OrderStatus.FILLED: 3,
    OrderStatus.CANCELLED: 3,
    OrderStatus.REJECTED: 3,
}


@pytest.mark.parametrize("raw,expected", [
    ("new", OrderStatus.SUBMITTED),
    ("accepted", OrderStatus.SUBMITTED),
    ("pending_new", OrderStatus.PENDING),
    ("partially_filled", OrderStatus.PARTIALLY_FILLED),
    ("filled", OrderStatus.FILLED),
    ("FILLED", OrderStatus.FILLED),
    ("canceled", OrderStatus.CANCELLED),
    ("expired", OrderStatus.CANCELLED),
    ("rejected", OrderStatus.REJECTED),
])
def test_map_known_statuses(raw, expected):
    assert map_order_status(raw) is expected


@pytest.mark.parametrize("raw", ["", None, "something_new", "  "])
def test_map_unknown_is_pending(raw):
    assert map_order_status(raw) is OrderStatus.PENDING


def test_map_is_total_over_table():
    for raw in ORDER_STATUS_MAP:
        assert isinstance(map_order_status(raw), OrderStatus)


def test_terminal_states_have_no_exits():
    for terminal in (OrderStatus.FILLED, OrderStatus.CANCELLED, OrderStatus.REJECTED):
        assert terminal.is_terminal
        for target in OrderStatus:
            assert can_transition(terminal, target) is False


def test_transitions_only_move_forward():
    for current, new in itertools.product(OrderStatus, OrderStatus):
        if can_transition(current, new):
            assert RANK[new] >= RANK[current]
            if new is current:
                assert current is OrderStatus.PARTIALLY_FILLED


def test_pending_can_jump_to_any_later_state():
    for target in (OrderStatus.SUBMITTED, OrderStatus.PARTIALLY_FILLED, OrderStatus.FILLED,
                   OrderStatus.CANCELLED, OrderStatus.REJECTED):
        assert can_transition(OrderStatus.PENDING, target)
    assert not can_transition(OrderStatus.SUBMITTED, OrderStatus.PENDING)
    assert not can_transition(OrderStatus.PARTIALLY_FILLED, OrderStatus.SUBMITTED)
