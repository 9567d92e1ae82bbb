"""Tests for the leaderboard calculator."""

from decimal import Decimal

from marketsim.ledger.leaderboard import compute_leaderboard
from marketsim.ledger.models import Account, Position


def make_account(account_id, cash):
    return Account(id=account_id, username=f"user-{account_id}", room_code="PUBLIC", cash=Decimal(cash))


def test_ranks_by_equity_descending():
    accounts = [make_account("a", "5000"), make_account("b", "9000"), make_account("c", "7000")]
    positions = {
        "a": [Position(account_id="a", symbol="BTC", qty=Decimal("1"), avg_entry=Decimal("1000"))],
    }
    prices = {"BTC": Decimal("6000")}

    rows = compute_leaderboard(accounts, positions, prices)

    assert [r.account_id for r in rows] == ["a", "b", "c"]
    assert [r.rank for r in rows] == [1, 2, 3]
    assert rows[0].unrealized == Decimal("5000")
    assert rows[0].equity == Decimal("10000")
    assert all(rows[i].equity >= rows[i + 1].equity for i in range(len(rows) - 1))


def test_ties_keep_input_order():
    accounts = [make_account("x", "100"), make_account("y", "100"), make_account("z", "100")]
    rows = compute_leaderboard(accounts, {}, {})
    assert [r.account_id for r in rows] == ["x", "y", "z"]

    again = compute_leaderboard(accounts, {}, {})
    assert [r.account_id for r in again] == ["x", "y", "z"]


def test_unpriced_and_flat_positions_ignored():
    accounts = [make_account("a", "100")]
    positions = {
        "a": [
            Position(account_id="a", symbol="GONE", qty=Decimal("3"), avg_entry=Decimal("1")),
            Position(account_id="a", symbol="BTC", qty=Decimal("0")),
        ]
    }
    rows = compute_leaderboard(accounts, positions, {"BTC": Decimal("50")})
    assert rows[0].unrealized == Decimal("0")
    assert rows[0].equity == Decimal("100")


def test_losing_position_lowers_equity():
    accounts = [make_account("a", "1000")]
    positions = {"a": [Position(account_id="a", symbol="ETH", qty=Decimal("2"), avg_entry=Decimal("300"))]}
    rows = compute_leaderboard(accounts, positions, {"ETH": Decimal("250")})
    assert rows[0].unrealized == Decimal("-100")
    assert rows[0].equity == Decimal("900")


def test_empty_room():
    assert compute_leaderboard([], {}, {}) == []


def test_wire_form():
    row = compute_leaderboard([make_account("a", "10")], {}, {})[0]
    assert row.to_dict() == {
        "rank": 1,
        "userId": "a",
        "username": "user-a",
        "cash": 10.0,
        "unrealized": 0.0,
        "equity": 10.0,
    }
