from datetime import datetime, timezone
from decimal import Decimal

import pytest

from core.exceptions import DuplicateTransaction, InsufficientFunds, InvalidAmount, MissingIdentity
from core.ledger import Ledger
from models import EntryKind, EntryStatus, GameOutcome
from services.payout_service import (
    RakePolicy,
    WinnerTakesStakesPolicy,
    get_payout_policy,
)
from services.settlement_service import SettlementService


def _outcome(winner, participants, outcome_id="o-1"):
    return GameOutcome(
        id=outcome_id,
        winner_id=winner,
        winning_roll=6,
        per_player_final_roll={pid: (6 if pid == winner else 1) for pid in participants},
        rounds=(),
        participants=tuple(participants),
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


# ============ Payout ============

def test_rake_payout_four_players():
    payout = RakePolicy(Decimal("0.05")).calculate(Decimal("2.0"), ["a", "b", "c", "d"], "c")

    assert payout.pot == Decimal("8.0")
    assert payout.rake == Decimal("0.4")
    assert payout.deltas["c"] == Decimal("5.6")
    assert all(payout.deltas[pid] == Decimal("-2.0") for pid in ("a", "b", "d"))
    assert payout.total_delta == -payout.rake


def test_winner_takes_stakes_has_no_rake():
    payout = WinnerTakesStakesPolicy().calculate(Decimal("1.5"), ["a", "b", "c"], "a")

    assert payout.rake == 0
    assert payout.deltas == {"a": Decimal("3.0"), "b": Decimal("-1.5"), "c": Decimal("-1.5")}
    assert payout.total_delta == 0


def test_rake_is_rounded_down_to_nanotons():
    payout = RakePolicy(Decimal("0.05")).calculate(Decimal("0.333333333"), ["a", "b", "c"], "b")

    # 0.999999999 * 0.05 = 0.04999999995
    assert payout.rake == Decimal("0.049999999")
    assert payout.deltas["b"] == Decimal("0.616666667")
    assert payout.total_delta == -payout.rake


def test_payout_policy_lookup():
    assert isinstance(get_payout_policy("rake", Decimal("0.05")), RakePolicy)
    assert isinstance(get_payout_policy("winner_takes_stakes", Decimal("0.05")), WinnerTakesStakesPolicy)
    with pytest.raises(ValueError):
        get_payout_policy("double_or_nothing", Decimal("0"))


# ============ Ledger ============

def test_deposit_and_withdraw_fold_into_balance(ledger):
    ledger.record_deposit("alice", Decimal("5"), username="Alice", tx_ref="tx-1")
    state = ledger.record_withdraw("alice", Decimal("2"), to_address="EQ-alice")

    assert state.balance == Decimal("3")
    assert state.username == "Alice"
    # newest first
    assert [e.kind for e in state.history] == [EntryKind.WITHDRAW, EntryKind.DEPOSIT]
    assert state.history[0].status == EntryStatus.PENDING
    assert state.history[0].to_address == "EQ-alice"
    assert state.history[1].counterparty_tx_ref == "tx-1"


def test_unknown_user_has_empty_wallet(ledger):
    state = ledger.get_wallet("ghost")
    assert state.balance == 0
    assert state.history == ()


def test_withdraw_more_than_available_is_rejected(ledger):
    ledger.record_deposit("alice", Decimal("1"))
    with pytest.raises(InsufficientFunds):
        ledger.record_withdraw("alice", Decimal("1.5"))
    assert ledger.balance("alice") == Decimal("1")


def test_holds_reduce_available_balance(ledger):
    ledger.record_deposit("alice", Decimal("1.5"))
    ledger.hold("alice", "lobby-1", Decimal("1.0"))

    assert ledger.available("alice") == Decimal("0.5")
    with pytest.raises(InsufficientFunds):
        ledger.hold("alice", "lobby-2", Decimal("1.0"))
    with pytest.raises(InsufficientFunds):
        ledger.record_withdraw("alice", Decimal("1.0"))

    ledger.release("alice", "lobby-1")
    assert ledger.available("alice") == Decimal("1.5")


@pytest.mark.parametrize(
    "amount",
    [0, -1, "abc", "NaN", "Infinity", "0.0000000001", "1.234567890123456789012345679", "1000000001", "1e30"],
)
def test_invalid_amounts_are_rejected(ledger, amount):
    with pytest.raises(InvalidAmount):
        ledger.record_deposit("alice", amount)


def test_nanoton_amounts_are_accepted(ledger):
    state = ledger.record_deposit("alice", "0.000000001")
    assert state.balance == Decimal("0.000000001")


def test_unknown_users_leave_no_wallet_or_lock(ledger):
    for i in range(100):
        assert ledger.get_wallet(f"ghost-{i}").balance == 0
    with pytest.raises(InsufficientFunds):
        ledger.hold("ghost", "lobby-1", Decimal("1"))
    with pytest.raises(InsufficientFunds):
        ledger.record_withdraw("ghost", Decimal("1"))
    ledger.release("ghost", "lobby-1")

    assert len(ledger._user_locks) == 0
    assert ledger._wallets == {}


def test_blank_user_is_rejected(ledger):
    with pytest.raises(MissingIdentity):
        ledger.record_deposit("  ", Decimal("1"))


def test_duplicate_deposit_reference_is_rejected(ledger):
    ledger.record_deposit("alice", Decimal("1"), tx_ref="tx-9")
    with pytest.raises(DuplicateTransaction):
        ledger.record_deposit("alice", Decimal("1"), tx_ref="tx-9")
    assert ledger.balance("alice") == Decimal("1")


def test_history_is_capped(clock):
    ledger = Ledger(history_limit=3, clock=clock)
    for i in range(5):
        ledger.record_deposit("alice", Decimal(i + 1))

    state = ledger.get_wallet("alice")
    assert [e.amount for e in state.history] == [Decimal(5), Decimal(4), Decimal(3)]
    # cap only applies to the view, balance still folds everything
    assert state.balance == Decimal(15)


# ============ Settlement ============

def test_settlement_is_zero_sum_minus_rake(ledger):
    for pid in ("a", "b", "c", "d"):
        ledger.record_deposit(pid, Decimal("10"))
    service = SettlementService(ledger, RakePolicy(Decimal("0.05")))

    entries = service.settle("lobby-1", Decimal("2.0"), _outcome("b", ["a", "b", "c", "d"]))

    assert len(entries) == 4
    assert ledger.balance("b") == Decimal("15.6")
    assert all(ledger.balance(pid) == Decimal("8.0") for pid in ("a", "c", "d"))
    total = sum(ledger.balance(pid) for pid in ("a", "b", "c", "d"))
    assert total == Decimal("40") - Decimal("0.4")

    kinds = {e.user_id: e.kind for e in entries}
    assert kinds["b"] == EntryKind.BET_WIN
    assert kinds["a"] == EntryKind.BET_LOSS


def test_settlement_applies_only_once(ledger):
    ledger.record_deposit("a", Decimal("5"))
    ledger.record_deposit("b", Decimal("5"))
    service = SettlementService(ledger, RakePolicy(Decimal("0.05")))
    outcome = _outcome("a", ["a", "b"])

    first = service.settle("lobby-1", Decimal("1"), outcome)
    balances = (ledger.balance("a"), ledger.balance("b"))
    second = service.settle("lobby-1", Decimal("1"), outcome)

    assert first == second
    assert (ledger.balance("a"), ledger.balance("b")) == balances
    assert len(ledger.get_wallet("a").history) == 2
    assert ledger.is_settled(("lobby-1", outcome.id))


def test_settlement_releases_holds(ledger):
    ledger.record_deposit("a", Decimal("5"))
    ledger.record_deposit("b", Decimal("5"))
    ledger.hold("a", "lobby-1", Decimal("1"))
    ledger.hold("b", "lobby-1", Decimal("1"))

    SettlementService(ledger, WinnerTakesStakesPolicy()).settle(
        "lobby-1", Decimal("1"), _outcome("a", ["a", "b"])
    )

    assert ledger.available("a") == ledger.balance("a") == Decimal("6")
    assert ledger.available("b") == ledger.balance("b") == Decimal("4")
