import pytest

from conftest import ALICE, BOB, CAROL, FEE
from vrf_lottery.lottery.errors import AlreadyEntered, IncorrectEntranceFee, NoRefundableBalance
from vrf_lottery.lottery.ledger import RoundLedger


@pytest.fixture
def ledger():
    return RoundLedger(FEE)


def test_add_entry_keeps_order_and_pot(ledger):
    ledger.add_entry(BOB, FEE)
    ledger.add_entry(ALICE, FEE)

    assert ledger.participants == [BOB, ALICE]
    assert ledger.participant_count == 2
    assert ledger.pot == 2 * FEE
    assert ledger.balance_of(ALICE) == FEE
    assert ledger.total_balances() == ledger.pot
    assert ledger.has_entered(BOB)


def test_duplicate_checked_before_fee(ledger):
    ledger.add_entry(ALICE, FEE)
    with pytest.raises(AlreadyEntered):
        ledger.add_entry(ALICE, FEE + 1)


def test_incorrect_fee(ledger):
    with pytest.raises(IncorrectEntranceFee):
        ledger.add_entry(ALICE, FEE - 1)
    assert not ledger.has_entered(ALICE)
    assert ledger.pot == 0


def test_winner_index_is_modulo(ledger):
    for player in (ALICE, BOB, CAROL):
        ledger.add_entry(player, FEE)

    assert ledger.winner_index(0) == 0
    assert ledger.winner_index(5) == 2
    assert ledger.winner_index(2**256 - 1) == (2**256 - 1) % 3
    assert ledger.pick_winner(4) == BOB


def test_winner_index_requires_participants(ledger):
    with pytest.raises(ValueError):
        ledger.winner_index(1)


def test_release_removes_participant_and_flag(ledger):
    ledger.add_entry(ALICE, FEE)
    ledger.add_entry(BOB, FEE)

    assert ledger.release(ALICE) == FEE
    assert ledger.participants == [BOB]
    assert not ledger.has_entered(ALICE)
    assert ledger.balance_of(ALICE) == 0
    assert ledger.pot == FEE

    with pytest.raises(NoRefundableBalance):
        ledger.release(ALICE)


def test_snapshot_restore(ledger):
    ledger.add_entry(ALICE, FEE)
    state = ledger.snapshot()

    ledger.add_entry(BOB, FEE)
    ledger.release(ALICE)
    ledger.restore(state)

    assert ledger.participants == [ALICE]
    assert ledger.has_entered(ALICE)
    assert not ledger.has_entered(BOB)
    assert ledger.pot == FEE
    assert ledger.balance_of(ALICE) == FEE


def test_reset(ledger):
    ledger.add_entry(ALICE, FEE)
    ledger.reset()
    assert ledger.participants == []
    assert ledger.pot == 0
    assert not ledger.has_entered(ALICE)
    ledger.add_entry(ALICE, FEE)
