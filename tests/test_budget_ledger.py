from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.errors import InsufficientBudget
from jianghu.ledger import BudgetLedger, LedgerLine


def test_fresh_ledger_has_full_allowance() -> None:
    ledger = BudgetLedger(30)

    state = ledger.state()

    assert state.consumed == 0
    assert state.remaining == 30
    assert state.to_dict()["remaining"] == 30


def test_spending_exactly_the_remainder_is_allowed() -> None:
    ledger = BudgetLedger(10)

    ledger.apply(LedgerLine.ATTRIBUTES, 10)

    assert ledger.remaining() == 0
    assert ledger.can_afford(0)
    assert not ledger.can_afford(1)


def test_overspend_reports_shortfall_and_changes_nothing() -> None:
    ledger = BudgetLedger(10)
    ledger.apply("traits", 7)

    with pytest.raises(InsufficientBudget) as excinfo:
        ledger.apply("skills", 5)

    assert excinfo.value.shortfall == 2
    assert "还需要 2 点" in str(excinfo.value)
    assert ledger.tally(LedgerLine.SKILLS) == 0
    assert ledger.remaining() == 3


def test_refunds_always_go_through() -> None:
    ledger = BudgetLedger(5, {"attributes": 5})

    state = ledger.apply(LedgerLine.TRAITS, -4)

    assert state.traits == -4
    assert state.remaining == 4


def test_apply_many_is_checked_on_the_net_change() -> None:
    ledger = BudgetLedger(10, {"attributes": 8})

    state = ledger.apply_many({LedgerLine.DRAWS: 5, LedgerLine.TRAITS: -4})

    assert state.draws == 5
    assert state.traits == -4
    assert state.remaining == 1

    with pytest.raises(InsufficientBudget):
        ledger.apply_many({LedgerLine.DRAWS: 3, LedgerLine.TRAITS: -1})
    assert ledger.state() == state


def test_set_total_refuses_to_drop_below_spending() -> None:
    ledger = BudgetLedger(40, {"attributes": 25})

    with pytest.raises(InsufficientBudget):
        ledger.set_total(20)
    assert ledger.total_points == 40

    assert ledger.set_total(25).remaining == 0


def test_concurrent_debits_never_overspend() -> None:
    ledger = BudgetLedger(50)
    barrier = threading.Barrier(20)
    accepted: list[int] = []
    refused: list[int] = []

    def _spend(index: int) -> None:
        barrier.wait()
        try:
            ledger.apply(LedgerLine.TRAITS, 5)
        except InsufficientBudget:
            refused.append(index)
        else:
            accepted.append(index)

    threads = [threading.Thread(target=_spend, args=(index,)) for index in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(accepted) == 10
    assert len(refused) == 10
    assert ledger.remaining() == 0
