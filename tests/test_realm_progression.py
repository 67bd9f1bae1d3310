from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.content import default_content
from jianghu.cultivation import Cultivator, ProgressionAutomaton, TERMINAL_REALM_TOOLTIP
from jianghu.errors import InsufficientCultivation, TerminalState, UnrecognizedRealm
from jianghu.models.progression import (
    MajorRealm,
    MinorRealm,
    RealmLadder,
    RealmStage,
    iter_realm_stages,
    parse_realm,
)


def _automaton() -> ProgressionAutomaton:
    return ProgressionAutomaton(default_content().realm_ladder)


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("三流中期", RealmStage(MajorRealm.THIRD_RATE, MinorRealm.MIDDLE)),
        ("三流-小成", RealmStage(MajorRealm.THIRD_RATE, MinorRealm.MIDDLE)),
        ("二流·初入", RealmStage(MajorRealm.SECOND_RATE, MinorRealm.EARLY)),
        ("一流 大成", RealmStage(MajorRealm.FIRST_RATE, MinorRealm.LATE)),
        ("宗师", RealmStage(MajorRealm.GRANDMASTER, MinorRealm.EARLY)),
        ("不入流圆满", RealmStage(MajorRealm.UNRANKED, MinorRealm.PERFECT)),
        ("陆地神仙圆满", RealmStage(MajorRealm.IMMORTAL, MinorRealm.PERFECT)),
    ],
)
def test_parse_realm_accepts_known_formats(label: str, expected: RealmStage) -> None:
    assert parse_realm(label) == expected


@pytest.mark.parametrize("label", ["", "天下第一", "三流巅峰", "流三"])
def test_parse_realm_rejects_unknown_labels(label: str) -> None:
    with pytest.raises(UnrecognizedRealm):
        parse_realm(label)


def test_stages_form_a_single_chain() -> None:
    stages = list(iter_realm_stages())

    assert len(stages) == 28
    assert [stage.level for stage in stages] == list(range(28))
    assert stages[-1].is_terminal
    assert stages[-1].next() is None
    assert all(stage.next() == following for stage, following in zip(stages, stages[1:]))
    assert [stage.minor_progress for stage in stages[:4]] == [25, 50, 75, 100]


def test_ladder_rejects_non_increasing_costs() -> None:
    with pytest.raises(ValueError):
        RealmLadder(tuple([0] * 28))
    with pytest.raises(ValueError):
        RealmLadder(tuple(range(27)))


def test_advance_spends_the_exact_entry_cost() -> None:
    cultivator = Cultivator(realm="三流中期", cultivation=120)

    result = _automaton().advance(cultivator)

    assert result.current.label == "三流后期"
    assert result.cost == 120
    assert cultivator.cultivation == 0


def test_advance_keeps_the_remainder() -> None:
    cultivator = Cultivator(realm="三流中期", cultivation=125)

    _automaton().advance(cultivator)

    assert cultivator.cultivation == 5


def test_shortfall_of_one_changes_nothing() -> None:
    cultivator = Cultivator(realm="三流中期", cultivation=119)

    with pytest.raises(InsufficientCultivation) as excinfo:
        _automaton().advance(cultivator)

    assert excinfo.value.shortfall == 1
    assert "还需 1 点修为" in str(excinfo.value)
    assert cultivator.realm.label == "三流中期"
    assert cultivator.cultivation == 119


def test_perfect_stage_wraps_to_the_next_major_realm() -> None:
    cultivator = Cultivator(realm="三流圆满", cultivation=300)

    result = _automaton().advance(cultivator)

    assert result.current == RealmStage(MajorRealm.SECOND_RATE, MinorRealm.EARLY)
    assert result.cost == 250
    assert cultivator.cultivation == 50


def test_terminal_stage_refuses_to_advance() -> None:
    cultivator = Cultivator(realm="陆地神仙圆满", cultivation=10**9)
    automaton = _automaton()

    with pytest.raises(TerminalState):
        automaton.advance(cultivator)

    assert cultivator.cultivation == 10**9
    assert automaton.describe(cultivator) == TERMINAL_REALM_TOOLTIP


def test_preview_never_raises() -> None:
    automaton = _automaton()

    ready = automaton.preview("不入流", 10)
    short = automaton.preview("一流圆满", 4999)
    unknown = automaton.preview("天下第一", 10)

    assert ready.can_advance and ready.cost == 10
    assert not short.can_advance
    assert short.shortfall == 1
    assert short.next_stage.label == "宗师初期"
    assert not unknown.can_advance
    assert unknown.next_stage is None


def test_describe_reports_cost_and_shortfall() -> None:
    automaton = _automaton()

    assert automaton.describe(Cultivator("三流中期", 200)) == "可突破至三流后期，消耗 120 点修为"
    assert (
        automaton.describe(Cultivator("三流中期", 20))
        == "突破至三流后期需要 120 点修为，修为不足，还需 100 点修为"
    )


def test_breakthrough_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    cultivator = Cultivator(realm="不入流初期", cultivation=10)

    with caplog.at_level(logging.INFO, logger="jianghu.cultivation"):
        _automaton().advance(cultivator)

    assert "不入流初期 -> 不入流中期" in caplog.text


def test_concurrent_breakthroughs_spend_once() -> None:
    cultivator = Cultivator(realm="三流中期", cultivation=120)
    automaton = _automaton()
    barrier = threading.Barrier(8)
    successes: list[int] = []
    failures: list[Exception] = []

    def _attempt(index: int) -> None:
        barrier.wait()
        try:
            automaton.advance(cultivator)
        except InsufficientCultivation as exc:
            failures.append(exc)
        else:
            successes.append(index)

    threads = [threading.Thread(target=_attempt, args=(index,)) for index in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(successes) == 1
    assert len(failures) == 7
    assert cultivator.realm.label == "三流后期"
    assert cultivator.cultivation == 0


def test_cultivator_round_trips_through_a_mapping() -> None:
    cultivator = Cultivator(realm="二流后期", cultivation=42, insight=12)
    cultivator.award(8)

    restored = Cultivator.from_dict(cultivator.to_dict())

    assert restored.realm == cultivator.realm
    assert restored.cultivation == 50
    assert restored.insight == 12
    with pytest.raises(ValueError):
        cultivator.award(-1)
