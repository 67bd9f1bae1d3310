from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.config import EngineConfig
from jianghu.content import default_content
from jianghu.cultivation import Cultivator, MasteryAutomaton, UpgradeResult, learn_skill
from jianghu.errors import InsufficientCultivation, TerminalMastery
from jianghu.models.catalog import SkillRank
from jianghu.models.progression import (
    MasteryLevel,
    MasteryTable,
    SkillMasteryState,
    merge_unlocked,
    unlocked_features,
)


def _make_automaton(default_insight: int | None = None) -> MasteryAutomaton:
    content = default_content()
    return MasteryAutomaton(content.mastery_table, content.catalog, default_insight=default_insight)


def _make_cultivator(skill: str, mastery: MasteryLevel = MasteryLevel.NOVICE, **kwargs) -> Cultivator:
    cultivator = Cultivator(realm="三流初期", **kwargs)
    learn_skill(cultivator, default_content().catalog, skill, mastery)
    return cultivator


@pytest.mark.parametrize(
    ("rank", "mastery", "insight", "expected"),
    [
        ("粗浅", MasteryLevel.NOVICE, 0, 100),
        ("传家", MasteryLevel.ADEPT, 4, 600),
        ("上乘", MasteryLevel.NOVICE, 14, 560),
        ("上乘", MasteryLevel.NOVICE, 30, 320),
        ("上乘", MasteryLevel.NOVICE, 0, 1120),
        ("传说", MasteryLevel.NOVICE, 0, 16000),
        ("传说", MasteryLevel.EXPERT, 20, 80000),
    ],
)
def test_upgrade_cost_follows_rank_level_and_insight(
    rank: str, mastery: MasteryLevel, insight: int, expected: int
) -> None:
    table = default_content().mastery_table

    assert table.upgrade_cost(rank, mastery, insight) == expected


def test_upgrade_cost_is_none_at_the_top_level() -> None:
    table = default_content().mastery_table

    assert table.upgrade_cost("粗浅", MasteryLevel.TRANSCENDENT, 10) is None


def test_insight_factor_is_capped_both_ways() -> None:
    table = default_content().mastery_table

    assert table.insight_factor("粗浅", None) == 1.0
    assert table.insight_factor("粗浅", 20) == pytest.approx(0.4)
    assert table.insight_factor("传说", 0) == pytest.approx(1.6)


def test_learning_unlocks_features_gated_at_or_below() -> None:
    cultivator = _make_cultivator("五虎断门刀", MasteryLevel.PROFICIENT)

    state = cultivator.mastery("五虎断门刀")

    assert state.unlocked_traits == ("刀势沉猛", "断门一刀，破敌兵刃")
    with pytest.raises(ValueError):
        learn_skill(cultivator, default_content().catalog, "五虎断门刀")


def test_upgrade_spends_cultivation_and_unlocks_features() -> None:
    cultivator = _make_cultivator("太祖长拳", cultivation=500, insight=0)
    automaton = _make_automaton()

    first = automaton.upgrade(cultivator, "太祖长拳")
    second = automaton.upgrade(cultivator, "太祖长拳")

    assert (first.cost, first.current, first.unlocked) == (100, MasteryLevel.ADEPT, ())
    assert (second.cost, second.current) == (200, MasteryLevel.PROFICIENT)
    assert second.unlocked == ("连环三击，势如破竹",)
    assert cultivator.cultivation == 200
    assert cultivator.mastery("太祖长拳").unlocked_traits == (
        "拳出如风，出手更快",
        "连环三击，势如破竹",
    )


def test_upgrade_short_of_cultivation_changes_nothing() -> None:
    cultivator = _make_cultivator("越女剑法", cultivation=559, insight=14)

    with pytest.raises(InsufficientCultivation) as excinfo:
        _make_automaton().upgrade(cultivator, "越女剑法")

    assert excinfo.value.shortfall == 1
    assert cultivator.mastery("越女剑法").mastery is MasteryLevel.NOVICE
    assert cultivator.cultivation == 559


def test_top_level_cannot_be_upgraded() -> None:
    cultivator = _make_cultivator("北冥神功", MasteryLevel.TRANSCENDENT, cultivation=10**6)

    with pytest.raises(TerminalMastery):
        _make_automaton().upgrade(cultivator, "北冥神功")

    assert cultivator.cultivation == 10**6
    assert cultivator.mastery("北冥神功").is_terminal


def test_default_insight_applies_when_the_cultivator_has_none() -> None:
    cultivator = _make_cultivator("越女剑法")

    assert _make_automaton().upgrade_cost(cultivator, "越女剑法") == 800
    assert _make_automaton(default_insight=14).upgrade_cost(cultivator, "越女剑法") == 560


def test_unknown_skill_is_a_key_error() -> None:
    cultivator = _make_cultivator("越女剑法")

    with pytest.raises(KeyError):
        _make_automaton().upgrade(cultivator, "独孤九剑")


def test_unlocks_are_monotonic() -> None:
    traits = (("初窥门径", "甲"), ("融会贯通", "乙"))

    assert unlocked_features(traits, MasteryLevel.NOVICE) == ("甲",)
    assert merge_unlocked(("丙", "甲"), ("甲", "乙")) == ("丙", "甲", "乙")


def test_mastery_state_round_trip() -> None:
    state = SkillMasteryState("混元功", "融会贯通", ["内力浑厚"])

    assert SkillMasteryState.from_dict(state.to_dict()) == state


def test_automaton_from_config_uses_the_configured_insight() -> None:
    cultivator = _make_cultivator("越女剑法")

    automaton = MasteryAutomaton.from_config(default_content(), EngineConfig(default_insight=14))

    assert automaton.upgrade_cost(cultivator, "越女剑法") == 560


def test_skill_bonus_uses_the_table_and_falls_back_for_missing_rows() -> None:
    table = default_content().mastery_table
    sparse = MasteryTable(
        rank_base_cost={},
        upgrade_multiplier={},
        insight_baseline={},
        rank_base_value={SkillRank.SUPERIOR: 4.0},
        mastery_coefficient={MasteryLevel.ADEPT: 0.8},
    )

    assert table.skill_bonus("上乘", MasteryLevel.PROFICIENT) == pytest.approx(4.0)
    assert sparse.skill_bonus("上乘", MasteryLevel.ADEPT) == pytest.approx(3.2)
    assert sparse.skill_bonus("传说", MasteryLevel.ADEPT) == pytest.approx(0.8)
    assert sparse.skill_bonus("上乘", MasteryLevel.EXPERT) == pytest.approx(2.4)
    assert MasteryTable({}, {}, {}).skill_bonus("粗浅", MasteryLevel.NOVICE) == pytest.approx(0.6)


def test_concurrent_upgrades_share_one_cultivation_pool() -> None:
    cultivator = _make_cultivator("太祖长拳", cultivation=150, insight=0)
    automaton = _make_automaton()
    barrier = threading.Barrier(8)
    successes: list[UpgradeResult] = []
    failures: list[InsufficientCultivation] = []

    def attempt() -> None:
        barrier.wait()
        try:
            successes.append(automaton.upgrade(cultivator, "太祖长拳"))
        except InsufficientCultivation as exc:
            failures.append(exc)

    threads = [threading.Thread(target=attempt) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(successes) == 1
    assert len(failures) == 7
    assert cultivator.cultivation == 50
    assert cultivator.mastery("太祖长拳").mastery is MasteryLevel.ADEPT
