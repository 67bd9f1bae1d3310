from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.content import default_content
from jianghu.models._validation import ModelValidationError
from jianghu.models.attributes import AttributeSet
from jianghu.models.catalog import (
    AttributeThreshold,
    Catalog,
    CatalogCategory,
    CatalogEntry,
    SkillRank,
    ThresholdEngine,
)


def _engine() -> ThresholdEngine:
    return ThresholdEngine(default_content().catalog)


def test_baseline_attributes_trigger_nothing() -> None:
    assert _engine().evaluate(AttributeSet()) == frozenset()


@pytest.mark.parametrize(
    ("brawn", "expected"),
    [
        (0, ("肌肉萎缩",)),
        (1, ("肌肉萎缩",)),
        (2, ("手无缚鸡",)),
        (5, ("手无缚鸡",)),
        (6, ()),
        (12, ()),
        (13, ("天生神力",)),
        (16, ("天生神力",)),
        (17, ("霸王扛鼎",)),
        (20, ("霸王扛鼎",)),
    ],
)
def test_brawn_bands_are_inclusive(brawn: int, expected: tuple[str, ...]) -> None:
    assert _engine().evaluate_keys(AttributeSet(brawn=brawn)) == expected


def test_luck_bands_cover_negative_values() -> None:
    engine = _engine()

    assert engine.evaluate_keys(AttributeSet(luck=-6)) == ("天煞孤星",)
    assert engine.evaluate_keys(AttributeSet(luck=-4)) == ("霉运缠身",)
    assert engine.evaluate_keys(AttributeSet(luck=11)) == ("天命所归",)


def test_savvy_trigger_keeps_its_own_key() -> None:
    catalog = default_content().catalog

    keys = _engine().evaluate_keys(AttributeSet(savvy=14))

    assert keys == ("过目不忘·天成",)
    assert catalog.get("traits", "过目不忘·天成").name == "过目不忘"
    assert catalog.get("traits", "过目不忘").cost == 2


def test_evaluation_is_order_independent() -> None:
    engine = _engine()
    target = AttributeSet(brawn=17, root=3, luck=8)

    direct = engine.evaluate(target)
    intermediate = engine.evaluate(AttributeSet(brawn=13, root=3))
    after_detour = engine.evaluate(target)

    assert {entry.key for entry in intermediate} == {"天生神力", "经脉淤塞"}
    assert direct == after_detour
    assert {entry.key for entry in direct} == {"霸王扛鼎", "经脉淤塞", "吉星高照"}


def test_triggered_entries_are_free_and_not_selectable() -> None:
    catalog = default_content().catalog

    selectable = catalog.list_selectable(CatalogCategory.TRAITS)
    triggered = [entry for entry in catalog.entries("traits") if entry.is_triggered]

    assert len(triggered) == 28
    assert all(entry.cost == 0 for entry in triggered)
    assert not any(entry.is_triggered for entry in selectable)
    assert len(selectable) == 71


def test_trait_payload_ignores_cost_on_triggered_entries() -> None:
    entry = CatalogEntry.trait_from_dict(
        {"name": "铜皮", "cost": 4, "threshold": {"attribute": "root", "min": 15}}
    )

    assert entry.cost == 0
    assert entry.threshold == AttributeThreshold(entry.threshold.attribute, 15, None)
    assert entry.threshold.matches(AttributeSet(root=20))
    assert not entry.threshold.matches(AttributeSet(root=14))


def test_skill_is_priced_by_rank() -> None:
    entry = CatalogEntry.skill_from_dict(
        {"name": "无名剑", "rank": "上乘", "type": "剑法", "traits": {"初窥门径": "剑意初成"}},
        {SkillRank.SUPERIOR: 8},
    )

    assert entry.cost == 8
    assert entry.rank is SkillRank.SUPERIOR
    assert entry.mastery_traits == (("初窥门径", "剑意初成"),)


def test_invalid_skill_rank_is_rejected() -> None:
    with pytest.raises(ModelValidationError):
        CatalogEntry.skill_from_dict({"name": "无名剑", "rank": "神品"}, {})


def test_duplicate_catalog_keys_are_rejected() -> None:
    entry = CatalogEntry("体魄强健", "体魄强健", CatalogCategory.TRAITS, cost=2)

    with pytest.raises(ModelValidationError):
        Catalog([entry, entry])


def test_catalog_lookup_reports_unknown_keys() -> None:
    catalog = default_content().catalog

    assert ("skills", "独孤九剑") in catalog
    assert ("traits", "独孤九剑") not in catalog
    with pytest.raises(KeyError):
        catalog.get("skills", "不存在的武功")
