from __future__ import annotations

import sys
from pathlib import Path

import pytest

PROJECT_BASE = Path(__file__).resolve().parents[1]
if str(PROJECT_BASE) not in sys.path:
    sys.path.insert(0, str(PROJECT_BASE))

from jianghu.content import default_content
from jianghu.errors import OutOfRange
from jianghu.models._validation import ModelValidationError
from jianghu.models.attributes import (
    Attribute,
    AttributeCostTable,
    AttributeSet,
    CostBand,
)


def _cost_model():
    return default_content().cost_model


def test_baseline_costs_nothing() -> None:
    model = _cost_model()

    assert model.cost(Attribute.BRAWN, 6) == 0
    assert model.cost(Attribute.LUCK, 0) == 0
    assert model.total_cost(model.baseline()) == 0
    assert model.baseline() == AttributeSet()


def test_standard_ladder_steps() -> None:
    model = _cost_model()

    assert model.cost("brawn", 7) == 1
    assert model.cost("brawn", 12) == 6
    assert model.cost("brawn", 13) == 8
    assert model.cost("brawn", 17) == 17
    assert model.cost("brawn", 20) == 26
    assert model.cost("brawn", 5) == -1
    assert model.cost("brawn", 2) == -4
    assert model.cost("brawn", 0) == -8


def test_luck_ladder_is_steeper() -> None:
    model = _cost_model()

    assert model.cost(Attribute.LUCK, 1) == 2
    assert model.cost(Attribute.LUCK, 7) == 15
    assert model.cost(Attribute.LUCK, 14) == 40
    assert model.cost(Attribute.LUCK, -1) == -1
    assert model.cost(Attribute.LUCK, -6) == -8


@pytest.mark.parametrize("attribute", [Attribute.BRAWN, Attribute.LUCK])
def test_cost_grows_away_from_baseline(attribute: Attribute) -> None:
    table = _cost_model().table_for(attribute)

    above = [table.cost(value) for value in range(table.baseline, table.maximum + 1)]
    below = [table.cost(value) for value in range(table.baseline, table.minimum - 1, -1)]

    assert above == sorted(above)
    assert [abs(cost) for cost in below] == sorted(abs(cost) for cost in below)
    assert all(cost <= 0 for cost in below)


def test_out_of_range_values_are_rejected_before_pricing() -> None:
    model = _cost_model()

    with pytest.raises(OutOfRange) as excinfo:
        model.check(Attribute.LUCK, 15)
    assert excinfo.value.maximum == 14

    with pytest.raises(OutOfRange):
        model.validate(AttributeSet(brawn=-1))

    with pytest.raises(ValueError):
        model.cost(Attribute.BRAWN, 21)


def test_ladder_with_gap_is_rejected() -> None:
    with pytest.raises(ValueError):
        AttributeCostTable(
            baseline=2,
            minimum=0,
            maximum=4,
            bands=(CostBand(0, 2, points_gained=1), CostBand(4, 4, cost_per_point=1)),
        )


def test_cost_band_payload_validation() -> None:
    with pytest.raises(ModelValidationError):
        CostBand.from_dict({"min": 1, "max": 3, "cost_per_point": -2})


def test_attribute_set_accepts_chinese_labels_and_junk() -> None:
    attributes = AttributeSet.from_mapping({"臂力": 9, "luck": "3", "root": "many", "mystery": 4})

    assert attributes.brawn == 9
    assert attributes.luck == 3
    assert attributes.root == 6


def test_attribute_set_reports_every_problem_and_clamps() -> None:
    attributes = AttributeSet(brawn=25, luck=-9)

    problems = attributes.out_of_range()

    assert [problem.attribute for problem in problems] == ["臂力", "福缘"]
    assert attributes.clamped() == AttributeSet(brawn=20, luck=-6)
