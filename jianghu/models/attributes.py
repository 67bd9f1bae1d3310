"""Character attributes and the point ladders that price them."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Tuple

from ..errors import OutOfRange
from ._validation import FieldSpec, IntRangeSpec, ModelValidator, SequenceSpec


class Attribute(str, Enum):
    """The seven build attributes, keyed by their save-file names."""

    BRAWN = "brawn"
    ROOT = "root"
    AGILITY = "agility"
    SAVVY = "savvy"
    INSIGHT = "insight"
    CHARISMA = "charisma"
    LUCK = "luck"

    @property
    def label(self) -> str:
        return ATTRIBUTE_LABELS[self]

    @property
    def is_luck(self) -> bool:
        return self is Attribute.LUCK

    @classmethod
    def from_value(cls, value: "Attribute | str") -> "Attribute":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        for member in cls:
            if normalized.lower() == member.value or normalized == ATTRIBUTE_LABELS[member]:
                return member
        raise ValueError(f"Unknown attribute: {value!r}")


ATTRIBUTE_LABELS: Dict[Attribute, str] = {
    Attribute.BRAWN: "臂力",
    Attribute.ROOT: "根骨",
    Attribute.AGILITY: "机敏",
    Attribute.SAVVY: "悟性",
    Attribute.INSIGHT: "洞察",
    Attribute.CHARISMA: "风姿",
    Attribute.LUCK: "福缘",
}

ATTRIBUTE_ORDER: Tuple[Attribute, ...] = tuple(Attribute)

# (minimum, maximum, baseline) used when no cost table says otherwise.
STANDARD_BOUNDS: Tuple[int, int, int] = (0, 20, 6)
LUCK_BOUNDS: Tuple[int, int, int] = (-6, 14, 0)


def default_bounds(attribute: Attribute) -> Tuple[int, int, int]:
    return LUCK_BOUNDS if attribute.is_luck else STANDARD_BOUNDS


@dataclass(frozen=True, slots=True)
class AttributeSet:
    """Immutable snapshot of the seven attributes."""

    brawn: int = STANDARD_BOUNDS[2]
    root: int = STANDARD_BOUNDS[2]
    agility: int = STANDARD_BOUNDS[2]
    savvy: int = STANDARD_BOUNDS[2]
    insight: int = STANDARD_BOUNDS[2]
    charisma: int = STANDARD_BOUNDS[2]
    luck: int = LUCK_BOUNDS[2]

    def get(self, attribute: Attribute | str) -> int:
        return getattr(self, Attribute.from_value(attribute).value)

    def with_value(self, attribute: Attribute | str, value: int) -> "AttributeSet":
        return replace(self, **{Attribute.from_value(attribute).value: int(value)})

    def items(self) -> Iterator[Tuple[Attribute, int]]:
        for attribute in ATTRIBUTE_ORDER:
            yield attribute, getattr(self, attribute.value)

    def to_dict(self) -> Dict[str, int]:
        return {attribute.value: value for attribute, value in self.items()}

    def out_of_range(self) -> List[OutOfRange]:
        """Return one error per attribute outside its default bounds."""

        problems: List[OutOfRange] = []
        for attribute, value in self.items():
            minimum, maximum, _ = default_bounds(attribute)
            if not minimum <= value <= maximum:
                problems.append(OutOfRange(attribute.label, value, minimum, maximum))
        return problems

    def clamped(self) -> "AttributeSet":
        values = {}
        for attribute, value in self.items():
            minimum, maximum, _ = default_bounds(attribute)
            values[attribute.value] = max(minimum, min(maximum, value))
        return AttributeSet(**values)

    @classmethod
    def from_mapping(cls, data: Mapping[Any, Any] | None) -> "AttributeSet":
        """Coerce a save-file mapping; missing or junk values fall back to baseline.

        Keys may be the English names or the Chinese labels used by older saves.
        """

        values: Dict[str, int] = {}
        for key, raw in (data or {}).items():
            try:
                attribute = Attribute.from_value(key)
            except ValueError:
                continue
            try:
                values[attribute.value] = int(raw)
            except (TypeError, ValueError):
                continue
        return cls(**values)


# ---------------------------------------------------------------------------
# Cost ladders
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CostBand:
    """A run of values priced alike when moving into them one point at a time."""

    min: int
    max: int
    points_gained: int = 0
    cost_per_point: int = 0

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CostBand":
        payload = CostBandValidator.validate(data)
        return cls(
            min=payload["min"],
            max=payload["max"],
            points_gained=payload.get("points_gained", 0),
            cost_per_point=payload.get("cost_per_point", 0),
        )


class CostBandValidator(ModelValidator):
    model = CostBand
    fields = {
        "min": FieldSpec(int, "an integer lower bound"),
        "max": FieldSpec(int, "an integer upper bound"),
        "points_gained": FieldSpec(
            IntRangeSpec(minimum=0), "a non-negative refund per point", required=False
        ),
        "cost_per_point": FieldSpec(
            IntRangeSpec(minimum=0), "a non-negative cost per point", required=False
        ),
    }


@dataclass(slots=True)
class AttributeCostTable:
    """Stepped ladder pricing one family of attributes.

    ``cost(value)`` walks from the baseline towards ``value``; each point moved
    upward adds the ``cost_per_point`` of the band it lands in and each point
    moved downward subtracts that band's ``points_gained``.  The walk makes the
    price monotonic on each side of the baseline and ``cost(baseline) == 0``.
    """

    baseline: int
    minimum: int
    maximum: int
    bands: Tuple[CostBand, ...]
    _ladder: Dict[int, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.minimum <= self.baseline <= self.maximum:
            raise ValueError(
                f"baseline {self.baseline} outside [{self.minimum}, {self.maximum}]"
            )
        self.bands = tuple(self.bands)
        ladder = {self.baseline: 0}
        for direction, stop in ((1, self.maximum), (-1, self.minimum)):
            total = 0
            value = self.baseline
            while value != stop:
                value += direction
                band = self.band_for(value)
                if band is None:
                    raise ValueError(f"no cost band covers value {value}")
                total += band.cost_per_point if direction > 0 else -band.points_gained
                ladder[value] = total
        self._ladder = ladder

    def band_for(self, value: int) -> CostBand | None:
        return next((band for band in self.bands if band.contains(value)), None)

    def contains(self, value: int) -> bool:
        return self.minimum <= value <= self.maximum

    def cost(self, value: int) -> int:
        try:
            return self._ladder[int(value)]
        except KeyError:
            raise ValueError(
                f"value {value} lies outside the ladder [{self.minimum}, {self.maximum}]"
            ) from None

    def ladder(self) -> Dict[int, int]:
        return dict(sorted(self._ladder.items()))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttributeCostTable":
        payload = AttributeCostTableValidator.validate(data)
        return cls(
            baseline=payload["baseline"],
            minimum=payload["minimum"],
            maximum=payload["maximum"],
            bands=tuple(CostBand.from_dict(band) for band in payload["bands"]),
        )


class AttributeCostTableValidator(ModelValidator):
    model = AttributeCostTable
    fields = {
        "baseline": FieldSpec(int, "an integer baseline"),
        "minimum": FieldSpec(int, "an integer minimum"),
        "maximum": FieldSpec(int, "an integer maximum"),
        "bands": FieldSpec(SequenceSpec(dict, allow_empty=False), "a list of cost bands"),
    }


@dataclass(slots=True)
class AttributeCostModel:
    """Prices the six standard attributes on one ladder and luck on another."""

    standard: AttributeCostTable
    luck: AttributeCostTable

    def table_for(self, attribute: Attribute | str) -> AttributeCostTable:
        return self.luck if Attribute.from_value(attribute).is_luck else self.standard

    def baseline(self) -> AttributeSet:
        values = {
            attribute.value: self.table_for(attribute).baseline for attribute in ATTRIBUTE_ORDER
        }
        return AttributeSet(**values)

    def check(self, attribute: Attribute | str, value: int) -> None:
        """Input validation: raise :class:`OutOfRange` for an illegal value."""

        attribute = Attribute.from_value(attribute)
        table = self.table_for(attribute)
        if not table.contains(value):
            raise OutOfRange(attribute.label, value, table.minimum, table.maximum)

    def validate(self, attributes: AttributeSet) -> None:
        for attribute, value in attributes.items():
            self.check(attribute, value)

    def cost(self, attribute: Attribute | str, value: int) -> int:
        return self.table_for(attribute).cost(value)

    def total_cost(self, attributes: AttributeSet) -> int:
        return sum(self.cost(attribute, value) for attribute, value in attributes.items())

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttributeCostModel":
        return cls(
            standard=AttributeCostTable.from_dict(data["standard"]),
            luck=AttributeCostTable.from_dict(data["luck"]),
        )


__all__ = [
    "ATTRIBUTE_LABELS",
    "ATTRIBUTE_ORDER",
    "Attribute",
    "AttributeCostModel",
    "AttributeCostTable",
    "AttributeSet",
    "CostBand",
    "LUCK_BOUNDS",
    "STANDARD_BOUNDS",
    "default_bounds",
]
