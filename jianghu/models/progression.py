"""Realm and skill-mastery ladders."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple

from ..errors import UnrecognizedRealm
from ._validation import (
    FieldSpec,
    MappingSpec,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
)
from .catalog import SkillRank


class MajorRealm(str, Enum):
    """The seven major cultivation realms, lowest first."""

    UNRANKED = "不入流"
    THIRD_RATE = "三流"
    SECOND_RATE = "二流"
    FIRST_RATE = "一流"
    GRANDMASTER = "宗师"
    PEERLESS = "绝顶"
    IMMORTAL = "陆地神仙"

    @property
    def order_index(self) -> int:
        return MAJOR_REALM_ORDER.index(self)

    @classmethod
    def from_value(cls, value: "MajorRealm | str") -> "MajorRealm":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        for member in cls:
            if normalized in (member.value, member.name, member.name.lower()):
                return member
        raise UnrecognizedRealm(str(value))


class MinorRealm(str, Enum):
    """The four sub-stages inside every major realm."""

    EARLY = "初期"
    MIDDLE = "中期"
    LATE = "后期"
    PERFECT = "圆满"

    @property
    def order_index(self) -> int:
        return MINOR_REALM_ORDER.index(self)

    @classmethod
    def from_value(cls, value: "MinorRealm | str") -> "MinorRealm":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        normalized = LEGACY_MINOR_ALIASES.get(normalized, normalized)
        for member in cls:
            if normalized in (member.value, member.name, member.name.lower()):
                return member
        raise UnrecognizedRealm(str(value))


MAJOR_REALM_ORDER: Tuple[MajorRealm, ...] = tuple(MajorRealm)
MINOR_REALM_ORDER: Tuple[MinorRealm, ...] = tuple(MinorRealm)

# Sub-stage names written by older saves and origin presets.
LEGACY_MINOR_ALIASES: Dict[str, str] = {
    "初入": MinorRealm.EARLY.value,
    "小成": MinorRealm.MIDDLE.value,
    "大成": MinorRealm.LATE.value,
}

_REALM_SEPARATORS = "-·・ 　"


@dataclass(frozen=True, slots=True)
class RealmStage:
    """One of the 28 linearly ordered (major, minor) realm states."""

    major: MajorRealm
    minor: MinorRealm = MinorRealm.EARLY

    def __post_init__(self) -> None:
        object.__setattr__(self, "major", MajorRealm.from_value(self.major))
        object.__setattr__(self, "minor", MinorRealm.from_value(self.minor))

    @property
    def level(self) -> int:
        return self.major.order_index * len(MINOR_REALM_ORDER) + self.minor.order_index

    @property
    def label(self) -> str:
        return f"{self.major.value}{self.minor.value}"

    @property
    def minor_progress(self) -> int:
        """Percent of the major realm completed (25, 50, 75 or 100)."""

        return (self.minor.order_index + 1) * 100 // len(MINOR_REALM_ORDER)

    @property
    def is_terminal(self) -> bool:
        return self.level == len(MAJOR_REALM_ORDER) * len(MINOR_REALM_ORDER) - 1

    def next(self) -> Optional["RealmStage"]:
        if self.is_terminal:
            return None
        return RealmStage.from_level(self.level + 1)

    @classmethod
    def from_level(cls, level: int) -> "RealmStage":
        major_index, minor_index = divmod(int(level), len(MINOR_REALM_ORDER))
        if not 0 <= major_index < len(MAJOR_REALM_ORDER):
            raise ValueError(f"realm level {level} out of range")
        return cls(MAJOR_REALM_ORDER[major_index], MINOR_REALM_ORDER[minor_index])

    def __str__(self) -> str:
        return self.label


def iter_realm_stages() -> Iterator[RealmStage]:
    for major in MAJOR_REALM_ORDER:
        for minor in MINOR_REALM_ORDER:
            yield RealmStage(major, minor)


def parse_realm(label: "str | RealmStage") -> RealmStage:
    """Parse ``"三流中期"``, ``"三流-小成"`` or a bare ``"三流"`` into a stage.

    A bare major realm means its first sub-stage.  Anything that is not a known
    major realm followed by nothing or a known sub-stage raises
    :class:`UnrecognizedRealm`.
    """

    if isinstance(label, RealmStage):
        return label
    text = str(label or "").strip()
    # Longest names first so no major realm is mistaken for a prefix of another.
    for major in sorted(MAJOR_REALM_ORDER, key=lambda item: len(item.value), reverse=True):
        if not text.startswith(major.value):
            continue
        remainder = text[len(major.value):].strip(_REALM_SEPARATORS)
        if not remainder:
            return RealmStage(major, MinorRealm.EARLY)
        remainder = LEGACY_MINOR_ALIASES.get(remainder, remainder)
        for minor in MINOR_REALM_ORDER:
            if remainder == minor.value:
                return RealmStage(major, minor)
        break
    raise UnrecognizedRealm(text)


@dataclass(frozen=True, slots=True)
class RealmLadder:
    """Cultivation required to enter each realm stage from the one before it."""

    costs: Tuple[int, ...]

    def __post_init__(self) -> None:
        costs = tuple(int(cost) for cost in self.costs)
        expected = len(MAJOR_REALM_ORDER) * len(MINOR_REALM_ORDER)
        if len(costs) != expected:
            raise ValueError(f"realm ladder needs {expected} costs, got {len(costs)}")
        for previous, current in zip(costs, costs[1:]):
            if current <= previous:
                raise ValueError("realm costs must increase strictly along the ladder")
        object.__setattr__(self, "costs", costs)

    def entry_cost(self, stage: RealmStage) -> int:
        return self.costs[stage.level]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RealmLadder":
        payload = RealmLadderValidator.validate({"realm_costs": data})
        table = {MajorRealm.from_value(key): value for key, value in payload["realm_costs"].items()}
        missing = [major.value for major in MAJOR_REALM_ORDER if major not in table]
        if missing:
            raise ValueError(f"realm ladder is missing {', '.join(missing)}")
        costs: list[int] = []
        for major in MAJOR_REALM_ORDER:
            row = list(table[major])
            if len(row) != len(MINOR_REALM_ORDER):
                raise ValueError(f"{major.value} needs {len(MINOR_REALM_ORDER)} stage costs")
            costs.extend(row)
        return cls(tuple(costs))


class RealmLadderValidator(ModelValidator):
    model = RealmLadder
    fields = {
        "realm_costs": FieldSpec(
            MappingSpec(is_non_empty_str, SequenceSpec(int, allow_empty=False), allow_empty=False),
            "a mapping of major realm to stage costs",
        ),
    }


# ---------------------------------------------------------------------------
# Skill mastery
# ---------------------------------------------------------------------------


class MasteryLevel(str, Enum):
    NOVICE = "初窥门径"
    ADEPT = "略有小成"
    PROFICIENT = "融会贯通"
    EXPERT = "炉火纯青"
    TRANSCENDENT = "出神入化"

    @property
    def order_index(self) -> int:
        return MASTERY_ORDER.index(self)

    @property
    def next_level(self) -> Optional["MasteryLevel"]:
        index = self.order_index + 1
        return MASTERY_ORDER[index] if index < len(MASTERY_ORDER) else None

    @classmethod
    def from_value(cls, value: "MasteryLevel | str") -> "MasteryLevel":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        for member in cls:
            if normalized in (member.value, member.name, member.name.lower()):
                return member
        raise ValueError(f"Unknown mastery level: {value!r}")


MASTERY_ORDER: Tuple[MasteryLevel, ...] = tuple(MasteryLevel)


def unlocked_features(
    mastery_traits: Iterable[Tuple[str, str]], level: MasteryLevel
) -> Tuple[str, ...]:
    """Sub-features gated at or below ``level``, in catalog order."""

    return tuple(
        feature
        for gate, feature in mastery_traits
        if MasteryLevel.from_value(gate).order_index <= level.order_index
    )


@dataclass(slots=True)
class MasteryTable:
    """Prices for raising skill mastery and the bonuses each level grants."""

    rank_base_cost: Dict[SkillRank, int]
    upgrade_multiplier: Dict[MasteryLevel, int]
    insight_baseline: Dict[SkillRank, int]
    insight_step: float = 0.05
    insight_cap: float = 0.6
    rank_base_value: Dict[SkillRank, float] | None = None
    mastery_coefficient: Dict[MasteryLevel, float] | None = None

    def insight_factor(self, rank: SkillRank | str, insight: Optional[int]) -> float:
        if insight is None:
            return 1.0
        baseline = self.insight_baseline.get(SkillRank.from_value(rank), 0)
        discount = (int(insight) - baseline) * self.insight_step
        discount = max(-self.insight_cap, min(self.insight_cap, discount))
        return 1.0 - discount

    def upgrade_cost(
        self,
        rank: SkillRank | str,
        mastery: MasteryLevel | str,
        insight: Optional[int] = None,
    ) -> Optional[int]:
        """Cultivation needed to leave ``mastery``; ``None`` at the top level.

        Higher insight than the rank's baseline discounts the price by
        ``insight_step`` per point, never by more than ``insight_cap``; lower
        insight surcharges it symmetrically.
        """

        rank = SkillRank.from_value(rank)
        mastery = MasteryLevel.from_value(mastery)
        if mastery.next_level is None:
            return None
        raw = (
            self.rank_base_cost[rank]
            * self.upgrade_multiplier[mastery]
            * self.insight_factor(rank, insight)
        )
        # Rounding first keeps 0.7 * 800 from flooring to 559.
        return math.floor(round(raw, 6))

    def skill_bonus(self, rank: SkillRank | str, mastery: MasteryLevel | str) -> float:
        rank = SkillRank.from_value(rank)
        mastery = MasteryLevel.from_value(mastery)
        values = self.rank_base_value or {}
        coefficients = self.mastery_coefficient or {}
        # Missing table rows fall back to a base of 1 and the novice coefficient.
        return values.get(rank, 1.0) * coefficients.get(mastery, 0.6)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MasteryTable":
        payload = MasteryTableValidator.validate(data)

        def by_rank(table: Mapping[str, Any], cast: type) -> Dict[SkillRank, Any]:
            return {SkillRank.from_value(key): cast(value) for key, value in table.items()}

        def by_level(table: Mapping[str, Any], cast: type) -> Dict[MasteryLevel, Any]:
            return {MasteryLevel.from_value(key): cast(value) for key, value in table.items()}

        multipliers = by_level(payload["upgrade_multiplier"], int)
        missing = [
            level.value for level in MASTERY_ORDER[:-1] if level not in multipliers
        ]
        if missing:
            raise ValueError(f"upgrade multipliers missing for {', '.join(missing)}")
        return cls(
            rank_base_cost=by_rank(payload["rank_base_cost"], int),
            upgrade_multiplier=multipliers,
            insight_baseline=by_rank(payload.get("insight_baseline", {}), int),
            insight_step=float(payload.get("insight_step", 0.05)),
            insight_cap=float(payload.get("insight_cap", 0.6)),
            rank_base_value=by_rank(payload.get("rank_base_value", {}), float),
            mastery_coefficient=by_level(payload.get("mastery_coefficient", {}), float),
        )


class MasteryTableValidator(ModelValidator):
    model = MasteryTable
    fields = {
        "rank_base_cost": FieldSpec(
            MappingSpec(is_non_empty_str, int, allow_empty=False),
            "a mapping of skill rank to base cost",
        ),
        "upgrade_multiplier": FieldSpec(
            MappingSpec(is_non_empty_str, int, allow_empty=False),
            "a mapping of mastery level to multiplier",
        ),
        "insight_baseline": FieldSpec(
            MappingSpec(is_non_empty_str, int), "a mapping of rank to insight", required=False
        ),
        "insight_step": FieldSpec(float, "a discount per insight point", required=False),
        "insight_cap": FieldSpec(float, "a maximum discount", required=False),
        "rank_base_value": FieldSpec(
            MappingSpec(is_non_empty_str, float), "a mapping of rank to value", required=False
        ),
        "mastery_coefficient": FieldSpec(
            MappingSpec(is_non_empty_str, float),
            "a mapping of mastery level to coefficient",
            required=False,
        ),
    }


@dataclass(frozen=True, slots=True)
class SkillMasteryState:
    """Read-only view of one learned skill."""

    skill: str
    mastery: MasteryLevel = MasteryLevel.NOVICE
    unlocked_traits: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "mastery", MasteryLevel.from_value(self.mastery))
        object.__setattr__(self, "unlocked_traits", tuple(self.unlocked_traits))

    @property
    def is_terminal(self) -> bool:
        return self.mastery.next_level is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "skill": self.skill,
            "mastery": self.mastery.value,
            "unlocked_traits": list(self.unlocked_traits),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SkillMasteryState":
        payload = SkillMasteryStateValidator.validate(data)
        return cls(
            skill=payload["skill"].strip(),
            mastery=MasteryLevel.from_value(payload.get("mastery", MasteryLevel.NOVICE)),
            unlocked_traits=tuple(payload.get("unlocked_traits", ())),
        )


class SkillMasteryStateValidator(ModelValidator):
    model = SkillMasteryState
    fields = {
        "skill": FieldSpec(is_non_empty_str, "a skill name"),
        "mastery": FieldSpec(str, "a mastery level", required=False),
        "unlocked_traits": FieldSpec(
            SequenceSpec(str), "a list of unlocked features", required=False
        ),
    }


def merge_unlocked(existing: Sequence[str], gained: Iterable[str]) -> Tuple[str, ...]:
    """Union preserving first-seen order; unlocks never shrink."""

    merged = list(existing)
    for feature in gained:
        if feature not in merged:
            merged.append(feature)
    return tuple(merged)


__all__ = [
    "LEGACY_MINOR_ALIASES",
    "MAJOR_REALM_ORDER",
    "MASTERY_ORDER",
    "MINOR_REALM_ORDER",
    "MajorRealm",
    "MasteryLevel",
    "MasteryTable",
    "MinorRealm",
    "RealmLadder",
    "RealmStage",
    "SkillMasteryState",
    "iter_realm_stages",
    "merge_unlocked",
    "parse_realm",
    "unlocked_features",
]
