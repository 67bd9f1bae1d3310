"""Combat attributes and resource caps derived from realm and skills."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Tuple

from .models._validation import FieldSpec, MappingSpec, ModelValidator, is_non_empty_str
from .models.attributes import Attribute, AttributeSet
from .models.catalog import CatalogEntry
from .models.progression import MajorRealm, MasteryLevel, MasteryTable, MinorRealm, RealmStage

# Attributes that scale with the realm; the rest only matter during creation.
COMBAT_ATTRIBUTES: Tuple[Attribute, ...] = (
    Attribute.BRAWN,
    Attribute.ROOT,
    Attribute.AGILITY,
    Attribute.INSIGHT,
)

INTERNAL_SKILL_TYPE = "内功"
EXTERNAL_SKILL_TYPE = "外功"


def _floor(value: float) -> int:
    return math.floor(round(value, 6))


@dataclass(slots=True)
class DerivedStatTable:
    major_coefficient: Dict[MajorRealm, float]
    minor_coefficient: Dict[MinorRealm, float]
    realm_floor_bonus: Dict[MajorRealm, float]

    def realm_coefficient(self, stage: RealmStage) -> float:
        return self.major_coefficient.get(stage.major, 1.0) * self.minor_coefficient.get(
            stage.minor, 1.0
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DerivedStatTable":
        payload = DerivedStatTableValidator.validate(data)
        return cls(
            major_coefficient={
                MajorRealm.from_value(key): float(value)
                for key, value in payload["major_coefficient"].items()
            },
            minor_coefficient={
                MinorRealm.from_value(key): float(value)
                for key, value in payload["minor_coefficient"].items()
            },
            realm_floor_bonus={
                MajorRealm.from_value(key): float(value)
                for key, value in payload.get("realm_floor_bonus", {}).items()
            },
        )


class DerivedStatTableValidator(ModelValidator):
    model = DerivedStatTable
    fields = {
        "major_coefficient": FieldSpec(
            MappingSpec(is_non_empty_str, float, allow_empty=False),
            "a mapping of major realm to coefficient",
        ),
        "minor_coefficient": FieldSpec(
            MappingSpec(is_non_empty_str, float, allow_empty=False),
            "a mapping of minor realm to coefficient",
        ),
        "realm_floor_bonus": FieldSpec(
            MappingSpec(is_non_empty_str, float),
            "a mapping of major realm to implied bonus",
            required=False,
        ),
    }


@dataclass(frozen=True, slots=True)
class DerivedStats:
    combat: Dict[Attribute, int]
    health: int
    internal_energy: int
    external_bonus: float
    internal_bonus: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "combat": {attribute.value: value for attribute, value in self.combat.items()},
            "health": self.health,
            "internal_energy": self.internal_energy,
        }


def combat_attributes(
    attributes: AttributeSet, stage: RealmStage, table: DerivedStatTable
) -> Dict[Attribute, int]:
    coefficient = table.realm_coefficient(stage)
    return {
        attribute: _floor(attributes.get(attribute) * coefficient)
        for attribute in COMBAT_ATTRIBUTES
    }


def derive_stats(
    attributes: AttributeSet,
    stage: RealmStage,
    skills: Iterable[Tuple[CatalogEntry, MasteryLevel]],
    table: DerivedStatTable,
    mastery: MasteryTable,
) -> DerivedStats:
    """Scale combat attributes by realm and size the health/energy pools.

    Internal-art bonuses feed internal energy and external-art bonuses feed
    health; each side is raised to at least the major realm's floor bonus.
    """

    combat = combat_attributes(attributes, stage, table)
    internal = 0.0
    external = 0.0
    for entry, level in skills:
        if entry.rank is None:
            continue
        bonus = mastery.skill_bonus(entry.rank, level)
        if entry.skill_type == INTERNAL_SKILL_TYPE:
            internal += bonus
        elif entry.skill_type == EXTERNAL_SKILL_TYPE:
            external += bonus

    floor_bonus = table.realm_floor_bonus.get(stage.major, 0.0)
    internal = max(internal, floor_bonus)
    external = max(external, floor_bonus)
    root = combat[Attribute.ROOT]
    return DerivedStats(
        combat=combat,
        health=_floor(root * (1 + external)),
        internal_energy=_floor(root * (1 + internal)),
        external_bonus=external,
        internal_bonus=internal,
    )


__all__ = [
    "COMBAT_ATTRIBUTES",
    "DerivedStatTable",
    "DerivedStats",
    "EXTERNAL_SKILL_TYPE",
    "INTERNAL_SKILL_TYPE",
    "combat_attributes",
    "derive_stats",
]
