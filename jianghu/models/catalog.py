"""Trait and skill catalogs plus the threshold rules that grant traits."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Tuple

from ._validation import (
    ChoiceSpec,
    FieldSpec,
    MappingSpec,
    ModelValidationError,
    ModelValidator,
    is_non_empty_str,
)
from .attributes import Attribute, AttributeSet


class CatalogCategory(str, Enum):
    TRAITS = "traits"
    SKILLS = "skills"

    @classmethod
    def from_value(cls, value: "CatalogCategory | str") -> "CatalogCategory":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown catalog category: {value!r}") from exc


class SkillRank(str, Enum):
    """Six ordered skill tiers, lowest first."""

    COARSE = "粗浅"
    HEIRLOOM = "传家"
    SUPERIOR = "上乘"
    SECT_TREASURE = "镇派"
    PEERLESS = "绝世"
    LEGENDARY = "传说"

    @property
    def order_index(self) -> int:
        return SKILL_RANK_ORDER.index(self)

    @classmethod
    def from_value(cls, value: "SkillRank | str") -> "SkillRank":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip()
        for member in cls:
            if normalized in (member.value, member.name, member.name.lower()):
                return member
        raise ValueError(f"Unknown skill rank: {value!r}")


SKILL_RANK_ORDER: Tuple[SkillRank, ...] = tuple(SkillRank)


@dataclass(frozen=True, slots=True)
class AttributeThreshold:
    """Inclusive attribute band; a missing bound is open on that side."""

    attribute: Attribute
    min_value: Optional[int] = None
    max_value: Optional[int] = None

    def matches(self, attributes: AttributeSet) -> bool:
        value = attributes.get(self.attribute)
        if self.min_value is not None and value < self.min_value:
            return False
        if self.max_value is not None and value > self.max_value:
            return False
        return True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AttributeThreshold":
        payload = AttributeThresholdValidator.validate(data)
        minimum = payload.get("min", payload.get("minValue"))
        maximum = payload.get("max", payload.get("maxValue"))
        return cls(
            attribute=Attribute.from_value(payload["attribute"]),
            min_value=None if minimum is None else int(minimum),
            max_value=None if maximum is None else int(maximum),
        )


class AttributeThresholdValidator(ModelValidator):
    model = AttributeThreshold
    fields = {
        "attribute": FieldSpec(
            ChoiceSpec({item.value for item in Attribute}), "an attribute name"
        ),
        "min": FieldSpec(int, "an integer lower bound", required=False),
        "max": FieldSpec(int, "an integer upper bound", required=False),
    }


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """A selectable trait or skill.

    ``cost`` is signed: positive entries consume points, negative ones refund
    them.  Skills are priced by ``rank``.  Entries carrying a ``threshold`` are
    emergent: granted while the threshold holds and never bought or drawn.
    """

    key: str
    name: str
    category: CatalogCategory
    description: str = ""
    cost: int = 0
    threshold: Optional[AttributeThreshold] = None
    rank: Optional[SkillRank] = None
    skill_type: str = ""
    # (mastery label, sub-feature text) pairs in catalog order.
    mastery_traits: Tuple[Tuple[str, str], ...] = ()

    @property
    def is_triggered(self) -> bool:
        return self.threshold is not None

    @classmethod
    def trait_from_dict(cls, data: Mapping[str, Any]) -> "CatalogEntry":
        payload = TraitEntryValidator.validate(data)
        threshold = payload.get("threshold") or payload.get("attributeThreshold")
        name = payload["name"].strip()
        return cls(
            key=str(payload.get("key") or name).strip(),
            name=name,
            category=CatalogCategory.TRAITS,
            description=str(payload.get("description") or ""),
            cost=0 if threshold else int(payload.get("cost", 0)),
            threshold=AttributeThreshold.from_dict(threshold) if threshold else None,
        )

    @classmethod
    def skill_from_dict(
        cls, data: Mapping[str, Any], rank_costs: Mapping[SkillRank, int]
    ) -> "CatalogEntry":
        payload = SkillEntryValidator.validate(data)
        name = payload["name"].strip()
        rank = SkillRank.from_value(payload["rank"])
        traits = payload.get("traits") or {}
        return cls(
            key=str(payload.get("key") or name).strip(),
            name=name,
            category=CatalogCategory.SKILLS,
            description=str(payload.get("description") or ""),
            cost=int(rank_costs.get(rank, 0)),
            rank=rank,
            skill_type=str(payload.get("type") or ""),
            mastery_traits=tuple((str(level), str(text)) for level, text in traits.items()),
        )


class TraitEntryValidator(ModelValidator):
    model = CatalogEntry
    fields = {
        "name": FieldSpec(is_non_empty_str, "a non-empty trait name"),
        "key": FieldSpec(is_non_empty_str, "a non-empty key", required=False),
        "cost": FieldSpec(int, "an integer point cost", required=False),
        "description": FieldSpec(str, "a textual description", required=False),
        "threshold": FieldSpec(dict, "an attribute threshold table", required=False),
    }


class SkillEntryValidator(ModelValidator):
    model = CatalogEntry
    fields = {
        "name": FieldSpec(is_non_empty_str, "a non-empty skill name"),
        "key": FieldSpec(is_non_empty_str, "a non-empty key", required=False),
        "rank": FieldSpec(ChoiceSpec({rank.value for rank in SkillRank}), "a skill rank"),
        "type": FieldSpec(str, "a skill type", required=False),
        "description": FieldSpec(str, "a textual description", required=False),
        "traits": FieldSpec(
            MappingSpec(str, str), "a mapping of mastery level to feature", required=False
        ),
    }


class Catalog:
    """Immutable registry of trait and skill entries, built once at startup."""

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        buckets: Dict[CatalogCategory, Dict[str, CatalogEntry]] = {
            category: {} for category in CatalogCategory
        }
        duplicates: list[str] = []
        for entry in entries:
            bucket = buckets[entry.category]
            if entry.key in bucket:
                duplicates.append(f"{entry.category.value}:{entry.key}")
                continue
            bucket[entry.key] = entry
        if duplicates:
            raise ModelValidationError(
                CatalogEntry, [f"Duplicate catalog key {key}" for key in duplicates]
            )
        self._entries: Mapping[CatalogCategory, Mapping[str, CatalogEntry]] = MappingProxyType(
            {category: MappingProxyType(bucket) for category, bucket in buckets.items()}
        )

    def __contains__(self, item: Tuple[CatalogCategory | str, str]) -> bool:
        category, key = item
        return key in self._entries[CatalogCategory.from_value(category)]

    def get(self, category: CatalogCategory | str, key: str) -> CatalogEntry:
        bucket = self._entries[CatalogCategory.from_value(category)]
        try:
            return bucket[key]
        except KeyError:
            raise KeyError(f"Unknown {CatalogCategory.from_value(category).value} entry: {key!r}") from None

    def entries(self, category: CatalogCategory | str) -> Iterator[CatalogEntry]:
        return iter(self._entries[CatalogCategory.from_value(category)].values())

    def list_selectable(self, category: CatalogCategory | str) -> Tuple[CatalogEntry, ...]:
        return tuple(entry for entry in self.entries(category) if not entry.is_triggered)

    def list_triggered(
        self, category: CatalogCategory | str, attributes: AttributeSet
    ) -> Tuple[CatalogEntry, ...]:
        return tuple(
            entry
            for entry in self.entries(category)
            if entry.threshold is not None and entry.threshold.matches(attributes)
        )

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._entries.values())


class ThresholdEngine:
    """Derives the auto-granted entries from the current attributes.

    Evaluation is a pure recomputation over every threshold-bearing entry; the
    result depends only on ``attributes`` and never on earlier evaluations.
    """

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def evaluate(
        self,
        attributes: AttributeSet,
        category: CatalogCategory | str = CatalogCategory.TRAITS,
    ) -> FrozenSet[CatalogEntry]:
        return frozenset(self._catalog.list_triggered(category, attributes))

    def evaluate_keys(
        self,
        attributes: AttributeSet,
        category: CatalogCategory | str = CatalogCategory.TRAITS,
    ) -> Tuple[str, ...]:
        """Triggered keys in catalog order, for stable presentation."""

        return tuple(entry.key for entry in self._catalog.list_triggered(category, attributes))


__all__ = [
    "AttributeThreshold",
    "Catalog",
    "CatalogCategory",
    "CatalogEntry",
    "SKILL_RANK_ORDER",
    "SkillRank",
    "ThresholdEngine",
]
