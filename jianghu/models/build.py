"""Build-level records: talent tiers, origins, selections and saved builds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from ..errors import Irrevocable, MalformedBuild
from ._validation import (
    FieldSpec,
    IntRangeSpec,
    ModelValidationError,
    ModelValidator,
    SequenceSpec,
    is_non_empty_str,
)
from .attributes import AttributeSet
from .progression import MasteryLevel, RealmStage, parse_realm


@dataclass(frozen=True, slots=True)
class TalentTier:
    """A talent level; ``total_points`` is the build's point allowance."""

    id: str
    name: str
    total_points: int
    description: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TalentTier":
        payload = dict(data)
        if "totalPoints" in payload and "total_points" not in payload:
            payload["total_points"] = payload.pop("totalPoints")
        payload = TalentTierValidator.validate(payload)
        return cls(
            id=payload["id"].strip(),
            name=payload["name"].strip(),
            total_points=payload["total_points"],
            description=str(payload.get("description") or ""),
        )


class TalentTierValidator(ModelValidator):
    model = TalentTier
    fields = {
        "id": FieldSpec(is_non_empty_str, "a non-empty identifier"),
        "name": FieldSpec(is_non_empty_str, "a non-empty name"),
        "total_points": FieldSpec(IntRangeSpec(minimum=0), "a non-negative point total"),
        "description": FieldSpec(str, "a textual description", required=False),
    }


CUSTOM_ORIGIN_ID = "custom"
DEFAULT_ORIGIN_REALM = "三流圆满"
DEFAULT_ORIGIN_CULTIVATION = 200


@dataclass(frozen=True, slots=True)
class OriginOption:
    """A background preset fixing the starting realm and skills."""

    id: str
    name: str
    realm: RealmStage
    category: str = ""
    description: str = ""
    # ``None`` means the entry cost of ``realm``.
    cultivation: Optional[int] = None
    skills: Tuple[Tuple[str, MasteryLevel], ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "OriginOption":
        payload = OriginOptionValidator.validate(data)
        skills = []
        for item in payload.get("skills", ()):
            if isinstance(item, str):
                skills.append((item, MasteryLevel.NOVICE))
            else:
                skills.append(
                    (str(item["name"]), MasteryLevel.from_value(item.get("mastery", "初窥门径")))
                )
        cultivation = payload.get("cultivation")
        return cls(
            id=payload["id"].strip(),
            name=payload["name"].strip(),
            realm=parse_realm(payload["realm"]),
            category=str(payload.get("category") or ""),
            description=str(payload.get("description") or ""),
            cultivation=None if cultivation is None else int(cultivation),
            skills=tuple(skills),
        )


class OriginOptionValidator(ModelValidator):
    model = OriginOption
    fields = {
        "id": FieldSpec(is_non_empty_str, "a non-empty identifier"),
        "name": FieldSpec(is_non_empty_str, "a non-empty name"),
        "realm": FieldSpec(is_non_empty_str, "a realm label"),
        "category": FieldSpec(str, "an origin category", required=False),
        "description": FieldSpec(str, "a textual description", required=False),
        "cultivation": FieldSpec(IntRangeSpec(minimum=0), "starting cultivation", required=False),
        "skills": FieldSpec(SequenceSpec((str, dict)), "a list of starting skills", required=False),
    }


# ---------------------------------------------------------------------------
# Selections
# ---------------------------------------------------------------------------


class SelectionOrigin(str, Enum):
    DIRECT = "direct"
    DRAWN = "drawn"
    TRIGGERED = "triggered"

    @property
    def removable(self) -> bool:
        return self is SelectionOrigin.DIRECT

    @classmethod
    def from_value(cls, value: "SelectionOrigin | str | None") -> "SelectionOrigin":
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.DIRECT
        normalized = str(value).strip().lower()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise ValueError(f"Unknown selection origin: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class SelectedEntry:
    """One chosen catalog key; ``fee`` is the draw fee paid for drawn entries."""

    key: str
    origin: SelectionOrigin = SelectionOrigin.DIRECT
    fee: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "origin": self.origin.value, "fee": self.fee}

    @classmethod
    def from_value(cls, value: "SelectedEntry | Mapping[str, Any] | str") -> "SelectedEntry":
        """Accept a record, a mapping, or a bare catalog key from older saves."""

        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            return cls(key=value.strip())
        if not isinstance(value, Mapping):
            raise ValueError(f"Cannot read a selection from {value!r}")
        key = value.get("key") or value.get("name") or value.get("id")
        if not is_non_empty_str(key):
            raise ValueError(f"Selection entry without a key: {value!r}")
        try:
            fee = int(value.get("fee", 0) or 0)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Selection {key!r} has an unreadable fee: {value.get('fee')!r}") from exc
        return cls(
            key=str(key).strip(),
            origin=SelectionOrigin.from_value(value.get("origin")),
            fee=fee,
        )


class Selection:
    """Chosen keys of one catalog category, tagged by how they were obtained.

    Direct and drawn entries are stored; triggered entries are replaced
    wholesale by :meth:`replace_triggered` whenever attributes change.  Only
    direct entries may be removed.
    """

    def __init__(self, entries: Sequence[SelectedEntry] = ()) -> None:
        self._stored: Dict[str, SelectedEntry] = {}
        self._triggered: Dict[str, SelectedEntry] = {}
        for entry in entries:
            self.add(entry)

    def __contains__(self, key: object) -> bool:
        return key in self._stored or key in self._triggered

    def __iter__(self) -> Iterator[SelectedEntry]:
        yield from self._stored.values()
        yield from self._triggered.values()

    def __len__(self) -> int:
        return len(self._stored) + len(self._triggered)

    def get(self, key: str) -> Optional[SelectedEntry]:
        return self._stored.get(key) or self._triggered.get(key)

    def keys(self) -> Tuple[str, ...]:
        return tuple(entry.key for entry in self)

    def by_origin(self, origin: SelectionOrigin | str) -> Tuple[SelectedEntry, ...]:
        origin = SelectionOrigin.from_value(origin)
        return tuple(entry for entry in self if entry.origin is origin)

    def persisted(self) -> Tuple[SelectedEntry, ...]:
        return tuple(self._stored.values())

    def add(self, entry: SelectedEntry) -> None:
        if entry.key in self:
            raise ValueError(f"{entry.key} is already selected")
        if entry.origin is SelectionOrigin.TRIGGERED:
            self._triggered[entry.key] = entry
        else:
            self._stored[entry.key] = entry

    def remove(self, key: str) -> SelectedEntry:
        entry = self.get(key)
        if entry is None:
            raise KeyError(key)
        if not entry.origin.removable:
            raise Irrevocable(key, entry.origin.value)
        return self._stored.pop(key)

    def replace_triggered(self, keys: Sequence[str]) -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
        """Make the triggered set exactly ``keys``; return (gained, lost)."""

        wanted = [key for key in keys if key not in self._stored]
        gained = tuple(key for key in wanted if key not in self._triggered)
        lost = tuple(key for key in self._triggered if key not in wanted)
        self._triggered = {
            key: SelectedEntry(key, SelectionOrigin.TRIGGERED) for key in wanted
        }
        return gained, lost


@dataclass(frozen=True, slots=True)
class CustomTrait:
    """A player-authored trait priced like a direct catalog pick."""

    name: str
    description: str
    cost: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "cost": self.cost}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CustomTrait":
        payload = CustomTraitValidator.validate(data)
        return cls(
            name=payload["name"].strip(),
            description=payload["description"].strip(),
            cost=payload.get("cost", 0),
        )


class CustomTraitValidator(ModelValidator):
    model = CustomTrait
    fields = {
        "name": FieldSpec(is_non_empty_str, "a non-empty trait name"),
        "description": FieldSpec(is_non_empty_str, "a non-empty description"),
        "cost": FieldSpec(int, "a signed point cost", required=False),
    }


# ---------------------------------------------------------------------------
# Saved builds
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CharacterInfo:
    name: str = ""
    gender: str = "男"
    appearance: str = ""
    age: int = 18

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "gender": self.gender,
            "appearance": self.appearance,
            "age": self.age,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None, *, default_name: str = "") -> "CharacterInfo":
        data = data or {}
        try:
            age = int(data.get("age", 18))
        except (TypeError, ValueError):
            age = 18
        return cls(
            name=str(data.get("name") or default_name),
            gender=str(data.get("gender") or "男"),
            appearance=str(data.get("appearance") or ""),
            age=age,
        )


@dataclass(frozen=True, slots=True)
class LocationInfo:
    """In-world starting date and place."""

    year: int = 1199
    month: int = 8
    day: int = 15
    place: str = "江湖"

    def to_dict(self) -> Dict[str, Any]:
        return {"year": self.year, "month": self.month, "day": self.day, "place": self.place}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "LocationInfo":
        data = data or {}
        defaults = cls()
        values: Dict[str, Any] = {}
        for name in ("year", "month", "day"):
            try:
                values[name] = int(data.get(name, getattr(defaults, name)))
            except (TypeError, ValueError):
                values[name] = getattr(defaults, name)
        values["place"] = str(data.get("place") or data.get("location") or defaults.place)
        return cls(**values)


# Keys written by the older camelCase save format.
LEGACY_BUILD_KEYS: Dict[str, str] = {
    "talentTier": "talent_tier",
    "martialArts": "skills",
    "createdAt": "created_at",
    "characterInfo": "character",
    "locationInfo": "location",
    "customRealm": "custom_realm",
    "customTraits": "custom_traits",
}


def normalize_build_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    """Rename legacy camelCase keys; millisecond timestamps become seconds."""

    payload = dict(data)
    for legacy, current in LEGACY_BUILD_KEYS.items():
        if legacy not in payload:
            continue
        value = payload.pop(legacy)
        if current in payload:
            continue
        if legacy == "createdAt" and isinstance(value, (int, float)):
            value = value / 1000.0
        payload[current] = value
    tier = payload.get("talent_tier")
    if isinstance(tier, Mapping):
        payload["talent_tier"] = tier.get("id")
    return payload


def _coerce_timestamp(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(value).timestamp()
        except ValueError:
            return 0.0
    return 0.0


def _coerce_selections(values: Any) -> Tuple[SelectedEntry, ...]:
    entries: List[SelectedEntry] = []
    seen: set[str] = set()
    for value in values or ():
        entry = SelectedEntry.from_value(value)
        if entry.origin is SelectionOrigin.TRIGGERED or entry.key in seen:
            continue
        seen.add(entry.key)
        entries.append(entry)
    return tuple(entries)


@dataclass(frozen=True, slots=True)
class CharacterBuild:
    """A finalised, immutable character configuration.

    Only direct and drawn selections are stored; triggered traits are derived
    again from ``attributes`` whenever the build is reopened.
    """

    id: str
    name: str
    talent_tier: str
    attributes: AttributeSet
    traits: Tuple[SelectedEntry, ...] = ()
    skills: Tuple[SelectedEntry, ...] = ()
    origin: str = ""
    custom_realm: str = ""
    note: str = ""
    created_at: float = 0.0
    character: CharacterInfo = field(default_factory=CharacterInfo)
    location: LocationInfo = field(default_factory=LocationInfo)
    # Definitions for any player-authored keys in ``traits``.
    custom_traits: Tuple[CustomTrait, ...] = ()

    def trait_keys(self) -> Tuple[str, ...]:
        return tuple(entry.key for entry in self.traits)

    def skill_keys(self) -> Tuple[str, ...]:
        return tuple(entry.key for entry in self.skills)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "talent_tier": self.talent_tier,
            "created_at": self.created_at,
            "origin": self.origin,
            "custom_realm": self.custom_realm,
            "note": self.note,
            "attributes": self.attributes.to_dict(),
            "traits": [entry.to_dict() for entry in self.traits],
            "skills": [entry.to_dict() for entry in self.skills],
            "character": self.character.to_dict(),
            "location": self.location.to_dict(),
            "custom_traits": [trait.to_dict() for trait in self.custom_traits],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CharacterBuild":
        """Read a stored build, filling documented defaults for missing fields.

        Raises :class:`MalformedBuild` when an identity field is missing or a
        field has an unusable shape.
        """

        if not isinstance(data, Mapping):
            raise MalformedBuild(["Build record must be a mapping"])
        try:
            payload = CharacterBuildValidator.validate(normalize_build_keys(data))
        except ModelValidationError as exc:
            raise MalformedBuild(exc.errors) from exc
        try:
            traits = _coerce_selections(payload.get("traits"))
            skills = _coerce_selections(payload.get("skills"))
            custom_traits = tuple(
                CustomTrait.from_dict(item) for item in payload.get("custom_traits") or ()
            )
        except ModelValidationError as exc:
            raise MalformedBuild(exc.errors) from exc
        except ValueError as exc:
            raise MalformedBuild([str(exc)]) from exc
        name = payload["name"].strip()
        return cls(
            id=payload["id"].strip(),
            name=name,
            talent_tier=payload["talent_tier"].strip(),
            attributes=AttributeSet.from_mapping(payload["attributes"]).clamped(),
            traits=traits,
            skills=skills,
            origin=str(payload.get("origin") or ""),
            custom_realm=str(payload.get("custom_realm") or ""),
            note=str(payload.get("note") or ""),
            created_at=_coerce_timestamp(payload.get("created_at")),
            character=CharacterInfo.from_dict(payload.get("character"), default_name=name),
            location=LocationInfo.from_dict(payload.get("location")),
            custom_traits=custom_traits,
        )


class CharacterBuildValidator(ModelValidator):
    model = CharacterBuild
    fields = {
        "id": FieldSpec(is_non_empty_str, "a non-empty build id"),
        "name": FieldSpec(is_non_empty_str, "a non-empty build name"),
        "talent_tier": FieldSpec(is_non_empty_str, "a talent tier id"),
        "attributes": FieldSpec(dict, "a mapping of attribute values"),
        "traits": FieldSpec(SequenceSpec((str, dict)), "a list of traits", required=False),
        "skills": FieldSpec(SequenceSpec((str, dict)), "a list of skills", required=False),
        "character": FieldSpec(dict, "character details", required=False),
        "location": FieldSpec(dict, "starting location", required=False),
        "custom_traits": FieldSpec(
            SequenceSpec(dict), "a list of custom trait definitions", required=False
        ),
    }


__all__ = [
    "CUSTOM_ORIGIN_ID",
    "CharacterBuild",
    "CharacterInfo",
    "CustomTrait",
    "DEFAULT_ORIGIN_CULTIVATION",
    "DEFAULT_ORIGIN_REALM",
    "LEGACY_BUILD_KEYS",
    "LocationInfo",
    "OriginOption",
    "SelectedEntry",
    "Selection",
    "SelectionOrigin",
    "TalentTier",
    "normalize_build_keys",
]
