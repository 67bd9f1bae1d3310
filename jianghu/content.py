"""Loads the game's balance data and catalogs from TOML once at startup."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .derived import DerivedStatTable
from .draws import DrawPool, DrawPoolSpec
from .models._validation import ModelValidationError
from .models.attributes import AttributeCostModel
from .models.build import OriginOption, TalentTier
from .models.catalog import Catalog, CatalogCategory, CatalogEntry, SkillRank
from .models.progression import MasteryLevel, MasteryTable, RealmLadder

log = logging.getLogger(__name__)

DEFAULT_CONTENT_DIR = Path(__file__).resolve().parent / "data"

CONTENT_FILES = (
    "costs.toml",
    "traits.toml",
    "skills.toml",
    "tiers.toml",
    "pools.toml",
    "progression.toml",
)


@dataclass(frozen=True, slots=True)
class GameContent:
    """Immutable registry shared by every session and cultivator."""

    cost_model: AttributeCostModel
    catalog: Catalog
    talent_tiers: Mapping[str, TalentTier]
    origins: Mapping[str, OriginOption]
    pools: Mapping[str, DrawPoolSpec]
    realm_ladder: RealmLadder
    mastery_table: MasteryTable
    derived_table: DerivedStatTable
    skill_rank_costs: Mapping[SkillRank, int]

    def tier(self, tier_id: str) -> TalentTier:
        try:
            return self.talent_tiers[tier_id]
        except KeyError:
            raise KeyError(f"Unknown talent tier: {tier_id!r}") from None

    def origin(self, origin_id: str) -> Optional[OriginOption]:
        return self.origins.get(origin_id)

    def draw_pool(self, pool_id: str) -> DrawPool:
        try:
            spec = self.pools[pool_id]
        except KeyError:
            raise KeyError(f"Unknown draw pool: {pool_id!r}") from None
        return DrawPool(spec, self.catalog)


def _read_toml(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _index(items: Any, factory: Any, label: str) -> Mapping[str, Any]:
    indexed: Dict[str, Any] = {}
    for raw in items or ():
        item = factory(raw)
        if item.id in indexed:
            raise ModelValidationError(type(item), [f"Duplicate {label} id {item.id!r}"])
        indexed[item.id] = item
    return MappingProxyType(indexed)


def _check_skill_gates(skill: CatalogEntry) -> None:
    errors = []
    for gate, _ in skill.mastery_traits:
        try:
            MasteryLevel.from_value(gate)
        except ValueError:
            errors.append(f"{skill.key}: unknown mastery level {gate!r}")
    if errors:
        raise ModelValidationError(CatalogEntry, errors)


def _drop_unknown_origin_skills(origin: OriginOption, catalog: Catalog) -> OriginOption:
    kept = []
    for name, level in origin.skills:
        if (CatalogCategory.SKILLS, name) in catalog:
            kept.append((name, level))
        else:
            log.warning("Origin %s lists unknown skill %s; ignoring it", origin.id, name)
    if len(kept) == len(origin.skills):
        return origin
    return OriginOption(
        id=origin.id,
        name=origin.name,
        realm=origin.realm,
        category=origin.category,
        description=origin.description,
        cultivation=origin.cultivation,
        skills=tuple(kept),
    )


def load_content(directory: Path | str | None = None) -> GameContent:
    """Parse every content file under ``directory`` (default: packaged data).

    Raises ``FileNotFoundError`` for a missing file and
    :class:`ModelValidationError` or ``ValueError`` for unusable tables.
    """

    base = Path(directory) if directory is not None else DEFAULT_CONTENT_DIR
    documents = {name: _read_toml(base / name) for name in CONTENT_FILES}

    costs = documents["costs.toml"]
    cost_model = AttributeCostModel.from_dict(costs)
    rank_costs = {
        SkillRank.from_value(rank): int(price)
        for rank, price in costs.get("skill_rank_costs", {}).items()
    }
    missing = [rank.value for rank in SkillRank if rank not in rank_costs]
    if missing:
        raise ValueError(f"skill_rank_costs is missing {', '.join(missing)}")

    entries = [CatalogEntry.trait_from_dict(raw) for raw in documents["traits.toml"].get("traits", ())]
    for raw in documents["skills.toml"].get("skills", ()):
        skill = CatalogEntry.skill_from_dict(raw, rank_costs)
        _check_skill_gates(skill)
        entries.append(skill)
    catalog = Catalog(entries)

    tiers = documents["tiers.toml"]
    origins = {
        origin_id: _drop_unknown_origin_skills(origin, catalog)
        for origin_id, origin in _index(tiers.get("origins"), OriginOption.from_dict, "origin").items()
    }

    progression = documents["progression.toml"]
    content = GameContent(
        cost_model=cost_model,
        catalog=catalog,
        talent_tiers=_index(tiers.get("talent_tiers"), TalentTier.from_dict, "talent tier"),
        origins=MappingProxyType(origins),
        pools=_index(documents["pools.toml"].get("pools"), DrawPoolSpec.from_dict, "pool"),
        realm_ladder=RealmLadder.from_dict(progression["realm_costs"]),
        mastery_table=MasteryTable.from_dict(progression["mastery"]),
        derived_table=DerivedStatTable.from_dict(progression["derived"]),
        skill_rank_costs=MappingProxyType(rank_costs),
    )
    log.debug(
        "Loaded %s catalog entries, %s tiers, %s pools from %s",
        len(catalog),
        len(content.talent_tiers),
        len(content.pools),
        base,
    )
    return content


@lru_cache(maxsize=1)
def default_content() -> GameContent:
    """The packaged content, parsed once per process."""

    return load_content(DEFAULT_CONTENT_DIR)


__all__ = ["CONTENT_FILES", "DEFAULT_CONTENT_DIR", "GameContent", "default_content", "load_content"]
