"""Gameplay-side progression: realm breakthroughs and skill mastery upgrades."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import EngineConfig
from .content import GameContent
from .errors import (
    InsufficientCultivation,
    TerminalMastery,
    TerminalState,
    UnrecognizedRealm,
)
from .models.build import (
    CUSTOM_ORIGIN_ID,
    DEFAULT_ORIGIN_CULTIVATION,
    DEFAULT_ORIGIN_REALM,
    CharacterBuild,
)
from .models.catalog import Catalog, CatalogCategory
from .models.progression import (
    MasteryLevel,
    MasteryTable,
    RealmLadder,
    RealmStage,
    SkillMasteryState,
    merge_unlocked,
    parse_realm,
    unlocked_features,
)

log = logging.getLogger(__name__)

TERMINAL_REALM_TOOLTIP = "已达至境巅峰，天地为尊"


@dataclass(frozen=True, slots=True)
class RealmState:
    """Read-only view of a cultivator's realm and resource."""

    stage: RealmStage
    cultivation: int


@dataclass(slots=True)
class Cultivator:
    """A finalised character's progression state.

    ``cultivation`` is the one resource both automata spend; ``lock`` guards
    every check-then-debit so two requests cannot spend the same points.
    """

    realm: RealmStage
    cultivation: int = 0
    masteries: Dict[str, SkillMasteryState] = field(default_factory=dict)
    insight: Optional[int] = None
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.realm = parse_realm(self.realm)
        self.cultivation = int(self.cultivation)
        if self.cultivation < 0:
            raise ValueError("cultivation cannot be negative")

    def state(self) -> RealmState:
        with self.lock:
            return RealmState(self.realm, self.cultivation)

    def mastery(self, skill: str) -> SkillMasteryState:
        try:
            return self.masteries[skill]
        except KeyError:
            raise KeyError(f"Skill not learned: {skill!r}") from None

    def award(self, amount: int) -> int:
        """Credit cultivation granted by the surrounding game loop."""

        amount = int(amount)
        if amount < 0:
            raise ValueError("awarded cultivation cannot be negative")
        with self.lock:
            self.cultivation += amount
            return self.cultivation

    def to_dict(self) -> Dict[str, Any]:
        with self.lock:
            payload: Dict[str, Any] = {
                "realm": self.realm.label,
                "cultivation": self.cultivation,
                "masteries": [state.to_dict() for state in self.masteries.values()],
            }
            if self.insight is not None:
                payload["insight"] = self.insight
            return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cultivator":
        states = [SkillMasteryState.from_dict(item) for item in data.get("masteries", ())]
        insight = data.get("insight")
        return cls(
            realm=parse_realm(data.get("realm", "")),
            cultivation=int(data.get("cultivation", 0)),
            masteries={state.skill: state for state in states},
            insight=None if insight is None else int(insight),
        )

    @classmethod
    def from_build(cls, build: CharacterBuild, content: GameContent) -> "Cultivator":
        """Seed the starting realm, cultivation and skills from a saved build.

        The ``custom`` origin uses the build's own realm label; an unknown
        origin falls back to 三流圆满 with 200 cultivation.
        """

        ladder = content.realm_ladder
        origin = content.origin(build.origin)
        starting_skills: Tuple[Tuple[str, MasteryLevel], ...] = ()
        if build.origin == CUSTOM_ORIGIN_ID and build.custom_realm:
            stage = parse_realm(build.custom_realm)
            cultivation = ladder.entry_cost(stage)
        elif origin is not None:
            stage = origin.realm
            cultivation = ladder.entry_cost(stage) if origin.cultivation is None else origin.cultivation
            starting_skills = origin.skills
        else:
            log.debug("Origin %r not found; using the default starting realm", build.origin)
            stage = parse_realm(DEFAULT_ORIGIN_REALM)
            cultivation = DEFAULT_ORIGIN_CULTIVATION

        cultivator = cls(realm=stage, cultivation=cultivation, insight=build.attributes.insight)
        for name, level in starting_skills:
            learn_skill(cultivator, content.catalog, name, level)
        for selected in build.skills:
            if selected.key not in cultivator.masteries:
                learn_skill(cultivator, content.catalog, selected.key)
        return cultivator


def learn_skill(
    cultivator: Cultivator,
    catalog: Catalog,
    skill: str,
    mastery: MasteryLevel | str = MasteryLevel.NOVICE,
) -> SkillMasteryState:
    """Add a skill at ``mastery`` with every feature gated at or below it."""

    entry = catalog.get(CatalogCategory.SKILLS, skill)
    level = MasteryLevel.from_value(mastery)
    state = SkillMasteryState(entry.key, level, unlocked_features(entry.mastery_traits, level))
    with cultivator.lock:
        if entry.key in cultivator.masteries:
            raise ValueError(f"{entry.key} is already learned")
        cultivator.masteries[entry.key] = state
    return state


# ---------------------------------------------------------------------------
# Realm breakthroughs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BreakthroughCheck:
    can_advance: bool
    cost: Optional[int]
    next_stage: Optional[RealmStage]
    shortfall: int = 0
    reason: str = ""


@dataclass(frozen=True, slots=True)
class BreakthroughResult:
    previous: RealmStage
    current: RealmStage
    cost: int
    cultivation: int


class ProgressionAutomaton:
    """Walks the 28-stage realm ladder, one paid step at a time."""

    def __init__(self, ladder: RealmLadder) -> None:
        self._ladder = ladder

    @property
    def ladder(self) -> RealmLadder:
        return self._ladder

    def preview(self, stage: RealmStage | str, cultivation: int) -> BreakthroughCheck:
        """Evaluate a breakthrough without changing anything.

        Accepts a free-form realm label; an unparsable one reports a reason
        instead of raising.
        """

        try:
            stage = parse_realm(stage)
        except UnrecognizedRealm as exc:
            return BreakthroughCheck(False, None, None, reason=str(exc))
        upcoming = stage.next()
        if upcoming is None:
            return BreakthroughCheck(False, None, None, reason=str(TerminalState()))
        cost = self._ladder.entry_cost(upcoming)
        if cultivation < cost:
            error = InsufficientCultivation(cost, cultivation)
            return BreakthroughCheck(False, cost, upcoming, error.shortfall, str(error))
        return BreakthroughCheck(True, cost, upcoming)

    def check(self, cultivator: Cultivator) -> BreakthroughCheck:
        with cultivator.lock:
            return self.preview(cultivator.realm, cultivator.cultivation)

    def describe(self, cultivator: Cultivator) -> str:
        result = self.check(cultivator)
        if result.next_stage is None:
            return TERMINAL_REALM_TOOLTIP if cultivator.realm.is_terminal else result.reason
        if result.can_advance:
            return f"可突破至{result.next_stage.label}，消耗 {result.cost} 点修为"
        return f"突破至{result.next_stage.label}需要 {result.cost} 点修为，{result.reason}"

    def advance(self, cultivator: Cultivator) -> BreakthroughResult:
        """Enter the next stage, paying its entry cost from cultivation.

        Raises :class:`TerminalState` at the top of the ladder and
        :class:`InsufficientCultivation` when short; either way nothing
        changes.  Any remainder of cultivation is kept.
        """

        with cultivator.lock:
            previous = cultivator.realm
            upcoming = previous.next()
            if upcoming is None:
                raise TerminalState()
            cost = self._ladder.entry_cost(upcoming)
            if cultivator.cultivation < cost:
                raise InsufficientCultivation(cost, cultivator.cultivation)
            cultivator.realm = upcoming
            cultivator.cultivation -= cost
            result = BreakthroughResult(previous, upcoming, cost, cultivator.cultivation)

        log.info(
            "Breakthrough %s -> %s (cost %s, %s left)",
            previous.label,
            upcoming.label,
            cost,
            result.cultivation,
        )
        return result


# ---------------------------------------------------------------------------
# Skill mastery
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UpgradeResult:
    skill: str
    previous: MasteryLevel
    current: MasteryLevel
    cost: int
    unlocked: Tuple[str, ...]
    cultivation: int


class MasteryAutomaton:
    """Raises one learned skill a mastery level at a time."""

    def __init__(
        self, table: MasteryTable, catalog: Catalog, *, default_insight: Optional[int] = None
    ) -> None:
        self._table = table
        self._catalog = catalog
        self._default_insight = default_insight

    @classmethod
    def from_config(cls, content: GameContent, config: EngineConfig) -> "MasteryAutomaton":
        return cls(content.mastery_table, content.catalog, default_insight=config.default_insight)

    def _insight(self, cultivator: Cultivator) -> Optional[int]:
        return self._default_insight if cultivator.insight is None else cultivator.insight

    def upgrade_cost(self, cultivator: Cultivator, skill: str) -> Optional[int]:
        state = cultivator.mastery(skill)
        entry = self._catalog.get(CatalogCategory.SKILLS, skill)
        return self._table.upgrade_cost(entry.rank, state.mastery, self._insight(cultivator))

    def upgrade(self, cultivator: Cultivator, skill: str) -> UpgradeResult:
        """Spend cultivation to raise ``skill`` one level.

        Features gated at the new level are unlocked and stay unlocked.
        Raises :class:`TerminalMastery` at the top level and
        :class:`InsufficientCultivation` when short.
        """

        entry = self._catalog.get(CatalogCategory.SKILLS, skill)
        with cultivator.lock:
            state = cultivator.mastery(skill)
            upcoming = state.mastery.next_level
            if upcoming is None:
                raise TerminalMastery(skill)
            cost = self._table.upgrade_cost(entry.rank, state.mastery, self._insight(cultivator))
            if cultivator.cultivation < cost:
                raise InsufficientCultivation(cost, cultivator.cultivation)
            unlocked = merge_unlocked(
                state.unlocked_traits, unlocked_features(entry.mastery_traits, upcoming)
            )
            gained = unlocked[len(state.unlocked_traits):]
            cultivator.masteries[skill] = SkillMasteryState(skill, upcoming, unlocked)
            cultivator.cultivation -= cost
            result = UpgradeResult(skill, state.mastery, upcoming, cost, gained, cultivator.cultivation)

        log.info(
            "Mastery %s %s -> %s (cost %s, unlocked %s)",
            skill,
            state.mastery.value,
            upcoming.value,
            cost,
            ", ".join(gained) or "nothing",
        )
        return result


__all__ = [
    "BreakthroughCheck",
    "BreakthroughResult",
    "Cultivator",
    "MasteryAutomaton",
    "ProgressionAutomaton",
    "RealmState",
    "TERMINAL_REALM_TOOLTIP",
    "UpgradeResult",
    "learn_skill",
]
