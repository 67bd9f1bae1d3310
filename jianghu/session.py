"""The character-creation session: one ledger fed by attributes, picks and draws."""

from __future__ import annotations

import logging
import random
import time
import uuid
from pathlib import Path
from typing import Dict, Optional, Tuple

from .config import EngineConfig
from .content import DEFAULT_CONTENT_DIR, GameContent, default_content, load_content
from .draws import DrawOutcome, RandomSource
from .errors import InsufficientBudget, NotPurchasable
from .ledger import BudgetLedger, BudgetState, LedgerLine
from .models.attributes import Attribute, AttributeSet
from .models.build import (
    CUSTOM_ORIGIN_ID,
    CharacterBuild,
    CharacterInfo,
    CustomTrait,
    LocationInfo,
    SelectedEntry,
    Selection,
    SelectionOrigin,
    TalentTier,
)
from .models.catalog import CatalogCategory, CatalogEntry, ThresholdEngine
from .models.progression import parse_realm

log = logging.getLogger(__name__)


def _line_for(category: CatalogCategory) -> LedgerLine:
    return LedgerLine(category.value)


class BuildSession:
    """Mutable build state behind the creation wizard.

    All mutations run under the ledger's lock so that the affordability check
    and the resulting debit can never interleave with another request.
    """

    def __init__(
        self,
        content: GameContent,
        tier: TalentTier | str,
        rng: Optional[RandomSource] = None,
    ) -> None:
        self._content = content
        self._tier = tier if isinstance(tier, TalentTier) else content.tier(tier)
        self._rng: RandomSource = rng if rng is not None else random.Random()
        self._thresholds = ThresholdEngine(content.catalog)
        self.ledger = BudgetLedger(self._tier.total_points)
        self._attributes = content.cost_model.baseline()
        self._selections = {category: Selection() for category in CatalogCategory}
        self._custom_traits: Dict[str, CustomTrait] = {}
        self._refresh_triggered()

    @classmethod
    def from_config(
        cls,
        config: EngineConfig,
        tier: TalentTier | str | None = None,
        rng: Optional[RandomSource] = None,
    ) -> "BuildSession":
        """Start a session on the configured content and default tier."""

        if Path(config.content_dir).resolve() == DEFAULT_CONTENT_DIR:
            content = default_content()
        else:
            content = load_content(config.content_dir)
        return cls(content, tier or config.default_tier, rng)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def content(self) -> GameContent:
        return self._content

    @property
    def tier(self) -> TalentTier:
        return self._tier

    @property
    def attributes(self) -> AttributeSet:
        return self._attributes

    @property
    def traits(self) -> Selection:
        return self._selections[CatalogCategory.TRAITS]

    @property
    def skills(self) -> Selection:
        return self._selections[CatalogCategory.SKILLS]

    def selection(self, category: CatalogCategory | str) -> Selection:
        return self._selections[CatalogCategory.from_value(category)]

    def budget(self) -> BudgetState:
        return self.ledger.state()

    def remaining(self) -> int:
        return self.ledger.remaining()

    def triggered(self, category: CatalogCategory | str = CatalogCategory.TRAITS) -> Tuple[str, ...]:
        return tuple(entry.key for entry in self.selection(category).by_origin(SelectionOrigin.TRIGGERED))

    # ------------------------------------------------------------------
    # Talent tier
    # ------------------------------------------------------------------

    def change_tier(self, tier: TalentTier | str) -> BudgetState:
        tier = tier if isinstance(tier, TalentTier) else self._content.tier(tier)
        with self.ledger.lock:
            state = self.ledger.set_total(tier.total_points)
            self._tier = tier
        return state

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def set_attribute(self, attribute: Attribute | str, value: int) -> bool:
        """Move one attribute; returns ``False`` if the budget cannot pay.

        An out-of-range ``value`` raises :class:`OutOfRange`.
        """

        attribute = Attribute.from_value(attribute)
        value = int(value)
        model = self._content.cost_model
        model.check(attribute, value)
        with self.ledger.lock:
            current = self._attributes.get(attribute)
            delta = model.cost(attribute, value) - model.cost(attribute, current)
            if not self.ledger.can_afford(delta):
                log.debug(
                    "Refused %s %s -> %s: needs %s, %s left",
                    attribute.value,
                    current,
                    value,
                    delta,
                    self.ledger.remaining(),
                )
                return False
            self.ledger.apply(LedgerLine.ATTRIBUTES, delta)
            self._attributes = self._attributes.with_value(attribute, value)
            self._refresh_triggered()
        return True

    def adjust_attribute(self, attribute: Attribute | str, step: int) -> bool:
        """Slider-style nudge; stops silently at the range ends."""

        attribute = Attribute.from_value(attribute)
        table = self._content.cost_model.table_for(attribute)
        target = self._attributes.get(attribute) + int(step)
        if not table.contains(target):
            return False
        return self.set_attribute(attribute, target)

    def _refresh_triggered(self) -> None:
        for category, selection in self._selections.items():
            keys = self._thresholds.evaluate_keys(self._attributes, category)
            gained, lost = selection.replace_triggered(keys)
            if gained or lost:
                log.debug("Triggered %s changed: +%s -%s", category.value, gained, lost)

    # ------------------------------------------------------------------
    # Direct selections
    # ------------------------------------------------------------------

    def _direct_cost(self, category: CatalogCategory, key: str) -> int:
        custom = self._custom_traits.get(key) if category is CatalogCategory.TRAITS else None
        if custom is not None:
            return custom.cost
        entry = self._content.catalog.get(category, key)
        if entry.is_triggered:
            raise NotPurchasable(key)
        return entry.cost

    def select(self, category: CatalogCategory | str, key: str) -> BudgetState:
        category = CatalogCategory.from_value(category)
        selection = self._selections[category]
        with self.ledger.lock:
            cost = self._direct_cost(category, key)
            if key in selection:
                raise ValueError(f"{key} is already selected")
            state = self.ledger.apply(_line_for(category), cost)
            selection.add(SelectedEntry(key, SelectionOrigin.DIRECT))
        return state

    def remove(self, category: CatalogCategory | str, key: str) -> BudgetState:
        """Drop a direct pick and refund it.

        Drawn or triggered entries raise :class:`Irrevocable`.  Dropping a
        negative-cost trait takes its refund back and is budget-checked.
        """

        category = CatalogCategory.from_value(category)
        selection = self._selections[category]
        with self.ledger.lock:
            current = selection.get(key)
            if current is None:
                raise KeyError(key)
            if current.origin is SelectionOrigin.DIRECT:
                state = self.ledger.apply(_line_for(category), -self._direct_cost(category, key))
            else:
                state = self.ledger.state()
            selection.remove(key)
        return state

    def toggle(self, category: CatalogCategory | str, key: str) -> bool:
        """Select ``key`` or drop it again; returns whether it is now selected."""

        with self.ledger.lock:
            if key in self.selection(category):
                self.remove(category, key)
                return False
            self.select(category, key)
            return True

    def toggle_trait(self, key: str) -> bool:
        return self.toggle(CatalogCategory.TRAITS, key)

    def toggle_skill(self, key: str) -> bool:
        return self.toggle(CatalogCategory.SKILLS, key)

    # ------------------------------------------------------------------
    # Custom traits
    # ------------------------------------------------------------------

    @property
    def custom_traits(self) -> Tuple[CustomTrait, ...]:
        return tuple(self._custom_traits.values())

    def add_custom_trait(self, name: str, description: str, cost: int = 0) -> CustomTrait:
        """Define a player-authored trait for this session.

        The shared catalog is left untouched; the new trait only becomes a
        pick once :meth:`select` is called with its name.  Names must not
        clash with any catalog trait or earlier custom trait.
        """

        trait = CustomTrait.from_dict({"name": name, "description": description, "cost": int(cost)})
        with self.ledger.lock:
            if trait.name in self._custom_traits or self._is_catalog_trait(trait.name):
                raise ValueError(f"A trait named {trait.name} already exists")
            self._custom_traits[trait.name] = trait
        log.debug("Defined custom trait %s (cost %s)", trait.name, trait.cost)
        return trait

    def delete_custom_trait(self, name: str) -> BudgetState:
        """Forget a custom trait, dropping and refunding it first if picked."""

        with self.ledger.lock:
            if name not in self._custom_traits:
                raise KeyError(name)
            if name in self.traits:
                state = self.remove(CatalogCategory.TRAITS, name)
            else:
                state = self.ledger.state()
            del self._custom_traits[name]
        return state

    def _is_catalog_trait(self, name: str) -> bool:
        if (CatalogCategory.TRAITS, name) in self._content.catalog:
            return True
        return any(entry.name == name for entry in self._content.catalog.entries(CatalogCategory.TRAITS))

    def draw(self, pool_id: str) -> DrawOutcome:
        pool = self._content.draw_pool(pool_id)
        return pool.draw(self._selections[pool.spec.category], self.ledger, self._rng)

    # ------------------------------------------------------------------
    # Finalising and reopening
    # ------------------------------------------------------------------

    def finalize(
        self,
        name: str,
        *,
        build_id: Optional[str] = None,
        origin: str = "",
        custom_realm: str = "",
        note: str = "",
        character: Optional[CharacterInfo] = None,
        location: Optional[LocationInfo] = None,
        created_at: Optional[float] = None,
    ) -> CharacterBuild:
        """Freeze the current state into an immutable :class:`CharacterBuild`."""

        if not name or not name.strip():
            raise ValueError("A build needs a name")
        if origin == CUSTOM_ORIGIN_ID:
            custom_realm = parse_realm(custom_realm).label
        with self.ledger.lock:
            remaining = self.ledger.remaining()
            if remaining < 0:
                raise InsufficientBudget(self.ledger.consumed(), self.ledger.total_points)
            return CharacterBuild(
                id=build_id or f"build_{uuid.uuid4().hex[:12]}",
                name=name.strip(),
                talent_tier=self._tier.id,
                attributes=self._attributes,
                traits=self.traits.persisted(),
                skills=self.skills.persisted(),
                origin=origin,
                custom_realm=custom_realm if origin == CUSTOM_ORIGIN_ID else "",
                note=note,
                created_at=time.time() if created_at is None else float(created_at),
                character=character or CharacterInfo(name=name.strip()),
                location=location or LocationInfo(),
                custom_traits=self.custom_traits,
            )

    @classmethod
    def from_build(
        cls,
        content: GameContent,
        build: CharacterBuild,
        rng: Optional[RandomSource] = None,
    ) -> "BuildSession":
        """Reopen a saved build for editing by replaying its ledger.

        A stored key missing from the catalog raises ``KeyError``; a build
        whose replayed spending exceeds its tier raises
        :class:`InsufficientBudget`.
        """

        session = cls(content, build.talent_tier, rng)
        for custom in build.custom_traits:
            session.add_custom_trait(custom.name, custom.description, custom.cost)
        model = content.cost_model
        model.validate(build.attributes)
        changes = {line: 0 for line in LedgerLine}
        changes[LedgerLine.ATTRIBUTES] = model.total_cost(build.attributes)
        stored = (
            (CatalogCategory.TRAITS, build.traits),
            (CatalogCategory.SKILLS, build.skills),
        )
        for category, entries in stored:
            for selected in entries:
                if category is CatalogCategory.TRAITS and selected.key in session._custom_traits:
                    changes[LedgerLine.TRAITS] += session._custom_traits[selected.key].cost
                    session._selections[category].add(selected)
                    continue
                entry: CatalogEntry = content.catalog.get(category, selected.key)
                if entry.is_triggered:
                    raise NotPurchasable(selected.key)
                if selected.origin is SelectionOrigin.DRAWN:
                    changes[LedgerLine.DRAWS] += selected.fee
                    if entry.cost < 0:
                        changes[_line_for(category)] += entry.cost
                else:
                    changes[_line_for(category)] += entry.cost
                session._selections[category].add(selected)

        session.ledger.apply_many(changes)
        session._attributes = build.attributes
        session._refresh_triggered()
        return session


__all__ = ["BuildSession"]
