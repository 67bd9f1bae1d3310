"""Rules and economy engine for a wuxia character-creation wizard.

A :class:`BuildSession` prices attributes, traits, skills and draws against a
talent tier's point budget while the threshold engine keeps attribute-granted
traits in sync.  Once a build is finalised, a :class:`Cultivator` advances
through the realm ladder and raises skill mastery by spending cultivation.
Balance data lives in TOML under ``jianghu/data`` and is loaded once through
:func:`default_content` or :func:`load_content`.
"""

from __future__ import annotations

from .config import EngineConfig
from .content import GameContent, default_content, load_content
from .cultivation import (
    BreakthroughCheck,
    BreakthroughResult,
    Cultivator,
    MasteryAutomaton,
    ProgressionAutomaton,
    RealmState,
    UpgradeResult,
    learn_skill,
)
from .derived import DerivedStats, derive_stats
from .draws import DrawOutcome, DrawPool, DrawPoolSpec
from .errors import (
    EmptyPool,
    InsufficientBudget,
    InsufficientCultivation,
    Irrevocable,
    MalformedBuild,
    NotPurchasable,
    OutOfRange,
    RulesError,
    TerminalMastery,
    TerminalState,
    UnrecognizedRealm,
)
from .ledger import BudgetLedger, BudgetState, LedgerLine
from .models.attributes import Attribute, AttributeCostModel, AttributeSet
from .models.build import (
    CharacterBuild,
    CustomTrait,
    SelectedEntry,
    Selection,
    SelectionOrigin,
    TalentTier,
)
from .models.catalog import Catalog, CatalogCategory, CatalogEntry, SkillRank, ThresholdEngine
from .models.progression import MasteryLevel, RealmStage, SkillMasteryState, parse_realm
from .session import BuildSession
from .storage import BuildRepository, DataStore

__all__ = [
    "Attribute",
    "AttributeCostModel",
    "AttributeSet",
    "BreakthroughCheck",
    "BreakthroughResult",
    "BudgetLedger",
    "BudgetState",
    "BuildRepository",
    "BuildSession",
    "Catalog",
    "CatalogCategory",
    "CatalogEntry",
    "CharacterBuild",
    "CustomTrait",
    "Cultivator",
    "DataStore",
    "DerivedStats",
    "DrawOutcome",
    "DrawPool",
    "DrawPoolSpec",
    "EmptyPool",
    "EngineConfig",
    "GameContent",
    "InsufficientBudget",
    "InsufficientCultivation",
    "Irrevocable",
    "LedgerLine",
    "MalformedBuild",
    "MasteryAutomaton",
    "MasteryLevel",
    "NotPurchasable",
    "OutOfRange",
    "ProgressionAutomaton",
    "RealmStage",
    "RealmState",
    "RulesError",
    "SelectedEntry",
    "Selection",
    "SelectionOrigin",
    "SkillMasteryState",
    "SkillRank",
    "TalentTier",
    "TerminalMastery",
    "TerminalState",
    "ThresholdEngine",
    "UnrecognizedRealm",
    "UpgradeResult",
    "default_content",
    "derive_stats",
    "learn_skill",
    "load_content",
    "parse_realm",
]
