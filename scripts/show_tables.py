#!/usr/bin/env python3
"""Print the configured balance tables for designers tuning the content files."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jianghu.config import EngineConfig
from jianghu.content import GameContent, load_content
from jianghu.models.attributes import Attribute
from jianghu.models.build import Selection
from jianghu.models.catalog import CatalogCategory, SKILL_RANK_ORDER
from jianghu.models.progression import MASTERY_ORDER, iter_realm_stages

log = logging.getLogger("show_tables")


def _attribute_lines(content: GameContent) -> list[str]:
    lines = ["Attribute ladders (value: cost)"]
    for label, attribute in (("standard", Attribute.BRAWN), ("luck", Attribute.LUCK)):
        ladder = content.cost_model.table_for(attribute).ladder()
        cells = " ".join(f"{value}:{cost}" for value, cost in ladder.items())
        lines.append(f"  {label:<8} {cells}")
    return lines


def _realm_lines(content: GameContent) -> list[str]:
    lines = ["Realm entry costs"]
    for stage in iter_realm_stages():
        cost = content.realm_ladder.entry_cost(stage)
        lines.append(f"  {stage.level:>2} {stage.label:<8} {cost:>8}")
    return lines


def _mastery_lines(content: GameContent, insight: int | None) -> list[str]:
    header = " ".join(f"{level.value:>6}" for level in MASTERY_ORDER[:-1])
    lines = [f"Mastery upgrade costs (insight={insight})", f"  {'':<4} {header}"]
    for rank in SKILL_RANK_ORDER:
        costs = " ".join(
            f"{content.mastery_table.upgrade_cost(rank, level, insight):>10}"
            for level in MASTERY_ORDER[:-1]
        )
        lines.append(f"  {rank.value:<4} {costs}")
    return lines


def _budget_lines(content: GameContent) -> list[str]:
    lines = ["Talent tiers"]
    for tier in content.talent_tiers.values():
        lines.append(f"  {tier.id:<10} {tier.total_points:>3}  {tier.name}")
    lines.append("Draw pools")
    for pool in content.pools.values():
        size = len(content.draw_pool(pool.id).candidates(Selection()))
        lines.append(f"  {pool.id:<16} fee {pool.fee:>2}  {size:>3} entries")
    lines.append("Direct skill prices")
    for rank in SKILL_RANK_ORDER:
        lines.append(f"  {rank.value:<4} {content.skill_rank_costs[rank]:>3}")
    triggered = sum(1 for entry in content.catalog.entries(CatalogCategory.TRAITS) if entry.is_triggered)
    lines.append(f"Threshold traits: {triggered}")
    return lines


def main() -> None:
    config = EngineConfig.from_env()
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--content",
        type=Path,
        default=config.content_dir,
        help="Directory holding the TOML content files.",
    )
    parser.add_argument(
        "--insight",
        type=int,
        default=config.default_insight,
        help="Insight value used for the mastery cost table.",
    )
    parser.add_argument(
        "--section",
        choices=("all", "attributes", "realms", "mastery", "budget"),
        default="all",
        help="Print only one of the tables.",
    )
    args = parser.parse_args()
    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")

    content = load_content(args.content)
    sections = {
        "attributes": lambda: _attribute_lines(content),
        "realms": lambda: _realm_lines(content),
        "mastery": lambda: _mastery_lines(content, args.insight),
        "budget": lambda: _budget_lines(content),
    }
    chosen = sections if args.section == "all" else {args.section: sections[args.section]}
    for name, render in chosen.items():
        log.debug("Rendering %s", name)
        print("\n".join(render()))
        print()


if __name__ == "__main__":
    main()
