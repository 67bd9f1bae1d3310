#!/usr/bin/env python3
"""Render the realm ladder or the attribute cost curves as a chart."""

from __future__ import annotations

import argparse
from pathlib import Path
import sys

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import networkx as nx
from matplotlib.lines import Line2D

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from jianghu.content import GameContent, load_content, DEFAULT_CONTENT_DIR
from jianghu.models.attributes import Attribute
from jianghu.models.progression import MAJOR_REALM_ORDER, RealmLadder, iter_realm_stages

# One colour per major realm, lowest first.
MAJOR_COLOURS = (
    "#a8a29e",
    "#4ade80",
    "#60a5fa",
    "#c084fc",
    "#fbbf24",
    "#f87171",
    "#e879f9",
)


def _stage_label(stage) -> str:
    # Default matplotlib fonts lack CJK glyphs.
    return f"{stage.major.name.replace('_', ' ').title()}\n{stage.minor.name.title()}"


def build_realm_graph(ladder: RealmLadder) -> nx.DiGraph:
    """Directed chain of the 28 stages; each edge carries its entry cost."""

    graph = nx.DiGraph()
    for stage in iter_realm_stages():
        graph.add_node(
            stage.level,
            label=_stage_label(stage),
            major=stage.major.order_index,
            minor=stage.minor.order_index,
        )
        upcoming = stage.next()
        if upcoming is not None:
            graph.add_edge(stage.level, upcoming.level, cost=ladder.entry_cost(upcoming))
    return graph


def render_realm_ladder(content: GameContent, output_path: Path, dpi: int, size: float) -> None:
    graph = build_realm_graph(content.realm_ladder)
    pos = {
        node: (data["minor"], -data["major"]) for node, data in graph.nodes(data=True)
    }

    plt.figure(figsize=(size, size * 1.4), dpi=dpi)
    nx.draw_networkx_nodes(
        graph,
        pos,
        node_color=[MAJOR_COLOURS[graph.nodes[node]["major"]] for node in graph.nodes],
        node_size=1400,
        linewidths=0.5,
        edgecolors="#333333",
    )
    nx.draw_networkx_labels(
        graph, pos, labels={node: data["label"] for node, data in graph.nodes(data=True)}, font_size=6
    )
    nx.draw_networkx_edges(graph, pos, arrows=True, arrowsize=8, alpha=0.6, connectionstyle="arc3,rad=0.1")
    nx.draw_networkx_edge_labels(
        graph,
        pos,
        edge_labels={(a, b): f"{data['cost']:,}" for a, b, data in graph.edges(data=True)},
        font_size=5,
    )

    legend_handles = [
        Line2D([], [], marker="o", linestyle="", color=colour, label=major.name.replace("_", " ").title())
        for major, colour in zip(MAJOR_REALM_ORDER, MAJOR_COLOURS)
    ]
    plt.legend(handles=legend_handles, loc="upper left", frameon=False, fontsize=7)
    plt.axis("off")
    plt.tight_layout()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, bbox_inches="tight")
    plt.close()


def render_attribute_curves(content: GameContent, output_path: Path, dpi: int, size: float) -> None:
    fig, axis = plt.subplots(figsize=(size, size * 0.6), dpi=dpi)
    for label, attribute, colour in (
        ("Standard attributes", Attribute.BRAWN, "#d85c27"),
        ("Luck", Attribute.LUCK, "#1f77b4"),
    ):
        table = content.cost_model.table_for(attribute)
        ladder = table.ladder()
        axis.step(list(ladder), list(ladder.values()), where="mid", color=colour, label=label)
        axis.axvline(table.baseline, color=colour, linestyle="dotted", linewidth=0.8)
    axis.axhline(0, color="#7f7f7f", linewidth=0.5)
    axis.set_xlabel("Attribute value")
    axis.set_ylabel("Point cost")
    axis.legend(frameon=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, bbox_inches="tight")
    plt.close(fig)


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--content",
        type=Path,
        default=DEFAULT_CONTENT_DIR,
        help="Directory holding the TOML content files.",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path("img/realm-ladder.png"),
        help="Where to write the rendered image.",
    )
    parser.add_argument("--dpi", type=int, default=200, help="Rendering DPI for the figure.")
    parser.add_argument("--size", type=float, default=8.0, help="Figure width in inches.")
    parser.add_argument(
        "--mode",
        choices=("realms", "attributes"),
        default="realms",
        help="Draw the realm ladder graph or the attribute cost curves.",
    )

    args = parser.parse_args()
    content = load_content(args.content)
    if args.mode == "realms":
        render_realm_ladder(content, args.output, dpi=args.dpi, size=args.size)
    else:
        render_attribute_curves(content, args.output, dpi=args.dpi, size=args.size)


if __name__ == "__main__":
    main()
