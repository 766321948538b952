"""
Flowchart of a model: actors as nodes, channels as labelled edges.

Bootstrapped actors are drawn in a different colour and bootstrap-broken
feedback edges are dashed.
"""

from __future__ import annotations
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import networkx as nx
from matplotlib.axes import Axes
from matplotlib.figure import Figure

if TYPE_CHECKING:
    from aoloop.core.model import Model

NODE_COLOR = "#31688e"
BOOTSTRAP_COLOR = "#c8553d"


def plot_flowchart(
    model: "Model",
    path: str | Path | None = None,
    ax: Axes | None = None,
    figsize: tuple[float, float] = (10, 6),
) -> tuple[Figure, Axes]:
    """
    Draw the actor graph of `model`.

    Args:
        model: Model to draw (checked or not)
        path: Save the figure there if given
        ax: Existing axes (creates new if None)
        figsize: Figure size if creating a new figure

    Returns:
        (fig, ax) tuple
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.figure

    graph = model.graph()
    broken = model.broken_edges if model.checked else set()

    # Layered layout along the schedule when there is one
    if model.checked:
        for depth, name in enumerate(model.schedule):
            graph.nodes[name]["layer"] = depth
        pos = nx.multipartite_layout(graph, subset_key="layer")
    else:
        pos = nx.spring_layout(graph, seed=0)

    colors = [
        BOOTSTRAP_COLOR if graph.nodes[n]["bootstrap"] else NODE_COLOR
        for n in graph.nodes
    ]
    nx.draw_networkx_nodes(graph, pos, ax=ax, node_color=colors, node_size=1800)
    nx.draw_networkx_labels(graph, pos, ax=ax, font_color="white", font_size=8)

    forward = [e for e in graph.edges if e not in broken]
    if forward:
        nx.draw_networkx_edges(graph, pos, edgelist=forward, ax=ax, node_size=1800, arrowsize=15)
    if broken:
        nx.draw_networkx_edges(
            graph, pos, edgelist=sorted(broken), ax=ax, node_size=1800, arrowsize=15,
            style="dashed", connectionstyle="arc3,rad=0.3",
        )
    labels = {e: ", ".join(graph.edges[e]["tags"]) for e in graph.edges}
    nx.draw_networkx_edge_labels(graph, pos, edge_labels=labels, ax=ax, font_size=7)

    ax.set_title(model.name)
    ax.set_axis_off()

    if path is not None:
        save_figure(fig, path)
    return fig, ax


def save_figure(fig: Figure, path: str | Path, dpi: int = 150, **kwargs) -> None:
    """Save figure to file."""
    fig.savefig(path, dpi=dpi, bbox_inches="tight", **kwargs)
