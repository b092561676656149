"""Maps of the planning layers and of a solution."""
import math
import os
from typing import Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.colors import ListedColormap
from matplotlib.patches import Patch

from .data import Boundary
from .layers import Layer
from .model import Problem
from .ortools_solver import Solution


def _outline(ax, boundary: Optional[Boundary], crs) -> None:
    if boundary is None:
        return
    geom = boundary.to_crs(crs).geometry
    for poly in getattr(geom, 'geoms', [geom]):
        xs, ys = poly.exterior.xy
        ax.plot(xs, ys, color="black", linewidth=0.8)


def _save(fig, out_path: Optional[str]):
    """Write and close the figure, or hand it back open when there is no path."""
    if out_path is None:
        return fig
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    fig.savefig(out_path, dpi=150, bbox_inches="tight")
    plt.close(fig)
    return None


def plot_layers(layers: Sequence[Layer], out_path: Optional[str] = None, boundary: Optional[Boundary] = None,
                ncols: int = 3):
    """One panel per layer; cells outside the planning area are blank.

    Saves to `out_path`, or returns the figure when it is None.
    """
    if not layers:
        raise ValueError("No layers to plot.")
    n = len(layers)
    ncols = max(1, min(ncols, n))
    nrows = int(math.ceil(n / ncols))
    fig, axes = plt.subplots(nrows, ncols, figsize=(4 * ncols, 3.6 * nrows), squeeze=False)
    for ax, layer in zip(axes.flat, layers):
        grid = layer.grid
        data = np.ma.masked_where(~grid.mask, layer.values)
        im = ax.imshow(data, extent=grid.extent, origin="upper", cmap="viridis")
        _outline(ax, boundary, grid.crs)
        ax.set_title(layer.name, fontsize=9)
        ax.set_xticks([])
        ax.set_yticks([])
        fig.colorbar(im, ax=ax, fraction=0.046, pad=0.04)
    for ax in list(axes.flat)[n:]:
        ax.set_visible(False)
    return _save(fig, out_path)


def plot_solution(problem: Problem, solution: Solution, out_path: Optional[str] = None,
                  boundary: Optional[Boundary] = None, title: str = "Selected planning units"):
    grid = problem.grid
    state = np.where(solution.selected, 1, 0).astype(float)
    data = np.ma.masked_where(~grid.mask, state)

    fig, ax = plt.subplots(figsize=(8, 8))
    ax.imshow(data, extent=grid.extent, origin="upper", vmin=0, vmax=1,
              cmap=ListedColormap(["#d5dbdb", "#27ae60"]), interpolation="nearest")
    _outline(ax, boundary, grid.crs)
    pct = 100.0 * solution.n_selected / max(1, grid.n_planning_units)
    ax.set_title(f"{title}\n{solution.n_selected} of {grid.n_planning_units} cells ({pct:.1f}%), "
                 f"cost {solution.objective:.4g}")
    ax.legend(handles=[Patch(color="#27ae60", label="Selected"), Patch(color="#d5dbdb", label="Not selected")],
              loc="lower right")
    ax.set_aspect("equal")
    return _save(fig, out_path)
