"""Representation and area summaries for a solved problem."""
from dataclasses import dataclass
from typing import Dict, List

from .model import Problem
from .ortools_solver import Solution

# Slack allowed when deciding whether a target was met.
TARGET_TOLERANCE = 1e-6


@dataclass(frozen=True)
class FeatureRepresentation:
    name: str
    total_amount: float
    held_amount: float
    relative_held: float  # 0..1
    target: float         # 0..1
    met: bool


@dataclass(frozen=True)
class EvaluationSummary:
    features: List[FeatureRepresentation]
    selected_cells: int
    planning_units: int
    area_fraction: float
    total_cost: float

    def by_name(self) -> Dict[str, FeatureRepresentation]:
        return {f.name: f for f in self.features}

    @property
    def all_targets_met(self) -> bool:
        return all(f.met for f in self.features)

    def table(self) -> List[Dict]:
        """Rows keyed by feature name, percentages in 0..100."""
        return [
            {
                'feature': f.name,
                'total_amount': f.total_amount,
                'held_amount': f.held_amount,
                'held_pct': f.relative_held * 100.0,
                'target_pct': f.target * 100.0,
                'met': f.met,
            }
            for f in self.features
        ]


def evaluate_solution(problem: Problem, solution: Solution) -> EvaluationSummary:
    """Fraction of each feature held by the selected cells, and the selected share of the planning area."""
    mask = problem.grid.mask
    selected = solution.selected & mask

    reps: List[FeatureRepresentation] = []
    for f in problem.features:
        total = f.total
        held = float(f.values[selected].sum())
        rel = held / total if total > 0 else 0.0
        target = problem.targets[f.name]
        reps.append(FeatureRepresentation(
            name=f.name,
            total_amount=total,
            held_amount=held,
            relative_held=rel,
            target=target,
            met=rel >= target - TARGET_TOLERANCE,
        ))

    n_sel = int(selected.sum())
    n_units = int(mask.sum())
    return EvaluationSummary(
        features=reps,
        selected_cells=n_sel,
        planning_units=n_units,
        area_fraction=(n_sel / n_units) if n_units > 0 else 0.0,
        total_cost=float(problem.cost.values[selected].sum()),
    )
