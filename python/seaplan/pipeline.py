"""Run the whole workflow: region -> grid -> layers -> problem -> solution -> evaluation."""
from dataclasses import dataclass
from typing import List, Optional
import logging

from .cost import distance_to_shore, load_cost_raster, uniform_cost
from .data import Boundary, read_geometries, resolve_region
from .errors import ValidationError
from .evaluate import EvaluationSummary, evaluate_solution
from .features import burn_geometries, load_features
from .grid import PlanningGrid, build_grid
from .layers import Layer, remove_empty_layers
from .model import Problem, formulate_problem
from .options import RunConfig
from .ortools_solver import Solution, SolverOptions, solve_min_set


logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    boundary: Boundary
    grid: PlanningGrid
    features: List[Layer]
    dropped: List[str]
    cost: Layer
    problem: Problem
    solution: Solution
    summary: EvaluationSummary


def load_cost(grid: PlanningGrid, config: RunConfig) -> Layer:
    if config.land and config.cost_raster:
        raise ValidationError("Give either a land layer or a cost raster, not both.")
    if config.land:
        return distance_to_shore(grid, config.land, pad_cells=config.shore_pad_cells)
    if config.cost_raster:
        return load_cost_raster(grid, config.cost_raster)
    logger.warning("No cost source configured; using uniform cost")
    return uniform_cost(grid)


def load_lock_mask(grid: PlanningGrid, source: Optional[str]):
    """Cells whose centre lies inside any polygon of `source`, or None without a source."""
    if not source:
        return None
    geoms = [g for _props, g in read_geometries(source, crs=grid.crs)]
    return burn_geometries(grid, geoms).astype(bool) & grid.mask


def run_pipeline(config: RunConfig) -> PipelineResult:
    """Execute every stage in order. Any failure propagates and ends the run."""
    if not config.boundary or not config.region_name:
        raise ValidationError("A boundary source and a region name are required.")
    if not config.features:
        raise ValidationError("At least one feature source is required.")

    boundary = resolve_region(config.boundary, config.region_name, key=config.region_key,
                              layer=config.region_layer, dissolve=config.dissolve)
    logger.info("Stage: boundary fetched (%s)", boundary.name)

    grid = build_grid(boundary, config.crs, config.resolution)
    logger.info("Stage: grid built (%d x %d)", *grid.shape)

    loaded = load_features(grid, config.features)
    features = remove_empty_layers(loaded)
    kept = {f.name for f in features}
    dropped = [f.name for f in loaded if f.name not in kept]
    cost = load_cost(grid, config)
    logger.info("Stage: layers loaded (%d features, %d dropped)", len(features), len(dropped))

    target = config.target
    if isinstance(target, dict):
        # targets for dropped features no longer apply
        target = {k: v for k, v in target.items() if k not in dropped}
    problem = formulate_problem(cost, features, target, locked_in=load_lock_mask(grid, config.locked_in),
                                locked_out=load_lock_mask(grid, config.locked_out),
                                default_target=config.default_target)
    logger.info("Stage: problem formulated")

    options = SolverOptions(backend=config.backend, time_limit=config.time_limit, workers=config.workers,
                            gap=config.gap)
    solution = solve_min_set(problem, options)
    logger.info("Stage: solved (%s)", solution.status)

    summary = evaluate_solution(problem, solution)
    logger.info("Stage: evaluated (%.1f%% of planning area selected)", summary.area_fraction * 100.0)
    return PipelineResult(boundary=boundary, grid=grid, features=features, dropped=dropped, cost=cost,
                          problem=problem, solution=solution, summary=summary)
