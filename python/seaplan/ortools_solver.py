from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple
import logging
import math
import time

import numpy as np
from ortools.linear_solver import pywraplp
from ortools.sat.python import cp_model

from .errors import InfeasibleProblemError, SolverError, ValidationError
from .model import Problem


logger = logging.getLogger(__name__)

BACKENDS = ('cp-sat', 'scip')


@dataclass
class Scale:  # CP-SAT only takes integer coefficients
    cost: int = 1_000_000    # integer units for the largest cell cost
    amount: int = 1_000_000  # integer units for each feature's total


@dataclass
class SolverOptions:
    backend: str = 'cp-sat'
    time_limit: float = 60.0  # seconds
    workers: int = 8          # CP-SAT search workers
    gap: float = 0.0          # relative optimality gap accepted
    scale: Scale = field(default_factory=Scale)


@dataclass(frozen=True, eq=False)
class Solution:
    selected: np.ndarray  # bool, grid shape; False outside the planning area
    objective: float      # total cost of the selection, in cost-layer units
    status: str           # 'OPTIMAL' or 'FEASIBLE'
    backend: str
    runtime: float = 0.0

    @property
    def n_selected(self) -> int:
        return int(self.selected.sum())


def scale_values(values: np.ndarray, reference: float, units: int) -> List[int]:
    """Map non-negative floats to integers with `reference` -> `units`.

    Positive values never round down to zero.
    """
    if reference <= 0:
        return [0] * len(values)
    ints = np.rint(values / reference * units).astype(np.int64)
    ints[(values > 0) & (ints == 0)] = 1
    return ints.tolist()


def _validate_options(options: SolverOptions) -> None:
    if options.backend not in BACKENDS:
        raise ValidationError(f"Unknown solver backend {options.backend!r}; choose from {BACKENDS}")
    if options.time_limit <= 0:
        raise ValidationError(f"time_limit must be > 0, got {options.time_limit}")
    if options.gap < 0:
        raise ValidationError(f"gap must be >= 0, got {options.gap}")


def _locks(problem: Problem) -> Tuple[np.ndarray, np.ndarray]:
    mask = problem.grid.mask
    lin = problem.locked_in[mask] if problem.locked_in is not None else np.zeros(int(mask.sum()), dtype=bool)
    lout = problem.locked_out[mask] if problem.locked_out is not None else np.zeros(int(mask.sum()), dtype=bool)
    return lin, lout


def build_model(cost_int: Sequence[int], amounts_int: Sequence[Sequence[int]], required: Sequence[int],
                locked_in: Sequence[bool], locked_out: Sequence[bool]):
    """Build a CP-SAT min-set model over n planning units.

    - cost_int: per-unit integer cost
    - amounts_int/required: per-feature integer amounts and the amount to reach
    Returns (model, x_vars, cost_expr).
    """
    model = cp_model.CpModel()
    x_vars: List[cp_model.IntVar] = [model.new_bool_var(f"x_{i}") for i in range(len(cost_int))]

    for coeffs, req in zip(amounts_int, required):
        if req <= 0:
            continue
        idx = [i for i, c in enumerate(coeffs) if c]
        model.add(cp_model.LinearExpr.weighted_sum([x_vars[i] for i in idx], [coeffs[i] for i in idx]) >= req)

    for i, (lin, lout) in enumerate(zip(locked_in, locked_out)):
        if lin:
            model.add(x_vars[i] == 1)
        elif lout:
            model.add(x_vars[i] == 0)

    cost_expr = cp_model.LinearExpr.weighted_sum(x_vars, list(cost_int))
    model.minimize(cost_expr)
    return model, x_vars, cost_expr


def _solve(model: cp_model.CpModel, x_vars: Sequence[cp_model.IntVar], options: SolverOptions):
    solver = cp_model.CpSolver()
    solver.parameters.max_time_in_seconds = float(options.time_limit)
    solver.parameters.num_workers = int(options.workers)
    if options.gap > 0:
        solver.parameters.relative_gap_limit = float(options.gap)
    status = solver.solve(model)
    logger.debug("CP-SAT %s, objective %s, bound %s, %.2fs",
                 solver.status_name(status), solver.objective_value, solver.best_objective_bound, solver.wall_time)
    if status == cp_model.INFEASIBLE:
        raise InfeasibleProblemError("Targets cannot be met: CP-SAT proved the problem infeasible.")
    if status not in (cp_model.OPTIMAL, cp_model.FEASIBLE):
        raise SolverError(f"CP-SAT returned {solver.status_name(status)} without a solution.")
    selection = np.array([solver.boolean_value(x) for x in x_vars], dtype=bool)
    return selection, ('OPTIMAL' if status == cp_model.OPTIMAL else 'FEASIBLE')


def solve_cp_sat(problem: Problem, options: SolverOptions):
    cost = problem.cost.planning_values()
    cost_int = scale_values(cost, float(cost.max()) if cost.size else 0.0, options.scale.cost)
    amounts_int: List[List[int]] = []
    required: List[int] = []
    for f in problem.features:
        coeffs = scale_values(f.planning_values(), f.total, options.scale.amount)
        amounts_int.append(coeffs)
        # 1e-9 keeps t * total from creeping over an exactly reachable integer
        required.append(int(math.ceil(problem.targets[f.name] * sum(coeffs) - 1e-9)))
    lin, lout = _locks(problem)
    model, x, _cost_expr = build_model(cost_int, amounts_int, required, lin, lout)
    return _solve(model, x, options)


def solve_scip(problem: Problem, options: SolverOptions):
    solver = pywraplp.Solver.CreateSolver('SCIP')
    if solver is None:
        raise SolverError("SCIP is not available in this OR-Tools build.")
    cost = problem.cost.planning_values()
    x = [solver.BoolVar(f"x_{i}") for i in range(cost.size)]

    for f in problem.features:
        amounts = f.planning_values()
        ct = solver.Constraint(problem.required_amount(f), solver.infinity(), f"target_{f.name}")
        for i in np.flatnonzero(amounts):
            ct.SetCoefficient(x[i], float(amounts[i]))

    lin, lout = _locks(problem)
    for i in np.flatnonzero(lin):
        x[i].SetBounds(1, 1)
    for i in np.flatnonzero(lout):
        x[i].SetBounds(0, 0)

    objective = solver.Objective()
    for i, c in enumerate(cost):
        objective.SetCoefficient(x[i], float(c))
    objective.SetMinimization()

    solver.SetTimeLimit(int(options.time_limit * 1000))
    params = pywraplp.MPSolverParameters()
    params.SetDoubleParam(pywraplp.MPSolverParameters.RELATIVE_MIP_GAP, float(options.gap))
    status = solver.Solve(params)
    if status == pywraplp.Solver.INFEASIBLE:
        raise InfeasibleProblemError("Targets cannot be met: SCIP proved the problem infeasible.")
    if status not in (pywraplp.Solver.OPTIMAL, pywraplp.Solver.FEASIBLE):
        raise SolverError(f"SCIP returned status {status} without a solution.")
    selection = np.array([v.solution_value() > 0.5 for v in x], dtype=bool)
    return selection, ('OPTIMAL' if status == pywraplp.Solver.OPTIMAL else 'FEASIBLE')


def solve_min_set(problem: Problem, options: Optional[SolverOptions] = None) -> Solution:
    """Solve the minimum-set problem; raises InfeasibleProblemError when targets are unattainable."""
    options = options or SolverOptions()
    _validate_options(options)
    started = time.perf_counter()
    if options.backend == 'scip':
        selection, status = solve_scip(problem, options)
    else:
        selection, status = solve_cp_sat(problem, options)
    runtime = time.perf_counter() - started

    grid = problem.grid
    selected = np.zeros(grid.shape, dtype=bool)
    selected[grid.mask] = selection
    objective = float(problem.cost.planning_values()[selection].sum())
    logger.info("%s solution (%s): %d of %d units, cost %.6g, %.2fs",
                status, options.backend, int(selection.sum()), selection.size, objective, runtime)
    return Solution(selected=selected, objective=objective, status=status, backend=options.backend, runtime=runtime)
