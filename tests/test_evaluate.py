"""Tests for seaplan.evaluate"""

import numpy as np
import pytest

from seaplan.cost import uniform_cost
from seaplan.evaluate import evaluate_solution
from seaplan.layers import Layer
from seaplan.model import formulate_problem
from seaplan.ortools_solver import Solution

from conftest import make_grid


def _problem(mask=None, target=0.5):
    grid = make_grid(mask=mask)
    reef = np.zeros(grid.shape)
    reef[1, :] = [1.0, 2.0, 1.0]
    kelp = np.zeros(grid.shape)
    kelp[2, 2] = 3.0
    return formulate_problem(uniform_cost(grid, 2.0), [Layer('reef', reef, grid), Layer('kelp', kelp, grid)], target)


def _solution(cells, shape=(3, 3)):
    selected = np.zeros(shape, dtype=bool)
    for r, c in cells:
        selected[r, c] = True
    return Solution(selected=selected, objective=0.0, status='OPTIMAL', backend='cp-sat')


class TestEvaluate:
    def test_representation(self):
        summary = evaluate_solution(_problem(), _solution([(1, 1), (0, 0)]))
        reps = summary.by_name()
        assert reps['reef'].held_amount == 2.0
        assert reps['reef'].total_amount == 4.0
        assert reps['reef'].relative_held == pytest.approx(0.5)
        assert reps['reef'].met
        assert reps['kelp'].relative_held == 0.0
        assert not reps['kelp'].met
        assert not summary.all_targets_met

    def test_area_fraction(self):
        summary = evaluate_solution(_problem(), _solution([(0, 0), (1, 1), (2, 2)]))
        assert summary.selected_cells == 3
        assert summary.planning_units == 9
        assert summary.area_fraction == pytest.approx(3 / 9)
        assert summary.total_cost == pytest.approx(6.0)

    def test_cells_outside_area_are_ignored(self):
        mask = np.ones((3, 3), dtype=bool)
        mask[0, :] = False
        summary = evaluate_solution(_problem(mask=mask), _solution([(0, 0), (0, 1), (2, 2)]))
        assert summary.selected_cells == 1
        assert summary.planning_units == 6
        assert summary.area_fraction == pytest.approx(1 / 6)
        assert summary.by_name()['kelp'].relative_held == 1.0

    def test_empty_selection(self):
        summary = evaluate_solution(_problem(), _solution([]))
        assert summary.area_fraction == 0.0
        assert summary.total_cost == 0.0

    def test_table_is_in_percent(self):
        summary = evaluate_solution(_problem(target=0.3), _solution([(1, 1)]))
        rows = {r['feature']: r for r in summary.table()}
        assert list(rows) == ['reef', 'kelp']
        assert rows['reef']['held_pct'] == pytest.approx(50.0)
        assert rows['reef']['target_pct'] == pytest.approx(30.0)
        assert rows['kelp']['met'] is False

    def test_inputs_untouched(self):
        problem = _problem()
        solution = _solution([(1, 1)])
        before = solution.selected.copy()
        evaluate_solution(problem, solution)
        assert np.array_equal(solution.selected, before)
