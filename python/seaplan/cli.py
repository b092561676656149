import argparse
import json
import logging
import os
import sys
from typing import List, Optional, Sequence

from .errors import PlanningError, ValidationError
from .evaluate import EvaluationSummary
from .options import FeatureSource, RunConfig, load_config, normalize_fraction
from .ortools_solver import BACKENDS
from .pipeline import PipelineResult, run_pipeline


logger = logging.getLogger(__name__)


def _ensure_parent(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def write_summary_csv(out_path: str, summary: EvaluationSummary) -> None:
    _ensure_parent(out_path)
    with open(out_path, 'w') as f:
        # TOTAL row: area columns only, met = every target met
        f.write('feature,total_amount,held_amount,held_pct,target_pct,met,'
                'planning_units,selected_cells,area_pct,total_cost\n')
        for row in summary.table():
            f.write(
                f"{row['feature']},{row['total_amount']:.6f},{row['held_amount']:.6f},"
                f"{row['held_pct']:.2f},{row['target_pct']:.2f},{int(row['met'])},,,,\n"
            )
        f.write(
            f"TOTAL,,,,,{int(summary.all_targets_met)},{summary.planning_units},{summary.selected_cells},"
            f"{summary.area_fraction * 100.0:.2f},{summary.total_cost:.6f}\n"
        )


def write_selections_csv(out_path: str, result: PipelineResult) -> None:
    grid = result.grid
    xs, ys = grid.cell_centers()
    cost = result.cost.values
    _ensure_parent(out_path)
    with open(out_path, 'w') as f:
        f.write('row,col,x,y,cost\n')
        rows, cols = result.solution.selected.nonzero()
        for r, c in zip(rows, cols):
            f.write(f"{r},{c},{xs[r, c]:.3f},{ys[r, c]:.3f},{cost[r, c]:.6f}\n")


def write_metadata(out_path: str, config: RunConfig, result: PipelineResult) -> None:
    s = result.summary
    meta = {
        'region': result.boundary.name,
        'crs': result.grid.crs.to_string(),
        'resolution': result.grid.resolution,
        'shape': list(result.grid.shape),
        'planning_units': s.planning_units,
        'features': [f.name for f in result.features],
        'dropped_features': result.dropped,
        'targets': result.problem.targets,
        'backend': result.solution.backend,
        'status': result.solution.status,
        'runtime_s': result.solution.runtime,
        'objective': result.solution.objective,
        'selected_cells': s.selected_cells,
        'area_fraction': s.area_fraction,
        'representation': s.table(),
        'time_limit': config.time_limit,
        'gap': config.gap,
    }
    _ensure_parent(out_path)
    with open(out_path, 'w') as f:
        json.dump(meta, f, indent=2)


def print_summary(summary: EvaluationSummary, out=sys.stdout) -> None:
    width = max([len('feature')] + [len(r['feature']) for r in summary.table()])
    out.write(f"{'feature':<{width}}  {'held %':>8}  {'target %':>8}  met\n")
    for row in summary.table():
        out.write(f"{row['feature']:<{width}}  {row['held_pct']:8.2f}  {row['target_pct']:8.2f}  "
                  f"{'yes' if row['met'] else 'NO'}\n")
    out.write(f"\nSelected {summary.selected_cells} of {summary.planning_units} planning units "
              f"({summary.area_fraction * 100.0:.2f}%), total cost {summary.total_cost:.6g}\n")


def _parse_feature(spec: str) -> FeatureSource:
    """NAME=PATH for a raster feature."""
    name, sep, path = spec.partition('=')
    if not sep or not name or not path:
        raise ValidationError(f"--feature expects NAME=PATH, got {spec!r}")
    return FeatureSource(name=name.strip(), path=path.strip(), kind='raster')


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description='Minimum-set conservation prioritization over a planning grid.')
    ap.add_argument('--config', default=None, help='JSON run configuration; other flags override it')
    # Region
    ap.add_argument('--boundary', default=None, help='Vector dataset holding region boundaries (e.g. EEZ layer)')
    ap.add_argument('--region-name', default=None, help='Region to select, e.g. "Fijian Exclusive Economic Zone"')
    ap.add_argument('--region-key', default=None, help='Attribute matched against the region name (default GEONAME)')
    ap.add_argument('--dissolve', action='store_true', help='Merge several matching features instead of failing')
    # Grid
    ap.add_argument('--crs', default=None, help='Projected, preferably equal-area, CRS (default ESRI:54009)')
    ap.add_argument('--resolution', type=float, default=None, help='Cell side in CRS units')
    # Layers
    ap.add_argument('--feature', action='append', default=[], metavar='NAME=PATH', help='Raster feature (repeatable)')
    ap.add_argument('--feature-vector', action='append', default=[], metavar='PATH',
                    help='Vector features (repeatable); split by --feature-attribute when given')
    ap.add_argument('--feature-attribute', default=None, help='Attribute naming the feature of each vector polygon')
    ap.add_argument('--coverage', action='store_true', help='Use fractional cell cover for vector features')
    ap.add_argument('--land', default=None, help='Land polygons; cost = distance to shore')
    ap.add_argument('--cost-raster', default=None, help='Cost raster')
    ap.add_argument('--locked-in', default=None, help='Polygons whose cells are always selected')
    ap.add_argument('--locked-out', default=None, help='Polygons whose cells are never selected')
    # Problem / solver
    ap.add_argument('--target', type=float, default=None, help='Target per feature, 0..1 or 0..100 (default 30%%)')
    ap.add_argument('--backend', choices=BACKENDS, default=None, help='OR-Tools backend')
    ap.add_argument('--time-limit', type=float, default=None, help='Solver time limit in seconds')
    ap.add_argument('--workers', type=int, default=None, help='CP-SAT search workers')
    ap.add_argument('--gap', type=float, default=None, help='Relative optimality gap')
    # Outputs
    ap.add_argument('--summary-out', default=None, help='CSV with per-feature representation and a TOTAL row')
    ap.add_argument('--selections-out', default=None, help='CSV listing the selected cells')
    ap.add_argument('--metadata-out', default=None, help='JSON with run metadata')
    ap.add_argument('--plot-out', default=None, help='PNG map of the solution')
    ap.add_argument('--features-plot-out', default=None, help='PNG panels of the feature layers')
    ap.add_argument('--log-level', default='INFO', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'])
    return ap


def config_from_args(args: argparse.Namespace) -> RunConfig:
    config = load_config(args.config) if args.config else RunConfig()
    overrides = {
        'boundary': args.boundary,
        'region_name': args.region_name,
        'region_key': args.region_key,
        'crs': args.crs,
        'resolution': args.resolution,
        'land': args.land,
        'cost_raster': args.cost_raster,
        'locked_in': args.locked_in,
        'locked_out': args.locked_out,
        'backend': args.backend,
        'time_limit': args.time_limit,
        'workers': args.workers,
        'gap': args.gap,
    }
    for key, value in overrides.items():
        if value is not None:
            setattr(config, key, value)
    if args.dissolve:
        config.dissolve = True
    if args.target is not None:
        config.target = normalize_fraction(args.target)

    sources: List[FeatureSource] = [_parse_feature(s) for s in args.feature]
    for path in args.feature_vector:
        sources.append(FeatureSource(name='', path=path, kind='vector', attribute=args.feature_attribute,
                                     coverage=args.coverage))
    if sources:
        config.features = list(config.features) + sources
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, args.log_level),
                        format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    try:
        config = config_from_args(args)
        result = run_pipeline(config)
    except PlanningError as e:
        logger.error("%s: %s", type(e).__name__, e)
        return 1

    print_summary(result.summary)
    if args.summary_out:
        write_summary_csv(args.summary_out, result.summary)
    if args.selections_out:
        write_selections_csv(args.selections_out, result)
    if args.metadata_out:
        write_metadata(args.metadata_out, config, result)
    if args.plot_out or args.features_plot_out:
        import matplotlib
        matplotlib.use("Agg")
        from .plotting import plot_layers, plot_solution
        if args.plot_out:
            plot_solution(result.problem, result.solution, args.plot_out, boundary=result.boundary)
        if args.features_plot_out:
            plot_layers(result.features, args.features_plot_out, boundary=result.boundary)
    return 0


if __name__ == '__main__':
    sys.exit(main())
