"""Minimum-set conservation prioritization over a spatial planning grid.

Modules:
- data: region lookup and vector/raster readers (fiona, rasterio).
- grid: planning grid over a boundary in a projected CRS.
- layers: grid-aligned per-cell value layers and empty-layer removal.
- features: conservation feature layers from vectors or rasters.
- cost: cost layers (distance to shore, raster, uniform).
- model: problem formulation and validation.
- ortools_solver: minimum-set solve with OR-Tools CP-SAT or SCIP.
- evaluate: feature representation and selected-area summaries.
- plotting: matplotlib maps of layers and solutions.
- pipeline: region -> grid -> layers -> problem -> solution -> evaluation.
- options: run configuration.
- cli: command-line entry point.
"""
