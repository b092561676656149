from dataclasses import dataclass, field, fields
from typing import Dict, List, Optional, Union
import json

from .errors import ValidationError


@dataclass(frozen=True)
class FeatureSource:
    name: str            # ignored when `attribute` splits a vector into several layers
    path: str
    kind: str = 'vector'  # 'vector' or 'raster'
    attribute: Optional[str] = None  # vectors only: one layer per distinct value
    band: int = 1                    # rasters only
    coverage: bool = False           # vectors only: fractional cell cover instead of presence


@dataclass
class RunConfig:
    # Region lookup
    boundary: str = ''
    region_name: str = ''
    region_key: str = 'GEONAME'
    region_layer: Optional[str] = None
    dissolve: bool = False
    # Planning grid
    crs: str = 'ESRI:54009'   # World Mollweide, equal-area
    resolution: float = 10000.0
    # Layers
    features: List[FeatureSource] = field(default_factory=list)
    land: Optional[str] = None
    cost_raster: Optional[str] = None
    shore_pad_cells: int = 10
    locked_in: Optional[str] = None   # polygons whose cells must be selected
    locked_out: Optional[str] = None  # polygons whose cells must not be selected
    # Problem
    target: Union[float, Dict[str, float]] = 0.3
    default_target: float = 0.3  # features missing from a per-feature target mapping
    # Solver
    backend: str = 'cp-sat'
    time_limit: float = 60.0
    workers: int = 8
    gap: float = 0.0


def normalize_fraction(v) -> float:
    try:
        x = float(v)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Not a number: {v!r}") from e
    # targets may be given in 0..1 or 0..100
    return x / 100.0 if x > 1.0 else x


def normalize_target(target) -> Union[float, Dict[str, float]]:
    if isinstance(target, dict):
        return {str(k): normalize_fraction(v) for k, v in target.items()}
    return normalize_fraction(target)


def _feature_source(entry) -> FeatureSource:
    if not isinstance(entry, dict):
        raise ValidationError(f"Feature entry must be an object, got {entry!r}")
    known = {f.name for f in fields(FeatureSource)}
    unknown = set(entry) - known
    if unknown:
        raise ValidationError(f"Unknown feature keys: {sorted(unknown)}")
    if not entry.get('path'):
        raise ValidationError(f"Feature entry needs a path: {entry!r}")
    src = FeatureSource(**{'name': '', **entry})
    if src.kind not in ('vector', 'raster'):
        raise ValidationError(f"Feature kind must be 'vector' or 'raster', got {src.kind!r}")
    return src


def config_from_dict(raw: Dict) -> RunConfig:
    known = {f.name for f in fields(RunConfig)}
    unknown = set(raw) - known
    if unknown:
        raise ValidationError(f"Unknown config keys: {sorted(unknown)}")
    values = dict(raw)
    values['features'] = [_feature_source(e) for e in raw.get('features', [])]
    if 'target' in values:
        values['target'] = normalize_target(values['target'])
    if 'default_target' in values:
        values['default_target'] = normalize_fraction(values['default_target'])
    return RunConfig(**values)


def load_config(path: str) -> RunConfig:
    """Load a JSON run configuration."""
    with open(path, 'r') as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Invalid JSON in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ValidationError(f"Config root must be an object: {path}")
    return config_from_dict(raw)
