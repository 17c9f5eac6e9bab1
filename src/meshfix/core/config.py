# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Repair configuration.

A ``RepairConfig`` is built from CLI flags or loaded from a JSON/YAML file
and passed explicitly to every pipeline stage. There is no module-level
state: verbosity, worker count and tolerances all travel with the config.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional, Union
import json

try:
    import yaml
    YAML_AVAILABLE = True
except ImportError:
    YAML_AVAILABLE = False

from .edge_index import DEFAULT_MAX_FACES_PER_EDGE
from .errors import ConfigError
from .self_intersection import DEFAULT_CELL_SCALE, AdjacencyPolicy


@dataclass
class HoleFilter:
    """
    Thresholds for automatic hole filling.

    Holes with more than ``max_edges`` boundary edges, or wider than
    ``max_diam`` along any axis, are left open.
    """

    max_edges: int
    max_diam: float

    def to_dict(self) -> dict:
        return {"max_edges": self.max_edges, "max_diam": self.max_diam}


@dataclass
class RepairConfig:
    """
    Options for one repair run.

    Attributes:
        keep_largest_component: Drop every connected component but the largest
        fix_self_intersections: Erase intersecting facets before hole filling
        hole_filter: Only fill holes within these thresholds (None fills all)
        refine: Subdivide hole patches to match the surrounding density
        verbose: Log stage summaries at INFO level
        workers: Thread pool size for per-vertex non-manifold analysis
        max_faces_per_edge: Faces tolerated on one directed edge
        cell_scale: Spatial grid cell size as a multiple of the mean edge length
        adjacency_policy: Whether faces sharing vertices count as intersecting
            in the benchmark detectors
    """

    keep_largest_component: bool = False
    fix_self_intersections: bool = False
    hole_filter: Optional[HoleFilter] = None
    refine: bool = False
    verbose: bool = False
    workers: int = 1
    max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE
    cell_scale: float = DEFAULT_CELL_SCALE
    adjacency_policy: AdjacencyPolicy = field(default=AdjacencyPolicy.INCLUDE_ADJACENT)

    @classmethod
    def from_dict(cls, data: dict) -> "RepairConfig":
        """
        Create from dictionary.

        Raises:
            ConfigError: On unknown keys or malformed values
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

        values = dict(data)
        hole_filter = values.get("hole_filter")
        if isinstance(hole_filter, dict):
            try:
                values["hole_filter"] = HoleFilter(
                    max_edges=int(hole_filter["max_edges"]),
                    max_diam=float(hole_filter["max_diam"]),
                )
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigError(f"Invalid hole_filter: {hole_filter!r}") from e
        elif isinstance(hole_filter, (list, tuple)) and len(hole_filter) == 2:
            try:
                values["hole_filter"] = HoleFilter(int(hole_filter[0]), float(hole_filter[1]))
            except (TypeError, ValueError) as e:
                raise ConfigError(f"Invalid hole_filter: {hole_filter!r}") from e
        elif hole_filter is not None and not isinstance(hole_filter, HoleFilter):
            raise ConfigError(
                f"Invalid hole_filter: {hole_filter!r} (expected max_edges and max_diam)"
            )

        if "adjacency_policy" in values:
            try:
                values["adjacency_policy"] = AdjacencyPolicy(values["adjacency_policy"])
            except ValueError as e:
                raise ConfigError(f"Invalid adjacency_policy: {values['adjacency_policy']!r}") from e

        config = cls(**values)
        errors = config.validate()
        if errors:
            raise ConfigError("; ".join(errors))
        return config

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "RepairConfig":
        """Load from JSON file."""
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(json.load(f) or {})

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "RepairConfig":
        """Load from YAML file."""
        if not YAML_AVAILABLE:
            raise ImportError("PyYAML is required to load YAML repair configurations")
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(yaml.safe_load(f) or {})

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RepairConfig":
        """
        Load from file, auto-detecting format from extension.

        Supports .json and .yaml/.yml files.
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Repair configuration not found: {path}")

        suffix = path.suffix.lower()
        if suffix == ".json":
            return cls.from_json(path)
        elif suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        raise ConfigError(f"Unknown configuration format: {path}")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "keep_largest_component": self.keep_largest_component,
            "fix_self_intersections": self.fix_self_intersections,
            "hole_filter": self.hole_filter.to_dict() if self.hole_filter else None,
            "refine": self.refine,
            "verbose": self.verbose,
            "workers": self.workers,
            "max_faces_per_edge": self.max_faces_per_edge,
            "cell_scale": self.cell_scale,
            "adjacency_policy": self.adjacency_policy.value,
        }

    def validate(self) -> list[str]:
        """
        Validate the configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if self.workers < 1:
            errors.append(f"workers must be at least 1, got {self.workers}")
        if self.max_faces_per_edge < 1:
            errors.append(f"max_faces_per_edge must be at least 1, got {self.max_faces_per_edge}")
        if self.cell_scale <= 0:
            errors.append(f"cell_scale must be positive, got {self.cell_scale}")
        if self.hole_filter is not None:
            if self.hole_filter.max_edges < 0:
                errors.append(f"hole_filter.max_edges must not be negative, got {self.hole_filter.max_edges}")
            if self.hole_filter.max_diam < 0:
                errors.append(f"hole_filter.max_diam must not be negative, got {self.hole_filter.max_diam}")

        return errors
