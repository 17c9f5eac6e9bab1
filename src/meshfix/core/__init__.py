# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Core logic for mesh repair.

This module provides the building blocks of the repair pipeline:
- edge_index / non_manifold: Non-manifold edge and vertex removal
- geometry / self_intersection: Triangle tests and intersection detectors
- holes / kernel: Boundary loops, hole classification and filling
- mesh_ops / validation: Load, save, diagnose and check meshes
- pipeline: The repair and benchmark entry points
"""

from .errors import (
    MeshRepairError,
    MeshLoadError,
    UnsupportedFormatError,
    EmptyMeshError,
    ConfigError,
)

from .edge_index import build_edge_index, non_manifold_edges

from .non_manifold import (
    NonManifoldReport,
    repair_non_manifold,
    remove_non_manifold,
)

from .geometry import adjacent_triangles_intersect, segment_intersects_triangle, triangles_intersect

from .self_intersection import (
    AdjacencyPolicy,
    find_intersecting_faces,
    find_intersecting_faces_bruteforce,
    find_intersecting_pairs,
    remove_self_intersections,
    remove_self_intersections_bruteforce,
)

from .holes import is_small_hole

from .kernel import (
    BoundaryLoop,
    HoleFiller,
    build_polyhedron,
    extract_boundary_cycles,
    keep_largest_connected_components,
)

from .config import HoleFilter, RepairConfig

from .mesh_ops import (
    MeshDiagnostics,
    load_mesh,
    load_vertices_faces,
    save_mesh,
    compute_diagnostics,
    format_diagnostics,
)

from .validation import (
    ManifoldCheck,
    GeometricValidation,
    check_manifold,
    validate_geometry,
)

from .pipeline import (
    RepairReport,
    BenchmarkResult,
    repair_mesh,
    run_repair,
    run_benchmark,
)

__all__ = [
    # Errors
    "MeshRepairError",
    "MeshLoadError",
    "UnsupportedFormatError",
    "EmptyMeshError",
    "ConfigError",
    # Non-manifold repair
    "build_edge_index",
    "non_manifold_edges",
    "NonManifoldReport",
    "repair_non_manifold",
    "remove_non_manifold",
    # Self-intersections
    "adjacent_triangles_intersect",
    "segment_intersects_triangle",
    "triangles_intersect",
    "AdjacencyPolicy",
    "find_intersecting_faces",
    "find_intersecting_faces_bruteforce",
    "find_intersecting_pairs",
    "remove_self_intersections",
    "remove_self_intersections_bruteforce",
    # Holes
    "is_small_hole",
    "BoundaryLoop",
    "HoleFiller",
    "build_polyhedron",
    "extract_boundary_cycles",
    "keep_largest_connected_components",
    # Config
    "HoleFilter",
    "RepairConfig",
    # Mesh ops
    "MeshDiagnostics",
    "load_mesh",
    "load_vertices_faces",
    "save_mesh",
    "compute_diagnostics",
    "format_diagnostics",
    # Validation
    "ManifoldCheck",
    "GeometricValidation",
    "check_manifold",
    "validate_geometry",
    # Pipeline
    "RepairReport",
    "BenchmarkResult",
    "repair_mesh",
    "run_repair",
    "run_benchmark",
]
