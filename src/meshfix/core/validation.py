# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Validation of repaired meshes.

Two checks:
1. Manifold check: every directed edge carries at most the tolerated
   number of faces and every vertex's faces form a single edge-connected
   fan. Non-manifold repair guarantees both.
2. Geometric validation: is the result closed and printable?
"""

from dataclasses import dataclass, field
import logging

import numpy as np
import trimesh

from .edge_index import DEFAULT_MAX_FACES_PER_EDGE, build_edge_index, non_manifold_edges
from .non_manifold import face_clusters
from .topology import Edge, as_face_array, undirected_edges, vertex_neighborhoods

logger = logging.getLogger(__name__)


@dataclass
class ManifoldCheck:
    """
    Offending elements found by :func:`check_manifold`.

    Attributes:
        non_manifold_edges: Directed edges over the face tolerance
        non_manifold_vertices: Vertices whose faces split into several clusters
    """

    non_manifold_edges: list[Edge] = field(default_factory=list)
    non_manifold_vertices: list[int] = field(default_factory=list)

    @property
    def is_manifold(self) -> bool:
        return not self.non_manifold_edges and not self.non_manifold_vertices

    @property
    def issues(self) -> list[str]:
        """List of detected manifold violations."""
        issues = []
        if self.non_manifold_edges:
            issues.append(f"Non-manifold edges ({len(self.non_manifold_edges)})")
        if self.non_manifold_vertices:
            issues.append(f"Non-manifold vertices ({len(self.non_manifold_vertices)})")
        return issues

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_manifold": self.is_manifold,
            "non_manifold_edge_count": len(self.non_manifold_edges),
            "non_manifold_vertex_count": len(self.non_manifold_vertices),
            "issues": self.issues,
        }


def check_manifold(faces, max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE) -> ManifoldCheck:
    """
    Check a triangle list for non-manifold edges and vertices.

    Args:
        faces: ``(m, 3)`` triangles
        max_faces_per_edge: Faces tolerated on one directed edge

    Returns:
        ManifoldCheck listing every offending edge and vertex
    """
    faces = as_face_array(faces)
    result = ManifoldCheck()
    if len(faces) == 0:
        return result

    result.non_manifold_edges = sorted(non_manifold_edges(build_edge_index(faces), max_faces_per_edge))

    face_edges = [undirected_edges(f) for f in faces.tolist()]
    neighborhoods = vertex_neighborhoods(faces, np.ones(len(faces), dtype=bool), int(faces.max()) + 1)
    result.non_manifold_vertices = [
        vertex
        for vertex, neighborhood in enumerate(neighborhoods)
        if len(neighborhood) > 1 and len(face_clusters(neighborhood, face_edges)) > 1
    ]
    return result


@dataclass
class GeometricValidation:
    """
    Result of geometric validation checks.

    Geometric validation determines if a repaired mesh is closed and
    suitable for 3D printing.
    """

    is_watertight: bool = False
    is_manifold: bool = False
    is_winding_consistent: bool = False
    no_degenerate_faces: bool = True

    # Details
    boundary_edge_count: int = 0
    degenerate_face_count: int = 0
    manifold: ManifoldCheck = field(default_factory=ManifoldCheck)

    @property
    def is_printable(self) -> bool:
        """Check if mesh meets all geometric requirements for 3D printing."""
        return (
            self.is_watertight and
            self.is_manifold and
            self.is_winding_consistent
        )

    @property
    def issues(self) -> list[str]:
        """List of detected geometric issues."""
        issues = []
        if not self.is_watertight:
            issues.append(f"Not watertight ({self.boundary_edge_count} boundary edges)")
        issues.extend(self.manifold.issues)
        if not self.is_winding_consistent:
            issues.append("Inconsistent winding/normals")
        if not self.no_degenerate_faces:
            issues.append(f"Degenerate faces ({self.degenerate_face_count})")
        return issues

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_printable": self.is_printable,
            "is_watertight": self.is_watertight,
            "is_manifold": self.is_manifold,
            "is_winding_consistent": self.is_winding_consistent,
            "no_degenerate_faces": self.no_degenerate_faces,
            "boundary_edge_count": self.boundary_edge_count,
            "degenerate_face_count": self.degenerate_face_count,
            "issues": self.issues,
        }


def validate_geometry(
    mesh: trimesh.Trimesh,
    max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE,
) -> GeometricValidation:
    """
    Run geometric validation checks on a mesh.

    Args:
        mesh: The mesh to validate
        max_faces_per_edge: Faces tolerated on one directed edge

    Returns:
        GeometricValidation result
    """
    result = GeometricValidation()
    result.manifold = check_manifold(mesh.faces, max_faces_per_edge)
    result.is_manifold = result.manifold.is_manifold

    if len(mesh.faces) == 0:
        return result

    result.is_watertight = bool(mesh.is_watertight)
    result.is_winding_consistent = bool(mesh.is_winding_consistent)

    boundary = trimesh.grouping.group_rows(mesh.edges_sorted, require_count=1)
    result.boundary_edge_count = int(np.asarray(boundary).size)

    result.degenerate_face_count = int(np.sum(mesh.area_faces < 1e-10))
    result.no_degenerate_faces = result.degenerate_face_count == 0

    logger.debug(f"Validation: printable={result.is_printable}, issues={result.issues}")
    return result
