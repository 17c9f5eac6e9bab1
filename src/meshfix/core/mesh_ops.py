# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Mesh loading, saving, and diagnostics using trimesh.

Meshes are loaded with ``process=False`` so that vertices and faces keep
the order and multiplicity they have in the file: duplicate faces and
non-manifold fans are exactly what the repair stages need to see.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Union
import logging

import numpy as np
import trimesh

from .errors import MeshLoadError, UnsupportedFormatError
from .geometry import degenerate_mask, triangle_points
from .kernel import extract_boundary_cycles
from .topology import as_face_array, as_vertex_array
from .validation import check_manifold

logger = logging.getLogger(__name__)

# Extensions accepted on input and output
INPUT_FORMATS = {".obj": "obj", ".ply": "ply", ".stl": "stl"}
OUTPUT_FORMATS = {".obj": "obj", ".ply": "ply", ".stl": "stl"}


def input_format(path: Union[str, Path]) -> str:
    """
    Map an input path to a trimesh file type.

    Raises:
        UnsupportedFormatError: If the extension is not readable
    """
    suffix = Path(path).suffix.lower()
    if suffix not in INPUT_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported input format '{suffix or path}' (expected {', '.join(INPUT_FORMATS)})"
        )
    return INPUT_FORMATS[suffix]


def output_format(path: Union[str, Path]) -> str:
    """
    Map an output path to a trimesh file type.

    Raises:
        UnsupportedFormatError: If the extension is not writable
    """
    suffix = Path(path).suffix.lower()
    if suffix not in OUTPUT_FORMATS:
        raise UnsupportedFormatError(
            f"Unsupported output format '{suffix or path}' (expected {', '.join(OUTPUT_FORMATS)})"
        )
    return OUTPUT_FORMATS[suffix]


def load_mesh(path: Union[str, Path]) -> trimesh.Trimesh:
    """
    Load a triangle mesh from file without merging or reordering anything.

    Args:
        path: Path to an OBJ, PLY or STL file

    Returns:
        trimesh.Trimesh object

    Raises:
        FileNotFoundError: If file does not exist
        UnsupportedFormatError: If the extension is not supported
        MeshLoadError: If the file cannot be loaded as a triangle mesh
    """
    path = Path(path)
    file_type = input_format(path)

    if not path.exists():
        raise FileNotFoundError(f"Mesh file not found: {path}")

    logger.info(f"Loading mesh from: {path}")

    try:
        mesh = trimesh.load(str(path), file_type=file_type, force="mesh", process=False)
    except Exception as e:
        raise MeshLoadError(f"Failed to load mesh: {e}") from e

    # If it's a Scene (multiple objects), concatenate them
    if isinstance(mesh, trimesh.Scene):
        geometries = list(mesh.geometry.values())
        if len(geometries) == 0:
            raise MeshLoadError("No geometry found in file")
        elif len(geometries) == 1:
            mesh = geometries[0]
        else:
            logger.info(f"Concatenating {len(geometries)} geometries from scene")
            mesh = trimesh.util.concatenate(geometries)

    if not isinstance(mesh, trimesh.Trimesh):
        raise MeshLoadError(f"File does not contain a triangle mesh: {path}")

    faces = np.asarray(mesh.faces)
    if len(faces) and (faces.min() < 0 or faces.max() >= len(mesh.vertices)):
        raise MeshLoadError(f"Face indices out of range in {path}")

    logger.info(f"Loaded mesh: {len(mesh.vertices)} vertices, {len(mesh.faces)} faces")
    return mesh


def load_vertices_faces(path: Union[str, Path]) -> tuple[np.ndarray, np.ndarray]:
    """Load a mesh file as plain ``(vertices, faces)`` arrays."""
    mesh = load_mesh(path)
    return as_vertex_array(np.array(mesh.vertices)), as_face_array(np.array(mesh.faces))


def save_mesh(mesh: trimesh.Trimesh, path: Union[str, Path]) -> None:
    """
    Save a mesh to file; the extension selects OBJ, PLY or binary STL.

    Raises:
        UnsupportedFormatError: If the extension is not supported
    """
    path = Path(path)
    file_type = output_format(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving mesh to: {path}")

    if file_type == "obj":
        mesh.export(str(path), file_type="obj", include_normals=False, include_texture=False)
    else:
        mesh.export(str(path), file_type=file_type)


@dataclass
class MeshDiagnostics:
    """
    Defect summary of a mesh, before or after repair.

    Attributes:
        vertex_count: Number of vertices in the mesh
        face_count: Number of faces (triangles)
        boundary_edge_count: Edges used by exactly one face
        hole_count: Closed boundary loops
        component_count: Edge-connected components
        degenerate_face_count: Zero-area faces
        non_manifold_edge_count: Directed edges over the face tolerance
        non_manifold_vertex_count: Pinch vertices
        is_watertight: True if every edge is shared by exactly two faces
    """

    vertex_count: int = 0
    face_count: int = 0
    boundary_edge_count: int = 0
    hole_count: int = 0
    component_count: int = 0
    degenerate_face_count: int = 0
    non_manifold_edge_count: int = 0
    non_manifold_vertex_count: int = 0
    is_watertight: bool = False

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "vertex_count": self.vertex_count,
            "face_count": self.face_count,
            "boundary_edge_count": self.boundary_edge_count,
            "hole_count": self.hole_count,
            "component_count": self.component_count,
            "degenerate_face_count": self.degenerate_face_count,
            "non_manifold_edge_count": self.non_manifold_edge_count,
            "non_manifold_vertex_count": self.non_manifold_vertex_count,
            "is_watertight": self.is_watertight,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MeshDiagnostics":
        """Create from dictionary."""
        return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})


def compute_diagnostics(mesh: trimesh.Trimesh) -> MeshDiagnostics:
    """
    Compute defect counts for a mesh.

    Args:
        mesh: The mesh to analyze

    Returns:
        MeshDiagnostics with all computed values
    """
    diag = MeshDiagnostics()
    diag.vertex_count = len(mesh.vertices)
    diag.face_count = len(mesh.faces)
    if diag.face_count == 0:
        return diag

    faces = as_face_array(np.array(mesh.faces))
    manifold = check_manifold(faces)
    diag.non_manifold_edge_count = len(manifold.non_manifold_edges)
    diag.non_manifold_vertex_count = len(manifold.non_manifold_vertices)

    boundary = trimesh.grouping.group_rows(mesh.edges_sorted, require_count=1)
    diag.boundary_edge_count = int(np.asarray(boundary).size)
    diag.hole_count = len(extract_boundary_cycles(mesh))
    diag.is_watertight = bool(mesh.is_watertight)

    diag.component_count = len(trimesh.graph.connected_components(
        mesh.face_adjacency, nodes=np.arange(diag.face_count), min_len=1
    ))

    points = triangle_points(as_vertex_array(np.array(mesh.vertices)), faces)
    diag.degenerate_face_count = int(degenerate_mask(points).sum())

    return diag


def format_diagnostics(diag: MeshDiagnostics, title: str = "Mesh Diagnostics") -> str:
    """
    Format diagnostics as a human-readable string.

    Args:
        diag: The diagnostics to format
        title: Title for the output

    Returns:
        Formatted string
    """
    lines = [
        f"\n{title}",
        "=" * 50,
        f"Vertices: {diag.vertex_count:,}",
        f"Faces: {diag.face_count:,}",
        "",
        f"Watertight: {diag.is_watertight}",
        f"Boundary Edges: {diag.boundary_edge_count}",
        f"Holes: {diag.hole_count}",
        f"Components: {diag.component_count}",
        "",
        f"Non-manifold Edges: {diag.non_manifold_edge_count}",
        f"Non-manifold Vertices: {diag.non_manifold_vertex_count}",
        f"Degenerate Faces: {diag.degenerate_face_count}",
        "=" * 50,
    ]
    return "\n".join(lines)
