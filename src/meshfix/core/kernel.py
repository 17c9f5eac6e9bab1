# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Polyhedral mesh operations used by the repair pipeline.

The repair stages work on plain vertex/triangle arrays; everything that
needs a real mesh (adjacency, components, boundaries, patching) goes
through this module, which keeps ``trimesh.Trimesh`` as the container.
Meshes are always built with ``process=False`` so vertex indices stay
exactly as given.

Boundary loops follow the border half-edges: for a face edge ``a -> b``
on the boundary the loop runs ``b -> a``. Patch triangles built in loop
order therefore wind consistently with the surrounding surface.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable, Iterator
import logging
import math

import numpy as np
import trimesh
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components

from .self_intersection import DEFAULT_CELL_SCALE, AdjacencyPolicy, find_intersecting_pairs
from .topology import Edge, as_face_array, as_vertex_array

logger = logging.getLogger(__name__)

# Liepa's density factor for patch refinement
REFINE_ALPHA = math.sqrt(2.0)
REFINE_MAX_ROUNDS = 10


@dataclass(frozen=True)
class BoundaryLoop:
    """
    A closed boundary cycle, as vertex indices in border half-edge order.

    Each vertex starts one boundary edge, so the loop has as many edges as
    vertices.
    """

    vertices: tuple[int, ...]

    def __len__(self) -> int:
        return len(self.vertices)

    @property
    def edge_count(self) -> int:
        return len(self.vertices)

    def edges(self) -> list[Edge]:
        """Border half-edges in traversal order."""
        count = len(self.vertices)
        return [(self.vertices[i], self.vertices[(i + 1) % count]) for i in range(count)]

    def iter_points(self, positions: np.ndarray) -> Iterator[np.ndarray]:
        """Lazily yield the position of each loop vertex."""
        for vertex in self.vertices:
            yield positions[vertex]


def build_polyhedron(vertices, faces) -> trimesh.Trimesh:
    """Build a mesh from vertex positions and triangles without reindexing."""
    return trimesh.Trimesh(
        vertices=as_vertex_array(vertices),
        faces=as_face_array(faces),
        process=False,
        validate=False,
    )


def to_vertices_faces(mesh: trimesh.Trimesh) -> tuple[np.ndarray, np.ndarray]:
    """Copy a mesh back out to ``(vertices, faces)`` arrays."""
    return as_vertex_array(np.array(mesh.vertices)), as_face_array(np.array(mesh.faces))


def remove_isolated_vertices(mesh: trimesh.Trimesh) -> int:
    """Drop vertices no face references. Returns the number removed."""
    before = len(mesh.vertices)
    mesh.remove_unreferenced_vertices()
    removed = before - len(mesh.vertices)
    if removed:
        logger.debug(f"Removed {removed} isolated vertices")
    return removed


def detect_self_intersections(
    mesh: trimesh.Trimesh,
    policy: AdjacencyPolicy = AdjacencyPolicy.EXCLUDE_ADJACENT,
    cell_scale: float = DEFAULT_CELL_SCALE,
) -> list[tuple[int, int]]:
    """
    Find intersecting facet pairs.

    Unlike the benchmark detectors this reports every pair and, by
    default, ignores faces that only meet at shared vertices or edges.
    """
    return find_intersecting_pairs(mesh.vertices, mesh.faces, policy, cell_scale)


def erase_facets(mesh: trimesh.Trimesh, facets: Iterable[int]) -> int:
    """Remove the given faces in place. Returns the number removed."""
    facets = sorted(set(int(f) for f in facets))
    if not facets:
        return 0
    mask = np.ones(len(mesh.faces), dtype=bool)
    mask[facets] = False
    mesh.update_faces(mask)
    return len(facets)


def keep_largest_connected_components(mesh: trimesh.Trimesh, count: int = 1) -> int:
    """
    Keep the ``count`` components with the most faces, in place.

    Components are face sets connected through shared edges; faces that
    only touch at a vertex belong to different components.

    Returns:
        Number of components removed
    """
    face_count = len(mesh.faces)
    if face_count == 0:
        return 0

    adjacency = np.asarray(mesh.face_adjacency, dtype=np.int64).reshape(-1, 2)
    graph = coo_matrix(
        (np.ones(len(adjacency)), (adjacency[:, 0], adjacency[:, 1])),
        shape=(face_count, face_count),
    )
    component_count, labels = connected_components(graph, directed=False)
    if component_count <= count:
        return 0

    sizes = np.bincount(labels, minlength=component_count)
    kept_labels = np.argsort(-sizes, kind="stable")[:count]
    mesh.update_faces(np.isin(labels, kept_labels))
    mesh.remove_unreferenced_vertices()

    removed = component_count - count
    logger.debug(f"Kept {count} of {component_count} connected components")
    return removed


def extract_boundary_cycles(mesh: trimesh.Trimesh) -> list[BoundaryLoop]:
    """
    Enumerate the closed boundary loops of a mesh.

    Open chains (possible only around leftover non-manifold geometry)
    are skipped.
    """
    if len(mesh.faces) == 0:
        return []

    boundary = np.sort(np.asarray(
        trimesh.grouping.group_rows(mesh.edges_sorted, require_count=1),
        dtype=np.int64,
    ).reshape(-1))
    if len(boundary) == 0:
        return []

    # Border half-edges run against the face winding
    half_edges = [(int(b), int(a)) for a, b in mesh.edges[boundary]]
    remaining: dict[int, list[int]] = defaultdict(list)
    for origin, target in half_edges:
        remaining[origin].append(target)

    loops: list[BoundaryLoop] = []
    for origin, target in half_edges:
        if target not in remaining[origin]:
            continue
        remaining[origin].remove(target)

        cycle = [origin]
        current = target
        while current != origin and remaining.get(current):
            cycle.append(current)
            current = remaining[current].pop(0)

        if current == origin:
            loops.append(BoundaryLoop(tuple(cycle)))
        else:
            logger.debug(f"Skipping open boundary chain of {len(cycle)} vertices")

    return loops


def minimum_area_triangulation(points: np.ndarray) -> list[tuple[int, int, int]]:
    """
    Triangulate a closed polygon minimising total area.

    Dynamic programming over polygon chords, O(n^3).

    Args:
        points: ``(n, 3)`` polygon corners in order

    Returns:
        Triangles as local corner indices ``(i, m, k)`` with ``i < m < k``
    """
    count = len(points)
    if count < 3:
        return []

    weight = np.zeros((count, count))
    split = np.full((count, count), -1, dtype=np.int64)
    for gap in range(2, count):
        for i in range(count - gap):
            k = i + gap
            middle = np.arange(i + 1, k)
            areas = 0.5 * np.linalg.norm(
                np.cross(points[middle] - points[i], points[k] - points[i]), axis=1
            )
            totals = weight[i, middle] + weight[middle, k] + areas
            best = int(np.argmin(totals))
            weight[i, k] = totals[best]
            split[i, k] = middle[best]

    triangles: list[tuple[int, int, int]] = []
    stack = [(0, count - 1)]
    while stack:
        i, k = stack.pop()
        if k - i < 2:
            continue
        m = int(split[i, k])
        triangles.append((i, m, k))
        stack.append((i, m))
        stack.append((m, k))
    return triangles


class HoleFiller:
    """
    Accumulates triangle patches for the boundary loops of one mesh.

    Loops are extracted once up front; patching only appends vertices and
    faces, so the loops stay valid while holes are filled one by one.

    Example:
        filler = HoleFiller(mesh)
        for loop in extract_boundary_cycles(mesh):
            filler.triangulate_hole(loop)
        mesh = filler.to_mesh()
    """

    def __init__(self, mesh: trimesh.Trimesh):
        self._base_vertices = as_vertex_array(np.array(mesh.vertices))
        self._base_faces = as_face_array(np.array(mesh.faces))
        self._new_vertices: list[np.ndarray] = []
        self._new_faces: list[tuple[int, int, int]] = []

    @property
    def vertices_added(self) -> int:
        return len(self._new_vertices)

    @property
    def faces_added(self) -> int:
        return len(self._new_faces)

    def _position(self, vertex: int) -> np.ndarray:
        base = len(self._base_vertices)
        if vertex < base:
            return self._base_vertices[vertex]
        return self._new_vertices[vertex - base]

    def _add_vertex(self, position: np.ndarray) -> int:
        self._new_vertices.append(position)
        return len(self._base_vertices) + len(self._new_vertices) - 1

    def _patch(self, loop: BoundaryLoop) -> list[tuple[int, int, int]]:
        points = np.array([self._position(v) for v in loop.vertices])
        return [
            (loop.vertices[i], loop.vertices[m], loop.vertices[k])
            for i, m, k in minimum_area_triangulation(points)
        ]

    def triangulate_hole(self, loop: BoundaryLoop) -> int:
        """Close a loop with a minimum-area triangulation. Returns faces added."""
        patch = self._patch(loop)
        self._new_faces.extend(patch)
        return len(patch)

    def triangulate_and_refine_hole(self, loop: BoundaryLoop) -> int:
        """
        Close a loop, then subdivide the patch to match the boundary density.

        Each boundary vertex gets a scale equal to the mean length of its
        two boundary edges. A patch triangle is split at its centroid when
        the centroid is farther than ``scale / sqrt(2)`` from every corner,
        comparing against both the corner's and the centroid's scale.

        Returns:
            Number of faces added
        """
        patch = self._patch(loop)
        scale: dict[int, float] = {}
        count = len(loop.vertices)
        for i, vertex in enumerate(loop.vertices):
            previous = loop.vertices[i - 1]
            following = loop.vertices[(i + 1) % count]
            here = self._position(vertex)
            scale[vertex] = 0.5 * (
                float(np.linalg.norm(here - self._position(previous)))
                + float(np.linalg.norm(here - self._position(following)))
            )

        for _ in range(REFINE_MAX_ROUNDS):
            refined: list[tuple[int, int, int]] = []
            for triangle in patch:
                corners = [self._position(v) for v in triangle]
                centroid = np.mean(corners, axis=0)
                centroid_scale = float(np.mean([scale[v] for v in triangle]))
                if all(
                    REFINE_ALPHA * float(np.linalg.norm(centroid - corner)) > max(centroid_scale, scale[v])
                    for v, corner in zip(triangle, corners)
                ):
                    center = self._add_vertex(centroid)
                    scale[center] = centroid_scale
                    a, b, c = triangle
                    refined.extend([(a, b, center), (b, c, center), (c, a, center)])
                else:
                    refined.append(triangle)
            if len(refined) == len(patch):
                break
            patch = refined

        self._new_faces.extend(patch)
        return len(patch)

    def to_mesh(self) -> trimesh.Trimesh:
        """Build the patched mesh."""
        vertices = self._base_vertices
        if self._new_vertices:
            vertices = np.vstack([vertices, np.array(self._new_vertices)])
        faces = self._base_faces
        if self._new_faces:
            faces = np.vstack([faces, np.array(self._new_faces, dtype=np.int64)])
        return build_polyhedron(vertices, faces)
