# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Self-intersection detection on triangle soups.

Two detectors share one contract: given vertices and triangles, return the
triangles that do not take part in any pairwise intersection.

- ``remove_self_intersections`` hashes every face's bounding box into a
  uniform grid (broad phase) and runs the exact triangle test only against
  faces sharing a grid cell (narrow phase).
- ``remove_self_intersections_bruteforce`` tests every unordered pair once.
  It is kept as a reference for benchmarking the grid and is not used by the
  repair path.

Both flag degenerate (zero-area) faces, both flag the two faces of every
intersecting pair, and both evaluate the predicate on the pair ordered by
face index, so they flag exactly the same faces.

Whether faces that merely share a vertex or an edge count as intersecting
is an explicit :class:`AdjacencyPolicy`. With ``INCLUDE_ADJACENT`` the
closed-triangle predicate sees them as touching, so every face of a
connected surface is flagged. With ``EXCLUDE_ADJACENT`` contact at the
shared corners is ignored, but adjacent faces that fold over or cross each
other elsewhere are still flagged.
"""

from collections import defaultdict
from enum import Enum
from typing import Iterator
import logging

import numpy as np

from .errors import EmptyMeshError
from .geometry import (
    adjacent_triangles_intersect,
    degenerate_mask,
    triangle_bounds,
    triangle_points,
    triangles_intersect,
)
from .topology import as_face_array, as_vertex_array

logger = logging.getLogger(__name__)

# Grid cell size as a multiple of the mean edge length
DEFAULT_CELL_SCALE = 2.0

GridKey = tuple[int, int, int]


class AdjacencyPolicy(str, Enum):
    """
    How face pairs that share vertex indices are treated.

    ``INCLUDE_ADJACENT`` counts a shared vertex or edge as contact.
    ``EXCLUDE_ADJACENT`` only counts contact away from the shared corners.
    """

    INCLUDE_ADJACENT = "include-adjacent"
    EXCLUDE_ADJACENT = "exclude-adjacent"


def characteristic_length(vertices, faces, cell_scale: float = DEFAULT_CELL_SCALE) -> float:
    """
    Grid cell size: mean edge length over all faces times ``cell_scale``.

    Raises:
        EmptyMeshError: If there are no faces to average over
    """
    vertices = as_vertex_array(vertices)
    faces = as_face_array(faces)
    if len(faces) == 0:
        raise EmptyMeshError("Cannot size a spatial grid for a mesh with no faces")

    points = triangle_points(vertices, faces)
    lengths = np.linalg.norm(points - np.roll(points, -1, axis=1), axis=2)
    return float(lengths.sum() / (3.0 * len(faces)) * cell_scale)


class UniformGrid:
    """
    Sparse uniform grid mapping cell keys to face indices.

    A face is stored in every cell its bounding box overlaps, from
    ``floor(min / cell_size)`` to ``floor(max / cell_size)`` inclusive on
    each axis.
    """

    def __init__(self, cell_size: float):
        if cell_size <= 0.0:
            raise ValueError(f"Grid cell size must be positive, got {cell_size}")
        self.cell_size = cell_size
        self._cells: dict[GridKey, list[int]] = defaultdict(list)

    def __len__(self) -> int:
        return len(self._cells)

    def cell_of(self, point) -> GridKey:
        i, j, k = np.floor(np.asarray(point, dtype=np.float64) / self.cell_size).astype(np.int64)
        return int(i), int(j), int(k)

    def cells_overlapping(self, lo, hi) -> Iterator[GridKey]:
        """Every cell key covered by the box ``[lo, hi]``."""
        i0, j0, k0 = self.cell_of(lo)
        i1, j1, k1 = self.cell_of(hi)
        for i in range(i0, i1 + 1):
            for j in range(j0, j1 + 1):
                for k in range(k0, k1 + 1):
                    yield i, j, k

    def insert(self, face_index: int, lo, hi) -> None:
        for key in self.cells_overlapping(lo, hi):
            self._cells[key].append(face_index)

    def query(self, lo, hi) -> set[int]:
        """Faces stored in any cell the box ``[lo, hi]`` overlaps."""
        found: set[int] = set()
        for key in self.cells_overlapping(lo, hi):
            cell = self._cells.get(key)
            if cell:
                found.update(cell)
        return found


class _PairTester:
    """Shared narrow-phase state so both detectors run the identical predicate."""

    def __init__(self, vertices, faces, policy: AdjacencyPolicy):
        self.faces = as_face_array(faces)
        self.points = triangle_points(as_vertex_array(vertices), self.faces)
        self.degenerate = degenerate_mask(self.points)
        self.policy = AdjacencyPolicy(policy)
        self.tests = 0

    def adjacent(self, i: int, j: int) -> bool:
        return bool(np.intersect1d(self.faces[i], self.faces[j]).size)

    def intersects(self, i: int, j: int) -> bool:
        if i > j:
            i, j = j, i
        self.tests += 1
        if self.policy is AdjacencyPolicy.EXCLUDE_ADJACENT and self.adjacent(i, j):
            return adjacent_triangles_intersect(
                self.points[i], self.points[j], self.faces[i], self.faces[j]
            )
        return triangles_intersect(self.points[i], self.points[j])


def _build_grid(tester: _PairTester, cell_size: float) -> tuple[UniformGrid, np.ndarray, np.ndarray]:
    lo, hi = triangle_bounds(tester.points)
    grid = UniformGrid(cell_size)
    for face_index in range(len(tester.faces)):
        grid.insert(face_index, lo[face_index], hi[face_index])
    return grid, lo, hi


def find_intersecting_faces(
    vertices,
    faces,
    policy: AdjacencyPolicy = AdjacencyPolicy.INCLUDE_ADJACENT,
    cell_scale: float = DEFAULT_CELL_SCALE,
) -> np.ndarray:
    """
    Flag faces that are degenerate or intersect another face, using a grid.

    Args:
        vertices: ``(n, 3)`` vertex positions
        faces: ``(m, 3)`` triangles
        policy: Adjacency handling for faces sharing vertex indices
        cell_scale: Grid cell size as a multiple of the mean edge length

    Returns:
        Boolean array over faces, ``True`` for flagged faces

    Raises:
        EmptyMeshError: If ``faces`` is empty
    """
    tester = _PairTester(vertices, faces, policy)
    dx = characteristic_length(vertices, tester.faces, cell_scale)
    flags = np.zeros(len(tester.faces), dtype=bool)

    if dx == 0.0:
        # Every edge has zero length, so every face is a point
        flags[:] = True
        return flags

    grid, lo, hi = _build_grid(tester, dx)
    logger.debug(f"Spatial grid: {len(grid)} cells of size {dx:.6g} for {len(flags)} faces")

    for i in range(len(flags)):
        if flags[i]:
            continue
        if tester.degenerate[i]:
            flags[i] = True
            continue
        for j in sorted(grid.query(lo[i], hi[i])):
            if j == i:
                continue
            if tester.degenerate[j]:
                flags[j] = True
                continue
            if tester.intersects(i, j):
                flags[i] = True
                flags[j] = True
                break

    logger.debug(f"Grid detector ran {tester.tests} triangle tests, flagged {int(flags.sum())} faces")
    return flags


def find_intersecting_faces_bruteforce(
    vertices,
    faces,
    policy: AdjacencyPolicy = AdjacencyPolicy.INCLUDE_ADJACENT,
) -> np.ndarray:
    """Flag the same faces as :func:`find_intersecting_faces` by testing all pairs."""
    tester = _PairTester(vertices, faces, policy)
    flags = tester.degenerate.copy()
    count = len(flags)

    for i in range(count):
        if tester.degenerate[i]:
            continue
        for j in range(i + 1, count):
            if tester.degenerate[j] or (flags[i] and flags[j]):
                continue
            if tester.intersects(i, j):
                flags[i] = True
                flags[j] = True

    logger.debug(f"Brute-force detector ran {tester.tests} triangle tests, flagged {int(flags.sum())} faces")
    return flags


def find_intersecting_pairs(
    vertices,
    faces,
    policy: AdjacencyPolicy = AdjacencyPolicy.EXCLUDE_ADJACENT,
    cell_scale: float = DEFAULT_CELL_SCALE,
) -> list[tuple[int, int]]:
    """
    Enumerate every intersecting pair ``(i, j)`` with ``i < j``.

    Degenerate faces are skipped rather than reported. An empty face list
    yields no pairs.
    """
    tester = _PairTester(vertices, faces, policy)
    if len(tester.faces) == 0:
        return []
    dx = characteristic_length(vertices, tester.faces, cell_scale)
    if dx == 0.0:
        return []

    grid, lo, hi = _build_grid(tester, dx)
    pairs: list[tuple[int, int]] = []
    for i in range(len(tester.faces)):
        if tester.degenerate[i]:
            continue
        for j in sorted(grid.query(lo[i], hi[i])):
            if j <= i or tester.degenerate[j]:
                continue
            if tester.intersects(i, j):
                pairs.append((i, j))
    return pairs


def remove_self_intersections(
    vertices,
    faces,
    policy: AdjacencyPolicy = AdjacencyPolicy.INCLUDE_ADJACENT,
    cell_scale: float = DEFAULT_CELL_SCALE,
) -> np.ndarray:
    """Return the faces not involved in any intersection (grid accelerated)."""
    faces = as_face_array(faces)
    return faces[~find_intersecting_faces(vertices, faces, policy, cell_scale)]


def remove_self_intersections_bruteforce(
    vertices,
    faces,
    policy: AdjacencyPolicy = AdjacencyPolicy.INCLUDE_ADJACENT,
) -> np.ndarray:
    """Return the faces not involved in any intersection (all pairs)."""
    faces = as_face_array(faces)
    return faces[~find_intersecting_faces_bruteforce(vertices, faces, policy)]
