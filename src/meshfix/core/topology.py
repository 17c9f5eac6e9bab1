# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Vertex, triangle and edge containers shared by every repair stage.

Vertices are an ``(n, 3)`` float64 array and are identified only by their
row index. Triangles are an ``(m, 3)`` int64 array of vertex indices whose
order defines three directed edges ``(v0, v1)``, ``(v1, v2)``, ``(v2, v0)``.
"""

from typing import Sequence

import numpy as np

Edge = tuple[int, int]


def as_vertex_array(vertices) -> np.ndarray:
    """Return vertices as a contiguous ``(n, 3)`` float64 array."""
    array = np.asarray(vertices, dtype=np.float64)
    if array.size == 0:
        return np.zeros((0, 3), dtype=np.float64)
    return np.ascontiguousarray(array.reshape(-1, 3))


def as_face_array(faces) -> np.ndarray:
    """
    Return triangles as an ``(m, 3)`` int64 array.

    Accepts a nested sequence of triples or a flat index list
    (``[a0, b0, c0, a1, b1, c1, ...]``).
    """
    array = np.asarray(faces, dtype=np.int64)
    if array.size == 0:
        return np.zeros((0, 3), dtype=np.int64)
    return np.ascontiguousarray(array.reshape(-1, 3))


def directed_edges(triangle: Sequence[int]) -> tuple[Edge, Edge, Edge]:
    """The three directed edges of a triangle, in winding order."""
    a, b, c = (int(v) for v in triangle)
    return (a, b), (b, c), (c, a)


def undirected_edges(triangle: Sequence[int]) -> frozenset[Edge]:
    """The edges of a triangle with direction dropped (smaller index first)."""
    return frozenset(
        (a, b) if a <= b else (b, a) for a, b in directed_edges(triangle)
    )


def shares_edge(first: Sequence[int], second: Sequence[int]) -> bool:
    """True if two triangles have an edge in common, ignoring direction."""
    return not undirected_edges(first).isdisjoint(undirected_edges(second))


def vertex_neighborhoods(
    faces: np.ndarray,
    keep: np.ndarray,
    vertex_count: int,
) -> list[list[int]]:
    """
    Collect, for every vertex, the kept faces incident to it.

    Args:
        faces: ``(m, 3)`` triangle array
        keep: Boolean mask over faces; only ``True`` faces are collected
        vertex_count: Number of vertices (length of the result)

    Returns:
        List indexed by vertex holding face indices in ascending order
    """
    neighborhoods: list[list[int]] = [[] for _ in range(vertex_count)]
    for face_index in np.flatnonzero(keep).tolist():
        a, b, c = faces[face_index].tolist()
        neighborhoods[a].append(face_index)
        if b != a:
            neighborhoods[b].append(face_index)
        if c != a and c != b:
            neighborhoods[c].append(face_index)
    return neighborhoods
