# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Non-manifold edge and vertex removal.

Works on plain (vertex, triangle) arrays before any polyhedral structure
exists, so that the kernel is only ever asked to build manifold meshes.

The repair runs in two phases:

1. Edge phase: every directed edge shared by more than
   ``max_faces_per_edge`` faces is non-manifold. Its faces are removed and
   both endpoints become problematic, which removes every other face
   incident to them as well.
2. Vertex phase: the kept faces around each vertex are split into clusters
   joined by shared (undirected) edges. A vertex whose faces form more than
   one cluster is a pinch point ("bowtie") and loses all its faces. Dropping
   a fan can split the fan of a neighbouring vertex, so the phase is
   repeated on the corners of the removed faces until nothing changes.

Each vertex round reads a frozen snapshot and only ever produces "remove"
decisions, so it is split into chunks of vertices and run on a bounded
thread pool. Each chunk returns its own list of faces to drop and the lists
are merged afterwards, which keeps the result independent of scheduling.
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Sequence
import logging

import numpy as np

from .edge_index import DEFAULT_MAX_FACES_PER_EDGE, build_edge_index, non_manifold_edges
from .topology import Edge, as_face_array, as_vertex_array, undirected_edges, vertex_neighborhoods

logger = logging.getLogger(__name__)

# Vertex chunks handed to each worker
CHUNKS_PER_WORKER = 4


@dataclass
class NonManifoldReport:
    """
    Counts collected by one non-manifold repair pass.

    Attributes:
        faces_in: Number of input triangles
        faces_out: Number of triangles kept
        non_manifold_edge_count: Directed edges over the face tolerance
        problematic_vertex_count: Distinct endpoints of those edges
        non_manifold_vertex_count: Vertices whose face fan split into clusters
        vertex_passes: Vertex-phase rounds that removed faces
    """

    faces_in: int = 0
    faces_out: int = 0
    non_manifold_edge_count: int = 0
    problematic_vertex_count: int = 0
    non_manifold_vertex_count: int = 0
    vertex_passes: int = 0

    @property
    def removed_count(self) -> int:
        """Number of triangles dropped by the pass."""
        return self.faces_in - self.faces_out

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "faces_in": self.faces_in,
            "faces_out": self.faces_out,
            "removed_count": self.removed_count,
            "non_manifold_edge_count": self.non_manifold_edge_count,
            "problematic_vertex_count": self.problematic_vertex_count,
            "non_manifold_vertex_count": self.non_manifold_vertex_count,
            "vertex_passes": self.vertex_passes,
        }


def face_clusters(
    neighborhood: Sequence[int],
    face_edges: Sequence[frozenset[Edge]],
) -> list[list[int]]:
    """
    Split the faces around one vertex into edge-connected clusters.

    Two faces belong to the same cluster when a chain of faces links them
    where consecutive faces share an undirected edge.

    Args:
        neighborhood: Face indices incident to the vertex
        face_edges: Undirected edge set for every face of the mesh

    Returns:
        Clusters as lists of face indices, in discovery order
    """
    count = len(neighborhood)
    sampled = [False] * count
    clusters: list[list[int]] = []

    for seed in range(count):
        if sampled[seed]:
            continue
        sampled[seed] = True
        cluster = [neighborhood[seed]]
        worklist = deque([seed])
        while worklist:
            current = face_edges[neighborhood[worklist.popleft()]]
            for other in range(count):
                if sampled[other]:
                    continue
                if not current.isdisjoint(face_edges[neighborhood[other]]):
                    sampled[other] = True
                    cluster.append(neighborhood[other])
                    worklist.append(other)
        clusters.append(cluster)

    return clusters


def _analyze_vertices(
    vertex_ids: Sequence[int],
    neighborhoods: list[list[int]],
    face_edges: list[frozenset[Edge]],
) -> tuple[list[int], int]:
    """Faces to drop around the pinch vertices of one chunk, plus their count."""
    removed: list[int] = []
    pinched = 0
    for vertex in vertex_ids:
        neighborhood = neighborhoods[vertex]
        if len(neighborhood) < 2:
            continue
        if len(face_clusters(neighborhood, face_edges)) > 1:
            pinched += 1
            removed.extend(neighborhood)
    return removed, pinched


def _vertex_chunks(vertex_ids: Sequence[int], workers: int) -> list[Sequence[int]]:
    chunk_count = max(1, workers * CHUNKS_PER_WORKER)
    step = max(1, -(-len(vertex_ids) // chunk_count))
    return [vertex_ids[start:start + step] for start in range(0, len(vertex_ids), step)]


def repair_non_manifold(
    vertices,
    faces,
    max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE,
    workers: int = 1,
    verbose: bool = False,
) -> tuple[np.ndarray, NonManifoldReport]:
    """
    Remove faces touching non-manifold edges or vertices.

    Args:
        vertices: ``(n, 3)`` vertex positions (only the count is used)
        faces: ``(m, 3)`` triangles
        max_faces_per_edge: Faces tolerated on one directed edge
        workers: Thread pool size for the vertex phase (1 runs inline)
        verbose: Log the pass summary at INFO instead of DEBUG

    Returns:
        Tuple of (kept triangles in input order, NonManifoldReport)
    """
    faces = as_face_array(faces)
    vertex_count = max(
        len(as_vertex_array(vertices)),
        int(faces.max()) + 1 if len(faces) else 0,
    )
    report = NonManifoldReport(faces_in=len(faces))
    keep = np.ones(len(faces), dtype=bool)

    # Edge phase
    index = build_edge_index(faces)
    bad_edges = non_manifold_edges(index, max_faces_per_edge)
    problematic: set[int] = set()
    for edge in bad_edges:
        keep[index[edge]] = False
        problematic.update(edge)
    report.non_manifold_edge_count = len(bad_edges)
    report.problematic_vertex_count = len(problematic)

    if problematic:
        incident = np.isin(faces, sorted(problematic)).any(axis=1)
        keep &= ~incident

    # Vertex phase, repeated on the corners of removed faces until stable
    face_edges = [undirected_edges(f) for f in faces.tolist()]
    candidates: Sequence[int] = range(vertex_count)
    while len(candidates):
        neighborhoods = vertex_neighborhoods(faces, keep, vertex_count)
        chunks = _vertex_chunks(candidates, workers)

        if workers > 1 and len(chunks) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                results = list(executor.map(
                    lambda chunk: _analyze_vertices(chunk, neighborhoods, face_edges),
                    chunks,
                ))
        else:
            results = [_analyze_vertices(chunk, neighborhoods, face_edges) for chunk in chunks]

        removed = np.zeros(len(faces), dtype=bool)
        for chunk_removed, pinched in results:
            removed[chunk_removed] = True
            report.non_manifold_vertex_count += pinched
        if not removed.any():
            break

        keep &= ~removed
        report.vertex_passes += 1
        candidates = np.unique(faces[removed]).tolist()

    result = faces[keep]
    report.faces_out = len(result)

    log = logger.info if verbose else logger.debug
    log(
        f"Found {report.non_manifold_edge_count} non-manifold edges and "
        f"{report.non_manifold_vertex_count} non-manifold vertices"
    )
    log(f"After removing non-manifold geometry: {report.faces_out} of {report.faces_in} faces")

    return result, report


def remove_non_manifold(
    vertices,
    faces,
    max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE,
    workers: int = 1,
    verbose: bool = False,
) -> np.ndarray:
    """Return the subset of ``faces`` free of non-manifold edges and vertices."""
    result, _ = repair_non_manifold(
        vertices,
        faces,
        max_faces_per_edge=max_faces_per_edge,
        workers=workers,
        verbose=verbose,
    )
    return result
