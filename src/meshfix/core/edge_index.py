# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Directed-edge adjacency index.

Maps every directed edge ``(origin, destination)`` to the faces that
contain exactly that edge. Direction is part of the key: the edge
``(b, a)`` of a neighbouring face is a separate entry.
"""

from collections import defaultdict

from .topology import Edge, as_face_array

# More faces than this on one directed edge is a manifold violation
DEFAULT_MAX_FACES_PER_EDGE = 2


def build_edge_index(faces) -> dict[Edge, list[int]]:
    """
    Build the directed-edge to incident-face index.

    Args:
        faces: Triangle array or nested sequence of vertex triples

    Returns:
        Dictionary keyed by directed edge; values list face indices in
        ascending order
    """
    index: dict[Edge, list[int]] = defaultdict(list)
    for face_index, (a, b, c) in enumerate(as_face_array(faces).tolist()):
        index[(a, b)].append(face_index)
        index[(b, c)].append(face_index)
        index[(c, a)].append(face_index)
    return dict(index)


def non_manifold_edges(
    index: dict[Edge, list[int]],
    max_faces_per_edge: int = DEFAULT_MAX_FACES_PER_EDGE,
) -> list[Edge]:
    """Directed edges carrying more than ``max_faces_per_edge`` faces."""
    return [edge for edge, incident in index.items() if len(incident) > max_faces_per_edge]
