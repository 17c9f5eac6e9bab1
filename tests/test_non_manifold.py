# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""Tests for the edge index and non-manifold repair."""

import numpy as np
import pytest
import trimesh

from meshfix.core.edge_index import build_edge_index, non_manifold_edges
from meshfix.core.non_manifold import face_clusters, remove_non_manifold, repair_non_manifold
from meshfix.core.topology import undirected_edges, vertex_neighborhoods
from meshfix.core.validation import check_manifold


@pytest.fixture
def pinched_sphere():
    """Icosphere with an extra triangle hanging off vertex 0 by a single corner."""
    sphere = trimesh.creation.icosphere(subdivisions=1)
    vertices = np.vstack([sphere.vertices, [[2.0, 0.0, 0.0], [2.0, 1.0, 0.0]]])
    faces = np.vstack([sphere.faces, [[0, 42, 43]]])
    return vertices, faces


# Meshes whose first round of pinch removal exposes further pinches, or
# whose edge and vertex defects overlap
UNSTABLE_MESHES = {
    "split_fan": [[0, 1, 2], [0, 2, 3], [0, 3, 4], [0, 4, 5], [3, 6, 7]],
    "bowtie": [[0, 1, 2], [0, 3, 4]],
    "bowtie_chain": [[0, 1, 2], [0, 3, 4], [4, 5, 6], [4, 7, 8]],
    "edge_fan": [[0, 1, 2], [0, 1, 3], [0, 1, 4], [2, 5, 0], [6, 7, 8]],
    "tetrahedra_on_a_corner": [
        [0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3],
        [0, 5, 4], [0, 4, 6], [0, 6, 5], [4, 5, 6],
    ],
    "fan_with_flap": [[0, 1, 2], [0, 2, 3], [0, 3, 4], [0, 4, 1], [2, 5, 6], [2, 6, 7]],
}


class TestEdgeIndex:
    """Tests for the directed-edge index."""

    def test_every_directed_edge_indexed(self, tetrahedron):
        """A closed tetrahedron has 12 directed edges, one face each."""
        _, faces = tetrahedron
        index = build_edge_index(faces)

        assert len(index) == 12
        assert all(len(incident) == 1 for incident in index.values())

    def test_direction_is_part_of_key(self):
        """Opposite half-edges are separate entries."""
        index = build_edge_index([[0, 1, 2], [1, 0, 3]])

        assert index[(0, 1)] == [0]
        assert index[(1, 0)] == [1]

    def test_faces_listed_in_order(self):
        """Incident faces are listed by ascending face index."""
        index = build_edge_index([[0, 1, 2], [0, 1, 3], [0, 1, 4]])

        assert index[(0, 1)] == [0, 1, 2]
        assert non_manifold_edges(index) == [(0, 1)]
        assert non_manifold_edges(index, max_faces_per_edge=3) == []

    def test_flat_index_list(self):
        """A flat list of indices is read as consecutive triples."""
        index = build_edge_index([0, 1, 2, 2, 1, 3])

        assert index[(2, 1)] == [1]
        assert index[(1, 2)] == [0]

    def test_empty(self):
        """No faces, no edges."""
        assert build_edge_index([]) == {}


class TestFaceClusters:
    """Tests for the per-vertex clustering."""

    def test_fan_is_one_cluster(self, tetrahedron):
        """The faces around a tetrahedron corner are edge-connected."""
        _, faces = tetrahedron
        face_edges = [undirected_edges(f) for f in faces.tolist()]
        neighborhoods = vertex_neighborhoods(faces, np.ones(len(faces), dtype=bool), 4)

        assert face_clusters(neighborhoods[0], face_edges) == [[0, 1, 2]]

    def test_bowtie_is_two_clusters(self):
        """Two triangles sharing only a vertex form two clusters."""
        face_edges = [undirected_edges(f) for f in [[0, 1, 2], [0, 3, 4]]]

        assert len(face_clusters([0, 1], face_edges)) == 2

    def test_order_does_not_matter(self):
        """A fan is one cluster however its faces are ordered."""
        faces = [[0, 1, 2], [0, 3, 4], [0, 2, 3]]
        face_edges = [undirected_edges(f) for f in faces]

        assert len(face_clusters([0, 1, 2], face_edges)) == 1


class TestRemoveNonManifold:
    """Tests for non-manifold edge and vertex removal."""

    def test_closed_mesh_unchanged(self, tetrahedron):
        """A manifold tetrahedron keeps all its faces."""
        vertices, faces = tetrahedron
        result, report = repair_non_manifold(vertices, faces)

        assert np.array_equal(result, faces)
        assert report.removed_count == 0
        assert report.non_manifold_edge_count == 0

    def test_duplicated_face_within_tolerance(self, tetrahedron):
        """A duplicated face puts two faces on each of its edges, which is tolerated."""
        vertices, faces = tetrahedron
        faces = np.vstack([faces, faces[:1]])

        result = remove_non_manifold(vertices, faces)

        assert len(result) == 5

    def test_duplicated_face_strict_tolerance(self, tetrahedron):
        """With one face per edge the duplicate's endpoints take the whole mesh."""
        vertices, faces = tetrahedron
        faces = np.vstack([faces, faces[:1]])

        result, report = repair_non_manifold(vertices, faces, max_faces_per_edge=1)

        assert len(result) == 0
        assert report.non_manifold_edge_count == 3
        assert report.problematic_vertex_count == 3

    def test_edge_fan_removes_touching_faces(self):
        """Three faces on one edge remove every face touching its endpoints."""
        vertices = np.zeros((9, 3))
        faces = np.array([[0, 1, 2], [0, 1, 3], [0, 1, 4], [2, 5, 0], [6, 7, 8]])

        result, report = repair_non_manifold(vertices, faces)

        assert result.tolist() == [[6, 7, 8]]
        assert report.non_manifold_edge_count == 1
        assert report.problematic_vertex_count == 2

    def test_bowtie_removed(self):
        """Both triangles of a bowtie go."""
        vertices = np.zeros((5, 3))
        faces = np.array([[0, 1, 2], [0, 3, 4]])

        result, report = repair_non_manifold(vertices, faces)

        assert len(result) == 0
        assert report.non_manifold_vertex_count == 1

    def test_pinch_vertex(self, pinched_sphere):
        """Every face around a pinch vertex is removed, nothing else."""
        vertices, faces = pinched_sphere
        expected = faces[~(faces == 0).any(axis=1)]

        result = remove_non_manifold(vertices, faces)

        assert np.array_equal(result, expected)

    def test_workers_match_sequential(self, pinched_sphere):
        """The thread pool gives the same faces as the inline run."""
        vertices, faces = pinched_sphere

        sequential = remove_non_manifold(vertices, faces, workers=1)
        threaded = remove_non_manifold(vertices, faces, workers=4)

        assert np.array_equal(sequential, threaded)

    def test_idempotent(self, pinched_sphere):
        """A second pass removes nothing."""
        vertices, faces = pinched_sphere
        once = remove_non_manifold(vertices, faces)
        twice = remove_non_manifold(vertices, once)

        assert np.array_equal(once, twice)

    def test_output_is_manifold(self, pinched_sphere):
        """The result passes the manifold check."""
        vertices, faces = pinched_sphere
        result = remove_non_manifold(vertices, faces)

        assert check_manifold(result).is_manifold

    def test_output_is_subset_in_order(self, pinched_sphere):
        """Kept faces appear in their original relative order."""
        vertices, faces = pinched_sphere
        result = remove_non_manifold(vertices, faces)

        positions = [int(np.flatnonzero((faces == f).all(axis=1))[0]) for f in result]
        assert positions == sorted(positions)

    def test_empty(self):
        """No faces in, no faces out."""
        result, report = repair_non_manifold(np.zeros((0, 3)), [])

        assert result.shape == (0, 3)
        assert report.faces_in == 0

    def test_report_to_dict(self):
        """Report serializes its counts."""
        _, report = repair_non_manifold(np.zeros((5, 3)), [[0, 1, 2], [0, 3, 4]])
        d = report.to_dict()

        assert d["faces_in"] == 2
        assert d["faces_out"] == 0
        assert d["non_manifold_vertex_count"] == 1

    def test_split_fan_is_removed(self):
        """A fan split by a neighbour's pinch removal is itself removed."""
        faces = UNSTABLE_MESHES["split_fan"]

        result, report = repair_non_manifold(np.zeros((8, 3)), faces)

        assert len(result) == 0
        assert report.non_manifold_vertex_count == 2
        assert report.vertex_passes == 2


@pytest.mark.parametrize("name", sorted(UNSTABLE_MESHES))
class TestRepairIsStable:
    """Manifold output and idempotence on meshes with cascading defects."""

    def test_output_is_manifold(self, name):
        """The result passes the manifold check."""
        faces = np.array(UNSTABLE_MESHES[name])
        result = remove_non_manifold(np.zeros((faces.max() + 1, 3)), faces)

        assert check_manifold(result).is_manifold

    def test_idempotent(self, name):
        """Repairing the result again changes nothing."""
        faces = np.array(UNSTABLE_MESHES[name])
        vertices = np.zeros((faces.max() + 1, 3))
        once = remove_non_manifold(vertices, faces)
        twice = remove_non_manifold(vertices, once)

        assert np.array_equal(once, twice)

    def test_workers_match_sequential(self, name):
        """The thread pool gives the same faces as the inline run."""
        faces = np.array(UNSTABLE_MESHES[name])
        vertices = np.zeros((faces.max() + 1, 3))

        assert np.array_equal(
            remove_non_manifold(vertices, faces, workers=1),
            remove_non_manifold(vertices, faces, workers=3),
        )
