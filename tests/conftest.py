# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""Pytest configuration and fixtures: small synthetic meshes with known defects."""

import math

import numpy as np
import pytest
import trimesh


@pytest.fixture
def tetrahedron():
    """Closed, consistently wound tetrahedron as (vertices, faces)."""
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [0.0, 0.0, 1.0],
    ])
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    return vertices, faces


@pytest.fixture
def box():
    """Closed unit box (8 vertices, 12 faces) as (vertices, faces)."""
    mesh = trimesh.creation.box(extents=[1.0, 1.0, 1.0])
    return np.array(mesh.vertices), np.array(mesh.faces)


@pytest.fixture
def open_box(box):
    """Unit box with its two top triangles removed, leaving one square hole."""
    vertices, faces = box
    top = (vertices[faces][:, :, 2] > 0).all(axis=1)
    return vertices, faces[~top]


@pytest.fixture
def pierced_box():
    """Box of size 2 with a separate triangle poking out through its top."""
    mesh = trimesh.creation.box(extents=[2.0, 2.0, 2.0])
    spike = np.array([[0.6, 0.2, 0.0], [0.8, 0.2, 3.0], [0.6, 0.4, 3.0]])
    vertices = np.vstack([mesh.vertices, spike])
    faces = np.vstack([mesh.faces, [[8, 9, 10]]])
    return vertices, faces


@pytest.fixture
def crossing_triangles():
    """Two triangles whose interiors cross, sharing no vertices."""
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [2.0, 0.0, 0.0],
        [0.0, 2.0, 0.0],
        [0.25, 0.25, -1.0],
        [0.25, 0.25, 1.0],
        [0.25, 1.0, 0.0],
    ])
    faces = np.array([[0, 1, 2], [3, 4, 5]])
    return vertices, faces


@pytest.fixture
def disjoint_triangles():
    """Two triangles far apart."""
    vertices = np.array([
        [0.0, 0.0, 0.0],
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [10.0, 10.0, 10.0],
        [11.0, 10.0, 10.0],
        [10.0, 11.0, 10.0],
    ])
    faces = np.array([[0, 1, 2], [3, 4, 5]])
    return vertices, faces


@pytest.fixture
def tube():
    """Open cylinder: two rings of 24 vertices joined by 48 side faces."""
    segments = 24
    angles = np.arange(segments) * (2.0 * math.pi / segments)
    ring = np.column_stack([np.cos(angles), np.sin(angles), np.zeros(segments)])
    vertices = np.vstack([ring, ring + [0.0, 0.0, 1.0]])

    faces = []
    for i in range(segments):
        a, b = i, (i + 1) % segments
        c, d = a + segments, b + segments
        faces.append([a, b, d])
        faces.append([a, d, c])
    return vertices, np.array(faces)


@pytest.fixture
def triangle_soup():
    """Forty random triangles in the unit cube (fixed seed)."""
    rng = np.random.default_rng(0)
    vertices = rng.random((120, 3))
    faces = np.arange(120).reshape(-1, 3)
    return vertices, faces


@pytest.fixture
def write_obj(tmp_path):
    """Write (vertices, faces) as a plain v/f OBJ file and return its path."""
    def _write(vertices, faces, name="mesh.obj"):
        path = tmp_path / name
        lines = [f"v {x:.17g} {y:.17g} {z:.17g}" for x, y, z in np.asarray(vertices)]
        lines += [f"f {a + 1} {b + 1} {c + 1}" for a, b, c in np.asarray(faces)]
        path.write_text("\n".join(lines) + "\n")
        return path
    return _write
