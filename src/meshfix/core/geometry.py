# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""
Triangle predicates used by the self-intersection detectors.

The triangle-triangle test follows Möller's interval-overlap method: each
triangle is checked against the plane of the other, and if both straddle
the other's plane the two intervals cut out of the planes' intersection
line are compared. Coplanar pairs fall back to a 2D edge/containment test.

Triangles are closed sets. Pairs that only touch (a shared vertex, a
shared edge, a vertex lying on the other triangle) count as intersecting.
Signed distances below a tolerance relative to the triangle size are
snapped to zero, so shared vertices land exactly on the other plane.
"""

import numpy as np

# Relative tolerance for plane distances and degenerate areas
EPSILON = 1e-10


def triangle_points(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Gather the corner positions of every face as an ``(m, 3, 3)`` array."""
    return vertices[faces]


def triangle_bounds(points: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Axis-aligned bounding boxes ``(mins, maxs)`` of ``(m, 3, 3)`` corners."""
    return points.min(axis=1), points.max(axis=1)


def degenerate_mask(points: np.ndarray, eps: float = EPSILON) -> np.ndarray:
    """
    Flag zero-area triangles.

    A triangle is degenerate when its corners are collinear or coincide,
    measured as twice its area against the square of its longest edge.

    Args:
        points: ``(m, 3, 3)`` triangle corners
        eps: Relative area tolerance

    Returns:
        Boolean array, ``True`` for degenerate faces
    """
    if len(points) == 0:
        return np.zeros(0, dtype=bool)
    e0 = points[:, 1] - points[:, 0]
    e1 = points[:, 2] - points[:, 0]
    e2 = points[:, 2] - points[:, 1]
    double_area = np.linalg.norm(np.cross(e0, e1), axis=1)
    longest_sq = np.max(
        np.stack([(e0 ** 2).sum(axis=1), (e1 ** 2).sum(axis=1), (e2 ** 2).sum(axis=1)], axis=1),
        axis=1,
    )
    return (longest_sq == 0.0) | (double_area <= eps * longest_sq)


def is_degenerate(triangle: np.ndarray, eps: float = EPSILON) -> bool:
    """True if a single ``(3, 3)`` triangle has zero area."""
    return bool(degenerate_mask(np.asarray(triangle, dtype=np.float64)[None], eps)[0])


def _plane_distances(origin, normal, tolerance, points):
    distances = [float(np.dot(normal, p - origin)) for p in points]
    return [0.0 if abs(d) <= tolerance else d for d in distances]


def _interval(projections, distances):
    """Parameter interval cut from the intersection line, or None if coplanar."""
    p0, p1, p2 = projections
    d0, d1, d2 = distances

    if d0 * d1 > 0.0:
        isolated, a, b = 2, 0, 1
    elif d0 * d2 > 0.0:
        isolated, a, b = 1, 0, 2
    elif d1 * d2 > 0.0 or d0 != 0.0:
        isolated, a, b = 0, 1, 2
    elif d1 != 0.0:
        isolated, a, b = 1, 0, 2
    elif d2 != 0.0:
        isolated, a, b = 2, 0, 1
    else:
        return None

    pk, dk = projections[isolated], distances[isolated]
    pa, da = projections[a], distances[a]
    pb, db = projections[b], distances[b]
    t0 = pa + (pk - pa) * da / (da - dk)
    t1 = pb + (pk - pb) * db / (db - dk)
    return (t0, t1) if t0 <= t1 else (t1, t0)


def _orient2d(a, b, c) -> float:
    return (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])


def _on_segment(a, b, p) -> bool:
    return (
        min(a[0], b[0]) <= p[0] <= max(a[0], b[0])
        and min(a[1], b[1]) <= p[1] <= max(a[1], b[1])
    )


def _segments_intersect_2d(a, b, c, d, tolerance) -> bool:
    o1 = _orient2d(a, b, c)
    o2 = _orient2d(a, b, d)
    o3 = _orient2d(c, d, a)
    o4 = _orient2d(c, d, b)
    o1, o2, o3, o4 = (0.0 if abs(o) <= tolerance else o for o in (o1, o2, o3, o4))

    if o1 * o2 < 0.0 and o3 * o4 < 0.0:
        return True
    if o1 == 0.0 and _on_segment(a, b, c):
        return True
    if o2 == 0.0 and _on_segment(a, b, d):
        return True
    if o3 == 0.0 and _on_segment(c, d, a):
        return True
    if o4 == 0.0 and _on_segment(c, d, b):
        return True
    return False


def _point_in_triangle_2d(p, tri, tolerance) -> bool:
    s0 = _orient2d(tri[0], tri[1], p)
    s1 = _orient2d(tri[1], tri[2], p)
    s2 = _orient2d(tri[2], tri[0], p)
    s0, s1, s2 = (0.0 if abs(s) <= tolerance else s for s in (s0, s1, s2))
    has_negative = s0 < 0.0 or s1 < 0.0 or s2 < 0.0
    has_positive = s0 > 0.0 or s1 > 0.0 or s2 > 0.0
    return not (has_negative and has_positive)


def _coplanar_intersect(first, second, normal, scale) -> bool:
    # Drop the dominant normal axis and work in the remaining 2D plane
    axes = [i for i in range(3) if i != int(np.argmax(np.abs(normal)))]
    a = first[:, axes]
    b = second[:, axes]
    tolerance = EPSILON * scale * scale

    for i in range(3):
        for j in range(3):
            if _segments_intersect_2d(a[i], a[(i + 1) % 3], b[j], b[(j + 1) % 3], tolerance):
                return True

    return _point_in_triangle_2d(a[0], b, tolerance) or _point_in_triangle_2d(b[0], a, tolerance)


def triangles_intersect(first: np.ndarray, second: np.ndarray) -> bool:
    """
    Test two non-degenerate triangles for intersection.

    Args:
        first: ``(3, 3)`` corner positions
        second: ``(3, 3)`` corner positions

    Returns:
        True if the closed triangles share at least one point
    """
    first = np.asarray(first, dtype=np.float64)
    second = np.asarray(second, dtype=np.float64)

    lo = np.minimum(first.min(axis=0), second.min(axis=0))
    hi = np.maximum(first.max(axis=0), second.max(axis=0))
    scale = float(np.max(hi - lo))
    if scale == 0.0:
        return True

    n1 = np.cross(first[1] - first[0], first[2] - first[0])
    d_second = _plane_distances(first[0], n1, EPSILON * float(np.linalg.norm(n1)) * scale, second)
    if d_second[0] * d_second[1] > 0.0 and d_second[0] * d_second[2] > 0.0:
        return False

    n2 = np.cross(second[1] - second[0], second[2] - second[0])
    d_first = _plane_distances(second[0], n2, EPSILON * float(np.linalg.norm(n2)) * scale, first)
    if d_first[0] * d_first[1] > 0.0 and d_first[0] * d_first[2] > 0.0:
        return False

    if not any(d_first) or not any(d_second):
        return _coplanar_intersect(first, second, n1, scale)

    # Project onto the dominant axis of the planes' intersection line
    direction = np.cross(n1, n2)
    axis = int(np.argmax(np.abs(direction)))

    interval_first = _interval([float(p[axis]) for p in first], d_first)
    interval_second = _interval([float(p[axis]) for p in second], d_second)
    if interval_first is None or interval_second is None:
        return _coplanar_intersect(first, second, n1, scale)

    return not (interval_first[1] < interval_second[0] or interval_second[1] < interval_first[0])


def segment_intersects_triangle(start, end, triangle) -> bool:
    """True if the closed segment ``start``-``end`` meets a closed ``(3, 3)`` triangle."""
    start = np.asarray(start, dtype=np.float64)
    end = np.asarray(end, dtype=np.float64)
    triangle = np.asarray(triangle, dtype=np.float64)

    corners = np.vstack([triangle, start, end])
    scale = float(np.max(corners.max(axis=0) - corners.min(axis=0)))
    if scale == 0.0:
        return True

    normal = np.cross(triangle[1] - triangle[0], triangle[2] - triangle[0])
    d_start, d_end = _plane_distances(
        triangle[0], normal, EPSILON * float(np.linalg.norm(normal)) * scale, (start, end)
    )
    if d_start * d_end > 0.0:
        return False

    axes = [i for i in range(3) if i != int(np.argmax(np.abs(normal)))]
    flat = triangle[:, axes]
    tolerance = EPSILON * scale * scale

    if d_start == 0.0 and d_end == 0.0:
        a, b = start[axes], end[axes]
        if _point_in_triangle_2d(a, flat, tolerance) or _point_in_triangle_2d(b, flat, tolerance):
            return True
        return any(
            _segments_intersect_2d(a, b, flat[k], flat[(k + 1) % 3], tolerance) for k in range(3)
        )

    hit = start + (end - start) * (d_start / (d_start - d_end))
    return _point_in_triangle_2d(hit[axes], flat, tolerance)


def adjacent_triangles_intersect(first, second, first_ids, second_ids) -> bool:
    """
    Test two triangles that share corners for contact away from those corners.

    Faces sharing an edge only overlap beyond it when they are coplanar and
    folded onto the same side of the edge. Faces sharing a single corner
    overlap beyond it exactly when the edge opposite that corner in one of
    them meets the other triangle. Faces on the same three corners coincide
    and always overlap. Without shared corners this is
    :func:`triangles_intersect`.

    Args:
        first: ``(3, 3)`` corner positions
        second: ``(3, 3)`` corner positions
        first_ids: Vertex indices of ``first``
        second_ids: Vertex indices of ``second``

    Returns:
        True if the triangles share a point other than their common corners
    """
    first = np.asarray(first, dtype=np.float64)
    second = np.asarray(second, dtype=np.float64)
    first_ids = [int(v) for v in first_ids]
    second_ids = [int(v) for v in second_ids]
    shared = [v for v in first_ids if v in second_ids]

    if len(shared) >= 3:
        return True

    if len(shared) == 2:
        a = first[first_ids.index(shared[0])]
        b = first[first_ids.index(shared[1])]
        c = next(first[k] for k, v in enumerate(first_ids) if v not in shared)
        d = next(second[k] for k, v in enumerate(second_ids) if v not in shared)

        corners = np.vstack([first, second])
        scale = float(np.max(corners.max(axis=0) - corners.min(axis=0)))
        n_first = np.cross(b - a, c - a)
        n_second = np.cross(b - a, d - a)
        if abs(float(np.dot(n_first, d - a))) > EPSILON * float(np.linalg.norm(n_first)) * scale:
            return False
        # Coplanar: overlap iff both apexes lie on the same side of the edge
        return float(np.dot(n_first, n_second)) > 0.0

    if len(shared) == 1:
        far_first = first[[k for k, v in enumerate(first_ids) if v != shared[0]]]
        far_second = second[[k for k, v in enumerate(second_ids) if v != shared[0]]]
        return (
            segment_intersects_triangle(far_first[0], far_first[1], second)
            or segment_intersects_triangle(far_second[0], far_second[1], first)
        )

    return triangles_intersect(first, second)
