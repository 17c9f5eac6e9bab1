# Copyright 2025 Allard Peper (Dragon Ace / DragonAceNL)
# Licensed under the Apache License, Version 2.0 (see LICENSE).

"""Small-hole classification for boundary loops."""

from typing import Iterable

import numpy as np


def is_small_hole(points: Iterable, max_edges: int, max_diam: float) -> bool:
    """
    Decide whether a boundary loop is small enough to fill automatically.

    Walks the loop one vertex at a time, growing a bounding box. Returns
    as soon as the loop has more than ``max_edges`` edges or the box is
    wider than ``max_diam`` on any axis, so large holes are never walked
    in full.

    Args:
        points: Positions of the loop vertices in boundary order, one per
            boundary edge; may be a lazy iterator
        max_edges: Largest edge count still considered small
        max_diam: Largest bounding box extent still considered small

    Returns:
        True if the loop stays within both limits
    """
    edge_count = 0
    lo = np.full(3, np.inf)
    hi = np.full(3, -np.inf)

    for point in points:
        point = np.asarray(point, dtype=np.float64)
        np.minimum(lo, point, out=lo)
        np.maximum(hi, point, out=hi)
        edge_count += 1

        if edge_count > max_edges:
            return False
        if np.any(hi - lo > max_diam):
            return False

    return True
