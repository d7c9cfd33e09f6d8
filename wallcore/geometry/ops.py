"""Low-level planar helpers shared by the engines."""

from __future__ import annotations

import math
from typing import List, Sequence, Tuple

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from wallcore.geometry.contract import PARALLEL_DET_EPS

Coord = Tuple[float, float]


def project_point_to_segment(px: float, py: float, a: Coord, b: Coord) -> Tuple[float, float, float]:
    """Closest point on segment ``a``-``b`` and its clamped parameter."""
    ax, ay = a
    bx, by = b
    dx, dy = bx - ax, by - ay
    L2 = dx * dx + dy * dy
    if L2 <= 1e-18:
        return ax, ay, 0.0
    t = ((px - ax) * dx + (py - ay) * dy) / L2
    t_clamped = max(0.0, min(1.0, t))
    return ax + t_clamped * dx, ay + t_clamped * dy, t_clamped


def line_intersection(p1: Coord, p2: Coord, p3: Coord, p4: Coord) -> Coord | None:
    """Intersection of the infinite lines p1-p2 and p3-p4, or None when parallel."""
    d1x, d1y = p2[0] - p1[0], p2[1] - p1[1]
    d2x, d2y = p4[0] - p3[0], p4[1] - p3[1]
    det = d1x * d2y - d1y * d2x
    if abs(det) < PARALLEL_DET_EPS * max(1.0, math.hypot(d1x, d1y) * math.hypot(d2x, d2y)):
        return None
    t = ((p3[0] - p1[0]) * d2y - (p3[1] - p1[1]) * d2x) / det
    return (p1[0] + t * d1x, p1[1] + t * d1y)


def unit(dx: float, dy: float) -> Coord:
    n = math.hypot(dx, dy)
    if n == 0.0:
        return (0.0, 0.0)
    return (dx / n, dy / n)


def angle_between(u: Coord, v: Coord) -> float:
    """Unsigned angle in degrees between two direction vectors."""
    nu = math.hypot(*u)
    nv = math.hypot(*v)
    if nu == 0.0 or nv == 0.0:
        return 0.0
    dot = (u[0] * v[0] + u[1] * v[1]) / (nu * nv)
    return math.degrees(math.acos(max(-1.0, min(1.0, dot))))


def turn_angle(p0: Coord, p1: Coord, p2: Coord) -> float:
    """Deviation from straight at ``p1`` in degrees (0 = collinear, 180 = reversal)."""
    return angle_between((p1[0] - p0[0], p1[1] - p0[1]), (p2[0] - p1[0], p2[1] - p1[1]))


def dedupe_consecutive(coords: Sequence[Coord], tol: float) -> List[Coord]:
    result: List[Coord] = []
    for pt in coords:
        if result and math.hypot(pt[0] - result[-1][0], pt[1] - result[-1][1]) <= tol:
            continue
        result.append((float(pt[0]), float(pt[1])))
    return result


def merge_colinear_ring(coords: List[Coord], angle_tol_deg: float, keep: set[Coord] | None = None) -> List[Coord]:
    """Drop near-collinear vertices of a closed ring (first == last), except ``keep``."""
    ring = coords[:-1] if len(coords) > 1 and coords[0] == coords[-1] else list(coords)
    if len(ring) <= 3:
        return list(coords)
    keep = keep or set()
    changed = True
    while changed and len(ring) > 3:
        changed = False
        for i in range(len(ring)):
            prev_pt = ring[i - 1]
            cur = ring[i]
            next_pt = ring[(i + 1) % len(ring)]
            if cur in keep:
                continue
            if turn_angle(prev_pt, cur, next_pt) <= angle_tol_deg:
                del ring[i]
                changed = True
                break
    return ring + [ring[0]]


def repair_polygon(geometry: BaseGeometry) -> BaseGeometry:
    """Make a polygonal geometry valid with buffer(0); empty on failure."""
    if geometry.is_empty or geometry.is_valid:
        return geometry
    try:
        repaired = geometry.buffer(0)
    except GEOSException as exc:
        logger.warning("Polygon repair failed: {}", exc)
        return Polygon()
    return repaired


def polygon_parts(geometry: BaseGeometry | None) -> List[Polygon]:
    if geometry is None or geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return list(geometry.geoms)
    return [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon) and not g.is_empty]


__all__ = [
    "Coord",
    "project_point_to_segment",
    "line_intersection",
    "unit",
    "angle_between",
    "turn_angle",
    "dedupe_consecutive",
    "merge_colinear_ring",
    "repair_polygon",
    "polygon_parts",
]
