"""
Boolean Operations

Pure polygon work for junctions: unions with three strategies, miter apex
construction, and the two-wall L and T resolutions. Nothing here touches the
cache; see ``wallcore.resolve.resolver`` for the cached entry points.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Sequence

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import LineString, MultiPoint, Polygon
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from wallcore.exceptions import BooleanOperationError, DegenerateGeometryError
from wallcore.geometry import contract
from wallcore.geometry.ops import (
    Coord,
    angle_between,
    line_intersection,
    project_point_to_segment,
    repair_polygon,
    unit,
)
from wallcore.geometry.primitives import Point
from wallcore.model.enums import CreationMethod, JoinType, JunctionType, ResolutionMethod
from wallcore.model.intersection import Intersection
from wallcore.model.wall_solid import WallSolid, polygons_from_geometry
from wallcore.offset.engine import OffsetEngine


class UnionStrategy:
    SEQUENTIAL = "sequential_union"
    HIERARCHICAL = "hierarchical_union"
    BATCH = "optimized_batch"


@dataclass
class ResolutionResult:
    """Outcome of a junction resolution or union."""

    success: bool
    operation_type: str
    result_solid: BaseGeometry | None = None
    intersection: Intersection | None = None
    warnings: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    from_cache: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "operationType": self.operation_type,
            "resultSolid": [p.to_dict() for p in polygons_from_geometry(self.result_solid)],
            "intersection": self.intersection.to_dict() if self.intersection else None,
            "warnings": list(self.warnings),
            "processingTime": self.processing_time,
            "fromCache": self.from_cache,
            "details": dict(self.details),
        }


@dataclass
class WallEnd:
    """A wall seen from a junction point: where it touches and which way it leaves."""

    wall: WallSolid
    point: Coord
    direction: Coord  # unit vector pointing away from the junction
    at_endpoint: bool
    segment: tuple[Coord, Coord]


def wall_end_near(wall: WallSolid, point: Coord) -> WallEnd:
    """Locate the part of ``wall``'s baseline closest to ``point``."""
    coords = wall.baseline.coords()
    start, end = coords[0], coords[-1]
    d_start = math.hypot(start[0] - point[0], start[1] - point[1])
    d_end = math.hypot(end[0] - point[0], end[1] - point[1])
    if d_start <= d_end:
        seg = (coords[0], coords[1])
        direction = unit(seg[1][0] - seg[0][0], seg[1][1] - seg[0][1])
        return WallEnd(wall, start, direction, True, seg)
    seg = (coords[-2], coords[-1])
    direction = unit(seg[0][0] - seg[1][0], seg[0][1] - seg[1][1])
    return WallEnd(wall, end, direction, True, seg)


def nearest_segment(wall: WallSolid, point: Coord) -> tuple[tuple[Coord, Coord], Coord, float]:
    """Closest baseline segment to ``point``, the projection, and the distance."""
    coords = wall.baseline.coords()
    candidates = []
    for a, b in zip(coords, coords[1:]):
        qx, qy, _t = project_point_to_segment(point[0], point[1], a, b)
        candidates.append(((a, b), (qx, qy), math.hypot(point[0] - qx, point[1] - qy)))
    return min(candidates, key=lambda c: c[2])


def _offset_line(seg: tuple[Coord, Coord], distance: float) -> tuple[Coord, Coord]:
    (x0, y0), (x1, y1) = seg
    nx, ny = unit(-(y1 - y0), x1 - x0)
    return (x0 + nx * distance, y0 + ny * distance), (x1 + nx * distance, y1 + ny * distance)


class BooleanOperations:
    """Polygon unions and two-wall junction geometry."""

    def __init__(self, offset_engine: OffsetEngine | None = None):
        self.offset_engine = offset_engine or OffsetEngine()

    # Unions

    def union(self, geometries: Sequence[BaseGeometry], strategy: str = UnionStrategy.BATCH) -> BaseGeometry:
        parts = [g for g in geometries if g is not None and not g.is_empty]
        if not parts:
            raise BooleanOperationError(
                "Nothing to union",
                operation="union",
                suggested_fix="Resolve wall outlines before building the junction",
            )
        parts = [repair_polygon(g) for g in parts]
        try:
            if strategy == UnionStrategy.SEQUENTIAL:
                merged = reduce(lambda a, b: a.union(b), parts)
            elif strategy == UnionStrategy.HIERARCHICAL:
                merged = self._hierarchical_union(parts)
            else:
                merged = unary_union(parts)
        except GEOSException as exc:
            raise BooleanOperationError(
                f"Union failed: {exc}",
                operation="union",
                input_snapshot=[g.wkt for g in parts[:4]],
                suggested_fix="Heal the participating walls and retry",
                recoverable=True,
            ) from exc
        return repair_polygon(merged)

    def batch_union(self, groups: Sequence[Sequence[BaseGeometry]]) -> list[BaseGeometry]:
        """Union each group independently; failed groups yield empty polygons."""
        results: list[BaseGeometry] = []
        for group in groups:
            try:
                results.append(self.union(group))
            except BooleanOperationError as exc:
                logger.warning("Batch union group failed: {}", exc.message)
                results.append(Polygon())
        return results

    def _hierarchical_union(self, parts: list[BaseGeometry]) -> BaseGeometry:
        level = list(parts)
        while len(level) > 1:
            nxt = [level[i].union(level[i + 1]) for i in range(0, len(level) - 1, 2)]
            if len(level) % 2:
                nxt.append(level[-1])
            level = nxt
        return level[0]

    # Outlines

    def wall_outline(self, wall: WallSolid, join_type: JoinType = JoinType.MITER) -> BaseGeometry:
        if wall.solid_geometry:
            return wall.to_polygon()
        polygon, _result = self.offset_engine.offset_to_polygon(wall.baseline, wall.thickness, join_type)
        return polygon

    # Miter apex

    @staticmethod
    def compute_miter_apex(
        corner: Coord,
        dir_a: Coord,
        dir_b: Coord,
        half_thickness: float,
    ) -> tuple[Coord, Coord] | None:
        """
        Outer and inner miter points for two walls leaving ``corner``.

        The points lie on the bisector at ``half_thickness / sin(theta / 2)``
        from the corner. Returns None for collinear directions.
        """
        bx, by = dir_a[0] + dir_b[0], dir_a[1] + dir_b[1]
        norm = math.hypot(bx, by)
        theta = math.radians(angle_between(dir_a, dir_b))
        if norm < 1e-12 or math.sin(theta / 2.0) < 1e-12:
            return None
        bx, by = bx / norm, by / norm
        dist = half_thickness / math.sin(theta / 2.0)
        outer = (corner[0] - bx * dist, corner[1] - by * dist)
        inner = (corner[0] + bx * dist, corner[1] + by * dist)
        return outer, inner

    # Junctions

    def resolve_l_junction(
        self,
        walls: Sequence[WallSolid],
        *,
        miter_limit: float = contract.MITER_LIMIT,
        force_bevel: bool = False,
    ) -> ResolutionResult:
        """Corner geometry for two walls meeting end to end."""
        start = time.perf_counter()
        _require_walls(walls, 2, exact=True, operation="resolve_l_junction")
        wall_a, wall_b = walls
        warnings: list[str] = []

        corner = l_corner_point(wall_a, wall_b)
        if corner is None:
            return _failure(JunctionType.L_JUNCTION, ["Baselines are parallel; no L corner exists"], start)

        end_a = wall_end_near(wall_a, corner)
        end_b = wall_end_near(wall_b, corner)
        half = max(wall_a.thickness, wall_b.thickness) / 2.0

        offset_points = _offset_pair_points(end_a, end_b, corner)
        apex_pair = self.compute_miter_apex(corner, end_a.direction, end_b.direction, half)

        fallback = force_bevel
        if apex_pair is None:
            warnings.append("Walls are collinear at the corner; joined without a miter")
            fallback = True
        elif math.hypot(apex_pair[0][0] - corner[0], apex_pair[0][1] - corner[1]) > miter_limit * half:
            warnings.append("Miter apex exceeds limit; bevel join used")
            fallback = True

        cap_a = _outer_cap(end_a, end_b.direction, wall_a.thickness / 2.0, corner)
        cap_b = _outer_cap(end_b, end_a.direction, wall_b.thickness / 2.0, corner)
        if fallback or apex_pair is None:
            patch = Polygon([corner, cap_a, cap_b])
        else:
            patch = Polygon([corner, cap_a, apex_pair[0], cap_b])

        outlines = [self.wall_outline(wall_a), self.wall_outline(wall_b)]
        if patch.is_valid and patch.area > 0:
            outlines.append(patch)
        solid = self.union(outlines)

        accuracy = contract.FALLBACK_ACCURACY if fallback else contract.PRIMARY_ACCURACY
        method = ResolutionMethod.FALLBACK_APPROXIMATION if fallback else ResolutionMethod.CORNER_GEOMETRY_CALCULATION
        intersection = build_intersection(
            JunctionType.L_JUNCTION,
            [wall_a.id, wall_b.id],
            corner,
            apex=None if fallback or apex_pair is None else apex_pair[0],
            offset_points=list(apex_pair) if apex_pair is not None and not fallback else offset_points,
            solid=solid,
            method=method,
            point_accuracy=accuracy,
            processing_time=_elapsed_ms(start),
        )
        return ResolutionResult(
            success=True,
            operation_type=JunctionType.L_JUNCTION.value,
            result_solid=solid,
            intersection=intersection,
            warnings=warnings,
            processing_time=_elapsed_ms(start),
            details={"fallbackUsed": fallback, "joinType": (JoinType.BEVEL if fallback else JoinType.MITER).value},
        )

    def resolve_t_junction(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        """One wall terminating against the side of another."""
        start = time.perf_counter()
        _require_walls(walls, 2, exact=True, operation="resolve_t_junction")
        warnings: list[str] = []

        host, term = t_roles(walls[0], walls[1])
        term_end_pt = _nearest_endpoint(term, host)
        end = wall_end_near(term, term_end_pt)
        host_seg, _projection, _gap = nearest_segment(host, term_end_pt)

        # junction point: terminating centerline meets host centerline
        junction = line_intersection(end.segment[0], end.segment[1], host_seg[0], host_seg[1])
        if junction is None:
            return _failure(JunctionType.T_JUNCTION, ["Terminating wall runs parallel to host"], start)

        # host face that the terminating wall approaches
        side = _side_of(host_seg, (junction[0] + end.direction[0], junction[1] + end.direction[1]))
        host_face = _offset_line(host_seg, side * host.thickness / 2.0)

        term_half = term.thickness / 2.0
        t_seg = (end.point, (end.point[0] + end.direction[0], end.point[1] + end.direction[1]))
        left_line = _offset_line(t_seg, term_half)
        right_line = _offset_line(t_seg, -term_half)
        pierce_left = line_intersection(left_line[0], left_line[1], host_face[0], host_face[1])
        pierce_right = line_intersection(right_line[0], right_line[1], host_face[0], host_face[1])
        apex = line_intersection(t_seg[0], t_seg[1], host_face[0], host_face[1])

        fallback = pierce_left is None or pierce_right is None or apex is None
        outlines = [self.wall_outline(host), self.wall_outline(term)]
        if not fallback:
            # fills any gap between the terminating end and the host face
            connector = Polygon([pierce_left, pierce_right, right_line[0], left_line[0]])
            connector = repair_polygon(connector)
            if not connector.is_empty:
                outlines.append(connector)
        else:
            warnings.append("Could not pierce host face; walls unioned without trimming")
        solid = self.union(outlines)

        accuracy = contract.FALLBACK_ACCURACY if fallback else contract.PRIMARY_ACCURACY
        intersection = build_intersection(
            JunctionType.T_JUNCTION,
            [host.id, term.id],
            junction,
            apex=apex,
            offset_points=[p for p in (pierce_left, pierce_right) if p is not None],
            solid=solid,
            method=ResolutionMethod.FALLBACK_APPROXIMATION if fallback else ResolutionMethod.MITER_APEX_CALCULATION,
            point_accuracy=accuracy,
            processing_time=_elapsed_ms(start),
        )
        return ResolutionResult(
            success=True,
            operation_type=JunctionType.T_JUNCTION.value,
            result_solid=solid,
            intersection=intersection,
            warnings=warnings,
            processing_time=_elapsed_ms(start),
            details={"hostWall": host.id, "terminatingWall": term.id, "fallbackUsed": fallback},
        )

    def approximate(
        self,
        junction_type: JunctionType,
        walls: Sequence[WallSolid],
        point: Coord,
        reason: str,
    ) -> ResolutionResult:
        """Bounded-cost convex hull of all wall vertices."""
        start = time.perf_counter()
        coords: list[Coord] = []
        for wall in walls:
            coords.extend(wall.baseline.coords())
            for poly in wall.solid_geometry:
                coords.extend(tuple(p) for p in poly.outer)
        hull = MultiPoint(coords).convex_hull
        half = max(w.thickness for w in walls) / 2.0
        if not isinstance(hull, Polygon) or hull.is_empty:
            hull = hull.buffer(half, cap_style="flat")
        intersection = build_intersection(
            junction_type,
            [w.id for w in walls],
            point,
            apex=None,
            offset_points=[],
            solid=hull,
            method=ResolutionMethod.FALLBACK_APPROXIMATION,
            point_accuracy=contract.FALLBACK_ACCURACY,
            processing_time=_elapsed_ms(start),
        )
        return ResolutionResult(
            success=True,
            operation_type=junction_type.value,
            result_solid=hull,
            intersection=intersection,
            warnings=[reason],
            processing_time=_elapsed_ms(start),
            details={"fallbackUsed": True, "approximation": "convex_hull"},
        )


# Geometry helpers


def l_corner_point(wall_a: WallSolid, wall_b: WallSolid) -> Coord | None:
    """Intersection of the two baselines' end segments nearest each other."""
    a_coords = wall_a.baseline.coords()
    b_coords = wall_b.baseline.coords()
    _gap, pa, pb = min(
        (
            (math.hypot(pa[0] - pb[0], pa[1] - pb[1]), pa, pb)
            for pa in (a_coords[0], a_coords[-1])
            for pb in (b_coords[0], b_coords[-1])
        ),
        key=lambda c: c[0],
    )
    end_a = wall_end_near(wall_a, pa)
    end_b = wall_end_near(wall_b, pb)
    return line_intersection(end_a.segment[0], end_a.segment[1], end_b.segment[0], end_b.segment[1])


def t_roles(wall_a: WallSolid, wall_b: WallSolid) -> tuple[WallSolid, WallSolid]:
    """(host, terminating): the terminating wall has the endpoint nearest the other's interior."""
    def endpoint_gap(term: WallSolid, host: WallSolid) -> float:
        line = LineString(host.baseline.coords())
        coords = term.baseline.coords()
        return min(line.distance(_shapely_point(coords[0])), line.distance(_shapely_point(coords[-1])))

    if endpoint_gap(wall_b, wall_a) <= endpoint_gap(wall_a, wall_b):
        return wall_a, wall_b
    return wall_b, wall_a


def junction_angles(directions: Sequence[Coord]) -> list[float]:
    """Angular gaps (degrees) between consecutive wall directions around a junction."""
    headings = sorted(math.degrees(math.atan2(d[1], d[0])) % 360.0 for d in directions)
    if len(headings) < 2:
        return []
    gaps = [b - a for a, b in zip(headings, headings[1:])]
    gaps.append(360.0 - headings[-1] + headings[0])
    return gaps


def build_intersection(
    junction_type: JunctionType,
    wall_ids: list[str],
    point: Coord,
    *,
    apex: Coord | None,
    offset_points: list[Coord],
    solid: BaseGeometry,
    method: ResolutionMethod,
    point_accuracy: float,
    processing_time: float,
) -> Intersection:
    """Assemble an Intersection and score its accuracy."""
    offsets = [
        Point(x=p[0], y=p[1], creation_method=CreationMethod.INTERSECTION, accuracy=point_accuracy)
        for p in offset_points
    ]
    apex_point = (
        Point(x=apex[0], y=apex[1], creation_method=CreationMethod.MITER_APEX, accuracy=point_accuracy)
        if apex is not None
        else None
    )
    base_accuracy = 0.9
    if len(offsets) < 2:
        base_accuracy -= 0.2
    if apex_point is None:
        base_accuracy -= 0.1
    scored = [p.accuracy for p in offsets] + ([apex_point.accuracy] if apex_point else [])
    mean_point = sum(scored) / len(scored) if scored else point_accuracy
    accuracy = max(0.0, min(1.0, (base_accuracy + mean_point) / 2.0))

    intersection = Intersection(
        type=junction_type,
        participating_walls=list(wall_ids),
        intersection_point=Point(x=point[0], y=point[1], creation_method=CreationMethod.INTERSECTION),
        miter_apex=apex_point,
        offset_intersections=offsets,
        resolved_geometry=polygons_from_geometry(solid),
        resolution_method=method,
        geometric_accuracy=accuracy,
        processing_time=processing_time,
    )
    intersection.validated = intersection.validate_junction()["isValid"]
    return intersection


def _offset_pair_points(end_a: WallEnd, end_b: WallEnd, corner: Coord) -> list[Coord]:
    """Left/left and right/right offset line intersections near the corner."""
    half_a = end_a.wall.thickness / 2.0
    half_b = end_b.wall.thickness / 2.0
    seg_a = (corner, (corner[0] + end_a.direction[0], corner[1] + end_a.direction[1]))
    seg_b = (corner, (corner[0] + end_b.direction[0], corner[1] + end_b.direction[1]))
    candidates: list[Coord] = []
    for sa in (1.0, -1.0):
        for sb in (1.0, -1.0):
            la = _offset_line(seg_a, sa * half_a)
            lb = _offset_line(seg_b, sb * half_b)
            hit = line_intersection(la[0], la[1], lb[0], lb[1])
            if hit is not None:
                candidates.append(hit)
    # the consistent pairing lies closest to the bisector through the corner
    bis = unit(end_a.direction[0] + end_b.direction[0], end_a.direction[1] + end_b.direction[1])
    if bis == (0.0, 0.0):
        return candidates[:2]

    def off_bisector(p: Coord) -> float:
        vx, vy = p[0] - corner[0], p[1] - corner[1]
        return abs(vx * bis[1] - vy * bis[0])

    return sorted(candidates, key=off_bisector)[:2]


def _outer_cap(end: WallEnd, other_direction: Coord, half: float, corner: Coord) -> Coord:
    """Cap corner of ``end``'s wall on the side facing away from the other wall."""
    nx, ny = -end.direction[1], end.direction[0]
    if nx * other_direction[0] + ny * other_direction[1] > 0:
        nx, ny = -nx, -ny
    return (corner[0] + nx * half, corner[1] + ny * half)


def _nearest_endpoint(term: WallSolid, host: WallSolid) -> Coord:
    line = LineString(host.baseline.coords())
    coords = term.baseline.coords()
    return min((coords[0], coords[-1]), key=lambda c: line.distance(_shapely_point(c)))


def _side_of(seg: tuple[Coord, Coord], point: Coord) -> float:
    (x0, y0), (x1, y1) = seg
    cross = (x1 - x0) * (point[1] - y0) - (y1 - y0) * (point[0] - x0)
    return 1.0 if cross >= 0 else -1.0


def _shapely_point(coord: Coord) -> ShapelyPoint:
    return ShapelyPoint(coord)


def _require_walls(walls: Sequence[WallSolid], count: int, *, exact: bool, operation: str) -> None:
    n = len(walls)
    if n < 2 or (exact and n != count) or (not exact and n < count):
        expected = f"exactly {count}" if exact else f"at least {count}"
        raise DegenerateGeometryError(
            f"{operation} needs {expected} walls, got {n}",
            operation=operation,
            input_snapshot=[w.id for w in walls],
            suggested_fix="Pass the walls that meet at this junction",
        )


def _failure(junction_type: JunctionType, warnings: list[str], start: float) -> ResolutionResult:
    return ResolutionResult(
        success=False,
        operation_type=junction_type.value,
        warnings=warnings,
        processing_time=_elapsed_ms(start),
    )


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = [
    "UnionStrategy",
    "ResolutionResult",
    "WallEnd",
    "BooleanOperations",
    "wall_end_near",
    "nearest_segment",
    "l_corner_point",
    "t_roles",
    "junction_angles",
    "build_intersection",
]
