"""
Robust Offset Engine

Turns a wall baseline into left and right offset curves with per-vertex
miter, bevel or round joins. Degenerate input never raises: problems are
reported as warnings and the best tolerance-relative approximation is
returned.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

import numpy as np
from loguru import logger
from shapely.geometry import LineString, MultiLineString, Polygon
from shapely.geometry.base import BaseGeometry

from wallcore.exceptions import DegenerateGeometryError
from wallcore.geometry import contract
from wallcore.geometry.ops import Coord, dedupe_consecutive, line_intersection, repair_polygon
from wallcore.geometry.primitives import Curve, Point
from wallcore.model.enums import CreationMethod, JoinType
from wallcore.settings import OffsetSettings
from wallcore.tolerance.manager import ToleranceManager


@dataclass
class OffsetResult:
    """Result of offsetting one baseline."""

    success: bool
    left_offset: Curve | None = None
    right_offset: Curve | None = None
    warnings: list[str] = field(default_factory=list)
    fallback_used: bool = False
    processing_time: float = 0.0
    join_types: dict[int, JoinType] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "leftOffset": self.left_offset.to_dict() if self.left_offset else None,
            "rightOffset": self.right_offset.to_dict() if self.right_offset else None,
            "warnings": list(self.warnings),
            "fallbackUsed": self.fallback_used,
            "processingTime": self.processing_time,
            "joinTypes": {str(k): v.value for k, v in self.join_types.items()},
        }


@dataclass
class _SideResult:
    coords: list[Coord]
    joins: dict[int, JoinType]
    fallback: bool


class OffsetEngine:
    """Computes offset curves for wall baselines."""

    def __init__(
        self,
        settings: OffsetSettings | None = None,
        tolerance_manager: ToleranceManager | None = None,
    ):
        self.settings = settings or OffsetSettings()
        self.tolerance_manager = tolerance_manager or ToleranceManager()

    def offset_curve(
        self,
        baseline: Curve,
        distance: float,
        join_type: JoinType = JoinType.MITER,
        tolerance: float | None = None,
    ) -> OffsetResult:
        """
        Offset ``baseline`` by ``distance`` on both sides.

        Args:
            baseline: Wall centerline
            distance: Perpendicular offset distance (half the wall thickness)
            join_type: Join applied at interior vertices
            tolerance: Merge tolerance; derived from the distance when omitted

        Returns:
            OffsetResult; ``success`` is False only when no offset can be produced
        """
        start = time.perf_counter()
        warnings: list[str] = []

        if not math.isfinite(distance):
            raise DegenerateGeometryError(
                "Offset distance is not finite",
                operation="offset_curve",
                input_snapshot=distance,
                suggested_fix="Use a finite wall thickness",
            )

        distance = abs(distance)
        if tolerance is None:
            tolerance = self.tolerance_manager.offset_tolerance(2.0 * distance, baseline.max_curvature())
        tolerance = max(tolerance, self.settings.min_segment_length)

        coords = dedupe_consecutive(baseline.coords(), tolerance)
        if len(coords) < len(baseline.points):
            warnings.append(
                f"Removed {len(baseline.points) - len(coords)} duplicate consecutive point(s) from baseline"
            )
        if baseline.closed and len(coords) > 2 and _close(coords[0], coords[-1], tolerance):
            coords = coords[:-1]

        if len(coords) < 2:
            warnings.append("Baseline has zero length; no offset produced")
            return OffsetResult(
                success=False,
                warnings=warnings,
                processing_time=_elapsed_ms(start),
            )
        if distance <= tolerance:
            warnings.append("Offset distance is within tolerance; offsets collapse onto the baseline")

        fallback_used = False
        try:
            left = self._offset_side(coords, distance, join_type, baseline.closed, warnings)
            right = self._offset_side(coords, -distance, join_type, baseline.closed, warnings)
            fallback_used = left.fallback or right.fallback
            joins = dict(left.joins)
            joins.update({vi: jt for vi, jt in right.joins.items() if jt != join_type})
        except (ValueError, ArithmeticError) as exc:
            if not self.settings.enable_fallbacks:
                raise
            logger.warning("Primary offset failed ({}), trying fallback strategies", exc)
            left, right = self._fallback_offsets(coords, distance, tolerance, warnings)
            fallback_used = True
            joins = {}

        if not _finite(left.coords) or not _finite(right.coords):
            warnings.append("Offset produced non-finite coordinates; using segmented fallback")
            left = self._segmented_side(coords, distance)
            right = self._segmented_side(coords, -distance)
            fallback_used = True

        accuracy = contract.FALLBACK_ACCURACY if fallback_used else 1.0
        result = OffsetResult(
            success=True,
            left_offset=_to_curve(left.coords, baseline.closed, accuracy, tolerance),
            right_offset=_to_curve(right.coords, baseline.closed, accuracy, tolerance),
            warnings=warnings,
            fallback_used=fallback_used,
            processing_time=_elapsed_ms(start),
            join_types=joins,
        )
        if fallback_used:
            logger.warning("Offset of {} used a fallback: {}", baseline.id, "; ".join(warnings))
        return result

    def offset_to_polygon(
        self,
        baseline: Curve,
        thickness: float,
        join_type: JoinType = JoinType.MITER,
    ) -> tuple[BaseGeometry, OffsetResult]:
        """Closed wall outline ``left + reversed(right)`` for a baseline."""
        result = self.offset_curve(baseline, thickness / 2.0, join_type)
        if not result.success or result.left_offset is None or result.right_offset is None:
            return Polygon(), result

        left = result.left_offset.coords()
        right = result.right_offset.coords()
        if baseline.closed:
            # closed baseline: the larger offset ring is the shell, the other the hole
            outer, inner = (left, right) if Polygon(left).area >= Polygon(right).area else (right, left)
            polygon = Polygon(outer, [inner])
        else:
            polygon = Polygon(left + list(reversed(right)))

        if not polygon.is_valid:
            polygon = repair_polygon(polygon)
            result.warnings.append("Wall outline self-intersected and was repaired")
        if polygon.is_empty:
            result.warnings.append("Wall outline collapsed; using shapely buffer approximation")
            result.fallback_used = True
            polygon = LineString(baseline.coords()).buffer(
                thickness / 2.0, cap_style="flat", join_style="mitre", mitre_limit=self.settings.miter_limit
            )
        return polygon, result

    def select_optimal_join_type(self, angle_deg: float, thickness: float) -> JoinType:
        """Pick a join for the angle between two wall segments (180 = straight)."""
        if angle_deg < contract.EXTREME_ANGLE_DEG:
            return JoinType.BEVEL
        if angle_deg > contract.NEAR_STRAIGHT_ANGLE_DEG:
            return JoinType.MITER
        miter_length = thickness / math.sin(math.radians(angle_deg) / 2.0)
        if miter_length <= self.settings.miter_limit * thickness:
            return JoinType.MITER
        return JoinType.ROUND

    def has_consistent_distance(self, baseline: Curve, offset: Curve, distance: float, tolerance: float) -> bool:
        """True when the offset stays ``distance`` away from the baseline within ``tolerance``."""
        base_line = LineString(baseline.coords())
        off_line = LineString(offset.coords())
        return abs(base_line.distance(off_line) - abs(distance)) <= tolerance

    # Primary algorithm

    def _offset_side(
        self,
        coords: list[Coord],
        distance: float,
        join_type: JoinType,
        closed: bool,
        warnings: list[str],
    ) -> _SideResult:
        pts = np.asarray(coords, dtype=float)
        nxt = np.roll(pts, -1, axis=0) if closed else pts[1:]
        base = pts if closed else pts[:-1]
        deltas = nxt - base
        lengths = np.hypot(deltas[:, 0], deltas[:, 1])
        if np.any(lengths <= 0.0):
            raise ValueError("zero-length segment after deduplication")
        dirs = deltas / lengths[:, None]
        normals = np.column_stack([-dirs[:, 1], dirs[:, 0]])
        starts = base + normals * distance
        ends = nxt + normals * distance

        n_seg = len(base)
        side = "left" if distance > 0 else "right"
        out: list[Coord] = []
        joins: dict[int, JoinType] = {}
        fallback = False

        if not closed:
            out.append(tuple(starts[0]))

        vertex_range = range(n_seg) if closed else range(1, n_seg)
        for vi in vertex_range:
            a = (vi - 1) % n_seg
            b = vi % n_seg
            vertex = tuple(pts[vi])
            pts_join, used, fell_back, note = self._join(
                tuple(starts[a]), tuple(ends[a]), tuple(starts[b]), tuple(ends[b]),
                tuple(dirs[a]), tuple(dirs[b]), vertex, distance, join_type,
            )
            if fell_back:
                fallback = True
                warnings.append(f"{side} offset: vertex {vi} fell back from {join_type.value} to {used.value}")
            if note and distance > 0:
                warnings.append(f"vertex {vi}: {note}")
            out.extend(pts_join)
            joins[vi] = used

        if not closed:
            out.append(tuple(ends[-1]))
        return _SideResult(coords=[(float(x), float(y)) for x, y in out], joins=joins, fallback=fallback)

    def _join(
        self,
        a_start: Coord,
        a_end: Coord,
        b_start: Coord,
        b_end: Coord,
        dir_a: Coord,
        dir_b: Coord,
        vertex: Coord,
        distance: float,
        join_type: JoinType,
    ) -> tuple[list[Coord], JoinType, bool, str | None]:
        cross = dir_a[0] * dir_b[1] - dir_a[1] * dir_b[0]
        dot = dir_a[0] * dir_b[0] + dir_a[1] * dir_b[1]
        turn = math.degrees(math.atan2(abs(cross), dot))

        if turn < contract.STRAIGHT_TURN_DEG:
            # collinear: offsets continue straight through the vertex
            return [a_end], join_type, False, "collinear turn passed straight through"
        if turn > 180.0 - contract.STRAIGHT_TURN_DEG:
            return [a_end, b_start], JoinType.BEVEL, True, "baseline reverses direction"

        # outer side of the turn is where the offset segments separate
        outer = cross * distance < 0.0
        apex = line_intersection(a_start, a_end, b_start, b_end)

        if not outer:
            if apex is not None and _dist(apex, vertex) <= self.settings.miter_limit * abs(distance):
                return [apex], join_type, False, None
            return [a_end, b_start], JoinType.BEVEL, True, None

        if join_type == JoinType.BEVEL:
            return [a_end, b_start], JoinType.BEVEL, False, None
        if join_type == JoinType.ROUND:
            return self._arc(vertex, a_end, b_start, abs(distance)), JoinType.ROUND, False, None

        if apex is None or _dist(apex, vertex) > self.settings.miter_limit * abs(distance):
            return [a_end, b_start], JoinType.BEVEL, True, "miter apex exceeds limit"
        return [apex], JoinType.MITER, False, None

    def _arc(self, center: Coord, start: Coord, end: Coord, radius: float) -> list[Coord]:
        a0 = math.atan2(start[1] - center[1], start[0] - center[0])
        a1 = math.atan2(end[1] - center[1], end[0] - center[0])
        sweep = (a1 - a0 + math.pi) % (2.0 * math.pi) - math.pi
        n = self.settings.round_segments
        arc = [start]
        for i in range(1, n):
            ang = a0 + sweep * i / n
            arc.append((center[0] + radius * math.cos(ang), center[1] + radius * math.sin(ang)))
        arc.append(end)
        return arc

    # Fallback strategies

    def _fallback_offsets(
        self,
        coords: list[Coord],
        distance: float,
        tolerance: float,
        warnings: list[str],
    ) -> tuple[_SideResult, _SideResult]:
        line = LineString(coords)
        simplified = line.simplify(tolerance * 10.0, preserve_topology=False)
        try:
            left = _shapely_side(simplified, distance, self.settings.miter_limit)
            right = _shapely_side(simplified, -distance, self.settings.miter_limit)
            warnings.append("Used simplified offset fallback")
            return left, right
        except (ValueError, IndexError) as exc:
            logger.warning("Simplified offset fallback failed: {}", exc)

        warnings.append("Used segmented offset fallback")
        return self._segmented_side(coords, distance), self._segmented_side(coords, -distance)

    @staticmethod
    def _segmented_side(coords: list[Coord], distance: float) -> _SideResult:
        out: list[Coord] = []
        for (x0, y0), (x1, y1) in zip(coords, coords[1:]):
            length = math.hypot(x1 - x0, y1 - y0)
            if length == 0.0:
                continue
            nx, ny = -(y1 - y0) / length, (x1 - x0) / length
            out.append((x0 + nx * distance, y0 + ny * distance))
            out.append((x1 + nx * distance, y1 + ny * distance))
        return _SideResult(coords=out, joins={}, fallback=True)


def _shapely_side(line: LineString, distance: float, miter_limit: float) -> _SideResult:
    shifted = line.offset_curve(distance, join_style="mitre", mitre_limit=miter_limit)
    if isinstance(shifted, MultiLineString):
        shifted = max(shifted.geoms, key=lambda g: g.length)
    coords = [(float(x), float(y)) for x, y in shifted.coords]
    if len(coords) < 2:
        raise ValueError("shapely offset collapsed")
    return _SideResult(coords=coords, joins={}, fallback=True)


def _to_curve(coords: list[Coord], closed: bool, accuracy: float, tolerance: float) -> Curve:
    return Curve(
        points=[
            Point(x=x, y=y, creation_method=CreationMethod.OFFSET, accuracy=accuracy, tolerance=tolerance)
            for x, y in coords
        ],
        closed=closed,
    )


def _dist(a: Coord, b: Coord) -> float:
    return math.hypot(a[0] - b[0], a[1] - b[1])


def _close(a: Coord, b: Coord, tol: float) -> bool:
    return _dist(a, b) <= tol


def _finite(coords: list[Coord]) -> bool:
    return all(math.isfinite(x) and math.isfinite(y) for x, y in coords)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = ["OffsetEngine", "OffsetResult"]
