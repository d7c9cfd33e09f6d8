"""
Geometry Simplification Engine

Douglas-Peucker simplification of wall solids that never removes pinned
vertices: explicit corners, junction points and caller-supplied points.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from loguru import logger
from shapely.geometry import LineString, MultiPolygon, Polygon

from wallcore.geometry.ops import Coord, polygon_parts, turn_angle
from wallcore.model.wall_solid import HealingOperation, WallSolid
from wallcore.settings import SimplificationSettings


@dataclass
class SimplificationResult:
    success: bool
    simplified_solid: WallSolid
    points_removed: int = 0
    accuracy_preserved: bool = True
    processing_time: float = 0.0
    max_deviation: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "simplifiedSolid": self.simplified_solid.to_dict(),
            "pointsRemoved": self.points_removed,
            "accuracyPreserved": self.accuracy_preserved,
            "processingTime": self.processing_time,
            "maxDeviation": self.max_deviation,
            "warnings": list(self.warnings),
        }


def simplify_span(points: Sequence[Coord], epsilon: float) -> list[Coord]:
    """Douglas-Peucker on an open polyline; both endpoints are always kept."""
    if len(points) < 3:
        return list(points)
    line = LineString(points).simplify(epsilon, preserve_topology=False)
    return [(float(x), float(y)) for x, y in line.coords]


class GeometrySimplificationEngine:
    """Vertex reduction for wall solids with pinned corners."""

    def __init__(self, settings: SimplificationSettings | None = None):
        self.settings = settings or SimplificationSettings()

    def adaptive_deviation(self, thickness: float, max_deviation: float | None = None) -> float:
        requested = max_deviation if max_deviation is not None else self.settings.rdp_tolerance
        return min(max(requested, thickness * 0.01), self.settings.max_deviation_cap)

    def simplify_wall_geometry(
        self,
        wall: WallSolid,
        max_deviation: float | None = None,
        pinned: Iterable[Coord] | None = None,
    ) -> SimplificationResult:
        """
        Simplify every ring of the wall solid.

        Args:
            wall: Wall to simplify
            max_deviation: Requested perpendicular deviation; adapted to the wall thickness
            pinned: Extra points that must survive, typically junction points

        Returns:
            SimplificationResult. When the area would drift beyond the accuracy floor the
            original solid is kept and ``accuracy_preserved`` is False.
        """
        start = time.perf_counter()
        epsilon = self.adaptive_deviation(wall.thickness, max_deviation)
        parts = polygon_parts(wall.to_polygon())
        if not parts:
            return SimplificationResult(
                success=False,
                simplified_solid=wall,
                processing_time=_elapsed_ms(start),
                max_deviation=epsilon,
                warnings=["Wall has no solid geometry to simplify"],
            )

        pins = [(float(x), float(y)) for x, y in (pinned or ())]
        match_tol = max(epsilon * 1e-3, 1e-9)
        warnings: list[str] = []
        removed = 0
        simplified_parts: list[Polygon] = []
        for part in parts:
            rings = [list(part.exterior.coords)] + [list(h.coords) for h in part.interiors]
            new_rings = []
            for ring in rings:
                new_ring = self._simplify_ring(ring, epsilon, pins, match_tol)
                if new_ring is None:
                    warnings.append("Ring would drop below the minimum vertex count; kept original")
                    new_ring = ring
                removed += len(ring) - len(new_ring)
                new_rings.append(new_ring)
            simplified_parts.append(Polygon(new_rings[0], new_rings[1:]))

        original_area = sum(p.area for p in parts)
        simplified = simplified_parts[0] if len(simplified_parts) == 1 else MultiPolygon(simplified_parts)
        deviation = abs(simplified.area - original_area) / original_area if original_area > 0 else 0.0
        accuracy_preserved = simplified.is_valid and deviation <= 1.0 - self.settings.accuracy_floor

        if not accuracy_preserved:
            logger.warning(
                "Simplification of wall {} rejected: area deviation {:.4f}, valid={}",
                wall.id,
                deviation,
                simplified.is_valid,
            )
            return SimplificationResult(
                success=True,
                simplified_solid=wall,
                points_removed=0,
                accuracy_preserved=False,
                processing_time=_elapsed_ms(start),
                max_deviation=epsilon,
                warnings=warnings + [f"Area deviation {deviation:.2%} exceeds the accuracy floor"],
            )

        result_wall = wall
        if removed:
            operation = HealingOperation(
                type="geometry_simplification",
                details={"pointsRemoved": removed, "maxDeviation": epsilon, "areaDeviation": deviation},
            )
            result_wall = wall.with_solid(simplified).add_healing_operation(operation)

        return SimplificationResult(
            success=True,
            simplified_solid=result_wall,
            points_removed=removed,
            accuracy_preserved=True,
            processing_time=_elapsed_ms(start),
            max_deviation=epsilon,
            warnings=warnings,
        )

    def _simplify_ring(
        self,
        ring: list[tuple[float, float]],
        epsilon: float,
        pins: list[Coord],
        match_tol: float,
    ) -> list[Coord] | None:
        open_ring = [(float(x), float(y)) for x, y in ring[:-1]]
        n = len(open_ring)
        if n <= self.settings.min_ring_vertices:
            return list(ring)

        anchors = [
            i
            for i, pt in enumerate(open_ring)
            if turn_angle(open_ring[i - 1], pt, open_ring[(i + 1) % n]) >= self.settings.corner_angle
            or any(math.hypot(pt[0] - p[0], pt[1] - p[1]) <= match_tol for p in pins)
        ]
        if not anchors:
            # a smooth ring is split at its first vertex and the vertex farthest from it
            far = max(range(n), key=lambda i: math.hypot(open_ring[i][0] - open_ring[0][0], open_ring[i][1] - open_ring[0][1]))
            anchors = sorted({0, far})

        kept: list[Coord] = []
        for k, a in enumerate(anchors):
            b = anchors[(k + 1) % len(anchors)]
            span = open_ring[a : b + 1] if b > a else open_ring[a:] + open_ring[: b + 1]
            # with a single anchor the span wraps the whole ring back to itself
            kept.extend(simplify_span(span, epsilon)[:-1])

        if len(kept) < self.settings.min_ring_vertices:
            return None
        return kept + [kept[0]]


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = ["SimplificationResult", "GeometrySimplificationEngine", "simplify_span"]
