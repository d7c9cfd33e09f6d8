"""
Shape Healing Engine

Removes sliver faces, closes micro gaps and merges near-collinear edges of a
wall solid. Passes repeat until the geometry stops changing, so healing an
already healed wall is a no-op.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Callable

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from wallcore.geometry.ops import Coord, dedupe_consecutive, merge_colinear_ring, polygon_parts, repair_polygon
from wallcore.model.wall_solid import HealingOperation, WallSolid
from wallcore.settings import HealingSettings
from wallcore.tolerance.manager import ToleranceManager

SLIVER_REMOVAL = "sliver_removal"
MICRO_GAP_ELIMINATION = "micro_gap_elimination"
EDGE_MERGE = "edge_merge"


@dataclass
class HealingResult:
    success: bool
    healed_solid: WallSolid
    operations_applied: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    warnings: list[str] = field(default_factory=list)
    iterations: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "healedSolid": self.healed_solid.to_dict(),
            "operationsApplied": list(self.operations_applied),
            "processingTime": self.processing_time,
            "warnings": list(self.warnings),
            "iterations": self.iterations,
        }


class ShapeHealingEngine:
    """Iterative healing of wall solids."""

    def __init__(
        self,
        settings: HealingSettings | None = None,
        tolerance_manager: ToleranceManager | None = None,
    ):
        self.settings = settings or HealingSettings()
        self.tolerance_manager = tolerance_manager or ToleranceManager()

    def heal_shape(self, wall: WallSolid, tolerance: float | None = None) -> HealingResult:
        """
        Heal the solid geometry of a wall.

        Args:
            wall: Wall whose ``solid_geometry`` is healed
            tolerance: Vertex snapping distance; derived from the wall thickness when omitted

        Returns:
            HealingResult with the healed wall. The input wall is never mutated.
        """
        start = time.perf_counter()
        geometry = wall.to_polygon()
        if geometry.is_empty:
            return HealingResult(
                success=False,
                healed_solid=wall,
                processing_time=_elapsed_ms(start),
                warnings=["Wall has no solid geometry to heal"],
            )

        snap = tolerance if tolerance is not None else self.tolerance_manager.healing_tolerance(wall.thickness)
        vertex_tol = max(self.settings.duplicate_edge_tolerance, snap)

        passes: list[tuple[str, Callable[[BaseGeometry], tuple[BaseGeometry, int]]]] = []
        if self.settings.enable_sliver_removal:
            passes.append((SLIVER_REMOVAL, self._remove_slivers))
        if self.settings.enable_micro_gap_elimination:
            passes.append((MICRO_GAP_ELIMINATION, lambda g: self._close_micro_gaps(g, vertex_tol)))
        if self.settings.enable_edge_merge:
            passes.append((EDGE_MERGE, lambda g: self._merge_edges(g, vertex_tol)))

        applied: list[str] = []
        counts: dict[str, int] = {}
        iterations = 0
        try:
            for iterations in range(1, self.settings.max_iterations + 1):
                changed = False
                for name, heal_pass in passes:
                    geometry, fixes = heal_pass(geometry)
                    if fixes:
                        changed = True
                        counts[name] = counts.get(name, 0) + fixes
                        if name not in applied:
                            applied.append(name)
                if not changed:
                    break
        except GEOSException as exc:
            logger.warning("Shape healing failed for wall {}: {}", wall.id, exc)
            return HealingResult(
                success=False,
                healed_solid=wall,
                processing_time=_elapsed_ms(start),
                warnings=[f"Shape healing failed: {exc}"],
                iterations=iterations,
            )

        warnings: list[str] = []
        if iterations == self.settings.max_iterations and applied:
            warnings.append(f"Healing stopped after {iterations} iterations")

        healed = wall
        if applied:
            operation = HealingOperation(
                type="comprehensive_healing",
                details={"operations": applied, "fixes": counts, "iterations": iterations, "tolerance": vertex_tol},
            )
            healed = wall.with_solid(geometry).add_healing_operation(operation)
            logger.debug("Healed wall {}: {}", wall.id, counts)

        return HealingResult(
            success=True,
            healed_solid=healed,
            operations_applied=applied,
            processing_time=_elapsed_ms(start),
            warnings=warnings,
            iterations=iterations,
        )

    # Passes. Each returns the new geometry and the number of fixes applied.

    def _remove_slivers(self, geometry: BaseGeometry) -> tuple[BaseGeometry, int]:
        threshold = self.settings.sliver_face_threshold
        parts = polygon_parts(geometry)
        kept = [p for p in parts if not _is_sliver(p, threshold)]
        if not kept:
            # a wall made only of slivers is left alone
            return geometry, 0

        fixes = len(parts) - len(kept)
        cleaned: list[Polygon] = []
        for part in kept:
            holes = [h for h in part.interiors if not _is_sliver(Polygon(h), threshold)]
            fixes += len(part.interiors) - len(holes)
            cleaned.append(Polygon(part.exterior, holes) if len(holes) != len(part.interiors) else part)
        if not fixes:
            return geometry, 0
        return _combine(cleaned), fixes

    def _close_micro_gaps(self, geometry: BaseGeometry, vertex_tol: float) -> tuple[BaseGeometry, int]:
        gap = self.settings.micro_gap_threshold
        fixes = 0

        snapped, moved = _map_rings(geometry, lambda ring: _dedupe_ring(ring, max(gap, vertex_tol)))
        if moved:
            geometry = snapped
            fixes += moved

        if not geometry.is_valid:
            geometry = repair_polygon(geometry)
            fixes += 1

        parts = polygon_parts(geometry)
        if len(parts) > 1 and gap > 0:
            close_pairs = sum(1 for a, b in combinations(parts, 2) if 0.0 < a.distance(b) <= gap)
            if close_pairs:
                closed = unary_union([p.buffer(gap, join_style="mitre") for p in parts]).buffer(-gap, join_style="mitre")
                geometry = repair_polygon(closed)
                fixes += close_pairs
        return geometry, fixes

    def _merge_edges(self, geometry: BaseGeometry, vertex_tol: float) -> tuple[BaseGeometry, int]:
        angle = self.settings.collinear_angle

        def merge(ring: list[Coord]) -> list[Coord]:
            return merge_colinear_ring(_dedupe_ring(ring, vertex_tol), angle)

        return _map_rings(geometry, merge)


def _dedupe_ring(ring: list[Coord], tol: float) -> list[Coord]:
    """Drop near-duplicate vertices of a closed ring and close it again."""
    open_ring = dedupe_consecutive(ring[:-1] if len(ring) > 1 and ring[0] == ring[-1] else ring, tol)
    while len(open_ring) > 1 and math.hypot(open_ring[-1][0] - open_ring[0][0], open_ring[-1][1] - open_ring[0][1]) <= tol:
        open_ring.pop()
    return open_ring + open_ring[:1]


def _is_sliver(polygon: Polygon, threshold: float) -> bool:
    if polygon.length <= 0.0:
        return True
    return polygon.area / polygon.length < threshold


def _map_rings(geometry: BaseGeometry, fn: Callable[[list[Coord]], list[Coord]]) -> tuple[BaseGeometry, int]:
    """Apply ``fn`` to every ring; returns the rebuilt geometry and the number of vertices removed."""
    removed = 0
    rebuilt: list[Polygon] = []
    for part in polygon_parts(geometry):
        rings = [list(part.exterior.coords)] + [list(h.coords) for h in part.interiors]
        new_rings = []
        for ring in rings:
            new_ring = fn([(float(x), float(y)) for x, y in ring])
            # shapely needs at least four coordinates in a closed ring
            if len(new_ring) < 4:
                new_ring = ring
            removed += len(ring) - len(new_ring)
            new_rings.append(new_ring)
        rebuilt.append(Polygon(new_rings[0], new_rings[1:]))
    if not removed:
        return geometry, 0
    return _combine(rebuilt), removed


def _combine(parts: list[Polygon]) -> BaseGeometry:
    if len(parts) == 1:
        return parts[0]
    return MultiPolygon(parts)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = ["HealingResult", "ShapeHealingEngine", "SLIVER_REMOVAL", "MICRO_GAP_ELIMINATION", "EDGE_MERGE"]
