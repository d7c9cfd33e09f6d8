"""
Intersection Resolver

Cached entry points for every junction type, extreme-angle handling and
the floor-plan-wide network pass. Each entry point returns a
``ResolutionResult`` and reports malformed-but-parseable geometry as a
failed result with warnings instead of raising.
"""

from __future__ import annotations

import math
import statistics
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from loguru import logger
from shapely.errors import GEOSException
from shapely.geometry import LineString, MultiPoint, MultiPolygon, Polygon
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry.base import BaseGeometry

from wallcore.cache.computation_cache import ComputationCache
from wallcore.exceptions import DegenerateGeometryError, GeometricError, WallCoreError
from wallcore.geometry import contract
from wallcore.geometry.ops import Coord, angle_between, unit
from wallcore.model.enums import JoinType, JunctionType, ResolutionMethod
from wallcore.model.intersection import Intersection
from wallcore.model.wall_solid import WallSolid, polygons_from_geometry
from wallcore.resolve.boolean_ops import (
    BooleanOperations,
    ResolutionResult,
    UnionStrategy,
    build_intersection,
    junction_angles,
    l_corner_point,
    nearest_segment,
    t_roles,
    wall_end_near,
)
from wallcore.resolve.wall_graph import WallGraph
from wallcore.settings import ResolverSettings
from wallcore.tolerance.manager import ToleranceManager


@dataclass
class NetworkOptimizationResult:
    """Summary of a floor-plan-wide junction pass."""

    original_complexity: int
    optimized_complexity: int
    performance_gain: float
    optimizations_applied: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    intersections: list[Intersection] = field(default_factory=list)
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    cancelled: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "originalComplexity": self.original_complexity,
            "optimizedComplexity": self.optimized_complexity,
            "performanceGain": self.performance_gain,
            "optimizationsApplied": list(self.optimizations_applied),
            "processingTime": self.processing_time,
            "intersections": [ix.to_dict() for ix in self.intersections],
            "failedCount": self.failed_count,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "cancelled": self.cancelled,
        }


class IntersectionResolver:
    """Resolves wall junctions through an injected computation cache."""

    def __init__(
        self,
        cache: ComputationCache | None = None,
        settings: ResolverSettings | None = None,
        tolerance_manager: ToleranceManager | None = None,
        boolean_ops: BooleanOperations | None = None,
    ):
        self.settings = settings or ResolverSettings()
        self.cache = cache
        self.tolerance_manager = tolerance_manager or ToleranceManager()
        self.boolean_ops = boolean_ops or BooleanOperations()
        self._handlers: dict[JunctionType, Callable[[Sequence[WallSolid]], ResolutionResult]] = {
            JunctionType.T_JUNCTION: self.resolve_t_junction,
            JunctionType.L_JUNCTION: self.resolve_l_junction,
            JunctionType.CROSS_JUNCTION: self.resolve_cross_junction,
            JunctionType.PARALLEL_OVERLAP: self.resolve_parallel_overlap,
        }
        missing = set(JunctionType) - set(self._handlers)
        if missing:
            raise NotImplementedError(f"No resolver for junction types: {sorted(m.value for m in missing)}")

    # Dispatch

    def resolve(self, junction_type: JunctionType, walls: Sequence[WallSolid]) -> ResolutionResult:
        return self._handlers[junction_type](walls)

    # Junction entry points

    def resolve_l_junction(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        _require(walls, 2, exact=True, operation="resolve_l_junction")
        return self._cached(
            JunctionType.L_JUNCTION,
            walls,
            lambda: l_corner_point(walls[0], walls[1]),
            lambda: self.boolean_ops.resolve_l_junction(
                walls, miter_limit=self.boolean_ops.offset_engine.settings.miter_limit
            ),
        )

    def resolve_t_junction(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        _require(walls, 2, exact=True, operation="resolve_t_junction")
        return self._cached(
            JunctionType.T_JUNCTION,
            walls,
            lambda: _t_point(walls[0], walls[1]),
            lambda: self.boolean_ops.resolve_t_junction(walls),
        )

    def resolve_cross_junction(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        _require(walls, 3, exact=False, operation="resolve_cross_junction")
        return self._cached(
            JunctionType.CROSS_JUNCTION,
            walls,
            lambda: common_point(walls),
            lambda: self._cross(walls),
        )

    def resolve_parallel_overlap(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        _require(walls, 2, exact=True, operation="resolve_parallel_overlap")
        return self._cached(
            JunctionType.PARALLEL_OVERLAP,
            walls,
            lambda: _overlap_midpoint(walls[0], walls[1]),
            lambda: self._parallel_overlap(walls),
        )

    def handle_extreme_angles(self, walls: Sequence[WallSolid], angles: Sequence[float]) -> ResolutionResult:
        """
        Resolve junctions whose angles fall outside the normal range.

        Very sharp (<5 degrees) junctions are smoothed and bevelled, sharp
        ones are bevelled, near-straight ones are passed through as a plain
        union. Anything else is dispatched to the matching resolver.
        """
        start = time.perf_counter()
        _require(walls, 2, exact=False, operation="handle_extreme_angles")
        finite = [a for a in angles if math.isfinite(a)]
        if not finite:
            junction_type = self.classify_walls(walls)
            if junction_type is None:
                return ResolutionResult(False, "extreme_angle", warnings=["Walls do not meet"], processing_time=_ms(start))
            return self.resolve(junction_type, walls)

        sharpest = min(finite)
        widest = max(finite)
        junction_type = JunctionType.CROSS_JUNCTION if len(walls) >= 3 else JunctionType.L_JUNCTION
        if sharpest < self.settings.extreme_angle_threshold:
            very_sharp = sharpest < contract.VERY_SHARP_ANGLE_DEG
            return self._cached(
                junction_type,
                walls,
                lambda: common_point(walls),
                lambda: self._sharp(walls, sharpest, very_sharp=very_sharp),
                tag="very_sharp" if very_sharp else "sharp",
            )
        if widest > self.settings.near_straight_threshold and len(walls) == 2:
            return self._cached(
                junction_type,
                walls,
                lambda: common_point(walls),
                lambda: self._near_straight(walls, widest),
                tag="near_straight",
            )
        dispatched = self.classify_walls(walls)
        if dispatched is None:
            return ResolutionResult(False, "extreme_angle", warnings=["Walls do not meet"], processing_time=_ms(start))
        return self.resolve(dispatched, walls)

    # Classification

    def classify_junction(self, wall_a: WallSolid, wall_b: WallSolid, tolerance: float) -> JunctionType | None:
        """Topology of two walls, or None when they do not meet."""
        a_coords = wall_a.baseline.coords()
        b_coords = wall_b.baseline.coords()
        a_line = LineString(a_coords)
        b_line = LineString(b_coords)
        reach = (wall_a.thickness + wall_b.thickness) / 2.0

        da = unit(a_coords[-1][0] - a_coords[0][0], a_coords[-1][1] - a_coords[0][1])
        db = unit(b_coords[-1][0] - b_coords[0][0], b_coords[-1][1] - b_coords[0][1])
        cosine = abs(da[0] * db[0] + da[1] * db[1])
        if cosine >= self.settings.parallel_cosine and a_line.distance(b_line) <= reach:
            if overlap_stats(wall_a, wall_b)["overlapLength"] > tolerance:
                return JunctionType.PARALLEL_OVERLAP

        ends_a = (a_coords[0], a_coords[-1])
        ends_b = (b_coords[0], b_coords[-1])
        for pa in ends_a:
            for pb in ends_b:
                if math.hypot(pa[0] - pb[0], pa[1] - pb[1]) <= tolerance:
                    return JunctionType.L_JUNCTION

        for ends, other in ((ends_a, b_line), (ends_b, a_line)):
            for p in ends:
                if other.distance(ShapelyPoint(p)) <= tolerance:
                    return JunctionType.T_JUNCTION

        if a_line.crosses(b_line):
            return JunctionType.CROSS_JUNCTION
        return None

    def classify_walls(self, walls: Sequence[WallSolid]) -> JunctionType | None:
        if len(walls) >= 3:
            return JunctionType.CROSS_JUNCTION
        tol = self.tolerance_manager.vertex_merge_tolerance(max(w.thickness for w in walls))
        return self.classify_junction(walls[0], walls[1], tol)

    def junction_angle(self, wall_a: WallSolid, wall_b: WallSolid, point: Coord) -> float:
        """Angle in degrees between the two walls as seen from ``point``."""
        end_a = _direction_from(wall_a, point)
        end_b = _direction_from(wall_b, point)
        return angle_between(end_a, end_b)

    # Network

    def optimize_intersection_network(
        self,
        walls: Sequence[WallSolid],
        cancel_event: threading.Event | None = None,
    ) -> NetworkOptimizationResult:
        """
        Resolve every junction of a floor plan.

        Candidate pairs come from an STRtree over the wall footprints instead
        of all n*(n-1)/2 pairs. Nodes shared by three or more walls are
        resolved once as cross junctions. Cancellation is checked between wall pairs.
        """
        start = time.perf_counter()
        n = len(walls)
        original = n * (n - 1) // 2
        by_id = {w.id: w for w in walls}
        thickness = max((w.thickness for w in walls), default=contract.REFERENCE_THICKNESS_MM)
        snap = max(self.tolerance_manager.vertex_merge_tolerance(thickness), contract.DOCUMENT_PRECISION)

        graph = WallGraph(snap_tolerance=snap)
        graph.build(walls)
        pairs = list(graph.candidate_pairs())
        applied = ["spatial_indexing"]

        result = NetworkOptimizationResult(
            original_complexity=original,
            optimized_complexity=len(pairs),
            performance_gain=(1.0 - len(pairs) / original) * 100.0 if original else 0.0,
        )

        grouped: set[frozenset[str]] = set()
        for node in graph.junction_nodes(min_degree=3):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                break
            members = sorted(node.connected_walls)
            for i, a in enumerate(members):
                for b in members[i + 1:]:
                    grouped.add(frozenset((a, b)))
            self._collect(result, lambda m=members: self.resolve_cross_junction([by_id[i] for i in m]), members)
        if grouped:
            applied.append("proximity_grouping")

        for a_id, b_id in pairs:
            if result.cancelled or (cancel_event is not None and cancel_event.is_set()):
                result.cancelled = True
                break
            if frozenset((a_id, b_id)) in grouped:
                continue
            wall_a, wall_b = by_id[a_id], by_id[b_id]
            try:
                junction_type = self.classify_junction(wall_a, wall_b, snap)
            except (GeometricError, GEOSException, ValueError) as exc:
                result.failed_count += 1
                result.errors.append(f"{a_id}/{b_id}: {exc}")
                continue
            if junction_type is None:
                continue
            self._collect(result, lambda: self._resolve_pair(junction_type, wall_a, wall_b, snap), [a_id, b_id])

        if any(ix.cached for ix in result.intersections):
            applied.append("cache_reuse")
        if result.cancelled:
            applied.append("early_termination")
            logger.info("Intersection network pass cancelled after {} junctions", len(result.intersections))
        result.optimizations_applied = applied
        result.processing_time = _ms(start)
        logger.info(
            "Resolved {} junctions across {} walls ({} candidate pairs of {}, {} failed)",
            len(result.intersections),
            n,
            len(pairs),
            original,
            result.failed_count,
        )
        return result

    def _resolve_pair(self, junction_type: JunctionType, wall_a: WallSolid, wall_b: WallSolid, snap: float) -> ResolutionResult:
        walls = [wall_a, wall_b]
        if junction_type == JunctionType.CROSS_JUNCTION:
            # two walls crossing mid-span
            return self._cached(junction_type, walls, lambda: common_point(walls), lambda: self._cross(walls))
        if junction_type in (JunctionType.L_JUNCTION, JunctionType.T_JUNCTION):
            point = l_corner_point(wall_a, wall_b) if junction_type == JunctionType.L_JUNCTION else _t_point(wall_a, wall_b)
            if point is not None:
                angle = self.junction_angle(wall_a, wall_b, point)
                if junction_type == JunctionType.L_JUNCTION and (
                    angle < self.settings.extreme_angle_threshold or angle > self.settings.near_straight_threshold
                ):
                    return self.handle_extreme_angles(walls, [angle])
        return self.resolve(junction_type, walls)

    @staticmethod
    def _collect(result: NetworkOptimizationResult, compute: Callable[[], ResolutionResult], ids: list[str]) -> None:
        try:
            outcome = compute()
        except WallCoreError as exc:
            result.failed_count += 1
            result.errors.append(f"{'/'.join(ids)}: {exc.message}")
            return
        result.warnings.extend(outcome.warnings)
        if outcome.success and outcome.intersection is not None:
            result.intersections.append(outcome.intersection)
        else:
            result.failed_count += 1
            result.errors.append(f"{'/'.join(ids)}: {'; '.join(outcome.warnings) or 'resolution failed'}")

    # Cross / parallel / extreme implementations

    def _cross(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        start = time.perf_counter()
        warnings: list[str] = []
        point = common_point(walls)
        ends = [wall_end_near(w, point) if _near_end(w, point) else None for w in walls]

        headings: list[Coord] = []
        for wall, end in zip(walls, ends):
            if end is not None:
                headings.append(end.direction)
            else:
                # passes through: contributes both directions
                seg, _proj, _d = nearest_segment(wall, point)
                d = unit(seg[1][0] - seg[0][0], seg[1][1] - seg[0][1])
                headings.extend([d, (-d[0], -d[1])])
        gaps = junction_angles(headings)
        extreme = sum(1 for g in gaps if g < self.settings.extreme_angle_threshold)
        spread = statistics.pstdev(gaps) if len(gaps) > 1 else 0.0
        complexity = 2 * len(walls) + spread + 5 * extreme

        if complexity < contract.SEQUENTIAL_UNION_LIMIT:
            strategy = UnionStrategy.SEQUENTIAL
        elif complexity < contract.HIERARCHICAL_UNION_LIMIT:
            strategy = UnionStrategy.HIERARCHICAL
        else:
            strategy = UnionStrategy.BATCH

        if len(walls) > self.settings.cross_complexity_warning_threshold:
            warnings.append(f"Cross junction with {len(walls)} walls; result may need review")
        if extreme:
            warnings.append(f"{extreme} sharp angle(s) in cross junction")

        outlines = [self.boolean_ops.wall_outline(w) for w in walls]
        solid = self.boolean_ops.union(outlines, strategy)
        intersection = build_intersection(
            JunctionType.CROSS_JUNCTION,
            [w.id for w in walls],
            point,
            apex=None,
            offset_points=[],
            solid=solid,
            method=ResolutionMethod.CROSS_JUNCTION_RESOLUTION,
            point_accuracy=contract.PRIMARY_ACCURACY,
            processing_time=_ms(start),
        )
        return ResolutionResult(
            success=True,
            operation_type=JunctionType.CROSS_JUNCTION.value,
            result_solid=solid,
            intersection=intersection,
            warnings=warnings,
            processing_time=_ms(start),
            details={"complexity": complexity, "strategy": strategy, "extremeAngles": extreme},
        )

    def _parallel_overlap(self, walls: Sequence[WallSolid]) -> ResolutionResult:
        start = time.perf_counter()
        wall_a, wall_b = walls
        stats = overlap_stats(wall_a, wall_b)
        if stats["cosine"] < self.settings.parallel_cosine:
            return ResolutionResult(
                False,
                JunctionType.PARALLEL_OVERLAP.value,
                warnings=[f"Walls are not parallel (|cos|={stats['cosine']:.3f})"],
                processing_time=_ms(start),
            )

        pct = stats["overlapPercentage"]
        if pct > contract.OVERLAP_HIGH_PCT:
            strategy, ambiguity = "merge_walls", "high"
        elif pct > contract.OVERLAP_MEDIUM_PCT:
            strategy, ambiguity = "transition_zone", "medium"
        else:
            strategy, ambiguity = "standard_union", "low"
        warnings = []
        if ambiguity != "low":
            warnings.append(f"Ambiguous parallel overlap ({pct:.1f}%), resolved with {strategy}")

        outlines = [self.boolean_ops.wall_outline(w) for w in walls]
        solid = self.boolean_ops.union(outlines)
        if strategy == "merge_walls":
            solid = solid.convex_hull if solid.geom_type == "MultiPolygon" else solid

        point = _overlap_midpoint(wall_a, wall_b)
        intersection = build_intersection(
            JunctionType.PARALLEL_OVERLAP,
            [wall_a.id, wall_b.id],
            point,
            apex=None,
            offset_points=[],
            solid=solid,
            method=ResolutionMethod.PARALLEL_OVERLAP_RESOLUTION,
            point_accuracy=contract.PRIMARY_ACCURACY,
            processing_time=_ms(start),
        )
        return ResolutionResult(
            success=True,
            operation_type=JunctionType.PARALLEL_OVERLAP.value,
            result_solid=solid,
            intersection=intersection,
            warnings=warnings,
            processing_time=_ms(start),
            details={"overlapPercentage": pct, "strategy": strategy, "ambiguity": ambiguity},
        )

    def _sharp(self, walls: Sequence[WallSolid], angle: float, *, very_sharp: bool) -> ResolutionResult:
        label = "Very sharp" if very_sharp else "Sharp"
        warning = f"{label} angle ({angle:.1f} deg); bevel join used"
        if len(walls) == 2 and l_corner_point(walls[0], walls[1]) is not None:
            result = self.boolean_ops.resolve_l_junction(walls, force_bevel=True)
        else:
            result = self._cross(walls) if len(walls) >= 3 else self._plain_union(walls, JunctionType.L_JUNCTION)
        if very_sharp and result.success and result.result_solid is not None:
            eps = min(w.thickness for w in walls) * 0.05
            # closing removes the thin spike between the two walls
            result.result_solid = result.result_solid.buffer(eps, join_style="mitre").buffer(-eps, join_style="mitre")
            if result.intersection is not None:
                result.intersection.resolved_geometry = polygons_from_geometry(result.result_solid)
        result.warnings.insert(0, warning)
        result.details["joinType"] = JoinType.BEVEL.value
        result.details["extremeAngle"] = angle
        return result

    def _near_straight(self, walls: Sequence[WallSolid], angle: float) -> ResolutionResult:
        result = self._plain_union(walls, JunctionType.L_JUNCTION)
        result.warnings.insert(0, f"Near-straight junction ({angle:.1f} deg); walls passed through")
        result.details["extremeAngle"] = angle
        return result

    def _plain_union(self, walls: Sequence[WallSolid], junction_type: JunctionType) -> ResolutionResult:
        start = time.perf_counter()
        solid = self.boolean_ops.union([self.boolean_ops.wall_outline(w) for w in walls])
        point = common_point(walls)
        intersection = build_intersection(
            junction_type,
            [w.id for w in walls],
            point,
            apex=None,
            offset_points=[],
            solid=solid,
            method=ResolutionMethod.FALLBACK_APPROXIMATION,
            point_accuracy=contract.FALLBACK_ACCURACY,
            processing_time=_ms(start),
        )
        return ResolutionResult(
            True,
            junction_type.value,
            result_solid=solid,
            intersection=intersection,
            processing_time=_ms(start),
            details={"fallbackUsed": True},
        )

    # Cache plumbing

    def _cached(
        self,
        junction_type: JunctionType,
        walls: Sequence[WallSolid],
        locate: Callable[[], Coord | None],
        compute: Callable[[], ResolutionResult],
        tag: str | None = None,
    ) -> ResolutionResult:
        start = time.perf_counter()
        ids = [w.id for w in walls]
        key_type = f"{junction_type.value}+{tag}" if tag else junction_type
        try:
            point = locate()
        except (GeometricError, GEOSException, ValueError) as exc:
            return _guarded_failure(junction_type, exc, start)
        thickness = max(w.thickness for w in walls)
        tolerance = self.tolerance_manager.boolean_tolerance(thickness, len(walls))
        key_point = (round(point[0], 6), round(point[1], 6)) if point is not None else None

        use_cache = self.cache is not None and self.settings.enable_caching
        if use_cache:
            hit = self.cache.get_intersections(ids, key_type, tolerance, key_point)
            if hit:
                intersection = hit[0].model_copy(deep=True)
                logger.debug("Junction cache hit for {} {}", junction_type.value, sorted(ids))
                return ResolutionResult(
                    success=True,
                    operation_type=junction_type.value,
                    result_solid=_solid_of(intersection),
                    intersection=intersection,
                    processing_time=_ms(start),
                    from_cache=True,
                )

        complexity = sum(_vertex_count(w) for w in walls)
        try:
            if complexity > self.settings.max_complexity:
                result = self.boolean_ops.approximate(
                    junction_type,
                    walls,
                    point or common_point(walls),
                    f"Junction complexity {complexity} exceeds {self.settings.max_complexity}; approximated",
                )
                logger.warning("Junction {} approximated (complexity {})", sorted(ids), complexity)
            else:
                result = compute()
        except (GeometricError, GEOSException, ValueError) as exc:
            return _guarded_failure(junction_type, exc, start)

        result.processing_time = _ms(start)
        if use_cache and result.success and result.intersection is not None:
            stored = result.intersection.model_copy(update={"cached": True}, deep=True)
            self.cache.set_intersections(ids, key_type, tolerance, [stored], key_point)
        return result


# Module helpers


def common_point(walls: Sequence[WallSolid]) -> Coord:
    """Best estimate of the point all ``walls`` share."""
    hits: list[Coord] = []
    lines = [LineString(w.baseline.coords()) for w in walls]
    for i in range(len(lines)):
        for j in range(i + 1, len(lines)):
            inter = lines[i].intersection(lines[j])
            if inter.is_empty:
                continue
            rep = inter.centroid if inter.geom_type != "Point" else inter
            hits.append((rep.x, rep.y))
    if hits:
        return (sum(p[0] for p in hits) / len(hits), sum(p[1] for p in hits) / len(hits))
    ends = [c for w in walls for c in (w.baseline.coords()[0], w.baseline.coords()[-1])]
    centroid = MultiPoint(ends).centroid
    closest = [
        min((w.baseline.coords()[0], w.baseline.coords()[-1]), key=lambda c: math.hypot(c[0] - centroid.x, c[1] - centroid.y))
        for w in walls
    ]
    return (sum(c[0] for c in closest) / len(closest), sum(c[1] for c in closest) / len(closest))


def overlap_stats(wall_a: WallSolid, wall_b: WallSolid) -> dict[str, float]:
    """Parallelism and end-to-end overlap of two baselines, measured along wall A."""
    a = wall_a.baseline.coords()
    b = wall_b.baseline.coords()
    origin = a[0]
    axis = unit(a[-1][0] - origin[0], a[-1][1] - origin[1])
    len_a = math.hypot(a[-1][0] - origin[0], a[-1][1] - origin[1])
    len_b = math.hypot(b[-1][0] - b[0][0], b[-1][1] - b[0][1])
    db = unit(b[-1][0] - b[0][0], b[-1][1] - b[0][1])
    cosine = abs(axis[0] * db[0] + axis[1] * db[1])

    t0 = (b[0][0] - origin[0]) * axis[0] + (b[0][1] - origin[1]) * axis[1]
    t1 = (b[-1][0] - origin[0]) * axis[0] + (b[-1][1] - origin[1]) * axis[1]
    lo, hi = max(0.0, min(t0, t1)), min(len_a, max(t0, t1))
    overlap = max(0.0, hi - lo)
    shorter = min(len_a, len_b)
    return {
        "cosine": cosine,
        "overlapLength": overlap,
        "overlapPercentage": (overlap / shorter * 100.0) if shorter > 0 else 0.0,
        "overlapStart": lo,
        "overlapEnd": hi,
    }


def _overlap_midpoint(wall_a: WallSolid, wall_b: WallSolid) -> Coord:
    stats = overlap_stats(wall_a, wall_b)
    a = wall_a.baseline.coords()
    axis = unit(a[-1][0] - a[0][0], a[-1][1] - a[0][1])
    mid = (stats["overlapStart"] + stats["overlapEnd"]) / 2.0
    return (a[0][0] + axis[0] * mid, a[0][1] + axis[1] * mid)


def _t_point(wall_a: WallSolid, wall_b: WallSolid) -> Coord | None:
    host, term = t_roles(wall_a, wall_b)
    coords = term.baseline.coords()
    line = LineString(host.baseline.coords())
    end = min((coords[0], coords[-1]), key=lambda c: line.distance(ShapelyPoint(c)))
    _seg, proj, _d = nearest_segment(host, end)
    return proj


def _near_end(wall: WallSolid, point: Coord) -> bool:
    coords = wall.baseline.coords()
    reach = wall.thickness
    return min(
        math.hypot(coords[0][0] - point[0], coords[0][1] - point[1]),
        math.hypot(coords[-1][0] - point[0], coords[-1][1] - point[1]),
    ) <= reach


def _direction_from(wall: WallSolid, point: Coord) -> Coord:
    if _near_end(wall, point):
        return wall_end_near(wall, point).direction
    seg, _proj, _d = nearest_segment(wall, point)
    return unit(seg[1][0] - seg[0][0], seg[1][1] - seg[0][1])


def _vertex_count(wall: WallSolid) -> int:
    return len(wall.baseline.points) + sum(p.vertex_count for p in wall.solid_geometry)


def _solid_of(intersection: Intersection) -> BaseGeometry:
    polys = [p.to_shapely() for p in intersection.resolved_geometry]
    if not polys:
        return Polygon()
    if len(polys) == 1:
        return polys[0]
    return MultiPolygon(polys)


def _guarded_failure(junction_type: JunctionType, exc: Exception, start: float) -> ResolutionResult:
    logger.warning("{} resolution failed: {}", junction_type.value, exc)
    return ResolutionResult(
        success=False,
        operation_type=junction_type.value,
        warnings=[f"{type(exc).__name__}: {exc}"],
        processing_time=_ms(start),
    )


def _require(walls: Sequence[WallSolid], count: int, *, exact: bool, operation: str) -> None:
    n = len(walls)
    if (exact and n != count) or n < count:
        expected = f"exactly {count}" if exact else f"at least {count}"
        raise DegenerateGeometryError(
            f"{operation} needs {expected} walls, got {n}",
            operation=operation,
            input_snapshot=[w.id for w in walls],
            suggested_fix="Pass the walls that meet at this junction",
        )


def _ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = [
    "IntersectionResolver",
    "NetworkOptimizationResult",
    "common_point",
    "overlap_stats",
]
