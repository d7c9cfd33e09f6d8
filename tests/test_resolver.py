"""Tests for the intersection resolver and the boolean operations behind it."""

import math
import threading

import pytest

from wallcore.cache.computation_cache import ComputationCache
from wallcore.exceptions import BooleanOperationError, DegenerateGeometryError
from wallcore.geometry.primitives import Curve
from wallcore.model.enums import JunctionType, ResolutionMethod
from wallcore.model.wall_solid import WallSolid
from wallcore.offset.engine import OffsetEngine
from wallcore.resolve.boolean_ops import BooleanOperations, UnionStrategy, junction_angles, nearest_segment
from wallcore.resolve.resolver import IntersectionResolver, common_point, overlap_stats
from wallcore.settings import OffsetSettings, ResolverSettings
from shapely.geometry import box


def make_wall(wall_id, coords, thickness=150.0):
    return WallSolid(id=wall_id, baseline=Curve.from_coords(coords), thickness=thickness)


@pytest.fixture
def resolver():
    return IntersectionResolver(cache=ComputationCache())


@pytest.fixture
def l_walls():
    return [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(1000.0, 0.0), (1000.0, 1000.0)]),
    ]


def test_l_junction_outer_apex(resolver, l_walls):
    """Two 150 mm walls meeting at (1000, 0) get their apex at (1075, -75)."""
    result = resolver.resolve_l_junction(l_walls)
    assert result.success
    ix = result.intersection
    assert ix.type == JunctionType.L_JUNCTION
    assert ix.resolution_method == ResolutionMethod.CORNER_GEOMETRY_CALCULATION
    assert ix.intersection_point.as_tuple() == pytest.approx((1000.0, 0.0))
    assert ix.miter_apex.as_tuple() == pytest.approx((1075.0, -75.0))
    assert result.result_solid.is_valid
    assert result.result_solid.area == pytest.approx(2000.0 * 150.0)
    assert result.result_solid.bounds == pytest.approx((0.0, -75.0, 1075.0, 1000.0))
    assert result.processing_time < 1000.0


def test_resolution_is_served_from_cache(resolver, l_walls):
    """Resolving the same junction twice returns the cached intersection."""
    first = resolver.resolve_l_junction(l_walls)
    second = resolver.resolve_l_junction(list(reversed(l_walls)))
    assert first.from_cache is False
    assert second.from_cache is True
    assert second.intersection.id == first.intersection.id
    assert second.result_solid.area == pytest.approx(first.result_solid.area)


def test_cached_flag_marks_reused_intersections(resolver, l_walls):
    """Only intersections served from the cache carry the cached flag."""
    first = resolver.resolve_l_junction(l_walls)
    assert first.intersection.cached is False
    second = resolver.resolve_l_junction(l_walls)
    assert second.intersection.cached is True
    second.intersection.geometric_accuracy = 0.1
    assert resolver.resolve_l_junction(l_walls).intersection.geometric_accuracy == pytest.approx(
        first.intersection.geometric_accuracy
    )


def test_configured_miter_limit_is_honoured(l_walls):
    """A tight miter limit turns a right-angle corner into a bevel."""
    boolean_ops = BooleanOperations(OffsetEngine(OffsetSettings(miter_limit=1.0)))
    resolver = IntersectionResolver(cache=ComputationCache(), boolean_ops=boolean_ops)
    result = resolver.resolve_l_junction(l_walls)
    assert result.success
    assert result.details["fallbackUsed"] is True
    assert result.intersection.resolution_method == ResolutionMethod.FALLBACK_APPROXIMATION


def test_nearest_segment_of_polyline_wall():
    """The closest segment of a multi-segment baseline is picked."""
    wall = make_wall("a", [(0.0, 0.0), (1000.0, 0.0), (1000.0, 1000.0), (0.0, 1000.0)])
    seg, foot, dist = nearest_segment(wall, (1200.0, 500.0))
    assert seg == ((1000.0, 0.0), (1000.0, 1000.0))
    assert foot == pytest.approx((1000.0, 500.0))
    assert dist == pytest.approx(200.0)


def test_caching_can_be_disabled(l_walls):
    """With caching off every call recomputes."""
    resolver = IntersectionResolver(cache=ComputationCache(), settings=ResolverSettings(enable_caching=False))
    resolver.resolve_l_junction(l_walls)
    assert resolver.resolve_l_junction(l_walls).from_cache is False
    assert len(resolver.cache) == 0


def test_wrong_wall_count_raises(resolver, l_walls):
    """Junction entry points reject the wrong number of walls."""
    with pytest.raises(DegenerateGeometryError):
        resolver.resolve_l_junction(l_walls[:1])
    with pytest.raises(DegenerateGeometryError):
        resolver.resolve_cross_junction(l_walls)


def test_parallel_walls_have_no_l_corner(resolver):
    """Parallel baselines produce a failed result instead of an exception."""
    walls = [make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]), make_wall("b", [(0.0, 500.0), (1000.0, 500.0)])]
    result = resolver.resolve_l_junction(walls)
    assert result.success is False
    assert "parallel" in result.warnings[0]


def test_t_junction_apex_on_host_face(resolver):
    """The terminating wall's centerline meets the host face at the apex."""
    host = make_wall("host", [(0.0, 0.0), (2000.0, 0.0)], thickness=200.0)
    term = make_wall("term", [(1000.0, 0.0), (1000.0, 1000.0)], thickness=100.0)
    result = resolver.resolve_t_junction([term, host])
    assert result.success
    ix = result.intersection
    assert ix.participating_walls == ["host", "term"]
    assert ix.resolution_method == ResolutionMethod.MITER_APEX_CALCULATION
    assert ix.intersection_point.as_tuple() == pytest.approx((1000.0, 0.0))
    assert ix.miter_apex.as_tuple() == pytest.approx((1000.0, 100.0))
    assert result.result_solid.area == pytest.approx(400000.0 + 100000.0 - 10000.0)


def test_cross_junction_of_three_walls(resolver):
    """Three walls sharing an endpoint resolve into one solid around (0, 0)."""
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(0.0, 0.0), (0.0, 1000.0)]),
        make_wall("c", [(0.0, 0.0), (-1000.0, -1000.0)]),
    ]
    result = resolver.resolve_cross_junction(walls)
    assert result.success
    assert result.intersection.type == JunctionType.CROSS_JUNCTION
    assert result.intersection.intersection_point.as_tuple() == pytest.approx((0.0, 0.0))
    assert result.result_solid.is_valid
    assert result.result_solid.contains(box(-10.0, -10.0, 10.0, 10.0))
    assert resolver.resolve_cross_junction(walls).from_cache is True


def test_cross_junction_of_opposite_walls(resolver):
    """Walls at 0, 90 and 180 degrees around one node resolve into a single solid."""
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(0.0, 0.0), (0.0, 1000.0)]),
        make_wall("c", [(0.0, 0.0), (-1000.0, 0.0)]),
    ]
    result = resolver.resolve_cross_junction(walls)
    assert result.success
    assert result.intersection.type == JunctionType.CROSS_JUNCTION
    assert result.intersection.intersection_point.as_tuple() == pytest.approx((0.0, 0.0))
    assert result.result_solid.is_valid
    assert result.result_solid.contains(box(-10.0, -10.0, 10.0, 10.0))


def test_parallel_overlap_strategy(resolver):
    """A 50% overlap is resolved with a transition zone and a warning."""
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)], thickness=100.0),
        make_wall("b", [(500.0, 50.0), (1500.0, 50.0)], thickness=100.0),
    ]
    stats = overlap_stats(*walls)
    assert stats["overlapPercentage"] == pytest.approx(50.0)
    result = resolver.resolve_parallel_overlap(walls)
    assert result.success
    assert result.details["strategy"] == "transition_zone"
    assert result.intersection.intersection_point.as_tuple() == pytest.approx((750.0, 0.0))
    assert result.warnings


def test_classify_junction(resolver):
    """Classification covers every junction type and disjoint walls."""
    a = make_wall("a", [(0.0, 0.0), (1000.0, 0.0)])
    assert resolver.classify_junction(a, make_wall("l", [(1000.0, 0.0), (1000.0, 800.0)]), 1.0) == JunctionType.L_JUNCTION
    assert resolver.classify_junction(a, make_wall("t", [(500.0, 0.0), (500.0, 800.0)]), 1.0) == JunctionType.T_JUNCTION
    assert resolver.classify_junction(
        make_wall("h", [(-1000.0, 0.0), (1000.0, 0.0)]), make_wall("v", [(0.0, -1000.0), (0.0, 1000.0)]), 1.0
    ) == JunctionType.CROSS_JUNCTION
    assert resolver.classify_junction(a, make_wall("p", [(500.0, 50.0), (1500.0, 50.0)]), 1.0) == JunctionType.PARALLEL_OVERLAP
    assert resolver.classify_junction(a, make_wall("far", [(0.0, 5000.0), (1000.0, 5000.0)]), 1.0) is None


def test_sharp_angle_uses_bevel(resolver):
    """A 10 degree corner is bevelled and flagged."""
    angle = math.radians(10.0)
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(1000.0, 0.0), (1000.0 - 1000.0 * math.cos(angle), 1000.0 * math.sin(angle))]),
    ]
    assert resolver.junction_angle(walls[0], walls[1], (1000.0, 0.0)) == pytest.approx(10.0)
    result = resolver.handle_extreme_angles(walls, [10.0])
    assert result.success
    assert result.warnings[0].startswith("Sharp angle")
    assert result.details["joinType"] == "bevel"
    assert result.intersection.resolution_method == ResolutionMethod.FALLBACK_APPROXIMATION
    assert result.intersection.miter_apex is None


def test_near_straight_walls_pass_through(resolver):
    """Almost collinear walls are unioned without a corner."""
    walls = [make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]), make_wall("b", [(1000.0, 0.0), (2000.0, 10.0)])]
    result = resolver.handle_extreme_angles(walls, [179.4])
    assert result.success
    assert result.warnings[0].startswith("Near-straight")
    assert result.details["extremeAngle"] == pytest.approx(179.4)


def test_over_complex_junction_is_approximated():
    """Junctions over the vertex budget fall back to a hull."""
    resolver = IntersectionResolver(settings=ResolverSettings(max_complexity=10))
    walls = [
        make_wall("a", [(float(x), 0.0) for x in range(0, 1100, 100)]),
        make_wall("b", [(1000.0, 0.0), (1000.0, 1000.0)]),
    ]
    result = resolver.resolve_l_junction(walls)
    assert result.success
    assert result.details["approximation"] == "convex_hull"
    assert result.intersection.resolution_method == ResolutionMethod.FALLBACK_APPROXIMATION


def test_network_resolves_room_corners(resolver):
    """A four-wall room yields four L junctions from four candidate pairs."""
    walls = [
        make_wall("w1", [(0.0, 0.0), (4000.0, 0.0)]),
        make_wall("w2", [(4000.0, 0.0), (4000.0, 3000.0)]),
        make_wall("w3", [(4000.0, 3000.0), (0.0, 3000.0)]),
        make_wall("w4", [(0.0, 3000.0), (0.0, 0.0)]),
    ]
    result = resolver.optimize_intersection_network(walls)
    assert result.cancelled is False
    assert result.failed_count == 0
    assert result.original_complexity == 6
    assert result.optimized_complexity == 4
    assert result.performance_gain == pytest.approx(100.0 / 3.0)
    assert len(result.intersections) == 4
    assert all(ix.type == JunctionType.L_JUNCTION for ix in result.intersections)
    assert "spatial_indexing" in result.optimizations_applied
    assert "cache_reuse" not in result.optimizations_applied
    again = resolver.optimize_intersection_network(walls)
    assert "cache_reuse" in again.optimizations_applied
    assert all(ix.cached for ix in again.intersections)


def test_network_groups_shared_nodes(resolver):
    """A node shared by three walls is resolved once as a cross junction."""
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(0.0, 0.0), (0.0, 1000.0)]),
        make_wall("c", [(0.0, 0.0), (-1000.0, 0.0)]),
    ]
    result = resolver.optimize_intersection_network(walls)
    assert len(result.intersections) == 1
    assert result.intersections[0].type == JunctionType.CROSS_JUNCTION
    assert "proximity_grouping" in result.optimizations_applied


def test_network_honours_cancellation(resolver):
    """A set cancel event stops the pass before any junction is resolved."""
    walls = [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(1000.0, 0.0), (1000.0, 1000.0)]),
    ]
    event = threading.Event()
    event.set()
    result = resolver.optimize_intersection_network(walls, cancel_event=event)
    assert result.cancelled is True
    assert result.intersections == []
    assert "early_termination" in result.optimizations_applied


def test_union_strategies_agree():
    """All three union strategies produce the same area."""
    ops = BooleanOperations()
    parts = [box(0, 0, 10, 10), box(5, 0, 15, 10), box(10, 0, 20, 10)]
    areas = {s: ops.union(parts, s).area for s in (UnionStrategy.SEQUENTIAL, UnionStrategy.HIERARCHICAL, UnionStrategy.BATCH)}
    assert all(a == pytest.approx(200.0) for a in areas.values())
    with pytest.raises(BooleanOperationError):
        ops.union([])


def test_miter_apex_distance():
    """The apex sits half_thickness / sin(theta / 2) from the corner."""
    outer, inner = BooleanOperations.compute_miter_apex((0.0, 0.0), (1.0, 0.0), (0.0, 1.0), 50.0)
    assert math.hypot(*outer) == pytest.approx(50.0 / math.sin(math.radians(45.0)))
    assert outer == pytest.approx((-50.0, -50.0))
    assert inner == pytest.approx((50.0, 50.0))
    assert BooleanOperations.compute_miter_apex((0.0, 0.0), (1.0, 0.0), (-1.0, 0.0), 50.0) is None


def test_junction_angles_and_common_point():
    """Gaps around a junction sum to 360 degrees."""
    gaps = junction_angles([(1.0, 0.0), (0.0, 1.0), (-1.0, 0.0)])
    assert sorted(gaps) == pytest.approx([90.0, 90.0, 180.0])
    walls = [make_wall("a", [(-500.0, 0.0), (500.0, 0.0)]), make_wall("b", [(0.0, -500.0), (0.0, 500.0)])]
    assert common_point(walls) == pytest.approx((0.0, 0.0))


def test_batch_union_isolates_empty_groups():
    """An empty group yields an empty polygon instead of failing the batch."""
    results = BooleanOperations().batch_union([[box(0, 0, 10, 10), box(10, 0, 20, 10)], []])
    assert results[0].area == pytest.approx(200.0)
    assert results[1].is_empty
