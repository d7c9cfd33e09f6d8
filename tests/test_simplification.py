"""Tests for Douglas-Peucker simplification of wall solids."""

import pytest
from shapely.geometry import Polygon

from wallcore.geometry.primitives import Curve
from wallcore.heal.simplification import GeometrySimplificationEngine, simplify_span
from wallcore.model.wall_solid import WallSolid
from wallcore.settings import SimplificationSettings

WIGGLY = [(0, 0), (250, 0.2), (500, -0.2), (750, 0.1), (1000, 0), (1000, 100), (0, 100)]


def make_wall(coords, thickness=100.0):
    wall = WallSolid(id="w1", baseline=Curve.from_coords([(0.0, 50.0), (1000.0, 50.0)]), thickness=thickness)
    return wall.with_solid(Polygon(coords))


@pytest.fixture
def engine():
    return GeometrySimplificationEngine()


def test_simplify_span_keeps_endpoints():
    """Points within epsilon collapse onto the chord."""
    points = [(0.0, 0.0), (1.0, 0.01), (2.0, 0.0)]
    assert simplify_span(points, 0.1) == [(0.0, 0.0), (2.0, 0.0)]
    assert simplify_span(points, 0.001) == points
    assert simplify_span(points[:2], 10.0) == points[:2]


def test_adaptive_deviation(engine):
    """Deviation grows with thickness and is capped."""
    assert engine.adaptive_deviation(100.0) == pytest.approx(1.0)
    assert engine.adaptive_deviation(100.0, 3.0) == pytest.approx(3.0)
    assert engine.adaptive_deviation(5000.0) == pytest.approx(10.0)


def test_wiggles_removed_corners_kept(engine):
    """Noise on an edge is removed while all four corners survive."""
    result = engine.simplify_wall_geometry(make_wall(WIGGLY))
    assert result.success
    assert result.accuracy_preserved
    assert result.points_removed == 3
    coords = list(result.simplified_solid.to_polygon().exterior.coords)
    assert set(coords) == {(0.0, 0.0), (1000.0, 0.0), (1000.0, 100.0), (0.0, 100.0)}
    assert result.simplified_solid.healing_history[-1].type == "geometry_simplification"


def test_pinned_points_survive(engine):
    """A pinned junction point is never removed."""
    result = engine.simplify_wall_geometry(make_wall(WIGGLY), pinned=[(500.0, -0.2)])
    assert result.points_removed == 2
    assert (500.0, -0.2) in list(result.simplified_solid.to_polygon().exterior.coords)


def test_area_drift_is_rejected():
    """Simplification that moves the area past the floor keeps the original."""
    engine = GeometrySimplificationEngine(SimplificationSettings(accuracy_floor=0.999))
    wall = make_wall([(0, 0), (500, -0.9), (1000, 0), (1000, 100), (0, 100)])
    result = engine.simplify_wall_geometry(wall)
    assert result.success
    assert result.accuracy_preserved is False
    assert result.points_removed == 0
    assert result.simplified_solid is wall
    assert "accuracy floor" in result.warnings[-1]


def test_triangle_is_not_reduced(engine):
    """Rings at the minimum vertex count are left untouched."""
    wall = make_wall([(0, 0), (1000, 0), (500, 100)])
    result = engine.simplify_wall_geometry(wall)
    assert result.points_removed == 0
    assert result.simplified_solid.healing_history == []


def test_wall_without_solid(engine):
    """Nothing to simplify is reported as a failure."""
    wall = WallSolid(baseline=Curve.from_coords([(0.0, 0.0), (1.0, 0.0)]), thickness=100.0)
    result = engine.simplify_wall_geometry(wall)
    assert result.success is False
    assert result.to_dict()["pointsRemoved"] == 0
