"""Tests for the quality metrics calculator."""

import pytest
from shapely.geometry import MultiPolygon, Polygon, box

from wallcore.geometry.primitives import Curve
from wallcore.metrics.quality import QualityMetricsCalculator
from wallcore.model.enums import IssueType, WallType
from wallcore.model.wall_solid import WallSolid


def make_wall(geometry=None, thickness=100.0, wall_type=WallType.LAYOUT, coords=((0.0, 50.0), (1000.0, 50.0))):
    wall = WallSolid(id="w1", baseline=Curve.from_coords(coords), thickness=thickness, wall_type=wall_type)
    return wall.with_solid(geometry) if geometry is not None else wall


@pytest.fixture
def calculator():
    return QualityMetricsCalculator()


def test_clean_wall_scores_perfectly(calculator):
    """A rectangle matching length times thickness has no defects."""
    metrics = calculator.calculate(make_wall(box(0, 0, 1000, 100)))
    assert metrics.geometric_accuracy == pytest.approx(1.0)
    assert metrics.topological_consistency == pytest.approx(1.0)
    assert metrics.manufacturability == pytest.approx(1.0)
    assert metrics.architectural_compliance == pytest.approx(1.0)
    assert metrics.defect_count == 0
    assert metrics.issues == []
    assert metrics.recommendations == []
    assert metrics.tolerance_used > 0.0
    assert metrics.memory_usage == 2400


def test_micro_gap_is_reported(calculator):
    """Two parts a hair apart count as a micro gap."""
    metrics = calculator.calculate(make_wall(MultiPolygon([box(0, 0, 500, 100), box(500.00005, 0, 1000, 100)])))
    assert metrics.micro_gap_count == 1
    assert metrics.topological_consistency == pytest.approx(0.85)
    assert metrics.issues[0].type == IssueType.MICRO_GAP
    assert "Run shape healing to remove slivers and close micro gaps" in metrics.recommendations


def test_self_intersection_is_reported(calculator):
    """A bow-tie ring is flagged as self-intersecting."""
    bowtie = Polygon([(0, 0), (1000, 100), (1000, 0), (0, 100)])
    metrics = calculator.calculate(make_wall(bowtie))
    assert metrics.self_intersection_count == 1
    assert metrics.topological_consistency == pytest.approx(0.75)
    assert any(issue.type == IssueType.SELF_INTERSECTION for issue in metrics.issues)


def test_sliver_is_reported(calculator):
    """Sliver parts lower manufacturability."""
    metrics = calculator.calculate(make_wall(MultiPolygon([box(0, 0, 1000, 100), box(0, 500, 1000, 500.0001)])))
    assert metrics.sliver_face_count == 1
    assert metrics.manufacturability == pytest.approx(0.9)


def test_missing_solid_is_degenerate(calculator):
    """A wall without a solid has zero accuracy and a degenerate element."""
    metrics = calculator.calculate(make_wall())
    assert metrics.degenerate_element_count == 1
    assert metrics.geometric_accuracy == 0.0


def test_short_baseline_segment_is_degenerate(calculator):
    """Baseline segments below tolerance are counted."""
    wall = make_wall(box(0, 0, 1000, 100), coords=((0.0, 50.0), (0.0, 50.0), (1000.0, 50.0)))
    assert calculator.calculate(wall).degenerate_element_count == 1


def test_sharp_corner_lowers_manufacturability(calculator):
    """A 5.7 degree tip is a sharp corner."""
    metrics = calculator.calculate(make_wall(Polygon([(0, 0), (1000, 0), (0, 100)])))
    assert metrics.manufacturability == pytest.approx(0.95)
    assert any(issue.type == IssueType.GEOMETRIC_INCONSISTENCY for issue in metrics.issues)


def test_unusual_thickness_for_type(calculator):
    """Five times the typical thickness halves the compliance score."""
    metrics = calculator.calculate(make_wall(box(0, -200, 1000, 300), thickness=500.0))
    assert metrics.architectural_compliance == pytest.approx(0.5)
    assert metrics.issues[-1].type == IssueType.TOLERANCE_VIOLATION
