"""Tests for the wall data model and its serialization."""

import pytest
from pydantic import ValidationError
from shapely.geometry import box

from wallcore.exceptions import DegenerateGeometryError, GeometryValidationError
from wallcore.geometry.primitives import Curve, Point
from wallcore.model import serialization
from wallcore.model.enums import GeometryMode, JoinType, JunctionType, ResolutionMethod, WallType
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import BasicGeometry, BasicSegment, BIMGeometry, UnifiedWallData
from wallcore.model.wall_solid import HealingOperation, WallSolid


def make_solid(wall_id="w1"):
    wall = WallSolid(
        id=wall_id,
        baseline=Curve.from_coords([(0.0, 50.0), (1000.0, 50.0)]),
        thickness=100.0,
        join_types={1: JoinType.BEVEL},
    )
    return wall.with_solid(box(0, 0, 1000, 100))


def make_unified(**kwargs):
    baseline = Curve.from_coords([(0.0, 0.0), (1000.0, 0.0)])
    segment = BasicSegment(start=baseline.points[0], end=baseline.points[1], wall_id="u1")
    return UnifiedWallData(
        id="u1",
        thickness=100.0,
        baseline=baseline,
        basic_geometry=BasicGeometry(segments=[segment]),
        **kwargs,
    )


def test_curve_derived_values():
    """Length, bounds and curvature come from the points."""
    curve = Curve.from_coords([(0.0, 0.0), (3.0, 4.0), (3.0, 10.0)])
    assert curve.length == pytest.approx(11.0)
    assert curve.bounding_box.max_y == pytest.approx(10.0)
    assert curve.curvature()[0] == 0.0
    assert curve.curvature()[1] > 0.0
    closed = Curve.from_coords([(0.0, 0.0), (1.0, 0.0), (1.0, 1.0), (0.0, 1.0)], closed=True)
    assert closed.length == pytest.approx(4.0)


def test_wall_needs_two_points():
    """A one-point baseline is degenerate."""
    with pytest.raises(DegenerateGeometryError):
        WallSolid(baseline=Curve.from_coords([(0.0, 0.0)]), thickness=100.0)


def test_wall_complexity():
    """Complexity counts baseline and ring vertices, junctions and healing steps."""
    wall = make_solid()
    assert wall.complexity == 2 + 4
    wall = wall.model_copy(update={"intersection_data": ["ix1"]}).add_healing_operation(HealingOperation(type="x"))
    assert wall.complexity == 2 + 4 + 5 + 2


def test_wall_solid_round_trip():
    """A wall survives encode and decode unchanged."""
    wall = make_solid()
    payload = serialization.encode(wall)
    assert payload["entity"] == "wall_solid"
    assert payload["complexity"] == 6
    assert "solidGeometry" in payload
    restored = serialization.loads(serialization.dumps(wall))
    assert isinstance(restored, WallSolid)
    assert restored.join_types == {1: JoinType.BEVEL}
    assert restored.to_polygon().equals(wall.to_polygon())


def test_decode_rejects_unknown_entities():
    """Unknown tags and broken payloads raise validation errors."""
    with pytest.raises(GeometryValidationError):
        serialization.decode({"entity": "door"})
    with pytest.raises(GeometryValidationError):
        serialization.decode({"entity": "wall_solid", "thickness": -1})


def test_intersection_quality_and_key():
    """Cache keys ignore wall order; quality rewards primary methods."""
    ix = Intersection(
        type=JunctionType.L_JUNCTION,
        participating_walls=["b", "a"],
        intersection_point=Point.at(1.0, 2.0),
        resolution_method=ResolutionMethod.CORNER_GEOMETRY_CALCULATION,
        geometric_accuracy=0.9,
        validated=True,
    )
    assert ix.cache_key == "intersection_a_b_l_junction_1.000000_2.000000"
    assert ix.quality_score() == pytest.approx(1.0)
    fallback = ix.model_copy(update={"resolution_method": ResolutionMethod.FALLBACK_APPROXIMATION, "validated": False})
    assert fallback.quality_score() == pytest.approx(0.82)
    report = ix.validate_junction()
    assert report["isValid"]
    assert "l_junction junction has no miter apex" in report["warnings"]


def test_intersection_invariants_are_enforced():
    """Fewer than two walls or an accuracy outside [0, 1] is rejected on build and decode."""
    fields = dict(
        type=JunctionType.T_JUNCTION,
        intersection_point=Point.at(0.0, 0.0),
        resolution_method=ResolutionMethod.MITER_APEX_CALCULATION,
    )
    with pytest.raises(DegenerateGeometryError):
        Intersection(participating_walls=["a"], **fields)
    with pytest.raises(ValidationError):
        Intersection(participating_walls=["a", "b"], geometric_accuracy=3.5, **fields)

    payload = serialization.encode(Intersection(participating_walls=["a", "b"], **fields))
    with pytest.raises(DegenerateGeometryError):
        serialization.decode({**payload, "participatingWalls": ["a"]})
    with pytest.raises(GeometryValidationError):
        serialization.decode({**payload, "geometricAccuracy": 3.5})


def test_quality_overall_score():
    """The overall score is the mean of the four scores."""
    metrics = QualityMetrics(geometric_accuracy=0.8, topological_consistency=1.0, manufacturability=0.6, architectural_compliance=1.0)
    assert metrics.overall_score() == pytest.approx(0.85)
    assert metrics.defect_count == 0


def test_touch_marks_other_mode_stale():
    """Editing one representation invalidates the other."""
    wall = make_unified(bim_geometry=BIMGeometry(wall_solid=make_solid("u1")), is_bim_mode_valid=True)
    wall.touch(GeometryMode.BASIC)
    assert wall.requires_sync
    assert wall.is_bim_mode_valid is False
    assert wall.version == 2
    wall.touch(GeometryMode.BIM)
    assert wall.is_basic_mode_valid is False
    assert wall.last_modified_mode == GeometryMode.BIM


def test_basic_edit_without_bim_needs_no_sync():
    """Nothing is stale when BIM geometry was never built."""
    wall = make_unified()
    wall.touch(GeometryMode.BASIC)
    assert wall.requires_sync is False


def test_processing_history_is_capped():
    """Only the last 100 processing steps are kept."""
    wall = make_unified()
    for i in range(120):
        wall.add_processing_step(GeometryMode.BASIC, f"op{i}")
    assert len(wall.processing_history) == 100
    assert wall.processing_history[0].operation == "op20"


def test_mode_validation_reports():
    """Basic mode is valid with segments; BIM mode needs a solid."""
    wall = make_unified(type=WallType.PARTITION)
    basic = wall.validate_basic_mode()
    assert basic.is_valid
    assert "Basic geometry has no nodes" in basic.warnings
    bim = wall.validate_bim_mode()
    assert bim.is_valid is False
    compat = wall.mode_compatibility()
    assert compat.can_switch_to_bim
    assert compat.estimated_processing_time == pytest.approx(50.0)


def test_unified_round_trip():
    """A unified wall survives a JSON round trip."""
    wall = make_unified(bim_geometry=BIMGeometry(wall_solid=make_solid("u1")))
    restored = serialization.loads(serialization.dumps(wall))
    assert isinstance(restored, UnifiedWallData)
    assert restored.bim_geometry.wall_solid.thickness == pytest.approx(100.0)
    assert restored.to_dict()["basicGeometry"] == wall.to_dict()["basicGeometry"]
    assert wall.sync_status()["hasBIMGeometry"] is True
