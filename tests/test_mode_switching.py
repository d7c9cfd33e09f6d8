"""Tests for basic <-> BIM mode switching."""

import threading

import pytest

from wallcore.cache.computation_cache import ComputationCache
from wallcore.geometry.primitives import Curve
from wallcore.model.enums import GeometryMode, WallType
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.modes.switching import ModeSwitchingEngine
from wallcore.settings import EngineSettings, ModeSwitchSettings


def make_wall(wall_id, coords, thickness=150.0, closed=False, wall_type=WallType.STRUCTURAL):
    return UnifiedWallData(
        id=wall_id,
        type=wall_type,
        thickness=thickness,
        baseline=Curve.from_coords(coords, closed=closed),
    )


def l_pair():
    return [
        make_wall("a", [(0.0, 0.0), (1000.0, 0.0)]),
        make_wall("b", [(1000.0, 0.0), (1000.0, 1000.0)]),
    ]


def room():
    return [
        make_wall("w1", [(0.0, 0.0), (4000.0, 0.0)]),
        make_wall("w2", [(4000.0, 0.0), (4000.0, 3000.0)]),
        make_wall("w3", [(4000.0, 3000.0), (0.0, 3000.0)]),
        make_wall("w4", [(0.0, 3000.0), (0.0, 0.0)]),
    ]


@pytest.fixture
def engine():
    return ModeSwitchingEngine(cache=ComputationCache())


def test_switch_to_bim_builds_solids(engine):
    """Both walls of an L get a solid, offsets, a shared junction and metrics."""
    walls = l_pair()
    result = engine.switch_to_bim_mode(walls)
    assert result.success
    assert result.converted_walls == ["a", "b"]
    assert result.failed_walls == []
    assert result.metrics.junctions_resolved == 1
    for wall in walls:
        assert wall.is_bim_mode_valid
        assert wall.requires_sync is False
        bim = wall.bim_geometry
        assert bim.offset_curves is not None
        assert bim.quality_metrics is not None
        assert len(bim.intersection_data) == 1
        assert bim.wall_solid.intersection_data == [bim.intersection_data[0].id]
        assert bim.wall_solid.to_polygon().area == pytest.approx(1000.0 * 150.0)
        assert wall.processing_history[-1].operation == "switch_to_bim"
    assert walls[0].bim_geometry.intersection_data[0].miter_apex.as_tuple() == pytest.approx((1075.0, -75.0))


def test_bim_results_are_cached(engine):
    """Converted solids and their metrics land in the cache."""
    engine.switch_to_bim_mode(l_pair())
    assert engine.cache.get_wall("a") is not None
    assert engine.cache.get_quality_metrics("b") is not None
    assert "a" in engine.registry


def test_round_trip_preserves_wall(engine):
    """BIM then basic keeps thickness, type and point count without data loss."""
    walls = l_pair()
    engine.switch_to_bim_mode(walls)
    result = engine.switch_to_basic_mode(walls)
    assert result.success
    assert result.data_loss is False
    assert result.preserved_data == ["baseline", "thickness", "type"]
    wall = walls[0]
    assert wall.thickness == pytest.approx(150.0)
    assert wall.type == WallType.STRUCTURAL
    basic = wall.basic_geometry
    assert len(basic.nodes) == len(wall.baseline.points)
    assert len(basic.segments) == 1
    assert len(basic.polygons) == 1
    assert basic.polygons[0].area == pytest.approx(150000.0)
    assert [n.type for n in basic.nodes] == ["endpoint", "junction"]
    assert basic.nodes[0].connected_segments == [basic.segments[0].id]


def test_thickness_drift_is_reported_as_data_loss(engine):
    """A basic thickness that no longer matches the solid is flagged as lost data."""
    walls = l_pair()
    engine.switch_to_bim_mode(walls)
    walls[0].thickness = 300.0
    result = engine.switch_to_basic_mode(walls)
    assert result.success
    assert result.data_loss is True


def test_junctions_from_cache_counts_only_reused(engine):
    """A first conversion resolves junctions fresh; a repeat reuses them."""
    first = engine.switch_to_bim_mode(l_pair())
    assert first.metrics.junctions_resolved == 1
    assert first.metrics.junctions_from_cache == 0
    second = engine.switch_to_bim_mode(l_pair())
    assert second.metrics.junctions_from_cache == 1


def test_holes_count_as_approximations(engine):
    """A closed wall's hole cannot be represented in basic mode."""
    wall = make_wall("sq", [(0.0, 0.0), (2000.0, 0.0), (2000.0, 2000.0), (0.0, 2000.0)], thickness=100.0, closed=True)
    engine.switch_to_bim_mode([wall])
    result = engine.switch_to_basic_mode([wall])
    assert result.approximations_used == 1
    assert any("holes" in w for w in result.warnings)
    assert len(wall.basic_geometry.segments) == 4
    assert all(n.type == "vertex" for n in wall.basic_geometry.nodes)


def test_failed_wall_does_not_abort_batch(engine):
    """A degenerate wall fails alone; the rest of the batch converts."""
    good = make_wall("good", [(0.0, 0.0), (1000.0, 0.0)])
    bad = make_wall("bad", [(5.0, 5.0), (5.0, 5.0)])
    result = engine.switch_to_bim_mode([good, bad])
    assert result.success is False
    assert result.converted_walls == ["good"]
    assert result.failed_walls == ["bad"]
    assert result.errors[0].startswith("bad:")
    assert good.is_bim_mode_valid
    assert bad.bim_geometry is None
    assert result.metrics.failed_walls == 1


def test_basic_switch_without_bim_fails(engine):
    """Walls that were never converted cannot go back to basic."""
    result = engine.switch_to_basic_mode([make_wall("a", [(0.0, 0.0), (1000.0, 0.0)])])
    assert result.failed_walls == ["a"]


def test_parallel_workers():
    """A thread pool converts a whole room with all four corners."""
    settings = EngineSettings(mode_switch=ModeSwitchSettings(max_workers=2))
    engine = ModeSwitchingEngine(settings=settings, cache=ComputationCache())
    walls = room()
    result = engine.switch_to_bim_mode(walls)
    assert result.success
    assert sorted(result.converted_walls) == ["w1", "w2", "w3", "w4"]
    assert result.metrics.junctions_resolved == 4
    assert all(len(w.bim_geometry.intersection_data) == 2 for w in walls)


def test_cancellation_fails_built_walls(engine):
    """A cancelled junction pass fails every wall that was built."""
    event = threading.Event()
    event.set()
    result = engine.switch_to_bim_mode(l_pair(), cancel_event=event)
    assert result.success is False
    assert sorted(result.failed_walls) == ["a", "b"]
    assert result.converted_walls == []


def test_validate_to_bim(engine):
    """Fresh walls can go to BIM; the estimate is 50 ms per segment."""
    validation = engine.validate_mode_switch(GeometryMode.BASIC, GeometryMode.BIM, l_pair())
    assert validation.is_valid
    assert validation.can_proceed
    assert validation.compatibility == pytest.approx(1.0)
    assert validation.estimated_processing_time == pytest.approx(100.0)


def test_validate_edge_cases(engine):
    """Same-mode, empty and impossible switches are reported."""
    same = engine.validate_mode_switch(GeometryMode.BIM, GeometryMode.BIM, l_pair())
    assert same.can_proceed and same.warnings
    empty = engine.validate_mode_switch(GeometryMode.BASIC, GeometryMode.BIM, [])
    assert empty.can_proceed is False
    to_basic = engine.validate_mode_switch(GeometryMode.BIM, GeometryMode.BASIC, l_pair())
    assert to_basic.is_valid is False
    assert to_basic.can_proceed is False
    assert to_basic.compatibility == 0.0
    assert len(to_basic.errors) == 2


def test_validate_reports_data_loss(engine):
    """Going back to basic lists what BIM-only data is dropped."""
    walls = l_pair()
    engine.switch_to_bim_mode(walls)
    validation = engine.validate_mode_switch(GeometryMode.BIM, GeometryMode.BASIC, walls)
    assert validation.can_proceed
    assert any("Intersection resolution data" in item for item in validation.potential_data_loss)
    assert validation.estimated_processing_time == pytest.approx(200.0)


def test_synchronize_after_basic_edit(engine):
    """A basic edit is pushed into a fresh BIM solid."""
    walls = l_pair()
    engine.switch_to_bim_mode(walls)
    wall = walls[0]
    wall.baseline = Curve.from_coords([(0.0, 0.0), (2000.0, 0.0)])
    wall.touch(GeometryMode.BASIC)
    assert wall.requires_sync
    result = engine.synchronize_modes(wall)
    assert result.success
    assert wall.requires_sync is False
    assert wall.is_bim_mode_valid
    assert wall.bim_geometry.wall_solid.to_polygon().area == pytest.approx(2000.0 * 150.0)


def test_synchronize_after_bim_edit(engine):
    """A BIM edit flows back to the wall's basic data."""
    walls = l_pair()
    engine.switch_to_bim_mode(walls)
    wall = walls[1]
    solid = wall.bim_geometry.wall_solid
    wall.bim_geometry.wall_solid = solid.model_copy(update={"thickness": 200.0})
    wall.touch(GeometryMode.BIM)
    result = engine.synchronize_modes(wall)
    assert result.success
    assert result.data_loss is False
    assert wall.thickness == pytest.approx(200.0)
    assert wall.is_basic_mode_valid


def test_synchronize_noop(engine):
    """Synchronized walls are left alone."""
    wall = make_wall("a", [(0.0, 0.0), (1000.0, 0.0)])
    result = engine.synchronize_modes(wall)
    assert result.success
    assert result.warnings == ["Wall a is already synchronized"]
