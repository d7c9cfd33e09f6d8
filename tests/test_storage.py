"""Tests for the in-memory and local JSON wall stores."""

import pytest

from wallcore.geometry.primitives import Curve, Point
from wallcore.model.enums import JunctionType, ResolutionMethod
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.storage.local import LocalWallStore
from wallcore.storage.memory import InMemoryWallStore


def make_wall(wall_id, coords=((0.0, 0.0), (1000.0, 0.0)), thickness=100.0):
    return UnifiedWallData(id=wall_id, thickness=thickness, baseline=Curve.from_coords(coords))


def make_intersection(ix_id, walls):
    return Intersection(
        id=ix_id,
        type=JunctionType.L_JUNCTION,
        participating_walls=list(walls),
        intersection_point=Point.at(0.0, 0.0),
        resolution_method=ResolutionMethod.CORNER_GEOMETRY_CALCULATION,
    )


@pytest.fixture(params=["memory", "local"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryWallStore()
    return LocalWallStore(tmp_path / "store")


def test_save_and_load(store):
    """A saved wall loads back with the same data and version."""
    saved = store.save_wall(make_wall("a"))
    assert saved.success
    assert saved.data == "a"
    assert saved.version == 1
    loaded = store.load_wall("a")
    assert loaded.success
    assert loaded.data.thickness == pytest.approx(100.0)
    assert loaded.data.baseline.coords() == [(0.0, 0.0), (1000.0, 0.0)]
    assert loaded.version == 1


def test_load_missing(store):
    """Unknown ids are reported, not raised."""
    result = store.load_wall("nope")
    assert result.success is False
    assert "not found" in result.error


def test_update_bumps_version_and_detects_conflicts(store):
    """Stale writers are rejected with a version conflict."""
    store.save_wall(make_wall("a"))
    stale = store.load_wall("a").data
    first = store.update_wall(stale.model_copy(update={"thickness": 150.0}))
    assert first.success
    assert first.version == 2
    conflict = store.update_wall(stale)
    assert conflict.success is False
    assert "Version conflict" in conflict.error
    fresh = store.load_wall("a").data
    assert fresh.thickness == pytest.approx(150.0)
    assert store.update_wall(fresh).version == 3


def test_update_missing_wall(store):
    """Updates need an existing record."""
    assert store.update_wall(make_wall("ghost")).success is False


def test_delete_removes_metrics(store):
    """Deleting a wall also deletes its quality metrics."""
    store.save_wall(make_wall("a"))
    store.save_quality_metrics("a", QualityMetrics(geometric_accuracy=0.9))
    assert store.load_quality_metrics("a").data.geometric_accuracy == pytest.approx(0.9)
    assert store.delete_wall("a").success
    assert store.load_quality_metrics("a").success is False
    assert store.delete_wall("a").success is False


def test_batches(store):
    """Batch operations count successes and failures."""
    saved = store.save_walls([make_wall("a"), make_wall("b"), make_wall("c")])
    assert saved.success
    assert saved.processed_count == 3
    loaded = store.load_walls(["a", "x"])
    assert loaded.success is False
    assert [w.id for w in loaded.data] == ["a"]
    assert "x" in loaded.error
    deleted = store.delete_walls(["a", "b", "x"])
    assert deleted.processed_count == 2
    assert deleted.failed_count == 1
    assert deleted.errors[0].startswith("x:")


def test_intersections_by_wall(store):
    """Intersections are found through any participating wall."""
    result = store.save_intersection([make_intersection("ix1", ["a", "b"]), make_intersection("ix2", ["c", "d"])])
    assert result.processed_count == 2
    found = store.load_intersection(["b"])
    assert [ix.id for ix in found.data] == ["ix1"]
    assert store.load_intersection(["z"]).data == []


def test_find_walls_in_bounds(store):
    """Bounding box queries include half the thickness."""
    store.save_walls([make_wall("a"), make_wall("far", ((5000.0, 5000.0), (6000.0, 5000.0)))])
    hits = store.find_walls_in_bounds(-10.0, 40.0, 10.0, 60.0)
    assert [w.id for w in hits.data] == ["a"]
    assert store.find_walls_in_bounds(-10.0, 60.0, 10.0, 80.0).data == []


def test_find_nearby_walls(store):
    """Radius queries measure from the wall face, not the bounding box."""
    store.save_walls([make_wall("a"), make_wall("far", ((5000.0, 5000.0), (6000.0, 5000.0)))])
    assert [w.id for w in store.find_nearby_walls(500.0, 100.0, 60.0).data] == ["a"]
    assert store.find_nearby_walls(500.0, 100.0, 40.0).data == []
    # inside the bounding box corner region but outside the outline
    assert store.find_nearby_walls(1060.0, 60.0, 10.0).data == []


def test_loaded_walls_are_copies():
    """Mutating a loaded wall never changes the stored record."""
    store = InMemoryWallStore()
    store.save_wall(make_wall("a"))
    loaded = store.load_wall("a").data
    loaded.thickness = 999.0
    assert store.load_wall("a").data.thickness == pytest.approx(100.0)
    assert len(store) == 1


def test_local_store_persists(tmp_path):
    """A second store on the same folder sees earlier writes."""
    LocalWallStore(tmp_path).save_wall(make_wall("a"))
    assert (tmp_path / "walls" / "a.json").exists()
    assert LocalWallStore(tmp_path).load_wall("a").data.id == "a"


def test_local_store_rejects_unsafe_ids(tmp_path):
    """Ids that could escape the store folder are refused."""
    result = LocalWallStore(tmp_path).save_wall(make_wall("../evil"))
    assert result.success is False
    assert "Unsafe storage key" in result.error
