"""Tests for the wall registry."""

import threading

import pytest

from wallcore.exceptions import StorageError, WallNotFoundError
from wallcore.geometry.primitives import Curve
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.modes.registry import WallRegistry


def make_wall(wall_id):
    return UnifiedWallData(id=wall_id, thickness=100.0, baseline=Curve.from_coords([(0.0, 0.0), (1000.0, 0.0)]))


def test_register_and_lookup():
    """Registered walls are found by id."""
    registry = WallRegistry()
    wall = registry.register(make_wall("b"))
    registry.register(make_wall("a"))
    assert registry.get("b") is wall
    assert registry.require("b") is wall
    assert registry.ids() == ["a", "b"]
    assert "a" in registry
    assert len(registry) == 2


def test_require_unknown_wall():
    """Unknown ids raise a storage error carrying the id."""
    with pytest.raises(WallNotFoundError) as excinfo:
        WallRegistry().require("ghost")
    assert isinstance(excinfo.value, StorageError)
    assert excinfo.value.details == {"wallId": "ghost"}


def test_update_and_remove():
    """Updates run under the wall lock; removal reports whether anything went."""
    registry = WallRegistry()
    registry.register(make_wall("a"))
    wall = registry.update("a", lambda w: setattr(w, "thickness", 250.0))
    assert wall.thickness == pytest.approx(250.0)
    assert registry.remove("a") is True
    assert registry.remove("a") is False
    assert registry.get("a") is None


def test_concurrent_updates_are_serialized():
    """Read-modify-write updates from many threads lose nothing."""
    registry = WallRegistry()
    registry.register(make_wall("a"))

    def bump(wall):
        wall.version = wall.version + 1

    threads = [threading.Thread(target=lambda: [registry.update("a", bump) for _ in range(50)]) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert registry.require("a").version == 1 + 200


def test_lock_table_is_pruned():
    """Per-wall locks are released once no thread holds or waits on them."""
    registry = WallRegistry()
    registry.register(make_wall("a"))
    registry.update("a", lambda w: setattr(w, "thickness", 150.0))
    with registry.lock("a"):
        with registry.lock("a"):
            assert list(registry._locks) == ["a"]
        assert list(registry._locks) == ["a"]
    registry.remove("a")
    assert registry._locks == {}
