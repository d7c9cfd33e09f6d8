"""
Shared store logic.

Concrete stores only implement payload access; versioning, batching and
spatial queries live here. Records are kept as camelCase JSON payloads so
callers never share mutable state with the store.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Iterable, Sequence

from loguru import logger
from shapely.geometry import LineString
from shapely.geometry import Point as ShapelyPoint

from wallcore.exceptions import WallCoreError
from wallcore.geometry.primitives import BoundingBox
from wallcore.model.base import utcnow
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.storage import BatchStoreResult, StoreResult

Payload = dict[str, Any]

# Failures reported on results instead of raised.
STORE_ERRORS = (OSError, ValueError, WallCoreError)


class BaseWallStore(ABC):
    def __init__(self) -> None:
        self._lock = threading.RLock()

    # Payload access

    @abstractmethod
    def _read_wall(self, wall_id: str) -> Payload | None: ...

    @abstractmethod
    def _write_wall(self, wall_id: str, payload: Payload) -> None: ...

    @abstractmethod
    def _remove_wall(self, wall_id: str) -> bool: ...

    @abstractmethod
    def _wall_ids(self) -> list[str]: ...

    @abstractmethod
    def _read_metrics(self, wall_id: str) -> Payload | None: ...

    @abstractmethod
    def _write_metrics(self, wall_id: str, payload: Payload) -> None: ...

    @abstractmethod
    def _remove_metrics(self, wall_id: str) -> None: ...

    @abstractmethod
    def _write_intersection(self, intersection_id: str, payload: Payload) -> None: ...

    @abstractmethod
    def _intersection_payloads(self) -> Iterable[Payload]: ...

    # Walls

    def save_wall(self, wall: UnifiedWallData) -> StoreResult:
        """Insert or replace a wall as-is."""
        try:
            with self._lock:
                self._write_wall(wall.id, wall.to_dict())
        except STORE_ERRORS as exc:
            return self._failed("save", wall.id, exc, version=wall.version)
        return StoreResult(success=True, data=wall.id, version=wall.version)

    def load_wall(self, wall_id: str) -> StoreResult:
        try:
            with self._lock:
                payload = self._read_wall(wall_id)
            if payload is None:
                return StoreResult(success=False, error=f"Wall with id {wall_id} not found")
            wall = UnifiedWallData.from_dict(payload)
        except STORE_ERRORS as exc:
            return self._failed("load", wall_id, exc)
        return StoreResult(success=True, data=wall, version=wall.version, timestamp=wall.updated_at)

    def update_wall(self, wall: UnifiedWallData) -> StoreResult:
        """
        Replace an existing wall and bump its stored version.

        The update is rejected when ``wall.version`` is older than the stored
        version, which means someone else saved in between.
        """
        try:
            with self._lock:
                current = self._read_wall(wall.id)
                if current is None:
                    return StoreResult(success=False, error=f"Wall with id {wall.id} not found")
                stored_version = int(current.get("version", 1))
                if wall.version < stored_version:
                    return StoreResult(
                        success=False,
                        error=f"Version conflict for wall {wall.id}: {wall.version} < {stored_version}",
                        version=stored_version,
                    )
                updated = wall.model_copy(update={"version": stored_version + 1, "updated_at": utcnow()})
                self._write_wall(wall.id, updated.to_dict())
        except STORE_ERRORS as exc:
            return self._failed("update", wall.id, exc, version=wall.version)
        return StoreResult(success=True, data=wall.id, version=updated.version, timestamp=updated.updated_at)

    def delete_wall(self, wall_id: str) -> StoreResult:
        try:
            with self._lock:
                removed = self._remove_wall(wall_id)
                self._remove_metrics(wall_id)
        except STORE_ERRORS as exc:
            return self._failed("delete", wall_id, exc)
        if not removed:
            return StoreResult(success=False, data=wall_id, error=f"Wall with id {wall_id} not found")
        return StoreResult(success=True, data=wall_id)

    # Batches

    def save_walls(self, walls: Sequence[UnifiedWallData]) -> BatchStoreResult:
        return self._batch(walls, lambda w: self.save_wall(w), lambda w: w.id)

    def load_walls(self, wall_ids: Sequence[str]) -> StoreResult:
        found: list[UnifiedWallData] = []
        missing: list[str] = []
        for wall_id in wall_ids:
            result = self.load_wall(wall_id)
            if result.success:
                found.append(result.data)
            else:
                missing.append(wall_id)
        error = f"Missing walls: {', '.join(missing)}" if missing else None
        return StoreResult(success=not missing, data=found, error=error)

    def delete_walls(self, wall_ids: Sequence[str]) -> BatchStoreResult:
        return self._batch(wall_ids, self.delete_wall, lambda wall_id: wall_id)

    # Quality metrics and intersections

    def save_quality_metrics(self, wall_id: str, metrics: QualityMetrics) -> StoreResult:
        try:
            with self._lock:
                self._write_metrics(wall_id, metrics.to_dict())
        except STORE_ERRORS as exc:
            return self._failed("save metrics", wall_id, exc)
        return StoreResult(success=True, data=wall_id)

    def load_quality_metrics(self, wall_id: str) -> StoreResult:
        try:
            with self._lock:
                payload = self._read_metrics(wall_id)
            if payload is None:
                return StoreResult(success=False, error=f"No quality metrics for wall {wall_id}")
            metrics = QualityMetrics.from_dict(payload)
        except STORE_ERRORS as exc:
            return self._failed("load metrics", wall_id, exc)
        return StoreResult(success=True, data=metrics, timestamp=metrics.calculated_at)

    def save_intersection(self, intersections: Sequence[Intersection]) -> BatchStoreResult:
        def save(intersection: Intersection) -> StoreResult:
            with self._lock:
                self._write_intersection(intersection.id, intersection.to_dict())
            return StoreResult(success=True, data=intersection.id)

        return self._batch(intersections, save, lambda ix: ix.id)

    def load_intersection(self, wall_ids: Sequence[str]) -> StoreResult:
        """Intersections involving any of ``wall_ids``."""
        wanted = set(wall_ids)
        try:
            with self._lock:
                payloads = list(self._intersection_payloads())
            data = [
                Intersection.from_dict(p)
                for p in payloads
                if wanted.intersection(p.get("participatingWalls", []))
            ]
        except STORE_ERRORS as exc:
            return self._failed("load intersections", ",".join(sorted(wanted)), exc)
        return StoreResult(success=True, data=data)

    # Spatial queries

    def find_walls_in_bounds(self, min_x: float, min_y: float, max_x: float, max_y: float) -> StoreResult:
        query = BoundingBox(min_x=min_x, min_y=min_y, max_x=max_x, max_y=max_y)
        return self._query(lambda wall: wall_bounds(wall).intersects(query))

    def find_nearby_walls(self, center_x: float, center_y: float, radius: float) -> StoreResult:
        """Walls whose outline comes within ``radius`` of the center."""
        query = BoundingBox(
            min_x=center_x - radius,
            min_y=center_y - radius,
            max_x=center_x + radius,
            max_y=center_y + radius,
        )
        center = ShapelyPoint(center_x, center_y)

        def near(wall: UnifiedWallData) -> bool:
            if not wall_bounds(wall).intersects(query):
                return False
            distance = LineString(wall.baseline.coords()).distance(center)
            return distance - wall.thickness / 2.0 <= radius

        return self._query(near)

    # Helpers

    def _query(self, predicate) -> StoreResult:
        with self._lock:
            ids = self._wall_ids()
        walls: list[UnifiedWallData] = []
        for wall_id in ids:
            result = self.load_wall(wall_id)
            if not result.success:
                logger.warning("Skipping unreadable wall {}: {}", wall_id, result.error)
                continue
            if predicate(result.data):
                walls.append(result.data)
        return StoreResult(success=True, data=walls)

    @staticmethod
    def _batch(items: Sequence[Any], op, key) -> BatchStoreResult:
        start = time.perf_counter()
        result = BatchStoreResult(success=True)
        for item in items:
            try:
                outcome = op(item)
            except STORE_ERRORS as exc:
                outcome = StoreResult(success=False, error=str(exc))
            if outcome.success:
                result.processed_count += 1
            else:
                result.failed_count += 1
                result.errors.append(f"{key(item)}: {outcome.error}")
        result.success = result.failed_count == 0
        result.processing_time = (time.perf_counter() - start) * 1000.0
        return result

    @staticmethod
    def _failed(action: str, key: str, exc: Exception, version: int | None = None) -> StoreResult:
        logger.warning("Store {} failed for {}: {}", action, key, exc)
        return StoreResult(success=False, error=str(exc), version=version)


def wall_bounds(wall: UnifiedWallData) -> BoundingBox:
    """Baseline bounds grown by half the thickness, merged with the BIM solid bounds."""
    box = wall.baseline.bounding_box.expanded(wall.thickness / 2.0)
    if wall.bim_geometry is not None and wall.bim_geometry.wall_solid.solid_geometry:
        min_x, min_y, max_x, max_y = wall.bim_geometry.wall_solid.to_polygon().bounds
        box = BoundingBox(
            min_x=min(box.min_x, min_x),
            min_y=min(box.min_y, min_y),
            max_x=max(box.max_x, max_x),
            max_y=max(box.max_y, max_y),
        )
    return box


__all__ = ["BaseWallStore", "wall_bounds", "STORE_ERRORS"]
