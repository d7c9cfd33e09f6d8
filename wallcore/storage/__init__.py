"""Wall persistence abstraction (in-memory or local JSON files)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol, Sequence

from wallcore.model.base import utcnow
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import UnifiedWallData


@dataclass
class StoreResult:
    success: bool
    data: Any = None
    error: str | None = None
    version: int | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "error": self.error,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class BatchStoreResult:
    success: bool
    processed_count: int = 0
    failed_count: int = 0
    errors: list[str] = field(default_factory=list)
    processing_time: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "processedCount": self.processed_count,
            "failedCount": self.failed_count,
            "errors": list(self.errors),
            "processingTime": self.processing_time,
        }


class WallStore(Protocol):
    def save_wall(self, wall: UnifiedWallData) -> StoreResult:  # data is the wall id
        ...

    def load_wall(self, wall_id: str) -> StoreResult:  # data is the wall
        ...

    def update_wall(self, wall: UnifiedWallData) -> StoreResult:
        ...

    def delete_wall(self, wall_id: str) -> StoreResult:
        ...

    def save_walls(self, walls: Sequence[UnifiedWallData]) -> BatchStoreResult:
        ...

    def load_walls(self, wall_ids: Sequence[str]) -> StoreResult:  # data is a list of walls
        ...

    def delete_walls(self, wall_ids: Sequence[str]) -> BatchStoreResult:
        ...

    def save_quality_metrics(self, wall_id: str, metrics: QualityMetrics) -> StoreResult:
        ...

    def load_quality_metrics(self, wall_id: str) -> StoreResult:
        ...

    def save_intersection(self, intersections: Sequence[Intersection]) -> BatchStoreResult:
        ...

    def load_intersection(self, wall_ids: Sequence[str]) -> StoreResult:
        ...

    def find_walls_in_bounds(self, min_x: float, min_y: float, max_x: float, max_y: float) -> StoreResult:
        ...

    def find_nearby_walls(self, center_x: float, center_y: float, radius: float) -> StoreResult:
        ...


__all__ = ["StoreResult", "BatchStoreResult", "WallStore"]
