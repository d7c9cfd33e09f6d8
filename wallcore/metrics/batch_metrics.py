"""
Batch Metrics Collection

Collects metrics while a batch of walls is switched between modes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from loguru import logger


@dataclass
class BatchMetrics:
    """
    Metrics collected during one mode-switch batch.

    Tracks per-stage timings (ms), conversion counts and warnings.
    """

    # Conversion statistics
    total_walls: int = 0
    converted_walls: int = 0
    failed_walls: int = 0

    # Junction statistics
    junctions_resolved: int = 0
    junctions_failed: int = 0
    junctions_from_cache: int = 0

    # Post-processing statistics
    walls_healed: int = 0
    walls_simplified: int = 0
    approximations_used: int = 0

    # Performance metrics (in milliseconds)
    time_offset: float = 0.0
    time_resolve: float = 0.0
    time_post_processing: float = 0.0
    time_total: float = 0.0

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings_by_category: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for serialization."""
        return {
            "walls": {
                "total": self.total_walls,
                "converted": self.converted_walls,
                "failed": self.failed_walls,
            },
            "junctions": {
                "resolved": self.junctions_resolved,
                "failed": self.junctions_failed,
                "fromCache": self.junctions_from_cache,
            },
            "postProcessing": {
                "healed": self.walls_healed,
                "simplified": self.walls_simplified,
                "approximations": self.approximations_used,
            },
            "performance": {
                "offset": self.time_offset,
                "resolve": self.time_resolve,
                "postProcessing": self.time_post_processing,
                "total": self.time_total,
            },
            "warnings": {
                "total": len(self.warnings),
                "byCategory": dict(self.warnings_by_category),
                "list": list(self.warnings),
            },
            "errors": {
                "total": len(self.errors),
                "list": list(self.errors),
            },
        }

    def add_warning(self, message: str, category: str = "general") -> None:
        """Add a warning message and update category count."""
        self.warnings.append(message)
        self.warnings_by_category[category] = self.warnings_by_category.get(category, 0) + 1

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def success_rate(self) -> float:
        if self.total_walls == 0:
            return 1.0
        return self.converted_walls / self.total_walls

    def log_summary(self, label: str) -> None:
        logger.info(
            "{}: {}/{} walls converted, {} junctions ({} cached, {} failed), {:.1f} ms",
            label,
            self.converted_walls,
            self.total_walls,
            self.junctions_resolved,
            self.junctions_from_cache,
            self.junctions_failed,
            self.time_total,
        )


__all__ = ["BatchMetrics"]
