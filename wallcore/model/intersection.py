"""Junction records produced by the intersection resolver."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator, model_validator

from wallcore.exceptions import DegenerateGeometryError
from wallcore.geometry.primitives import Point
from wallcore.model.base import WallCoreModel, new_id, utcnow
from wallcore.model.enums import JunctionType, ResolutionMethod
from wallcore.model.wall_solid import SolidPolygon

_APEX_JUNCTIONS = (JunctionType.T_JUNCTION, JunctionType.L_JUNCTION)
_PRIMARY_METHODS = (
    ResolutionMethod.MITER_APEX_CALCULATION,
    ResolutionMethod.CORNER_GEOMETRY_CALCULATION,
)


def intersection_cache_key(wall_ids: list[str], junction_type: JunctionType, point: Point) -> str:
    ordered = "_".join(sorted(wall_ids))
    return f"intersection_{ordered}_{junction_type.value}_{point.x:.6f}_{point.y:.6f}"


class Intersection(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("ix"))
    type: JunctionType
    participating_walls: list[str]
    intersection_point: Point
    miter_apex: Point | None = None
    offset_intersections: list[Point] = Field(default_factory=list)
    resolved_geometry: list[SolidPolygon] = Field(default_factory=list)
    resolution_method: ResolutionMethod
    geometric_accuracy: float = Field(default=1.0, ge=0.0, le=1.0)
    validated: bool = False
    processing_time: float = Field(default=0.0, ge=0.0)
    cached: bool = False
    cache_key: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    last_modified: datetime = Field(default_factory=utcnow)

    @field_validator("participating_walls")
    @classmethod
    def _at_least_two_walls(cls, value: list[str]) -> list[str]:
        if len(value) < 2:
            raise DegenerateGeometryError(
                "Intersection must involve at least 2 walls",
                operation="Intersection",
                input_snapshot=list(value),
                suggested_fix="Resolve junctions between two or more walls",
            )
        return value

    @model_validator(mode="after")
    def _derive_cache_key(self) -> "Intersection":
        if not self.cache_key:
            self.cache_key = intersection_cache_key(
                self.participating_walls, self.type, self.intersection_point
            )
        return self

    def validate_junction(self) -> dict[str, Any]:
        """Check the junction invariants without raising.

        Returns:
            Dict with ``isValid``, ``errors`` and ``warnings``.
        """
        errors: list[str] = []
        warnings: list[str] = []
        if len(self.participating_walls) < 2:
            errors.append("Intersection must involve at least 2 walls")
        if not 0.0 <= self.geometric_accuracy <= 1.0:
            errors.append("Geometric accuracy must be between 0 and 1")
        if self.type in _APEX_JUNCTIONS and self.miter_apex is None:
            warnings.append(f"{self.type.value} junction has no miter apex")
        if not self.resolved_geometry:
            warnings.append("Intersection has no resolved geometry")
        return {"isValid": not errors, "errors": errors, "warnings": warnings}

    def quality_score(self) -> float:
        score = self.geometric_accuracy
        if self.validated:
            score += 0.1
        if self.resolution_method in _PRIMARY_METHODS:
            score += 0.05
        elif self.resolution_method == ResolutionMethod.FALLBACK_APPROXIMATION:
            score -= 0.1
        if self.processing_time < 10.0:
            score += 0.02
        elif self.processing_time > 100.0:
            score -= 0.02
        return max(0.0, min(1.0, score))

    def involves(self, wall_id: str) -> bool:
        return wall_id in self.participating_walls


__all__ = ["Intersection", "intersection_cache_key"]
