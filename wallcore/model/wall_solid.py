"""
Wall Solid

A wall owns its baseline, its offset curves and its resolved solid
polygons. Intersections are referenced by id only.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, field_validator
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry

from wallcore.exceptions import DegenerateGeometryError
from wallcore.geometry.ops import polygon_parts
from wallcore.geometry.primitives import Curve
from wallcore.model.base import WallCoreModel, new_id, utcnow
from wallcore.model.enums import JoinType, WallType
from wallcore.model.quality import QualityMetrics


class SolidPolygon(WallCoreModel):
    """One polygon of a wall solid: outer ring plus holes, as [x, y] pairs."""

    outer: list[list[float]]
    holes: list[list[list[float]]] = Field(default_factory=list)

    @classmethod
    def from_shapely(cls, polygon: Polygon) -> "SolidPolygon":
        return cls(
            outer=[[float(x), float(y)] for x, y in polygon.exterior.coords],
            holes=[[[float(x), float(y)] for x, y in ring.coords] for ring in polygon.interiors],
        )

    def to_shapely(self) -> Polygon:
        return Polygon([tuple(pt) for pt in self.outer], [[tuple(pt) for pt in h] for h in self.holes])

    @property
    def vertex_count(self) -> int:
        # closing vertex is repeated in shapely rings
        return max(len(self.outer) - 1, 0) + sum(max(len(h) - 1, 0) for h in self.holes)


class HealingOperation(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("heal"))
    type: str
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True
    details: dict[str, Any] = Field(default_factory=dict)


def polygons_from_geometry(geometry: BaseGeometry | None) -> list[SolidPolygon]:
    return [SolidPolygon.from_shapely(p) for p in polygon_parts(geometry)]


class WallSolid(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("wall"))
    baseline: Curve
    thickness: float = Field(gt=0.0)
    wall_type: WallType = WallType.LAYOUT
    left_offset: Curve | None = None
    right_offset: Curve | None = None
    solid_geometry: list[SolidPolygon] = Field(default_factory=list)
    join_types: dict[int, JoinType] = Field(default_factory=dict)
    intersection_data: list[str] = Field(default_factory=list)
    healing_history: list[HealingOperation] = Field(default_factory=list)
    geometric_quality_metrics: QualityMetrics | None = None
    processing_time: float = Field(default=0.0, ge=0.0, description="Milliseconds")
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("baseline")
    @classmethod
    def _baseline_has_points(cls, value: Curve) -> Curve:
        if len(value.points) < 2:
            raise DegenerateGeometryError(
                "Wall baseline needs at least two points",
                operation="WallSolid",
                input_snapshot=value.coords(),
                suggested_fix="Draw the wall with a start and an end point",
            )
        return value

    @property
    def complexity(self) -> int:
        ring_vertices = sum(p.vertex_count for p in self.solid_geometry)
        return (
            len(self.baseline.points)
            + ring_vertices
            + 5 * len(self.intersection_data)
            + 2 * len(self.healing_history)
        )

    def to_polygon(self) -> BaseGeometry:
        polys = [p.to_shapely() for p in self.solid_geometry]
        if not polys:
            return Polygon()
        if len(polys) == 1:
            return polys[0]
        return MultiPolygon(polys)

    def with_solid(self, geometry: BaseGeometry) -> "WallSolid":
        return self.model_copy(update={"solid_geometry": polygons_from_geometry(geometry)})

    def add_healing_operation(self, operation: HealingOperation) -> "WallSolid":
        return self.model_copy(update={"healing_history": [*self.healing_history, operation]})

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["complexity"] = self.complexity
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "WallSolid":
        data = {k: v for k, v in payload.items() if k != "complexity"}
        return cls.model_validate(data)


__all__ = ["SolidPolygon", "HealingOperation", "WallSolid", "polygons_from_geometry"]
