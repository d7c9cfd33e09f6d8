"""
Geometric Primitives

Immutable points and curves. Curves derive length, bounding box, tangents
and curvature from their points; nothing derived is stored.
"""

from __future__ import annotations

import math
from typing import Iterable

from pydantic import ConfigDict, Field, field_validator
from shapely.geometry import LineString, Polygon

from wallcore.exceptions import DegenerateGeometryError
from wallcore.model.base import WallCoreModel, new_id
from wallcore.model.enums import CreationMethod, CurveType


class Point(WallCoreModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    id: str = Field(default_factory=lambda: new_id("pt"))
    tolerance: float = Field(default=1e-6, ge=0.0)
    creation_method: CreationMethod = CreationMethod.USER_INPUT
    accuracy: float = Field(default=1.0, ge=0.0, le=1.0)
    validated: bool = False

    @field_validator("x", "y")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise DegenerateGeometryError(
                "Point coordinate is not finite",
                operation="Point",
                input_snapshot=value,
                suggested_fix="Replace NaN/infinite coordinates before building geometry",
            )
        return value

    @classmethod
    def at(cls, x: float, y: float, **kwargs) -> "Point":
        return cls(x=float(x), y=float(y), **kwargs)

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)

    def distance_to(self, other: "Point") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)


class BoundingBox(WallCoreModel):
    model_config = ConfigDict(frozen=True)

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def intersects(self, other: "BoundingBox") -> bool:
        return not (
            self.max_x < other.min_x
            or other.max_x < self.min_x
            or self.max_y < other.min_y
            or other.max_y < self.min_y
        )

    def expanded(self, margin: float) -> "BoundingBox":
        return BoundingBox(
            min_x=self.min_x - margin,
            min_y=self.min_y - margin,
            max_x=self.max_x + margin,
            max_y=self.max_y + margin,
        )


class Curve(WallCoreModel):
    model_config = ConfigDict(frozen=True)

    points: list[Point]
    type: CurveType = CurveType.POLYLINE
    closed: bool = False
    id: str = Field(default_factory=lambda: new_id("crv"))

    @classmethod
    def from_coords(
        cls,
        coords: Iterable[tuple[float, float]],
        *,
        creation_method: CreationMethod = CreationMethod.USER_INPUT,
        closed: bool = False,
        **kwargs,
    ) -> "Curve":
        points = [Point.at(x, y, creation_method=creation_method) for x, y in coords]
        return cls(points=points, closed=closed, **kwargs)

    def coords(self) -> list[tuple[float, float]]:
        return [p.as_tuple() for p in self.points]

    @property
    def length(self) -> float:
        total = 0.0
        for a, b in zip(self.points, self.points[1:]):
            total += a.distance_to(b)
        if self.closed and len(self.points) > 2:
            total += self.points[-1].distance_to(self.points[0])
        return total

    @property
    def bounding_box(self) -> BoundingBox:
        if not self.points:
            return BoundingBox(min_x=0.0, min_y=0.0, max_x=0.0, max_y=0.0)
        xs = [p.x for p in self.points]
        ys = [p.y for p in self.points]
        return BoundingBox(min_x=min(xs), min_y=min(ys), max_x=max(xs), max_y=max(ys))

    def tangents(self) -> list[tuple[float, float]]:
        """Unit tangent at each point (central difference inside, one-sided at the ends)."""
        n = len(self.points)
        result: list[tuple[float, float]] = []
        for i in range(n):
            prev_pt = self.points[max(i - 1, 0)]
            next_pt = self.points[min(i + 1, n - 1)]
            dx, dy = next_pt.x - prev_pt.x, next_pt.y - prev_pt.y
            norm = math.hypot(dx, dy)
            result.append((dx / norm, dy / norm) if norm > 0 else (0.0, 0.0))
        return result

    def curvature(self) -> list[float]:
        """Discrete curvature per point; zero at both endpoints."""
        n = len(self.points)
        values = [0.0] * n
        for i in range(1, n - 1):
            p0, p1, p2 = self.points[i - 1], self.points[i], self.points[i + 1]
            v1 = (p1.x - p0.x, p1.y - p0.y)
            v2 = (p2.x - p1.x, p2.y - p1.y)
            m1 = math.hypot(*v1)
            m2 = math.hypot(*v2)
            if m1 > 0 and m2 > 0:
                values[i] = abs(v1[0] * v2[1] - v1[1] * v2[0]) / (m1 * m2)
        return values

    def max_curvature(self) -> float:
        values = self.curvature()
        return max(values) if values else 0.0

    def to_linestring(self) -> LineString:
        if len(self.points) < 2:
            raise DegenerateGeometryError(
                "Curve needs at least two points",
                operation="Curve.to_linestring",
                input_snapshot=self.coords(),
                suggested_fix="Provide a baseline with two or more distinct points",
            )
        return LineString(self.coords())

    def reversed(self) -> "Curve":
        return self.model_copy(update={"points": list(reversed(self.points))})


def polygon_to_rings(polygon: Polygon) -> dict[str, list[list[float]]]:
    """Encode a shapely polygon as outer ring plus holes."""
    return {
        "outer": [[float(x), float(y)] for x, y in polygon.exterior.coords],
        "holes": [[[float(x), float(y)] for x, y in ring.coords] for ring in polygon.interiors],
    }


def rings_to_polygon(rings: dict[str, list]) -> Polygon:
    return Polygon(
        [tuple(pt) for pt in rings.get("outer", [])],
        [[tuple(pt) for pt in hole] for hole in rings.get("holes", [])],
    )


__all__ = ["Point", "BoundingBox", "Curve", "polygon_to_rings", "rings_to_polygon"]
