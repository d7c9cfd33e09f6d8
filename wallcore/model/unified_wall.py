"""
Unified Wall Data

One wall in both representations: the lightweight "basic" segments, nodes
and polygons, and the optional "BIM" solid with offsets, intersections and
quality. ``last_modified_mode`` names the authoritative side; the other is
stale while ``requires_sync`` is set.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import Field, model_validator

from wallcore.geometry import contract
from wallcore.geometry.primitives import Curve, Point
from wallcore.model.base import WallCoreModel, new_id, utcnow
from wallcore.model.enums import GeometryMode, WallType
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.wall_solid import WallSolid


class BasicSegment(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("seg"))
    start: Point
    end: Point
    wall_id: str = ""

    @property
    def length(self) -> float:
        return self.start.distance_to(self.end)


class BasicNode(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("node"))
    x: float
    y: float
    connected_segments: list[str] = Field(default_factory=list)
    type: str = "endpoint"


class BasicPolygon(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("poly"))
    points: list[Point]
    area: float = 0.0
    perimeter: float = 0.0


class BasicGeometry(WallCoreModel):
    segments: list[BasicSegment] = Field(default_factory=list)
    nodes: list[BasicNode] = Field(default_factory=list)
    polygons: list[BasicPolygon] = Field(default_factory=list)


class OffsetCurves(WallCoreModel):
    left: Curve
    right: Curve


class BIMGeometry(WallCoreModel):
    wall_solid: WallSolid
    offset_curves: OffsetCurves | None = None
    intersection_data: list[Intersection] = Field(default_factory=list)
    quality_metrics: QualityMetrics | None = None


class ProcessingStep(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("step"))
    mode: GeometryMode
    operation: str
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True
    details: dict[str, Any] = Field(default_factory=dict)


class ModeValidationReport(WallCoreModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    quality_score: float = 0.0
    recommendations: list[str] = Field(default_factory=list)


class ModeCompatibility(WallCoreModel):
    can_switch_to_bim: bool
    can_switch_to_basic: bool
    potential_data_loss: list[str] = Field(default_factory=list)
    estimated_processing_time: float = 0.0


class UnifiedWallData(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("wall"))
    type: WallType = WallType.LAYOUT
    thickness: float = Field(gt=0.0)
    visible: bool = True
    baseline: Curve
    basic_geometry: BasicGeometry = Field(default_factory=BasicGeometry)
    bim_geometry: BIMGeometry | None = None

    is_basic_mode_valid: bool = True
    is_bim_mode_valid: bool = False
    last_modified_mode: GeometryMode = GeometryMode.BASIC
    requires_sync: bool = False

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = Field(default=1, ge=1)
    project_id: str | None = None
    layer_id: str | None = None
    processing_history: list[ProcessingStep] = Field(default_factory=list)

    @model_validator(mode="after")
    def _cap_history(self) -> "UnifiedWallData":
        if len(self.processing_history) > contract.PROCESSING_HISTORY_LIMIT:
            self.processing_history = self.processing_history[-contract.PROCESSING_HISTORY_LIMIT:]
        return self

    def add_processing_step(
        self,
        mode: GeometryMode,
        operation: str,
        *,
        success: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.processing_history.append(
            ProcessingStep(mode=mode, operation=operation, success=success, details=details or {})
        )
        if len(self.processing_history) > contract.PROCESSING_HISTORY_LIMIT:
            del self.processing_history[: -contract.PROCESSING_HISTORY_LIMIT]

    def touch(self, mode: GeometryMode) -> None:
        """Record an edit made in ``mode``; the other representation becomes stale."""
        self.last_modified_mode = mode
        self.updated_at = utcnow()
        self.version += 1
        if mode == GeometryMode.BASIC:
            if self.bim_geometry is not None:
                self.requires_sync = True
                self.is_bim_mode_valid = False
        else:
            self.requires_sync = True
            self.is_basic_mode_valid = False

    def validate_basic_mode(self) -> ModeValidationReport:
        errors: list[str] = []
        warnings: list[str] = []
        recommendations: list[str] = []
        basic = self.basic_geometry

        if not basic.segments:
            errors.append("Basic geometry has no segments")
        for segment in basic.segments:
            if segment.length <= contract.MIN_SEGMENT_LENGTH:
                errors.append(f"Segment {segment.id} has zero length")
        if not basic.nodes:
            warnings.append("Basic geometry has no nodes")
        for polygon in basic.polygons:
            if len(polygon.points) < 3:
                errors.append(f"Polygon {polygon.id} has fewer than 3 points")
            elif polygon.area <= 0.0:
                warnings.append(f"Polygon {polygon.id} has no area")
        if not basic.polygons:
            recommendations.append("Generate basic polygons for display")

        score = 1.0 - 0.25 * len(errors) - 0.05 * len(warnings)
        return ModeValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            quality_score=max(0.0, min(1.0, score)),
            recommendations=recommendations,
        )

    def validate_bim_mode(self) -> ModeValidationReport:
        if self.bim_geometry is None:
            return ModeValidationReport(
                is_valid=False,
                errors=["BIM geometry has not been computed"],
                recommendations=["Switch the wall to BIM mode"],
            )

        errors: list[str] = []
        warnings: list[str] = []
        recommendations: list[str] = []
        bim = self.bim_geometry
        solid = bim.wall_solid

        if not solid.solid_geometry:
            errors.append("Wall solid has no polygons")
        if abs(solid.thickness - self.thickness) > contract.DOCUMENT_PRECISION:
            errors.append("Wall solid thickness differs from wall thickness")
        if bim.offset_curves is None:
            warnings.append("Offset curves are missing")
        for intersection in bim.intersection_data:
            report = intersection.validate_junction()
            errors.extend(report["errors"])
            warnings.extend(report["warnings"])

        score = 0.8
        if bim.quality_metrics is not None:
            score = bim.quality_metrics.overall_score()
            recommendations.extend(bim.quality_metrics.recommendations)
            if bim.quality_metrics.defect_count:
                warnings.append(f"{bim.quality_metrics.defect_count} geometric defects detected")
        score -= 0.25 * len(errors)
        return ModeValidationReport(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            quality_score=max(0.0, min(1.0, score)),
            recommendations=recommendations,
        )

    def mode_compatibility(self) -> ModeCompatibility:
        basic_report = self.validate_basic_mode()
        data_loss: list[str] = []
        if self.bim_geometry is not None:
            if self.bim_geometry.intersection_data:
                data_loss.append("Intersection resolution data is not kept in basic mode")
            if self.bim_geometry.quality_metrics is not None:
                data_loss.append("Quality metrics are not kept in basic mode")
            if self.bim_geometry.wall_solid.healing_history:
                data_loss.append("Healing history is not kept in basic mode")

        to_bim_estimate = (
            contract.SEGMENT_TO_BIM_ESTIMATE_MS * len(self.basic_geometry.segments)
            + contract.POLYGON_TO_BIM_ESTIMATE_MS * len(self.basic_geometry.polygons)
        )
        estimate = to_bim_estimate if self.bim_geometry is None else contract.BIM_TO_BASIC_ESTIMATE_MS
        return ModeCompatibility(
            can_switch_to_bim=basic_report.is_valid or len(self.baseline.points) >= 2,
            can_switch_to_basic=self.bim_geometry is not None or basic_report.is_valid,
            potential_data_loss=data_loss,
            estimated_processing_time=estimate,
        )

    def sync_status(self) -> dict[str, Any]:
        return {
            "requiresSync": self.requires_sync,
            "lastModifiedMode": self.last_modified_mode.value,
            "isBasicModeValid": self.is_basic_mode_valid,
            "isBIMModeValid": self.is_bim_mode_valid,
            "hasBIMGeometry": self.bim_geometry is not None,
            "version": self.version,
            "updatedAt": self.updated_at.isoformat(),
        }


__all__ = [
    "BasicSegment",
    "BasicNode",
    "BasicPolygon",
    "BasicGeometry",
    "OffsetCurves",
    "BIMGeometry",
    "ProcessingStep",
    "ModeValidationReport",
    "ModeCompatibility",
    "UnifiedWallData",
]
