"""Per-wall quality metrics and the issues found while computing them."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from wallcore.exceptions import ErrorSeverity
from wallcore.geometry.primitives import Point
from wallcore.model.base import WallCoreModel, new_id, utcnow
from wallcore.model.enums import IssueType


class QualityIssue(WallCoreModel):
    id: str = Field(default_factory=lambda: new_id("issue"))
    type: IssueType
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    description: str = ""
    location: Point | None = None
    suggested_fix: str = ""
    auto_fixable: bool = False


class QualityMetrics(WallCoreModel):
    geometric_accuracy: float = Field(default=1.0, ge=0.0, le=1.0)
    topological_consistency: float = Field(default=1.0, ge=0.0, le=1.0)
    manufacturability: float = Field(default=1.0, ge=0.0, le=1.0)
    architectural_compliance: float = Field(default=1.0, ge=0.0, le=1.0)

    sliver_face_count: int = Field(default=0, ge=0)
    micro_gap_count: int = Field(default=0, ge=0)
    self_intersection_count: int = Field(default=0, ge=0)
    degenerate_element_count: int = Field(default=0, ge=0)

    complexity: float = Field(default=0.0, ge=0.0)
    processing_efficiency: float = Field(default=1.0, ge=0.0, le=1.0)
    memory_usage: int = Field(default=0, ge=0, description="Estimated bytes")

    calculated_at: datetime = Field(default_factory=utcnow)
    calculation_method: str = "shapely_analysis"
    tolerance_used: float = Field(default=0.0, ge=0.0)

    issues: list[QualityIssue] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)

    @property
    def defect_count(self) -> int:
        return (
            self.sliver_face_count
            + self.micro_gap_count
            + self.self_intersection_count
            + self.degenerate_element_count
        )

    def overall_score(self) -> float:
        """Unweighted mean of the four quality scores."""
        return (
            self.geometric_accuracy
            + self.topological_consistency
            + self.manufacturability
            + self.architectural_compliance
        ) / 4.0


__all__ = ["QualityIssue", "QualityMetrics"]
