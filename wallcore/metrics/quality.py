"""
Quality metrics calculator.

Inspects a wall solid with shapely and derives the four quality scores,
the defect counts and the issue list stored on ``WallSolid``.
"""

from __future__ import annotations

import math
from itertools import combinations

from shapely.geometry import Polygon
from shapely.validation import explain_validity

from wallcore.exceptions import ErrorSeverity
from wallcore.geometry import contract
from wallcore.geometry.ops import polygon_parts, turn_angle
from wallcore.geometry.primitives import Point
from wallcore.model.enums import IssueType
from wallcore.model.quality import QualityIssue, QualityMetrics
from wallcore.model.wall_solid import WallSolid
from wallcore.settings import HealingSettings
from wallcore.tolerance.manager import ToleranceManager

# Interior angles sharper than this are hard to build.
SHARP_INTERIOR_ANGLE_DEG = 15.0
# Thickness outside [default / ratio, default * ratio] is flagged for the wall type.
THICKNESS_RATIO_LIMIT = 4.0


class QualityMetricsCalculator:
    """Derives ``QualityMetrics`` for a wall."""

    def __init__(
        self,
        healing_settings: HealingSettings | None = None,
        tolerance_manager: ToleranceManager | None = None,
    ):
        self.healing_settings = healing_settings or HealingSettings()
        self.tolerance_manager = tolerance_manager or ToleranceManager()

    def calculate(self, wall: WallSolid) -> QualityMetrics:
        tolerance = self.tolerance_manager.boolean_tolerance(wall.thickness, wall.complexity)
        issues: list[QualityIssue] = []
        parts = polygon_parts(wall.to_polygon())

        slivers = self._slivers(parts, issues)
        gaps = self._micro_gaps(parts, issues)
        self_intersections = self._self_intersections(parts, issues)
        degenerate = self._degenerate(wall, parts, tolerance, issues)
        sharp = self._sharp_corners(parts, issues)

        accuracy = self._geometric_accuracy(wall, parts)
        topology = 1.0 - 0.25 * self_intersections - 0.1 * max(len(parts) - 1, 0) - 0.05 * gaps
        manufacturability = 1.0 - 0.05 * sharp - 0.1 * slivers
        compliance = self._architectural_compliance(wall, issues)

        metrics = QualityMetrics(
            geometric_accuracy=_clamp(accuracy),
            topological_consistency=_clamp(topology),
            manufacturability=_clamp(manufacturability),
            architectural_compliance=_clamp(compliance),
            sliver_face_count=slivers,
            micro_gap_count=gaps,
            self_intersection_count=self_intersections,
            degenerate_element_count=degenerate,
            complexity=float(wall.complexity),
            processing_efficiency=_clamp(100.0 / (100.0 + wall.processing_time)),
            memory_usage=contract.WALL_ENTRY_BASE_BYTES + contract.WALL_ENTRY_POINT_BYTES * len(wall.baseline.points),
            tolerance_used=tolerance,
            issues=issues,
        )
        metrics.recommendations = _recommendations(metrics)
        return metrics

    def _slivers(self, parts: list[Polygon], issues: list[QualityIssue]) -> int:
        threshold = self.healing_settings.sliver_face_threshold
        count = 0
        for part in parts:
            faces = [part] + [Polygon(h) for h in part.interiors]
            for face in faces:
                if face.length > 0 and face.area / face.length < threshold:
                    count += 1
                    issues.append(
                        QualityIssue(
                            type=IssueType.SLIVER_FACE,
                            severity=ErrorSeverity.MEDIUM,
                            description=f"Sliver face with area {face.area:.3g}",
                            location=_point(face),
                            suggested_fix="Run shape healing",
                            auto_fixable=True,
                        )
                    )
        return count

    def _micro_gaps(self, parts: list[Polygon], issues: list[QualityIssue]) -> int:
        gap = self.healing_settings.micro_gap_threshold
        count = 0
        for a, b in combinations(parts, 2):
            distance = a.distance(b)
            if 0.0 < distance <= gap:
                count += 1
                issues.append(
                    QualityIssue(
                        type=IssueType.MICRO_GAP,
                        severity=ErrorSeverity.LOW,
                        description=f"Micro gap of {distance:.3g} between solid parts",
                        location=_point(a),
                        suggested_fix="Run shape healing",
                        auto_fixable=True,
                    )
                )
        return count

    @staticmethod
    def _self_intersections(parts: list[Polygon], issues: list[QualityIssue]) -> int:
        count = 0
        for part in parts:
            if part.is_valid:
                continue
            reason = explain_validity(part)
            count += 1
            issues.append(
                QualityIssue(
                    type=IssueType.SELF_INTERSECTION if "Self-intersection" in reason else IssueType.TOPOLOGICAL_ERROR,
                    severity=ErrorSeverity.HIGH,
                    description=reason,
                    location=_point(part),
                    suggested_fix="Repair the polygon with buffer(0)",
                    auto_fixable=True,
                )
            )
        return count

    @staticmethod
    def _degenerate(wall: WallSolid, parts: list[Polygon], tolerance: float, issues: list[QualityIssue]) -> int:
        count = 0
        if not parts:
            count += 1
            issues.append(
                QualityIssue(
                    type=IssueType.DEGENERATE_ELEMENT,
                    severity=ErrorSeverity.HIGH,
                    description="Wall has no solid geometry",
                    suggested_fix="Offset the baseline to build the solid",
                )
            )
        coords = wall.baseline.coords()
        for a, b in zip(coords, coords[1:]):
            if math.hypot(b[0] - a[0], b[1] - a[1]) <= tolerance:
                count += 1
                issues.append(
                    QualityIssue(
                        type=IssueType.DEGENERATE_ELEMENT,
                        severity=ErrorSeverity.MEDIUM,
                        description="Baseline segment shorter than tolerance",
                        location=Point.at(*a),
                        suggested_fix="Merge the duplicate baseline vertices",
                        auto_fixable=True,
                    )
                )
        return count

    @staticmethod
    def _sharp_corners(parts: list[Polygon], issues: list[QualityIssue]) -> int:
        count = 0
        for part in parts:
            ring = list(part.exterior.coords)[:-1]
            n = len(ring)
            for i in range(n):
                interior = 180.0 - turn_angle(ring[i - 1], ring[i], ring[(i + 1) % n])
                if interior < SHARP_INTERIOR_ANGLE_DEG:
                    count += 1
                    issues.append(
                        QualityIssue(
                            type=IssueType.GEOMETRIC_INCONSISTENCY,
                            severity=ErrorSeverity.WARNING,
                            description=f"Sharp corner of {interior:.1f} deg",
                            location=Point.at(*ring[i]),
                            suggested_fix="Use a bevel join at this vertex",
                        )
                    )
        return count

    @staticmethod
    def _geometric_accuracy(wall: WallSolid, parts: list[Polygon]) -> float:
        if not parts:
            return 0.0
        expected = wall.baseline.length * wall.thickness
        if expected <= 0.0:
            return 0.0
        area = sum(p.area for p in parts)
        return 1.0 - abs(area - expected) / expected

    @staticmethod
    def _architectural_compliance(wall: WallSolid, issues: list[QualityIssue]) -> float:
        nominal = contract.DEFAULT_WALL_THICKNESS.get(wall.wall_type.value)
        if nominal is None:
            return 1.0
        ratio = wall.thickness / nominal
        if 1.0 / THICKNESS_RATIO_LIMIT <= ratio <= THICKNESS_RATIO_LIMIT:
            return 1.0
        issues.append(
            QualityIssue(
                type=IssueType.TOLERANCE_VIOLATION,
                severity=ErrorSeverity.WARNING,
                description=f"Thickness {wall.thickness:g} is unusual for a {wall.wall_type.value} wall",
                suggested_fix=f"Check the thickness; {nominal:g} is typical",
            )
        )
        return 0.5


def _recommendations(metrics: QualityMetrics) -> list[str]:
    recs: list[str] = []
    if metrics.sliver_face_count or metrics.micro_gap_count:
        recs.append("Run shape healing to remove slivers and close micro gaps")
    if metrics.self_intersection_count:
        recs.append("Repair self-intersecting rings before exporting")
    if metrics.degenerate_element_count:
        recs.append("Remove degenerate baseline segments")
    if metrics.geometric_accuracy < contract.ACCURACY_FLOOR:
        recs.append("Solid area deviates from baseline length times thickness; re-run the offset")
    return recs


def _point(polygon: Polygon) -> Point | None:
    if polygon.is_empty:
        return None
    rep = polygon.representative_point() if polygon.is_valid else polygon.centroid
    if rep.is_empty:
        return None
    return Point.at(rep.x, rep.y)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


__all__ = ["QualityMetricsCalculator"]
