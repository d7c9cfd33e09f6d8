"""
Adaptive Tolerance Manager

Context-sensitive epsilon computation. Every tolerance is a pure function of
thickness, local angle, curvature and the configured document precision;
results are memoized per instance.
"""

from __future__ import annotations

import math
import threading
from collections import OrderedDict

from loguru import logger

from wallcore.geometry import contract
from wallcore.model.enums import ToleranceContext
from wallcore.settings import ToleranceSettings


class ToleranceManager:
    """Computes tolerances for vertex merging, offsetting, booleans and healing."""

    def __init__(self, settings: ToleranceSettings | None = None):
        self.settings = settings or ToleranceSettings()
        self._memo: OrderedDict[tuple, float] = OrderedDict()
        self._memo_lock = threading.Lock()

    # Public API

    def vertex_merge_tolerance(self, thickness: float, local_angle: float = 90.0) -> float:
        return self.calculate_tolerance(thickness, local_angle=local_angle, context=ToleranceContext.VERTEX_MERGE)

    def offset_tolerance(self, thickness: float, curvature: float = 0.0) -> float:
        return self.calculate_tolerance(
            thickness,
            local_angle=90.0,
            context=ToleranceContext.OFFSET_OPERATION,
            curvature=curvature,
        )

    def boolean_tolerance(self, thickness: float, complexity: int | None = None) -> float:
        return self.calculate_tolerance(
            thickness,
            local_angle=90.0,
            context=ToleranceContext.BOOLEAN_OPERATION,
            complexity=complexity,
        )

    def healing_tolerance(self, thickness: float) -> float:
        return self.calculate_tolerance(thickness, local_angle=90.0, context=ToleranceContext.SHAPE_HEALING)

    def calculate_tolerance(
        self,
        thickness: float,
        *,
        local_angle: float = 90.0,
        context: ToleranceContext = ToleranceContext.OFFSET_OPERATION,
        document_precision: float | None = None,
        curvature: float | None = None,
        complexity: int | None = None,
    ) -> float:
        """
        Compute a tolerance for one geometric context.

        The base document precision is scaled by context, local angle,
        thickness, curvature and complexity, then clamped to the bounds for
        this thickness.

        Args:
            thickness: Wall thickness in mm (non-positive values use the reference thickness)
            local_angle: Local turning angle in degrees
            context: Geometric operation the tolerance is for
            document_precision: Override for the configured precision
            curvature: Local discrete curvature (0 for straight segments)
            complexity: Vertex/element count of the operation

        Returns:
            A finite tolerance strictly greater than zero
        """
        precision = document_precision or self.settings.document_precision
        if not math.isfinite(thickness) or thickness <= 0.0:
            thickness = contract.REFERENCE_THICKNESS_MM
        angle = abs(local_angle) if math.isfinite(local_angle) else 90.0

        key = (
            round(thickness, 6),
            round(angle, 4),
            context.value,
            precision,
            round(curvature, 9) if curvature else 0.0,
            complexity or 0,
        )
        with self._memo_lock:
            cached = self._memo.get(key)
            if cached is not None:
                self._memo.move_to_end(key)
                return cached

        tolerance = precision
        tolerance *= self.context_scale(context)
        tolerance *= self.angle_scale(angle)
        tolerance *= self.thickness_scale(thickness)
        if curvature and curvature > 0.0:
            tolerance *= 1.0 + math.log10(1.0 + curvature * 1000.0)
        if complexity and complexity > 1:
            tolerance *= 1.0 + math.log10(complexity)

        low, high = self.bounds(thickness, precision)
        result = min(max(tolerance, low), high)

        if self.settings.memo_size:
            with self._memo_lock:
                self._memo[key] = result
                while len(self._memo) > self.settings.memo_size:
                    self._memo.popitem(last=False)
        return result

    def bounds(self, thickness: float, document_precision: float | None = None) -> tuple[float, float]:
        precision = document_precision or self.settings.document_precision
        low = max(self.settings.base_tolerance, precision * contract.TOLERANCE_FLOOR_FACTOR)
        high = min(precision * contract.TOLERANCE_CEILING_FACTOR, thickness * contract.TOLERANCE_THICKNESS_FRACTION)
        return low, max(high, low)

    def validate_tolerance(
        self,
        tolerance: float,
        thickness: float,
        context: ToleranceContext = ToleranceContext.OFFSET_OPERATION,
    ) -> dict[str, object]:
        """Check a caller-supplied tolerance against the bounds for ``thickness``."""
        if not math.isfinite(tolerance):
            return {"isValid": False, "reason": "Tolerance is not finite"}
        if tolerance <= 0.0:
            return {"isValid": False, "reason": "Tolerance must be positive"}
        low, high = self.bounds(thickness)
        if tolerance < low:
            return {"isValid": False, "reason": f"Tolerance {tolerance:g} below minimum {low:g} for {context.value}"}
        if tolerance > high:
            return {"isValid": False, "reason": f"Tolerance {tolerance:g} above maximum {high:g} for {context.value}"}
        return {"isValid": True}

    def adjust_tolerance_for_failure(self, tolerance: float, thickness: float, failure_count: int) -> float:
        """Loosen a tolerance after repeated failures, never past the upper bound."""
        _, high = self.bounds(thickness)
        adjusted = min(tolerance * (2.0 ** max(failure_count, 0)), high)
        if adjusted != tolerance:
            logger.debug("Tolerance relaxed from {:g} to {:g} after {} failures", tolerance, adjusted, failure_count)
        return adjusted

    def clear_memo(self) -> None:
        with self._memo_lock:
            self._memo.clear()

    # Scale factors

    @staticmethod
    def context_scale(context: ToleranceContext) -> float:
        return contract.CONTEXT_SCALE[context.value]

    @staticmethod
    def angle_scale(angle_deg: float) -> float:
        for bound, factor in contract.ANGLE_SCALE_STEPS:
            if angle_deg < bound:
                return factor
        return contract.ANGLE_SCALE_OBTUSE

    @staticmethod
    def thickness_scale(thickness: float) -> float:
        scale = math.sqrt(thickness / contract.REFERENCE_THICKNESS_MM)
        return min(max(scale, contract.THICKNESS_SCALE_MIN), contract.THICKNESS_SCALE_MAX)


__all__ = ["ToleranceManager"]
