"""
Mode Switching Engine

Converts walls between the lightweight basic representation and the BIM
representation. Going to BIM runs Offset -> Resolve -> Heal -> Simplify;
going back regenerates segments, nodes and polygons from the solid.
"""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence, TypeVar

from loguru import logger
from shapely.errors import GEOSException

from wallcore.cache.computation_cache import ComputationCache
from wallcore.exceptions import ModeSwitchError, WallCoreError
from wallcore.geometry import contract
from wallcore.geometry.primitives import Curve, Point
from wallcore.heal.healing import ShapeHealingEngine
from wallcore.heal.processor import GeometryProcessor, ProcessedWall
from wallcore.heal.simplification import GeometrySimplificationEngine
from wallcore.metrics.batch_metrics import BatchMetrics
from wallcore.metrics.quality import QualityMetricsCalculator
from wallcore.model.enums import CreationMethod, GeometryMode, JoinType, ResolutionMethod
from wallcore.model.intersection import Intersection
from wallcore.model.unified_wall import (
    BasicGeometry,
    BasicNode,
    BasicPolygon,
    BasicSegment,
    BIMGeometry,
    OffsetCurves,
    UnifiedWallData,
)
from wallcore.model.wall_solid import WallSolid
from wallcore.modes.registry import WallRegistry
from wallcore.offset.engine import OffsetEngine, OffsetResult
from wallcore.resolve.boolean_ops import BooleanOperations
from wallcore.resolve.resolver import IntersectionResolver
from wallcore.settings import EngineSettings
from wallcore.tolerance.manager import ToleranceManager

T = TypeVar("T")

# Per-item failures that are isolated instead of aborting the batch.
ITEM_ERRORS = (WallCoreError, GEOSException, ValueError)


@dataclass
class ModeSwitchResult:
    success: bool
    converted_walls: list[str] = field(default_factory=list)
    failed_walls: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    preserved_data: list[str] = field(default_factory=list)
    processing_time: float = 0.0
    approximations_used: int = 0
    data_loss: bool = False
    metrics: BatchMetrics | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "convertedWalls": list(self.converted_walls),
            "failedWalls": list(self.failed_walls),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "preservedData": list(self.preserved_data),
            "processingTime": self.processing_time,
            "approximationsUsed": self.approximations_used,
            "dataLoss": self.data_loss,
            "metrics": self.metrics.to_dict() if self.metrics else None,
        }


@dataclass
class ModeSwitchValidation:
    is_valid: bool
    can_proceed: bool
    compatibility: float = 1.0
    potential_data_loss: list[str] = field(default_factory=list)
    estimated_processing_time: float = 0.0
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "canProceed": self.can_proceed,
            "compatibility": self.compatibility,
            "potentialDataLoss": list(self.potential_data_loss),
            "estimatedProcessingTime": self.estimated_processing_time,
            "warnings": list(self.warnings),
            "errors": list(self.errors),
        }


class ModeSwitchingEngine:
    """Orchestrates basic <-> BIM conversion for batches of walls."""

    def __init__(
        self,
        settings: EngineSettings | None = None,
        cache: ComputationCache | None = None,
        registry: WallRegistry | None = None,
    ):
        self.settings = settings or EngineSettings.default()
        self.cache = cache
        self.registry = registry or WallRegistry()

        self.tolerance_manager = ToleranceManager(self.settings.tolerance)
        self.offset_engine = OffsetEngine(self.settings.offset, self.tolerance_manager)
        self.resolver = IntersectionResolver(
            cache=cache if self.settings.resolver.enable_caching else None,
            settings=self.settings.resolver,
            tolerance_manager=self.tolerance_manager,
            boolean_ops=BooleanOperations(self.offset_engine),
        )
        self.healing_engine = ShapeHealingEngine(self.settings.healing, self.tolerance_manager)
        self.simplification_engine = GeometrySimplificationEngine(self.settings.simplification)
        self.processor = GeometryProcessor.build(
            self.healing_engine if self.settings.mode_switch.heal_on_switch else None,
            self.simplification_engine if self.settings.mode_switch.simplify_on_switch else None,
        )
        self.quality_calculator = QualityMetricsCalculator(self.settings.healing, self.tolerance_manager)

    # Basic -> BIM

    def switch_to_bim_mode(
        self,
        walls: Sequence[UnifiedWallData],
        cancel_event: threading.Event | None = None,
    ) -> ModeSwitchResult:
        """
        Build BIM geometry for every wall in the batch.

        Junctions are resolved among the walls of the batch only. A wall that
        fails is reported in ``failed_walls``; the others still convert.
        """
        start = time.perf_counter()
        metrics = BatchMetrics(total_walls=len(walls))
        result = ModeSwitchResult(success=True, metrics=metrics, preserved_data=["baseline", "thickness", "type"])
        join_type = JoinType(self.settings.mode_switch.default_join_type)
        for wall in walls:
            if wall.id not in self.registry:
                self.registry.register(wall)

        stage = time.perf_counter()
        built: dict[str, tuple[WallSolid, OffsetResult]] = {}
        for wall, outcome in self._run(walls, lambda w: self._build_solid(w, join_type)):
            if isinstance(outcome, Exception):
                self._record_failure(result, wall, outcome)
                continue
            solid, offset = outcome
            built[wall.id] = (solid, offset)
            for note in offset.warnings:
                metrics.add_warning(f"{wall.id}: {note}", "offset")
            if offset.fallback_used:
                result.approximations_used += 1
        metrics.time_offset = _ms(stage)

        stage = time.perf_counter()
        junctions: dict[str, list[Intersection]] = defaultdict(list)
        if self.settings.mode_switch.resolve_junctions_on_switch and len(built) > 1:
            network = self.resolver.optimize_intersection_network([s for s, _ in built.values()], cancel_event)
            metrics.junctions_resolved = len(network.intersections)
            metrics.junctions_failed = network.failed_count
            metrics.junctions_from_cache = sum(1 for ix in network.intersections if ix.cached)
            for message in network.errors:
                metrics.add_warning(message, "junction")
            for message in network.warnings:
                metrics.add_warning(message, "junction")
            for intersection in network.intersections:
                if intersection.resolution_method == ResolutionMethod.FALLBACK_APPROXIMATION:
                    result.approximations_used += 1
                for wall_id in intersection.participating_walls:
                    junctions[wall_id].append(intersection)
            if network.cancelled:
                for wall in walls:
                    if wall.id in built:
                        self._record_failure(result, wall, ModeSwitchError("Mode switch cancelled"))
                return self._finish(result, start, "Switch to BIM")
        metrics.time_resolve = _ms(stage)

        stage = time.perf_counter()
        pending = [w for w in walls if w.id in built]
        for wall, outcome in self._run(pending, lambda w: self._attach_bim(w, *built[w.id], junctions.get(w.id, []))):
            if isinstance(outcome, Exception):
                self._record_failure(result, wall, outcome)
                continue
            result.converted_walls.append(wall.id)
            metrics.converted_walls += 1
            if "heal" in outcome.steps_applied:
                metrics.walls_healed += 1
            if "simplify" in outcome.steps_applied:
                metrics.walls_simplified += 1
            result.approximations_used += outcome.approximations
            for note in outcome.warnings:
                metrics.add_warning(f"{wall.id}: {note}", "post_processing")
        metrics.time_post_processing = _ms(stage)
        return self._finish(result, start, "Switch to BIM")

    def _build_solid(self, wall: UnifiedWallData, join_type: JoinType) -> tuple[WallSolid, OffsetResult]:
        with self.registry.lock(wall.id):
            if wall.requires_sync and self.cache is not None:
                self.cache.invalidate_wall(wall.id)
            polygon, offset = self.offset_engine.offset_to_polygon(wall.baseline, wall.thickness, join_type)
            if polygon.is_empty:
                raise ModeSwitchError(
                    f"Offset failed for wall {wall.id}",
                    {"wallId": wall.id, "warnings": offset.warnings},
                )
            solid = WallSolid(
                id=wall.id,
                baseline=wall.baseline,
                thickness=wall.thickness,
                wall_type=wall.type,
                left_offset=offset.left_offset,
                right_offset=offset.right_offset,
                join_types=offset.join_types,
                processing_time=offset.processing_time,
            )
            return solid.with_solid(polygon), offset

    def _attach_bim(
        self,
        wall: UnifiedWallData,
        solid: WallSolid,
        offset: OffsetResult,
        intersections: list[Intersection],
    ) -> ProcessedWall:
        start = time.perf_counter()
        solid = solid.model_copy(update={"intersection_data": [ix.id for ix in intersections]})
        pinned = [ix.intersection_point.as_tuple() for ix in intersections]
        processed = self.processor.process(solid, pinned=pinned)
        quality = self.quality_calculator.calculate(processed.wall)
        solid = processed.wall.model_copy(
            update={
                "geometric_quality_metrics": quality,
                "processing_time": processed.wall.processing_time + _ms(start),
            }
        )
        processed.wall = solid

        curves = None
        if offset.left_offset is not None and offset.right_offset is not None:
            curves = OffsetCurves(left=offset.left_offset, right=offset.right_offset)

        with self.registry.lock(wall.id):
            wall.bim_geometry = BIMGeometry(
                wall_solid=solid,
                offset_curves=curves,
                intersection_data=intersections,
                quality_metrics=quality,
            )
            wall.is_bim_mode_valid = True
            wall.requires_sync = False
            wall.add_processing_step(
                GeometryMode.BIM,
                "switch_to_bim",
                details={"intersections": len(intersections), "steps": processed.steps_applied},
            )
        if self.cache is not None:
            self.cache.set_wall(solid)
            self.cache.set_quality_metrics(wall.id, quality)
        return processed

    # BIM -> basic

    def switch_to_basic_mode(self, walls: Sequence[UnifiedWallData]) -> ModeSwitchResult:
        """Regenerate basic segments, nodes and polygons from the BIM solid and baseline."""
        start = time.perf_counter()
        metrics = BatchMetrics(total_walls=len(walls))
        result = ModeSwitchResult(success=True, metrics=metrics, preserved_data=["baseline", "thickness", "type"])
        for wall in walls:
            if wall.id not in self.registry:
                self.registry.register(wall)

        stage = time.perf_counter()
        for wall, outcome in self._run(walls, self._convert_to_basic):
            if isinstance(outcome, Exception):
                self._record_failure(result, wall, outcome)
                continue
            approximations, lost, notes = outcome
            result.converted_walls.append(wall.id)
            metrics.converted_walls += 1
            result.approximations_used += approximations
            result.data_loss = result.data_loss or lost
            for note in notes:
                metrics.add_warning(f"{wall.id}: {note}", "conversion")
        metrics.time_post_processing = _ms(stage)
        return self._finish(result, start, "Switch to basic")

    def _convert_to_basic(self, wall: UnifiedWallData) -> tuple[int, bool, list[str]]:
        with self.registry.lock(wall.id):
            if wall.bim_geometry is None:
                raise ModeSwitchError(f"Wall {wall.id} has no BIM geometry", {"wallId": wall.id})
            solid = wall.bim_geometry.wall_solid
            if wall.last_modified_mode == GeometryMode.BIM:
                wall.baseline = solid.baseline
                wall.thickness = solid.thickness
                wall.type = solid.wall_type

            basic, approximations, notes = build_basic_geometry(
                wall.id, wall.baseline, solid, wall.bim_geometry.intersection_data
            )
            lost = (
                abs(solid.thickness - wall.thickness) > contract.DOCUMENT_PRECISION
                or solid.wall_type != wall.type
            )
            wall.basic_geometry = basic
            wall.is_basic_mode_valid = True
            wall.requires_sync = False
            wall.add_processing_step(
                GeometryMode.BASIC,
                "switch_to_basic",
                details={"segments": len(basic.segments), "polygons": len(basic.polygons)},
            )
        return approximations, lost, notes

    # Validation and synchronization

    def validate_mode_switch(
        self,
        from_mode: GeometryMode,
        to_mode: GeometryMode,
        walls: Sequence[UnifiedWallData],
    ) -> ModeSwitchValidation:
        """Dry run of a switch; nothing is mutated."""
        if from_mode == to_mode:
            return ModeSwitchValidation(
                is_valid=True,
                can_proceed=True,
                warnings=[f"Walls are already in {to_mode.value} mode"],
            )
        if not walls:
            return ModeSwitchValidation(is_valid=True, can_proceed=False, warnings=["No walls to switch"])

        validation = ModeSwitchValidation(is_valid=True, can_proceed=False)
        compatible = 0
        for wall in walls:
            compatibility = wall.mode_compatibility()
            if to_mode == GeometryMode.BIM:
                allowed = compatibility.can_switch_to_bim
                estimate = (
                    contract.SEGMENT_TO_BIM_ESTIMATE_MS * max(len(wall.basic_geometry.segments), 1)
                    + contract.POLYGON_TO_BIM_ESTIMATE_MS * len(wall.basic_geometry.polygons)
                )
                if wall.requires_sync and wall.last_modified_mode == GeometryMode.BIM:
                    validation.potential_data_loss.append(f"{wall.id}: unsynchronized BIM edits will be overwritten")
            else:
                allowed = compatibility.can_switch_to_basic and wall.bim_geometry is not None
                estimate = contract.BIM_TO_BASIC_ESTIMATE_MS
                validation.potential_data_loss.extend(f"{wall.id}: {item}" for item in compatibility.potential_data_loss)
                if wall.requires_sync and wall.last_modified_mode == GeometryMode.BASIC:
                    validation.potential_data_loss.append(f"{wall.id}: unsynchronized basic edits will be overwritten")

            if allowed:
                compatible += 1
                validation.estimated_processing_time += estimate
            else:
                validation.errors.append(f"Wall {wall.id} cannot switch to {to_mode.value} mode")
            if wall.thickness <= contract.DOCUMENT_PRECISION:
                validation.warnings.append(f"Wall {wall.id} is thinner than the document precision")

        validation.compatibility = compatible / len(walls)
        validation.is_valid = not validation.errors
        validation.can_proceed = compatible > 0
        return validation

    def synchronize_modes(self, wall: UnifiedWallData) -> ModeSwitchResult:
        """Regenerate the stale representation from ``last_modified_mode``."""
        if not wall.requires_sync:
            return ModeSwitchResult(success=True, warnings=[f"Wall {wall.id} is already synchronized"])
        if wall.last_modified_mode == GeometryMode.BASIC:
            return self.switch_to_bim_mode([wall])
        return self.switch_to_basic_mode([wall])

    # Helpers

    def _run(self, walls: Sequence[UnifiedWallData], fn: Callable[[UnifiedWallData], T]) -> list[tuple[UnifiedWallData, T | Exception]]:
        workers = self.settings.mode_switch.max_workers
        if workers > 1 and len(walls) > 1:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [(wall, executor.submit(_guarded, fn, wall)) for wall in walls]
                return [(wall, future.result()) for wall, future in futures]
        return [(wall, _guarded(fn, wall)) for wall in walls]

    @staticmethod
    def _record_failure(result: ModeSwitchResult, wall: UnifiedWallData, exc: Exception) -> None:
        result.failed_walls.append(wall.id)
        result.errors.append(f"{wall.id}: {exc}")
        if result.metrics is not None:
            result.metrics.failed_walls += 1
            result.metrics.add_error(f"{wall.id}: {exc}")

    @staticmethod
    def _finish(result: ModeSwitchResult, start: float, label: str) -> ModeSwitchResult:
        result.processing_time = _ms(start)
        result.success = not result.failed_walls
        if result.metrics is not None:
            result.metrics.time_total = result.processing_time
            result.metrics.approximations_used = result.approximations_used
            result.warnings.extend(result.metrics.warnings)
            result.metrics.log_summary(label)
        return result


def build_basic_geometry(
    wall_id: str,
    baseline: Curve,
    solid: WallSolid,
    intersections: Sequence[Intersection] = (),
) -> tuple[BasicGeometry, int, list[str]]:
    """Segments and nodes from the baseline, polygons from the solid outer rings."""
    coords = baseline.coords()
    closed = baseline.closed and len(coords) > 2
    junction_points = [ix.intersection_point for ix in intersections]
    snap = max(solid.thickness * 0.5, contract.DOCUMENT_PRECISION)

    nodes: list[BasicNode] = []
    for i, (x, y) in enumerate(coords):
        kind = "vertex" if closed or 0 < i < len(coords) - 1 else "endpoint"
        if any(math.hypot(p.x - x, p.y - y) <= snap for p in junction_points):
            kind = "junction"
        nodes.append(BasicNode(x=x, y=y, type=kind))

    pairs = list(zip(range(len(coords)), range(1, len(coords))))
    if closed:
        pairs.append((len(coords) - 1, 0))
    segments: list[BasicSegment] = []
    for i, j in pairs:
        segment = BasicSegment(
            start=Point.at(*coords[i], creation_method=CreationMethod.CONVERSION),
            end=Point.at(*coords[j], creation_method=CreationMethod.CONVERSION),
            wall_id=wall_id,
        )
        segments.append(segment)
        nodes[i].connected_segments.append(segment.id)
        nodes[j].connected_segments.append(segment.id)

    approximations = 0
    notes: list[str] = []
    polygons: list[BasicPolygon] = []
    for part in solid.solid_geometry:
        shape = part.to_shapely()
        if part.holes:
            approximations += 1
            notes.append("Polygon holes are not represented in basic mode")
        polygons.append(
            BasicPolygon(
                points=[Point.at(x, y, creation_method=CreationMethod.CONVERSION) for x, y in part.outer[:-1]],
                area=shape.area,
                perimeter=shape.exterior.length,
            )
        )
    return BasicGeometry(segments=segments, nodes=nodes, polygons=polygons), approximations, notes


def _guarded(fn: Callable[[UnifiedWallData], T], wall: UnifiedWallData) -> T | Exception:
    try:
        return fn(wall)
    except ITEM_ERRORS as exc:
        logger.warning("Mode switch failed for wall {}: {}", wall.id, exc)
        return exc


def _ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000.0


__all__ = ["ModeSwitchResult", "ModeSwitchValidation", "ModeSwitchingEngine", "build_basic_geometry"]
