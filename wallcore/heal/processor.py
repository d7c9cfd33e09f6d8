"""
Geometry Processor Chain

Chainable post-processing steps for wall solids. Each step is independently
testable and the chain is built from the engine settings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from loguru import logger

from wallcore.geometry.ops import Coord
from wallcore.heal.healing import ShapeHealingEngine
from wallcore.heal.simplification import GeometrySimplificationEngine
from wallcore.model.wall_solid import WallSolid


@dataclass
class ProcessedWall:
    """Wall after the chain, with the notes each step left behind."""

    wall: WallSolid
    steps_applied: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    approximations: int = 0


class GeometryProcessorStep(ABC):
    """Base class for geometry processing steps."""

    name = "step"

    @abstractmethod
    def process(self, wall: WallSolid, outcome: ProcessedWall, pinned: Sequence[Coord]) -> WallSolid:
        """
        Process one wall.

        Args:
            wall: Wall produced by the previous step
            outcome: Accumulator for warnings and applied steps
            pinned: Points that must survive geometric edits

        Returns:
            Processed wall
        """


class HealStep(GeometryProcessorStep):
    """Runs the shape healing engine."""

    name = "heal"

    def __init__(self, engine: ShapeHealingEngine):
        self.engine = engine

    def process(self, wall: WallSolid, outcome: ProcessedWall, pinned: Sequence[Coord]) -> WallSolid:
        result = self.engine.heal_shape(wall)
        outcome.warnings.extend(result.warnings)
        if result.operations_applied:
            outcome.steps_applied.append(self.name)
        return result.healed_solid


class SimplifyStep(GeometryProcessorStep):
    """Runs Douglas-Peucker simplification with pinned junction points."""

    name = "simplify"

    def __init__(self, engine: GeometrySimplificationEngine, max_deviation: float | None = None):
        self.engine = engine
        self.max_deviation = max_deviation

    def process(self, wall: WallSolid, outcome: ProcessedWall, pinned: Sequence[Coord]) -> WallSolid:
        result = self.engine.simplify_wall_geometry(wall, self.max_deviation, pinned=pinned)
        outcome.warnings.extend(result.warnings)
        if not result.accuracy_preserved:
            outcome.approximations += 1
        if result.points_removed:
            outcome.steps_applied.append(self.name)
        return result.simplified_solid


class GeometryProcessor:
    """
    Chainable processor for wall solids.

    A failing step is logged and the chain stops, keeping the last good wall.
    """

    def __init__(self, steps: Iterable[GeometryProcessorStep] | None = None):
        self.pipeline: list[GeometryProcessorStep] = list(steps or [])

    @classmethod
    def build(
        cls,
        healing_engine: ShapeHealingEngine | None,
        simplification_engine: GeometrySimplificationEngine | None,
    ) -> "GeometryProcessor":
        steps: list[GeometryProcessorStep] = []
        if healing_engine is not None:
            steps.append(HealStep(healing_engine))
        if simplification_engine is not None:
            steps.append(SimplifyStep(simplification_engine))
        return cls(steps)

    def process(self, wall: WallSolid, pinned: Sequence[Coord] = ()) -> ProcessedWall:
        outcome = ProcessedWall(wall=wall)
        for step in self.pipeline:
            try:
                outcome.wall = step.process(outcome.wall, outcome, pinned)
            except Exception as e:
                logger.warning("Error in geometry processing step {}: {}", step.__class__.__name__, e)
                outcome.warnings.append(f"{step.name} step failed: {e}")
                break
        return outcome

    def process_batch(
        self,
        walls: Sequence[WallSolid],
        pinned: Sequence[Sequence[Coord]] | None = None,
    ) -> list[ProcessedWall]:
        if pinned is not None and len(pinned) != len(walls):
            raise ValueError("Walls and pinned point lists must have same length")
        pins = pinned if pinned is not None else [()] * len(walls)
        return [self.process(wall, pts) for wall, pts in zip(walls, pins)]


__all__ = ["ProcessedWall", "GeometryProcessorStep", "HealStep", "SimplifyStep", "GeometryProcessor"]
