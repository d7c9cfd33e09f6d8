"""
Engine Configuration

Centralized, validated configuration for the wall geometry engines.
Every engine accepts its own sub-model; ``EngineSettings`` groups them and
can be loaded from YAML.
"""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from wallcore.exceptions import ConfigurationError
from wallcore.geometry import contract

# Load .env file from project root
_env_path = Path(__file__).parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)


class CachePolicy(str, Enum):
    """Eviction policy for the computation cache."""
    LRU = "lru"
    LFU = "lfu"
    TTL = "ttl"


class ToleranceSettings(BaseModel):
    base_tolerance: float = Field(
        default=contract.BASE_TOLERANCE,
        gt=0.0,
        description="Absolute floor for every computed tolerance",
    )
    document_precision: float = Field(
        default=contract.DOCUMENT_PRECISION,
        gt=0.0,
        description="Drawing precision the tolerances are relative to (mm)",
    )
    memo_size: int = Field(default=contract.TOLERANCE_MEMO_SIZE, ge=0, le=100000)

    @model_validator(mode="after")
    def _precision_above_base(self) -> "ToleranceSettings":
        if self.document_precision < self.base_tolerance:
            raise ValueError("document_precision must not be smaller than base_tolerance")
        return self


class OffsetSettings(BaseModel):
    miter_limit: float = Field(
        default=contract.MITER_LIMIT,
        ge=1.0,
        le=100.0,
        description="Max miter apex distance as a multiple of the offset distance",
    )
    round_segments: int = Field(default=contract.ROUND_SEGMENTS, ge=2, le=128)
    min_segment_length: float = Field(default=contract.MIN_SEGMENT_LENGTH, gt=0.0)
    enable_fallbacks: bool = True


class ResolverSettings(BaseModel):
    extreme_angle_threshold: float = Field(
        default=contract.EXTREME_ANGLE_DEG,
        gt=0.0,
        lt=90.0,
        description="Junction angles below this (degrees) are resolved with a bevel",
    )
    near_straight_threshold: float = Field(default=contract.NEAR_STRAIGHT_ANGLE_DEG, gt=90.0, lt=180.0)
    parallel_cosine: float = Field(default=contract.PARALLEL_COSINE, gt=0.0, le=1.0)
    cross_complexity_warning_threshold: int = Field(default=contract.CROSS_COMPLEXITY_WARNING_WALLS, ge=3)
    max_complexity: int = Field(
        default=contract.MAX_COMPLEXITY,
        ge=10,
        description="Vertex budget above which resolution falls back to a hull approximation",
    )
    enable_caching: bool = True


class HealingSettings(BaseModel):
    sliver_face_threshold: float = Field(default=contract.SLIVER_FACE_THRESHOLD, ge=0.0)
    duplicate_edge_tolerance: float = Field(default=contract.DUPLICATE_EDGE_TOLERANCE, ge=0.0)
    micro_gap_threshold: float = Field(default=contract.MICRO_GAP_THRESHOLD, ge=0.0)
    collinear_angle: float = Field(default=contract.COLLINEAR_ANGLE_DEG, ge=0.0, le=45.0)
    max_iterations: int = Field(default=contract.MAX_HEALING_ITERATIONS, ge=1, le=100)
    enable_sliver_removal: bool = True
    enable_micro_gap_elimination: bool = True
    enable_edge_merge: bool = True


class SimplificationSettings(BaseModel):
    rdp_tolerance: float = Field(default=contract.RDP_TOLERANCE, gt=0.0)
    max_deviation_cap: float = Field(
        default=10.0,
        gt=0.0,
        description="Upper bound for the thickness-adaptive deviation (mm)",
    )
    corner_angle: float = Field(default=contract.CORNER_ANGLE_DEG, gt=0.0, lt=180.0)
    min_ring_vertices: int = Field(default=contract.MIN_RING_VERTICES, ge=3)
    accuracy_floor: float = Field(default=contract.ACCURACY_FLOOR, ge=0.0, le=1.0)


class CacheSettings(BaseModel):
    max_memory_usage: int = Field(default=contract.CACHE_MAX_MEMORY_BYTES, ge=1)
    max_entries: int = Field(default=contract.CACHE_MAX_ENTRIES, ge=1)
    ttl: float = Field(default=contract.CACHE_TTL_SECONDS, gt=0.0, description="Default TTL in seconds")
    wall_ttl: float | None = Field(default=None, gt=0.0)
    quality_metrics_ttl: float | None = Field(default=None, gt=0.0)
    geometric_computation_ttl: float | None = Field(default=None, gt=0.0)
    intersection_ttl: float | None = Field(default=None, gt=0.0)
    policy: CachePolicy = CachePolicy.LRU

    @field_validator("policy", mode="before")
    @classmethod
    def _normalize_policy(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ModeSwitchSettings(BaseModel):
    max_workers: int = Field(default=1, ge=1, le=64)
    heal_on_switch: bool = True
    simplify_on_switch: bool = True
    resolve_junctions_on_switch: bool = True
    default_join_type: str = "miter"

    @field_validator("default_join_type")
    @classmethod
    def _known_join(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"miter", "bevel", "round"}:
            raise ValueError(f"unknown join type: {value}")
        return value


class EngineSettings(BaseModel):
    tolerance: ToleranceSettings = Field(default_factory=ToleranceSettings)
    offset: OffsetSettings = Field(default_factory=OffsetSettings)
    resolver: ResolverSettings = Field(default_factory=ResolverSettings)
    healing: HealingSettings = Field(default_factory=HealingSettings)
    simplification: SimplificationSettings = Field(default_factory=SimplificationSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    mode_switch: ModeSwitchSettings = Field(default_factory=ModeSwitchSettings)

    @classmethod
    def default(cls) -> "EngineSettings":
        """Create settings with every default value."""
        return cls()

    @classmethod
    def load(cls, path: Path | None = None) -> "EngineSettings":
        """Load settings from a YAML configuration file.

        Args:
            path: Optional path to configuration file. If not provided, uses
                WALLCORE_CONFIG environment variable or defaults to config/default.yaml.

        Raises:
            FileNotFoundError: If configuration file does not exist.
            ConfigurationError: If configuration is invalid.
        """
        config_path = path or Path(os.getenv("WALLCORE_CONFIG", "config/default.yaml"))
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fp:
            payload = yaml.safe_load(fp) or {}
        try:
            return cls(**payload)
        except (ValidationError, TypeError) as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}", {"path": str(config_path)}) from exc


@lru_cache(maxsize=1)
def get_settings(path: str | None = None) -> EngineSettings:
    return EngineSettings.load(Path(path) if path else None)


__all__ = [
    "CachePolicy",
    "ToleranceSettings",
    "OffsetSettings",
    "ResolverSettings",
    "HealingSettings",
    "SimplificationSettings",
    "CacheSettings",
    "ModeSwitchSettings",
    "EngineSettings",
    "get_settings",
]
