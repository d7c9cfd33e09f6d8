"""
Computation Cache

Memoization store for four independent value families: wall snapshots,
quality metrics, geometric computation results and intersection lists.
Each family has its own TTL; capacity is shared and enforced by estimated
byte size and entry count under an LRU, LFU or TTL eviction policy.

The cache is an ordinary object. Engines receive it by injection, so tests
can run several independent caches side by side.
"""

from __future__ import annotations

import json
import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Iterator

from loguru import logger

from wallcore.exceptions import CacheError
from wallcore.geometry import contract
from wallcore.model.enums import JunctionType
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.model.wall_solid import WallSolid
from wallcore.settings import CachePolicy, CacheSettings


class CacheFamily(str, Enum):
    WALLS = "walls"
    QUALITY_METRICS = "quality_metrics"
    GEOMETRIC_COMPUTATIONS = "geometric_computations"
    INTERSECTIONS = "intersections"


@dataclass
class CacheEntry:
    """A cached value with its bookkeeping."""

    data: Any
    timestamp: float
    access_count: int = 0
    last_accessed: float = 0.0
    size: int = 0
    ttl: float = contract.CACHE_TTL_SECONDS
    wall_ids: tuple[str, ...] = ()

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl

    def to_dict(self) -> dict[str, Any]:
        data = self.data.to_dict() if hasattr(self.data, "to_dict") else self.data
        return {
            "data": data,
            "timestamp": self.timestamp,
            "accessCount": self.access_count,
            "lastAccessed": self.last_accessed,
            "size": self.size,
            "ttl": self.ttl,
            "wallIds": list(self.wall_ids),
        }


@dataclass
class CacheStatistics:
    hit_count: int = 0
    miss_count: int = 0
    eviction_count: int = 0
    expired_count: int = 0
    total_entries: int = 0
    total_memory_usage: int = 0
    entries_by_family: dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return self.hit_count / total if total else 0.0

    @property
    def miss_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return self.miss_count / total if total else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hitCount": self.hit_count,
            "missCount": self.miss_count,
            "hitRate": self.hit_rate,
            "missRate": self.miss_rate,
            "evictionCount": self.eviction_count,
            "expiredCount": self.expired_count,
            "totalEntries": self.total_entries,
            "totalMemoryUsage": self.total_memory_usage,
            "entriesByFamily": dict(self.entries_by_family),
        }


# Key generation


def intersection_key(
    wall_ids: Iterable[str],
    junction_type: JunctionType | str,
    tolerance: float,
    point: tuple[float, float] | None = None,
) -> str:
    """Canonical intersection key; wall id order does not matter."""
    jt = junction_type.value if isinstance(junction_type, JunctionType) else str(junction_type)
    key = f"{jt}:{','.join(sorted(wall_ids))}:{tolerance:.9g}"
    if point is not None:
        key += f":{point[0]:.6f}:{point[1]:.6f}"
    return key


def geometric_key(operation: str, wall_id: str, tolerance: float, params: dict[str, Any] | None = None) -> str:
    encoded = json.dumps(params or {}, sort_keys=True, separators=(",", ":"), default=str)
    return f"{operation}:{wall_id}:{tolerance:.9g}:{encoded}"


class ComputationCache:
    """Thread-safe multi-family cache with per-key write serialization."""

    def __init__(self, settings: CacheSettings | None = None, clock=time.monotonic):
        self.settings = settings or CacheSettings()
        self._clock = clock
        self._stores: dict[CacheFamily, dict[str, CacheEntry]] = {family: {} for family in CacheFamily}
        self._ttl = {
            CacheFamily.WALLS: self.settings.wall_ttl or self.settings.ttl,
            CacheFamily.QUALITY_METRICS: self.settings.quality_metrics_ttl or self.settings.ttl,
            CacheFamily.GEOMETRIC_COMPUTATIONS: self.settings.geometric_computation_ttl or self.settings.ttl,
            CacheFamily.INTERSECTIONS: self.settings.intersection_ttl or self.settings.ttl,
        }
        # lock and number of threads holding or waiting on it
        self._key_locks: dict[tuple[CacheFamily, str], list] = {}
        # wall id -> entries computed from that wall
        self._dependents: dict[str, set[tuple[CacheFamily, str]]] = defaultdict(set)
        self._table_lock = threading.Lock()
        self._evict_lock = threading.Lock()
        self._stats_lock = threading.Lock()
        self._stats = CacheStatistics()
        self._memory = 0

    # Generic access

    def get(self, family: CacheFamily, key: str) -> Any | None:
        with self._lock_for(family, key):
            store = self._stores[family]
            entry = store.get(key)
            now = self._clock()
            if entry is None:
                self._count(miss=1)
                return None
            if entry.is_expired(now):
                self._drop(family, key)
                self._count(miss=1, expired=1)
                return None
            entry.access_count += 1
            entry.last_accessed = now
            self._count(hit=1)
            return entry.data

    def set(
        self,
        family: CacheFamily,
        key: str,
        value: Any,
        *,
        size: int | None = None,
        ttl: float | None = None,
        wall_ids: Iterable[str] | None = None,
    ) -> None:
        """
        Store ``value`` under ``key``.

        ``wall_ids`` lists the walls the value was computed from so
        ``invalidate_wall`` can find it; wall and metrics entries default to
        their own key.
        """
        if value is None:
            raise CacheError("Refusing to cache None", {"family": family.value, "key": key})
        entry_size = size if size is not None else self.estimate_size(family, value)
        if wall_ids is None:
            wall_ids = (key,) if family in (CacheFamily.WALLS, CacheFamily.QUALITY_METRICS) else ()
        deps = tuple(sorted(set(wall_ids)))
        now = self._clock()
        with self._lock_for(family, key):
            self._drop(family, key)
            self._stores[family][key] = CacheEntry(
                data=value,
                timestamp=now,
                last_accessed=now,
                size=entry_size,
                ttl=ttl if ttl is not None else self._ttl[family],
                wall_ids=deps,
            )
            with self._table_lock:
                for wall_id in deps:
                    self._dependents[wall_id].add((family, key))
            with self._stats_lock:
                self._memory += entry_size
        self._enforce_capacity(protect=(family, key))

    def delete(self, family: CacheFamily, key: str) -> bool:
        with self._lock_for(family, key):
            return self._drop(family, key)

    def contains(self, family: CacheFamily, key: str) -> bool:
        entry = self._stores[family].get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def entry(self, family: CacheFamily, key: str) -> CacheEntry | None:
        return self._stores[family].get(key)

    # Typed families

    def get_wall(self, wall_id: str) -> WallSolid | UnifiedWallData | None:
        return self.get(CacheFamily.WALLS, wall_id)

    def set_wall(self, wall: WallSolid | UnifiedWallData) -> None:
        self.set(CacheFamily.WALLS, wall.id, wall)

    def get_quality_metrics(self, wall_id: str) -> QualityMetrics | None:
        return self.get(CacheFamily.QUALITY_METRICS, wall_id)

    def set_quality_metrics(self, wall_id: str, metrics: QualityMetrics) -> None:
        self.set(CacheFamily.QUALITY_METRICS, wall_id, metrics)

    def get_geometric_computation(
        self, operation: str, wall_id: str, tolerance: float, params: dict[str, Any] | None = None
    ) -> Any | None:
        return self.get(CacheFamily.GEOMETRIC_COMPUTATIONS, geometric_key(operation, wall_id, tolerance, params))

    def set_geometric_computation(
        self,
        operation: str,
        wall_id: str,
        tolerance: float,
        result: Any,
        params: dict[str, Any] | None = None,
    ) -> None:
        self.set(
            CacheFamily.GEOMETRIC_COMPUTATIONS,
            geometric_key(operation, wall_id, tolerance, params),
            result,
            wall_ids=(wall_id,),
        )

    def get_intersections(
        self,
        wall_ids: Iterable[str],
        junction_type: JunctionType | str,
        tolerance: float,
        point: tuple[float, float] | None = None,
    ) -> list[Intersection] | None:
        return self.get(CacheFamily.INTERSECTIONS, intersection_key(wall_ids, junction_type, tolerance, point))

    def set_intersections(
        self,
        wall_ids: Iterable[str],
        junction_type: JunctionType | str,
        tolerance: float,
        intersections: list[Intersection],
        point: tuple[float, float] | None = None,
    ) -> None:
        wall_ids = list(wall_ids)
        self.set(
            CacheFamily.INTERSECTIONS,
            intersection_key(wall_ids, junction_type, tolerance, point),
            list(intersections),
            wall_ids=wall_ids,
        )

    # Maintenance

    def invalidate_wall(self, wall_id: str) -> int:
        """Remove every entry that depends on ``wall_id``; returns the number removed."""
        with self._table_lock:
            dependents = list(self._dependents.get(wall_id, ()))
        removed = 0
        for family, key in dependents:
            with self._lock_for(family, key):
                if self._drop(family, key):
                    removed += 1
        if removed:
            logger.debug("Invalidated {} cache entries for wall {}", removed, wall_id)
        return removed

    def cleanup_expired(self) -> int:
        now = self._clock()
        removed = 0
        for family in CacheFamily:
            for key, entry in list(self._stores[family].items()):
                if entry.is_expired(now):
                    with self._lock_for(family, key):
                        if self._drop(family, key):
                            removed += 1
        self._count(expired=removed)
        return removed

    def clear(self) -> None:
        with self._evict_lock:
            for family in CacheFamily:
                self._stores[family].clear()
            with self._table_lock:
                self._dependents.clear()
            with self._stats_lock:
                self._memory = 0

    def statistics(self) -> CacheStatistics:
        with self._stats_lock:
            stats = CacheStatistics(
                hit_count=self._stats.hit_count,
                miss_count=self._stats.miss_count,
                eviction_count=self._stats.eviction_count,
                expired_count=self._stats.expired_count,
                total_memory_usage=self._memory,
            )
        counts = {family.value: len(self._stores[family]) for family in CacheFamily}
        stats.entries_by_family = counts
        stats.total_entries = sum(counts.values())
        return stats

    def __len__(self) -> int:
        return sum(len(store) for store in self._stores.values())

    @staticmethod
    def estimate_size(family: CacheFamily, value: Any) -> int:
        if family == CacheFamily.WALLS:
            baseline = getattr(value, "baseline", None)
            points = len(baseline.points) if baseline is not None else 0
            return contract.WALL_ENTRY_BASE_BYTES + contract.WALL_ENTRY_POINT_BYTES * points
        if family == CacheFamily.QUALITY_METRICS:
            issues = len(getattr(value, "issues", []) or [])
            return contract.METRICS_ENTRY_BASE_BYTES + contract.METRICS_ENTRY_ISSUE_BYTES * issues
        if family == CacheFamily.INTERSECTIONS:
            return contract.INTERSECTION_ENTRY_BYTES * max(len(value), 1)
        payload = value.to_dict() if hasattr(value, "to_dict") else value
        return len(json.dumps(payload, default=str))

    # Internals

    @contextmanager
    def _lock_for(self, family: CacheFamily, key: str) -> Iterator[None]:
        slot = (family, key)
        with self._table_lock:
            holder = self._key_locks.setdefault(slot, [threading.Lock(), 0])
            holder[1] += 1
        try:
            with holder[0]:
                yield
        finally:
            with self._table_lock:
                holder[1] -= 1
                if holder[1] == 0:
                    del self._key_locks[slot]

    def _drop(self, family: CacheFamily, key: str) -> bool:
        entry = self._stores[family].pop(key, None)
        if entry is None:
            return False
        with self._table_lock:
            for wall_id in entry.wall_ids:
                keys = self._dependents.get(wall_id)
                if keys is not None:
                    keys.discard((family, key))
                    if not keys:
                        del self._dependents[wall_id]
        with self._stats_lock:
            self._memory -= entry.size
        return True

    def _count(self, *, hit: int = 0, miss: int = 0, expired: int = 0, evicted: int = 0) -> None:
        with self._stats_lock:
            self._stats.hit_count += hit
            self._stats.miss_count += miss
            self._stats.expired_count += expired
            self._stats.eviction_count += evicted

    def _over_budget(self) -> bool:
        return len(self) > self.settings.max_entries or self._memory > self.settings.max_memory_usage

    def _enforce_capacity(self, protect: tuple[CacheFamily, str]) -> None:
        if not self._over_budget():
            return
        with self._evict_lock:
            while self._over_budget():
                victim = self._select_victim(protect)
                if victim is None:
                    break
                family, key = victim
                with self._lock_for(family, key):
                    if self._drop(family, key):
                        self._count(evicted=1)
                        logger.debug("Evicted {}:{} ({})", family.value, key, self.settings.policy.value)

    def _select_victim(self, protect: tuple[CacheFamily, str]) -> tuple[CacheFamily, str] | None:
        policy = self.settings.policy
        best: tuple[CacheFamily, str] | None = None
        best_rank: tuple | None = None
        for family in CacheFamily:
            for key, entry in list(self._stores[family].items()):
                if (family, key) == protect:
                    continue
                if policy == CachePolicy.LRU:
                    rank = (entry.last_accessed, entry.timestamp)
                elif policy == CachePolicy.LFU:
                    rank = (entry.access_count, entry.last_accessed)
                else:
                    rank = (entry.timestamp, entry.last_accessed)
                if best_rank is None or rank < best_rank:
                    best_rank = rank
                    best = (family, key)
        if best is None and self._stores[protect[0]].get(protect[1]) is not None and self._over_budget():
            # a single entry larger than the whole budget
            return protect
        return best


__all__ = [
    "CacheFamily",
    "CacheEntry",
    "CacheStatistics",
    "ComputationCache",
    "intersection_key",
    "geometric_key",
]
