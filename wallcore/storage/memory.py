from __future__ import annotations

import copy
from typing import Iterable

from wallcore.storage.base import BaseWallStore, Payload


class InMemoryWallStore(BaseWallStore):
    """Thread-safe store backed by dictionaries of payloads."""

    def __init__(self) -> None:
        super().__init__()
        self._walls: dict[str, Payload] = {}
        self._metrics: dict[str, Payload] = {}
        self._intersections: dict[str, Payload] = {}

    def _read_wall(self, wall_id: str) -> Payload | None:
        payload = self._walls.get(wall_id)
        return copy.deepcopy(payload) if payload is not None else None

    def _write_wall(self, wall_id: str, payload: Payload) -> None:
        self._walls[wall_id] = payload

    def _remove_wall(self, wall_id: str) -> bool:
        return self._walls.pop(wall_id, None) is not None

    def _wall_ids(self) -> list[str]:
        return sorted(self._walls)

    def _read_metrics(self, wall_id: str) -> Payload | None:
        payload = self._metrics.get(wall_id)
        return copy.deepcopy(payload) if payload is not None else None

    def _write_metrics(self, wall_id: str, payload: Payload) -> None:
        self._metrics[wall_id] = payload

    def _remove_metrics(self, wall_id: str) -> None:
        self._metrics.pop(wall_id, None)

    def _write_intersection(self, intersection_id: str, payload: Payload) -> None:
        self._intersections[intersection_id] = payload

    def _intersection_payloads(self) -> Iterable[Payload]:
        return [copy.deepcopy(p) for p in self._intersections.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._walls)


__all__ = ["InMemoryWallStore"]
