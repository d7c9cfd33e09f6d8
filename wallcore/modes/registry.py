"""Thread-safe registry of unified walls with one lock per wall id."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Callable, Dict, Iterator, List, Optional

from wallcore.exceptions import WallNotFoundError
from wallcore.model.unified_wall import UnifiedWallData


class WallRegistry:
    """
    Holds ``UnifiedWallData`` by id.

    Edits to one wall are serialized through ``lock(wall_id)``; different
    walls can be processed concurrently.
    """

    def __init__(self) -> None:
        self._walls: Dict[str, UnifiedWallData] = {}
        # wall id -> [lock, threads holding or waiting on it]
        self._locks: Dict[str, list] = {}
        self._table_lock = threading.Lock()

    @contextmanager
    def lock(self, wall_id: str) -> Iterator[None]:
        with self._table_lock:
            holder = self._locks.setdefault(wall_id, [threading.RLock(), 0])
            holder[1] += 1
        try:
            with holder[0]:
                yield
        finally:
            with self._table_lock:
                holder[1] -= 1
                if holder[1] == 0:
                    del self._locks[wall_id]

    def register(self, wall: UnifiedWallData) -> UnifiedWallData:
        with self.lock(wall.id):
            with self._table_lock:
                self._walls[wall.id] = wall
        return wall

    def get(self, wall_id: str) -> Optional[UnifiedWallData]:
        with self._table_lock:
            return self._walls.get(wall_id)

    def require(self, wall_id: str) -> UnifiedWallData:
        wall = self.get(wall_id)
        if wall is None:
            raise WallNotFoundError(f"Wall {wall_id} is not registered", {"wallId": wall_id})
        return wall

    def update(self, wall_id: str, fn: Callable[[UnifiedWallData], None]) -> UnifiedWallData:
        """Apply ``fn`` to the registered wall while holding its lock."""
        with self.lock(wall_id):
            wall = self.require(wall_id)
            fn(wall)
            return wall

    def remove(self, wall_id: str) -> bool:
        with self.lock(wall_id):
            with self._table_lock:
                removed = self._walls.pop(wall_id, None) is not None
        return removed

    def ids(self) -> List[str]:
        with self._table_lock:
            return sorted(self._walls)

    def __contains__(self, wall_id: object) -> bool:
        with self._table_lock:
            return wall_id in self._walls

    def __len__(self) -> int:
        with self._table_lock:
            return len(self._walls)


__all__ = ["WallRegistry"]
