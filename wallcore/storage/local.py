from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Iterator

from wallcore.exceptions import StorageError
from wallcore.storage.base import BaseWallStore, Payload

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class LocalWallStore(BaseWallStore):
    """Store that writes one JSON file per record under ``root``."""

    def __init__(self, root: Path) -> None:
        super().__init__()
        self.root = Path(root)
        for folder in ("walls", "metrics", "intersections"):
            (self.root / folder).mkdir(parents=True, exist_ok=True)

    def _path(self, folder: str, key: str) -> Path:
        if not _SAFE_KEY.match(key) or key in (".", ".."):
            raise StorageError(f"Unsafe storage key: {key!r}", {"key": key})
        return self.root / folder / f"{key}.json"

    def _read(self, folder: str, key: str) -> Payload | None:
        path = self._path(folder, key)
        if not path.exists():
            return None
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, folder: str, key: str, payload: Payload) -> str:
        path = self._path(folder, key)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        return str(path)

    def _remove(self, folder: str, key: str) -> bool:
        path = self._path(folder, key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def _read_wall(self, wall_id: str) -> Payload | None:
        return self._read("walls", wall_id)

    def _write_wall(self, wall_id: str, payload: Payload) -> None:
        self._write("walls", wall_id, payload)

    def _remove_wall(self, wall_id: str) -> bool:
        return self._remove("walls", wall_id)

    def _wall_ids(self) -> list[str]:
        return sorted(p.stem for p in (self.root / "walls").glob("*.json"))

    def _read_metrics(self, wall_id: str) -> Payload | None:
        return self._read("metrics", wall_id)

    def _write_metrics(self, wall_id: str, payload: Payload) -> None:
        self._write("metrics", wall_id, payload)

    def _remove_metrics(self, wall_id: str) -> None:
        self._remove("metrics", wall_id)

    def _write_intersection(self, intersection_id: str, payload: Payload) -> None:
        self._write("intersections", intersection_id, payload)

    def _intersection_payloads(self) -> Iterator[Payload]:
        for path in sorted((self.root / "intersections").glob("*.json")):
            yield json.loads(path.read_text(encoding="utf-8"))


__all__ = ["LocalWallStore"]
