"""
Round-trip encoding of core entities.

Payloads are tagged with ``entity`` so a store or fixture file can hold
mixed records and still decode them without knowing the type up front.
"""

from __future__ import annotations

import json
from typing import Any

from wallcore.exceptions import GeometryValidationError
from wallcore.geometry.primitives import Curve, Point
from wallcore.model.base import WallCoreModel
from wallcore.model.intersection import Intersection
from wallcore.model.quality import QualityMetrics
from wallcore.model.unified_wall import UnifiedWallData
from wallcore.model.wall_solid import WallSolid

ENTITY_TYPES: dict[str, type[WallCoreModel]] = {
    "point": Point,
    "curve": Curve,
    "wall_solid": WallSolid,
    "intersection": Intersection,
    "quality_metrics": QualityMetrics,
    "unified_wall": UnifiedWallData,
}
_TAGS = {cls: tag for tag, cls in ENTITY_TYPES.items()}


def encode(entity: WallCoreModel) -> dict[str, Any]:
    tag = _TAGS.get(type(entity))
    if tag is None:
        raise TypeError(f"Unsupported entity type: {type(entity).__name__}")
    payload = entity.to_dict()
    payload["entity"] = tag
    return payload


def decode(payload: dict[str, Any]) -> WallCoreModel:
    data = dict(payload)
    tag = data.pop("entity", None)
    cls = ENTITY_TYPES.get(tag or "")
    if cls is None:
        raise GeometryValidationError(
            f"Unknown entity tag: {tag!r}",
            operation="decode",
            input_snapshot=tag,
            suggested_fix=f"Use one of {sorted(ENTITY_TYPES)}",
        )
    try:
        return cls.from_dict(data)
    except ValueError as exc:
        raise GeometryValidationError(
            f"Cannot decode {tag}: {exc}",
            operation="decode",
            input_snapshot=data.get("id"),
        ) from exc


def dumps(entity: WallCoreModel, **kwargs: Any) -> str:
    return json.dumps(encode(entity), ensure_ascii=False, **kwargs)


def loads(text: str) -> WallCoreModel:
    return decode(json.loads(text))


__all__ = ["ENTITY_TYPES", "encode", "decode", "dumps", "loads"]
