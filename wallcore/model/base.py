"""Shared pydantic base for serializable entities."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ModelT = TypeVar("ModelT", bound="WallCoreModel")


class WallCoreModel(BaseModel):
    """Entity base: snake_case attributes, camelCase payload keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-compatible dictionary with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_dict(cls: type[ModelT], payload: dict[str, Any]) -> ModelT:
        return cls.model_validate(payload)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["WallCoreModel", "new_id", "utcnow"]
