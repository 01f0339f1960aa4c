"""Base model for wire and domain types."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class SeatsModel(BaseModel):
    """Base model with common configuration."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert model to a JSON-compatible dictionary."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SeatsModel":
        """Create model from dictionary."""
        return cls.model_validate(data)


class FrozenSeatsModel(SeatsModel):
    """Immutable variant for snapshots that must not change once taken."""

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )
