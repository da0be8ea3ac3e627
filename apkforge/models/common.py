"""Shared model configuration."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class ApiModel(BaseModel):
    """Base for models that travel over the wire.

    Attributes are snake_case in Python and camelCase in JSON.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
    )

    def to_wire(self) -> dict:
        """JSON-compatible dict using camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)
