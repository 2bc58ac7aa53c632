from __future__ import annotations

from pydantic import BaseModel
from pydantic.config import ConfigDict


def to_camel(value: str) -> str:
    parts = value.split("_")
    return parts[0] + "".join(word.capitalize() for word in parts[1:])


class BaseSchema(BaseModel):
    """Response payloads: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QuerySchema(BaseModel):
    # Query parameters keep their snake_case names; unknown keys are a caller bug.
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    def populated_fields(self) -> list[str]:
        return [name for name, value in self if value not in (None, [], "")]
