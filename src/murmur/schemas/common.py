"""Shared Pydantic schemas for common API elements."""
from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from murmur.utils.ids import ID_PATTERN

ObjectId = Annotated[str, Field(pattern=ID_PATTERN, description="Opaque 32-hex identifier")]


class CamelModel(BaseModel):
    """Base model exchanging camelCase keys on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        """Return a JSON-compatible dict keyed by wire aliases."""
        return self.model_dump(by_alias=True, mode="json")


class Pagination(CamelModel):
    """Pagination block returned with message history."""

    page: int
    limit: int
    total: int
    pages: int


def success(data: Any = None, message: str | None = None) -> dict[str, Any]:
    """Wrap a payload in the uniform success envelope."""
    body: dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if message:
        body["message"] = message
    return body
