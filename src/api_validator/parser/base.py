"""Normalized data models for resolved API documents.

The resolver converts OpenAPI 3.x and Swagger 2.0 documents into these
models. A ``Schema`` never contains a ``$ref``: references are resolved
before the model is built.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

SCHEMA_TYPES = ("string", "integer", "number", "boolean", "array", "object", "unknown")
PARAM_LOCATIONS = ("path", "query", "header", "body")


class Schema(BaseModel):
    """A fully resolved schema with its type-specific constraints."""

    model_config = ConfigDict(frozen=True)

    type: str = "unknown"  # one of SCHEMA_TYPES
    format: str | None = None
    description: str = ""

    # string
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    enum: list | None = None

    # integer / number
    minimum: int | float | None = None
    maximum: int | float | None = None
    exclusive_minimum: bool | int | float | None = None
    exclusive_maximum: bool | int | float | None = None

    # array
    items: Schema | None = None
    min_items: int | None = None
    max_items: int | None = None

    # object
    required: list[str] = []
    properties: dict[str, Schema] = {}

    @property
    def is_numeric(self) -> bool:
        return self.type in ("integer", "number")


class Param(BaseModel):
    """A single API parameter (path, query, header, or a body property)."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    location: str  # path / query / header / body
    required: bool = False
    schema_: Schema = Field(default_factory=Schema, alias="schema")
    description: str = ""


class ApiEndpoint(BaseModel):
    """A single API operation with its resolved parameters."""

    model_config = ConfigDict(frozen=True)

    id: str
    method: str  # GET / POST / PUT / DELETE / PATCH
    path: str  # /api/users/{id}
    summary: str = ""
    description: str = ""
    parameters: list[Param] = []
    request_body: Schema | None = None
    responses: dict[str, str] = {}  # {status_code: description}
    tags: list[str] = []
    auth_required: bool = False

    def param(self, name: str) -> Param | None:
        return next((p for p in self.parameters if p.name == name), None)
