"""Normalized API collection models consumed by the context filter.

These mirror the output of the collection import layer (Postman/OpenAPI/Swagger
parsers live outside this package). Field names are snake_case in Python and
accept the camelCase keys the import layer emits on the wire.
"""

from __future__ import annotations

from typing import Any, Iterable, Literal, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HttpMethod = Literal["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class _Normalized(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Header(_Normalized):
    key: str
    value: str = ""
    enabled: bool = True


class Parameter(_Normalized):
    name: str
    location: Literal["path", "query", "header", "cookie"] = "query"
    required: bool = False
    type: str = "string"
    description: Optional[str] = None
    example: Optional[str] = None


class Response(_Normalized):
    status_code: str
    description: str = ""
    body_schema: Optional[str] = None
    example: Optional[str] = None


class Endpoint(_Normalized):
    """One HTTP operation. Immutable for the lifetime of a request."""

    id: str
    name: str
    method: HttpMethod
    url: str = ""
    path: str
    folder: str = ""
    description: Optional[str] = None
    headers: list[Header] = Field(default_factory=list)
    parameters: list[Parameter] = Field(default_factory=list)
    request_body: Optional[str] = None
    request_content_type: Optional[str] = None
    responses: list[Response] = Field(default_factory=list)
    requires_auth: bool = False
    auth_type: Optional[str] = None

    @property
    def signature(self) -> str:
        """``METHOD /path`` as it appears in prose."""
        return f"{self.method} {self.path}"

    @property
    def is_auth_related(self) -> bool:
        return self.requires_auth or bool(self.auth_type)


class AuthScheme(_Normalized):
    type: str
    name: str = ""
    details: dict[str, str] = Field(default_factory=dict)


class Collection(_Normalized):
    """A full imported API description. Cached indexes are keyed by ``title``."""

    title: str
    base_url: str = ""
    version: Optional[str] = None
    description: Optional[str] = None
    endpoints: list[Endpoint] = Field(default_factory=list)
    auth_schemes: list[AuthScheme] = Field(default_factory=list)


class ChatMessage(_Normalized):
    role: Literal["user", "assistant", "system"]
    content: str = ""


def coerce_history(history: Optional[Iterable[Union[ChatMessage, Mapping[str, Any]]]]) -> list[ChatMessage]:
    """Accept ChatMessage objects or ``{"role", "content"}`` dicts."""
    if not history:
        return []
    return [
        m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
        for m in history
    ]
