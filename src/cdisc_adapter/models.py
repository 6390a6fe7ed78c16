"""Internal models for operations, requests and call outcomes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import httpx
from pydantic import BaseModel, ConfigDict, Field


class AuthLocation(str, Enum):
    HEADER = "header"
    QUERY = "query"


class AuthScheme(str, Enum):
    """Kind of credential a declared security scheme asks for."""

    NONE = "none"
    HEADER = "header"
    QUERY = "query"


class ContentKind(str, Enum):
    JSON = "json"
    TEXT = "text"


@dataclass(frozen=True)
class SecurityScheme:
    name: str
    kind: AuthScheme
    param_name: str = "api-key"


@dataclass(frozen=True)
class OperationDescriptor:
    operation_id: str
    method: str
    path: str
    base_url: str
    security: Tuple[SecurityScheme, ...] = ()
    summary: Optional[str] = None
    tags: Tuple[str, ...] = ()
    servers: Tuple[Dict[str, Any], ...] = ()
    source: str = ""

    def scheme(self, kind: AuthScheme) -> Optional[SecurityScheme]:
        for scheme in self.security:
            if scheme.kind is kind:
                return scheme
        return None


@dataclass(frozen=True)
class AuthDecision:
    present: bool
    location: AuthLocation = AuthLocation.HEADER
    name: str = "api-key"
    secret: str = ""

    @classmethod
    def absent(cls) -> "AuthDecision":
        return cls(present=False)


@dataclass
class PreparedRequest:
    method: str
    url: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Optional[str] = None


@dataclass
class CacheEntry:
    text: str
    kind: ContentKind
    expires_at: float
    etag: Optional[str] = None


@dataclass(frozen=True)
class CallOutcome:
    text: str
    kind: ContentKind
    success: bool
    status_code: Optional[int] = None
    from_cache: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": [{"type": self.kind.value, "text": self.text}],
            "isError": not self.success,
        }


class OperationSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    operation_id: str = Field(alias="operationId")
    method: str
    path: str
    base_url: str = Field(alias="baseUrl")
    summary: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    servers: List[Dict[str, Any]] = Field(default_factory=list)
