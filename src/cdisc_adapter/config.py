"""Configuration for the CDISC Library adapter."""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import AuthLocation

DEFAULT_OPENAPI_FILES = (
    "cdisc-cosmos-bc-proxy-v2.yaml",
    "cdisc-cosmos-base-specializations-proxy-v2.yaml",
    "cdisc-library-api.yaml",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="cdisc-library-mcp")

    cdisc_api_key: str = Field(default="")
    cdisc_api_base_url: str = Field(default="https://api.library.cdisc.org")
    cdisc_openapi_dir: str = Field(default="openapi")
    cdisc_openapi_files: str = Field(default=",".join(DEFAULT_OPENAPI_FILES))

    cdisc_auth_location: Optional[str] = Field(default=None)
    cdisc_auth_header: str = Field(default="api-key")
    cdisc_auth_query: str = Field(default="api-key")

    cdisc_cache_enabled: bool = Field(default=True)
    cdisc_cache_ttl_ms: int = Field(default=60000)
    cdisc_cache_max_entries: int = Field(default=500)
    cdisc_cache_debug: bool = Field(default=False)

    cdisc_retry_count: int = Field(default=2)
    cdisc_retry_backoff_ms: int = Field(default=300)
    cdisc_request_timeout_ms: int = Field(default=30000)
    cdisc_call_deadline_ms: Optional[int] = Field(default=None)

    adapter_transport: str = Field(default="stdio")
    adapter_host: str = Field(default="0.0.0.0")
    adapter_port: int = Field(default=8000)
    adapter_log_level: str = Field(default="INFO")

    @field_validator("cdisc_cache_ttl_ms", "cdisc_retry_count", "cdisc_retry_backoff_ms")
    @classmethod
    def _clamp_non_negative(cls, value: int) -> int:
        return max(0, value)

    @field_validator("cdisc_cache_max_entries", "cdisc_request_timeout_ms")
    @classmethod
    def _clamp_positive(cls, value: int) -> int:
        return max(1, value)

    def openapi_files(self) -> List[str]:
        return [item.strip() for item in self.cdisc_openapi_files.split(",") if item.strip()]

    def auth_location_override(self) -> Optional[AuthLocation]:
        value = (self.cdisc_auth_location or "").strip().lower()
        if value == AuthLocation.HEADER.value:
            return AuthLocation.HEADER
        if value == AuthLocation.QUERY.value:
            return AuthLocation.QUERY
        return None

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cdisc_cache_ttl_ms / 1000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
