"""Operation dispatch: resolve, authorize, build, cache, fetch, normalize."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Mapping, Optional, Sequence

import httpx

from .auth import AuthResolver
from .cache import ResponseCache
from .config import Settings
from .executors import RetryingExecutor
from .logging import redact_payload, redact_url
from .models import CallOutcome, ContentKind, OperationSummary
from .openapi import InterfaceDocument, OpenAPILoader
from .operations import OperationIndex
from .request_builder import RequestBuilder, cache_key

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Public entry point for invoking documented operations.

    Only ResolutionError and TransportError are raised; every HTTP response,
    including 4xx/5xx, comes back as a CallOutcome.
    """

    def __init__(
        self,
        index: OperationIndex,
        auth: AuthResolver,
        executor: RetryingExecutor,
        cache: Optional[ResponseCache] = None,
        builder: Optional[RequestBuilder] = None,
    ) -> None:
        self.index = index
        self.auth = auth
        self.executor = executor
        self.cache = cache
        self.builder = builder or RequestBuilder()

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        documents: Optional[Sequence[InterfaceDocument]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> "Dispatcher":
        if documents is None:
            loader = OpenAPILoader(
                settings.cdisc_openapi_dir,
                settings.openapi_files(),
                default_base_url=settings.cdisc_api_base_url,
            )
            documents = loader.load_documents()

        index = OperationIndex.from_documents(documents)
        auth = AuthResolver(
            secret=settings.cdisc_api_key,
            override_location=settings.auth_location_override(),
            header_name=settings.cdisc_auth_header,
            query_name=settings.cdisc_auth_query,
        )
        executor = RetryingExecutor(
            client=client,
            max_retries=settings.cdisc_retry_count,
            backoff_ms=settings.cdisc_retry_backoff_ms,
            default_timeout_ms=settings.cdisc_request_timeout_ms,
            overall_deadline_ms=settings.cdisc_call_deadline_ms,
        )
        cache: Optional[ResponseCache] = None
        if settings.cdisc_cache_enabled:
            cache = ResponseCache(
                max_entries=settings.cdisc_cache_max_entries,
                ttl_seconds=settings.cache_ttl_seconds,
                debug=settings.cdisc_cache_debug,
            )
        logger.info(
            "Dispatcher ready: %s operations, cache=%s, retries=%s",
            len(index),
            "on" if cache else "off",
            executor.max_retries,
        )
        return cls(index=index, auth=auth, executor=executor, cache=cache)

    def list_operations(self, filter: Optional[str] = None) -> List[OperationSummary]:
        return self.index.list_operations(filter)

    async def call_operation(
        self,
        operation_id: str,
        path_params: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: Optional[float] = None,
    ) -> CallOutcome:
        descriptor = self.index.resolve(operation_id)
        decision = self.auth.decide(descriptor)
        request = self.builder.build(
            descriptor,
            path_params=path_params,
            query=query,
            headers=headers,
            body=body,
            auth=decision,
        )
        credential_param = self.auth.credential_query_name(descriptor)
        secret_params = (credential_param, decision.name)
        logger.info(
            "Calling %s %s %s headers=%s",
            operation_id,
            request.method,
            redact_url(request.url, secret_params),
            redact_payload(dict(headers or {})),
        )

        use_cache = self.cache is not None and request.method == "GET"
        key = cache_key(request.url, credential_param)
        cached = None
        if use_cache:
            cached = self.cache.get(key)
            if cached is not None and self.cache.is_fresh(cached):
                return CallOutcome(
                    text=cached.text, kind=cached.kind, success=True, from_cache=True
                )
            if cached is not None and cached.etag:
                request.headers["if-none-match"] = cached.etag

        response = await self.executor.execute(
            request, timeout_ms=timeout_ms, secret_params=secret_params
        )

        if use_cache and response.status_code == 304 and cached is not None:
            entry = self.cache.refresh(key)
            if entry is not None:
                return CallOutcome(
                    text=entry.text,
                    kind=entry.kind,
                    success=True,
                    status_code=304,
                    from_cache=True,
                )

        text, kind = normalize_body(response.text)
        success = response.is_success
        if use_cache and success:
            self.cache.store(key, text, kind, etag=response.headers.get("etag"))
        if not success:
            logger.info("Upstream returned %s for %s", response.status_code, operation_id)

        return CallOutcome(text=text, kind=kind, success=success, status_code=response.status_code)

    async def aclose(self) -> None:
        await self.executor.aclose()


def normalize_body(raw: str) -> tuple[str, ContentKind]:
    """
    JSON bodies are re-serialized compactly; anything else stays raw text.

    Bodies that parse to an empty scalar (null, false, 0, "") also stay raw
    text, while empty objects and arrays are still JSON.
    """
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw, ContentKind.TEXT
    if not parsed and not isinstance(parsed, (dict, list)):
        return raw, ContentKind.TEXT
    return json.dumps(parsed, separators=(",", ":"), ensure_ascii=False), ContentKind.JSON
