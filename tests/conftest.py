from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

import httpx
import pytest

from cdisc_adapter.auth import AuthResolver
from cdisc_adapter.cache import ResponseCache
from cdisc_adapter.dispatcher import Dispatcher
from cdisc_adapter.executors import RetryingExecutor
from cdisc_adapter.models import AuthLocation
from cdisc_adapter.openapi import InterfaceDocument, OpenAPILoader
from cdisc_adapter.operations import OperationIndex

BASE_URL = "https://api.example.test/api"

WIDGETS_SPEC: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Widgets", "version": "1"},
    "servers": [{"url": BASE_URL}],
    "components": {
        "securitySchemes": {
            "apiKeyHeader": {"type": "apiKey", "in": "header", "name": "api-key"},
        }
    },
    "paths": {
        "/widgets": {
            "parameters": [{"name": "trace", "in": "header"}],
            "get": {"operationId": "list_widgets", "summary": "List widgets", "tags": ["widgets"]},
            "post": {"operationId": "create_widget", "summary": "Create a widget"},
        },
        "/widgets/{id}": {
            "get": {"operationId": "get_widget", "summary": "Get a widget", "tags": ["widgets"]},
            "delete": {"operationId": "delete_widget"},
        },
        "/health": {"get": {"summary": "No operation id"}},
    },
}


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture()
def loader(tmp_path) -> OpenAPILoader:
    return OpenAPILoader(tmp_path, [], default_base_url="https://fallback.example.test")


@pytest.fixture()
def widgets_document(loader: OpenAPILoader) -> InterfaceDocument:
    return loader.parse_document("widgets.yaml", WIDGETS_SPEC)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def make_dispatcher(
    widgets_document: InterfaceDocument, clock: FakeClock, sleeper: RecordingSleep
) -> Callable[..., Dispatcher]:
    def factory(
        handler: Callable[[httpx.Request], Any],
        *,
        secret: Optional[str] = "secret",
        override: Optional[AuthLocation] = None,
        query_name: str = "api-key",
        cache: Optional[ResponseCache] = None,
        use_cache: bool = True,
        max_retries: int = 2,
        documents: Optional[List[InterfaceDocument]] = None,
    ) -> Dispatcher:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        if cache is None and use_cache:
            cache = ResponseCache(max_entries=10, ttl_seconds=60, now_fn=clock)
        return Dispatcher(
            index=OperationIndex.from_documents(documents or [widgets_document]),
            auth=AuthResolver(secret, override_location=override, query_name=query_name),
            executor=RetryingExecutor(
                client=client, max_retries=max_retries, backoff_ms=300, sleep=sleeper
            ),
            cache=cache,
        )

    return factory
