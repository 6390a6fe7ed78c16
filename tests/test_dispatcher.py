import json
import logging
from typing import List

import httpx
import pytest

from cdisc_adapter.auth import AuthResolver
from cdisc_adapter.cache import ResponseCache
from cdisc_adapter.dispatcher import Dispatcher, normalize_body
from cdisc_adapter.errors import ResolutionError, TransportError
from cdisc_adapter.executors import RetryingExecutor
from cdisc_adapter.models import AuthLocation, ContentKind
from cdisc_adapter.operations import OperationIndex


@pytest.mark.asyncio
async def test_get_widget_is_cached_per_path(make_dispatcher) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        widget_id = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"id": widget_id})

    dispatcher = make_dispatcher(handler)

    first = await dispatcher.call_operation("get_widget", path_params={"id": "A1"})
    assert str(seen[0].url).endswith("/widgets/A1")
    assert first.success is True
    assert first.kind is ContentKind.JSON
    assert json.loads(first.text) == {"id": "A1"}

    attempts_before = dispatcher.executor.stats.attempts
    second = await dispatcher.call_operation("get_widget", path_params={"id": "A1"})
    assert second.text == first.text
    assert second.from_cache is True
    assert len(seen) == 1
    assert dispatcher.executor.stats.attempts == attempts_before
    assert dispatcher.executor.stats.retries == 0

    third = await dispatcher.call_operation("get_widget", path_params={"id": "B2"})
    assert len(seen) == 2
    assert json.loads(third.text) == {"id": "B2"}


@pytest.mark.asyncio
async def test_unknown_operation_raises_without_network(make_dispatcher) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200)

    dispatcher = make_dispatcher(handler)

    with pytest.raises(ResolutionError) as excinfo:
        await dispatcher.call_operation("no_such_operation")

    assert excinfo.value.operation_id == "no_such_operation"
    assert calls == []
    assert dispatcher.executor.stats.attempts == 0


@pytest.mark.asyncio
async def test_header_and_query_auth_share_one_cache_entry(make_dispatcher, clock) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[1, 2, 3])

    shared = ResponseCache(max_entries=10, ttl_seconds=60, now_fn=clock)
    via_query = make_dispatcher(handler, override=AuthLocation.QUERY, cache=shared)
    via_header = make_dispatcher(handler, override=AuthLocation.HEADER, cache=shared)

    await via_query.call_operation("list_widgets", query={"page": 2})
    assert seen[0].url.params.get("api-key") == "secret"
    assert "api-key" not in seen[0].headers

    outcome = await via_header.call_operation("list_widgets", query={"page": 2})
    assert outcome.from_cache is True
    assert len(seen) == 1
    assert len(shared) == 1
    assert shared.keys() == ["https://api.example.test/api/widgets?page=2"]


@pytest.mark.asyncio
async def test_declared_header_scheme_sends_api_key_header(make_dispatcher) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    dispatcher = make_dispatcher(handler)
    await dispatcher.call_operation("list_widgets")

    assert seen[0].headers["api-key"] == "secret"
    assert seen[0].headers["content-type"] == "application/json"
    assert "api-key" not in seen[0].url.params


@pytest.mark.asyncio
async def test_missing_secret_passes_upstream_401_through(make_dispatcher) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(401, json={"message": "Access denied"})

    dispatcher = make_dispatcher(handler, secret=None)
    outcome = await dispatcher.call_operation("list_widgets")

    assert "api-key" not in seen[0].headers
    assert outcome.success is False
    assert outcome.status_code == 401
    assert outcome.to_dict() == {
        "content": [{"type": "json", "text": '{"message":"Access denied"}'}],
        "isError": True,
    }


@pytest.mark.asyncio
async def test_error_responses_are_not_cached(make_dispatcher) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, text="not here")

    dispatcher = make_dispatcher(handler)

    first = await dispatcher.call_operation("get_widget", path_params={"id": "missing"})
    second = await dispatcher.call_operation("get_widget", path_params={"id": "missing"})

    assert first.kind is ContentKind.TEXT
    assert first.text == "not here"
    assert second.success is False
    assert len(calls) == 2
    assert len(dispatcher.cache) == 0


@pytest.mark.asyncio
async def test_malformed_json_degrades_to_text(make_dispatcher) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=b"{not json", headers={"content-type": "application/json"}
        )

    dispatcher = make_dispatcher(handler)
    outcome = await dispatcher.call_operation("list_widgets")

    assert outcome.success is True
    assert outcome.kind is ContentKind.TEXT
    assert outcome.text == "{not json"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("null", ("null", ContentKind.TEXT)),
        ("false", ("false", ContentKind.TEXT)),
        ("0", ("0", ContentKind.TEXT)),
        ('""', ('""', ContentKind.TEXT)),
        ("", ("", ContentKind.TEXT)),
        ("{}", ("{}", ContentKind.JSON)),
        ("[ ]", ("[]", ContentKind.JSON)),
        ("true", ("true", ContentKind.JSON)),
        ('{ "a": [1, 2] }', ('{"a":[1,2]}', ContentKind.JSON)),
    ],
)
def test_normalize_body_treats_empty_scalars_as_text(raw, expected) -> None:
    assert normalize_body(raw) == expected


@pytest.mark.asyncio
async def test_non_get_requests_bypass_cache(make_dispatcher) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(201, json={"created": True})

    dispatcher = make_dispatcher(handler)

    for _ in range(2):
        outcome = await dispatcher.call_operation("create_widget", body={"name": "w"})
        assert outcome.success is True

    await dispatcher.call_operation("delete_widget", path_params={"id": "A1"})

    assert len(calls) == 3
    assert json.loads(calls[0].content) == {"name": "w"}
    assert calls[2].method == "DELETE"
    assert len(dispatcher.cache) == 0


@pytest.mark.asyncio
async def test_expired_entry_is_revalidated_with_etag(make_dispatcher, clock) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.headers.get("if-none-match") == '"v1"':
            return httpx.Response(304)
        return httpx.Response(200, json={"version": 1}, headers={"etag": '"v1"'})

    dispatcher = make_dispatcher(handler)
    first = await dispatcher.call_operation("list_widgets")
    key = dispatcher.cache.keys()[0]
    stored_text = dispatcher.cache.get(key).text

    clock.advance(61)
    second = await dispatcher.call_operation("list_widgets")

    assert len(seen) == 2
    assert seen[1].headers["if-none-match"] == '"v1"'
    assert second.success is True
    assert second.status_code == 304
    assert second.text == first.text
    entry = dispatcher.cache.get(key)
    assert entry.text == stored_text
    assert entry.expires_at == clock.now + 60
    assert dispatcher.cache.stats.revalidations == 1


@pytest.mark.asyncio
async def test_modified_response_replaces_entry(make_dispatcher, clock) -> None:
    versions = iter([("v1", 1), ("v2", 2)])

    def handler(request: httpx.Request) -> httpx.Response:
        tag, number = next(versions)
        return httpx.Response(200, json={"version": number}, headers={"etag": tag})

    dispatcher = make_dispatcher(handler)
    await dispatcher.call_operation("list_widgets")
    clock.advance(120)
    outcome = await dispatcher.call_operation("list_widgets")

    assert json.loads(outcome.text) == {"version": 2}
    entry = dispatcher.cache.get(dispatcher.cache.keys()[0])
    assert entry.etag == "v2"
    assert entry.expires_at == clock.now + 60


@pytest.mark.asyncio
async def test_entry_without_etag_is_refetched_unconditionally(make_dispatcher, clock) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"n": len(seen)})

    dispatcher = make_dispatcher(handler)
    await dispatcher.call_operation("list_widgets")
    clock.advance(60)
    outcome = await dispatcher.call_operation("list_widgets")

    assert "if-none-match" not in seen[1].headers
    assert json.loads(outcome.text) == {"n": 2}


@pytest.mark.asyncio
async def test_server_errors_are_retried_then_cached(make_dispatcher, sleeper) -> None:
    statuses = iter([503, 502, 200])

    def handler(request: httpx.Request) -> httpx.Response:
        status = next(statuses)
        return httpx.Response(status, json={"status": status})

    dispatcher = make_dispatcher(handler)
    outcome = await dispatcher.call_operation("list_widgets")

    assert outcome.success is True
    assert json.loads(outcome.text) == {"status": 200}
    assert sleeper.delays == [0.3, 0.6]
    assert len(dispatcher.cache) == 1


@pytest.mark.asyncio
async def test_exhausted_connection_failures_raise(make_dispatcher) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = make_dispatcher(handler, max_retries=1)

    with pytest.raises(TransportError) as excinfo:
        await dispatcher.call_operation("list_widgets")

    assert excinfo.value.attempts == 2
    assert "secret" not in str(excinfo.value)
    assert len(dispatcher.cache) == 0


@pytest.mark.asyncio
async def test_custom_query_credential_is_masked_in_errors_and_logs(make_dispatcher, caplog) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        raise httpx.ConnectError("refused", request=request)

    dispatcher = make_dispatcher(
        handler,
        secret="TOPSECRET",
        override=AuthLocation.QUERY,
        query_name="subscription",
        max_retries=1,
    )
    caplog.set_level(logging.DEBUG, logger="cdisc_adapter")

    with pytest.raises(TransportError) as excinfo:
        await dispatcher.call_operation("list_widgets")

    assert seen[0].url.params.get("subscription") == "TOPSECRET"
    assert "TOPSECRET" not in str(excinfo.value)
    assert "subscription=***REDACTED***" in excinfo.value.url
    assert "Retrying" in caplog.text
    assert "TOPSECRET" not in caplog.text


@pytest.mark.asyncio
async def test_redirect_loop_raises_transport_error_without_retry(widgets_document, sleeper) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(302, headers={"location": str(request.url)})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    dispatcher = Dispatcher(
        index=OperationIndex.from_documents([widgets_document]),
        auth=AuthResolver("secret"),
        executor=RetryingExecutor(client=client, max_retries=2, sleep=sleeper),
    )

    with pytest.raises(TransportError) as excinfo:
        await dispatcher.call_operation("list_widgets")

    assert isinstance(excinfo.value.__cause__, httpx.TooManyRedirects)
    assert excinfo.value.attempts == 1
    assert sleeper.delays == []
    assert len(calls) > client.max_redirects


@pytest.mark.asyncio
async def test_cache_disabled_always_fetches(make_dispatcher) -> None:
    calls: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    dispatcher = make_dispatcher(handler, use_cache=False)
    await dispatcher.call_operation("list_widgets")
    await dispatcher.call_operation("list_widgets")

    assert dispatcher.cache is None
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_array_query_parameters_repeat_in_order(make_dispatcher) -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    dispatcher = make_dispatcher(handler)
    await dispatcher.call_operation("list_widgets", query={"tags": ["x", "y"], "skip": None})

    assert seen[0].url.params.get_list("tags") == ["x", "y"]
    assert "skip" not in seen[0].url.params


@pytest.mark.asyncio
async def test_list_operations_filters_by_id_and_path(make_dispatcher) -> None:
    dispatcher = make_dispatcher(lambda request: httpx.Response(200))

    ids = {summary.operation_id for summary in dispatcher.list_operations("WIDGET")}
    assert ids == {"list_widgets", "create_widget", "get_widget", "delete_widget"}

    by_path = dispatcher.list_operations("/health")
    assert [summary.operation_id for summary in by_path] == ["get:/health"]
