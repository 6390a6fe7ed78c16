"""MCP server setup for the CDISC Library adapter."""

import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastmcp import FastMCP
from fastmcp.exceptions import ToolError
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .actions import NAMED_ACTIONS, NamedAction
from .config import Settings
from .dispatcher import Dispatcher
from .models import CallOutcome

logger = logging.getLogger(__name__)


class ListOperationsInput(BaseModel):
    filter: Optional[str] = Field(default=None, description="Substring to filter operationId or path")


class CallOperationInput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    operation_id: str
    path_params: Dict[str, Any] = Field(default_factory=dict)
    query: Dict[str, Any] = Field(default_factory=dict)
    body: Union[Dict[str, Any], list, str, None] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    timeout_ms: Optional[float] = None


async def build_server(
    settings: Settings, dispatcher: Optional[Dispatcher] = None
) -> tuple[FastMCP, object | None]:
    dispatcher = dispatcher or Dispatcher.from_settings(settings)

    mcp = FastMCP(settings.service_name, instructions=_instructions())
    app = _get_http_app(mcp, settings)
    _attach_healthcheck(app, dispatcher)

    mcp.tool(
        name="list_operations",
        description="List available OpenAPI operations across loaded specs.",
    )(_list_operations_handler(dispatcher))
    mcp.tool(
        name="call_operation",
        description=(
            "Invoke an OpenAPI operation by operationId. Supports path, query, and body "
            "inputs. Handles API key via env CDISC_API_KEY."
        ),
    )(_call_operation_handler(dispatcher))

    for action in NAMED_ACTIONS.values():
        mcp.tool(name=action.name, description=action.description)(
            _action_handler(dispatcher, action)
        )
        logger.info("Registered tool: %s -> %s", action.name, action.operation_id)

    return mcp, app


def _list_operations_handler(dispatcher: Dispatcher) -> Callable[[Any], Awaitable[Any]]:
    async def list_operations(payload: ListOperationsInput) -> list:
        return [
            summary.model_dump(by_alias=True)
            for summary in dispatcher.list_operations(payload.filter)
        ]

    return list_operations


def _call_operation_handler(dispatcher: Dispatcher) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
    async def call_operation(payload: CallOperationInput) -> Dict[str, Any]:
        outcome = await dispatcher.call_operation(
            payload.operation_id,
            path_params=payload.path_params,
            query=payload.query,
            body=payload.body,
            headers=payload.headers,
            timeout_ms=payload.timeout_ms,
        )
        return _tool_result(outcome)

    return call_operation


def _action_handler(
    dispatcher: Dispatcher, action: NamedAction
) -> Callable[[Any], Awaitable[Dict[str, Any]]]:
    async def handler(payload: action.input_model) -> Dict[str, Any]:
        args = action.arguments(payload)
        outcome = await dispatcher.call_operation(
            args.operation_id, path_params=args.path_params, query=args.query
        )
        return _tool_result(outcome)

    handler.__name__ = "".join(ch if ch.isalnum() else "_" for ch in action.name)
    return handler


def _tool_result(outcome: CallOutcome) -> Dict[str, Any]:
    # failed upstream calls surface as MCP-level errors carrying the upstream body
    if not outcome.success:
        raise ToolError(outcome.text or f"Upstream returned HTTP {outcome.status_code}")
    return outcome.to_dict()


def _attach_healthcheck(app, dispatcher: Dispatcher) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return

    async def healthcheck(_request):  # type: ignore[no-untyped-def]
        from starlette.responses import JSONResponse

        cache = dispatcher.cache.stats.to_dict() if dispatcher.cache else None
        return JSONResponse(
            {"status": "ok", "operations": len(dispatcher.index), "cache": cache}
        )

    app.add_route("/health", healthcheck, methods=["GET"])


def _instructions() -> str:
    return (
        "CDISC Library adapter. "
        "Use list_operations to discover OpenAPI operations and call_operation to invoke "
        "them; the named bc.* / sdtm.* / search.* tools are shortcuts for common calls."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.adapter_transport.lower()
    if transport in {"http"}:
        app = mcp.http_app(transport="http", stateless_http=True, json_response=True)
        _attach_cors(app)
        return app
    if transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(
            transport="streamable-http", stateless_http=True, json_response=True
        )
        _attach_cors(app)
        return app
    if transport in {"sse"}:
        app = mcp.http_app(transport="sse")
        _attach_cors(app)
        return app
    return None


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    if not app:
        return
    from starlette.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
