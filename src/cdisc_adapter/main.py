"""CLI entry point for the CDISC Library adapter."""

from __future__ import annotations

import asyncio
import logging

import uvicorn

from .config import get_settings
from .dispatcher import Dispatcher
from .logging import configure_logging
from .server import build_server

logger = logging.getLogger(__name__)


async def _run() -> None:
    settings = get_settings()
    configure_logging(settings.adapter_log_level, debug=settings.cdisc_cache_debug)

    dispatcher = Dispatcher.from_settings(settings)
    mcp, app = await build_server(settings, dispatcher)
    transport = settings.adapter_transport.lower()

    try:
        if transport in {"http", "streamable-http", "streamablehttp", "sse"}:
            if not app:
                raise RuntimeError(f"HTTP app unavailable for transport={transport}")
            config = uvicorn.Config(app, host=settings.adapter_host, port=settings.adapter_port)
            server = uvicorn.Server(config)
            await server.serve()
            return
        logger.info("Starting stdio transport")
        await mcp.run_stdio_async()
    finally:
        await dispatcher.aclose()


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
