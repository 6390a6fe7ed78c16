"""HTTP execution with per-attempt deadlines and retry on 5xx/transport failures."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Union

import httpx

from .auth import DEFAULT_CREDENTIAL_NAME
from .errors import TransportError
from .logging import redact_url
from .models import PreparedRequest

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (httpx.TransportError, asyncio.TimeoutError)
# redirect loops, undecodable bodies and malformed URLs fail the same way every time
TERMINAL_ERRORS = (httpx.RequestError, httpx.InvalidURL)


@dataclass
class ExecutorStats:
    attempts: int = 0
    retries: int = 0
    transport_failures: int = 0


class RetryingExecutor:
    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = 2,
        backoff_ms: int = 300,
        default_timeout_ms: int = 30000,
        overall_deadline_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_retries = max(0, max_retries)
        self.backoff_ms = max(0, backoff_ms)
        self.default_timeout_ms = default_timeout_ms
        self.overall_deadline_ms = overall_deadline_ms
        self.stats = ExecutorStats()
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # attempt deadlines are enforced by execute(), not by httpx
            self._client = httpx.AsyncClient(timeout=None, follow_redirects=True)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def execute(
        self,
        request: PreparedRequest,
        timeout_ms: Optional[Union[int, float]] = None,
        secret_params: Iterable[str] = (),
    ) -> httpx.Response:
        """
        Send the request, retrying 5xx responses and transport failures.

        Returns the first non-5xx response, or the last response once retries
        run out. Raises TransportError only when no response arrived at all.
        Other request errors (redirect loops, bad URLs) end the loop without
        retrying. The retry after attempt k sleeps ``backoff_ms * k``, so the
        first retry waits one base interval. ``secret_params`` names query
        parameters to mask in logs and errors.
        """
        loop = asyncio.get_running_loop()
        attempt_timeout = max(1, timeout_ms or self.default_timeout_ms) / 1000
        deadline: Optional[float] = None
        if self.overall_deadline_ms:
            deadline = loop.time() + self.overall_deadline_ms / 1000

        client = await self._get_client()
        safe_url = redact_url(request.url, (DEFAULT_CREDENTIAL_NAME, *secret_params))
        response: Optional[httpx.Response] = None
        last_error: Optional[BaseException] = None
        attempt = 0

        while True:
            attempt += 1
            timeout = attempt_timeout
            if deadline is not None:
                timeout = min(timeout, deadline - loop.time())
            self.stats.attempts += 1
            try:
                response = await asyncio.wait_for(
                    client.request(
                        request.method,
                        request.url,
                        headers=request.headers,
                        content=request.body,
                    ),
                    timeout=timeout,
                )
            except RETRYABLE_ERRORS as exc:
                last_error = exc
                self.stats.transport_failures += 1
                reason = _describe(exc)
            except TERMINAL_ERRORS as exc:
                last_error = exc
                self.stats.transport_failures += 1
                logger.warning(
                    "Request failed, not retrying. url=%s reason=%s", safe_url, _describe(exc)
                )
                break
            else:
                if not 500 <= response.status_code <= 599:
                    return response
                reason = f"status {response.status_code}"

            if attempt > self.max_retries:
                break
            backoff = self.backoff_ms * attempt / 1000
            if deadline is not None and loop.time() + backoff >= deadline:
                logger.warning("Call deadline reached after %s attempt(s): %s", attempt, safe_url)
                break

            self.stats.retries += 1
            logger.warning(
                "Request failed (attempt %s/%s). Retrying in %ss. url=%s reason=%s",
                attempt,
                self.max_retries + 1,
                backoff,
                safe_url,
                reason,
            )
            await self._sleep(backoff)

        if response is not None:
            return response
        raise TransportError(safe_url, attempt, _describe(last_error)) from last_error


def _describe(exc: Optional[BaseException]) -> str:
    if exc is None:
        return ""
    if isinstance(exc, asyncio.TimeoutError):
        return "attempt timed out"
    return str(exc) or type(exc).__name__
