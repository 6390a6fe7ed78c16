"""Adapter exceptions.

Only resolution failures and exhausted transport retries are raised out of the
dispatcher; HTTP error statuses come back as normal outcomes.
"""

from __future__ import annotations


class AdapterError(Exception):
    """Base exception for adapter errors."""


class ResolutionError(AdapterError):
    """The requested operation id is not in any loaded interface document."""

    def __init__(self, operation_id: str):
        self.operation_id = operation_id
        super().__init__(f"operationId not found: {operation_id}")


class TransportError(AdapterError):
    """No HTTP response could be obtained within the retry budget."""

    def __init__(self, url: str, attempts: int, reason: str = ""):
        self.url = url
        self.attempts = attempts
        message = f"Request to {url} failed after {attempts} attempt(s)"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class UnknownActionError(AdapterError):
    """A named convenience action was requested that does not exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")
