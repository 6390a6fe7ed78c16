"""Logging helpers with redaction."""

from __future__ import annotations

import logging
import re
import sys
from typing import Any, Dict, Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit


_SENSITIVE_KEYS = re.compile(r"(token|secret|api[_-]?key|password|authorization)", re.IGNORECASE)
_REDACTED = "***REDACTED***"


def configure_logging(level: str, debug: bool = False) -> None:
    # stdout carries the stdio transport, so logs go to stderr
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )
    if debug:
        logging.getLogger("cdisc_adapter").setLevel(logging.DEBUG)


def redact_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    redacted: Dict[str, Any] = {}
    for key, value in payload.items():
        if _SENSITIVE_KEYS.search(str(key)):
            redacted[key] = _REDACTED
        elif isinstance(value, Mapping):
            redacted[key] = redact_payload(value)
        else:
            redacted[key] = value
    return redacted


def redact_url(url: str, params: Iterable[str] = ("api-key",)) -> str:
    hidden = set(params)
    parts = urlsplit(url)
    if not parts.query:
        return url
    query = [
        (key, _REDACTED if key in hidden or _SENSITIVE_KEYS.search(key) else value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    return urlunsplit(parts._replace(query=urlencode(query, safe="*")))
