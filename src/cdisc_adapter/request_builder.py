"""Request construction: path templating, query encoding, header merge."""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

import httpx

from .models import AuthDecision, AuthLocation, OperationDescriptor, PreparedRequest

DEFAULT_HEADERS = {"content-type": "application/json"}


class RequestBuilder:
    def build(
        self,
        descriptor: OperationDescriptor,
        path_params: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        auth: Optional[AuthDecision] = None,
    ) -> PreparedRequest:
        method = descriptor.method.upper()
        path = self._build_path(descriptor.path, path_params or {})
        url = descriptor.base_url.rstrip("/") + path
        query_string = self._build_query(query or {})
        if query_string:
            url = f"{url}?{query_string}"

        request_headers = httpx.Headers(DEFAULT_HEADERS)
        if auth and auth.present:
            if auth.location is AuthLocation.QUERY:
                url = set_query_param(url, auth.name, auth.secret)
            else:
                request_headers[auth.name] = auth.secret
        if headers:
            request_headers.update({str(k): str(v) for k, v in headers.items()})

        return PreparedRequest(
            method=method,
            url=url,
            headers=request_headers,
            body=self._build_body(method, body),
        )

    def _build_path(self, template: str, path_params: Mapping[str, Any]) -> str:
        path = template
        for key, value in path_params.items():
            token = f"{{{key}}}"
            if token in path:
                path = path.replace(token, quote(_stringify(value), safe="!*'()"))
        return path

    def _build_query(self, query: Mapping[str, Any]) -> str:
        pairs: List[Tuple[str, str]] = []
        for key, value in query.items():
            if value is None:
                continue
            items = value if isinstance(value, (list, tuple)) else [value]
            for item in items:
                if item is None:
                    continue
                pairs.append((str(key), _stringify(item)))
        return urlencode(pairs)

    def _build_body(self, method: str, body: Any) -> Optional[str]:
        if body is None or method == "GET":
            return None
        if isinstance(body, str):
            return body
        if isinstance(body, bytes):
            return body.decode("utf-8")
        return json.dumps(body)


def set_query_param(url: str, name: str, value: str) -> str:
    parts = urlsplit(url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    updated: List[Tuple[str, str]] = []
    replaced = False
    for key, current in pairs:
        if key != name:
            updated.append((key, current))
        elif not replaced:
            updated.append((key, value))
            replaced = True
    if not replaced:
        updated.append((name, value))
    return urlunsplit(parts._replace(query=urlencode(updated)))


def cache_key(url: str, credential_param: str) -> str:
    """Canonical URL with the credential query parameter removed."""
    parts = urlsplit(url)
    pairs = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if key != credential_param
    ]
    return urlunsplit(parts._replace(query=urlencode(pairs), fragment=""))


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)
