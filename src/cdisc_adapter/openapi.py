"""OpenAPI document loader and operation parser."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

import yaml

from .models import AuthScheme, OperationDescriptor, SecurityScheme


logger = logging.getLogger(__name__)

HTTP_METHODS = {"get", "put", "post", "delete", "options", "head", "patch", "trace"}
_SCHEME_NAME_LOCATIONS = {"apiKeyHeader": "header", "apiKeyQuery": "query"}


@dataclass(frozen=True)
class InterfaceDocument:
    name: str
    base_url: str
    schemes: Tuple[SecurityScheme, ...]
    operations: Tuple[OperationDescriptor, ...]
    servers: Tuple[Dict[str, Any], ...] = field(default=())


class OpenAPILoader:
    def __init__(
        self,
        directory: str | Path,
        filenames: Iterable[str],
        default_base_url: str = "https://api.library.cdisc.org",
    ) -> None:
        self.directory = Path(directory)
        self.filenames = list(filenames)
        self.default_base_url = default_base_url

    def load_documents(self) -> List[InterfaceDocument]:
        documents: List[InterfaceDocument] = []
        for filename in self.filenames:
            spec = self.load_spec(self.directory / filename)
            if spec is None:
                continue
            document = self.parse_document(filename, spec)
            logger.info(
                "Loaded %s: %s operations, base_url=%s",
                filename,
                len(document.operations),
                document.base_url,
            )
            documents.append(document)
        return documents

    def load_spec(self, path: Path) -> Optional[Dict[str, Any]]:
        if not path.exists():
            logger.info("OpenAPI document not found, skipping: %s", path)
            return None
        try:
            content = path.read_text(encoding="utf-8")
            if path.suffix.lower() == ".json":
                data = json.loads(content)
            else:
                data = yaml.safe_load(content)
        except (OSError, ValueError, yaml.YAMLError) as exc:
            logger.warning("Failed to read OpenAPI document %s: %s", path, exc)
            return None
        if not isinstance(data, dict):
            logger.warning("OpenAPI document is not a mapping: %s", path)
            return None
        return data

    def parse_document(self, name: str, spec: Dict[str, Any]) -> InterfaceDocument:
        base_url = self.extract_server_url(spec) or self.default_base_url
        schemes = self.extract_security_schemes(spec)
        servers = tuple(s for s in spec.get("servers") or [] if isinstance(s, dict))
        operations = tuple(
            self.extract_operations(spec, base_url=base_url, schemes=schemes, source=name)
        )
        return InterfaceDocument(
            name=name,
            base_url=base_url,
            schemes=schemes,
            operations=operations,
            servers=servers,
        )

    def extract_operations(
        self,
        spec: Dict[str, Any],
        base_url: str,
        schemes: Tuple[SecurityScheme, ...] = (),
        source: str = "",
    ) -> List[OperationDescriptor]:
        operations: List[OperationDescriptor] = []
        paths = spec.get("paths") or {}
        servers = tuple(s for s in spec.get("servers") or [] if isinstance(s, dict))

        for path, methods in paths.items():
            if not isinstance(methods, dict):
                continue
            for method, operation in methods.items():
                if method.lower() not in HTTP_METHODS or not isinstance(operation, dict):
                    continue
                operation_id = operation.get("operationId") or self._fallback_operation_id(
                    method, path
                )
                operations.append(
                    OperationDescriptor(
                        operation_id=operation_id,
                        method=method.upper(),
                        path=path,
                        base_url=base_url,
                        security=schemes,
                        summary=operation.get("summary"),
                        tags=tuple(operation.get("tags") or ()),
                        servers=servers,
                        source=source,
                    )
                )

        return operations

    def extract_security_schemes(self, spec: Dict[str, Any]) -> Tuple[SecurityScheme, ...]:
        components = spec.get("components") or {}
        declared = components.get("securitySchemes") or {}
        schemes: List[SecurityScheme] = []
        for name, definition in declared.items():
            schemes.append(SecurityScheme(name=name, kind=self._classify_scheme(name, definition)))
        return tuple(schemes)

    def extract_server_url(self, spec: Dict[str, Any]) -> Optional[str]:
        servers = spec.get("servers") or []
        if not servers:
            return None
        server = servers[0]
        if isinstance(server, dict):
            return server.get("url")
        return None

    def _classify_scheme(self, name: str, definition: Any) -> AuthScheme:
        if not isinstance(definition, dict):
            definition = {}
        if definition.get("type", "apiKey") != "apiKey":
            return AuthScheme.NONE
        # CDISC documents may declare bare apiKeyHeader / apiKeyQuery entries
        location = definition.get("in") or _SCHEME_NAME_LOCATIONS.get(name)
        if location == "header":
            return AuthScheme.HEADER
        if location == "query":
            return AuthScheme.QUERY
        return AuthScheme.NONE

    def _fallback_operation_id(self, method: str, path: str) -> str:
        return f"{method.lower()}:{path}"
