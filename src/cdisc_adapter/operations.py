"""Read-only index of operations across the loaded interface documents."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from .errors import ResolutionError
from .models import OperationDescriptor, OperationSummary
from .openapi import InterfaceDocument


logger = logging.getLogger(__name__)


class OperationIndex:
    def __init__(self, operations: Mapping[str, OperationDescriptor]) -> None:
        self._operations: Mapping[str, OperationDescriptor] = MappingProxyType(dict(operations))

    @classmethod
    def from_documents(cls, documents: Iterable[InterfaceDocument]) -> "OperationIndex":
        operations: Dict[str, OperationDescriptor] = {}
        for document in documents:
            for descriptor in document.operations:
                existing = operations.get(descriptor.operation_id)
                if existing is not None:
                    logger.debug(
                        "Duplicate operationId %s in %s; keeping %s",
                        descriptor.operation_id,
                        document.name,
                        existing.source,
                    )
                    continue
                operations[descriptor.operation_id] = descriptor
        return cls(operations)

    def resolve(self, operation_id: str) -> OperationDescriptor:
        descriptor = self._operations.get(operation_id)
        if descriptor is None:
            raise ResolutionError(operation_id)
        return descriptor

    def list_operations(self, filter: Optional[str] = None) -> List[OperationSummary]:
        needle = (filter or "").lower()
        results: List[OperationSummary] = []
        for operation_id, descriptor in self._operations.items():
            if needle and needle not in operation_id.lower() and needle not in descriptor.path.lower():
                continue
            results.append(
                OperationSummary(
                    operation_id=operation_id,
                    method=descriptor.method,
                    path=descriptor.path,
                    base_url=descriptor.base_url,
                    summary=descriptor.summary,
                    tags=list(descriptor.tags),
                    servers=[dict(server) for server in descriptor.servers],
                )
            )
        return results

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._operations

    def __iter__(self) -> Iterator[str]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)
