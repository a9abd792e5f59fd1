"""
Run results: one ``OperationResult`` per descriptor, collected in a
``Report`` that preserves submission order.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional

from query_service.descriptors import OperationDescriptor


class OperationStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


@dataclass(frozen=True)
class ExplainMetrics:
    """Query-planner diagnostics normalized from ``executionStats``."""

    execution_time_ms: int
    keys_examined: int
    docs_examined: int
    returned: int = 0
    stage: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "execution_time_ms": self.execution_time_ms,
            "keys_examined": self.keys_examined,
            "docs_examined": self.docs_examined,
            "returned": self.returned,
            "stage": self.stage,
        }


@dataclass(frozen=True)
class OperationResult:
    descriptor: OperationDescriptor
    status: OperationStatus
    payload: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is OperationStatus.OK

    @property
    def size(self) -> int:
        """Documents returned, documents affected, or 1 for a single
        record (index name, explain metrics).  0 when failed."""
        if not self.ok or self.payload is None:
            return 0
        if isinstance(self.payload, list):
            return len(self.payload)
        if isinstance(self.payload, bool):
            return int(self.payload)
        if isinstance(self.payload, int):
            return self.payload
        return 1


@dataclass
class Report:
    results: List[OperationResult] = field(default_factory=list)

    def append(self, result: OperationResult) -> None:
        self.results.append(result)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[OperationResult]:
        return iter(self.results)

    def __getitem__(self, index: int) -> OperationResult:
        return self.results[index]

    @property
    def succeeded(self) -> List[OperationResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[OperationResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def summary(self) -> Dict[str, Any]:
        return {
            "total": len(self.results),
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "failed_operations": [r.descriptor.name for r in self.failed],
            "duration_ms": round(sum(r.duration_ms for r in self.results), 3),
        }
