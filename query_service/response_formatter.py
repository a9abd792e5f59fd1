"""
Response formatter: turns a ``Report`` into a JSON-safe dict (API / --json)
or into console text.
"""

import json
from typing import Any, Dict, List, Optional, Sequence, Tuple

from query_service.descriptors import OperationKind
from query_service.results import ExplainMetrics, OperationResult, Report


def _sanitise_value(obj: Any) -> Any:
    """Recursively convert non-JSON-safe types to safe representations."""
    if isinstance(obj, ExplainMetrics):
        return obj.as_dict()
    if isinstance(obj, dict):
        return {str(k): _sanitise_value(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitise_value(item) for item in obj]
    if isinstance(obj, bytes):
        try:
            return obj.decode("utf-8")
        except (UnicodeDecodeError, ValueError):
            return f"[binary {len(obj)} bytes]"
    if isinstance(obj, (int, float, str, bool, type(None))):
        return obj
    # datetime, ObjectId, Decimal128, etc.
    return str(obj)


def format_result(result: OperationResult) -> Dict[str, Any]:
    return {
        "name": result.descriptor.name,
        "kind": result.descriptor.kind.value,
        "status": result.status.value,
        "size": result.size,
        "duration_ms": result.duration_ms,
        "payload": _sanitise_value(result.payload),
        "error": result.error,
    }


def format_report(report: Report) -> Dict[str, Any]:
    """Build the JSON response for a run."""
    return {
        "summary": report.summary(),
        "results": [format_result(r) for r in report],
    }


# ---------------------- CONSOLE TEXT ----------------------


def _payload_lines(result: OperationResult) -> List[str]:
    kind = result.descriptor.kind
    payload = result.payload

    if kind is OperationKind.EXPLAIN:
        return [
            f"Execution Time (ms): {payload.execution_time_ms}",
            f"Total Keys Examined: {payload.keys_examined}",
            f"Total Docs Examined: {payload.docs_examined}",
        ]
    if kind is OperationKind.UPDATE:
        return [f"Update complete ({payload} modified)."]
    if kind is OperationKind.DELETE:
        return [f"Delete complete ({payload} removed)."]
    if kind is OperationKind.CREATE_INDEX:
        return [f"Index ready: {payload}"]
    if not payload:
        return ["(no documents)"]
    return [json.dumps(doc, default=str) for doc in _sanitise_value(payload)]


def _result_lines(position: int, result: OperationResult) -> List[str]:
    lines = [f"{position}. {result.descriptor.name}:"]
    if result.ok:
        lines.extend(_payload_lines(result))
    else:
        lines.append(f"FAILED: {result.error}")
    lines.append("")
    return lines


def render_text(report: Report, sections: Optional[Sequence[Tuple[str, int]]] = None) -> str:
    """One block per operation, then a summary line.

    *sections* is an optional list of ``(heading, operation_count)`` pairs
    covering the report in order; each group gets a ``--- heading ---`` line
    and its own numbering.  Without it, operations are numbered in run order.
    """
    lines: List[str] = []
    if sections is None:
        for position, result in enumerate(report, start=1):
            lines.extend(_result_lines(position, result))
    else:
        if sum(size for _, size in sections) != len(report):
            raise ValueError("Sections do not cover the report")
        results = iter(report)
        for heading, size in sections:
            lines.append(f"--- {heading} ---")
            for position in range(1, size + 1):
                lines.extend(_result_lines(position, next(results)))

    summary = report.summary()
    lines.append(
        f"{summary['succeeded']} of {summary['total']} operations succeeded"
        + (f"; failed: {', '.join(summary['failed_operations'])}" if summary["failed"] else "")
    )
    return "\n".join(lines)
