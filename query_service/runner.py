"""
Runner: executes an ordered list of operation descriptors against one store
and collects a ``Report``.

- Strictly sequential; results are appended in submission order.
- A failing operation is recorded as ``failed`` and the run moves on.
- A lost connection aborts the run with ``StoreConnectionError``.
- Single attempt per operation: no retries, timeouts or backoff.
"""

import time
from typing import Any, Optional, Sequence

from query_service.cluster_manager import open_store
from query_service.db_executor import execute_operation
from query_service.descriptors import OperationDescriptor
from query_service.errors import OperationError, StoreConnectionError
from query_service.logger import logger
from query_service.results import OperationResult, OperationStatus, Report


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)


def run(store: Any, descriptors: Sequence[OperationDescriptor]) -> Report:
    """Run every descriptor against *store* and return one result per descriptor.

    The caller owns *store*; ``run_against`` is the variant that opens and
    releases the connection itself.
    """
    report = Report()
    total = len(descriptors)

    for position, descriptor in enumerate(descriptors, start=1):
        logger.info(
            "[RUN] %d/%d — %s (%s)", position, total, descriptor.name, descriptor.kind.value,
        )
        started = time.perf_counter()
        try:
            payload = execute_operation(store, descriptor)
        except StoreConnectionError as e:
            logger.error("[RUN] Aborting at %s: %s", descriptor.name, e)
            raise
        except OperationError as e:
            result = OperationResult(
                descriptor=descriptor,
                status=OperationStatus.FAILED,
                error=e.message,
                duration_ms=_elapsed_ms(started),
            )
            logger.warning("[RUN] %s failed: %s", descriptor.name, e.message)
        else:
            result = OperationResult(
                descriptor=descriptor,
                status=OperationStatus.OK,
                payload=payload,
                duration_ms=_elapsed_ms(started),
            )
            logger.info(
                "[RUN] %s ok — size=%d in %.1f ms",
                descriptor.name, result.size, result.duration_ms,
            )
        report.append(result)

    summary = report.summary()
    logger.info(
        "[RUN] Finished: %d ok, %d failed of %d",
        summary["succeeded"], summary["failed"], summary["total"],
    )
    return report


def run_against(
    mongo_uri: str,
    database_name: str,
    collection_name: str,
    descriptors: Sequence[OperationDescriptor],
    timeout_ms: Optional[int] = None,
) -> Report:
    """Open a connection, run *descriptors*, and always close the connection."""
    with open_store(mongo_uri, database_name, collection_name, timeout_ms) as store:
        return run(store, descriptors)
