"""
Database executor: runs one operation descriptor against a store and
normalizes the payload.

Payload shapes by kind:

- find / aggregate  → list of documents
- update / delete   → number of documents changed / removed
- create_index      → index name
- explain           → ``ExplainMetrics`` built from ``executionStats``

Failures are translated into the two error kinds the runner understands:
connection loss becomes ``StoreConnectionError``; anything else the store
or driver rejects becomes ``OperationError``.
"""

from typing import Any, Dict

from pymongo.errors import ConnectionFailure

from query_service.descriptors import OperationDescriptor, OperationKind, normalize_key_spec
from query_service.errors import OperationError, StoreConnectionError
from query_service.results import ExplainMetrics


# ---------------------- HELPERS ----------------------


def _find_arguments(parameters: Dict[str, Any]) -> Dict[str, Any]:
    sort = parameters.get("sort")
    return {
        "mongo_filter": parameters.get("filter", {}),
        "projection": parameters.get("projection"),
        "sort": normalize_key_spec(sort) if sort else None,
        "limit": parameters.get("limit", 0),
        "skip": parameters.get("skip", 0),
    }


def _winning_stage(explanation: Dict[str, Any]) -> Any:
    winning = explanation.get("queryPlanner", {}).get("winningPlan", {})
    # slot-based engine nests the classic plan under ``queryPlan``
    return winning.get("stage") or winning.get("queryPlan", {}).get("stage")


def normalize_explain(explanation: Dict[str, Any]) -> ExplainMetrics:
    """Reduce a raw explain document to the metrics a report needs."""
    stats = explanation.get("executionStats")
    if not isinstance(stats, dict):
        raise ValueError("Explain output has no executionStats section")
    return ExplainMetrics(
        execution_time_ms=int(stats.get("executionTimeMillis", 0)),
        keys_examined=int(stats.get("totalKeysExamined", 0)),
        docs_examined=int(stats.get("totalDocsExamined", 0)),
        returned=int(stats.get("nReturned", 0)),
        stage=_winning_stage(explanation),
    )


# ---------------------- DISPATCH ----------------------


def _dispatch(store: Any, kind: OperationKind, parameters: Dict[str, Any]) -> Any:
    if kind is OperationKind.FIND:
        return store.find(**_find_arguments(parameters))

    if kind is OperationKind.EXPLAIN:
        return normalize_explain(store.explain(**_find_arguments(parameters)))

    if kind is OperationKind.UPDATE:
        return store.update_one(
            parameters["filter"],
            parameters["update"],
            upsert=parameters.get("upsert", False),
        )

    if kind is OperationKind.DELETE:
        return store.delete_one(parameters["filter"])

    if kind is OperationKind.AGGREGATE:
        return store.aggregate(parameters["pipeline"])

    if kind is OperationKind.CREATE_INDEX:
        options = {k: v for k, v in parameters.items() if k != "keys"}
        return store.create_index(normalize_key_spec(parameters["keys"], what="keys"), **options)

    raise ValueError(f"Unsupported operation kind: {kind}")


def execute_operation(store: Any, descriptor: OperationDescriptor) -> Any:
    """Execute *descriptor* once against *store* and return its payload.

    Raises ``StoreConnectionError`` when the store is unreachable and
    ``OperationError`` for every other failure.
    """
    parameters = descriptor.plain_parameters()
    try:
        return _dispatch(store, descriptor.kind, parameters)
    except ConnectionFailure as e:
        raise StoreConnectionError(f"Store unreachable during '{descriptor.name}': {e}") from e
    except Exception as e:
        raise OperationError(descriptor.name, str(e) or type(e).__name__, cause=e) from e
