"""
Query service: runs ordered lists of MongoDB operation descriptors and
reports each outcome uniformly.
"""

from query_service.descriptors import OperationDescriptor, OperationKind
from query_service.errors import OperationError, StoreConnectionError
from query_service.results import ExplainMetrics, OperationResult, OperationStatus, Report
from query_service.runner import run, run_against

__version__ = "1.0.0"

__all__ = [
    "ExplainMetrics",
    "OperationDescriptor",
    "OperationError",
    "OperationKind",
    "OperationResult",
    "OperationStatus",
    "Report",
    "StoreConnectionError",
    "run",
    "run_against",
]
