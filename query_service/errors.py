"""
Error taxonomy for a run.

- ``OperationError``: one descriptor failed. The runner records it on the
  operation's result and moves on to the next descriptor.
- ``StoreConnectionError``: the store is unreachable. The run aborts, the
  connection is released, and the error reaches the caller.
"""

from typing import Optional


class OperationError(Exception):
    """A single operation failed against a reachable store."""

    def __init__(self, operation: str, message: str, cause: Optional[BaseException] = None):
        super().__init__(f"{operation}: {message}")
        self.operation = operation
        self.message = message
        self.cause = cause


class StoreConnectionError(ConnectionError):
    """The store could not be reached (at connect time or mid-run)."""
