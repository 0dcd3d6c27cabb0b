"""
Custom exceptions for entityquery.
"""

from typing import Optional


class EntityQueryError(Exception):
    """Base exception for entityquery."""
    pass


class InvalidConditionError(EntityQueryError, ValueError):
    """Operator and operand do not form a valid condition."""
    pass


class InvalidQueryError(EntityQueryError):
    """Query is structurally invalid and cannot be compiled."""
    pass


class UnsupportedOperationError(EntityQueryError):
    """Operation is not defined for the given query plan."""
    pass


class StoreError(EntityQueryError):
    """
    Failure reported by the backing entity store.

    The executor tags the error with the operation that was running
    (``find_all``, ``find_one``, ``find_by_id`` or ``count_all``) and
    otherwise propagates it unchanged.
    """

    def __init__(self, message: str = "", operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation

    def __str__(self) -> str:
        message = super().__str__()
        if self.operation:
            return f"{self.operation}: {message}"
        return message


class CacheError(EntityQueryError):
    """Error raised by the result cache. Treated as a miss by the executor."""
    pass
