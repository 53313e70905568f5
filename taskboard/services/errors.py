"""
Exception hierarchy for board ordering and task state operations.

NotFound and InvalidArgument errors are raised before any position is
shifted. ConcurrencyConflictError means the whole operation must be re-run
from a fresh read.
"""


class BoardError(Exception):
    """Base exception for board engine errors."""
    pass


class NotFoundError(BoardError):
    """Raised when an id does not resolve to a stored record."""
    pass


class TaskNotFoundError(NotFoundError):
    """Raised when a task is not found."""
    pass


class ColumnNotFoundError(NotFoundError):
    """Raised when a column is not found."""
    pass


class BoardNotFoundError(NotFoundError):
    """Raised when a board is not found."""
    pass


class InvalidArgumentError(BoardError):
    """Raised when a request is well-formed but cannot be applied."""
    pass


class CrossBoardMoveError(InvalidArgumentError):
    """Raised when a task is moved to a column on another board."""
    pass


class InvalidPositionError(InvalidArgumentError):
    """Raised when a target position is negative or past the container end."""
    pass


class ColumnNotEmptyError(BoardError):
    """Raised when deleting a column that still holds tasks."""
    pass


class ConcurrencyConflictError(BoardError):
    """Raised when the store reports a conflicting concurrent write."""
    pass
