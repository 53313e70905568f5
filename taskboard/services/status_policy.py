"""
Status reconciliation policy applied when a task lands in a column.

The policy is a pure function of the task's status before the move and the
destination column. MoveCoordinator accepts any function with the same
signature, so a different workflow can be plugged in without touching the
shifting logic.
"""

from typing import Callable

from taskboard.models import Column, TaskStatus

StatusPolicy = Callable[[TaskStatus, Column], TaskStatus]


def reconcile_status(original_status: TaskStatus, destination: Column) -> TaskStatus:
    """
    Derive a task's status from the column it is moved into.

    Rules, first match wins:
    - terminal destination: DONE
    - leaving DONE for a non-terminal column: IN_PROGRESS
    - TODO entering any non-terminal column: IN_PROGRESS (work has started)
    - otherwise the status is kept

    Args:
        original_status: Status before the move
        destination: Column the task lands in

    Returns:
        The status the task should have after the move
    """
    if destination.is_terminal:
        return TaskStatus.DONE
    if original_status == TaskStatus.DONE:
        return TaskStatus.IN_PROGRESS
    if original_status == TaskStatus.TODO:
        return TaskStatus.IN_PROGRESS
    return original_status


def keep_status(original_status: TaskStatus, destination: Column) -> TaskStatus:
    """
    Alternative policy: only enforce the terminal-column rule.

    Moving a TODO task does not start it; leaving a terminal column still
    reopens a DONE task.
    """
    if destination.is_terminal:
        return TaskStatus.DONE
    if original_status == TaskStatus.DONE:
        return TaskStatus.IN_PROGRESS
    return original_status
