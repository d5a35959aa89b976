"""
Dependency resolver.

Computes the earliest permissible start of a task from its predecessors'
resolved dates and the relationship type (FS / SS / FF / SF) with lag.
"""
from datetime import date
from typing import Callable, Dict, Iterable, Optional, Tuple

from app.scheduling.records import Task, TaskDependency
from app.scheduling.workdays import WorkCalendar

# (start, end) for a predecessor, or None if it has no dates yet
DateRange = Optional[Tuple[date, date]]


def constraint_start(
    dependency: TaskDependency,
    predecessor_start: Optional[date],
    predecessor_end: Optional[date],
    duration: int,
    calendar: WorkCalendar,
) -> Optional[date]:
    """
    Earliest start a single dependency allows.

    FS: predecessor end + (1 + lag) work days
    SS: predecessor start + lag work days
    FF: (predecessor end + lag) - (duration - 1) work days
    SF: (predecessor start + lag) - (duration - 1) work days

    Returns:
        date, or None when the predecessor is unresolved
    """
    if predecessor_start is None or predecessor_end is None:
        return None

    lag = dependency.lag_days
    span = max(1, duration) - 1

    if dependency.type == 'SS':
        return calendar.add_work_days(predecessor_start, lag)
    if dependency.type == 'FF':
        return calendar.subtract_work_days(calendar.add_work_days(predecessor_end, lag), span)
    if dependency.type == 'SF':
        return calendar.subtract_work_days(calendar.add_work_days(predecessor_start, lag), span)
    return calendar.add_work_days(predecessor_end, 1 + lag)


def earliest_start_from_dependencies(
    task: Task,
    resolve_dates: Callable[[str], DateRange],
    calendar: WorkCalendar,
    floor: Optional[date] = None,
) -> Optional[date]:
    """
    Maximum of all dependency constraints (and the optional floor).

    Args:
        task: Task whose dependencies are evaluated
        resolve_dates: Looks up (start, end) for a predecessor id
        calendar: Active work calendar
        floor: Lower bound applied in addition to the dependencies

    Returns:
        date: Earliest permissible start, or None if nothing constrains the task
    """
    earliest = floor
    for dependency in task.dependencies:
        dates = resolve_dates(dependency.depends_on_task_id)
        if not dates:
            continue
        candidate = constraint_start(dependency, dates[0], dates[1], task.duration, calendar)
        if candidate is None:
            continue
        if earliest is None or candidate > earliest:
            earliest = candidate
    return earliest


def scheduled_dates_lookup(tasks: Iterable[Task]) -> Callable[[str], DateRange]:
    """Resolver over the tasks' current scheduled dates."""
    by_id: Dict[str, Task] = {t.id: t for t in tasks}

    def resolve(task_id: str) -> DateRange:
        predecessor = by_id.get(task_id)
        if predecessor is None or not predecessor.has_dates:
            return None
        return predecessor.scheduled_start, predecessor.scheduled_end

    return resolve


def compute_earliest_start(task: Task, tasks: Iterable[Task], calendar: WorkCalendar) -> Optional[date]:
    """Earliest permissible start of `task` given the other tasks' current dates."""
    return earliest_start_from_dependencies(task, scheduled_dates_lookup(tasks), calendar)


def direct_dependents(task_id: str, tasks: Iterable[Task]):
    """Tasks that list `task_id` among their dependencies."""
    return [t for t in tasks if any(d.depends_on_task_id == task_id for d in t.dependencies)]
