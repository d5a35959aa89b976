"""
Subcontractor assignment.

Greedy, capacity- and availability-aware assignment of subcontractors to
scheduled tasks. Load from tasks already scheduled on other lots seeds a
per-sub, per-date job count so new assignments respect max_concurrent_lots.
"""
from collections import defaultdict
from dataclasses import replace
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from app.logging_config import get_logger
from app.scheduling.config import SchedulingConfig
from app.scheduling.records import Subcontractor, Task

logger = get_logger(__name__)

LoadIndex = Dict[Tuple[str, date], int]


def _span_dates(start: date, end: date):
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def build_load_index(existing_tasks: Iterable[Task]) -> LoadIndex:
    """Job count per (sub_id, date) from every task with a sub and both dates."""
    index: LoadIndex = defaultdict(int)
    for task in existing_tasks or []:
        if not task.sub_id or not task.has_dates:
            continue
        for day in _span_dates(task.scheduled_start, task.scheduled_end):
            index[(task.sub_id, day)] += 1
    return index


def is_sub_available(sub: Subcontractor, day: date, load: LoadIndex) -> bool:
    """Not blacked out and below capacity on that date (capacity 0 = unlimited)."""
    if sub.is_blacked_out(day):
        return False
    if sub.max_concurrent_lots == 0:
        return True
    return load.get((sub.id, day), 0) < sub.max_concurrent_lots


def has_capacity_over_span(sub: Subcontractor, start: date, end: Optional[date], load: LoadIndex) -> bool:
    """Below capacity on every calendar day from start through end."""
    if sub.max_concurrent_lots == 0:
        return True
    return all(
        load.get((sub.id, day), 0) < sub.max_concurrent_lots
        for day in _span_dates(start, end or start)
    )


def pick_sub_for_trade(
    trade: str,
    day: date,
    subcontractors: List[Subcontractor],
    load: LoadIndex,
    end: Optional[date] = None,
) -> Optional[Subcontractor]:
    """
    Choose a sub for a trade on a date.

    Order: the preferred sub if available, else the backup sub if available,
    else the highest-rated available candidate (input order breaks ties).
    Available means free on `day` and under capacity through `end`.
    """
    candidates = [s for s in subcontractors if s.status == 'active' and s.covers_trade(trade)]
    if not candidates:
        return None

    def usable(sub: Subcontractor) -> bool:
        return is_sub_available(sub, day, load) and has_capacity_over_span(sub, day, end, load)

    preferred = next((s for s in candidates if s.is_preferred), None)
    if preferred is not None and usable(preferred):
        return preferred

    backup = next((s for s in candidates if s.is_backup), None)
    if backup is not None and usable(backup):
        return backup

    available = [s for s in candidates if usable(s)]
    if not available:
        return None
    # sorted() is stable, so equal ratings keep input order
    return sorted(available, key=lambda s: -s.rating)[0]


def assign_subs_to_tasks(
    tasks: Iterable[Task],
    subcontractors: Iterable[Subcontractor],
    existing_tasks: Iterable[Task] = (),
) -> List[Task]:
    """
    Assign subcontractors to newly scheduled tasks.

    Args:
        tasks: Tasks to assign (returned in their original order)
        subcontractors: Candidate subs
        existing_tasks: Tasks already scheduled on other lots, used only for load

    Returns:
        list: Copies of the tasks with sub_id set; undated tasks are left as they were
    """
    subcontractors = list(subcontractors or [])
    load = build_load_index(existing_tasks)
    result = [replace(t) for t in tasks]

    ordered = sorted(
        (t for t in result if t.scheduled_start is not None),
        key=lambda t: (t.scheduled_start, SchedulingConfig.track_rank(t.track), t.sort_order, t.name),
    )

    assigned = 0
    for task in ordered:
        end = task.scheduled_end or task.scheduled_start
        chosen = pick_sub_for_trade(task.trade, task.scheduled_start, subcontractors, load, end)
        task.sub_id = chosen.id if chosen else None
        if chosen is None:
            continue
        assigned += 1
        for day in _span_dates(task.scheduled_start, end):
            load[(chosen.id, day)] += 1

    logger.debug(
        "Assigned subcontractors",
        task_count=len(result),
        scheduled_count=len(ordered),
        assigned_count=assigned,
    )
    return result
