"""
Reschedule engine.

Preview/apply pairs for every schedule mutation on a lot:

    move          build_reschedule_preview / apply_reschedule
    resize        preview_duration_change / apply_duration_change
    delay         preview_delay_impact / apply_delay_cascade
    drag-swap     apply_list_reorder
    parallelize   build_parallel_start_plan / apply_parallel_start

plus manual start dates, buffers and track maintenance.

Previews never touch their input. Applies return a new Lot whose tasks have
been passed through critical-path flagging and the ready-status refresh.

Move, resize and delay share one cascade primitive (`cascade_shift`): the
candidate rule is applied once and each mutation only supplies the per-task
shift. After a resize or delay the Final track is pulled forward, never back,
once the latest final-blocking end has passed its start. A move shifts only
its own candidates.
"""
import uuid
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from app.datetime_utils import utc_now_iso
from app.logging_config import get_logger
from app.scheduling.config import SchedulingConfig
from app.scheduling.dependencies import compute_earliest_start
from app.scheduling.progress import apply_critical_path_flags, refresh_ready_statuses
from app.scheduling.records import Lot, Task, by_sort_order
from app.scheduling.results import BlockedDependency, ImpactRow, ParallelStartPlan, SchedulePreview
from app.scheduling.templating import schedule_sequential
from app.scheduling.workdays import WorkCalendar, make_work_calendar

logger = get_logger(__name__)

DateRange = Tuple[date, date]
DatesById = Dict[str, DateRange]
ShiftFn = Callable[[Task], Optional[DateRange]]

# Buffer insertion/removal leaves work that has already begun where it is
BUFFER_SHIFT_EXEMPT_STATUSES = ('complete', 'in_progress')


def _max_date(values: Iterable[Optional[date]]) -> Optional[date]:
    dates = [d for d in values if d is not None]
    return max(dates) if dates else None


def _min_date(values: Iterable[Optional[date]]) -> Optional[date]:
    dates = [d for d in values if d is not None]
    return min(dates) if dates else None


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _resolved(task: Task, dates: DatesById) -> Tuple[Optional[date], Optional[date]]:
    return dates.get(task.id, (task.scheduled_start, task.scheduled_end))


def _track_of(task: Task) -> str:
    return task.track or 'misc'


def is_buffer_task(task: Optional[Task]) -> bool:
    if task is None:
        return False
    if task.is_buffer:
        return True
    if task.trade.lower() == SchedulingConfig.BUFFER_TRADE:
        return True
    return task.name.strip().lower() == SchedulingConfig.BUFFER_TASK_NAME.lower()


# ==============================================================================
# CASCADE PRIMITIVE
# ==============================================================================

def is_cascade_candidate(task: Task, perturbed: Task) -> bool:
    """
    Whether `task` moves when `perturbed` moves.

    The perturbed task itself always does. Otherwise completed tasks never do;
    later tasks in the same track and direct dependents do.
    """
    if task.id == perturbed.id:
        return True
    if task.status == 'complete':
        return False
    if task.track == perturbed.track and task.sort_order > perturbed.sort_order:
        return True
    return any(d.depends_on_task_id == perturbed.id for d in task.dependencies)


def cascade_shift(tasks: Iterable[Task], perturbed: Task, shift: ShiftFn) -> DatesById:
    """
    Apply `shift` to every cascade candidate of `perturbed`.

    Args:
        tasks: Lot tasks
        perturbed: The task being moved, resized or delayed
        shift: Returns a candidate's new (start, end), or None to leave it alone

    Returns:
        dict: New (start, end) for each task whose dates actually changed
    """
    moved: DatesById = {}
    for task in sorted(tasks, key=by_sort_order):
        if not task.has_dates or not is_cascade_candidate(task, perturbed):
            continue
        new_range = shift(task)
        if new_range is None or new_range[0] is None or new_range[1] is None:
            continue
        if new_range != (task.scheduled_start, task.scheduled_end):
            moved[task.id] = new_range
    return moved


def _shift_range(task: Task, delta: int, calendar: WorkCalendar) -> Optional[DateRange]:
    start = calendar.shift_by_workdays(task.scheduled_start, delta)
    end = calendar.shift_by_workdays(task.scheduled_end, delta)
    if start is None or end is None:
        return None
    return start, end


def follow_final_track(
    tasks: Iterable[Task],
    dates: DatesById,
    calendar: WorkCalendar,
    fixed_shift: Optional[int] = None,
) -> DatesById:
    """
    Shift the Final track forward to start the work day after the blocking end.

    The blocking end is the latest resolved end among non-final tasks that
    block final. Final is never pulled earlier. By default Final moves by the
    work-day gap to the blocking end; with `fixed_shift`, once the blocking end
    has passed Final's first start, every final task not already moved shifts
    by exactly that many work days.
    """
    tasks = list(tasks)
    blocking_end = _max_date(
        _resolved(t, dates)[1] for t in tasks if t.track != 'final' and t.blocks_final
    )
    finals = sorted((t for t in tasks if t.track == 'final'), key=by_sort_order)
    if blocking_end is None or not finals:
        return dates

    desired_start = calendar.add_work_days(blocking_end, 1)
    current_start = _resolved(finals[0], dates)[0]
    if desired_start is None or current_start is None or desired_start <= current_start:
        return dates

    if fixed_shift is None:
        shift = calendar.workday_diff(current_start, desired_start)
        if shift <= 0:
            return dates
    else:
        shift = fixed_shift

    followed = dict(dates)
    for task in finals:
        if fixed_shift is not None and task.id in dates:
            continue
        start, end = _resolved(task, dates)
        if start is None or end is None:
            continue
        new_start = calendar.shift_by_workdays(start, shift)
        new_end = calendar.shift_by_workdays(end, shift)
        if new_start is not None and new_end is not None:
            followed[task.id] = (new_start, new_end)

    logger.debug("Final track follows blocking end", blocking_end=blocking_end.isoformat(), shift=shift)
    return followed


def _completion(tasks: Iterable[Task], dates: Optional[DatesById] = None) -> Optional[date]:
    dates = dates or {}
    return _max_date(_resolved(t, dates)[1] for t in tasks)


def _impact_rows(tasks: Iterable[Task], dates: DatesById, lead_task_id: Optional[str] = None) -> List[ImpactRow]:
    """Rows for every changed task: the lead task first, then by old start."""
    rows = [
        ImpactRow(
            task_id=t.id,
            task_name=t.name,
            old_start=t.scheduled_start,
            new_start=dates[t.id][0],
            old_end=t.scheduled_end,
            new_end=dates[t.id][1],
            track=t.track,
        )
        for t in sorted(tasks, key=by_sort_order)
        if t.id in dates
    ]
    rows.sort(key=lambda r: (r.task_id != lead_task_id, r.old_start or date.max))
    return rows


def _preview(tasks: List[Task], dates: DatesById, lead_task_id: str, **extra) -> SchedulePreview:
    return SchedulePreview(
        affected=_impact_rows(tasks, dates, lead_task_id),
        old_completion=_completion(tasks),
        new_completion=_completion(tasks, dates),
        **extra
    )


def _commit(
    lot: Lot,
    dates: DatesById,
    now: Optional[str] = None,
    updates: Optional[Dict[str, Dict]] = None,
) -> Lot:
    """Write new dates and field updates into a copy of the lot, stamping updated_at on changed tasks."""
    now = now or utc_now_iso()
    updates = updates or {}
    tasks = []
    for task in lot.tasks:
        changes = dict(updates.get(task.id, {}))
        if task.id in dates and dates[task.id] != (task.scheduled_start, task.scheduled_end):
            changes['scheduled_start'], changes['scheduled_end'] = dates[task.id]
        if changes:
            changes['updated_at'] = now
            task = replace(task, **changes)
        tasks.append(task)
    return lot.with_tasks(refresh_ready_statuses(apply_critical_path_flags(tasks)))


# ==============================================================================
# MOVE
# ==============================================================================

def _plan_move(
    tasks: List[Task],
    task: Optional[Task],
    target_date,
    calendar: WorkCalendar,
) -> Tuple[SchedulePreview, DatesById]:
    tasks = sorted(tasks, key=by_sort_order)
    if task is None or task.scheduled_start is None:
        return SchedulePreview(), {}

    normalized = calendar.next_work_day(target_date)
    if normalized is None:
        return SchedulePreview(), {}

    old_completion = _completion(tasks)
    earliest = compute_earliest_start(task, tasks, calendar)
    if earliest is not None and normalized < earliest:
        logger.debug(
            "Move violates dependency",
            task_id=task.id,
            target=normalized.isoformat(),
            earliest_start=earliest.isoformat(),
        )
        return SchedulePreview(
            old_completion=old_completion,
            new_completion=old_completion,
            dependency_violation=True,
            earliest_start=earliest,
            normalized_date=normalized,
        ), {}

    shift = calendar.workday_diff(task.scheduled_start, normalized)
    if shift == 0:
        return SchedulePreview(
            old_completion=old_completion,
            new_completion=old_completion,
            earliest_start=earliest,
            normalized_date=normalized,
        ), {}

    dates = cascade_shift(tasks, task, lambda t: _shift_range(t, shift, calendar))
    preview = _preview(tasks, dates, task.id, earliest_start=earliest, normalized_date=normalized)
    return preview, dates


def build_reschedule_preview(lot: Lot, task_id: str, target_date, org_settings=None) -> SchedulePreview:
    """
    Impact of moving a task to a target date.

    The target is normalized to the next work day. A target before the task's
    earliest dependency-permitted start reports dependency_violation and
    changes nothing.
    """
    calendar = make_work_calendar(org_settings)
    preview, _ = _plan_move(lot.tasks, lot.find_task(task_id), target_date, calendar)
    return preview


def apply_reschedule(lot: Lot, task_id: str, target_date, org_settings=None, now: Optional[str] = None) -> Lot:
    """Move a task and cascade; the lot is returned unchanged on a dependency violation."""
    calendar = make_work_calendar(org_settings)
    preview, dates = _plan_move(lot.tasks, lot.find_task(task_id), target_date, calendar)
    if preview.dependency_violation or not dates:
        return lot
    return _commit(lot, dates, now)


# ==============================================================================
# DURATION
# ==============================================================================

def _plan_duration(
    tasks: List[Task],
    task: Optional[Task],
    new_duration,
    calendar: WorkCalendar,
) -> Tuple[SchedulePreview, DatesById, int]:
    if task is None or not task.has_dates:
        return SchedulePreview(), {}, 0

    duration = max(1, _to_int(new_duration, 1))
    old_duration = calendar.business_days_between_inclusive(task.scheduled_start, task.scheduled_end) or task.duration
    delta = duration - max(1, old_duration)
    new_end = calendar.add_work_days(task.scheduled_start, duration - 1)
    if new_end is None:
        return SchedulePreview(), {}, duration

    def shift(candidate: Task) -> Optional[DateRange]:
        if candidate.id == task.id:
            return candidate.scheduled_start, new_end
        if delta == 0:
            return None
        return _shift_range(candidate, delta, calendar)

    dates = cascade_shift(tasks, task, shift)
    dates = follow_final_track(tasks, dates, calendar)
    return _preview(tasks, dates, task.id, new_end=new_end), dates, duration


def preview_duration_change(lot: Lot, task_id: str, new_duration, org_settings=None) -> SchedulePreview:
    """
    Impact of resizing a task.

    The task keeps its start and gets a new end; other candidates shift by
    the difference between the new duration and the span of the old dates.
    """
    calendar = make_work_calendar(org_settings)
    preview, _, _ = _plan_duration(lot.tasks, lot.find_task(task_id), new_duration, calendar)
    return preview


def apply_duration_change(lot: Lot, task_id: str, new_duration, org_settings=None, now: Optional[str] = None) -> Lot:
    calendar = make_work_calendar(org_settings)
    task = lot.find_task(task_id)
    if task is None:
        return lot
    _, dates, duration = _plan_duration(lot.tasks, task, new_duration, calendar)
    updates = {task.id: {'duration': duration}} if duration and duration != task.duration else {}
    if not dates and not updates:
        return lot
    return _commit(lot, dates, now, updates)


# ==============================================================================
# DELAY
# ==============================================================================

def _plan_delay(
    tasks: List[Task],
    task: Optional[Task],
    delay_days,
    calendar: WorkCalendar,
) -> Tuple[SchedulePreview, DatesById, int]:
    delay = max(1, _to_int(delay_days, 1))
    if task is None:
        return SchedulePreview(), {}, delay

    dates = cascade_shift(tasks, task, lambda t: _shift_range(t, delay, calendar))
    dates = follow_final_track(tasks, dates, calendar, fixed_shift=delay)
    return _preview(sorted(tasks, key=by_sort_order), dates, task.id), dates, delay


def preview_delay_impact(lot: Lot, task_id: str, delay_days, org_settings=None) -> SchedulePreview:
    """Impact of delaying a task by `delay_days` work days (minimum 1)."""
    calendar = make_work_calendar(org_settings)
    preview, _, _ = _plan_delay(lot.tasks, lot.find_task(task_id), delay_days, calendar)
    return preview


def apply_delay_cascade(
    lot: Lot,
    task_id: str,
    delay_days,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    org_settings=None,
    logged_by: Optional[str] = None,
    now: Optional[str] = None,
) -> Lot:
    """
    Delay a task and cascade the shift.

    Delay metadata and the `delayed` status are recorded on the delayed task
    only.
    """
    calendar = make_work_calendar(org_settings)
    task = lot.find_task(task_id)
    if task is None:
        return lot

    now = now or utc_now_iso()
    _, dates, delay = _plan_delay(lot.tasks, task, delay_days, calendar)
    updates = {
        task.id: {
            'delay_days': delay,
            'delay_reason': reason,
            'delay_notes': notes,
            'delay_logged_at': now,
            'delay_logged_by': logged_by,
            'status': 'delayed',
        }
    }
    return _commit(lot, dates, now, updates)


# ==============================================================================
# MANUAL START / REORDER
# ==============================================================================

def apply_manual_start_date(lot: Lot, task_id: str, start_date, org_settings=None, now: Optional[str] = None) -> Lot:
    """Pin one task's start (normalized to a work day); its end follows its duration. No cascade."""
    task = lot.find_task(task_id)
    if task is None:
        return lot
    calendar = make_work_calendar(org_settings)
    start = calendar.next_work_day(start_date)
    if start is None:
        return lot
    end = calendar.add_work_days(start, task.duration - 1)
    if end is None:
        return lot
    return _commit(lot, {task.id: (start, end)}, now)


def apply_list_reorder(
    lot: Lot,
    drag_task_id: str,
    drop_task_id: str,
    org_settings=None,
    now: Optional[str] = None,
) -> Lot:
    """
    Swap two tasks in the same track.

    The dragged task takes the drop task's start (keeping its own duration)
    and vice versa; their sort orders swap. A track holding a buffer is then
    re-laid end to end from its earliest start.
    """
    if not drag_task_id or not drop_task_id or drag_task_id == drop_task_id:
        return lot
    drag = lot.find_task(drag_task_id)
    drop = lot.find_task(drop_task_id)
    if drag is None or drop is None or drag.track != drop.track:
        return lot
    if drag.scheduled_start is None or drop.scheduled_start is None:
        return lot

    calendar = make_work_calendar(org_settings)
    now = now or utc_now_iso()
    drag_start = calendar.next_work_day(drag.scheduled_start) or drag.scheduled_start
    drop_start = calendar.next_work_day(drop.scheduled_start) or drop.scheduled_start
    drag_end = calendar.add_work_days(drop_start, drag.duration - 1)
    drop_end = calendar.add_work_days(drag_start, drop.duration - 1)

    track_tasks = sorted((t for t in lot.tasks if t.track == drag.track), key=by_sort_order)
    order_by_id = {t.id: (t.sort_order or index + 1) for index, t in enumerate(track_tasks)}
    drag_order = order_by_id[drag.id]
    drop_order = order_by_id[drop.id]

    tasks = []
    for task in lot.tasks:
        if task.id == drag.id:
            task = replace(task, scheduled_start=drop_start, scheduled_end=drag_end, sort_order=drop_order, updated_at=now)
        elif task.id == drop.id:
            task = replace(task, scheduled_start=drag_start, scheduled_end=drop_end, sort_order=drag_order, updated_at=now)
        elif task.track == drag.track and task.sort_order == drag_order:
            task = replace(task, sort_order=drop_order)
        elif task.track == drag.track and task.sort_order == drop_order:
            task = replace(task, sort_order=drag_order)
        tasks.append(task)

    reordered = lot.with_tasks(tasks)
    track_after = [t for t in tasks if t.track == drag.track]
    if any(is_buffer_task(t) for t in track_after):
        start = _min_date(t.scheduled_start for t in track_after) or lot.start_date
        dates: DatesById = {}
        schedule_sequential(track_after, start, calendar, dates)
        return _commit(reordered, dates, now)

    logger.debug("Reordered tasks", lot_id=lot.id, drag_task_id=drag.id, drop_task_id=drop.id)
    return reordered.with_tasks(refresh_ready_statuses(apply_critical_path_flags(tasks)))


# ==============================================================================
# PARALLEL START
# ==============================================================================

def can_parallelize_tasks(lot: Lot, task_ids: Iterable[str]) -> Dict:
    """
    Check that no selected task depends on another selected task.

    Returns:
        dict: {'ok': bool, 'blocked': [BlockedDependency], 'reason': str}
    """
    selected = set(t for t in task_ids or [] if t)
    blocked = [
        BlockedDependency(task_id=task.id, depends_on_task_id=dep.depends_on_task_id)
        for task in lot.tasks
        if task.id in selected
        for dep in task.dependencies
        if dep.depends_on_task_id in selected and dep.depends_on_task_id != task.id
    ]
    return {
        'ok': not blocked,
        'blocked': blocked,
        'reason': 'Selected tasks depend on each other' if blocked else '',
    }


def build_parallel_start_plan(
    lot: Lot,
    task_ids: Iterable[str],
    org_settings=None,
    override_dependencies: bool = False,
) -> ParallelStartPlan:
    """
    Plan starting several tasks together on the earliest of their current starts.

    Each selected task is moved in sort order against a working copy, so later
    moves see the dates produced by earlier ones. With override_dependencies,
    dependencies between selected tasks are dropped instead of blocking.
    """
    selected = list(dict.fromkeys(t for t in task_ids or [] if t))
    if lot is None or not selected:
        return ParallelStartPlan(status='invalid')

    blocked = can_parallelize_tasks(lot, selected)['blocked']
    if blocked and not override_dependencies:
        return ParallelStartPlan(status='blocked', blocked_dependencies=blocked)

    selected_set = set(selected)
    working = [
        replace(
            t,
            dependencies=[d for d in t.dependencies if d.depends_on_task_id not in selected_set],
        ) if t.id in selected_set else t
        for t in lot.tasks
    ]
    chosen = sorted((t for t in working if t.id in selected_set), key=by_sort_order)
    target = _min_date(t.scheduled_start for t in chosen)
    if target is None:
        return ParallelStartPlan(status='invalid', blocked_dependencies=blocked)

    calendar = make_work_calendar(org_settings)
    previews: Dict[str, SchedulePreview] = {}
    for task_id in [t.id for t in chosen]:
        current = next(t for t in working if t.id == task_id)
        preview, dates = _plan_move(working, current, target, calendar)
        previews[task_id] = preview
        if preview.dependency_violation:
            return ParallelStartPlan(
                status='invalid',
                blocked_dependencies=blocked,
                previews_by_id=previews,
                target_start=target,
                earliest=preview.earliest_start,
            )
        working = [
            replace(t, scheduled_start=dates[t.id][0], scheduled_end=dates[t.id][1]) if t.id in dates else t
            for t in working
        ]

    original_by_id = {t.id: t for t in lot.tasks}
    impacted = [
        ImpactRow(
            task_id=t.id,
            task_name=t.name,
            old_start=original_by_id[t.id].scheduled_start,
            new_start=t.scheduled_start,
            old_end=original_by_id[t.id].scheduled_end,
            new_end=t.scheduled_end,
            track=t.track,
        )
        for t in working
        if (t.scheduled_start, t.scheduled_end) != (
            original_by_id[t.id].scheduled_start,
            original_by_id[t.id].scheduled_end,
        )
    ]

    logger.debug(
        "Built parallel start plan",
        lot_id=lot.id,
        selected_count=len(selected),
        impacted_count=len(impacted),
        target_start=target.isoformat(),
    )
    return ParallelStartPlan(
        status='ok',
        blocked_dependencies=blocked,
        previews_by_id=previews,
        target_start=target,
        next_lot=lot.with_tasks(working),
        impacted=impacted,
    )


def apply_parallel_start(
    lot: Lot,
    task_ids: Iterable[str],
    org_settings=None,
    override_dependencies: bool = False,
    now: Optional[str] = None,
) -> Lot:
    """Apply a parallel-start plan; the lot is returned unchanged unless the plan is ok."""
    plan = build_parallel_start_plan(lot, task_ids, org_settings, override_dependencies)
    if not plan.ok:
        return lot
    now = now or utc_now_iso()
    impacted_ids = {row.task_id for row in plan.impacted}
    tasks = [replace(t, updated_at=now) if t.id in impacted_ids else t for t in plan.next_lot.tasks]
    return lot.with_tasks(refresh_ready_statuses(apply_critical_path_flags(tasks)))


# ==============================================================================
# BUFFERS
# ==============================================================================

def _shift_later_in_track(
    tasks: Iterable[Task],
    track: str,
    after_sort_order: float,
    delta: int,
    calendar: WorkCalendar,
) -> DatesById:
    dates: DatesById = {}
    for task in tasks:
        if _track_of(task) != track or task.sort_order <= after_sort_order:
            continue
        if task.status in BUFFER_SHIFT_EXEMPT_STATUSES or not task.has_dates:
            continue
        shifted = _shift_range(task, delta, calendar)
        if shifted is not None:
            dates[task.id] = shifted
    return dates


def apply_buffer_after_task(lot: Lot, task_id: str, buffer_days, org_settings=None, now: Optional[str] = None) -> Lot:
    """Push later tasks in the anchor's track out by `buffer_days` without inserting a buffer task."""
    days = _to_int(buffer_days, 0)
    target = lot.find_task(task_id)
    if days <= 0 or target is None:
        return lot
    calendar = make_work_calendar(org_settings)
    dates = _shift_later_in_track(lot.tasks, _track_of(target), target.sort_order, days, calendar)
    dates = follow_final_track(lot.tasks, dates, calendar)
    return _commit(lot, dates, now)


def insert_buffer_task_after(
    lot: Lot,
    after_task_id: str,
    buffer_days,
    org_settings=None,
    buffer_task_id: Optional[str] = None,
    now: Optional[str] = None,
) -> Lot:
    """
    Insert a Buffer task right after an anchor task.

    The buffer starts the work day after the anchor ends. Later tasks in the
    track shift out by the buffer length, the track's sort orders are
    renumbered 1..n, and Final follows the new blocking end.
    """
    days = max(1, _to_int(buffer_days, 1))
    anchor = lot.find_task(after_task_id)
    if anchor is None or anchor.scheduled_end is None:
        return lot

    calendar = make_work_calendar(org_settings)
    start = calendar.add_work_days(anchor.scheduled_end, 1)
    end = calendar.add_work_days(start, days - 1) if start else None
    if start is None or end is None:
        return lot

    now = now or utc_now_iso()
    track = _track_of(anchor)
    buffer = Task(
        id=buffer_task_id or str(uuid.uuid4()),
        lot_id=lot.id,
        name=SchedulingConfig.BUFFER_TASK_NAME,
        description='Schedule buffer',
        trade=SchedulingConfig.BUFFER_TRADE,
        phase='misc',
        track=track,
        duration=days,
        sort_order=anchor.sort_order + 0.5,
        scheduled_start=start,
        scheduled_end=end,
        blocks_final=False,
        is_buffer=True,
        created_at=now,
        updated_at=now,
    )

    dates = _shift_later_in_track(lot.tasks, track, anchor.sort_order, days, calendar)
    tasks = list(lot.tasks) + [buffer]
    dates = follow_final_track(tasks, dates, calendar)

    track_tasks = sorted((t for t in tasks if _track_of(t) == track), key=by_sort_order)
    updates = {
        t.id: {'sort_order': index + 1}
        for index, t in enumerate(track_tasks)
        if t.sort_order != index + 1
    }

    logger.debug("Inserted buffer task", lot_id=lot.id, after_task_id=anchor.id, buffer_task_id=buffer.id, days=days)
    return _commit(lot.with_tasks(tasks), dates, now, updates)


def remove_buffer_task(lot: Lot, buffer_task_id: str, org_settings=None, now: Optional[str] = None) -> Lot:
    """Remove a buffer task and pull later tasks in its track back by its length."""
    buffer = lot.find_task(buffer_task_id)
    if buffer is None or not is_buffer_task(buffer):
        return lot
    calendar = make_work_calendar(org_settings)
    remaining = [t for t in lot.tasks if t.id != buffer.id]
    dates = _shift_later_in_track(remaining, _track_of(buffer), buffer.sort_order, -buffer.duration, calendar)
    return _commit(lot.with_tasks(remaining), dates, now)


# ==============================================================================
# TRACK MAINTENANCE
# ==============================================================================

def normalize_track_sort_order_by_schedule(lot: Lot, track: Optional[str]) -> Lot:
    """Renumber a track 1..n by (start, end, sort order, name, id); undated tasks go last."""
    resolved = track or 'misc'
    group = sorted(
        (t for t in lot.tasks if _track_of(t) == resolved),
        key=lambda t: (
            t.scheduled_start or date.max,
            t.scheduled_end or date.max,
            t.sort_order,
            t.name,
            t.id,
        ),
    )
    order = {t.id: index + 1 for index, t in enumerate(group)}
    tasks = [replace(t, sort_order=order[t.id]) if t.id in order else t for t in lot.tasks]
    return lot.with_tasks(refresh_ready_statuses(tasks))


def rebuild_track_schedule(
    lot: Lot,
    track: Optional[str],
    org_settings=None,
    start_date=None,
    now: Optional[str] = None,
) -> Lot:
    """
    Re-lay a track end to end and re-anchor Final behind the blocking end.

    The track starts at `start_date` (normalized) when given, else at its
    earliest current start, else at the lot start. Unlike the cascades this
    is an explicit re-layout, so Final may move in either direction.
    """
    resolved = track or 'misc'
    calendar = make_work_calendar(org_settings)
    dates: DatesById = {}

    group = [t for t in lot.tasks if _track_of(t) == resolved]
    if group:
        start = calendar.next_work_day(start_date) if start_date else None
        if start is None:
            start = _min_date(t.scheduled_start for t in group) or lot.start_date
        if start is not None:
            schedule_sequential(group, start, calendar, dates)

    blocking_end = _max_date(
        _resolved(t, dates)[1] for t in lot.tasks if t.track != 'final' and t.blocks_final
    )
    finals = [t for t in lot.tasks if t.track == 'final']
    if blocking_end is not None and finals:
        schedule_sequential(finals, calendar.add_work_days(blocking_end, 1), calendar, dates)

    return _commit(lot, dates, now)
