"""
Template instantiation.

Expands a task template into a lot's concrete task graph and lays out the
initial schedule track by track:

    foundation -> structure (sequential)
    dried-in date (window task end, else roof task end)
    interior / exterior (dependency-resolved, floored at dried-in + 1)
    final (sequential after the latest final-blocking end)
"""
import math
import uuid
from dataclasses import replace
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from app.datetime_utils import parse_iso_date, utc_now_iso
from app.logging_config import get_logger
from app.scheduling.dependencies import earliest_start_from_dependencies
from app.scheduling.progress import apply_critical_path_flags, refresh_ready_statuses
from app.scheduling.records import Lot, Task, TaskDependency, Template, by_sort_order
from app.scheduling.subcontractors import assign_subs_to_tasks
from app.scheduling.workdays import WorkCalendar, make_work_calendar

logger = get_logger(__name__)

DatesById = Dict[str, Tuple[date, date]]


def _max_date(values) -> Optional[date]:
    dates = [d for d in values if d is not None]
    return max(dates) if dates else None


def _min_date(values) -> Optional[date]:
    dates = [d for d in values if d is not None]
    return min(dates) if dates else None


def _new_task_id() -> str:
    return str(uuid.uuid4())


def schedule_sequential(tasks: Iterable[Task], start_like, calendar: WorkCalendar, dates: DatesById) -> None:
    """Lay tasks end to end in sort order, starting on the first work day on/after start."""
    cursor = calendar.next_work_day(start_like)
    if cursor is None:
        return
    for task in sorted(tasks, key=by_sort_order):
        end = calendar.add_work_days(cursor, task.duration - 1)
        if end is None:
            return
        dates[task.id] = (cursor, end)
        cursor = calendar.add_work_days(end, 1)
        if cursor is None:
            return


def schedule_by_dependencies(tasks: Iterable[Task], floor: date, calendar: WorkCalendar, dates: DatesById) -> None:
    """Place each task (in sort order) at max(floor, dependency constraints)."""

    def resolve(task_id):
        return dates.get(task_id)

    for task in sorted(tasks, key=by_sort_order):
        earliest = earliest_start_from_dependencies(task, resolve, calendar, floor=floor)
        start = calendar.next_work_day(earliest)
        if start is None:
            continue
        end = calendar.add_work_days(start, task.duration - 1)
        if end is None:
            continue
        dates[task.id] = (start, end)


def get_dried_in_date(tasks: List[Task], dates: DatesById) -> Optional[date]:
    """End of the first task named like 'window'; falls back to the first 'roof' task."""
    window_task = next((t for t in tasks if 'window' in t.name.lower()), None)
    roof_task = next((t for t in tasks if 'roof' in t.name.lower()), None)
    if window_task is not None and window_task.id in dates:
        return dates[window_task.id][1]
    if roof_task is not None and roof_task.id in dates:
        return dates[roof_task.id][1]
    return None


def apply_template_track_scheduling(tasks: List[Task], lot_start_like, calendar: WorkCalendar) -> List[Task]:
    """
    Assign initial dates and critical-path flags to freshly created tasks.

    Returns a new list; tasks with no resolvable position keep null dates.
    """
    dates: DatesById = {}
    by_track: Dict[str, List[Task]] = {}
    for task in tasks:
        by_track.setdefault(task.track, []).append(task)

    foundation = by_track.get('foundation', [])
    structure = by_track.get('structure', [])

    schedule_sequential(foundation, lot_start_like, calendar, dates)

    last_foundation_end = _max_date(dates[t.id][1] for t in foundation if t.id in dates)
    structure_start = calendar.add_work_days(last_foundation_end, 1) if last_foundation_end else lot_start_like
    schedule_sequential(structure, structure_start, calendar, dates)

    dried_in = get_dried_in_date(tasks, dates)
    track_floor = calendar.add_work_days(dried_in, 1) if dried_in else None
    if track_floor is not None:
        schedule_by_dependencies(by_track.get('interior', []), track_floor, calendar, dates)
        schedule_by_dependencies(by_track.get('exterior', []), track_floor, calendar, dates)
    elif by_track.get('interior') or by_track.get('exterior'):
        logger.warning("No window or roof task scheduled; interior/exterior tracks left unscheduled")

    blocking_end = _max_date(
        dates[t.id][1] for t in tasks if t.track != 'final' and t.blocks_final and t.id in dates
    )
    if blocking_end is not None:
        schedule_sequential(by_track.get('final', []), calendar.add_work_days(blocking_end, 1), calendar, dates)

    scheduled = [
        replace(
            t,
            scheduled_start=dates[t.id][0] if t.id in dates else None,
            scheduled_end=dates[t.id][1] if t.id in dates else None,
        )
        for t in tasks
    ]
    return apply_critical_path_flags(scheduled)


def build_lot_tasks_from_template(
    lot_id: str,
    lot_start_date,
    template: Template,
    org_settings=None,
    id_factory: Optional[Callable[[], str]] = None,
    now: Optional[str] = None,
) -> List[Task]:
    """
    Create a lot's tasks from a template and lay out the initial schedule.

    Dependencies are resolved from template task names to the generated ids;
    references to names that aren't in the template are dropped. The earliest
    task by sort order is marked ready.

    Args:
        lot_id: Lot the tasks belong to
        lot_start_date: Lot start (date-like)
        template: Template to expand
        org_settings: OrgSettings, raw settings dict, or WorkCalendar
        id_factory: Generates task ids (uuid4 by default)
        now: Timestamp for created_at/updated_at (defaults to current UTC)

    Returns:
        list: New Task records
    """
    calendar = make_work_calendar(org_settings)
    id_factory = id_factory or _new_task_id
    now = now or utc_now_iso()
    blueprints = list(template.tasks) if template else []

    ids = [id_factory() for _ in blueprints]
    id_by_name: Dict[str, str] = {}
    for blueprint, task_id in zip(blueprints, ids):
        id_by_name.setdefault(blueprint.name, task_id)

    created = []
    for blueprint, task_id in zip(blueprints, ids):
        dependencies = [
            TaskDependency(depends_on_task_id=id_by_name[dep.name], type=dep.type, lag_days=dep.lag_days)
            for dep in blueprint.dependencies
            if dep.name in id_by_name and id_by_name[dep.name] != task_id
        ]
        created.append(Task(
            id=task_id,
            lot_id=lot_id,
            name=blueprint.name,
            trade=blueprint.trade,
            phase=blueprint.phase,
            track=blueprint.track,
            duration=blueprint.duration,
            sort_order=blueprint.sort_order,
            status='pending',
            dependencies=dependencies,
            requires_inspection=blueprint.requires_inspection,
            inspection_type=blueprint.inspection_type,
            is_outdoor=blueprint.is_outdoor,
            blocks_final=blueprint.blocks_final,
            lead_time_days=blueprint.lead_time_days,
            created_at=now,
            updated_at=now,
        ))

    scheduled = apply_template_track_scheduling(created, lot_start_date, calendar)

    if scheduled:
        first = min(scheduled, key=by_sort_order)
        scheduled = [replace(t, status='ready') if t is first else t for t in scheduled]

    logger.debug(
        "Built lot tasks from template",
        lot_id=lot_id,
        template_id=template.id if template else None,
        task_count=len(scheduled),
    )
    return scheduled


def scale_template_task_durations_to_target(
    tasks: List[Task],
    target_build_days,
    calendar: WorkCalendar,
) -> List[Task]:
    """
    Rescale durations so the laid-out schedule spans roughly `target_build_days`.

    Buffer tasks keep their duration; every other duration stays >= 1.
    """
    try:
        target = max(1, int(target_build_days))
    except (TypeError, ValueError):
        target = 1

    earliest = _min_date(t.scheduled_start for t in tasks)
    latest = _max_date(t.scheduled_end for t in tasks)
    if earliest is None or latest is None:
        return list(tasks)

    current = max(1, calendar.business_days_between_inclusive(earliest, latest))
    if current == target:
        return list(tasks)

    ratio = target / current
    return [
        t if t.is_buffer else replace(t, duration=max(1, int(math.floor(t.duration * ratio + 0.5))))
        for t in tasks
    ]


def start_lot_from_template(
    lot: Lot,
    start_date,
    template: Optional[Template],
    org_settings=None,
    subcontractors=(),
    existing_tasks=(),
    build_days_override=None,
    draft_tasks: Optional[List[Task]] = None,
    id_factory: Optional[Callable[[], str]] = None,
    now: Optional[str] = None,
) -> Lot:
    """
    Start (or restart) a lot: replace its tasks wholesale from a template.

    Caller-supplied draft tasks take precedence over the template. When a
    build-days override differs from the template's build days, template
    durations are rescaled and the schedule laid out again.

    Returns:
        Lot: The started lot, or the input lot unchanged if start_date is invalid
    """
    calendar = make_work_calendar(org_settings)
    normalized_start = calendar.next_work_day(start_date) if parse_iso_date(start_date) else None
    if normalized_start is None:
        logger.warning("Cannot start lot without a valid start date", lot_id=lot.id, start_date=str(start_date))
        return lot

    base_build_days = max(1, (template.build_days if template and template.build_days else lot.build_days) or 1)
    override = None
    try:
        if build_days_override is not None and float(build_days_override) > 0:
            override = max(1, int(math.floor(float(build_days_override) + 0.5)))
    except (TypeError, ValueError):
        override = None

    provided = [replace(t) for t in draft_tasks or []]
    if provided:
        tasks = provided
    else:
        tasks = build_lot_tasks_from_template(lot.id, normalized_start, template, calendar, id_factory, now)
        if override is not None and override != base_build_days:
            tasks = scale_template_task_durations_to_target(tasks, override, calendar)
            tasks = apply_template_track_scheduling(tasks, normalized_start, calendar)

    tasks = assign_subs_to_tasks(tasks, subcontractors, existing_tasks)
    tasks = refresh_ready_statuses(tasks)

    effective_build_days = override or base_build_days
    logger.info(
        "Lot started from template",
        lot_id=lot.id,
        template_id=template.id if template else None,
        start_date=normalized_start.isoformat(),
        build_days=effective_build_days,
        task_count=len(tasks),
    )
    return replace(
        lot,
        status='in_progress',
        start_date=normalized_start,
        build_days=effective_build_days,
        target_completion_date=calendar.calculate_target_completion_date(normalized_start, effective_build_days),
        tasks=tasks,
    )
