"""
Critical path, milestone and status derivation.

Everything here is a read-only view over a lot snapshot: progress percentage,
current milestone, per-task derived status, completion eligibility and the
interior/exterior bottleneck used for critical-path flags.
"""
import math
from dataclasses import replace
from datetime import date
from typing import Dict, Iterable, List, Optional

from app.scheduling.config import SchedulingConfig
from app.scheduling.records import (
    Inspection,
    InspectionType,
    Lot,
    Milestone,
    Task,
    default_inspection_types,
    default_milestones,
)


def _max_date(values: Iterable[Optional[date]]) -> Optional[date]:
    dates = [d for d in values if d is not None]
    return max(dates) if dates else None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


# ==============================================================================
# MILESTONES & PROGRESS
# ==============================================================================

def is_milestone_achieved(milestone: Milestone, lot: Lot) -> bool:
    """
    Whether a milestone is achieved on a lot.

    - manual milestones: truthy entry in lot.manual_milestones
    - rough_complete: at least one mechanical "Rough ..." task, all complete
    - everything else: the task named exactly `trigger` exists and is complete
    """
    if milestone is None:
        return False
    if milestone.manual:
        return bool(lot.manual_milestones.get(milestone.id))

    if milestone.id == SchedulingConfig.ROUGH_COMPLETE_MILESTONE_ID:
        rough_tasks = [
            t for t in lot.tasks
            if t.phase == SchedulingConfig.ROUGH_TASK_PHASE and t.name.startswith(SchedulingConfig.ROUGH_TASK_PREFIX)
        ]
        if not rough_tasks:
            return False
        return all(t.status == 'complete' for t in rough_tasks)

    if not milestone.trigger:
        return False
    trigger_task = next((t for t in lot.tasks if t.name == milestone.trigger), None)
    return trigger_task is not None and trigger_task.status == 'complete'


def get_achieved_milestones(lot: Lot, milestones: Optional[List[Milestone]] = None) -> List[Milestone]:
    milestones = default_milestones() if milestones is None else milestones
    return [m for m in milestones if is_milestone_achieved(m, lot)]


def _first_positive_milestone(milestones: List[Milestone]) -> Optional[Milestone]:
    positive = [m for m in milestones if m.pct > 0]
    if not positive:
        return None
    # min() keeps list order on ties
    return min(positive, key=lambda m: m.pct)


def calculate_lot_progress(lot: Lot, milestones: Optional[List[Milestone]] = None) -> int:
    """
    Lot progress percentage.

    The highest pct among achieved milestones; with none achieved, the
    completed-task ratio scaled by the first (lowest positive) milestone's pct.
    """
    milestones = default_milestones() if milestones is None else milestones

    achieved_pct = max([m.pct for m in get_achieved_milestones(lot, milestones)], default=0)
    if achieved_pct > 0:
        return _round_half_up(achieved_pct)

    if not lot.tasks:
        return 0
    completed = sum(1 for t in lot.tasks if t.status == 'complete')
    if completed == 0:
        return 0

    first = _first_positive_milestone(milestones)
    first_pct = first.pct if first else SchedulingConfig.DEFAULT_FIRST_MILESTONE_PCT
    return max(0, _round_half_up(completed / len(lot.tasks) * first_pct))


def get_current_milestone(lot: Lot, milestones: Optional[List[Milestone]] = None) -> Optional[Milestone]:
    """
    The achieved milestone with the highest pct (earliest in the list on ties),
    or the lowest-positive-pct milestone if nothing is achieved yet.
    """
    milestones = default_milestones() if milestones is None else milestones
    achieved = get_achieved_milestones(lot, milestones)
    if achieved:
        best = achieved[0]
        for m in achieved[1:]:
            if m.pct > best.pct:
                best = m
        return best
    return _first_positive_milestone(milestones)


# ==============================================================================
# INSPECTIONS & STATUS
# ==============================================================================

def has_passed_inspection(inspections: Iterable[Inspection], inspection_type: str) -> bool:
    return any(i.type == inspection_type and i.passed for i in inspections or [])


def get_blocked_inspection_types_for_task(
    task_name: str,
    inspection_types: Optional[List[InspectionType]] = None,
) -> List[str]:
    """Codes of the inspection types whose `blocks_next` is this task name."""
    inspection_types = default_inspection_types() if inspection_types is None else inspection_types
    return [t.code for t in inspection_types if t.blocks_next and t.blocks_next == task_name]


def is_inspection_gate_active(
    task: Task,
    inspections: Iterable[Inspection],
    inspection_types: Optional[List[InspectionType]] = None,
) -> bool:
    """
    A task is gated when an inspection type blocks it and that type has been
    recorded at least once without any passing record yet.
    """
    inspections = list(inspections or [])
    for code in get_blocked_inspection_types_for_task(task.name, inspection_types):
        recorded = [i for i in inspections if i.type == code]
        if recorded and not any(i.passed for i in recorded):
            return True
    return False


def derive_task_status(
    task: Optional[Task],
    schedule: Iterable[Task],
    inspections: Iterable[Inspection] = (),
    inspection_types: Optional[List[InspectionType]] = None,
) -> str:
    """
    Derived status of a task; first match wins.

    1. complete / in_progress / delayed / blocked pass through
    2. blocked if a predecessor is blocked or an inspection gate is active
    3. ready if every predecessor is complete
    4. pending otherwise

    Predecessors that aren't in the schedule are ignored.
    """
    if task is None:
        return 'pending'
    if task.status in SchedulingConfig.TERMINAL_STATUSES:
        return task.status

    by_id: Dict[str, Task] = {t.id: t for t in schedule}
    predecessors = [
        by_id[d.depends_on_task_id] for d in task.dependencies if d.depends_on_task_id in by_id
    ]
    gate_active = is_inspection_gate_active(task, inspections, inspection_types)

    if gate_active or any(p.status == 'blocked' for p in predecessors):
        return 'blocked'
    if all(p.status == 'complete' for p in predecessors):
        return 'ready'
    return 'pending'


def derive_lot_statuses(
    lot: Lot,
    inspections: Iterable[Inspection] = (),
    inspection_types: Optional[List[InspectionType]] = None,
) -> Dict[str, str]:
    """Derived status for every task on a lot, keyed by task id."""
    inspections = list(inspections or [])
    return {t.id: derive_task_status(t, lot.tasks, inspections, inspection_types) for t in lot.tasks}


def can_complete_task(
    task: Task,
    inspections: Iterable[Inspection],
    photo_requirements: Optional[Dict[str, Dict]] = None,
) -> bool:
    """
    Completion eligibility: a passing inspection referencing the task when one
    is required, and enough photos when the task name has a photo requirement.
    """
    if task is None:
        return False
    photo_requirements = SchedulingConfig.PHOTO_REQUIREMENTS if photo_requirements is None else photo_requirements

    if task.requires_inspection:
        if not any(i.task_id == task.id and i.passed for i in inspections or []):
            return False

    requirement = photo_requirements.get(task.name)
    if requirement:
        if len(task.photos) < int(requirement.get('min', 0) or 0):
            return False
    return True


def can_start_task(
    task: Optional[Task],
    schedule: Iterable[Task],
    inspections: Iterable[Inspection] = (),
    inspection_types: Optional[List[InspectionType]] = None,
) -> bool:
    if task is None or task.status == 'complete':
        return False
    return derive_task_status(task, schedule, inspections, inspection_types) != 'blocked'


def refresh_ready_statuses(tasks: Iterable[Task]) -> List[Task]:
    """
    Per track, mark the earliest eligible task ready and the rest pending.

    Eligible = not a buffer and not in a terminal status. Ordering is by
    scheduled start (undated last), then sort order.
    """
    refreshed = [replace(t) for t in tasks]
    by_track: Dict[str, List[Task]] = {}
    for task in refreshed:
        by_track.setdefault(task.track or 'misc', []).append(task)

    for group in by_track.values():
        eligible = [
            t for t in group
            if not t.is_buffer and t.status not in SchedulingConfig.TERMINAL_STATUSES
        ]
        if not eligible:
            continue
        eligible.sort(key=lambda t: (t.scheduled_start is None, t.scheduled_start or date.min, t.sort_order))
        next_ready = eligible[0]
        for task in eligible:
            task.status = 'ready' if task is next_ready else 'pending'

    return refreshed


# ==============================================================================
# CRITICAL PATH
# ==============================================================================

def get_track_end_date(tasks: Iterable[Task], track: str) -> Optional[date]:
    return _max_date(t.scheduled_end for t in tasks if t.track == track)


def get_predicted_completion_date(lot: Lot) -> Optional[date]:
    return _max_date(t.scheduled_end for t in lot.tasks)


def find_bottleneck_track(tasks: Iterable[Task]) -> str:
    """
    'interior' or 'exterior': whichever track's final-blocking tasks end last.
    Ties and a missing exterior end favor interior.
    """
    tasks = list(tasks)
    interior_end = _max_date(t.scheduled_end for t in tasks if t.track == 'interior' and t.blocks_final)
    exterior_end = _max_date(t.scheduled_end for t in tasks if t.track == 'exterior' and t.blocks_final)
    if exterior_end is None or (interior_end is not None and interior_end >= exterior_end):
        return 'interior'
    return 'exterior'


def apply_critical_path_flags(tasks: Iterable[Task]) -> List[Task]:
    """Copy of the tasks with is_critical_path set from track membership."""
    tasks = list(tasks)
    bottleneck = find_bottleneck_track(tasks)
    return [
        replace(
            t,
            is_critical_path=t.track in SchedulingConfig.ALWAYS_CRITICAL_TRACKS or t.track == bottleneck,
        )
        for t in tasks
    ]
