"""
Scheduling service.

Loads lot snapshots through the injected ScheduleStore, runs the engine, logs
the change on the lot and saves it back. Every method returns a plain dict
with a `status`:

    ok                    - the operation ran (apply results include the saved lot)
    dependency_violation  - a move was refused; the preview says why
    blocked / invalid     - a parallel start or lot start could not be planned
    not_found             - unknown lot, task or template
    storage_error         - the store failed; `error` has the detail
"""
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from app.datetime_utils import date_or_none_iso, utc_now_iso
from app.logging_config import ScheduleOperationContext, get_logger
from app.scheduling import progress, reschedule
from app.scheduling.records import Lot, ScheduleChange, Task
from app.scheduling.results import StoreResult
from app.scheduling.templating import start_lot_from_template

logger = get_logger(__name__)


class ScheduleService:
    """Preview/apply operations and derived views for one store."""

    def __init__(self, store, clock: Optional[Callable[[], str]] = None):
        self.store = store
        self.clock = clock or utc_now_iso

    # ------------------------------------------------------------------
    # Outcomes
    # ------------------------------------------------------------------

    @staticmethod
    def _not_found(what: str, **context) -> Dict[str, Any]:
        return dict({'status': StoreResult.NOT_FOUND, 'error': f"{what} not found"}, **context)

    @staticmethod
    def _from_store_failure(result: StoreResult, what: str, **context) -> Dict[str, Any]:
        if result.reason == StoreResult.NOT_FOUND:
            return ScheduleService._not_found(what, **context)
        return dict({'status': result.reason, 'error': result.error or f"Could not load {what.lower()}"}, **context)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, lot_id: str, task_id: Optional[str] = None):
        """
        Load a lot and the org settings.

        Returns:
            tuple: (lot, org_settings, failure); failure is None on success
        """
        lot_result = self.store.load_lot(lot_id)
        if not lot_result.ok:
            return None, None, self._from_store_failure(lot_result, "Lot", lot_id=lot_id)
        lot = lot_result.value

        if task_id is not None and lot.find_task(task_id) is None:
            return None, None, self._not_found("Task", lot_id=lot_id, task_id=task_id)

        settings_result = self.store.load_org_settings()
        if not settings_result.ok:
            return None, None, self._from_store_failure(settings_result, "Org settings", lot_id=lot_id)
        return lot, settings_result.value, None

    def _save(self, lot: Lot, kind: str, task_id: Optional[str], details: Dict[str, Any], now: str):
        """Append a change log entry and save; returns (saved_lot, failure)."""
        change = ScheduleChange(kind=kind, task_id=task_id, details=details, created_at=now)
        updated = replace(lot, schedule_changes=list(lot.schedule_changes) + [change])
        result = self.store.save_lot(updated)
        if not result.ok:
            return None, self._from_store_failure(result, "Lot", lot_id=lot.id)
        logger.info("Schedule change saved", lot_id=lot.id, task_id=task_id, kind=kind)
        return updated, None

    @staticmethod
    def _changed_ids(before: Lot, after: Lot) -> List[str]:
        old = {t.id: (t.scheduled_start, t.scheduled_end) for t in before.tasks}
        return [
            t.id for t in after.tasks
            if old.get(t.id) != (t.scheduled_start, t.scheduled_end)
        ]

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    def get_progress(self, lot_id: str) -> Dict[str, Any]:
        """Progress percentage, milestones, predicted completion and critical path."""
        lot, _, failure = self._load(lot_id)
        if failure:
            return failure

        current = progress.get_current_milestone(lot)
        flagged = progress.apply_critical_path_flags(lot.tasks)
        return {
            'status': 'ok',
            'lot_id': lot.id,
            'progress': progress.calculate_lot_progress(lot),
            'current_milestone': current.to_dict() if current else None,
            'achieved_milestones': [m.id for m in progress.get_achieved_milestones(lot)],
            'predicted_completion': date_or_none_iso(progress.get_predicted_completion_date(lot)),
            'target_completion': date_or_none_iso(lot.target_completion_date),
            'bottleneck_track': progress.find_bottleneck_track(lot.tasks),
            'critical_path_task_ids': [t.id for t in flagged if t.is_critical_path],
        }

    def get_task_statuses(self, lot_id: str) -> Dict[str, Any]:
        """Derived status plus start/complete eligibility for every task."""
        lot, _, failure = self._load(lot_id)
        if failure:
            return failure
        inspections_result = self.store.list_inspections(lot_id)
        if not inspections_result.ok:
            return self._from_store_failure(inspections_result, "Inspections", lot_id=lot_id)
        inspections = inspections_result.value

        return {
            'status': 'ok',
            'lot_id': lot.id,
            'statuses': progress.derive_lot_statuses(lot, inspections),
            'can_start': {t.id: progress.can_start_task(t, lot.tasks, inspections) for t in lot.tasks},
            'can_complete': {t.id: progress.can_complete_task(t, inspections) for t in lot.tasks},
        }

    # ------------------------------------------------------------------
    # Start from template
    # ------------------------------------------------------------------

    def start_lot(
        self,
        lot_id: str,
        template_id: Optional[str],
        start_date,
        build_days_override=None,
        draft_tasks: Optional[Iterable[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Replace a lot's tasks from a template (or caller drafts) and assign subcontractors."""
        lot, org_settings, failure = self._load(lot_id)
        if failure:
            return failure

        drafts = [Task.from_dict(t) for t in draft_tasks or []]
        template = None
        if not drafts:
            if not template_id:
                return {'status': 'invalid', 'error': "template_id is required", 'lot_id': lot_id}
            template_result = self.store.load_template(template_id)
            if not template_result.ok:
                return self._from_store_failure(template_result, "Template", lot_id=lot_id, template_id=template_id)
            template = template_result.value

        subs_result = self.store.list_subcontractors()
        if not subs_result.ok:
            return self._from_store_failure(subs_result, "Subcontractors", lot_id=lot_id)
        existing_result = self.store.list_scheduled_tasks(exclude_lot_id=lot_id)
        if not existing_result.ok:
            return self._from_store_failure(existing_result, "Scheduled tasks", lot_id=lot_id)

        now = self.clock()
        with ScheduleOperationContext("start_lot", lot_id=lot_id):
            started = start_lot_from_template(
                lot,
                start_date,
                template,
                org_settings=org_settings,
                subcontractors=subs_result.value,
                existing_tasks=existing_result.value,
                build_days_override=build_days_override,
                draft_tasks=drafts or None,
                now=now,
            )
            if started is lot:
                return {'status': 'invalid', 'error': "A valid start_date is required", 'lot_id': lot_id}

            saved, failure = self._save(
                started,
                'start_from_template',
                None,
                {
                    'template_id': template.id if template else None,
                    'start_date': date_or_none_iso(started.start_date),
                    'build_days': started.build_days,
                },
                now,
            )
        if failure:
            return failure
        return {'status': 'ok', 'lot': saved.to_dict()}

    # ------------------------------------------------------------------
    # Move
    # ------------------------------------------------------------------

    def preview_move(self, lot_id: str, task_id: str, target_date) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure
        preview = reschedule.build_reschedule_preview(lot, task_id, target_date, org_settings)
        status = 'dependency_violation' if preview.dependency_violation else 'ok'
        return {'status': status, 'preview': preview.to_dict()}

    def apply_move(self, lot_id: str, task_id: str, target_date) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure

        preview = reschedule.build_reschedule_preview(lot, task_id, target_date, org_settings)
        if preview.dependency_violation:
            logger.info("Move refused by dependency", lot_id=lot_id, task_id=task_id)
            return {'status': 'dependency_violation', 'preview': preview.to_dict()}

        now = self.clock()
        with ScheduleOperationContext("move", lot_id=lot_id):
            moved = reschedule.apply_reschedule(lot, task_id, target_date, org_settings, now=now)
            if moved is lot:
                logger.info("Move left schedule unchanged", lot_id=lot_id, task_id=task_id)
                return {'status': 'ok', 'preview': preview.to_dict(), 'lot': lot.to_dict()}
            details = {
                'target_date': date_or_none_iso(preview.normalized_date),
                'affected': self._changed_ids(lot, moved),
            }
            saved, failure = self._save(moved, 'move', task_id, details, now)
        if failure:
            return failure
        return {'status': 'ok', 'preview': preview.to_dict(), 'lot': saved.to_dict()}

    # ------------------------------------------------------------------
    # Duration
    # ------------------------------------------------------------------

    def preview_duration(self, lot_id: str, task_id: str, duration) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure
        preview = reschedule.preview_duration_change(lot, task_id, duration, org_settings)
        return {'status': 'ok', 'preview': preview.to_dict()}

    def apply_duration(self, lot_id: str, task_id: str, duration) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure

        preview = reschedule.preview_duration_change(lot, task_id, duration, org_settings)
        now = self.clock()
        with ScheduleOperationContext("duration_change", lot_id=lot_id):
            resized = reschedule.apply_duration_change(lot, task_id, duration, org_settings, now=now)
            details = {
                'old_duration': lot.find_task(task_id).duration,
                'new_duration': resized.find_task(task_id).duration,
                'affected': self._changed_ids(lot, resized),
            }
            saved, failure = self._save(resized, 'duration_change', task_id, details, now)
        if failure:
            return failure
        return {'status': 'ok', 'preview': preview.to_dict(), 'lot': saved.to_dict()}

    # ------------------------------------------------------------------
    # Delay
    # ------------------------------------------------------------------

    def preview_delay(self, lot_id: str, task_id: str, delay_days) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure
        preview = reschedule.preview_delay_impact(lot, task_id, delay_days, org_settings)
        return {'status': 'ok', 'preview': preview.to_dict()}

    def apply_delay(
        self,
        lot_id: str,
        task_id: str,
        delay_days,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        logged_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure

        preview = reschedule.preview_delay_impact(lot, task_id, delay_days, org_settings)
        now = self.clock()
        with ScheduleOperationContext("delay", lot_id=lot_id):
            delayed = reschedule.apply_delay_cascade(
                lot, task_id, delay_days, reason, notes, org_settings, logged_by=logged_by, now=now
            )
            details = {
                'delay_days': delayed.find_task(task_id).delay_days,
                'reason': reason,
                'affected': self._changed_ids(lot, delayed),
            }
            saved, failure = self._save(delayed, 'delay', task_id, details, now)
        if failure:
            return failure
        return {'status': 'ok', 'preview': preview.to_dict(), 'lot': saved.to_dict()}

    # ------------------------------------------------------------------
    # Reorder / manual start
    # ------------------------------------------------------------------

    def reorder(self, lot_id: str, drag_task_id: str, drop_task_id: str) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, drag_task_id)
        if failure:
            return failure
        if lot.find_task(drop_task_id) is None:
            return self._not_found("Task", lot_id=lot_id, task_id=drop_task_id)

        now = self.clock()
        with ScheduleOperationContext("reorder", lot_id=lot_id):
            reordered = reschedule.apply_list_reorder(lot, drag_task_id, drop_task_id, org_settings, now=now)
            if reordered is lot:
                return {'status': 'invalid', 'error': "Tasks must be distinct, in the same track and scheduled"}
            saved, failure = self._save(
                reordered,
                'reorder',
                drag_task_id,
                {'drop_task_id': drop_task_id, 'affected': self._changed_ids(lot, reordered)},
                now,
            )
        if failure:
            return failure
        return {'status': 'ok', 'lot': saved.to_dict()}

    def set_manual_start(self, lot_id: str, task_id: str, start_date) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, task_id)
        if failure:
            return failure

        now = self.clock()
        with ScheduleOperationContext("manual_start", lot_id=lot_id):
            updated = reschedule.apply_manual_start_date(lot, task_id, start_date, org_settings, now=now)
            if updated is lot:
                return {'status': 'invalid', 'error': "A valid start_date is required"}
            task = updated.find_task(task_id)
            saved, failure = self._save(
                updated,
                'manual_start',
                task_id,
                {'start_date': date_or_none_iso(task.scheduled_start)},
                now,
            )
        if failure:
            return failure
        return {'status': 'ok', 'lot': saved.to_dict()}

    # ------------------------------------------------------------------
    # Parallel start
    # ------------------------------------------------------------------

    def preview_parallel_start(self, lot_id: str, task_ids: List[str], override_dependencies: bool = False):
        lot, org_settings, failure = self._load(lot_id)
        if failure:
            return failure
        missing = [t for t in task_ids if lot.find_task(t) is None]
        if missing:
            return self._not_found("Task", lot_id=lot_id, task_id=missing[0])
        plan = reschedule.build_parallel_start_plan(lot, task_ids, org_settings, override_dependencies)
        return plan.to_dict()

    def apply_parallel_start(self, lot_id: str, task_ids: List[str], override_dependencies: bool = False):
        lot, org_settings, failure = self._load(lot_id)
        if failure:
            return failure
        missing = [t for t in task_ids if lot.find_task(t) is None]
        if missing:
            return self._not_found("Task", lot_id=lot_id, task_id=missing[0])

        plan = reschedule.build_parallel_start_plan(lot, task_ids, org_settings, override_dependencies)
        if not plan.ok:
            logger.info("Parallel start not applied", lot_id=lot_id, plan_status=plan.status)
            return plan.to_dict()

        now = self.clock()
        with ScheduleOperationContext("parallel_start", lot_id=lot_id):
            updated = reschedule.apply_parallel_start(lot, task_ids, org_settings, override_dependencies, now=now)
            details = {
                'task_ids': list(task_ids),
                'target_start': date_or_none_iso(plan.target_start),
                'override_dependencies': bool(override_dependencies),
                'affected': [row.task_id for row in plan.impacted],
            }
            saved, failure = self._save(updated, 'parallel_start', None, details, now)
        if failure:
            return failure
        return dict(plan.to_dict(), lot=saved.to_dict())

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------

    def insert_buffer(self, lot_id: str, after_task_id: str, days) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, after_task_id)
        if failure:
            return failure

        now = self.clock()
        with ScheduleOperationContext("insert_buffer", lot_id=lot_id):
            updated = reschedule.insert_buffer_task_after(lot, after_task_id, days, org_settings, now=now)
            if updated is lot:
                return {'status': 'invalid', 'error': "Anchor task has no scheduled end"}
            existing_ids = {t.id for t in lot.tasks}
            buffer_id = next(t.id for t in updated.tasks if t.id not in existing_ids)
            saved, failure = self._save(
                updated,
                'insert_buffer',
                after_task_id,
                {'buffer_task_id': buffer_id, 'days': updated.find_task(buffer_id).duration},
                now,
            )
        if failure:
            return failure
        return {'status': 'ok', 'buffer_task_id': buffer_id, 'lot': saved.to_dict()}

    def remove_buffer(self, lot_id: str, buffer_task_id: str) -> Dict[str, Any]:
        lot, org_settings, failure = self._load(lot_id, buffer_task_id)
        if failure:
            return failure

        now = self.clock()
        with ScheduleOperationContext("remove_buffer", lot_id=lot_id):
            updated = reschedule.remove_buffer_task(lot, buffer_task_id, org_settings, now=now)
            if updated is lot:
                return {'status': 'invalid', 'error': "Task is not a buffer"}
            saved, failure = self._save(updated, 'remove_buffer', buffer_task_id, {}, now)
        if failure:
            return failure
        return {'status': 'ok', 'lot': saved.to_dict()}
