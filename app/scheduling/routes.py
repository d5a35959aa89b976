from flask import current_app, jsonify, request

from app.datetime_utils import parse_iso_date
from app.logging_config import get_logger
from app.scheduling import scheduling_bp
from app.scheduling.service import ScheduleService

logger = get_logger(__name__)

# Structured engine outcomes are 200s; callers branch on `status`
STATUS_CODES = {
    'ok': 200,
    'dependency_violation': 200,
    'blocked': 200,
    'invalid': 200,
    'not_found': 404,
    'storage_error': 503,
    'not_open': 503,
}


def _service() -> ScheduleService:
    store = current_app.extensions["schedule_store"]
    return ScheduleService(store, clock=current_app.extensions.get("schedule_clock"))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _bad_request(message: str):
    return jsonify({"error": message}), 400


def _respond(outcome: dict):
    return jsonify(outcome), STATUS_CODES.get(outcome.get('status'), 500)


def _positive_int(value):
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None


# ==============================================================================
# DERIVED VIEWS
# ==============================================================================

@scheduling_bp.route("/lots/<lot_id>/progress", methods=["GET"])
def lot_progress(lot_id):
    """Progress percentage, milestones, predicted completion and critical path."""
    return _respond(_service().get_progress(lot_id))


@scheduling_bp.route("/lots/<lot_id>/statuses", methods=["GET"])
def lot_statuses(lot_id):
    """Derived status and start/complete eligibility per task."""
    return _respond(_service().get_task_statuses(lot_id))


# ==============================================================================
# START FROM TEMPLATE
# ==============================================================================

@scheduling_bp.route("/lots/<lot_id>/start", methods=["POST"])
def start_lot(lot_id):
    """Start (or restart) a lot from a template."""
    data = _json_body()
    start_date = data.get('start_date')
    if parse_iso_date(start_date) is None:
        return _bad_request("start_date (YYYY-MM-DD) is required")

    draft_tasks = data.get('tasks')
    if draft_tasks is not None and not isinstance(draft_tasks, list):
        return _bad_request("tasks must be a list")
    if not data.get('template_id') and not draft_tasks:
        return _bad_request("template_id is required")

    build_days = data.get('build_days')
    if build_days is not None and _positive_int(build_days) is None:
        return _bad_request("build_days must be a positive integer")

    logger.info("Start lot requested", lot_id=lot_id, template_id=data.get('template_id'))
    return _respond(_service().start_lot(
        lot_id,
        data.get('template_id'),
        start_date,
        build_days_override=build_days,
        draft_tasks=draft_tasks,
    ))


# ==============================================================================
# MOVE / DURATION / DELAY
# ==============================================================================

@scheduling_bp.route("/lots/<lot_id>/tasks/<task_id>/move/<any(preview, apply):mode>", methods=["POST"])
def move_task(lot_id, task_id, mode):
    data = _json_body()
    target_date = data.get('target_date')
    if parse_iso_date(target_date) is None:
        return _bad_request("target_date (YYYY-MM-DD) is required")

    service = _service()
    if mode == 'preview':
        return _respond(service.preview_move(lot_id, task_id, target_date))
    return _respond(service.apply_move(lot_id, task_id, target_date))


@scheduling_bp.route("/lots/<lot_id>/tasks/<task_id>/duration/<any(preview, apply):mode>", methods=["POST"])
def change_duration(lot_id, task_id, mode):
    duration = _positive_int(_json_body().get('duration'))
    if duration is None:
        return _bad_request("duration must be a positive integer")

    service = _service()
    if mode == 'preview':
        return _respond(service.preview_duration(lot_id, task_id, duration))
    return _respond(service.apply_duration(lot_id, task_id, duration))


@scheduling_bp.route("/lots/<lot_id>/tasks/<task_id>/delay/<any(preview, apply):mode>", methods=["POST"])
def delay_task(lot_id, task_id, mode):
    data = _json_body()
    delay_days = _positive_int(data.get('delay_days'))
    if delay_days is None:
        return _bad_request("delay_days must be a positive integer")

    service = _service()
    if mode == 'preview':
        return _respond(service.preview_delay(lot_id, task_id, delay_days))
    return _respond(service.apply_delay(
        lot_id,
        task_id,
        delay_days,
        reason=data.get('reason'),
        notes=data.get('notes'),
        logged_by=data.get('logged_by'),
    ))


@scheduling_bp.route("/lots/<lot_id>/tasks/<task_id>/start-date", methods=["POST"])
def set_start_date(lot_id, task_id):
    """Pin a task's start date without cascading."""
    start_date = _json_body().get('start_date')
    if parse_iso_date(start_date) is None:
        return _bad_request("start_date (YYYY-MM-DD) is required")
    return _respond(_service().set_manual_start(lot_id, task_id, start_date))


# ==============================================================================
# REORDER / PARALLEL START
# ==============================================================================

@scheduling_bp.route("/lots/<lot_id>/reorder", methods=["POST"])
def reorder_tasks(lot_id):
    data = _json_body()
    drag_task_id = data.get('drag_task_id')
    drop_task_id = data.get('drop_task_id')
    if not drag_task_id or not drop_task_id:
        return _bad_request("drag_task_id and drop_task_id are required")
    return _respond(_service().reorder(lot_id, str(drag_task_id), str(drop_task_id)))


@scheduling_bp.route("/lots/<lot_id>/parallel-start/<any(preview, apply):mode>", methods=["POST"])
def parallel_start(lot_id, mode):
    data = _json_body()
    task_ids = data.get('task_ids')
    if not isinstance(task_ids, list):
        return _bad_request("task_ids must be a list")
    task_ids = [str(t) for t in task_ids if t]
    override = bool(data.get('override_dependencies'))

    service = _service()
    if mode == 'preview':
        return _respond(service.preview_parallel_start(lot_id, task_ids, override))
    return _respond(service.apply_parallel_start(lot_id, task_ids, override))


# ==============================================================================
# BUFFERS
# ==============================================================================

@scheduling_bp.route("/lots/<lot_id>/tasks/<task_id>/buffer", methods=["POST"])
def insert_buffer(lot_id, task_id):
    days = _json_body().get('days', 1)
    if _positive_int(days) is None:
        return _bad_request("days must be a positive integer")
    return _respond(_service().insert_buffer(lot_id, task_id, _positive_int(days)))


@scheduling_bp.route("/lots/<lot_id>/buffers/<task_id>", methods=["DELETE"])
def remove_buffer(lot_id, task_id):
    return _respond(_service().remove_buffer(lot_id, task_id))
