"""
Lot Scheduling Module
Flask Blueprint and engine for construction lot schedules.

The engine modules (workdays, dependencies, templating, reschedule, progress,
subcontractors) are pure functions over lot snapshots. The service runs them
against an injected ScheduleStore, and the blueprint exposes the service as JSON.
"""
from flask import Blueprint

scheduling_bp = Blueprint("scheduling", __name__)

from app.scheduling import routes  # noqa: E402,F401
