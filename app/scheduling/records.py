"""
Typed records for the lot scheduling engine.

Defaults are applied once here, at construction. Engine code reads fields
directly and never re-derives fallbacks. `from_dict` / `to_dict` are the only
places that deal with loosely-typed payloads (storage rows, JSON bodies).
"""
from dataclasses import dataclass, field, replace
from datetime import date
from typing import Any, Dict, List, Optional

from app.datetime_utils import parse_iso_date, date_or_none_iso
from app.scheduling.config import SchedulingConfig


def _to_int(value, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _sort_number(value) -> float:
    """Sort orders may be fractional (buffers are slotted in at +0.5)."""
    number = _to_float(value, 0.0)
    return int(number) if number == int(number) else number


@dataclass
class TaskDependency:
    """A precedence link to another task in the same lot."""
    depends_on_task_id: str
    type: str = 'FS'
    lag_days: int = 0

    def __post_init__(self):
        self.type = str(self.type or 'FS').upper()
        if self.type not in SchedulingConfig.DEPENDENCY_TYPES:
            self.type = 'FS'
        self.lag_days = max(0, _to_int(self.lag_days))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['TaskDependency']:
        if not isinstance(data, dict):
            return None
        depends_on = data.get('depends_on_task_id')
        if not depends_on:
            return None
        return cls(
            depends_on_task_id=str(depends_on),
            type=data.get('type') or 'FS',
            lag_days=data.get('lag_days') or 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'depends_on_task_id': self.depends_on_task_id,
            'type': self.type,
            'lag_days': self.lag_days,
        }


@dataclass
class Task:
    """A scheduled unit of work on a lot."""
    id: str
    name: str
    lot_id: Optional[str] = None
    trade: str = ''
    phase: str = ''
    track: str = ''
    duration: int = 1
    sort_order: float = 0
    status: str = 'pending'
    scheduled_start: Optional[date] = None
    scheduled_end: Optional[date] = None
    actual_start: Optional[date] = None
    actual_end: Optional[date] = None
    dependencies: List[TaskDependency] = field(default_factory=list)
    requires_inspection: bool = False
    inspection_type: Optional[str] = None
    inspection_id: Optional[str] = None
    is_outdoor: bool = False
    is_critical_path: bool = False
    blocks_final: bool = True
    lead_time_days: int = 0
    is_buffer: bool = False
    sub_id: Optional[str] = None
    description: Optional[str] = None
    delay_days: int = 0
    delay_reason: Optional[str] = None
    delay_notes: Optional[str] = None
    delay_logged_at: Optional[str] = None
    delay_logged_by: Optional[str] = None
    photos: List[Any] = field(default_factory=list)
    documents: List[Any] = field(default_factory=list)
    notes: List[Any] = field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self):
        self.duration = max(1, _to_int(self.duration, 1))
        if self.status not in SchedulingConfig.TASK_STATUSES:
            self.status = 'pending'

    @property
    def has_dates(self) -> bool:
        return self.scheduled_start is not None and self.scheduled_end is not None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Task':
        dependencies = []
        for raw in data.get('dependencies') or []:
            dep = TaskDependency.from_dict(raw)
            if dep is not None:
                dependencies.append(dep)

        return cls(
            id=str(data.get('id')),
            name=str(data.get('name') or ''),
            lot_id=data.get('lot_id'),
            trade=data.get('trade') or '',
            phase=data.get('phase') or '',
            track=data.get('track') or '',
            duration=data.get('duration') or 1,
            sort_order=_sort_number(data.get('sort_order')),
            status=data.get('status') or 'pending',
            scheduled_start=parse_iso_date(data.get('scheduled_start')),
            scheduled_end=parse_iso_date(data.get('scheduled_end')),
            actual_start=parse_iso_date(data.get('actual_start')),
            actual_end=parse_iso_date(data.get('actual_end')),
            dependencies=dependencies,
            requires_inspection=bool(data.get('requires_inspection')),
            inspection_type=data.get('inspection_type'),
            inspection_id=data.get('inspection_id'),
            is_outdoor=bool(data.get('is_outdoor')),
            is_critical_path=bool(data.get('is_critical_path')),
            blocks_final=data.get('blocks_final') is not False,
            lead_time_days=max(0, _to_int(data.get('lead_time_days'))),
            is_buffer=bool(data.get('is_buffer')),
            sub_id=data.get('sub_id'),
            description=data.get('description'),
            delay_days=max(0, _to_int(data.get('delay_days'))),
            delay_reason=data.get('delay_reason'),
            delay_notes=data.get('delay_notes'),
            delay_logged_at=data.get('delay_logged_at'),
            delay_logged_by=data.get('delay_logged_by'),
            photos=list(data.get('photos') or []),
            documents=list(data.get('documents') or []),
            notes=list(data.get('notes') or []),
            created_at=data.get('created_at'),
            updated_at=data.get('updated_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'lot_id': self.lot_id,
            'trade': self.trade,
            'phase': self.phase,
            'track': self.track,
            'duration': self.duration,
            'sort_order': self.sort_order,
            'status': self.status,
            'scheduled_start': date_or_none_iso(self.scheduled_start),
            'scheduled_end': date_or_none_iso(self.scheduled_end),
            'actual_start': date_or_none_iso(self.actual_start),
            'actual_end': date_or_none_iso(self.actual_end),
            'dependencies': [dep.to_dict() for dep in self.dependencies],
            'requires_inspection': self.requires_inspection,
            'inspection_type': self.inspection_type,
            'inspection_id': self.inspection_id,
            'is_outdoor': self.is_outdoor,
            'is_critical_path': self.is_critical_path,
            'blocks_final': self.blocks_final,
            'lead_time_days': self.lead_time_days,
            'is_buffer': self.is_buffer,
            'sub_id': self.sub_id,
            'description': self.description,
            'delay_days': self.delay_days,
            'delay_reason': self.delay_reason,
            'delay_notes': self.delay_notes,
            'delay_logged_at': self.delay_logged_at,
            'delay_logged_by': self.delay_logged_by,
            'photos': list(self.photos),
            'documents': list(self.documents),
            'notes': list(self.notes),
            'created_at': self.created_at,
            'updated_at': self.updated_at,
        }


def by_sort_order(task: Task):
    """Sort key: sort_order, tie-broken by name."""
    return (task.sort_order, task.name)


@dataclass
class ScheduleChange:
    """One entry in a lot's schedule change log."""
    kind: str
    task_id: Optional[str]
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScheduleChange':
        return cls(
            kind=data.get('kind') or 'unknown',
            task_id=data.get('task_id'),
            details=dict(data.get('details') or {}),
            created_at=data.get('created_at'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind,
            'task_id': self.task_id,
            'details': dict(self.details),
            'created_at': self.created_at,
        }


@dataclass
class Lot:
    """A building lot and its task graph."""
    id: str
    community_id: Optional[str] = None
    status: str = 'not_started'
    start_date: Optional[date] = None
    build_days: int = 0
    target_completion_date: Optional[date] = None
    actual_completion_date: Optional[date] = None
    tasks: List[Task] = field(default_factory=list)
    manual_milestones: Dict[str, bool] = field(default_factory=dict)
    schedule_changes: List[ScheduleChange] = field(default_factory=list)

    def find_task(self, task_id) -> Optional[Task]:
        if not task_id:
            return None
        return next((t for t in self.tasks if t.id == task_id), None)

    def with_tasks(self, tasks: List[Task]) -> 'Lot':
        """Return a copy of this lot with its task collection replaced."""
        return replace(self, tasks=list(tasks))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Lot':
        return cls(
            id=str(data.get('id')),
            community_id=data.get('community_id'),
            status=data.get('status') or 'not_started',
            start_date=parse_iso_date(data.get('start_date')),
            build_days=max(0, _to_int(data.get('build_days'))),
            target_completion_date=parse_iso_date(data.get('target_completion_date')),
            actual_completion_date=parse_iso_date(data.get('actual_completion_date')),
            tasks=[Task.from_dict(t) for t in data.get('tasks') or [] if isinstance(t, dict)],
            manual_milestones={str(k): bool(v) for k, v in (data.get('manual_milestones') or {}).items()},
            schedule_changes=[
                ScheduleChange.from_dict(c) for c in data.get('schedule_changes') or [] if isinstance(c, dict)
            ],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'community_id': self.community_id,
            'status': self.status,
            'start_date': date_or_none_iso(self.start_date),
            'build_days': self.build_days,
            'target_completion_date': date_or_none_iso(self.target_completion_date),
            'actual_completion_date': date_or_none_iso(self.actual_completion_date),
            'tasks': [t.to_dict() for t in self.tasks],
            'manual_milestones': dict(self.manual_milestones),
            'schedule_changes': [c.to_dict() for c in self.schedule_changes],
        }


@dataclass
class TemplateDependency:
    """A dependency inside a template, referencing the predecessor by name."""
    name: str
    type: str = 'FS'
    lag_days: int = 0

    def __post_init__(self):
        self.type = str(self.type or 'FS').upper()
        if self.type not in SchedulingConfig.DEPENDENCY_TYPES:
            self.type = 'FS'
        self.lag_days = max(0, _to_int(self.lag_days))

    @classmethod
    def from_value(cls, value) -> Optional['TemplateDependency']:
        """Accepts a bare task name or a {name|depends_on, type, lag_days} dict."""
        if isinstance(value, str):
            return cls(name=value) if value.strip() else None
        if isinstance(value, dict):
            name = value.get('name') or value.get('depends_on')
            if not name:
                return None
            return cls(name=str(name), type=value.get('type') or 'FS', lag_days=value.get('lag_days') or 0)
        return None


@dataclass
class TemplateTask:
    """Blueprint for one task in a template."""
    name: str
    trade: str = ''
    phase: str = ''
    track: str = ''
    duration: int = 1
    sort_order: float = 0
    dependencies: List[TemplateDependency] = field(default_factory=list)
    requires_inspection: bool = False
    inspection_type: Optional[str] = None
    is_outdoor: bool = False
    blocks_final: bool = True
    lead_time_days: int = 0

    def __post_init__(self):
        self.duration = max(1, _to_int(self.duration, 1))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TemplateTask':
        raw_deps = data.get('dependencies')
        dependencies = []
        if isinstance(raw_deps, list):
            for raw in raw_deps:
                dep = TemplateDependency.from_value(raw)
                if dep is not None:
                    dependencies.append(dep)
        return cls(
            name=str(data.get('name') or ''),
            trade=data.get('trade') or '',
            phase=data.get('phase') or '',
            track=data.get('track') or '',
            duration=data.get('duration') or 1,
            sort_order=_sort_number(data.get('sort_order')),
            dependencies=dependencies,
            requires_inspection=bool(data.get('requires_inspection')),
            inspection_type=data.get('inspection_type'),
            is_outdoor=bool(data.get('is_outdoor')),
            blocks_final=data.get('blocks_final') is not False,
            lead_time_days=max(0, _to_int(data.get('lead_time_days'))),
        )


@dataclass
class Template:
    """An ordered list of task blueprints plus a nominal build length."""
    id: str
    name: str = ''
    build_days: int = 0
    tasks: List[TemplateTask] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Template':
        return cls(
            id=str(data.get('id')),
            name=data.get('name') or '',
            build_days=max(0, _to_int(data.get('build_days'))),
            tasks=[TemplateTask.from_dict(t) for t in data.get('tasks') or [] if isinstance(t, dict)],
        )


@dataclass
class BlackoutRange:
    start: date
    end: date

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['BlackoutRange']:
        if not isinstance(data, dict):
            return None
        start = parse_iso_date(data.get('start'))
        end = parse_iso_date(data.get('end'))
        if start is None or end is None:
            return None
        return cls(start=start, end=end)

    def to_dict(self) -> Dict[str, Any]:
        return {'start': self.start.isoformat(), 'end': self.end.isoformat()}


@dataclass
class Subcontractor:
    id: str
    name: str = ''
    trade: str = ''
    secondary_trades: List[str] = field(default_factory=list)
    status: str = 'active'
    is_preferred: bool = False
    is_backup: bool = False
    rating: float = 0.0
    # 0 means unlimited
    max_concurrent_lots: int = 0
    blackout_dates: List[BlackoutRange] = field(default_factory=list)

    def __post_init__(self):
        self.max_concurrent_lots = max(0, _to_int(self.max_concurrent_lots))

    def covers_trade(self, trade: str) -> bool:
        return self.trade == trade or trade in self.secondary_trades

    def is_blacked_out(self, day: Optional[date]) -> bool:
        if day is None:
            return False
        return any(r.contains(day) for r in self.blackout_dates)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Subcontractor':
        blackouts = []
        for raw in data.get('blackout_dates') or []:
            blackout = BlackoutRange.from_dict(raw)
            if blackout is not None:
                blackouts.append(blackout)
        return cls(
            id=str(data.get('id')),
            name=data.get('name') or '',
            trade=data.get('trade') or '',
            secondary_trades=list(data.get('secondary_trades') or []),
            status=data.get('status') or 'active',
            is_preferred=bool(data.get('is_preferred')),
            is_backup=bool(data.get('is_backup')),
            rating=_to_float(data.get('rating')),
            max_concurrent_lots=data.get('max_concurrent_lots') or 0,
            blackout_dates=blackouts,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'trade': self.trade,
            'secondary_trades': list(self.secondary_trades),
            'status': self.status,
            'is_preferred': self.is_preferred,
            'is_backup': self.is_backup,
            'rating': self.rating,
            'max_concurrent_lots': self.max_concurrent_lots,
            'blackout_dates': [r.to_dict() for r in self.blackout_dates],
        }


@dataclass
class Milestone:
    id: str
    label: str = ''
    trigger: Optional[str] = None
    pct: float = 0
    manual: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Milestone':
        return cls(
            id=str(data.get('id')),
            label=data.get('label') or '',
            trigger=data.get('trigger'),
            pct=_to_float(data.get('pct')),
            manual=bool(data.get('manual')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'label': self.label, 'trigger': self.trigger, 'pct': self.pct, 'manual': self.manual}


@dataclass
class InspectionType:
    code: str
    label: str = ''
    trigger: Optional[str] = None
    blocks_next: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InspectionType':
        return cls(
            code=str(data.get('code')),
            label=data.get('label') or '',
            trigger=data.get('trigger'),
            blocks_next=data.get('blocks_next') or data.get('blocksNext'),
        )


@dataclass
class Inspection:
    """A recorded inspection attempt."""
    id: str
    type: str
    task_id: Optional[str] = None
    lot_id: Optional[str] = None
    result: Optional[str] = None

    @property
    def passed(self) -> bool:
        return self.result == 'pass'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Inspection':
        return cls(
            id=str(data.get('id')),
            type=str(data.get('type') or ''),
            task_id=data.get('task_id'),
            lot_id=data.get('lot_id'),
            result=data.get('result'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'type': self.type, 'task_id': self.task_id, 'lot_id': self.lot_id, 'result': self.result}


@dataclass
class OrgSettings:
    """Work week (0 = Sunday ... 6 = Saturday) and holiday list for an organization."""
    work_days: frozenset = SchedulingConfig.DEFAULT_WORK_DAYS
    holidays: frozenset = frozenset()

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OrgSettings':
        """Missing or invalid settings fall back to Mon-Fri with no holidays."""
        if not isinstance(data, dict):
            return cls()

        raw_days = data.get('work_days')
        if isinstance(raw_days, (list, tuple, set, frozenset)):
            work_days = frozenset(
                d for d in (_to_int(x, -1) for x in raw_days) if 0 <= d <= 6
            ) or SchedulingConfig.DEFAULT_WORK_DAYS
        else:
            work_days = SchedulingConfig.DEFAULT_WORK_DAYS

        holidays = set()
        for raw in data.get('holidays') or []:
            value = raw.get('date') if isinstance(raw, dict) else raw
            parsed = parse_iso_date(value)
            if parsed is not None:
                holidays.add(parsed)

        return cls(work_days=work_days, holidays=frozenset(holidays))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'work_days': sorted(self.work_days),
            'holidays': sorted(h.isoformat() for h in self.holidays),
        }


def default_milestones() -> List[Milestone]:
    return [Milestone.from_dict(m) for m in SchedulingConfig.MILESTONES]


def default_inspection_types() -> List[InspectionType]:
    return [InspectionType.from_dict(t) for t in SchedulingConfig.INSPECTION_TYPES]
