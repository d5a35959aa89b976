"""
Value objects returned by the reschedule engine and the storage port.

None of these carry behavior beyond serialization: callers branch on
`dependency_violation`, `status` or `reason` instead of catching exceptions.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Generic, List, Optional, TypeVar

from app.datetime_utils import date_or_none_iso

T = TypeVar('T')


@dataclass
class ImpactRow:
    """Old/new dates of one task touched by a schedule mutation."""
    task_id: str
    task_name: str
    old_start: Optional[date]
    new_start: Optional[date]
    old_end: Optional[date]
    new_end: Optional[date]
    track: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'task_id': self.task_id,
            'task_name': self.task_name,
            'old_start': date_or_none_iso(self.old_start),
            'new_start': date_or_none_iso(self.new_start),
            'old_end': date_or_none_iso(self.old_end),
            'new_end': date_or_none_iso(self.new_end),
            'track': self.track,
        }


@dataclass
class SchedulePreview:
    """
    Impact of a move, duration change or delay.

    `new_end` is only set for duration changes; `normalized_date` and
    `earliest_start` only for moves.
    """
    affected: List[ImpactRow] = field(default_factory=list)
    old_completion: Optional[date] = None
    new_completion: Optional[date] = None
    dependency_violation: bool = False
    earliest_start: Optional[date] = None
    normalized_date: Optional[date] = None
    new_end: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return not self.affected

    def to_dict(self) -> Dict[str, Any]:
        return {
            'affected': [row.to_dict() for row in self.affected],
            'old_completion': date_or_none_iso(self.old_completion),
            'new_completion': date_or_none_iso(self.new_completion),
            'dependency_violation': self.dependency_violation,
            'earliest_start': date_or_none_iso(self.earliest_start),
            'normalized_date': date_or_none_iso(self.normalized_date),
            'new_end': date_or_none_iso(self.new_end),
        }


@dataclass
class BlockedDependency:
    """A selected task that depends on another selected task."""
    task_id: str
    depends_on_task_id: str

    def to_dict(self) -> Dict[str, Any]:
        return {'task_id': self.task_id, 'depends_on_task_id': self.depends_on_task_id}


@dataclass
class ParallelStartPlan:
    """
    Outcome of a parallel-start batch.

    status is one of:
        ok      - next_lot holds the merged schedule, impacted lists changed tasks
        blocked - selected tasks depend on each other and no override was given
        invalid - nothing selected, no target date, or a move violated a dependency
    """
    status: str
    blocked_dependencies: List[BlockedDependency] = field(default_factory=list)
    previews_by_id: Dict[str, SchedulePreview] = field(default_factory=dict)
    target_start: Optional[date] = None
    next_lot: Optional[Any] = None
    impacted: List[ImpactRow] = field(default_factory=list)
    earliest: Optional[date] = None

    @property
    def ok(self) -> bool:
        return self.status == 'ok'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'blocked_dependencies': [b.to_dict() for b in self.blocked_dependencies],
            'previews_by_id': {task_id: p.to_dict() for task_id, p in self.previews_by_id.items()},
            'target_start': date_or_none_iso(self.target_start),
            'impacted': [row.to_dict() for row in self.impacted],
            'earliest': date_or_none_iso(self.earliest),
        }


@dataclass
class StoreResult(Generic[T]):
    """A loaded value, or the reason it couldn't be loaded."""
    value: Optional[T] = None
    reason: Optional[str] = None
    error: Optional[str] = None

    NOT_FOUND = 'not_found'
    STORAGE_ERROR = 'storage_error'
    NOT_OPEN = 'not_open'

    @property
    def ok(self) -> bool:
        return self.reason is None

    @classmethod
    def success(cls, value: T) -> 'StoreResult[T]':
        return cls(value=value)

    @classmethod
    def not_found(cls) -> 'StoreResult[T]':
        return cls(reason=cls.NOT_FOUND)

    @classmethod
    def failure(cls, reason: str, error: Optional[str] = None) -> 'StoreResult[T]':
        return cls(reason=reason, error=error)
