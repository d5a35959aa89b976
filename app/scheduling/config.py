"""
Scheduling configuration module.

This module defines the constants the lot scheduling engine works from:
tracks, statuses, milestone and inspection definitions.
Org-specific values (work week, holidays) are supplied per call, not here.
"""

from typing import Dict, List, Any


class SchedulingConfig:
    """
    Configuration for lot scheduling calculations.

    Milestone and inspection definitions mirror the field workflow used by
    the superintendents. Treat them as read-only defaults; callers may pass
    their own lists to the progress functions.
    """

    # Tracks in scheduling order
    TRACKS: List[str] = ['foundation', 'structure', 'interior', 'exterior', 'final']

    # Tracks that are always on the critical path; interior/exterior compete for the bottleneck
    ALWAYS_CRITICAL_TRACKS = frozenset({'foundation', 'structure', 'final'})

    TASK_STATUSES: List[str] = ['pending', 'ready', 'in_progress', 'delayed', 'blocked', 'complete']

    # Statuses that status derivation passes through unchanged
    TERMINAL_STATUSES = frozenset({'complete', 'in_progress', 'delayed', 'blocked'})

    DEPENDENCY_TYPES = frozenset({'FS', 'SS', 'FF', 'SF'})

    # 0 = Sunday ... 6 = Saturday
    DEFAULT_WORK_DAYS = frozenset({1, 2, 3, 4, 5})

    # Guard for work-day walks; exceeding it yields a degraded result
    MAX_WORKDAY_STEPS = 4000

    # Fallback pct when no positive milestone exists
    DEFAULT_FIRST_MILESTONE_PCT = 8

    ROUGH_COMPLETE_MILESTONE_ID = 'rough_complete'
    ROUGH_TASK_PHASE = 'mechanical'
    ROUGH_TASK_PREFIX = 'Rough '

    BUFFER_TASK_NAME = 'Buffer'
    BUFFER_TRADE = 'buffer'

    MILESTONES: List[Dict[str, Any]] = [
        {'id': 'permit_issued', 'label': 'Permit Issued', 'trigger': None, 'pct': 0, 'manual': True},
        {'id': 'foundation_complete', 'label': 'Foundation Complete', 'trigger': 'Slab Grade', 'pct': 8},
        {'id': 'framing_complete', 'label': 'Framing Complete', 'trigger': 'Framing', 'pct': 20},
        {'id': 'dried_in', 'label': 'Dried-In', 'trigger': 'Roofing', 'pct': 27},
        {'id': 'rough_complete', 'label': 'Rough Complete', 'trigger': 'Rough Inspection (Final)', 'pct': 45},
        {'id': 'drywall_complete', 'label': 'Drywall Complete', 'trigger': 'Drywall Hang', 'pct': 55},
        {'id': 'trim_complete', 'label': 'Trim Complete', 'trigger': 'Final Trim Install / Countertop Install', 'pct': 75},
        {'id': 'final_inspection', 'label': 'Final Inspection', 'trigger': 'Final Inspection', 'pct': 95},
        {'id': 'co', 'label': 'Certificate of Occupancy', 'trigger': None, 'pct': 98, 'manual': True},
        {'id': 'complete', 'label': 'Complete', 'trigger': 'Punch Complete', 'pct': 100},
    ]

    INSPECTION_TYPES: List[Dict[str, str]] = [
        {'code': 'PRE', 'label': 'Pre-Pour', 'trigger': 'Footings', 'blocks_next': 'Foundation Pour'},
        {'code': 'FND', 'label': 'Foundation', 'trigger': 'Foundation Cure', 'blocks_next': 'Backfill'},
        {'code': 'FRM', 'label': 'Framing', 'trigger': 'Roofing', 'blocks_next': 'Windows/Doors'},
        {'code': 'REL', 'label': 'Rough Electrical', 'trigger': 'Rough Electrical', 'blocks_next': 'Insulation'},
        {'code': 'RPL', 'label': 'Rough Plumbing', 'trigger': 'Rough Plumbing', 'blocks_next': 'Insulation'},
        {'code': 'RHV', 'label': 'Rough HVAC', 'trigger': 'Rough HVAC', 'blocks_next': 'Insulation'},
        {'code': 'RME', 'label': 'Rough MEP (Combined)', 'trigger': 'All Rough', 'blocks_next': 'Insulation'},
        {'code': 'INS', 'label': 'Insulation', 'trigger': 'Insulation', 'blocks_next': 'Drywall Hang'},
        {'code': 'DRY', 'label': 'Drywall', 'trigger': 'Drywall Hang', 'blocks_next': 'Drywall Finish'},
        {'code': 'FEL', 'label': 'Final Electrical', 'trigger': 'Final Electrical', 'blocks_next': 'Final Clean'},
        {'code': 'FPL', 'label': 'Final Plumbing', 'trigger': 'Final Plumbing', 'blocks_next': 'Final Clean'},
        {'code': 'FHV', 'label': 'Final HVAC', 'trigger': 'Final HVAC', 'blocks_next': 'Final Clean'},
        {'code': 'FIN', 'label': 'Final Building', 'trigger': 'Final Clean', 'blocks_next': 'Punch Complete'},
        {'code': 'COO', 'label': 'Certificate of Occupancy', 'trigger': 'Punch Complete', 'blocks_next': 'Handover'},
    ]

    # Task name -> minimum photo count before the task may be completed
    PHOTO_REQUIREMENTS: Dict[str, Dict[str, Any]] = {
        'Foundation': {'min': 2, 'angles': ['overview', 'detail']},
        'Framing': {'min': 4, 'angles': ['front', 'back', 'interior', 'roof']},
        'Roofing': {'min': 2, 'angles': ['front_elevation', 'detail']},
        'Rough Inspection': {'min': 3, 'angles': ['electrical', 'plumbing', 'hvac']},
        'Drywall': {'min': 2, 'angles': ['before_texture', 'after_texture']},
        'Final Inspection': {'min': 6, 'angles': ['front', 'back', 'kitchen', 'master', 'living', 'garage']},
    }

    @classmethod
    def track_rank(cls, track: str) -> int:
        """Position of a track in scheduling order; unknown tracks sort last."""
        try:
            return cls.TRACKS.index(track)
        except ValueError:
            return len(cls.TRACKS)
