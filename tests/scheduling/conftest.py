"""
Shared lot fixtures.

The sample lot is laid out on a Mon-Fri calendar in January 2024:

    f1    foundation  #1  Jan 1-2
    f2    foundation  #2  Jan 3-5    FS f1
    s1    structure   #3  Jan 8-9    FS f2
    i1    interior    #4  Jan 10-11  FS s1
    e1    exterior    #5  Jan 10     FS s1
    fin1  final       #6  Jan 12
    fin2  final       #7  Jan 15
"""
import pytest

from app.scheduling.records import Lot

NOW = "2024-01-01T00:00:00Z"


def sample_lot_data():
    def task(task_id, track, sort_order, duration, start, end, depends_on=None, **extra):
        data = {
            'id': task_id,
            'name': task_id.upper(),
            'lot_id': 'lot-1',
            'track': track,
            'trade': track,
            'sort_order': sort_order,
            'duration': duration,
            'scheduled_start': start,
            'scheduled_end': end,
            'dependencies': [{'depends_on_task_id': depends_on, 'type': 'FS'}] if depends_on else [],
        }
        data.update(extra)
        return data

    return {
        'id': 'lot-1',
        'community_id': 'community-1',
        'status': 'in_progress',
        'start_date': '2024-01-01',
        'build_days': 11,
        'tasks': [
            task('f1', 'foundation', 1, 2, '2024-01-01', '2024-01-02'),
            task('f2', 'foundation', 2, 3, '2024-01-03', '2024-01-05', 'f1'),
            task('s1', 'structure', 3, 2, '2024-01-08', '2024-01-09', 'f2'),
            task('i1', 'interior', 4, 2, '2024-01-10', '2024-01-11', 's1'),
            task('e1', 'exterior', 5, 1, '2024-01-10', '2024-01-10', 's1'),
            task('fin1', 'final', 6, 1, '2024-01-12', '2024-01-12'),
            task('fin2', 'final', 7, 1, '2024-01-15', '2024-01-15'),
        ],
    }


@pytest.fixture
def lot_data():
    return sample_lot_data()


@pytest.fixture
def lot(lot_data):
    return Lot.from_dict(lot_data)
