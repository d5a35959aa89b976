"""
Tests for the scheduling service layer.
These tests verify that the service loads through the store, runs the engine,
records the change log and reports structured outcomes.
"""
import pytest
from unittest.mock import Mock, patch

from app.scheduling.results import StoreResult
from app.scheduling.service import ScheduleService
from app.scheduling.store import InMemoryScheduleStore

NOW = "2024-02-01T12:00:00Z"

TEMPLATE = {
    'id': 'tpl-1',
    'name': 'Ranch',
    'build_days': 8,
    'tasks': [
        {'name': 'Footings', 'track': 'foundation', 'trade': 'concrete', 'duration': 2, 'sort_order': 1},
        {'name': 'Slab Grade', 'track': 'foundation', 'trade': 'concrete', 'duration': 3, 'sort_order': 2},
        {'name': 'Framing', 'track': 'structure', 'trade': 'framing', 'duration': 3, 'sort_order': 3},
    ],
}
SUBS = [
    {'id': 'sub-concrete', 'trade': 'concrete', 'is_preferred': True},
    {'id': 'sub-framing', 'trade': 'framing'},
]


@pytest.fixture
def store(lot_data):
    with InMemoryScheduleStore(lots=[lot_data], templates=[TEMPLATE], subcontractors=SUBS) as store:
        yield store


@pytest.fixture
def service(store):
    return ScheduleService(store, clock=lambda: NOW)


def stored_lot(store, lot_id='lot-1'):
    return store.load_lot(lot_id).value


# ==============================================================================
# DERIVED VIEWS
# ==============================================================================

class TestDerivedViews:
    """Tests for get_progress and get_task_statuses."""

    def test_progress(self, service):
        """Test progress, milestone and critical path for the sample lot."""
        result = service.get_progress('lot-1')
        assert result['status'] == 'ok'
        assert result['progress'] == 0
        assert result['current_milestone']['id'] == 'foundation_complete'
        assert result['predicted_completion'] == '2024-01-15'
        assert result['bottleneck_track'] == 'interior'
        assert result['critical_path_task_ids'] == ['f1', 'f2', 's1', 'i1', 'fin1', 'fin2']

    def test_statuses(self, service):
        """Test derived status and eligibility maps."""
        result = service.get_task_statuses('lot-1')
        assert result['statuses']['f1'] == 'ready'
        assert result['statuses']['f2'] == 'pending'
        assert result['can_start']['f2'] is True
        assert result['can_complete']['f1'] is True

    def test_unknown_lot(self, service):
        """Test that an unknown lot is not_found."""
        result = service.get_progress('nope')
        assert result['status'] == 'not_found'
        assert result['lot_id'] == 'nope'


# ==============================================================================
# MOVE / DURATION / DELAY
# ==============================================================================

class TestMoveDurationDelay:
    """Tests for the preview/apply pairs."""

    def test_preview_move_does_not_save(self, service, store):
        """Test that a preview leaves the stored lot alone."""
        result = service.preview_move('lot-1', 'f2', '2024-01-08')
        assert result['status'] == 'ok'
        assert [row['task_id'] for row in result['preview']['affected']] == ['f2', 's1']
        assert stored_lot(store).schedule_changes == []

    def test_apply_move_saves_and_logs(self, service, store):
        """Test that apply saves the new dates and appends a change log entry."""
        result = service.apply_move('lot-1', 'f2', '2024-01-08')
        assert result['status'] == 'ok'
        lot = stored_lot(store)
        assert lot.find_task('f2').scheduled_start.isoformat() == '2024-01-08'
        change = lot.schedule_changes[-1]
        assert change.kind == 'move'
        assert change.task_id == 'f2'
        assert change.created_at == NOW
        assert change.details['affected'] == ['f2', 's1']

    def test_move_violation_is_not_saved(self, service, store):
        """Test that a refused move reports the violation and saves nothing."""
        result = service.apply_move('lot-1', 'f2', '2024-01-02')
        assert result['status'] == 'dependency_violation'
        assert result['preview']['earliest_start'] == '2024-01-03'
        assert stored_lot(store).schedule_changes == []

    def test_same_date_move_is_not_saved(self, service, store):
        """Test that a move to the current start reports ok without logging a change."""
        with patch.object(store, 'save_lot', wraps=store.save_lot) as save_lot:
            result = service.apply_move('lot-1', 'f2', '2024-01-03')
        assert result['status'] == 'ok'
        assert result['preview']['affected'] == []
        save_lot.assert_not_called()
        assert stored_lot(store).schedule_changes == []

    def test_unknown_task(self, service):
        """Test that an unknown task is not_found."""
        result = service.apply_move('lot-1', 'nope', '2024-01-08')
        assert result['status'] == 'not_found'
        assert result['task_id'] == 'nope'

    def test_apply_duration(self, service, store):
        """Test that a duration change is saved with old and new durations."""
        result = service.apply_duration('lot-1', 'f2', 5)
        assert result['status'] == 'ok'
        assert result['preview']['new_end'] == '2024-01-09'
        change = stored_lot(store).schedule_changes[-1]
        assert change.kind == 'duration_change'
        assert (change.details['old_duration'], change.details['new_duration']) == (3, 5)

    def test_apply_delay(self, service, store):
        """Test that a delay is saved with its metadata."""
        result = service.apply_delay('lot-1', 'i1', 2, reason='weather', logged_by='super-1')
        assert result['status'] == 'ok'
        task = stored_lot(store).find_task('i1')
        assert task.status == 'delayed'
        assert task.delay_logged_at == NOW
        assert stored_lot(store).schedule_changes[-1].details['reason'] == 'weather'

    def test_preview_delay(self, service):
        """Test the delay preview."""
        result = service.preview_delay('lot-1', 'i1', 2)
        assert result['preview']['new_completion'] == '2024-01-17'


# ==============================================================================
# REORDER / MANUAL START / PARALLEL START
# ==============================================================================

class TestReorderAndParallel:
    """Tests for reorder, set_manual_start and parallel start."""

    def test_reorder(self, service, store):
        """Test that a same-track reorder is saved."""
        result = service.reorder('lot-1', 'fin1', 'fin2')
        assert result['status'] == 'ok'
        assert stored_lot(store).find_task('fin1').sort_order == 7

    def test_reorder_across_tracks_is_invalid(self, service):
        """Test that a cross-track reorder is refused."""
        assert service.reorder('lot-1', 'f1', 's1')['status'] == 'invalid'

    def test_reorder_unknown_drop(self, service):
        """Test that an unknown drop target is not_found."""
        assert service.reorder('lot-1', 'f1', 'nope')['status'] == 'not_found'

    def test_manual_start(self, service, store):
        """Test that a pinned start is normalized and saved."""
        result = service.set_manual_start('lot-1', 'i1', '2024-01-13')
        assert result['status'] == 'ok'
        assert stored_lot(store).schedule_changes[-1].details == {'start_date': '2024-01-15'}

    def test_parallel_preview_blocked(self, service):
        """Test that mutually dependent selections report blocked."""
        result = service.preview_parallel_start('lot-1', ['s1', 'i1'])
        assert result['status'] == 'blocked'
        assert result['blocked_dependencies'] == [{'task_id': 'i1', 'depends_on_task_id': 's1'}]

    def test_parallel_apply_with_override(self, service, store):
        """Test that an overridden parallel start is saved."""
        result = service.apply_parallel_start('lot-1', ['s1', 'i1'], override_dependencies=True)
        assert result['status'] == 'ok'
        assert result['target_start'] == '2024-01-08'
        lot = stored_lot(store)
        assert lot.find_task('i1').scheduled_start.isoformat() == '2024-01-08'
        assert lot.schedule_changes[-1].kind == 'parallel_start'

    def test_parallel_unknown_task(self, service):
        """Test that an unknown task in the selection is not_found."""
        assert service.apply_parallel_start('lot-1', ['s1', 'ghost'])['status'] == 'not_found'


# ==============================================================================
# BUFFERS
# ==============================================================================

class TestBuffers:
    """Tests for insert_buffer and remove_buffer."""

    def test_insert_and_remove(self, service, store):
        """Test that a buffer can be inserted and removed again."""
        inserted = service.insert_buffer('lot-1', 'f1', 2)
        assert inserted['status'] == 'ok'
        buffer_id = inserted['buffer_task_id']
        assert stored_lot(store).find_task(buffer_id).is_buffer is True

        removed = service.remove_buffer('lot-1', buffer_id)
        assert removed['status'] == 'ok'
        lot = stored_lot(store)
        assert lot.find_task(buffer_id) is None
        assert [c.kind for c in lot.schedule_changes] == ['insert_buffer', 'remove_buffer']

    def test_remove_non_buffer_is_invalid(self, service):
        """Test that a regular task can't be removed as a buffer."""
        assert service.remove_buffer('lot-1', 'f2')['status'] == 'invalid'


# ==============================================================================
# START FROM TEMPLATE
# ==============================================================================

class TestStartLot:
    """Tests for start_lot."""

    def test_start_from_template(self, service, store):
        """Test that starting replaces the tasks and assigns subs."""
        result = service.start_lot('lot-1', 'tpl-1', '2024-03-04')
        assert result['status'] == 'ok'
        lot = stored_lot(store)
        assert [t.name for t in lot.tasks] == ['Footings', 'Slab Grade', 'Framing']
        assert lot.start_date.isoformat() == '2024-03-04'
        assert lot.find_task(lot.tasks[0].id).sub_id == 'sub-concrete'
        assert lot.schedule_changes[-1].kind == 'start_from_template'

    def test_start_from_drafts(self, service, store):
        """Test that caller-supplied drafts are used as-is."""
        drafts = [{'id': 'd1', 'name': 'Custom', 'track': 'foundation', 'trade': 'concrete',
                   'scheduled_start': '2024-03-04', 'scheduled_end': '2024-03-05'}]
        result = service.start_lot('lot-1', None, '2024-03-04', draft_tasks=drafts)
        assert result['status'] == 'ok'
        assert [t.id for t in stored_lot(store).tasks] == ['d1']

    def test_missing_template(self, service):
        """Test that an unknown template is not_found."""
        result = service.start_lot('lot-1', 'nope', '2024-03-04')
        assert result['status'] == 'not_found'
        assert result['template_id'] == 'nope'

    def test_template_required(self, service):
        """Test that a start without template or drafts is invalid."""
        assert service.start_lot('lot-1', None, '2024-03-04')['status'] == 'invalid'

    def test_invalid_start_date(self, service):
        """Test that an unparseable start date is invalid."""
        assert service.start_lot('lot-1', 'tpl-1', 'someday')['status'] == 'invalid'


# ==============================================================================
# STORAGE FAILURES
# ==============================================================================

class TestStorageFailures:
    """Tests for storage failures surfacing as structured outcomes."""

    def test_load_failure(self):
        """Test that a failed load is reported as storage_error with the detail."""
        store = Mock()
        store.load_lot.return_value = StoreResult.failure(StoreResult.STORAGE_ERROR, 'connection reset')
        result = ScheduleService(store).apply_move('lot-1', 'f2', '2024-01-08')
        assert result == {'status': 'storage_error', 'error': 'connection reset', 'lot_id': 'lot-1'}
        store.save_lot.assert_not_called()

    def test_save_failure(self, service, store):
        """Test that a failed save is reported and nothing is stored."""
        failure = StoreResult.failure(StoreResult.STORAGE_ERROR, 'disk full')
        with patch.object(store, 'save_lot', return_value=failure):
            result = service.apply_move('lot-1', 'f2', '2024-01-08')
        assert result['status'] == 'storage_error'
        assert stored_lot(store).schedule_changes == []

    def test_closed_store(self, lot_data):
        """Test that a store that was never opened reports not_open."""
        service = ScheduleService(InMemoryScheduleStore(lots=[lot_data]))
        assert service.get_progress('lot-1')['status'] == 'not_open'
