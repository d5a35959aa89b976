"""
Tests for subcontractor assignment.
"""
from datetime import date

from app.scheduling.records import Subcontractor, Task
from app.scheduling.subcontractors import (
    assign_subs_to_tasks,
    build_load_index,
    has_capacity_over_span,
    is_sub_available,
    pick_sub_for_trade,
)

MON = date(2024, 1, 8)
TUE = date(2024, 1, 9)


def make_sub(sub_id, trade='framing', **fields):
    return Subcontractor.from_dict(dict({'id': sub_id, 'trade': trade}, **fields))


def make_task(task_id, start=MON, end=None, trade='framing', **fields):
    return Task(id=task_id, name=task_id, trade=trade, scheduled_start=start,
                scheduled_end=end or start, **fields)


# ==============================================================================
# LOAD & AVAILABILITY
# ==============================================================================

class TestAvailability:
    """Tests for build_load_index and is_sub_available."""

    def test_load_counts_every_day_in_span(self):
        """Test that a multi-day task counts toward each calendar day it covers."""
        load = build_load_index([make_task('x', MON, date(2024, 1, 10), sub_id='s1')])
        assert load[('s1', MON)] == 1
        assert load[('s1', TUE)] == 1
        assert load[('s1', date(2024, 1, 10))] == 1

    def test_load_skips_unassigned_and_undated(self):
        """Test that tasks without a sub or without dates add no load."""
        load = build_load_index([make_task('x'), Task(id='y', name='y', sub_id='s1')])
        assert dict(load) == {}

    def test_blackout_makes_unavailable(self):
        """Test that a blackout range covering the date blocks the sub."""
        sub = make_sub('s1', blackout_dates=[{'start': '2024-01-08', 'end': '2024-01-12'}])
        assert is_sub_available(sub, MON, {}) is False
        assert is_sub_available(sub, date(2024, 1, 15), {}) is True

    def test_capacity(self):
        """Test that a sub at max_concurrent_lots is unavailable."""
        sub = make_sub('s1', max_concurrent_lots=2)
        assert is_sub_available(sub, MON, {('s1', MON): 1}) is True
        assert is_sub_available(sub, MON, {('s1', MON): 2}) is False

    def test_zero_capacity_is_unlimited(self):
        """Test that max_concurrent_lots of zero means no limit."""
        assert is_sub_available(make_sub('s1'), MON, {('s1', MON): 50}) is True

    def test_capacity_over_span(self):
        """Test that a full day anywhere in the span blocks the sub."""
        sub = make_sub('s1', max_concurrent_lots=1)
        load = {('s1', date(2024, 1, 10)): 1}
        assert has_capacity_over_span(sub, MON, TUE, load) is True
        assert has_capacity_over_span(sub, MON, date(2024, 1, 11), load) is False
        assert has_capacity_over_span(make_sub('s2'), MON, date(2024, 1, 11), {('s2', MON): 9}) is True


# ==============================================================================
# PICKING
# ==============================================================================

class TestPickSubForTrade:
    """Tests for pick_sub_for_trade."""

    def test_preferred_first(self):
        """Test that an available preferred sub wins over a better rating."""
        subs = [make_sub('a', rating=5), make_sub('b', is_preferred=True, rating=1)]
        assert pick_sub_for_trade('framing', MON, subs, {}).id == 'b'

    def test_backup_when_preferred_blacked_out(self):
        """Test that the backup sub is used when the preferred one is blacked out."""
        subs = [
            make_sub('a', is_preferred=True, blackout_dates=[{'start': '2024-01-08', 'end': '2024-01-08'}]),
            make_sub('b', is_backup=True),
            make_sub('c', rating=5),
        ]
        assert pick_sub_for_trade('framing', MON, subs, {}).id == 'b'

    def test_highest_rating_otherwise(self):
        """Test that the best-rated available candidate is chosen."""
        subs = [make_sub('a', rating=3), make_sub('b', rating=4.5), make_sub('c', rating=4)]
        assert pick_sub_for_trade('framing', MON, subs, {}).id == 'b'

    def test_equal_ratings_keep_input_order(self):
        """Test that ties go to the first candidate in the input."""
        subs = [make_sub('a', rating=4), make_sub('b', rating=4)]
        assert pick_sub_for_trade('framing', MON, subs, {}).id == 'a'

    def test_secondary_trade_and_inactive(self):
        """Test that secondary trades count and inactive subs don't."""
        subs = [
            make_sub('a', status='inactive'),
            make_sub('b', trade='siding', secondary_trades=['framing']),
        ]
        assert pick_sub_for_trade('framing', MON, subs, {}).id == 'b'

    def test_no_candidate(self):
        """Test that no sub is returned when nobody covers the trade."""
        assert pick_sub_for_trade('roofing', MON, [make_sub('a')], {}) is None


# ==============================================================================
# ASSIGNMENT
# ==============================================================================

class TestAssignSubsToTasks:
    """Tests for assign_subs_to_tasks."""

    def test_capacity_never_exceeded_across_new_tasks(self):
        """Test that assignments made in the same pass count toward capacity."""
        subs = [make_sub('a', rating=5, max_concurrent_lots=1), make_sub('b', rating=1)]
        tasks = [make_task('t1', sort_order=1), make_task('t2', sort_order=2)]
        assigned = assign_subs_to_tasks(tasks, subs)
        assert [t.sub_id for t in assigned] == ['a', 'b']

    def test_existing_load_from_other_lots(self):
        """Test that tasks scheduled on other lots consume capacity."""
        subs = [make_sub('a', is_preferred=True, max_concurrent_lots=1), make_sub('b')]
        existing = [make_task('other', MON, TUE, sub_id='a')]
        assigned = assign_subs_to_tasks([make_task('t1', TUE)], subs, existing)
        assert assigned[0].sub_id == 'b'

    def test_existing_load_starting_mid_span(self):
        """Test that load beginning after the task's start still counts against capacity."""
        subs = [make_sub('a', is_preferred=True, max_concurrent_lots=1), make_sub('b')]
        existing = [make_task('other', date(2024, 1, 10), date(2024, 1, 12), sub_id='a')]
        assigned = assign_subs_to_tasks([make_task('t1', MON, date(2024, 1, 11))], subs, existing)
        assert assigned[0].sub_id == 'b'

    def test_no_sub_when_every_candidate_is_full_mid_span(self):
        """Test that the task stays unassigned rather than overbooking a sub."""
        subs = [make_sub('a', max_concurrent_lots=1)]
        existing = [make_task('other', date(2024, 1, 10), date(2024, 1, 12), sub_id='a')]
        assigned = assign_subs_to_tasks([make_task('t1', MON, date(2024, 1, 11))], subs, existing)
        assert assigned[0].sub_id is None

    def test_blackout_never_violated(self):
        """Test that no task is assigned to a sub blacked out on its start date."""
        subs = [make_sub('a', blackout_dates=[{'start': '2024-01-08', 'end': '2024-01-09'}])]
        assigned = assign_subs_to_tasks([make_task('t1', MON), make_task('t2', date(2024, 1, 10))], subs)
        assert [t.sub_id for t in assigned] == [None, 'a']

    def test_assignment_follows_schedule_order_not_input_order(self):
        """Test that earlier-starting tasks claim capacity first and input order is preserved."""
        subs = [make_sub('a', max_concurrent_lots=1, rating=5), make_sub('b', rating=1)]
        late = make_task('late', TUE, date(2024, 1, 10))
        early = make_task('early', MON, TUE)
        assigned = assign_subs_to_tasks([late, early], subs)
        assert [t.id for t in assigned] == ['late', 'early']
        assert {t.id: t.sub_id for t in assigned} == {'early': 'a', 'late': 'b'}

    def test_undated_tasks_untouched(self):
        """Test that tasks without a start keep their sub."""
        undated = Task(id='u', name='u', trade='framing', sub_id='keep')
        assigned = assign_subs_to_tasks([undated], [make_sub('a')])
        assert assigned[0].sub_id == 'keep'

    def test_inputs_not_mutated(self):
        """Test that the caller's tasks are copied."""
        task = make_task('t1')
        assign_subs_to_tasks([task], [make_sub('a')])
        assert task.sub_id is None
