"""Tests for deadline resolution, status classification and time-frame text."""

from datetime import datetime, timedelta, timezone

from journeysim.deadlines import (
    classify_status,
    format_progress,
    format_time_frame,
    progress_percentage,
    resolve_deadline,
)
from journeysim.schemas import (
    AbsoluteDeadline,
    Action,
    ActionStatus,
    CompletionMode,
    NoDeadline,
    RelativeToPrevious,
)

T0 = datetime(2025, 1, 6, 9, 30, tzinfo=timezone.utc)


def make_action(time_range=None, required_count=None) -> Action:
    if required_count is None:
        return Action(action_type_id="A05", event_type="TRAINING_PLAN_CREATED", time_range=time_range or NoDeadline())
    return Action(
        action_type_id="A13",
        event_type="WORKOUT_TRACKED",
        completion_mode=CompletionMode.COUNTER,
        required_count=required_count,
        time_range=time_range or NoDeadline(),
    )


def test_absolute_deadline_is_anchor_plus_days():
    deadline = resolve_deadline(AbsoluteDeadline(duration_days=3), T0)
    assert deadline == T0 + timedelta(days=3)
    assert (deadline.hour, deadline.minute) == (9, 30)


def test_absolute_deadline_ignores_previous_completion():
    later = T0 + timedelta(days=10)
    assert resolve_deadline(AbsoluteDeadline(duration_days=2), T0, later) == T0 + timedelta(days=2)


def test_with_previous_is_gated_on_previous_completion():
    time_range = RelativeToPrevious(offset_days=2)
    assert resolve_deadline(time_range, T0) is None
    assert resolve_deadline(time_range, T0, None) is None

    previous = T0 + timedelta(days=4)
    assert resolve_deadline(time_range, T0, previous) == previous + timedelta(days=2)
    assert resolve_deadline(RelativeToPrevious(), T0, previous) == previous


def test_no_deadline_resolves_to_none():
    assert resolve_deadline(NoDeadline(), T0) is None
    assert resolve_deadline(None, T0) is None
    assert resolve_deadline(AbsoluteDeadline(duration_days=1), None) is None


def test_completion_is_sticky():
    action = make_action(AbsoluteDeadline(duration_days=1))
    deadline = T0 + timedelta(days=1)
    for days in (0, 2, 100):
        status = classify_status(action, deadline, T0 + timedelta(days=days), completed_at=T0)
        assert status == ActionStatus.DONE


def test_overdue_and_not_done():
    action = make_action(AbsoluteDeadline(duration_days=1))
    deadline = T0 + timedelta(days=1)
    assert classify_status(action, deadline, T0) == ActionStatus.NOT_DONE
    assert classify_status(action, deadline, deadline) == ActionStatus.NOT_DONE
    assert classify_status(action, deadline, deadline + timedelta(seconds=1)) == ActionStatus.OVERDUE
    assert classify_status(action, None, T0 + timedelta(days=500)) == ActionStatus.NOT_DONE


def test_counter_progress_statuses():
    action = make_action(AbsoluteDeadline(duration_days=2), required_count=3)
    deadline = T0 + timedelta(days=2)

    assert classify_status(action, deadline, T0, current_count=0) == ActionStatus.NOT_DONE
    assert classify_status(action, deadline, T0, current_count=1) == ActionStatus.IN_PROGRESS
    # A passed deadline takes precedence over partial progress
    assert classify_status(action, deadline, T0 + timedelta(days=3), current_count=2) == ActionStatus.OVERDUE
    assert classify_status(action, deadline, T0 + timedelta(days=3), current_count=3) == ActionStatus.DONE


def test_format_time_frame_variants():
    action = make_action(AbsoluteDeadline(duration_days=1))

    assert format_time_frame(make_action(), None, T0) == "No deadline"
    assert format_time_frame(make_action(RelativeToPrevious()), None, T0) == "Pending previous action"
    assert format_time_frame(action, T0 + timedelta(hours=5), T0) == "Due today"
    assert format_time_frame(action, T0 - timedelta(hours=5), T0) == "Overdue"
    assert format_time_frame(action, T0 + timedelta(days=1), T0) == "Due in 1 day"
    assert format_time_frame(action, T0 + timedelta(days=5), T0) == "Due in 5 days"
    assert format_time_frame(action, T0 + timedelta(days=14), T0) == "Due in 2 weeks"
    assert format_time_frame(action, T0 + timedelta(days=10), T0) == "Due in 1 week and 3 days"
    assert format_time_frame(action, T0 - timedelta(days=1), T0) == "Overdue by 1 day"
    assert format_time_frame(action, T0 - timedelta(days=2), T0) == "Overdue by 2 days"
    assert format_time_frame(action, T0 + timedelta(days=45), T0) == "Due: Feb 20, 2025"


def test_progress_helpers():
    assert format_progress(2, 5) == "2 of 5"
    assert progress_percentage(2, 5) == 40.0
    assert progress_percentage(9, 5) == 100.0
    assert progress_percentage(1, 0) == 0.0
