"""Unit tests for the journey schemas and display unit conversion."""

import pytest
from pydantic import ValidationError

from journeysim.schemas import (
    AbsoluteDeadline,
    Action,
    CompletionMode,
    Journey,
    NoDeadline,
    Product,
    RelativeToPrevious,
    Reminder,
    ReminderChannel,
    ReminderFrequency,
    TimeUnit,
    time_range_columns,
    time_range_from_columns,
)
from journeysim.units import days_to_unit, describe_days, unit_to_days


def test_counter_requires_required_count():
    with pytest.raises(ValidationError):
        Action(action_type_id="A13", event_type="WORKOUT_TRACKED", completion_mode=CompletionMode.COUNTER)


def test_occurrence_rejects_required_count():
    with pytest.raises(ValidationError):
        Action(action_type_id="A01", event_type="EGYM_ACCOUNT_CREATED", required_count=2)


def test_required_count_must_be_positive():
    with pytest.raises(ValidationError):
        Action(
            action_type_id="A13",
            event_type="WORKOUT_TRACKED",
            completion_mode=CompletionMode.COUNTER,
            required_count=0,
        )


def test_every_x_days_reminder_needs_interval():
    with pytest.raises(ValidationError):
        Reminder(channel=ReminderChannel.PUSH, frequency=ReminderFrequency.EVERY_X_DAYS)

    reminder = Reminder(channel=ReminderChannel.EMAIL, frequency=ReminderFrequency.EVERY_X_DAYS, frequency_days=3)
    assert reminder.frequency_days == 3
    assert not reminder.is_silent
    assert Reminder(channel=ReminderChannel.WEBHOOK).is_silent


def test_absolute_deadline_needs_at_least_one_day():
    with pytest.raises(ValidationError):
        AbsoluteDeadline(duration_days=0)
    with pytest.raises(ValidationError):
        RelativeToPrevious(offset_days=-1)


def test_time_range_parses_as_tagged_union():
    action = Action.model_validate(
        {
            "action_type_id": "A05",
            "event_type": "TRAINING_PLAN_CREATED",
            "time_range": {"type": "WITH_PREVIOUS", "offset_days": 2},
        }
    )
    assert isinstance(action.time_range, RelativeToPrevious)
    assert action.time_range.offset_days == 2

    assert isinstance(Action(action_type_id="A01", event_type="X").time_range, NoDeadline)


def test_time_range_from_columns_degrades_gaps():
    assert isinstance(time_range_from_columns("ABSOLUTE", None), NoDeadline)
    assert time_range_from_columns("WITH_PREVIOUS", None, None).offset_days == 0
    assert time_range_from_columns("ABSOLUTE", 14, None, "WEEKS") == AbsoluteDeadline(
        duration_days=14, display_unit=TimeUnit.WEEKS
    )
    assert isinstance(time_range_from_columns(None), NoDeadline)


def test_time_range_columns_flatten():
    columns = time_range_columns(AbsoluteDeadline(duration_days=5))
    assert columns == {
        "time_range_type": "ABSOLUTE",
        "time_range_duration_days": 5,
        "time_range_offset_days": None,
        "time_range_unit": "DAYS",
    }


def test_ordered_reminders_and_journey_helpers():
    late = Reminder(channel=ReminderChannel.EMAIL, order=2)
    early = Reminder(channel=ReminderChannel.PUSH, order=0)
    first = Action(id="a", action_type_id="A01", event_type="EGYM_ACCOUNT_CREATED", product=Product.BMA)
    second = Action(id="b", action_type_id="A02", event_type="CHECKIN_DONE", reminders=[late, early])
    journey = Journey(name="J", actions=[first, second])

    assert second.ordered_reminders() == [early, late]
    assert journey.entry_action is first
    assert journey.previous_action("b") is first
    assert journey.previous_action("a") is None
    assert journey.index_of("missing") == -1
    assert first.matches("EGYM_ACCOUNT_CREATED", Product.BMA)
    assert not first.matches("EGYM_ACCOUNT_CREATED", Product.FITHUB)


def test_unit_conversion_is_rounded_and_lossy():
    assert unit_to_days(2, TimeUnit.WEEKS) == 14
    assert unit_to_days(1, TimeUnit.MONTHS) == 30
    assert days_to_unit(10, TimeUnit.WEEKS) == 1
    assert days_to_unit(45, TimeUnit.MONTHS) == 2
    # Round trip through weeks loses the remainder
    assert unit_to_days(days_to_unit(10, TimeUnit.WEEKS), TimeUnit.WEEKS) == 7
    assert describe_days(14, TimeUnit.WEEKS) == "2 weeks"
    assert describe_days(1) == "1 day"
