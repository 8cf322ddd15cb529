"""Tests for the overdue reminder scheduler."""

from datetime import datetime, timedelta, timezone

from journeysim.reminders import check_reminders, is_reminder_due, render_message
from journeysim.schemas import (
    AbsoluteDeadline,
    Action,
    ActionInstance,
    ActionStatus,
    Reminder,
    ReminderChannel,
    ReminderFrequency,
)

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def make_instance(*reminders: Reminder, status=ActionStatus.OVERDUE) -> ActionInstance:
    action = Action(
        id="plan",
        action_type_id="A05",
        title="Training plan created",
        event_type="TRAINING_PLAN_CREATED",
        time_range=AbsoluteDeadline(duration_days=1),
        reminders=list(reminders),
    )
    return ActionInstance(action=action, status=status, deadline=T0)


def run_days(instance: ActionInstance, days):
    """Run the scheduler at T0 + each day offset, threading the ledger."""
    ledger = {}
    fired = []
    for day in days:
        check = check_reminders(instance, T0 + timedelta(days=day), ledger)
        ledger = check.ledger
        fired.append(len(check.notifications))
    return fired, ledger


def test_once_reminder_fires_exactly_once():
    instance = make_instance(Reminder(id="r1", channel=ReminderChannel.PUSH))
    fired, ledger = run_days(instance, [1, 2, 5, 30])
    assert fired == [1, 0, 0, 0]
    assert ledger == {"r1": T0 + timedelta(days=1)}


def test_periodic_reminder_respects_interval():
    reminder = Reminder(
        id="r1",
        channel=ReminderChannel.EMAIL,
        frequency=ReminderFrequency.EVERY_X_DAYS,
        frequency_days=3,
    )
    fired, _ = run_days(make_instance(reminder), [1, 2, 3, 4, 6, 7])
    assert fired == [1, 0, 0, 1, 0, 1]


def test_long_jump_fires_periodic_reminder_once():
    reminder = Reminder(
        channel=ReminderChannel.PUSH,
        frequency=ReminderFrequency.EVERY_X_DAYS,
        frequency_days=3,
    )
    fired, _ = run_days(make_instance(reminder), [1, 40])
    assert fired == [1, 1]


def test_silent_channels_never_fire():
    instance = make_instance(
        Reminder(channel=ReminderChannel.TRAINER),
        Reminder(channel=ReminderChannel.WEBHOOK),
    )
    check = check_reminders(instance, T0 + timedelta(days=3))
    assert check.notifications == []
    assert check.ledger == {}


def test_nothing_fires_unless_overdue():
    reminder = Reminder(channel=ReminderChannel.PUSH)
    for status in (ActionStatus.NOT_DONE, ActionStatus.IN_PROGRESS, ActionStatus.DONE):
        check = check_reminders(make_instance(reminder, status=status), T0 + timedelta(days=3))
        assert check.notifications == []


def test_ledger_argument_is_not_mutated():
    reminder = Reminder(id="r1", channel=ReminderChannel.PUSH)
    ledger = {}
    check = check_reminders(make_instance(reminder), T0 + timedelta(days=1), ledger)
    assert ledger == {}
    assert "r1" in check.ledger


def test_notifications_follow_reminder_order():
    second = Reminder(id="email", channel=ReminderChannel.EMAIL, order=1)
    first = Reminder(id="push", channel=ReminderChannel.PUSH, order=0)
    check = check_reminders(make_instance(second, first), T0 + timedelta(days=2))

    assert [n.type for n in check.notifications] == ["PUSH", "EMAIL"]
    notification = check.notifications[0]
    assert notification.action_id == "plan"
    assert notification.reminder_id == "push"
    assert notification.timestamp == T0 + timedelta(days=2)
    assert notification.read is False
    assert "2 days overdue" in notification.message


def test_is_reminder_due_uses_whole_days():
    reminder = Reminder(
        channel=ReminderChannel.PUSH,
        frequency=ReminderFrequency.EVERY_X_DAYS,
        frequency_days=1,
    )
    assert is_reminder_due(reminder, T0, None)
    assert not is_reminder_due(reminder, T0 + timedelta(hours=23), T0)
    assert is_reminder_due(reminder, T0 + timedelta(hours=24), T0)


def test_render_message_wording():
    assert render_message(ReminderChannel.PUSH, "RFID linked", 0) == "Don't forget: RFID linked is now overdue."
    assert "is 1 day overdue" in render_message(ReminderChannel.EMAIL, "RFID linked", 1)
