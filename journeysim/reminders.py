"""
Reminder scheduler: decides which reminders fire for an overdue action.

Reminders are an overdue-escalation mechanism only. Nothing fires before the
deadline has passed, and TRAINER/WEBHOOK reminders never produce member
notifications.

The scheduler's only memory across calls is the ledger (reminder id -> last
fire instant). It takes the ledger in and hands an updated copy back, leaving
the caller's mapping untouched:

    check = check_reminders(instance, now, ledger)
    ledger = check.ledger
    feed = check.notifications + feed
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .deadlines import days_overdue
from .schemas import (
    ActionInstance,
    ActionStatus,
    Notification,
    Reminder,
    ReminderChannel,
    ReminderFrequency,
    ReminderLedger,
)


class ReminderCheck(BaseModel):
    """Result of one scheduler pass over an action."""

    notifications: List[Notification] = Field(default_factory=list)
    ledger: ReminderLedger = Field(default_factory=dict)


def is_reminder_due(
    reminder: Reminder,
    current_time: datetime,
    last_fired: Optional[datetime],
) -> bool:
    """Return True when ``reminder`` should fire at ``current_time``.

    Assumes the owning action is overdue. Elapsed time is measured in whole
    days, and only the latest fire is remembered, so a long jump forward fires
    a periodic reminder once rather than once per missed interval.
    """
    if reminder.is_silent:
        return False

    if last_fired is None:
        return True

    if reminder.frequency == ReminderFrequency.ONCE:
        return False

    elapsed_days = (current_time - last_fired).days
    return elapsed_days >= (reminder.frequency_days or 1)


def render_message(channel: ReminderChannel, title: str, overdue_days: int) -> str:
    """Render the member-facing text for a reminder."""
    if overdue_days <= 0:
        when = "is now overdue"
    elif overdue_days == 1:
        when = "is 1 day overdue"
    else:
        when = f"is {overdue_days} days overdue"

    if channel == ReminderChannel.EMAIL:
        return f"Reminder: \"{title}\" {when}. Open the app to complete it."
    return f"Don't forget: {title} {when}."


def check_reminders(
    instance: ActionInstance,
    current_time: datetime,
    ledger: Optional[ReminderLedger] = None,
) -> ReminderCheck:
    """Return notifications due for ``instance`` and the updated ledger.

    Args:
        instance: Latest runtime state of the action
        current_time: Simulated "now"
        ledger: Last fire instant per reminder id (not mutated)

    Returns:
        ReminderCheck with notifications in reminder ordinal order
    """
    updated: ReminderLedger = dict(ledger or {})

    if instance.status != ActionStatus.OVERDUE or instance.deadline is None:
        return ReminderCheck(ledger=updated)

    action = instance.action
    overdue_days = days_overdue(instance.deadline, current_time)
    notifications: List[Notification] = []

    for reminder in action.ordered_reminders():
        if not is_reminder_due(reminder, current_time, updated.get(reminder.id)):
            continue

        notifications.append(
            Notification(
                type=reminder.channel.value,
                action_id=action.id,
                action_title=action.display_title,
                reminder_id=reminder.id,
                message=render_message(reminder.channel, action.display_title, overdue_days),
                timestamp=current_time,
            )
        )
        # Recording the fire is what prevents a duplicate within the same tick
        updated[reminder.id] = current_time

    return ReminderCheck(notifications=notifications, ledger=updated)
