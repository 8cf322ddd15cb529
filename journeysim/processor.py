"""
Event processor: applies one domain event to a journey's runtime state.

Two regimes:
- Unanchored journey: only the entry action (first in journey order) can
  complete. When it does, the event's timestamp becomes the anchor time.
- Anchored journey: every action whose event type and product match is
  updated, in journey order, according to its completion mode.

COUNTER actions also trigger milestone subsumption: once a count is reached,
every other COUNTER action on the same event type whose threshold is covered
by that count completes too.

Unmatched events are normal (events are broadcast to every journey) and
yield an empty outcome. Completed actions are never touched again, so replays
of the same event type are idempotent for them.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from .deadlines import classify_status, resolve_deadline
from .reminders import check_reminders
from .schemas import (
    Action,
    ActionInstance,
    ActionStatus,
    CompletionMode,
    Event,
    Journey,
    Notification,
    ReminderLedger,
)


class EventOutcome(BaseModel):
    """Everything an event changed.

    ``updated_instances`` holds only touched actions, in the order they were
    updated; callers upsert them by id. ``anchor_time`` is the anchor after the
    event (newly set when the entry action just completed).
    """

    updated_instances: List[ActionInstance] = Field(default_factory=list)
    new_notifications: List[Notification] = Field(default_factory=list)
    ledger: ReminderLedger = Field(default_factory=dict)
    anchor_time: Optional[datetime] = None


def previous_completed_at(
    journey: Journey,
    action: Action,
    instances: Dict[str, ActionInstance],
) -> Optional[datetime]:
    """Completion time of the action before ``action`` in journey order."""
    previous = journey.previous_action(action.id)
    if previous is None:
        return None
    instance = instances.get(previous.id)
    return instance.completed_at if instance else None


def deadline_for(
    journey: Journey,
    action: Action,
    instances: Dict[str, ActionInstance],
    anchor_time: Optional[datetime],
) -> Optional[datetime]:
    return resolve_deadline(
        action.time_range,
        anchor_time,
        previous_completed_at(journey, action, instances),
    )


def new_instance(
    action: Action,
    anchor_time: Optional[datetime],
    deadline: Optional[datetime] = None,
) -> ActionInstance:
    return ActionInstance(
        action=action,
        status=ActionStatus.NOT_DONE,
        current_count=0,
        deadline=deadline,
        anchor_time=anchor_time,
    )


def mark_complete(
    instance: ActionInstance,
    completed_at: datetime,
    anchor_time: Optional[datetime],
) -> ActionInstance:
    """Return a DONE copy of ``instance`` stamped with ``completed_at``."""
    action = instance.action
    count = instance.current_count
    if action.completion_mode == CompletionMode.COUNTER and action.required_count:
        count = max(count, action.required_count)

    return instance.model_copy(
        update={
            "status": ActionStatus.DONE,
            "current_count": count,
            "completed_at": completed_at,
            "anchor_time": anchor_time,
        }
    )


def increment_count(
    instance: ActionInstance,
    occurred_at: datetime,
    current_time: datetime,
    anchor_time: Optional[datetime],
) -> ActionInstance:
    """Count one more matching event for a COUNTER action."""
    action = instance.action
    count = instance.current_count + 1

    if action.required_count and count >= action.required_count:
        return instance.model_copy(
            update={
                "status": ActionStatus.DONE,
                "current_count": count,
                "completed_at": occurred_at,
                "anchor_time": anchor_time,
            }
        )

    status = classify_status(action, instance.deadline, current_time, None, count)
    return instance.model_copy(
        update={"status": status, "current_count": count, "anchor_time": anchor_time}
    )


def subsumed_milestones(
    journey: Journey,
    trigger: Action,
    count: int,
    instances: Dict[str, ActionInstance],
    occurred_at: datetime,
    anchor_time: Optional[datetime],
) -> Iterable[ActionInstance]:
    """Yield COUNTER actions on ``trigger``'s event type that ``count`` satisfies."""
    for action in journey.actions:
        if action.id == trigger.id:
            continue
        if action.event_type != trigger.event_type:
            continue
        if action.completion_mode != CompletionMode.COUNTER or not action.required_count:
            continue
        if count < action.required_count:
            continue

        instance = instances.get(action.id)
        if instance is None:
            instance = new_instance(
                action, anchor_time, deadline_for(journey, action, instances, anchor_time)
            )
        if instance.is_completed:
            continue

        yield mark_complete(instance, occurred_at, anchor_time)


def _process_entry(
    event: Event,
    journey: Journey,
    instances: Dict[str, ActionInstance],
    ledger: ReminderLedger,
) -> EventOutcome:
    entry = journey.entry_action
    if entry is None or not entry.matches(event.event_type, event.product):
        return EventOutcome(ledger=ledger)

    anchor_time = event.occurred_at
    instance = instances.get(entry.id) or new_instance(entry, None)
    if instance.is_completed:
        return EventOutcome(ledger=ledger)

    instance = instance.model_copy(
        update={"deadline": resolve_deadline(entry.time_range, anchor_time)}
    )
    completed = mark_complete(instance, event.occurred_at, anchor_time)
    return EventOutcome(updated_instances=[completed], ledger=ledger, anchor_time=anchor_time)


def process_event(
    event: Event,
    journey: Journey,
    instances: Iterable[ActionInstance],
    anchor_time: Optional[datetime],
    current_time: datetime,
    ledger: Optional[ReminderLedger] = None,
) -> EventOutcome:
    """Apply ``event`` to the journey and report the resulting changes.

    Neither ``instances`` nor ``ledger`` is mutated.

    Args:
        event: Domain event to apply
        journey: Journey definition (action order matters)
        instances: Current runtime instances; missing ones are created lazily
        anchor_time: Entry completion time, or None if the journey has not started
        current_time: Simulated "now" used for status and reminder checks
        ledger: Reminder ledger to thread through the scheduler

    Returns:
        EventOutcome with updated instances, notifications, ledger and anchor
    """
    working: Dict[str, ActionInstance] = {instance.id: instance for instance in instances}
    ledger = dict(ledger or {})

    if anchor_time is None:
        return _process_entry(event, journey, working, ledger)

    touched: List[str] = []
    notifications: List[Notification] = []

    def record(instance: ActionInstance) -> None:
        working[instance.id] = instance
        if instance.id not in touched:
            touched.append(instance.id)

    for action in journey.actions:
        if not action.matches(event.event_type, event.product):
            continue

        instance = working.get(action.id)
        if instance is None:
            instance = new_instance(action, anchor_time)
        if instance.is_completed:
            continue

        instance = instance.model_copy(
            update={"deadline": deadline_for(journey, action, working, anchor_time)}
        )

        if action.completion_mode == CompletionMode.COUNTER:
            updated = increment_count(instance, event.occurred_at, current_time, anchor_time)
            record(updated)
            for subsumed in subsumed_milestones(
                journey, action, updated.current_count, working, event.occurred_at, anchor_time
            ):
                record(subsumed)
        else:
            record(mark_complete(instance, event.occurred_at, anchor_time))

        check = check_reminders(working[action.id], current_time, ledger)
        notifications.extend(check.notifications)
        ledger = check.ledger

    return EventOutcome(
        updated_instances=[working[action_id] for action_id in touched],
        new_notifications=notifications,
        ledger=ledger,
        anchor_time=anchor_time,
    )
