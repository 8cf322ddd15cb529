"""Tests for event processing: anchoring, counters and milestone subsumption."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List

from journeysim.processor import EventOutcome, process_event
from journeysim.schemas import (
    AbsoluteDeadline,
    Action,
    ActionInstance,
    ActionStatus,
    CompletionMode,
    Event,
    Journey,
    Product,
    RelativeToPrevious,
    Reminder,
    ReminderChannel,
)

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def account() -> Action:
    return Action(id="account", action_type_id="A01", event_type="EGYM_ACCOUNT_CREATED", product=Product.BMA)


def workouts(action_id: str, required: int, product=Product.BMA, **kwargs) -> Action:
    return Action(
        id=action_id,
        action_type_id="A13",
        event_type="WORKOUT_TRACKED",
        completion_mode=CompletionMode.COUNTER,
        required_count=required,
        product=product,
        **kwargs,
    )


def event(event_type: str, at: datetime, product=Product.BMA) -> Event:
    return Event(event_type=event_type, product=product, occurred_at=at)


def apply(outcome: EventOutcome, instances: Dict[str, ActionInstance]) -> Dict[str, ActionInstance]:
    merged = dict(instances)
    for instance in outcome.updated_instances:
        merged[instance.id] = instance
    return merged


def run_events(journey: Journey, events: List[Event], anchor=T0) -> Dict[str, ActionInstance]:
    instances: Dict[str, ActionInstance] = {}
    for item in events:
        outcome = process_event(item, journey, instances.values(), anchor, item.occurred_at)
        instances = apply(outcome, instances)
    return instances


def test_entry_event_anchors_journey():
    journey = Journey(name="J", actions=[account(), workouts("w", 1)])
    outcome = process_event(event("EGYM_ACCOUNT_CREATED", T0), journey, [], None, T0)

    assert outcome.anchor_time == T0
    assert [i.id for i in outcome.updated_instances] == ["account"]
    assert outcome.updated_instances[0].status == ActionStatus.DONE
    assert outcome.updated_instances[0].completed_at == T0


def test_non_entry_events_ignored_before_anchor():
    journey = Journey(name="J", actions=[account(), workouts("w", 1)])
    outcome = process_event(event("WORKOUT_TRACKED", T0), journey, [], None, T0)

    assert outcome.updated_instances == []
    assert outcome.anchor_time is None


def test_entry_requires_matching_product():
    journey = Journey(name="J", actions=[account()])
    outcome = process_event(event("EGYM_ACCOUNT_CREATED", T0, Product.FITHUB), journey, [], None, T0)
    assert outcome.anchor_time is None


def test_unmatched_event_changes_nothing():
    journey = Journey(name="J", actions=[account(), workouts("w", 2)])
    outcome = process_event(event("NFC_CREATED", T0), journey, [], T0, T0)
    assert outcome == EventOutcome(ledger={}, anchor_time=T0)


def test_counter_completes_once_and_stays_done():
    journey = Journey(name="J", actions=[account(), workouts("w", 2)])
    events = [event("WORKOUT_TRACKED", T0 + timedelta(hours=h)) for h in (1, 2, 3)]

    after_one = run_events(journey, events[:1])
    assert after_one["w"].status == ActionStatus.IN_PROGRESS
    assert after_one["w"].current_count == 1

    final = run_events(journey, events)
    assert final["w"].status == ActionStatus.DONE
    assert final["w"].current_count == 2
    assert final["w"].completed_at == T0 + timedelta(hours=2)


def test_larger_milestone_subsumes_smaller_one():
    journey = Journey(
        name="J",
        actions=[account(), workouts("three", 3), workouts("one", 1, product=Product.SMART_STRENGTH)],
    )
    outcome = process_event(event("WORKOUT_TRACKED", T0), journey, [], T0, T0)

    by_id = {i.id: i for i in outcome.updated_instances}
    assert by_id["three"].current_count == 1
    assert by_id["three"].status == ActionStatus.IN_PROGRESS
    assert by_id["one"].status == ActionStatus.DONE
    assert by_id["one"].current_count == 1
    assert by_id["one"].completed_at == T0


def test_subsumed_action_is_not_counted_twice():
    journey = Journey(name="J", actions=[account(), workouts("three", 3), workouts("one", 1)])
    outcome = process_event(event("WORKOUT_TRACKED", T0), journey, [], T0, T0)

    assert [i.id for i in outcome.updated_instances] == ["three", "one"]
    assert outcome.updated_instances[1].current_count == 1


def test_occurrence_action_completes_on_first_event():
    plan = Action(id="plan", action_type_id="A05", event_type="TRAINING_PLAN_CREATED", product=Product.BMA)
    journey = Journey(name="J", actions=[account(), plan])
    instances = run_events(journey, [event("TRAINING_PLAN_CREATED", T0)] * 2)
    assert instances["plan"].status == ActionStatus.DONE
    assert instances["plan"].completed_at == T0


def test_with_previous_deadline_resolves_after_previous_completes():
    follow_up = workouts("w", 2, time_range=RelativeToPrevious(offset_days=2))
    plan = Action(id="plan", action_type_id="A05", event_type="TRAINING_PLAN_CREATED", product=Product.BMA)
    journey = Journey(name="J", actions=[account(), plan, follow_up])

    done = T0 + timedelta(days=1)
    instances = run_events(journey, [event("TRAINING_PLAN_CREATED", done), event("WORKOUT_TRACKED", done)])
    assert instances["w"].deadline == done + timedelta(days=2)


def test_event_on_overdue_action_fires_reminder():
    reminder = Reminder(id="r", channel=ReminderChannel.PUSH)
    late = workouts("w", 3, time_range=AbsoluteDeadline(duration_days=1), reminders=[reminder])
    journey = Journey(name="J", actions=[account(), late])

    now = T0 + timedelta(days=3)
    outcome = process_event(event("WORKOUT_TRACKED", now), journey, [], T0, now)

    assert outcome.updated_instances[0].status == ActionStatus.OVERDUE
    assert [n.reminder_id for n in outcome.new_notifications] == ["r"]
    assert outcome.ledger == {"r": now}


def test_inputs_are_not_mutated():
    journey = Journey(name="J", actions=[account(), workouts("w", 2)])
    first = process_event(event("WORKOUT_TRACKED", T0), journey, [], T0, T0)
    instances = list(first.updated_instances)
    ledger = {}

    process_event(event("WORKOUT_TRACKED", T0), journey, instances, T0, T0, ledger)

    assert instances[0].current_count == 1
    assert ledger == {}
