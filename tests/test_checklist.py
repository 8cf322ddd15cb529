"""Tests for the member checklist view."""

from datetime import datetime, timedelta, timezone

from journeysim.checklist import build_checklist, format_checklist
from journeysim.schemas import (
    AbsoluteDeadline,
    Action,
    ActionInstance,
    ActionStatus,
    CompletionMode,
    Journey,
    Product,
)
from journeysim.session import SimulationSession

T0 = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)


def make_instances():
    account = Action(
        id="account",
        action_type_id="A01",
        title="EGYM Account created",
        event_type="EGYM_ACCOUNT_CREATED",
        product=Product.BMA,
    )
    workouts = Action(
        id="workouts",
        action_type_id="A13",
        title="Workout tracked",
        event_type="WORKOUT_TRACKED",
        completion_mode=CompletionMode.COUNTER,
        required_count=3,
        product=Product.BMA,
        time_range=AbsoluteDeadline(duration_days=5),
    )
    hidden = Action(id="hidden", action_type_id="A06", event_type="TRAINING_PLAN_EXPIRED", visible_in_checklist=False)
    return [
        ActionInstance(action=account, status=ActionStatus.DONE, completed_at=T0),
        ActionInstance(
            action=workouts,
            status=ActionStatus.IN_PROGRESS,
            current_count=1,
            deadline=T0 + timedelta(days=5),
        ),
        ActionInstance(action=hidden),
    ]


def test_build_checklist_skips_hidden_actions():
    items = build_checklist(make_instances(), T0)

    assert [item.action_id for item in items] == ["account", "workouts"]
    assert items[0].time_frame == "Completed"
    assert items[0].progress is None
    assert items[1].progress == "1 of 3"
    assert round(items[1].progress_percent, 1) == 33.3
    assert items[1].time_frame == "Due in 5 days"
    assert items[1].product == "Member App"


def test_format_checklist_lines():
    text = format_checklist(build_checklist(make_instances(), T0))
    assert text.splitlines() == [
        "[x] EGYM Account created (Member App) - Completed",
        "[~] Workout tracked (Member App) 1 of 3 - Due in 5 days",
    ]


def test_checklist_from_session_instances():
    account, workouts, _ = (instance.action for instance in make_instances())
    session = SimulationSession(Journey(name="J", actions=[account, workouts]), start_time=T0, verbose=False)
    session.trigger_event("EGYM_ACCOUNT_CREATED", Product.BMA)
    session.trigger_event("WORKOUT_TRACKED", Product.BMA)

    items = build_checklist(session.instances, session.simulated_time)
    assert [(item.action_id, item.status) for item in items] == [
        ("account", ActionStatus.DONE),
        ("workouts", ActionStatus.IN_PROGRESS),
    ]
    assert items[1].progress == "1 of 3"
