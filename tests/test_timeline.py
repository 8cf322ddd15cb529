"""Tests for timeline layout and immediate-sequence grouping."""

from journeysim.schemas import AbsoluteDeadline, Action, NoDeadline, RelativeToPrevious
from journeysim.timeline import (
    NO_DEADLINE,
    calculate_timeline_markers,
    calculate_timeline_positions,
    get_max_journey_days,
    is_group_end,
    is_group_start,
    is_in_group,
    timeline_percentage,
)


def make_action(action_id: str, time_range) -> Action:
    return Action(id=action_id, action_type_id="A05", event_type="TRAINING_PLAN_CREATED", time_range=time_range)


def sample_actions():
    return [
        make_action("entry", NoDeadline()),
        make_action("week", AbsoluteDeadline(duration_days=7)),
        make_action("same", RelativeToPrevious(offset_days=0)),
        make_action("open", NoDeadline()),
        make_action("later", RelativeToPrevious(offset_days=3)),
    ]


def test_positions_chain_off_last_resolved_deadline():
    positions = calculate_timeline_positions(sample_actions())
    assert [p.days for p in positions] == [0, 7, 7, NO_DEADLINE, 10]
    assert positions[0].action_id == "entry"


def test_axis_is_at_least_ninety_days():
    assert get_max_journey_days(sample_actions()) == 90
    long_journey = [make_action("entry", NoDeadline()), make_action("year", AbsoluteDeadline(duration_days=200))]
    assert get_max_journey_days(long_journey) == 200


def test_markers_include_start_key_milestones_and_nearby():
    markers = calculate_timeline_markers(sample_actions())
    assert [m.days for m in markers] == [0, 1, 7, 90]
    assert markers[0].label == "Start"


def test_timeline_percentage():
    assert timeline_percentage(45, 90) == 50.0
    assert timeline_percentage(200, 90) == 100.0
    assert timeline_percentage(NO_DEADLINE, 90) == 100.0


def test_immediate_sequence_grouping():
    actions = sample_actions()
    assert [is_in_group(actions, i) for i in range(len(actions))] == [False, True, True, False, False]
    assert is_group_start(actions, 1)
    assert not is_group_start(actions, 2)
    assert is_group_end(actions, 2)
    assert not is_group_end(actions, 1)
