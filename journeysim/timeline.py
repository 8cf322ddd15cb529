"""
Timeline layout for the journey builder.

Positions every action on a day axis starting at the entry action (day 0),
chooses which standard markers to draw, and detects "immediately with
previous" groups of actions that the builder draws as one block.
"""

from typing import List, Optional

from pydantic import BaseModel

from .schemas import AbsoluteDeadline, Action, NoDeadline, RelativeToPrevious, TimeRange

NO_DEADLINE = -1
"""Position used for actions without a resolvable deadline."""

DEFAULT_MAX_DAYS = 90
NEARBY_THRESHOLD_DAYS = 3


class TimelinePosition(BaseModel):
    action_id: str
    days: int
    action: Action


class TimelineMarker(BaseModel):
    days: int
    label: str
    unit: str


STANDARD_MARKERS = [
    TimelineMarker(days=1, label="1 Day", unit="DAYS"),
    TimelineMarker(days=7, label="1 Week", unit="WEEKS"),
    TimelineMarker(days=14, label="2 Weeks", unit="WEEKS"),
    TimelineMarker(days=28, label="4 Weeks", unit="WEEKS"),
    TimelineMarker(days=60, label="2 Months", unit="MONTHS"),
    TimelineMarker(days=90, label="3 Months", unit="MONTHS"),
    TimelineMarker(days=180, label="6 Months", unit="MONTHS"),
    TimelineMarker(days=365, label="1 Year", unit="YEARS"),
]

KEY_MILESTONES = (1, 7, 90)


def _deadline_day(action: Action, previous_day: int) -> Optional[int]:
    time_range = action.time_range
    if isinstance(time_range, NoDeadline):
        return None
    if isinstance(time_range, AbsoluteDeadline):
        return time_range.duration_days
    return previous_day + time_range.offset_days


def calculate_timeline_positions(actions: List[Action]) -> List[TimelinePosition]:
    """Place each action on the day axis.

    WITH_PREVIOUS actions chain off the last resolved position. An action
    without a deadline is placed at NO_DEADLINE and skipped by the chain.
    """
    positions: List[TimelinePosition] = []
    previous_day = 0

    for index, action in enumerate(actions):
        if index == 0:
            positions.append(TimelinePosition(action_id=action.id, days=0, action=action))
            continue

        day = _deadline_day(action, previous_day)
        if day is None:
            positions.append(TimelinePosition(action_id=action.id, days=NO_DEADLINE, action=action))
        else:
            positions.append(TimelinePosition(action_id=action.id, days=day, action=action))
            previous_day = day

    return positions


def get_max_journey_days(actions: List[Action]) -> int:
    """Length of the axis: the furthest deadline, never less than 90 days."""
    days = [p.days for p in calculate_timeline_positions(actions) if p.days >= 0]
    if not days:
        return DEFAULT_MAX_DAYS
    return max(max(days), DEFAULT_MAX_DAYS)


def _has_action_nearby(marker_days: int, positions: List[TimelinePosition]) -> bool:
    return any(
        p.days >= 0 and abs(p.days - marker_days) <= NEARBY_THRESHOLD_DAYS for p in positions
    )


def calculate_timeline_markers(
    actions: List[Action], max_days: Optional[int] = None
) -> List[TimelineMarker]:
    """Markers to draw: Start, plus standard markers near an action or on a key milestone."""
    limit = max_days or get_max_journey_days(actions)
    positions = calculate_timeline_positions(actions)

    markers = [TimelineMarker(days=0, label="Start", unit="DAYS")]
    for marker in STANDARD_MARKERS:
        if marker.days > limit:
            continue
        if _has_action_nearby(marker.days, positions) or marker.days in KEY_MILESTONES:
            markers.append(marker)

    return sorted(markers, key=lambda marker: marker.days)


def timeline_percentage(days: int, max_days: int) -> float:
    """Horizontal position (0-100) of a day on the axis."""
    if days < 0:
        return 100.0
    return min(days / max_days * 100, 100.0)


# Grouping -----------------------------------------------------------------


def is_immediate_sequence(time_range: TimeRange) -> bool:
    """True for WITH_PREVIOUS with no offset ("immediately with previous")."""
    return isinstance(time_range, RelativeToPrevious) and time_range.offset_days == 0


def is_in_group(actions: List[Action], index: int) -> bool:
    """Whether the action at ``index`` belongs to an immediate-sequence group.

    A group is a source action plus the consecutive immediate actions after
    it. The entry action never joins a group.
    """
    if index == 0:
        return False

    if is_immediate_sequence(actions[index].time_range):
        return True

    return index < len(actions) - 1 and is_immediate_sequence(actions[index + 1].time_range)


def is_group_start(actions: List[Action], index: int) -> bool:
    if index == 0:
        return False
    return is_in_group(actions, index) and not is_in_group(actions, index - 1)


def is_group_end(actions: List[Action], index: int) -> bool:
    if index == len(actions) - 1:
        return False
    return is_in_group(actions, index) and not is_in_group(actions, index + 1)
