"""
Deadline resolution and action status classification.

Both functions are pure and never raise: configuration gaps (no previous
completion yet, no deadline configured) resolve to ``None`` so callers can
always render "no deadline yet". The classifier is re-evaluated on every clock
change and every event; there is no stored previous status to diff against.

The formatting helpers at the bottom are what the read-only checklist shows
next to each action.
"""

from datetime import datetime, timedelta
from typing import Optional

from .schemas import (
    AbsoluteDeadline,
    Action,
    ActionStatus,
    CompletionMode,
    NoDeadline,
    RelativeToPrevious,
    TimeRange,
)


def resolve_deadline(
    time_range: Optional[TimeRange],
    anchor_time: Optional[datetime],
    previous_completed_at: Optional[datetime] = None,
) -> Optional[datetime]:
    """Convert a TimeRange into a concrete deadline.

    Day arithmetic is calendar-day addition, so the anchor's time of day is
    preserved.

    Args:
        time_range: Rule configured on the action
        anchor_time: When the entry action completed (or a preview anchor)
        previous_completed_at: Completion of the previous action, if any

    Returns:
        Deadline instant, or None when the rule yields no deadline (yet)
    """
    if time_range is None or isinstance(time_range, NoDeadline):
        return None

    if isinstance(time_range, AbsoluteDeadline):
        if anchor_time is None:
            return None
        return anchor_time + timedelta(days=time_range.duration_days)

    if isinstance(time_range, RelativeToPrevious):
        # Gated on the previous action; nothing to compute until it completes
        if previous_completed_at is None:
            return None
        return previous_completed_at + timedelta(days=time_range.offset_days)

    return None


def _past(deadline: Optional[datetime], current_time: datetime) -> bool:
    return deadline is not None and current_time > deadline


def classify_status(
    action: Action,
    deadline: Optional[datetime],
    current_time: datetime,
    completed_at: Optional[datetime] = None,
    current_count: int = 0,
) -> ActionStatus:
    """Map deadline, progress and time to a status. First matching rule wins.

    1. completed_at set -> DONE (completion is sticky)
    2. COUNTER partly done -> OVERDUE if past deadline else IN_PROGRESS
    3. COUNTER count reached -> DONE
    4. past deadline -> OVERDUE
    5. otherwise NOT_DONE
    """
    if completed_at is not None:
        return ActionStatus.DONE

    if action.completion_mode == CompletionMode.COUNTER and action.required_count:
        if 0 < current_count < action.required_count:
            if _past(deadline, current_time):
                return ActionStatus.OVERDUE
            return ActionStatus.IN_PROGRESS
        if current_count >= action.required_count:
            return ActionStatus.DONE

    if _past(deadline, current_time):
        return ActionStatus.OVERDUE

    return ActionStatus.NOT_DONE


def days_overdue(deadline: datetime, current_time: datetime) -> int:
    """Whole days elapsed since the deadline (0 when not yet overdue)."""
    return max((current_time - deadline).days, 0)


def _whole_days_until(deadline: datetime, current_time: datetime) -> int:
    # Truncate toward zero, so 36 hours overdue is "1 day", not 2
    seconds = (deadline - current_time).total_seconds()
    return int(seconds / 86400)


def format_time_frame(
    action: Action,
    deadline: Optional[datetime],
    current_time: datetime,
) -> str:
    """Human-readable deadline text for the checklist."""
    if isinstance(action.time_range, NoDeadline):
        return "No deadline"

    if deadline is None:
        return "Pending previous action"

    days = _whole_days_until(deadline, current_time)

    if days < 0:
        overdue = abs(days)
        return "Overdue by 1 day" if overdue == 1 else f"Overdue by {overdue} days"

    if days == 0:
        if deadline < current_time:
            return "Overdue"
        return "Due today"

    if days == 1:
        return "Due in 1 day"

    if days <= 7:
        return f"Due in {days} days"

    if days <= 30:
        weeks, remaining = divmod(days, 7)
        week_text = "1 week" if weeks == 1 else f"{weeks} weeks"
        if remaining == 0:
            return f"Due in {week_text}"
        day_text = "1 day" if remaining == 1 else f"{remaining} days"
        return f"Due in {week_text} and {day_text}"

    return f"Due: {deadline.strftime('%b')} {deadline.day}, {deadline.year}"


def format_progress(current_count: int, required_count: int) -> str:
    return f"{current_count} of {required_count}"


def progress_percentage(current_count: int, required_count: int) -> float:
    """Progress of a COUNTER action as a percentage clamped to [0, 100]."""
    if required_count <= 0:
        return 0.0
    return min(max(current_count / required_count * 100, 0.0), 100.0)
