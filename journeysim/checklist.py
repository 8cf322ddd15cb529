"""
Read-only member checklist.

Turns session instances into display rows and renders them as text, the way
the member app lists onboarding steps. Nothing here mutates session state.
"""

from datetime import datetime
from typing import Iterable, List, Optional

from pydantic import BaseModel

from .deadlines import format_progress, format_time_frame, progress_percentage
from .library import get_product_label
from .schemas import ActionInstance, ActionStatus, CompletionMode

STATUS_MARKERS = {
    ActionStatus.DONE: "[x]",
    ActionStatus.IN_PROGRESS: "[~]",
    ActionStatus.OVERDUE: "[!]",
    ActionStatus.NOT_DONE: "[ ]",
}


class ChecklistItem(BaseModel):
    action_id: str
    title: str
    product: str
    status: ActionStatus
    time_frame: str
    progress: Optional[str] = None
    progress_percent: Optional[float] = None
    guidance: bool = False


def build_checklist(
    instances: Iterable[ActionInstance],
    current_time: datetime,
) -> List[ChecklistItem]:
    """Rows for every checklist-visible action, in the given order."""
    items: List[ChecklistItem] = []
    for instance in instances:
        action = instance.action
        if not action.visible_in_checklist:
            continue

        progress = None
        percent = None
        if action.completion_mode == CompletionMode.COUNTER and action.required_count:
            progress = format_progress(instance.current_count, action.required_count)
            percent = progress_percentage(instance.current_count, action.required_count)

        if instance.is_completed:
            time_frame = "Completed"
        else:
            time_frame = format_time_frame(action, instance.deadline, current_time)

        items.append(
            ChecklistItem(
                action_id=action.id,
                title=action.display_title,
                product=get_product_label(action.product),
                status=instance.status,
                time_frame=time_frame,
                progress=progress,
                progress_percent=percent,
                guidance=action.supports_guidance and action.guidance_enabled,
            )
        )
    return items


def format_checklist(items: Iterable[ChecklistItem]) -> str:
    """Render checklist rows as plain text, one line per action.

    Example output:
    "[x] EGYM Account created (Member App) - Completed"
    "[~] Workout tracked (Member App) 1 of 3 - Due in 5 days"
    """
    lines = []
    for item in items:
        progress = f" {item.progress}" if item.progress else ""
        lines.append(
            f"{STATUS_MARKERS[item.status]} {item.title} ({item.product}){progress} - {item.time_frame}"
        )
    return "\n".join(lines)
