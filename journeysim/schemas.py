"""
Pydantic schemas for the journey simulation system.

All data structures shared by the builder, the simulator and the stores are
defined here.

Design Philosophy:
- Definitions (Action, Reminder, TimeRange, Event) are frozen; edits produce copies
- Runtime state (ActionInstance, Notification) is derived and owned by a session
- TimeRange is a tagged union so a variant can never carry another variant's fields
- Pydantic validation ensures definitions survive round trips through every store
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def _new_id() -> str:
    return str(uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enumerations
# ============================================================================


class Product(str, Enum):
    """Product or channel an action is performed in."""

    BMA = "BMA"
    FITHUB = "FITHUB"
    TRAINER_APP = "TRAINER_APP"
    SMART_STRENGTH = "SMART_STRENGTH"
    UNKNOWN = "UNKNOWN"


class CompletionMode(str, Enum):
    OCCURRENCE = "OCCURRENCE"
    COUNTER = "COUNTER"


class TimeUnit(str, Enum):
    DAYS = "DAYS"
    WEEKS = "WEEKS"
    MONTHS = "MONTHS"


class ReminderChannel(str, Enum):
    """Delivery channel of a reminder.

    TRAINER and WEBHOOK are silent sinks: they never yield member-visible
    notifications.
    """

    PUSH = "PUSH"
    EMAIL = "EMAIL"
    TRAINER = "TRAINER"
    WEBHOOK = "WEBHOOK"


class ReminderFrequency(str, Enum):
    ONCE = "ONCE"
    EVERY_X_DAYS = "EVERY_X_DAYS"


class NodeType(str, Enum):
    """Structural node kinds.

    Only START and ACTION are produced; journeys are linear chains.
    """

    START = "START"
    ACTION = "ACTION"
    DECISION = "DECISION"
    MERGE = "MERGE"
    END = "END"


class ActionStatus(str, Enum):
    NOT_DONE = "NOT_DONE"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    OVERDUE = "OVERDUE"


MEMBER_VISIBLE_CHANNELS = (ReminderChannel.PUSH, ReminderChannel.EMAIL)


# ============================================================================
# Time ranges
# ============================================================================


class NoDeadline(BaseModel):
    """Action has no deadline."""

    model_config = ConfigDict(frozen=True)

    type: Literal["NONE"] = "NONE"


class AbsoluteDeadline(BaseModel):
    """Deadline is the journey anchor plus a fixed number of days."""

    model_config = ConfigDict(frozen=True)

    type: Literal["ABSOLUTE"] = "ABSOLUTE"
    duration_days: int = Field(..., ge=1, description="Days after the anchor time")
    # Unit the builder displays the duration in. Storage is always days.
    display_unit: TimeUnit = Field(TimeUnit.DAYS, description="Unit shown in the builder")


class RelativeToPrevious(BaseModel):
    """Deadline is the previous action's completion plus an offset.

    An offset of 0 means "immediately with previous".
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["WITH_PREVIOUS"] = "WITH_PREVIOUS"
    offset_days: int = Field(0, ge=0, description="Days after the previous completion")
    display_unit: TimeUnit = Field(TimeUnit.DAYS, description="Unit shown in the builder")


TimeRange = Annotated[
    Union[NoDeadline, AbsoluteDeadline, RelativeToPrevious],
    Field(discriminator="type"),
]


def time_range_from_columns(
    range_type: Optional[str],
    duration_days: Optional[int] = None,
    offset_days: Optional[int] = None,
    display_unit: Optional[str] = None,
) -> Union[NoDeadline, AbsoluteDeadline, RelativeToPrevious]:
    """Rebuild a TimeRange from flat store columns.

    Store rows keep one nullable column per variant field. A row whose
    discriminant needs a value it does not carry is a configuration gap, so it
    degrades to NoDeadline rather than failing the whole journey load.
    """
    unit = TimeUnit(display_unit) if display_unit else TimeUnit.DAYS

    if range_type == "ABSOLUTE":
        if not duration_days or duration_days < 1:
            return NoDeadline()
        return AbsoluteDeadline(duration_days=duration_days, display_unit=unit)

    if range_type == "WITH_PREVIOUS":
        return RelativeToPrevious(offset_days=max(offset_days or 0, 0), display_unit=unit)

    return NoDeadline()


def time_range_columns(time_range: Union[NoDeadline, AbsoluteDeadline, RelativeToPrevious]) -> Dict[str, Any]:
    """Flatten a TimeRange into the nullable store columns."""
    return {
        "time_range_type": time_range.type,
        "time_range_duration_days": getattr(time_range, "duration_days", None),
        "time_range_offset_days": getattr(time_range, "offset_days", None),
        "time_range_unit": getattr(time_range, "display_unit", TimeUnit.DAYS).value,
    }


# ============================================================================
# Journey definition
# ============================================================================


class Reminder(BaseModel):
    """Escalation policy attached to exactly one action."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Unique reminder identifier")
    channel: ReminderChannel = Field(..., description="Delivery channel")
    frequency: ReminderFrequency = Field(ReminderFrequency.ONCE, description="ONCE or EVERY_X_DAYS")
    frequency_days: Optional[int] = Field(None, ge=1, description="Interval for EVERY_X_DAYS")
    order: int = Field(0, ge=0, description="Ordinal position among the action's reminders")

    @model_validator(mode="after")
    def _check_frequency(self) -> "Reminder":
        if self.frequency == ReminderFrequency.EVERY_X_DAYS and self.frequency_days is None:
            raise ValueError("frequency_days is required for EVERY_X_DAYS reminders")
        if self.frequency == ReminderFrequency.ONCE and self.frequency_days is not None:
            raise ValueError("frequency_days is only valid for EVERY_X_DAYS reminders")
        return self

    @property
    def is_silent(self) -> bool:
        return self.channel not in MEMBER_VISIBLE_CHANNELS


class Action(BaseModel):
    """One configured step of a journey.

    Library-derived fields (event type, completion mode, supported products,
    guidance support) are copied in when the action is created and never
    re-read from the library afterwards.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id, description="Unique action identifier")
    action_type_id: str = Field(..., description="Action library key (A01, A02, ...)")
    title: Optional[str] = Field(None, description="Display title, usually the library title")
    event_type: str = Field(..., description="Domain event type this action listens for")
    completion_mode: CompletionMode = Field(CompletionMode.OCCURRENCE)
    required_count: Optional[int] = Field(None, ge=1, description="Events needed in COUNTER mode")
    product: Product = Field(Product.UNKNOWN, description="Product the event must come from")
    supported_products: List[Product] = Field(default_factory=list)
    visible_in_checklist: bool = True
    supports_guidance: bool = False
    guidance_enabled: bool = False
    time_range: TimeRange = Field(default_factory=NoDeadline)
    reminders: List[Reminder] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_required_count(self) -> "Action":
        # required_count is meaningful only for COUNTER and mandatory there
        if self.completion_mode == CompletionMode.COUNTER and self.required_count is None:
            raise ValueError("required_count is required for COUNTER actions")
        if self.completion_mode == CompletionMode.OCCURRENCE and self.required_count is not None:
            raise ValueError("required_count is only valid for COUNTER actions")
        return self

    @property
    def display_title(self) -> str:
        return self.title or self.event_type.replace("_", " ").capitalize()

    def ordered_reminders(self) -> List[Reminder]:
        """Return reminders sorted by their ordinal position."""
        return sorted(self.reminders, key=lambda reminder: reminder.order)

    def matches(self, event_type: str, product: "Product") -> bool:
        return self.event_type == event_type and self.product == product


class JourneyNode(BaseModel):
    """Position bookkeeping for the builder's node list."""

    id: str = Field(default_factory=_new_id)
    node_type: NodeType = Field(..., description="START or ACTION in linear journeys")
    action_id: Optional[str] = Field(None, description="Action referenced by an ACTION node")
    position: int = Field(0, ge=0)


class Journey(BaseModel):
    """Ordered list of actions.

    Action order defines both display order and the WITH_PREVIOUS chain; the
    first action is the entry action. Deleting a journey deletes its actions and
    their reminders.
    """

    id: str = Field(default_factory=_new_id)
    name: str = Field(..., min_length=1)
    is_default: bool = False
    nodes: List[JourneyNode] = Field(
        default_factory=lambda: [JourneyNode(node_type=NodeType.START, position=0)]
    )
    actions: List[Action] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def entry_action(self) -> Optional[Action]:
        return self.actions[0] if self.actions else None

    def get_action(self, action_id: str) -> Optional[Action]:
        for action in self.actions:
            if action.id == action_id:
                return action
        return None

    def index_of(self, action_id: str) -> int:
        """Return the journey position of an action, or -1 if absent."""
        for index, action in enumerate(self.actions):
            if action.id == action_id:
                return index
        return -1

    def previous_action(self, action_id: str) -> Optional[Action]:
        index = self.index_of(action_id)
        if index <= 0:
            return None
        return self.actions[index - 1]


# ============================================================================
# Runtime state
# ============================================================================


class ActionInstance(BaseModel):
    """Runtime projection of one Action within a simulation session.

    Instances are rebuilt from scratch on session reset. The deadline is
    derived and recomputed on every clock change; completed_at is set once.
    """

    action: Action
    status: ActionStatus = ActionStatus.NOT_DONE
    current_count: int = Field(0, ge=0, description="Running tally for COUNTER actions")
    deadline: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    # Anchor used for the deadline (None while the journey is unanchored)
    anchor_time: Optional[datetime] = None

    @property
    def id(self) -> str:
        return self.action.id

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None


class Event(BaseModel):
    """Immutable domain fact, timestamped in simulated time."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    event_type: str
    product: Product
    occurred_at: datetime
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Notification(BaseModel):
    """Member-visible message produced by a fired reminder.

    Only ``read`` ever changes, and only from False to True.
    """

    id: str = Field(default_factory=_new_id)
    type: Literal["PUSH", "EMAIL"]
    action_id: str
    action_title: str
    reminder_id: str
    message: str
    timestamp: datetime
    read: bool = False


class ActionLibraryItem(BaseModel):
    """Static metadata and defaults for one action type."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    event_type: str
    completion_mode: CompletionMode
    supported_products: List[Product]
    supports_guidance: bool
    default_guidance_enabled: bool


# Reminder id -> instant it last fired. Lives only as long as a session.
ReminderLedger = Dict[str, datetime]
