"""
Journeysim - member onboarding journeys and their simulated progress.

Define ordered journeys of onboarding actions with deadlines and reminder
policies, then replay them over simulated time to see statuses, completions
and reminder notifications.

No file I/O required. No database required. No global state.
Each SimulationSession is an isolated value owned by the host.
"""

__version__ = "0.1.0"

# Simulation
from .session import SimulationSession, SessionChange, SessionSnapshot
from .processor import EventOutcome, process_event
from .reminders import ReminderCheck, check_reminders
from .deadlines import (
    classify_status,
    resolve_deadline,
    format_time_frame,
    format_progress,
    progress_percentage,
)

# Stores
from .persistence import (
    JourneyStore,
    InMemoryJourneyStore,
    JsonJourneyStore,
    PostgresJourneyStore,
    JourneyStoreError,
    JourneyNotFoundError,
    ActionNotFoundError,
    default_journey,
)

# Core schemas
from .schemas import (
    Product,
    CompletionMode,
    TimeUnit,
    ReminderChannel,
    ReminderFrequency,
    NodeType,
    ActionStatus,
    NoDeadline,
    AbsoluteDeadline,
    RelativeToPrevious,
    TimeRange,
    Reminder,
    Action,
    JourneyNode,
    Journey,
    ActionInstance,
    Event,
    Notification,
    ActionLibraryItem,
    ReminderLedger,
)

# Library, layout and rendering helpers
from .library import ACTION_LIBRARY, UnknownActionTypeError, build_action, get_action_library_item
from .checklist import ChecklistItem, build_checklist, format_checklist
from .timeline import calculate_timeline_markers, calculate_timeline_positions
from .units import days_to_unit, unit_to_days

# Scenario helpers
from .scenario import InvalidScenarioError, Scenario, ScenarioLoader, run_script

__all__ = [
    # Simulation
    "SimulationSession",
    "SessionChange",
    "SessionSnapshot",
    "EventOutcome",
    "process_event",
    "ReminderCheck",
    "check_reminders",
    "classify_status",
    "resolve_deadline",
    "format_time_frame",
    "format_progress",
    "progress_percentage",
    # Stores
    "JourneyStore",
    "InMemoryJourneyStore",
    "JsonJourneyStore",
    "PostgresJourneyStore",
    "JourneyStoreError",
    "JourneyNotFoundError",
    "ActionNotFoundError",
    "default_journey",
    # Schemas
    "Product",
    "CompletionMode",
    "TimeUnit",
    "ReminderChannel",
    "ReminderFrequency",
    "NodeType",
    "ActionStatus",
    "NoDeadline",
    "AbsoluteDeadline",
    "RelativeToPrevious",
    "TimeRange",
    "Reminder",
    "Action",
    "JourneyNode",
    "Journey",
    "ActionInstance",
    "Event",
    "Notification",
    "ActionLibraryItem",
    "ReminderLedger",
    # Library and helpers
    "ACTION_LIBRARY",
    "UnknownActionTypeError",
    "build_action",
    "get_action_library_item",
    "ChecklistItem",
    "build_checklist",
    "format_checklist",
    "calculate_timeline_markers",
    "calculate_timeline_positions",
    "days_to_unit",
    "unit_to_days",
    # Scenario helpers
    "InvalidScenarioError",
    "Scenario",
    "ScenarioLoader",
    "run_script",
]
