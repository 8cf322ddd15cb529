"""
Simulation session: the clock and runtime state for one journey replay.

A session owns simulated "now", the anchor time, the append-only event log,
the notification feed, the reminder ledger and one ActionInstance per action.
Nothing is global: the host creates a session per simulation and threads it
through its calls.

Stimuli:
1. set_time / fast_forward / reset_to_now - recompute deadlines, statuses and
   reminders for every instance (the only path into OVERDUE without an event)
2. trigger_event - delegate to the event processor at the current time
3. reset - back to real "now" with everything cleared
4. load_journey - switch journeys, rebuilding instances

Time only moves when the host moves it; there is no background scheduler.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from .config import Config
from .deadlines import classify_status
from .logging_utils import log_deterministic, log_error, log_info, log_reminder, log_success
from .processor import EventOutcome, deadline_for, new_instance, process_event
from .reminders import check_reminders
from .schemas import (
    ActionInstance,
    ActionStatus,
    Event,
    Journey,
    Notification,
    Product,
    ReminderLedger,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every session time compares with every other."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionChange(BaseModel):
    """What a single stimulus did to the session (passed to listeners)."""

    kind: Literal["journey", "time", "event", "anchor", "reset"]
    simulated_time: datetime
    event: Optional[Event] = None
    updated_action_ids: List[str] = Field(default_factory=list)
    notifications: List[Notification] = Field(default_factory=list)


class SessionSnapshot(BaseModel):
    """Read-only copy of session state for renderers and stores."""

    journey_id: Optional[str]
    simulated_time: datetime
    anchor_time: Optional[datetime]
    instances: List[ActionInstance]
    notifications: List[Notification]
    events: List[Event]


SessionListener = Callable[[SessionChange], None]


class SimulationSession:
    """
    Replays journey progress over simulated time.

    Consumers only read instances and notifications; all mutation goes through
    the methods below.
    """

    def __init__(
        self,
        journey: Optional[Journey] = None,
        *,
        start_time: Optional[datetime] = None,
        clock: Optional[Callable[[], datetime]] = None,
        listeners: Optional[List[SessionListener]] = None,
        verbose: Optional[bool] = None,
    ):
        """Create a session.

        Args:
            journey: Journey to simulate (may be loaded later)
            start_time: Initial simulated time (defaults to ``clock()``)
            clock: Source of real "now", used on reset. Defaults to UTC now.
            listeners: Callables invoked with a SessionChange after each stimulus
            verbose: Print transitions; defaults to Config.VERBOSE
        """
        self.clock = clock or _utcnow
        self.listeners: List[SessionListener] = listeners or []
        self.verbose = Config.VERBOSE if verbose is None else verbose

        self.journey: Optional[Journey] = None
        self.simulated_time: datetime = _aware(start_time or self.clock())
        self.anchor_time: Optional[datetime] = None
        self.events: List[Event] = []
        self.notifications: List[Notification] = []
        self.ledger: ReminderLedger = {}
        self._instances: Dict[str, ActionInstance] = {}

        if journey is not None:
            self.load_journey(journey)

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def instances(self) -> List[ActionInstance]:
        """Instances in journey order."""
        if self.journey is None:
            return []
        return [self._instances[a.id] for a in self.journey.actions if a.id in self._instances]

    def get_instance(self, action_id: str) -> Optional[ActionInstance]:
        return self._instances.get(action_id)

    @property
    def unread_count(self) -> int:
        return sum(1 for notification in self.notifications if not notification.read)

    @property
    def is_anchored(self) -> bool:
        return self.anchor_time is not None

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            journey_id=self.journey.id if self.journey else None,
            simulated_time=self.simulated_time,
            anchor_time=self.anchor_time,
            instances=[instance.model_copy(deep=True) for instance in self.instances],
            notifications=[n.model_copy() for n in self.notifications],
            events=list(self.events),
        )

    # ------------------------------------------------------------------
    # Journey lifecycle
    # ------------------------------------------------------------------

    def load_journey(self, journey: Journey) -> None:
        """Select ``journey`` and start a fresh replay of it.

        Simulated time is kept; anchor, events, notifications and ledger are
        cleared because they belong to the previous journey's actions.
        """
        self.journey = journey
        self._clear_runtime()
        self._instances = self._initial_instances()
        if self.verbose:
            log_info(f"[Session] Loaded journey '{journey.name}' ({len(journey.actions)} actions)")
        self._notify(SessionChange(kind="journey", simulated_time=self.simulated_time))

    def reset(self) -> None:
        """Return to real "now" and discard everything the replay produced."""
        self.simulated_time = _aware(self.clock())
        self._clear_runtime()
        self._instances = self._initial_instances()
        if self.verbose:
            log_info(f"[Session] Reset to {self.simulated_time.isoformat()}")
        self._notify(SessionChange(kind="reset", simulated_time=self.simulated_time))

    def _clear_runtime(self) -> None:
        self.anchor_time = None
        self.events = []
        self.notifications = []
        self.ledger = {}

    def _initial_instances(self) -> Dict[str, ActionInstance]:
        # Unanchored journeys preview deadlines from the current simulated time
        if self.journey is None:
            return {}
        base = self.anchor_time or self.simulated_time
        instances: Dict[str, ActionInstance] = {}
        for action in self.journey.actions:
            deadline = deadline_for(self.journey, action, instances, base)
            instances[action.id] = new_instance(action, self.anchor_time, deadline)
        return instances

    # ------------------------------------------------------------------
    # Clock
    # ------------------------------------------------------------------

    def set_time(self, time: datetime) -> List[Notification]:
        """Move the simulated clock to ``time`` and re-evaluate every action.

        Returns:
            Notifications fired by the move (newest feed entries)
        """
        self.simulated_time = _aware(time)
        if self.verbose:
            log_deterministic(f"[Clock] Simulated time -> {time.isoformat()}")
        notifications = self._refresh(run_reminders=True)
        self._notify(
            SessionChange(
                kind="time",
                simulated_time=self.simulated_time,
                updated_action_ids=[i.id for i in self.instances],
                notifications=notifications,
            )
        )
        return notifications

    def fast_forward(self, days: int) -> List[Notification]:
        """Advance the clock by whole calendar days."""
        if days < 0:
            raise ValueError(f"fast_forward expects a non-negative day count, got {days}")
        return self.set_time(self.simulated_time + timedelta(days=days))

    def reset_to_now(self) -> List[Notification]:
        """Move the clock to real "now" without clearing state."""
        return self.set_time(self.clock())

    def _refresh(self, *, run_reminders: bool) -> List[Notification]:
        """Recompute deadline and status for every instance, in journey order."""
        if self.journey is None:
            return []

        base = self.anchor_time or self.simulated_time
        fired: List[Notification] = []

        for action in self.journey.actions:
            instance = self._instances.get(action.id)
            if instance is None:
                continue

            deadline = deadline_for(self.journey, action, self._instances, base)
            status = classify_status(
                action,
                deadline,
                self.simulated_time,
                instance.completed_at,
                instance.current_count,
            )
            if self.verbose and status == ActionStatus.OVERDUE and instance.status != status:
                log_error(f"[Status] {action.display_title} is overdue")

            instance = instance.model_copy(
                update={"deadline": deadline, "status": status, "anchor_time": self.anchor_time}
            )
            self._instances[action.id] = instance

            if run_reminders:
                check = check_reminders(instance, self.simulated_time, self.ledger)
                self.ledger = check.ledger
                fired.extend(check.notifications)

        self._publish(fired)
        return fired

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def trigger_event(
        self,
        event_type: str,
        product: Product,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> EventOutcome:
        """Record an event at the current simulated time and apply it.

        Returns:
            The processor's outcome (empty when nothing matched or no journey is loaded)
        """
        event = Event(
            event_type=event_type,
            product=Product(product),
            occurred_at=self.simulated_time,
            metadata=metadata or {},
        )

        if self.journey is None:
            return EventOutcome(ledger=dict(self.ledger), anchor_time=self.anchor_time)

        outcome = process_event(
            event,
            self.journey,
            self.instances,
            self.anchor_time,
            self.simulated_time,
            self.ledger,
        )

        for instance in outcome.updated_instances:
            self._instances[instance.id] = instance
            if self.verbose and instance.status == ActionStatus.DONE:
                log_success(f"[Event] {instance.action.display_title} completed")
        self.ledger = outcome.ledger
        self.events.append(event)
        self._publish(outcome.new_notifications)

        if self.anchor_time is None and outcome.anchor_time is not None:
            self.anchor_time = outcome.anchor_time
            if self.verbose:
                log_info(f"[Session] Journey anchored at {self.anchor_time.isoformat()}")

        # Anchoring or a fresh completion moves downstream deadlines
        self._refresh(run_reminders=False)

        if self.verbose:
            log_deterministic(
                f"[Event] {event_type}/{event.product.value} matched "
                f"{len(outcome.updated_instances)} action(s)"
            )
        self._notify(
            SessionChange(
                kind="event",
                simulated_time=self.simulated_time,
                event=event,
                updated_action_ids=[i.id for i in outcome.updated_instances],
                notifications=outcome.new_notifications,
            )
        )
        return outcome

    def set_anchor_time(self, anchor_time: Optional[datetime]) -> None:
        """Override the anchor time.

        None returns the journey to preview mode: instances and the ledger are
        rebuilt so the entry event can anchor the journey again.
        """
        if anchor_time is None:
            self.anchor_time = None
            self.ledger = {}
            self._instances = self._initial_instances()
        else:
            self.anchor_time = _aware(anchor_time)
            self._refresh(run_reminders=False)
        self._notify(SessionChange(kind="anchor", simulated_time=self.simulated_time))

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def mark_notification_read(self, notification_id: str) -> bool:
        """Flip a notification to read. Returns False if the id is unknown."""
        for index, notification in enumerate(self.notifications):
            if notification.id == notification_id:
                if not notification.read:
                    self.notifications[index] = notification.model_copy(update={"read": True})
                return True
        return False

    def _publish(self, notifications: List[Notification]) -> None:
        if not notifications:
            return
        if self.verbose:
            for notification in notifications:
                log_reminder(f"[{notification.type}] {notification.message}")
        # Feed is newest first
        self.notifications = list(notifications) + self.notifications

    def _notify(self, change: SessionChange) -> None:
        for listener in self.listeners:
            listener(change)
