"""
Scenario loading for JSON-defined journeys and replay scripts.

A scenario bundles a journey definition with an optional script of simulator
steps, so a replay can be shared as a single file and run without the builder.

Scenario file structure:
```json
{
  "name": "Gym A onboarding",
  "start_time": "2025-01-06T09:00:00+00:00",
  "journey": {
    "name": "Gym A - Onboarding Journey",
    "actions": [
      {"id": "account", "action_type_id": "A01", "product": "BMA"},
      {"id": "workouts", "action_type_id": "A13", "product": "BMA",
       "required_count": 3,
       "time_range": {"type": "ABSOLUTE", "duration": 2, "unit": "WEEKS"},
       "reminders": [{"channel": "PUSH", "frequency": "EVERY_X_DAYS", "frequency_days": 3}]}
    ]
  },
  "script": [
    {"trigger": "EGYM_ACCOUNT_CREATED", "product": "BMA"},
    {"advance_days": 15},
    {"set_time": "2025-02-01T09:00:00+00:00"}
  ]
}
```

Actions that name a library ``action_type_id`` and omit ``event_type`` are
filled in from the action library. Time ranges may give ``duration``/``offset``
in a display ``unit``; they are converted to whole days on load.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from .config import Config
from .library import UnknownActionTypeError, build_action
from .schemas import (
    Action,
    Journey,
    JourneyNode,
    NodeType,
    Notification,
    Product,
    Reminder,
    TimeRange,
    TimeUnit,
)
from .session import SimulationSession
from .units import unit_to_days

_TIME_RANGE = TypeAdapter(TimeRange)


class InvalidScenarioError(ValueError):
    """Raised when a scenario file is structurally invalid."""


class TriggerStep(BaseModel):
    trigger: str = Field(..., description="Event type to trigger")
    product: Optional[Product] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class AdvanceStep(BaseModel):
    advance_days: int = Field(..., ge=0)


class SetTimeStep(BaseModel):
    set_time: datetime


ScriptStep = Union[TriggerStep, AdvanceStep, SetTimeStep]


class Scenario(BaseModel):
    name: str
    description: str = ""
    start_time: Optional[datetime] = None
    journey: Journey
    script: List[ScriptStep] = Field(default_factory=list)


def _time_range_payload(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Normalise ``duration``/``offset`` + ``unit`` into whole-day fields."""
    payload = dict(raw)
    unit = TimeUnit(payload.pop("unit", payload.get("display_unit", "DAYS")))
    payload["display_unit"] = unit

    if "duration" in payload:
        payload["duration_days"] = unit_to_days(payload.pop("duration"), unit)
    if "offset" in payload:
        payload["offset_days"] = unit_to_days(payload.pop("offset"), unit)
    return payload


def _reminders(raw: List[Dict[str, Any]]) -> List[Reminder]:
    reminders = []
    for index, item in enumerate(raw):
        data = dict(item)
        data.setdefault("order", index)
        reminders.append(Reminder.model_validate(data))
    return reminders


def parse_action(raw: Dict[str, Any]) -> Action:
    """Build an Action from scenario JSON, consulting the library when needed."""
    data = dict(raw)
    if "time_range" in data and isinstance(data["time_range"], dict):
        data["time_range"] = _time_range_payload(data["time_range"])
    reminders = _reminders(data.pop("reminders", []))

    if "event_type" in data:
        return Action.model_validate({**data, "reminders": reminders})

    action_type_id = data.get("action_type_id")
    if not action_type_id:
        raise InvalidScenarioError("Each action needs either 'event_type' or 'action_type_id'")

    time_range = _TIME_RANGE.validate_python(data.get("time_range", {"type": "NONE"}))

    return build_action(
        action_type_id,
        Product(data["product"]) if data.get("product") else None,
        required_count=data.get("required_count"),
        time_range=time_range,
        reminders=reminders,
        visible_in_checklist=data.get("visible_in_checklist", True),
        guidance_enabled=data.get("guidance_enabled"),
        action_id=data.get("id"),
    )


def parse_journey(raw: Dict[str, Any]) -> Journey:
    """Build a Journey with one ACTION node per action, in file order."""
    actions = [parse_action(item) for item in raw.get("actions", [])]
    nodes = [JourneyNode(node_type=NodeType.START, position=0)]
    nodes += [
        JourneyNode(node_type=NodeType.ACTION, action_id=action.id, position=index + 1)
        for index, action in enumerate(actions)
    ]
    fields = {key: value for key, value in raw.items() if key not in ("actions", "nodes")}
    return Journey.model_validate({**fields, "actions": actions, "nodes": nodes})


def _parse_step(raw: Dict[str, Any]) -> ScriptStep:
    if "trigger" in raw:
        return TriggerStep.model_validate(raw)
    if "advance_days" in raw:
        return AdvanceStep.model_validate(raw)
    if "set_time" in raw:
        return SetTimeStep.model_validate(raw)
    raise InvalidScenarioError(f"Unknown script step: {raw}")


def parse_scenario(data: Dict[str, Any]) -> Scenario:
    """Validate a scenario document already decoded from JSON.

    Raises:
        InvalidScenarioError: If required fields are missing or invalid
    """
    for field in ("name", "journey"):
        if field not in data:
            raise InvalidScenarioError(f"Scenario missing required field: {field}")

    try:
        journey = parse_journey(data["journey"])
        steps = [_parse_step(step) for step in data.get("script", [])]
        return Scenario(
            name=data["name"],
            description=data.get("description", ""),
            start_time=data.get("start_time"),
            journey=journey,
            script=steps,
        )
    except (ValueError, UnknownActionTypeError) as exc:
        raise InvalidScenarioError(f"Invalid scenario '{data['name']}': {exc}") from exc


class ScenarioLoader:
    """Load scenarios from ``{scenarios_dir}/{name}.json``.

    Defaults to Config.SCENARIOS_DIR (``examples/journeys``).
    """

    def __init__(self, scenarios_dir: Optional[Path] = None):
        self.scenarios_dir = Path(scenarios_dir) if scenarios_dir else Config.SCENARIOS_DIR

    def load(self, scenario_name: str) -> Scenario:
        path = self.scenarios_dir / f"{scenario_name}.json"
        if not path.exists():
            raise FileNotFoundError(f"Scenario not found: {path}")
        return self.load_file(path)

    def load_file(self, path: Path) -> Scenario:
        with open(path, "r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise InvalidScenarioError(f"{path} is not valid JSON: {exc}") from exc
        return parse_scenario(data)

    def list_scenarios(self) -> List[str]:
        if not self.scenarios_dir.exists():
            return []
        return sorted(path.stem for path in self.scenarios_dir.glob("*.json"))


def run_script(
    session: SimulationSession,
    steps: List[ScriptStep],
    default_product: Optional[Product] = None,
) -> List[Notification]:
    """Replay ``steps`` against ``session`` in order.

    Returns:
        Every notification fired during the replay, oldest first
    """
    product_fallback = default_product or Product(Config.DEFAULT_PRODUCT)
    fired: List[Notification] = []

    for step in steps:
        if isinstance(step, TriggerStep):
            outcome = session.trigger_event(step.trigger, step.product or product_fallback, step.metadata)
            fired.extend(outcome.new_notifications)
        elif isinstance(step, AdvanceStep):
            fired.extend(session.fast_forward(step.advance_days))
        else:
            fired.extend(session.set_time(step.set_time))

    return fired
