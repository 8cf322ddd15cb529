"""Replay a JSON journey scenario and print the member checklist.

    python examples/onboarding/run.py
    python examples/onboarding/run.py --scenario gym_onboarding --verbose

The scenario's script is replayed step by step; after the replay the checklist
and the notification feed are printed.
"""

from __future__ import annotations

import argparse
from pathlib import Path

from journeysim import (
    ScenarioLoader,
    SimulationSession,
    build_checklist,
    format_checklist,
    run_script,
)
from journeysim.config import Config
from journeysim.logging_utils import Color, colored


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--scenario", default="gym_onboarding", help="Scenario name under --dir")
    parser.add_argument("--dir", type=Path, default=Config.SCENARIOS_DIR, help="Scenario directory")
    parser.add_argument("--verbose", action="store_true", help="Print every session transition")
    args = parser.parse_args()

    Config.validate()
    scenario = ScenarioLoader(args.dir).load(args.scenario)
    session = SimulationSession(
        scenario.journey,
        start_time=scenario.start_time,
        verbose=args.verbose or Config.VERBOSE,
    )

    print(colored(f"Scenario: {scenario.name}", Color.CYAN, bold=True))
    if scenario.description:
        print(scenario.description)

    fired = run_script(session, scenario.script)

    print()
    print(colored(f"Checklist at {session.simulated_time:%Y-%m-%d %H:%M}", Color.CYAN, bold=True))
    print(format_checklist(build_checklist(session.instances, session.simulated_time)))

    print()
    print(colored(f"Notifications ({len(fired)} fired, {session.unread_count} unread)", Color.CYAN, bold=True))
    for notification in session.notifications:
        print(f"  {notification.timestamp:%Y-%m-%d} [{notification.type}] {notification.message}")


if __name__ == "__main__":
    main()
