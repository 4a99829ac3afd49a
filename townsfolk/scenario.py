"""
Scenario loading for JSON-defined towns.

A scenario declares the town map and its residents. ``ScenarioLoader`` turns
it into a ready-to-run ``WorldState``: locations are validated, each agent
is placed at a random point inside its starting location and seeded with a
memory of its morning routine.

Scenario file structure:
```json
{
  "name": "Smallville",
  "description": "...",
  "start_minute": 480,
  "locations": [
    {"id": "cafe", "name": "Hobbs Cafe", "description": "...",
     "x": 40, "y": 40, "width": 120, "height": 90, "kind": "building"}
  ],
  "agents": [
    {"id": "isabella", "name": "Isabella Rodriguez", "personality": "...",
     "morning_routine": "...", "start_location": "cafe", "wallet": null}
  ]
}
```

Usage:
    loader = ScenarioLoader()
    world = loader.load("smallville", max_agents=4)
    # Pass to Orchestrator to start the simulation
"""

import json
import random
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .config import Config
from .environment import Location, find_location, random_position_in
from .memory import create_memory
from .schemas import MINUTES_PER_DAY, Agent, MemoryKind, WorldState


SEED_MEMORY_IMPORTANCE = 3
SEED_MEMORY_OFFSET = 10


class ScenarioError(ValueError):
    """Raised when a scenario file is malformed."""


class ScenarioLoader:
    """Load and validate town scenarios from JSON files.

    Directory structure:
    - Default: {PROJECT_ROOT}/examples/scenarios/
    - Override via constructor: ScenarioLoader(Path("/custom/scenarios"))
    - Scenario files: {scenario_name}.json (e.g., "smallville.json")

    Validation:
    - Required fields: name, locations, agents
    - At least one location and one agent
    - Agent ids must be unique; start locations must exist
    - Raises ScenarioError if validation fails
    """

    REQUIRED_FIELDS = ("name", "locations", "agents")
    REQUIRED_AGENT_FIELDS = ("id", "name")

    def __init__(self, scenarios_dir: Optional[Path] = None, rng: Optional[random.Random] = None):
        self.scenarios_dir = Path(scenarios_dir) if scenarios_dir else Config.SCENARIOS_DIR
        self.rng = rng or random.Random()

    def _read(self, scenario_name: str) -> Dict[str, Any]:
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"
        if not scenario_path.exists():
            raise FileNotFoundError(
                f"Scenario '{scenario_name}' not found at {scenario_path}"
            )
        try:
            data = json.loads(scenario_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ScenarioError(f"Scenario '{scenario_name}' is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ScenarioError(f"Scenario '{scenario_name}' must be a JSON object")
        return data

    def load(self, scenario_name: str, *, max_agents: Optional[int] = None) -> WorldState:
        """Load a scenario by name and build the initial world.

        Args:
            scenario_name: File name without the .json extension
            max_agents: Keep only the first N agents of the roster

        Raises:
            FileNotFoundError: If the scenario file doesn't exist
            ScenarioError: If the scenario is malformed
        """
        data = self._read(scenario_name)
        self._validate_scenario(data)

        locations = self._parse_locations(data["locations"])

        start_minute = data.get("start_minute", Config.DAY_START_MINUTE)
        if not isinstance(start_minute, int) or not 0 <= start_minute < MINUTES_PER_DAY:
            raise ScenarioError(f"start_minute must be an integer in [0, 1440), got {start_minute!r}")

        world = WorldState(sim_time_minutes=start_minute, sim_day=1, locations=locations)

        roster = data["agents"]
        if max_agents is not None:
            roster = roster[: max(0, max_agents)]

        for entry in roster:
            world.add_agent(self._build_agent(entry, locations, world.now))

        return world

    def _validate_scenario(self, data: Dict[str, Any]) -> None:
        missing = [field for field in self.REQUIRED_FIELDS if field not in data]
        if missing:
            raise ScenarioError(f"Scenario missing required fields: {missing}")

        if not isinstance(data["locations"], list) or not data["locations"]:
            raise ScenarioError("Scenario must define at least one location")
        if not isinstance(data["agents"], list) or not data["agents"]:
            raise ScenarioError("Scenario must have at least one agent")

        seen = set()
        for i, entry in enumerate(data["agents"]):
            if not isinstance(entry, dict):
                raise ScenarioError(f"Agent {i} must be an object")
            missing = [field for field in self.REQUIRED_AGENT_FIELDS if not entry.get(field)]
            if missing:
                raise ScenarioError(f"Agent {i} missing required fields: {missing}")
            if entry["id"] in seen:
                raise ScenarioError(f"Duplicate agent id: {entry['id']}")
            seen.add(entry["id"])

    def _parse_locations(self, raw_locations: List[Any]) -> List[Location]:
        locations: List[Location] = []
        for i, raw in enumerate(raw_locations):
            try:
                locations.append(Location.model_validate(raw))
            except ValidationError as exc:
                raise ScenarioError(f"Location {i} is invalid: {exc}") from exc

        ids = [location.id for location in locations]
        if len(ids) != len(set(ids)):
            raise ScenarioError("Location ids must be unique")
        return locations

    def _build_agent(self, entry: Dict[str, Any], locations: List[Location], now: int) -> Agent:
        start_ref = entry.get("start_location")
        if start_ref:
            start = find_location(locations, start_ref)
            if start is None:
                raise ScenarioError(
                    f"Agent '{entry['id']}' starts at unknown location '{start_ref}'"
                )
        else:
            start = self.rng.choice(locations)

        agent = Agent(
            id=entry["id"],
            name=entry["name"],
            personality=entry.get("personality", ""),
            current_location=start.name,
            position=random_position_in(start, self.rng),
            occupied_location_id=start.id,
            last_reflection_time=now,
            wallet=entry.get("wallet"),
        )

        routine = entry.get("morning_routine")
        if routine:
            agent.memory_stream.append(
                create_memory(
                    agent.id,
                    routine,
                    MemoryKind.OBSERVATION,
                    now - SEED_MEMORY_OFFSET,
                    SEED_MEMORY_IMPORTANCE,
                )
            )
        return agent

    def list_scenarios(self) -> List[str]:
        """Names of all scenario files in the scenarios directory."""
        if not self.scenarios_dir.exists():
            return []
        return sorted(path.stem for path in self.scenarios_dir.glob("*.json"))

    def get_scenario_info(self, scenario_name: str) -> Dict[str, Any]:
        """Summary of a scenario without building the world."""
        data = self._read(scenario_name)
        return {
            "name": data.get("name", scenario_name),
            "description": data.get("description", ""),
            "num_agents": len(data.get("agents", [])),
            "num_locations": len(data.get("locations", [])),
            "agent_names": [entry.get("name", "") for entry in data.get("agents", [])],
        }


def load_scenario(
    scenario_name: str,
    scenarios_dir: Optional[Path] = None,
    *,
    max_agents: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> WorldState:
    """Convenience wrapper around ``ScenarioLoader(...).load(...)``."""
    return ScenarioLoader(scenarios_dir, rng=rng).load(scenario_name, max_agents=max_agents)
