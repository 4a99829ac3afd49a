"""Tests for loading JSON town scenarios."""

import json
import random
from pathlib import Path

import pytest

from townsfolk.environment import contains, find_location
from townsfolk.scenario import ScenarioError, ScenarioLoader, load_scenario
from townsfolk.schemas import MemoryKind

SCENARIOS_DIR = Path(__file__).resolve().parent.parent / "examples" / "scenarios"


def _write(tmp_path, name, data):
    path = tmp_path / f"{name}.json"
    path.write_text(json.dumps(data) if not isinstance(data, str) else data, encoding="utf-8")
    return path


def _minimal(**overrides):
    data = {
        "name": "Tiny",
        "locations": [{"id": "cafe", "name": "Cafe", "x": 0, "y": 0, "width": 50, "height": 50}],
        "agents": [{"id": "ann", "name": "Ann", "personality": "Curious.", "start_location": "cafe"}],
    }
    data.update(overrides)
    return data


def test_bundled_smallville_loads():
    loader = ScenarioLoader(SCENARIOS_DIR, rng=random.Random(7))

    world = loader.load("smallville")

    assert world.sim_day == 1
    assert world.sim_time_minutes == 480
    assert len(world.locations) == 8
    assert list(world.agents)[:2] == ["isabella", "klaus"]
    assert len(world.agents) == 8

    for agent in world.agents.values():
        location = find_location(world.locations, agent.occupied_location_id)
        assert location is not None
        assert agent.current_location == location.name
        assert contains(location, agent.position)
        assert agent.last_reflection_time == 480
        seed = agent.memory_stream[0]
        assert seed.kind == MemoryKind.OBSERVATION
        assert (seed.timestamp, seed.importance) == (470, 3)

    assert world.agents["isabella"].current_location == "Hobbs Cafe"


def test_max_agents_truncates_roster():
    world = load_scenario("smallville", SCENARIOS_DIR, max_agents=3, rng=random.Random(1))
    assert list(world.agents) == ["isabella", "klaus", "maria"]


def test_list_and_describe_scenarios():
    loader = ScenarioLoader(SCENARIOS_DIR)
    assert "smallville" in loader.list_scenarios()

    info = loader.get_scenario_info("smallville")
    assert info["name"] == "Smallville"
    assert info["num_agents"] == 8
    assert info["num_locations"] == 8
    assert "Klaus Mueller" in info["agent_names"]


def test_missing_scenario_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        ScenarioLoader(tmp_path).load("nowhere")


def test_agent_without_start_location_is_placed_somewhere(tmp_path):
    data = _minimal(agents=[{"id": "ann", "name": "Ann"}])
    _write(tmp_path, "tiny", data)

    world = ScenarioLoader(tmp_path, rng=random.Random(3)).load("tiny")

    ann = world.agents["ann"]
    assert ann.current_location == "Cafe"
    assert ann.memory_stream == []


@pytest.mark.parametrize(
    "data",
    [
        "{not json",
        "[1, 2, 3]",
        {"name": "No agents", "locations": []},
        _minimal(agents=[]),
        _minimal(locations=[]),
        _minimal(agents=[{"id": "ann"}]),
        _minimal(agents=[{"id": "ann", "name": "Ann"}, {"id": "ann", "name": "Ann Again"}]),
        _minimal(agents=[{"id": "ann", "name": "Ann", "start_location": "moon"}]),
        _minimal(locations=[{"id": "cafe", "name": "Cafe", "x": 0, "y": 0, "width": -5, "height": 5}]),
        _minimal(
            locations=[
                {"id": "cafe", "name": "Cafe", "x": 0, "y": 0, "width": 5, "height": 5},
                {"id": "cafe", "name": "Other Cafe", "x": 9, "y": 9, "width": 5, "height": 5},
            ]
        ),
        _minimal(start_minute=2000),
    ],
)
def test_malformed_scenarios_raise(tmp_path, data):
    _write(tmp_path, "broken", data)
    with pytest.raises(ScenarioError):
        ScenarioLoader(tmp_path).load("broken")
