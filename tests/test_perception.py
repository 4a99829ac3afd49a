"""Tests for proximity and location-change perception."""

from townsfolk.memory import create_memory
from townsfolk.perception import (
    ObservationType,
    observation_to_memory,
    perceive_location,
    perceive_nearby,
)
from townsfolk.schemas import AgentStatus, Conversation, MemoryKind


def test_nearby_agent_is_observed(make_agent, make_world):
    alice = make_agent()
    bob = make_agent("bob", "Bob Brown", x=80, y=90)
    world = make_world(alice, bob)

    observations = perceive_nearby(alice, world)

    assert len(observations) == 1
    assert observations[0].type == ObservationType.AGENT_NEARBY
    assert observations[0].subject_id == "bob"
    assert observations[0].description == "Alice Adams noticed Bob Brown nearby at Cafe."


def test_proximity_threshold_is_strict(make_agent, make_world):
    alice = make_agent(x=0, y=0)
    inside = make_agent("bob", "Bob", x=79.9, y=0)
    boundary = make_agent("carol", "Carol", x=0, y=80)
    world = make_world(alice, inside, boundary)

    subjects = [obs.subject_id for obs in perceive_nearby(alice, world)]
    assert subjects == ["bob"]


def test_agents_in_active_conversation_are_skipped(make_agent, make_world):
    alice = make_agent()
    bob = make_agent("bob", "Bob", x=55, y=55)
    carol = make_agent("carol", "Carol", x=60, y=60)
    world = make_world(alice, bob, carol)

    world.conversations.append(Conversation(id="convo-1", participants=["bob", "carol"], start_time=480))
    bob.conversation_id = carol.conversation_id = "convo-1"
    bob.status = carol.status = AgentStatus.TALKING

    assert perceive_nearby(alice, world) == []

    world.conversations[0].end_time = 490
    assert len(perceive_nearby(alice, world)) == 2


def test_entering_a_location(make_agent, locations):
    alice = make_agent(x=350, y=50)

    observation = perceive_location(alice, locations, "cafe")

    assert observation.type == ObservationType.ENTERED_LOCATION
    assert observation.location_id == "park"
    assert observation.description == "Alice Adams entered Park. Green and quiet."


def test_leaving_a_location(make_agent, locations):
    alice = make_agent(x=200, y=50)

    observation = perceive_location(alice, locations, "cafe")

    assert observation.type == ObservationType.LEFT_LOCATION
    assert observation.description == "Alice Adams left Cafe."


def test_staying_put_and_edges(make_agent, locations):
    assert perceive_location(make_agent(x=50, y=50), locations, "cafe") is None
    # Rectangle edges count as inside.
    assert perceive_location(make_agent(x=100, y=100), locations, "cafe") is None
    assert perceive_location(make_agent(x=200, y=200), locations, None) is None


def test_observation_memories_use_fixed_importance(make_agent, make_world, locations):
    alice = make_agent()
    bob = make_agent("bob", "Bob", x=60, y=60)
    world = make_world(alice, bob)

    nearby = perceive_nearby(alice, world)[0]
    entered = perceive_location(make_agent(x=350, y=50), locations, None)
    left = perceive_location(make_agent(x=200, y=50), locations, "cafe")

    memories = [observation_to_memory(alice, obs, 600) for obs in (nearby, entered, left)]

    assert [memory.importance for memory in memories] == [5, 3, 2]
    assert all(memory.kind == MemoryKind.OBSERVATION for memory in memories)
    assert all(memory.timestamp == 600 for memory in memories)
    assert memories[0].metadata == {"observation_type": "agent_nearby", "subject_id": "bob"}
    assert memories[1].metadata["location_id"] == "park"


def test_observation_memory_embedding_matches_description(make_agent, make_world):
    alice = make_agent()
    world = make_world(alice, make_agent("bob", "Bob", x=60, y=60))
    memory = observation_to_memory(alice, perceive_nearby(alice, world)[0], 10)
    assert memory.embedding == create_memory("x", memory.description, MemoryKind.OBSERVATION, 0, 1).embedding
