"""
Perception module: what a townsperson notices each tick.

An agent only notices:
- Other agents within ``PROXIMITY_THRESHOLD`` world units who are not busy
  talking to someone else
- Crossing into or out of a location rectangle

Nothing here calls a model. Observations become memories with fixed
importance ratings: 5 for an encounter, 3 for entering and 2 for leaving.

Usage:
    observations = perceive_nearby(agent, world)
    change = perceive_location(agent, world.locations, agent.occupied_location_id)
    if change is not None:
        observations.append(change)
    for observation in observations:
        append_memory(agent, observation_to_memory(agent, observation, world.now))
"""

from enum import Enum
from typing import Iterable, List, Optional

from pydantic import BaseModel

from townsfolk.environment import Location, contains, distance
from townsfolk.memory import create_memory
from townsfolk.schemas import Agent, Memory, MemoryKind, WorldState


PROXIMITY_THRESHOLD = 80.0


class ObservationType(str, Enum):
    AGENT_NEARBY = "agent_nearby"
    ENTERED_LOCATION = "entered_location"
    LEFT_LOCATION = "left_location"


OBSERVATION_IMPORTANCE = {
    ObservationType.AGENT_NEARBY: 5,
    ObservationType.ENTERED_LOCATION: 3,
    ObservationType.LEFT_LOCATION: 2,
}


class Observation(BaseModel):
    """A single perceived fact about the surroundings."""

    type: ObservationType
    description: str
    subject_id: Optional[str] = None
    location_id: Optional[str] = None


def perceive_nearby(agent: Agent, world: WorldState) -> List[Observation]:
    """Observe every other agent within range who is free to talk.

    Agents already in an active conversation are skipped.
    """
    observations: List[Observation] = []
    for other in world.agents.values():
        if other.id == agent.id:
            continue
        if world.active_conversation_for(other) is not None:
            continue
        if distance(agent.position, other.position) < PROXIMITY_THRESHOLD:
            observations.append(
                Observation(
                    type=ObservationType.AGENT_NEARBY,
                    description=(
                        f"{agent.name} noticed {other.name} nearby at {other.current_location}."
                    ),
                    subject_id=other.id,
                )
            )
    return observations


def perceive_location(
    agent: Agent,
    locations: Iterable[Location],
    previous_location_id: Optional[str],
) -> Optional[Observation]:
    """Detect entering a new rectangle or leaving the previous one.

    Entering wins when both happen in the same step; the next tick's lookup
    starts from the new location.
    """
    locations = list(locations)

    for location in locations:
        if location.id != previous_location_id and contains(location, agent.position):
            return Observation(
                type=ObservationType.ENTERED_LOCATION,
                description=f"{agent.name} entered {location.name}. {location.description}".strip(),
                location_id=location.id,
            )

    if previous_location_id is None:
        return None

    previous = next((loc for loc in locations if loc.id == previous_location_id), None)
    if previous is not None and not contains(previous, agent.position):
        return Observation(
            type=ObservationType.LEFT_LOCATION,
            description=f"{agent.name} left {previous.name}.",
            location_id=previous.id,
        )
    return None


def observation_to_memory(agent: Agent, observation: Observation, now: int) -> Memory:
    """Convert an observation into an observation memory with fixed importance."""
    metadata = {"observation_type": observation.type.value}
    if observation.subject_id:
        metadata["subject_id"] = observation.subject_id
    if observation.location_id:
        metadata["location_id"] = observation.location_id
    return create_memory(
        agent.id,
        observation.description,
        MemoryKind.OBSERVATION,
        now,
        OBSERVATION_IMPORTANCE[observation.type],
        metadata,
    )
