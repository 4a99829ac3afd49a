"""Reaction decisions: what an agent does about something it just noticed.

Only ``agent_nearby`` observations can lead to a reaction. The outcome is a
small tagged union so the orchestrator can dispatch on type:

- ``Continue``: carry on with the plan
- ``StartConversation``: greet the other agent with ``opening_line``
- ``ChangeActivity``: drop the current activity for a spontaneous one

Any failure along the way (generation error, unreadable reply) resolves to
``Continue``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from townsfolk.environment import find_location
from townsfolk.errors import ParseFailure
from townsfolk.llm_calls import generate_text
from townsfolk.llm_utils import TextGenerator, parse_structured
from townsfolk.logging_utils import log_deterministic, log_error
from townsfolk.memory import format_memories, retrieve_memories
from townsfolk.perception import Observation, ObservationType
from townsfolk.schemas import Agent, WorldState

from .conversation import CooldownRegistry
from .renderers import render_prompt


REACTION_MEMORY_COUNT = 5
REACTION_MAX_TOKENS = 200
IDLE_ACTIVITY = "walking around"


@dataclass(frozen=True)
class Continue:
    pass


@dataclass(frozen=True)
class StartConversation:
    target_agent_id: str
    opening_line: str


@dataclass(frozen=True)
class ChangeActivity:
    new_activity: str
    new_location: str


ReactionDecision = Union[Continue, StartConversation, ChangeActivity]


class _ReactionReply(BaseModel):
    model_config = ConfigDict(extra="ignore")

    react: bool = False
    opening: Optional[str] = None
    new_activity: Optional[str] = None
    new_location: Optional[str] = None


def _is_busy(world: WorldState, agent: Agent) -> bool:
    return world.active_conversation_for(agent) is not None


async def decide_reaction(
    generator: TextGenerator,
    agent: Agent,
    observation: Observation,
    world: WorldState,
    cooldowns: CooldownRegistry,
    now: int,
) -> ReactionDecision:
    """Decide how ``agent`` responds to ``observation``."""
    if observation.type != ObservationType.AGENT_NEARBY or not observation.subject_id:
        return Continue()

    other = world.agents.get(observation.subject_id)
    if other is None or other.id == agent.id:
        return Continue()
    if _is_busy(world, agent) or _is_busy(world, other):
        return Continue()
    if cooldowns.is_on_cooldown(agent.id, other.id, now):
        log_deterministic(f"{agent.name} and {other.name} spoke recently; skipping")
        return Continue()

    memories = retrieve_memories(
        agent, f"{other.name} conversation interaction", now, REACTION_MEMORY_COUNT
    )
    if memories:
        memories_text = f"Your memories involving {other.name}:\n{format_memories(memories)}"
    else:
        memories_text = f"You don't have many memories of {other.name} yet."

    current = agent.current_plan.current_action if agent.current_plan else None
    prompt = render_prompt(
        "reaction",
        {
            "agent_name": agent.name,
            "personality": agent.personality,
            "other_name": other.name,
            "other_personality": other.personality,
            "memories_text": memories_text,
            "current_activity": current.description if current else IDLE_ACTIVITY,
            "location_names": ", ".join(location.name for location in world.locations),
        },
    )

    text = await generate_text(
        generator,
        prompt.system,
        prompt.user,
        max_tokens=REACTION_MAX_TOKENS,
        purpose=f"Reaction of {agent.name} to {other.name}",
    )
    if text is None:
        return Continue()

    try:
        reply = parse_structured(text, _ReactionReply)
    except ParseFailure as exc:
        log_error(f"[{agent.name}] Unreadable reaction reply, continuing: {exc}")
        return Continue()

    if reply.react:
        opening = (reply.opening or "").strip() or f"Hey {other.name}!"
        return StartConversation(target_agent_id=other.id, opening_line=opening)

    if reply.new_activity and reply.new_activity.strip() and reply.new_location:
        location = find_location(world.locations, reply.new_location)
        if location is not None:
            return ChangeActivity(
                new_activity=reply.new_activity.strip(),
                new_location=location.name,
            )

    return Continue()
