"""Two-party conversations.

``ConversationEngine`` owns the lifecycle of a dialogue:

1. ``start`` re-checks that both agents are free, then seeds the opener
2. each tick, ``take_turn`` lets the agent who did not speak last either
   close the conversation or add one reply
3. ``end`` sets ``end_time`` exactly once, frees both agents and starts the
   pair's cooldown; ``distill_memories`` then leaves each participant a
   memory of what was discussed

Conversations always end after 8 messages, never before 4, and in between
end with probability ``END_PROBABILITY`` per turn, drawn from the injected
``random.Random`` so runs can be reproduced.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from townsfolk.llm_calls import generate_text, score_importance
from townsfolk.llm_utils import TextGenerator
from townsfolk.logging_utils import log_deterministic
from townsfolk.memory import append_memory, create_memory, format_memories, retrieve_memories
from townsfolk.schemas import (
    Agent,
    AgentStatus,
    Conversation,
    ConversationMessage,
    Memory,
    MemoryKind,
    WorldState,
)

from .renderers import render_prompt


MAX_MESSAGES = 8
MIN_MESSAGES = 4
END_PROBABILITY = 0.3
COOLDOWN_MINUTES = 30

REPLY_MEMORY_COUNT = 8
REPLY_MAX_TOKENS = 200
FALLBACK_REPLY = "..."


class CooldownRegistry:
    """Last conversation end time per unordered pair of agents."""

    def __init__(self, window: int = COOLDOWN_MINUTES) -> None:
        self.window = window
        self._last_end: Dict[FrozenSet[str], int] = {}

    @staticmethod
    def _key(agent_a: str, agent_b: str) -> FrozenSet[str]:
        return frozenset((agent_a, agent_b))

    def record(self, agent_a: str, agent_b: str, time: int) -> None:
        self._last_end[self._key(agent_a, agent_b)] = time

    def last_conversation(self, agent_a: str, agent_b: str) -> Optional[int]:
        return self._last_end.get(self._key(agent_a, agent_b))

    def is_on_cooldown(self, agent_a: str, agent_b: str, now: int) -> bool:
        last = self.last_conversation(agent_a, agent_b)
        return last is not None and now - last < self.window

    def __len__(self) -> int:
        return len(self._last_end)


@dataclass
class TurnResult:
    """What happened during one agent's conversation turn."""

    conversation: Optional[Conversation] = None
    message: Optional[ConversationMessage] = None
    ended: bool = False
    memories: List[Memory] = field(default_factory=list)

    @property
    def acted(self) -> bool:
        return self.message is not None or self.ended


def transcript(conversation: Conversation) -> str:
    return "\n".join(f"{message.speaker_name}: {message.content}" for message in conversation.messages)


class ConversationEngine:
    """Starts, advances and closes conversations inside a ``WorldState``."""

    def __init__(
        self,
        generator: TextGenerator,
        cooldowns: CooldownRegistry,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.generator = generator
        self.cooldowns = cooldowns
        self.rng = rng or random.Random()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(
        self,
        world: WorldState,
        initiator: Agent,
        partner: Agent,
        opening_line: str,
        now: int,
    ) -> Optional[Conversation]:
        """Open a conversation, or return None if either agent became busy."""
        if initiator.id == partner.id:
            return None
        if initiator.id not in world.agents or partner.id not in world.agents:
            return None
        if world.active_conversation_for(initiator) or world.active_conversation_for(partner):
            log_deterministic(f"{initiator.name} -> {partner.name}: one of them is busy")
            return None

        conversation = Conversation(
            id=f"convo-{len(world.conversations) + 1}",
            participants=[initiator.id, partner.id],
            messages=[
                ConversationMessage(
                    speaker_id=initiator.id,
                    speaker_name=initiator.name,
                    content=opening_line,
                    timestamp=now,
                )
            ],
            start_time=now,
            location=initiator.current_location,
        )
        world.conversations.append(conversation)

        for agent in (initiator, partner):
            agent.conversation_id = conversation.id
            agent.status = AgentStatus.TALKING
        return conversation

    def should_end(self, conversation: Conversation) -> bool:
        count = len(conversation.messages)
        if count >= MAX_MESSAGES:
            return True
        if count < MIN_MESSAGES:
            return False
        return self.rng.random() < END_PROBABILITY

    def end(self, conversation: Conversation, world: WorldState, now: int) -> bool:
        """Close the conversation. Returns False if it had already ended."""
        if not conversation.is_active:
            return False

        conversation.end_time = now
        for participant_id in conversation.participants:
            agent = world.agents.get(participant_id)
            if agent is None:
                continue
            if agent.conversation_id == conversation.id:
                agent.conversation_id = None
                agent.status = AgentStatus.IDLE

        self.cooldowns.record(conversation.participants[0], conversation.participants[1], now)
        return True

    async def distill_memories(
        self,
        conversation: Conversation,
        world: WorldState,
        now: int,
    ) -> List[Memory]:
        """Leave each present participant a memory of the conversation."""
        topic = " ".join(message.content for message in conversation.messages[:2])
        memories: List[Memory] = []

        for participant_id in conversation.participants:
            agent = world.agents.get(participant_id)
            if agent is None:
                continue
            other = world.agents.get(conversation.other_participant(participant_id))
            other_name = other.name if other else "someone"

            description = (
                f"Had a conversation with {other_name} at {conversation.location} about: {topic}"
            )
            importance = await score_importance(self.generator, description)
            memory = create_memory(
                agent.id,
                description,
                MemoryKind.CONVERSATION,
                now,
                importance,
                {"conversation_id": conversation.id},
            )
            append_memory(agent, memory)
            memories.append(memory)
        return memories

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def generate_reply(
        self,
        agent: Agent,
        conversation: Conversation,
        world: WorldState,
        now: int,
    ) -> str:
        other = world.agents.get(conversation.other_participant(agent.id))
        other_name = other.name if other else "someone"

        topic_hints = " ".join(message.content for message in conversation.messages[-3:])
        memories = retrieve_memories(agent, f"{other_name} {topic_hints}", now, REPLY_MEMORY_COUNT)

        prompt = render_prompt(
            "reply",
            {
                "agent_name": agent.name,
                "personality": agent.personality,
                "other_name": other_name,
                "location": conversation.location,
                "memories_text": format_memories(memories),
                "transcript": transcript(conversation),
            },
        )
        text = await generate_text(
            self.generator,
            prompt.system,
            prompt.user,
            max_tokens=REPLY_MAX_TOKENS,
            fallback=FALLBACK_REPLY,
            purpose=f"Reply from {agent.name} to {other_name}",
        )
        return (text or "").strip() or FALLBACK_REPLY

    async def _close(self, conversation: Conversation, world: WorldState, now: int) -> TurnResult:
        result = TurnResult(conversation=conversation)
        if self.end(conversation, world, now):
            result.ended = True
            result.memories = await self.distill_memories(conversation, world, now)
        return result

    async def take_turn(self, agent: Agent, world: WorldState, now: int) -> TurnResult:
        """Advance the agent's active conversation by at most one step."""
        conversation = world.active_conversation_for(agent)
        if conversation is None:
            # Dangling reference to a missing or finished conversation.
            if agent.conversation_id is not None:
                agent.conversation_id = None
                agent.status = AgentStatus.IDLE
            return TurnResult()

        if conversation.other_participant(agent.id) not in world.agents:
            log_deterministic(f"{agent.name}'s partner left; closing {conversation.id}")
            return await self._close(conversation, world, now)

        last = conversation.last_message
        if last is not None and last.speaker_id == agent.id:
            return TurnResult(conversation=conversation)

        if self.should_end(conversation):
            return await self._close(conversation, world, now)

        content = await self.generate_reply(agent, conversation, world, now)
        message = ConversationMessage(
            speaker_id=agent.id,
            speaker_name=agent.name,
            content=content,
            timestamp=now,
        )
        conversation.messages.append(message)
        return TurnResult(conversation=conversation, message=message)
