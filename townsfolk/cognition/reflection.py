"""Reflection: turning accumulated experience into higher-level insight.

Reflection runs when the importance of everything an agent has experienced
since its last reflection crosses ``REFLECTION_THRESHOLD`` (see
``townsfolk.memory.should_reflect``). One cycle has two stages:

1. Ask for the three most salient questions about recent experiences
2. Answer each question from the memories most relevant to it, storing the
   answer as a ``reflection`` memory with its own importance rating

Reflections are excluded from the trigger sum, so a cycle never feeds
itself. ``last_reflection_time`` moves to ``now`` after every attempted
cycle, even when generation failed.
"""

from __future__ import annotations

import re
from typing import List

from townsfolk.llm_calls import generate_text, score_importance
from townsfolk.llm_utils import TextGenerator
from townsfolk.logging_utils import log_llm
from townsfolk.memory import (
    append_memory,
    create_memory,
    format_memories,
    retrieve_memories,
    should_reflect,
)
from townsfolk.schemas import Agent, Memory, MemoryKind

from .renderers import render_prompt


SALIENCE_QUERY = "What are my most important recent experiences?"
SALIENCE_MEMORY_COUNT = 20
INSIGHT_MEMORY_COUNT = 10
MAX_QUESTIONS = 3
QUESTIONS_MAX_TOKENS = 300
INSIGHT_MAX_TOKENS = 200
FALLBACK_INSIGHT = "I need more time to think about this."

_NUMBER_PREFIX = re.compile(r"^\d+[.)]\s*")


def parse_questions(text: str, limit: int = MAX_QUESTIONS) -> List[str]:
    """Split a numbered list into questions, dropping blanks."""
    questions = []
    for line in (text or "").splitlines():
        question = _NUMBER_PREFIX.sub("", line.strip()).strip()
        if question:
            questions.append(question)
    return questions[:limit]


class ReflectionEngine:
    """Runs reflection cycles for agents whose importance budget is spent."""

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    async def _salient_questions(self, agent: Agent, now: int) -> List[str]:
        memories = retrieve_memories(agent, SALIENCE_QUERY, now, SALIENCE_MEMORY_COUNT)
        prompt = render_prompt(
            "reflection_questions",
            {
                "agent_name": agent.name,
                "personality": agent.personality,
                "memories_text": format_memories(memories),
            },
        )
        text = await generate_text(
            self.generator,
            prompt.system,
            prompt.user,
            max_tokens=QUESTIONS_MAX_TOKENS,
            fallback="",
            purpose=f"Reflection questions for {agent.name}",
        )
        return parse_questions(text or "")

    async def _insight(self, agent: Agent, question: str, now: int) -> str:
        memories = retrieve_memories(agent, question, now, INSIGHT_MEMORY_COUNT)
        prompt = render_prompt(
            "reflection_insight",
            {
                "agent_name": agent.name,
                "memories_text": format_memories(memories),
                "question": question,
            },
        )
        text = await generate_text(
            self.generator,
            prompt.system,
            prompt.user,
            max_tokens=INSIGHT_MAX_TOKENS,
            fallback=FALLBACK_INSIGHT,
            purpose=f"Reflection insight for {agent.name}",
        )
        return (text or "").strip() or FALLBACK_INSIGHT

    async def reflect(self, agent: Agent, now: int) -> List[Memory]:
        """Run one full cycle and append the resulting reflections."""
        questions = await self._salient_questions(agent, now)
        log_llm(f"{agent.name} reflecting on {len(questions)} question(s)")

        reflections: List[Memory] = []
        # Insights for one cycle all retrieve from the pre-cycle stream.
        for question in questions:
            insight = await self._insight(agent, question, now)
            importance = await score_importance(self.generator, insight)
            reflections.append(
                create_memory(
                    agent.id,
                    insight,
                    MemoryKind.REFLECTION,
                    now,
                    importance,
                    {"question": question},
                )
            )

        for memory in reflections:
            append_memory(agent, memory)
        agent.last_reflection_time = now
        return reflections

    async def maybe_reflect(self, agent: Agent, now: int) -> List[Memory]:
        """Reflect if the agent's importance budget is spent; else do nothing."""
        if not should_reflect(agent, agent.last_reflection_time):
            return []
        return await self.reflect(agent, now)
