"""Shared fixtures: a scripted text generator and a tiny three-location town."""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

from townsfolk.environment import Location, LocationKind, Position
from townsfolk.schemas import Agent, WorldState


# Prompt fragments that identify each kind of generation call.
PLAN_PROMPT = "Generate a daily plan"
REACTION_PROMPT = "Should you start a conversation"
REPLY_PROMPT = "Respond in character"
IMPORTANCE_PROMPT = "rate the importance"
QUESTIONS_PROMPT = "most salient high-level questions"
INSIGHT_PROMPT = "concise insight"


class ScriptedGenerator:
    """``TextGenerator`` fake that answers by prompt substring.

    ``rules`` is an ordered list of ``(needle, reply)``; the first needle found
    in ``system + user`` wins. A reply may be a string, a callable taking the
    prompt, or an exception instance to raise.
    """

    def __init__(self, rules: Optional[Sequence[Tuple[str, Any]]] = None, default: Any = "") -> None:
        self.rules: List[Tuple[str, Any]] = list(rules or [])
        self.default = default
        self.calls: List[dict] = []

    def calls_matching(self, needle: str) -> List[dict]:
        return [call for call in self.calls if needle in call["prompt"]]

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 500) -> str:
        prompt = f"{system_prompt}\n{user_prompt}"
        self.calls.append(
            {"system": system_prompt, "user": user_prompt, "prompt": prompt, "max_tokens": max_tokens}
        )
        reply = self.default
        for needle, candidate in self.rules:
            if needle in prompt:
                reply = candidate
                break
        if isinstance(reply, BaseException):
            raise reply
        if callable(reply):
            return reply(prompt)
        return reply


@pytest.fixture
def scripted() -> Callable[..., ScriptedGenerator]:
    return ScriptedGenerator


@pytest.fixture
def locations() -> List[Location]:
    return [
        Location(id="cafe", name="Cafe", description="Smells of coffee.", x=0, y=0, width=100, height=100),
        Location(
            id="park", name="Park", description="Green and quiet.", x=300, y=0, width=100, height=100,
            kind=LocationKind.OUTDOOR,
        ),
        Location(id="square", name="Town Square", x=0, y=300, width=100, height=100, kind=LocationKind.OUTDOOR),
    ]


@pytest.fixture
def make_agent() -> Callable[..., Agent]:
    def _make(
        agent_id: str = "alice",
        name: str = "Alice Adams",
        *,
        x: float = 50.0,
        y: float = 50.0,
        location: str = "Cafe",
        personality: str = "A friendly barista.",
        **kwargs: Any,
    ) -> Agent:
        return Agent(
            id=agent_id,
            name=name,
            personality=personality,
            current_location=location,
            position=Position(x=x, y=y),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_world(locations) -> Callable[..., WorldState]:
    def _make(*agents: Agent, sim_time_minutes: int = 480, sim_day: int = 1) -> WorldState:
        world = WorldState(sim_time_minutes=sim_time_minutes, sim_day=sim_day, locations=locations)
        for agent in agents:
            world.add_agent(agent)
        return world

    return _make
