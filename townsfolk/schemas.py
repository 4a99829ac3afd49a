"""
Pydantic schemas for the Townsfolk simulation.

All data structures shared between the memory store, cognition modules and
the orchestrator are defined here.

Design Philosophy:
- Memories are immutable records; everything else is owned and mutated by
  the orchestrator, one agent at a time
- Agents reference their active conversation by id; the world's
  conversation history is the single source of truth
- Snapshots are separate read-only projections so hosts can serialize them
  without touching live state
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from townsfolk.environment import Location, Position


MINUTES_PER_DAY = 1440
DEFAULT_IMPORTANCE = 5


def clamp_importance(value: Any) -> int:
    """Coerce a raw importance rating into the integer range [1, 10].

    Non-numeric input (``None``, ``"very"``, NaN) falls back to the neutral
    rating of 5 instead of raising.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_IMPORTANCE
    if number != number:  # NaN
        return DEFAULT_IMPORTANCE
    return max(1, min(10, int(round(number))))


# ============================================================================
# Memory Schemas
# ============================================================================


class MemoryKind(str, Enum):
    OBSERVATION = "observation"
    CONVERSATION = "conversation"
    REFLECTION = "reflection"
    PLAN = "plan"


class Memory(BaseModel):
    """A single entry in an agent's memory stream.

    Memories are append-only and frozen once created. ``timestamp`` is the
    absolute simulation clock (minutes since the simulation started, see
    ``WorldState.now``) so recency decay stays monotonic across day
    boundaries. Importance is assigned once, at creation, and is always an
    integer in [1, 10].
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    agent_id: str
    description: str
    timestamp: int = Field(..., description="Absolute sim minutes since start")
    importance: int = Field(DEFAULT_IMPORTANCE, ge=1, le=10)
    embedding: List[float] = Field(default_factory=list)
    kind: MemoryKind = MemoryKind.OBSERVATION
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> int:
        return clamp_importance(value)


# ============================================================================
# Planning Schemas
# ============================================================================


class ActivityStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    COMPLETED = "completed"
    INTERRUPTED = "interrupted"


class Activity(BaseModel):
    """One timed block of a daily plan."""

    description: str
    start_minute: int = Field(..., ge=0, lt=MINUTES_PER_DAY)
    duration_minutes: int = Field(..., ge=1)
    location: Optional[str] = None
    status: ActivityStatus = ActivityStatus.PENDING

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    def covers(self, minute_of_day: int) -> bool:
        return self.start_minute <= minute_of_day < self.end_minute


class DailyPlan(BaseModel):
    """A day-scoped, ordered list of activities.

    ``current_index`` is the plan cursor; it points into ``activities`` and
    is moved forward by ``advance_plan``.
    """

    sim_day: int = Field(..., ge=1)
    overview: str
    activities: List[Activity] = Field(default_factory=list)
    current_index: Optional[int] = None

    @property
    def current_action(self) -> Optional[Activity]:
        if self.current_index is None or not 0 <= self.current_index < len(self.activities):
            return None
        return self.activities[self.current_index]


# ============================================================================
# Agent Schemas
# ============================================================================


class AgentStatus(str, Enum):
    IDLE = "idle"
    WALKING = "walking"
    TALKING = "talking"
    REFLECTING = "reflecting"
    PLANNING = "planning"


class Agent(BaseModel):
    """Live state of one townsperson.

    Static identity (``name``, ``personality``) sits next to the dynamic state
    the orchestrator updates every tick. ``conversation_id`` is non-null
    exactly while the agent takes part in an active conversation.
    """

    id: str
    name: str
    personality: str = Field("", description="Personality seed used in every prompt")
    current_location: str = ""
    position: Position = Field(default_factory=Position)
    memory_stream: List[Memory] = Field(default_factory=list)
    current_plan: Optional[DailyPlan] = None
    status: AgentStatus = AgentStatus.IDLE
    conversation_id: Optional[str] = None
    # Id of the location rectangle the agent was last seen inside; drives
    # entered/left observations.
    occupied_location_id: Optional[str] = None
    last_reflection_time: int = 0
    # Display-only string supplied by an external wallet service.
    wallet: Optional[str] = None

    @property
    def is_conversing(self) -> bool:
        return self.conversation_id is not None


# ============================================================================
# Conversation Schemas
# ============================================================================


class ConversationMessage(BaseModel):
    speaker_id: str
    speaker_name: str
    content: str
    timestamp: int


class Conversation(BaseModel):
    """A two-party dialogue.

    The participant set is fixed at creation. ``end_time`` is set exactly
    once, by the termination path.
    """

    id: str
    participants: List[str] = Field(..., min_length=2, max_length=2)
    messages: List[ConversationMessage] = Field(default_factory=list)
    start_time: int
    end_time: Optional[int] = None
    location: str = ""

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    @property
    def last_message(self) -> Optional[ConversationMessage]:
        return self.messages[-1] if self.messages else None

    def other_participant(self, agent_id: str) -> str:
        first, second = self.participants
        return second if agent_id == first else first


# ============================================================================
# World State
# ============================================================================


class WorldState(BaseModel):
    """Complete mutable state of the town.

    ``sim_time_minutes`` is the minute of the current day and wraps back to
    the day's start minute at midnight, incrementing ``sim_day``. ``agents``
    keeps insertion order, which is also the processing order every tick.
    """

    sim_time_minutes: int = Field(480, ge=0, lt=MINUTES_PER_DAY)
    sim_day: int = Field(1, ge=1)
    agents: Dict[str, Agent] = Field(default_factory=dict)
    conversations: List[Conversation] = Field(default_factory=list)
    locations: List[Location] = Field(default_factory=list)

    @property
    def now(self) -> int:
        """Absolute clock: minutes since the start of day 1."""
        return (self.sim_day - 1) * MINUTES_PER_DAY + self.sim_time_minutes

    def add_agent(self, agent: Agent) -> None:
        self.agents[agent.id] = agent

    def get_conversation(self, conversation_id: Optional[str]) -> Optional[Conversation]:
        if conversation_id is None:
            return None
        # Recent conversations are the ones looked up most often.
        for conversation in reversed(self.conversations):
            if conversation.id == conversation_id:
                return conversation
        return None

    def active_conversation_for(self, agent: Agent) -> Optional[Conversation]:
        conversation = self.get_conversation(agent.conversation_id)
        if conversation is None or not conversation.is_active:
            return None
        return conversation

    def active_conversations(self) -> List[Conversation]:
        return [conversation for conversation in self.conversations if conversation.is_active]


# ============================================================================
# Events & Snapshots
# ============================================================================


class EventType(str, Enum):
    AGENT_MOVE = "agent_move"
    CONVERSATION_START = "conversation_start"
    CONVERSATION_MESSAGE = "conversation_message"
    CONVERSATION_END = "conversation_end"
    REFLECTION = "reflection"
    PLAN_UPDATE = "plan_update"
    OBSERVATION = "observation"


class SimulationEvent(BaseModel):
    """One state transition, emitted to listeners as it happens.

    ``timestamp`` is ``sim_time_minutes`` at emission.
    """

    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: int


class MemorySummary(BaseModel):
    description: str
    kind: MemoryKind
    importance: int
    timestamp: int


class AgentSnapshot(BaseModel):
    id: str
    name: str
    position: Position
    status: AgentStatus
    current_location: str
    current_action: Optional[str] = None
    conversation_id: Optional[str] = None
    wallet: Optional[str] = None
    memory_count: int = 0
    recent_memories: List[MemorySummary] = Field(default_factory=list)


class WorldSnapshot(BaseModel):
    """Read-only projection of the world for hosts and transports."""

    sim_time: int
    sim_day: int
    paused: bool = False
    speed: int = 1
    agents: List[AgentSnapshot] = Field(default_factory=list)
    active_conversations: List[Conversation] = Field(default_factory=list)
    locations: List[Location] = Field(default_factory=list)
