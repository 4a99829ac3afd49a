"""
Townsfolk - generative-agent town simulation library.

A handful of model-driven residents plan their days, walk a 2-D town,
notice each other, talk, remember and reflect.

The core is decoupled: no file I/O, no database, no global config.
The world, the text generator and the random source are injected by the host.
"""

__version__ = "0.1.0"

# Main simulation components
from .orchestrator import Orchestrator, AgentTickFailure

# Text generation
from .errors import GenerationError, ParseFailure
from .llm_utils import LLMTextGenerator, TextGenerator
from .rate_limit import ConcurrencyGate

# Memory & cognition
from .memory import RetrievalWeights, retrieve_memories, should_reflect
from .cognition import (
    ChangeActivity,
    Continue,
    ConversationEngine,
    CooldownRegistry,
    ReflectionEngine,
    StartConversation,
    PromptLibrary,
    DEFAULT_PROMPTS,
)
from .environment import Location, LocationKind, Position

# Core schemas
from .schemas import (
    Activity,
    ActivityStatus,
    Agent,
    AgentSnapshot,
    AgentStatus,
    Conversation,
    ConversationMessage,
    DailyPlan,
    EventType,
    Memory,
    MemoryKind,
    SimulationEvent,
    WorldSnapshot,
    WorldState,
)

# Scenario loader helpers
from .scenario import load_scenario, ScenarioLoader, ScenarioError

__all__ = [
    # Main class
    "Orchestrator",
    "AgentTickFailure",
    # Text generation
    "GenerationError",
    "ParseFailure",
    "LLMTextGenerator",
    "TextGenerator",
    "ConcurrencyGate",
    # Memory & cognition
    "RetrievalWeights",
    "retrieve_memories",
    "should_reflect",
    "ChangeActivity",
    "Continue",
    "ConversationEngine",
    "CooldownRegistry",
    "ReflectionEngine",
    "StartConversation",
    "PromptLibrary",
    "DEFAULT_PROMPTS",
    # Environment
    "Location",
    "LocationKind",
    "Position",
    # Schemas
    "Activity",
    "ActivityStatus",
    "Agent",
    "AgentSnapshot",
    "AgentStatus",
    "Conversation",
    "ConversationMessage",
    "DailyPlan",
    "EventType",
    "Memory",
    "MemoryKind",
    "SimulationEvent",
    "WorldSnapshot",
    "WorldState",
    # Scenario helpers
    "load_scenario",
    "ScenarioLoader",
    "ScenarioError",
]
