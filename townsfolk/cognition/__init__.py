"""Cognition stack for Townsfolk agents.

Planning, reaction, conversation and reflection each turn prompts plus
memories into state changes. Every model call goes through
``townsfolk.llm_calls.generate_text`` and has a documented fallback.
"""

from .prompts import PromptLibrary, PromptTemplate, DEFAULT_PROMPTS
from .renderers import render_prompt, RenderedPrompt
from .planner import (
    advance_plan,
    fallback_plan,
    generate_daily_plan,
    get_current_action,
    interrupt_plan,
    parse_plan,
)
from .conversation import ConversationEngine, CooldownRegistry, TurnResult
from .reaction import (
    ChangeActivity,
    Continue,
    ReactionDecision,
    StartConversation,
    decide_reaction,
)
from .reflection import ReflectionEngine, parse_questions

__all__ = [
    "PromptLibrary",
    "PromptTemplate",
    "DEFAULT_PROMPTS",
    "render_prompt",
    "RenderedPrompt",
    "advance_plan",
    "fallback_plan",
    "generate_daily_plan",
    "get_current_action",
    "interrupt_plan",
    "parse_plan",
    "ConversationEngine",
    "CooldownRegistry",
    "TurnResult",
    "ChangeActivity",
    "Continue",
    "ReactionDecision",
    "StartConversation",
    "decide_reaction",
    "ReflectionEngine",
    "parse_questions",
]
