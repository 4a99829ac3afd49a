"""Prompt templates for each cognition stage."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict


@dataclass
class PromptTemplate:
    """Represents a templated prompt with ``{{placeholder}}`` slots."""

    name: str
    system: str
    user: str
    description: str = ""


class PromptLibrary:
    """Container for named prompt templates per cognition stage."""

    def __init__(self) -> None:
        self.templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        self.templates[template.name] = template

    def get(self, name: str) -> PromptTemplate:
        return self.templates[name]


# Default templates ------------------------------------------------------------

DEFAULT_PROMPTS = PromptLibrary()

PERSONA_SYSTEM = "You are {{agent_name}}. {{personality}}"

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="plan",
        system=PERSONA_SYSTEM,
        user=(
            "Today is Day {{sim_day}} in town. Available locations: {{location_names}}.\n\n"
            "Your recent memories:\n{{memories_text}}\n\n"
            "Generate a daily plan with 6-8 activities for today. Each activity should include:\n"
            "- A brief description\n"
            "- Start time (as minute of day, 0-1440, starting from 480 = 8am)\n"
            "- Duration in minutes (15-120)\n"
            "- Location name (must be from the available locations list)\n\n"
            "Also provide a 1-sentence overview of your day.\n\n"
            "Respond in JSON format:\n"
            "{\n"
            "  \"overview\": \"...\",\n"
            "  \"activities\": [\n"
            "    {\"description\": \"...\", \"startTime\": 480, \"duration\": 60, \"location\": \"...\"}\n"
            "  ]\n"
            "}"
        ),
        description="Generates a day-scoped schedule from recent memories.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reaction",
        system=PERSONA_SYSTEM,
        user=(
            "You just noticed {{other_name}} nearby. {{other_personality}}\n\n"
            "{{memories_text}}\n\n"
            "You are currently: {{current_activity}}\n\n"
            "Should you start a conversation with {{other_name}}? Consider your personality, "
            "current activity, and history.\n\n"
            "Respond in JSON:\n"
            "- If yes: {\"react\": true, \"opening\": \"your opening line to them\"}\n"
            "- If no: {\"react\": false}\n"
            "- If no, but you want to do something else instead: "
            "{\"react\": false, \"new_activity\": \"...\", \"new_location\": \"one of: {{location_names}}\"}"
        ),
        description="Decides whether to greet a nearby agent.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reply",
        system=PERSONA_SYSTEM,
        user=(
            "You are having a conversation with {{other_name}} at {{location}}.\n\n"
            "Your relevant memories:\n{{memories_text}}\n\n"
            "Conversation so far:\n{{transcript}}\n\n"
            "Respond in character as {{agent_name}}. Keep your response to 1-3 sentences. "
            "Be natural and stay true to your personality."
        ),
        description="Produces the next conversational line.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflection_questions",
        system=PERSONA_SYSTEM,
        user=(
            "Given your recent experiences:\n{{memories_text}}\n\n"
            "What are the 3 most salient high-level questions you can answer about your recent "
            "experiences? Respond with just the 3 questions, one per line."
        ),
        description="Stage one of reflection: salient questions.",
    )
)

DEFAULT_PROMPTS.register(
    PromptTemplate(
        name="reflection_insight",
        system="You are {{agent_name}}.",
        user=(
            "Based on these memories:\n{{memories_text}}\n\n"
            "Answer this question with a concise insight (1-2 sentences): {{question}}"
        ),
        description="Stage two of reflection: one first-person insight per question.",
    )
)
