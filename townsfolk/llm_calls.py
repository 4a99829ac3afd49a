"""Fallback-aware wrappers around ``TextGenerator`` calls.

Every cognition module talks to the provider through ``generate_text`` so a
failed call never escapes: the caller's documented fallback is returned and
the failure is logged with the purpose of the call.
"""

from __future__ import annotations

import re
from typing import Optional

from townsfolk.errors import GenerationError
from townsfolk.llm_utils import TextGenerator
from townsfolk.logging_utils import log_error, log_llm
from townsfolk.schemas import DEFAULT_IMPORTANCE, clamp_importance


IMPORTANCE_PROMPT = (
    "On a scale of 1 to 10, where 1 is entirely mundane (e.g., brushing teeth, walking) "
    "and 10 is extremely poignant or life-changing (e.g., a breakup, major achievement), "
    "rate the importance of the following memory. Respond with ONLY a number.\n\n"
    'Memory: "{description}"'
)

_LEADING_INT = re.compile(r"-?\d+")


async def generate_text(
    generator: TextGenerator,
    system_prompt: str,
    user_prompt: str,
    *,
    max_tokens: int = 500,
    fallback: Optional[str] = None,
    purpose: str = "generation",
) -> Optional[str]:
    """Run one generation call and return ``fallback`` on ``GenerationError``."""
    log_llm(f"{purpose}...")
    try:
        return await generator.complete(system_prompt, user_prompt, max_tokens=max_tokens)
    except GenerationError as exc:
        log_error(f"{purpose} failed, using fallback: {exc}")
        return fallback


def parse_importance(text: Optional[str]) -> int:
    """Read a 1-10 rating from a reply; anything unreadable rates 5."""
    if not text:
        return DEFAULT_IMPORTANCE
    match = _LEADING_INT.search(text)
    if match is None:
        return DEFAULT_IMPORTANCE
    return clamp_importance(int(match.group()))


async def score_importance(generator: TextGenerator, description: str) -> int:
    """Ask the model to rate how poignant a memory is."""
    reply = await generate_text(
        generator,
        "",
        IMPORTANCE_PROMPT.format(description=description),
        max_tokens=10,
        purpose="Importance scoring",
    )
    return parse_importance(reply)
