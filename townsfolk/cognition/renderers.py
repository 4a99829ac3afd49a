"""Prompt rendering utilities."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Union

from .prompts import DEFAULT_PROMPTS, PromptTemplate


@dataclass
class RenderedPrompt:
    system: str
    user: str


def render_prompt(
    template: Union[PromptTemplate, str],
    values: Mapping[str, object],
) -> RenderedPrompt:
    """Render a prompt template by plain ``{{name}}`` replacement.

    ``template`` may be a template or the name of one in ``DEFAULT_PROMPTS``.
    Placeholders use double braces so JSON examples in templates stay intact;
    placeholders without a value are left as-is.
    """
    if isinstance(template, str):
        template = DEFAULT_PROMPTS.get(template)

    system = template.system
    user = template.user
    for key, value in values.items():
        placeholder = "{{" + key + "}}"
        text = "" if value is None else str(value)
        system = system.replace(placeholder, text)
        user = user.replace(placeholder, text)

    return RenderedPrompt(system=system.strip(), user=user.strip())
