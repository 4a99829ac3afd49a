"""Helper utilities for text generation: the provider seam, retries and parsing."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Optional, Protocol, TypeVar, runtime_checkable

from mirascope import llm
from pydantic import BaseModel, ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
)

from townsfolk.errors import GenerationError, ParseFailure
from townsfolk.local_llm import call_ollama_chat
from townsfolk.logging_utils import Color, colored, is_debug_llm
from townsfolk.rate_limit import ConcurrencyGate


ModelT = TypeVar("ModelT", bound=BaseModel)
LLM_TIMEOUT_SECONDS = 30.0


class GenerationTimeout(GenerationError):
    """A text-generation call exceeded its deadline."""


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that turns a prompt pair into text.

    Implementations raise ``GenerationError`` on network, timeout or provider
    failure; callers always recover with their own fallback value.
    """

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 500) -> str:
        ...


def _combine_prompts(system_prompt: str, user_prompt: str) -> str:
    sections: list[str] = []
    if system_prompt:
        sections.append(system_prompt)
    if user_prompt:
        sections.append(user_prompt)
    return "\n\n".join(sections)


def _print_debug(label: str, text: str) -> None:
    if is_debug_llm():
        print(colored(f"--- {label} ---", Color.YELLOW, bold=True))
        print(text)


class LLMTextGenerator:
    """``TextGenerator`` backed by mirascope (cloud) or Ollama (local).

    Every attempt runs inside the shared ``ConcurrencyGate`` and under an
    ``asyncio.wait_for`` deadline. Provider errors are retried by tenacity up
    to ``max_attempts``; timeouts are not retried.
    """

    def __init__(
        self,
        llm_provider: str,
        llm_model: str,
        *,
        gate: Optional[ConcurrencyGate] = None,
        timeout_seconds: float = LLM_TIMEOUT_SECONDS,
        max_attempts: int = 2,
        ollama_base_url: Optional[str] = None,
    ) -> None:
        self.llm_provider = llm_provider
        self.llm_model = llm_model
        self.gate = gate or ConcurrencyGate()
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts)
        self.ollama_base_url = ollama_base_url

    @classmethod
    def from_config(cls, config: Any) -> "LLMTextGenerator":
        """Build a generator from a ``Config``-like object."""
        gate = ConcurrencyGate(
            max_concurrent=config.LLM_MAX_CONCURRENT,
            min_interval_seconds=config.LLM_MIN_INTERVAL_SECONDS,
        )
        return cls(
            config.LLM_PROVIDER,
            config.LLM_MODEL,
            gate=gate,
            timeout_seconds=config.LLM_TIMEOUT_SECONDS,
            max_attempts=config.LLM_MAX_ATTEMPTS,
            ollama_base_url=config.OLLAMA_BASE_URL,
        )

    @property
    def uses_local_llm(self) -> bool:
        return self.llm_provider.lower() == "ollama"

    def _build_remote_invoke(self, max_tokens: int) -> Callable[[str], Any]:
        @llm.call(
            provider=self.llm_provider,
            model=self.llm_model,
            call_params={"max_tokens": max_tokens},
        )
        async def _invoke(prompt: str) -> str:
            return prompt

        return _invoke

    async def _call_provider(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        if self.uses_local_llm:
            return await call_ollama_chat(
                system_prompt=system_prompt,
                user_prompt=user_prompt,
                llm_model=self.llm_model,
                max_tokens=max_tokens,
                base_url=self.ollama_base_url,
                timeout=self.timeout_seconds,
            )

        invoke = self._build_remote_invoke(max_tokens)
        response = await invoke(_combine_prompts(system_prompt, user_prompt))
        return response.content

    async def _attempt(self, system_prompt: str, user_prompt: str, max_tokens: int) -> str:
        async with self.gate.slot():
            try:
                return await asyncio.wait_for(
                    self._call_provider(system_prompt, user_prompt, max_tokens),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError as exc:
                raise GenerationTimeout(
                    f"{self.llm_provider} call timed out after {self.timeout_seconds:g}s"
                ) from exc
            except GenerationError:
                raise
            except Exception as exc:
                # Provider SDKs raise their own hierarchies; normalise at the seam.
                raise GenerationError(
                    f"{self.llm_provider} provider error: {exc}"
                ) from exc

    async def complete(self, system_prompt: str, user_prompt: str, max_tokens: int = 500) -> str:
        system_prompt = system_prompt.strip()
        user_prompt = user_prompt.strip()
        _print_debug("PROMPT", _combine_prompts(system_prompt, user_prompt))

        attempt_number = 0
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(GenerationError)
            & retry_if_not_exception_type(GenerationTimeout),
            stop=stop_after_attempt(self.max_attempts),
            reraise=True,
        ):
            with attempt:
                attempt_number += 1
                if attempt_number > 1:
                    print(
                        f"LLM retry {attempt_number}/{self.max_attempts} "
                        f"for {self.llm_provider}/{self.llm_model}."
                    )
                text = await self._attempt(system_prompt, user_prompt, max_tokens)
                _print_debug("RESPONSE", text)
                return text

        raise GenerationError("LLM retry mechanism exited unexpectedly")


# ============================================================================
# Best-effort structured extraction
# ============================================================================


def _scan_object_end(text: str, start: int) -> Optional[int]:
    """Return the index just past the ``}`` closing the object opened at ``start``."""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
    return None


def extract_json_object(text: str) -> Optional[dict[str, Any]]:
    """Return the first decodable JSON object embedded in ``text``.

    Models often wrap JSON in prose or code fences; everything outside the
    first balanced ``{...}`` that parses is ignored. Returns None when no
    object can be decoded.
    """
    if not text:
        return None

    start = text.find("{")
    while start != -1:
        end = _scan_object_end(text, start)
        if end is not None:
            try:
                value = json.loads(text[start:end])
            except json.JSONDecodeError:
                value = None
            if isinstance(value, dict):
                return value
        start = text.find("{", start + 1)
    return None


def parse_structured(text: str, response_model: type[ModelT]) -> ModelT:
    """Extract the first JSON object from ``text`` and validate it.

    Raises:
        ParseFailure: No object was found, or it failed validation.
    """
    payload = extract_json_object(text)
    if payload is None:
        raise ParseFailure(f"No JSON object found for {response_model.__name__}")
    try:
        return response_model.model_validate(payload)
    except ValidationError as exc:
        raise ParseFailure(
            f"{response_model.__name__} failed validation: {exc.error_count()} issue(s)"
        ) from exc


__all__ = [
    "GenerationError",
    "GenerationTimeout",
    "LLMTextGenerator",
    "LLM_TIMEOUT_SECONDS",
    "ParseFailure",
    "TextGenerator",
    "extract_json_object",
    "parse_structured",
]
