"""Ollama backend for ``TextGenerator``.

Selected with ``LLM_PROVIDER=ollama``. Requests go to the server's
non-streaming ``/api/chat`` route; the blocking urllib call runs on a worker
thread so a slow local model never stalls the tick loop. Any transport or
protocol problem surfaces as ``LocalLLMError``, which the generation layer
treats like every other ``GenerationError``.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

from townsfolk.errors import GenerationError

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
CHAT_ROUTE = "/api/chat"


class LocalLLMError(GenerationError):
    """The local Ollama server could not produce a reply."""


def resolve_base_url(base_url: str | None = None) -> str:
    """Explicit URL, then ``OLLAMA_BASE_URL``, then the local default."""
    chosen = base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL
    return chosen.rstrip("/")


def build_chat_payload(
    model: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int | None = None,
) -> dict[str, Any]:
    """Chat request body for one townsfolk prompt pair."""
    user_text = user_prompt.strip()
    if not user_text:
        raise LocalLLMError(f"refusing to send an empty prompt to {model}")

    system_text = system_prompt.strip()
    turns = [{"role": "system", "content": system_text}] if system_text else []
    turns.append({"role": "user", "content": user_text})

    body: dict[str, Any] = {"model": model, "messages": turns, "stream": False}
    if max_tokens is not None:
        body["options"] = {"num_predict": max_tokens}
    return body


def extract_reply(raw: str) -> str:
    """Pull the assistant's text out of a ``/api/chat`` response body."""
    try:
        decoded = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError(f"unreadable reply from Ollama: {raw[:80]!r}") from exc

    reply = (decoded.get("message") or {}).get("content") if isinstance(decoded, dict) else None
    if not reply:
        raise LocalLLMError("Ollama answered without any assistant text")
    return reply


def _post_chat(payload: dict[str, Any], base_url: str, timeout: float) -> str:
    url = base_url + CHAT_ROUTE
    outgoing = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )
    try:
        with request.urlopen(outgoing, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(f"Ollama rejected {payload['model']} ({exc.code}): {detail or exc.reason}") from exc
    except error.URLError as exc:
        raise LocalLLMError(f"no Ollama server at {url} ({exc.reason}); is `ollama serve` running?") from exc
    return extract_reply(raw)


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    max_tokens: int | None = None,
    base_url: str | None = None,
    timeout: float = 120.0,
) -> str:
    payload = build_chat_payload(llm_model, system_prompt, user_prompt, max_tokens)
    return await asyncio.to_thread(_post_chat, payload, resolve_base_url(base_url), timeout)


__all__ = [
    "DEFAULT_OLLAMA_BASE_URL",
    "LocalLLMError",
    "build_chat_payload",
    "call_ollama_chat",
    "extract_reply",
    "resolve_base_url",
]
