"""
Memory stream storage and retrieval for townspeople.

Each agent owns an append-only list of ``Memory`` records. Retrieval follows
the Stanford Generative Agents (2023) scoring:

    score = w_recency * recency + w_importance * importance + w_relevance * relevance

- recency: exponential decay, ``DECAY_RATE ** minutes_since_memory``
- importance: the memory's 1-10 rating scaled to 0-1
- relevance: cosine similarity between the query and memory embeddings

Embeddings come from ``pseudo_embed``, a deterministic character-position
hash, so retrieval is synchronous and needs no model.

Reflection is triggered once the summed importance of everything observed
since the last reflection reaches ``REFLECTION_THRESHOLD``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from townsfolk.schemas import Agent, Memory, MemoryKind, clamp_importance


DECAY_RATE = 0.995
REFLECTION_THRESHOLD = 50
EMBEDDING_DIM = 64


@dataclass(frozen=True)
class RetrievalWeights:
    """Per-component weights for memory scoring."""

    recency: float = 1.0
    importance: float = 1.0
    relevance: float = 1.0


def pseudo_embed(text: str, dim: int = EMBEDDING_DIM) -> List[float]:
    """Hash text into a fixed-size, L2-normalised vector.

    Each character's code point is added to bucket ``position % dim``. The
    empty string embeds to the zero vector.
    """
    vector = [0.0] * dim
    for index, char in enumerate(text):
        vector[index % dim] += ord(char)

    magnitude = math.sqrt(sum(value * value for value in vector))
    if magnitude == 0:
        return vector
    return [value / magnitude for value in vector]


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 when either vector has zero magnitude."""
    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y
    denominator = math.sqrt(mag_a) * math.sqrt(mag_b)
    if denominator == 0:
        return 0.0
    return dot / denominator


def create_memory(
    agent_id: str,
    description: str,
    kind: MemoryKind,
    timestamp: int,
    importance: Any,
    metadata: Optional[Dict[str, Any]] = None,
) -> Memory:
    """Build an embedded memory with its importance clamped to [1, 10]."""
    return Memory(
        agent_id=agent_id,
        description=description,
        timestamp=timestamp,
        importance=clamp_importance(importance),
        embedding=pseudo_embed(description),
        kind=kind,
        metadata=metadata or {},
    )


def append_memory(agent: Agent, memory: Memory) -> None:
    agent.memory_stream.append(memory)


def score_memory(
    memory: Memory,
    query_embedding: Sequence[float],
    now: int,
    weights: RetrievalWeights = RetrievalWeights(),
) -> float:
    """Weighted retrieval score for one memory."""
    # Future-dated memories count as fresh rather than above 1.0.
    elapsed = max(0, now - memory.timestamp)
    recency = DECAY_RATE ** elapsed
    importance = memory.importance / 10
    relevance = cosine_similarity(query_embedding, memory.embedding)
    return (
        weights.recency * recency
        + weights.importance * importance
        + weights.relevance * relevance
    )


def retrieve_memories(
    agent: Agent,
    query: str,
    now: int,
    k: int = 10,
    weights: RetrievalWeights = RetrievalWeights(),
) -> List[Memory]:
    """Return the top ``k`` memories for ``query``, best first.

    Ties keep arrival order. Returns fewer than ``k`` when the stream is
    small, and an empty list for an empty stream.
    """
    if k <= 0 or not agent.memory_stream:
        return []

    query_embedding = pseudo_embed(query)
    scored = [
        (score_memory(memory, query_embedding, now, weights), memory)
        for memory in agent.memory_stream
    ]
    # Stable sort on score alone keeps arrival order for ties.
    scored.sort(key=lambda item: item[0], reverse=True)
    return [memory for _, memory in scored[:k]]


def importance_since(agent: Agent, since: int) -> int:
    """Summed importance of non-reflection memories newer than ``since``."""
    return sum(
        memory.importance
        for memory in agent.memory_stream
        if memory.timestamp > since and memory.kind != MemoryKind.REFLECTION
    )


def should_reflect(agent: Agent, last_reflection_time: int) -> bool:
    return importance_since(agent, last_reflection_time) >= REFLECTION_THRESHOLD


def format_memories(memories: Sequence[Memory], *, with_kind: bool = False) -> str:
    """Render memories as a bulleted prompt section."""
    if with_kind:
        return "\n".join(f"- [{memory.kind.value}] {memory.description}" for memory in memories)
    return "\n".join(f"- {memory.description}" for memory in memories)


__all__ = [
    "DECAY_RATE",
    "EMBEDDING_DIM",
    "REFLECTION_THRESHOLD",
    "RetrievalWeights",
    "append_memory",
    "cosine_similarity",
    "create_memory",
    "format_memories",
    "importance_since",
    "pseudo_embed",
    "retrieve_memories",
    "score_memory",
    "should_reflect",
]
