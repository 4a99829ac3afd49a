"""Tests for the conversation lifecycle and pair cooldowns."""

import random

import pytest

from townsfolk.cognition import ConversationEngine, CooldownRegistry
from townsfolk.cognition.conversation import FALLBACK_REPLY, transcript
from townsfolk.errors import GenerationError
from townsfolk.schemas import AgentStatus, ConversationMessage, MemoryKind

from conftest import IMPORTANCE_PROMPT, REPLY_PROMPT


class FixedRandom(random.Random):
    """Random source whose ``random()`` always returns the same draw."""

    def __init__(self, value):
        super().__init__(0)
        self.value = value

    def random(self):
        return self.value


@pytest.fixture
def town(make_agent, make_world):
    alice = make_agent()
    bob = make_agent("bob", "Bob Brown", x=60, y=60)
    return make_world(alice, bob)


def _engine(generator, rng=None):
    return ConversationEngine(generator, CooldownRegistry(), rng=rng or FixedRandom(0.99))


def _fill(conversation, count):
    speakers = [("alice", "Alice Adams"), ("bob", "Bob Brown")]
    while len(conversation.messages) < count:
        speaker_id, speaker_name = speakers[len(conversation.messages) % 2]
        conversation.messages.append(
            ConversationMessage(
                speaker_id=speaker_id,
                speaker_name=speaker_name,
                content=f"line {len(conversation.messages) + 1}",
                timestamp=480,
            )
        )


def test_cooldown_window():
    cooldowns = CooldownRegistry(window=30)
    cooldowns.record("alice", "bob", 100)

    assert cooldowns.is_on_cooldown("bob", "alice", 129)
    assert not cooldowns.is_on_cooldown("alice", "bob", 130)
    assert not cooldowns.is_on_cooldown("alice", "bob", 131)
    assert not cooldowns.is_on_cooldown("alice", "carol", 101)
    assert cooldowns.last_conversation("bob", "alice") == 100
    assert len(cooldowns) == 1


def test_start_links_both_agents(town, scripted):
    engine = _engine(scripted())
    alice, bob = town.agents["alice"], town.agents["bob"]

    conversation = engine.start(town, alice, bob, "Hello Bob!", 480)

    assert conversation.id == "convo-1"
    assert town.conversations == [conversation]
    assert conversation.participants == ["alice", "bob"]
    assert conversation.location == "Cafe"
    assert conversation.messages[0].content == "Hello Bob!"
    assert alice.conversation_id == bob.conversation_id == "convo-1"
    assert alice.status == bob.status == AgentStatus.TALKING


def test_start_refuses_busy_or_same_agent(town, make_agent, scripted):
    engine = _engine(scripted())
    alice, bob = town.agents["alice"], town.agents["bob"]
    carol = make_agent("carol", "Carol")
    town.add_agent(carol)

    assert engine.start(town, alice, alice, "Hi me", 480) is None
    engine.start(town, alice, bob, "Hi", 480)
    assert engine.start(town, carol, bob, "Hi Bob", 480) is None
    assert len(town.conversations) == 1
    assert carol.conversation_id is None


def test_should_end_bounds():
    eager = _engine(None, rng=FixedRandom(0.0))
    patient = _engine(None, rng=FixedRandom(0.99))

    class _Convo:
        def __init__(self, n):
            self.messages = [None] * n

    assert not eager.should_end(_Convo(3))
    assert eager.should_end(_Convo(4))
    assert not patient.should_end(_Convo(7))
    assert patient.should_end(_Convo(8))


@pytest.mark.asyncio
async def test_turn_appends_reply_from_the_other_agent(town, scripted):
    generator = scripted([(REPLY_PROMPT, "  Good morning, Alice!  ")])
    engine = _engine(generator)
    alice, bob = town.agents["alice"], town.agents["bob"]
    conversation = engine.start(town, alice, bob, "Hello Bob!", 480)

    # The opener's author waits for a reply.
    idle = await engine.take_turn(alice, town, 481)
    assert not idle.acted
    assert generator.calls == []

    result = await engine.take_turn(bob, town, 481)

    assert result.message.content == "Good morning, Alice!"
    assert result.message.speaker_id == "bob"
    assert len(conversation.messages) == 2
    assert "Alice Adams: Hello Bob!" in generator.calls[0]["user"]
    assert generator.calls[0]["max_tokens"] == 200


@pytest.mark.asyncio
async def test_failed_reply_uses_placeholder(town, scripted):
    engine = _engine(scripted(default=GenerationError("offline")))
    alice, bob = town.agents["alice"], town.agents["bob"]
    engine.start(town, alice, bob, "Hello Bob!", 480)

    result = await engine.take_turn(bob, town, 481)

    assert result.message.content == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_conversation_ends_at_message_cap(town, scripted):
    generator = scripted([(IMPORTANCE_PROMPT, "7"), (REPLY_PROMPT, "more talk")])
    engine = _engine(generator)
    alice, bob = town.agents["alice"], town.agents["bob"]
    conversation = engine.start(town, alice, bob, "Hello Bob!", 480)
    _fill(conversation, 8)

    result = await engine.take_turn(alice, town, 490)

    assert result.ended
    assert result.message is None
    assert conversation.end_time == 490
    assert len(conversation.messages) == 8
    for agent in (alice, bob):
        assert agent.conversation_id is None
        assert agent.status == AgentStatus.IDLE
    assert engine.cooldowns.is_on_cooldown("alice", "bob", 519)
    assert not engine.cooldowns.is_on_cooldown("alice", "bob", 521)

    alice_memory = alice.memory_stream[-1]
    assert alice_memory.kind == MemoryKind.CONVERSATION
    assert alice_memory.importance == 7
    assert alice_memory.timestamp == 490
    assert alice_memory.metadata == {"conversation_id": "convo-1"}
    assert alice_memory.description == "Had a conversation with Bob Brown at Cafe about: Hello Bob! line 2"
    assert bob.memory_stream[-1].description.startswith("Had a conversation with Alice Adams at Cafe")
    assert len(result.memories) == 2


def test_end_is_idempotent(town, scripted):
    engine = _engine(scripted())
    alice, bob = town.agents["alice"], town.agents["bob"]
    conversation = engine.start(town, alice, bob, "Hi", 480)

    assert engine.end(conversation, town, 485)
    assert not engine.end(conversation, town, 500)
    assert conversation.end_time == 485
    assert engine.cooldowns.last_conversation("alice", "bob") == 485


@pytest.mark.asyncio
async def test_missing_partner_closes_conversation(town, scripted):
    engine = _engine(scripted([(IMPORTANCE_PROMPT, "4")]))
    alice, bob = town.agents["alice"], town.agents["bob"]
    conversation = engine.start(town, alice, bob, "Hi", 480)
    del town.agents["alice"]

    result = await engine.take_turn(bob, town, 482)

    assert result.ended
    assert conversation.end_time == 482
    assert bob.conversation_id is None
    assert [m.description for m in result.memories] == ["Had a conversation with someone at Cafe about: Hi"]


@pytest.mark.asyncio
async def test_opener_author_is_freed_when_partner_leaves(town, scripted):
    engine = _engine(scripted([(IMPORTANCE_PROMPT, "4")]))
    alice, bob = town.agents["alice"], town.agents["bob"]
    conversation = engine.start(town, alice, bob, "Hi Bob", 480)
    del town.agents["bob"]

    # Alice spoke last, but with Bob gone there is nobody to wait for.
    result = await engine.take_turn(alice, town, 481)

    assert result.ended
    assert conversation.end_time == 481
    assert alice.conversation_id is None
    assert alice.status == AgentStatus.IDLE
    assert [m.description for m in result.memories] == ["Had a conversation with someone at Cafe about: Hi Bob"]


@pytest.mark.asyncio
async def test_dangling_reference_is_cleared(town, scripted):
    engine = _engine(scripted())
    alice = town.agents["alice"]
    alice.conversation_id = "convo-404"
    alice.status = AgentStatus.TALKING

    result = await engine.take_turn(alice, town, 480)

    assert result.conversation is None
    assert alice.conversation_id is None
    assert alice.status == AgentStatus.IDLE


def test_transcript_format(town, scripted):
    engine = _engine(scripted())
    conversation = engine.start(town, town.agents["alice"], town.agents["bob"], "Hi", 480)
    _fill(conversation, 2)
    assert transcript(conversation) == "Alice Adams: Hi\nBob Brown: line 2"
