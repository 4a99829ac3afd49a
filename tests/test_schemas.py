import pytest
from pydantic import ValidationError

from townsfolk.schemas import (
    Activity,
    Conversation,
    ConversationMessage,
    DailyPlan,
    Memory,
    WorldState,
    clamp_importance,
)


@pytest.mark.parametrize(
    "raw, expected",
    [(0, 1), (11, 10), (4.4, 4), ("8", 8), (None, 5), ("very", 5), (float("nan"), 5)],
)
def test_clamp_importance(raw, expected):
    assert clamp_importance(raw) == expected


def test_memory_importance_is_clamped_on_construction():
    memory = Memory(agent_id="a", description="x", timestamp=0, importance=42)
    assert memory.importance == 10
    assert memory.id


def test_activity_window():
    activity = Activity(description="Lunch", start_minute=720, duration_minutes=45)
    assert activity.end_minute == 765
    assert activity.covers(720)
    assert activity.covers(764)
    assert not activity.covers(765)

    with pytest.raises(ValidationError):
        Activity(description="Late", start_minute=1440, duration_minutes=30)


def test_plan_cursor():
    plan = DailyPlan(
        sim_day=1,
        overview="Day",
        activities=[Activity(description="Open", start_minute=480, duration_minutes=60)],
    )
    assert plan.current_action is None
    plan.current_index = 0
    assert plan.current_action.description == "Open"
    plan.current_index = 5
    assert plan.current_action is None


def test_conversation_has_exactly_two_participants():
    with pytest.raises(ValidationError):
        Conversation(id="c", participants=["a"], start_time=0)
    with pytest.raises(ValidationError):
        Conversation(id="c", participants=["a", "b", "c"], start_time=0)

    conversation = Conversation(id="c", participants=["a", "b"], start_time=0)
    assert conversation.is_active
    assert conversation.last_message is None
    assert conversation.other_participant("a") == "b"
    assert conversation.other_participant("b") == "a"

    conversation.messages.append(ConversationMessage(speaker_id="a", speaker_name="A", content="hi", timestamp=0))
    assert conversation.last_message.content == "hi"


def test_world_clock_and_conversation_lookup():
    world = WorldState(sim_time_minutes=600, sim_day=3)
    assert world.now == 2 * 1440 + 600

    old = Conversation(id="convo-1", participants=["a", "b"], start_time=0, end_time=10)
    live = Conversation(id="convo-2", participants=["a", "c"], start_time=20)
    world.conversations.extend([old, live])

    assert world.get_conversation("convo-1") is old
    assert world.get_conversation(None) is None
    assert world.active_conversations() == [live]
