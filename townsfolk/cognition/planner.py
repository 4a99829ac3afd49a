"""Daily planning.

A plan is generated once per simulated day from the agent's recent memories
and then advanced deterministically, minute by minute, by the orchestrator.

Reply handling is best effort: the first JSON object in the model output is
read, malformed activities are dropped, numeric fields are clamped into
range, and unknown locations are cleared. A failed call or an unreadable
reply yields an empty fallback plan rather than an error.
"""

from __future__ import annotations

import math
from typing import Any, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from townsfolk.errors import ParseFailure
from townsfolk.llm_calls import generate_text
from townsfolk.llm_utils import TextGenerator, parse_structured
from townsfolk.logging_utils import log_error
from townsfolk.memory import format_memories, retrieve_memories
from townsfolk.schemas import Activity, ActivityStatus, Agent, DailyPlan, MINUTES_PER_DAY

from .renderers import render_prompt


PLAN_QUERY = "What have I been doing recently? What are my goals?"
PLAN_MEMORY_COUNT = 15
PLAN_MAX_TOKENS = 1000

FALLBACK_OVERVIEW = "Explore the town"
DEFAULT_OVERVIEW = "A day in town"

MIN_DURATION = 15
MAX_DURATION = 120
INTERRUPTION_DURATION = 30

_FINISHED = (ActivityStatus.COMPLETED, ActivityStatus.INTERRUPTED)


class _ActivityReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    description: str = Field(..., min_length=1)
    start_time: float = Field(..., alias="startTime")
    duration: float
    location: Optional[str] = None


class _PlanReply(BaseModel):
    overview: Optional[str] = None
    activities: List[Any] = Field(default_factory=list)


def fallback_plan(sim_day: int) -> DailyPlan:
    return DailyPlan(sim_day=sim_day, overview=FALLBACK_OVERVIEW, activities=[])


def _clamp(value: float, low: int, high: int) -> int:
    return max(low, min(high, int(round(value))))


def _coerce_activity(raw: Any, location_names: Sequence[str]) -> Optional[Activity]:
    try:
        reply = _ActivityReply.model_validate(raw)
    except ValidationError:
        return None
    if not (math.isfinite(reply.start_time) and math.isfinite(reply.duration)):
        return None

    location = reply.location if reply.location in location_names else None
    return Activity(
        description=reply.description.strip(),
        start_minute=_clamp(reply.start_time, 0, MINUTES_PER_DAY - 1),
        duration_minutes=_clamp(reply.duration, MIN_DURATION, MAX_DURATION),
        location=location,
    )


def parse_plan(text: str, sim_day: int, location_names: Sequence[str]) -> DailyPlan:
    """Turn a raw planning reply into a ``DailyPlan``.

    Raises:
        ParseFailure: The reply holds no usable JSON object.
    """
    reply = parse_structured(text, _PlanReply)

    activities = [
        activity
        for activity in (_coerce_activity(raw, location_names) for raw in reply.activities)
        if activity is not None
    ]
    # sort() is stable, so equal start times keep the model's order.
    activities.sort(key=lambda activity: activity.start_minute)

    overview = (reply.overview or "").strip() or DEFAULT_OVERVIEW
    return DailyPlan(
        sim_day=sim_day,
        overview=overview,
        activities=activities,
        current_index=0 if activities else None,
    )


async def generate_daily_plan(
    generator: TextGenerator,
    agent: Agent,
    now: int,
    sim_day: int,
    location_names: Sequence[str],
) -> DailyPlan:
    """Ask the model for today's schedule, falling back to an empty plan."""
    memories = retrieve_memories(agent, PLAN_QUERY, now, PLAN_MEMORY_COUNT)
    prompt = render_prompt(
        "plan",
        {
            "agent_name": agent.name,
            "personality": agent.personality,
            "sim_day": sim_day,
            "location_names": ", ".join(location_names),
            "memories_text": format_memories(memories, with_kind=True),
        },
    )

    text = await generate_text(
        generator,
        prompt.system,
        prompt.user,
        max_tokens=PLAN_MAX_TOKENS,
        purpose=f"Planning day {sim_day} for {agent.name}",
    )
    if text is None:
        return fallback_plan(sim_day)

    try:
        return parse_plan(text, sim_day, location_names)
    except ParseFailure as exc:
        log_error(f"[{agent.name}] Failed to parse plan JSON, using fallback: {exc}")
        return fallback_plan(sim_day)


def _current_index(plan: DailyPlan, minute_of_day: int) -> Optional[int]:
    for index, activity in enumerate(plan.activities):
        if activity.status not in _FINISHED and activity.covers(minute_of_day):
            return index
    for index, activity in enumerate(plan.activities):
        if activity.status == ActivityStatus.PENDING and activity.start_minute > minute_of_day:
            return index
    return None


def get_current_action(plan: DailyPlan, minute_of_day: int) -> Optional[Activity]:
    """The activity the agent should be doing (or heading to) right now.

    First unfinished activity whose window contains the minute, else the
    earliest pending activity that starts later, else None.
    """
    index = _current_index(plan, minute_of_day)
    return None if index is None else plan.activities[index]


def advance_plan(plan: DailyPlan, minute_of_day: int) -> None:
    """Complete elapsed activities and start the one due at ``minute_of_day``.

    The cursor only moves forward.
    """
    for activity in plan.activities:
        if activity.status == ActivityStatus.ACTIVE and minute_of_day >= activity.end_minute:
            activity.status = ActivityStatus.COMPLETED

    index = _current_index(plan, minute_of_day)
    if index is None:
        return
    if plan.current_index is not None and index < plan.current_index:
        return
    activity = plan.activities[index]
    if activity.status == ActivityStatus.PENDING and minute_of_day >= activity.start_minute:
        activity.status = ActivityStatus.ACTIVE
        plan.current_index = index


def interrupt_plan(
    plan: DailyPlan,
    description: str,
    location: Optional[str],
    minute_of_day: int,
) -> Activity:
    """Replace whatever the agent is doing with a spontaneous activity.

    The active activity (if any) is marked interrupted; the new activity runs
    for ``INTERRUPTION_DURATION`` minutes from now and becomes the cursor.
    """
    for activity in plan.activities:
        if activity.status == ActivityStatus.ACTIVE:
            activity.status = ActivityStatus.INTERRUPTED

    replacement = Activity(
        description=description,
        start_minute=min(max(minute_of_day, 0), MINUTES_PER_DAY - 1),
        duration_minutes=INTERRUPTION_DURATION,
        location=location,
        status=ActivityStatus.ACTIVE,
    )

    # Insert ahead of anything else that would claim this minute.
    index = len(plan.activities)
    for position, activity in enumerate(plan.activities):
        if activity.status in _FINISHED:
            continue
        if activity.covers(minute_of_day) or activity.start_minute > minute_of_day:
            index = position
            break
    plan.activities.insert(index, replacement)
    plan.current_index = index
    return replacement
