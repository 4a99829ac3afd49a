"""
Main simulation orchestrator.

Owns the world clock and drives every agent through one cognitive step per
tick. Dependencies (the world, the text generator, the random source) are
injected; the orchestrator does no file I/O and reads no global config.

Per tick, after advancing the clock, each agent in insertion order:
1. Regenerates its daily plan if the plan is missing or from another day
2. If conversing, takes one conversation turn and stops there
3. Advances its plan and walks toward the current activity's location
4. Perceives nearby agents and location changes, storing them as memories
5. Decides how to react to each nearby agent
6. Reflects, if enabled and its importance budget is spent

Agents are processed sequentially, so every agent observes the effects of
the agents processed before it in the same tick. A failure inside one agent's
step is contained: the agent is restored to its pre-tick state and the rest
of the town keeps going.
"""

from __future__ import annotations

import asyncio
import random
from typing import Any, Callable, Dict, List, Optional

from .cognition import (
    ChangeActivity,
    ConversationEngine,
    CooldownRegistry,
    ReflectionEngine,
    StartConversation,
    TurnResult,
    advance_plan,
    decide_reaction,
    generate_daily_plan,
    get_current_action,
    interrupt_plan,
)
from .environment import find_location, is_at_location, location_center, move_toward
from .llm_utils import TextGenerator
from .logging_utils import (
    Color,
    colored,
    log_deterministic,
    log_error,
    log_info,
    log_llm,
    log_success,
)
from .memory import append_memory, should_reflect
from .perception import (
    Observation,
    ObservationType,
    observation_to_memory,
    perceive_location,
    perceive_nearby,
)
from .schemas import (
    MINUTES_PER_DAY,
    Agent,
    AgentSnapshot,
    AgentStatus,
    DailyPlan,
    EventType,
    MemorySummary,
    SimulationEvent,
    WorldSnapshot,
    WorldState,
)


EventListener = Callable[[SimulationEvent], Any]

MIN_SPEED = 1
MAX_SPEED = 10
RECENT_MEMORY_COUNT = 5
PAUSE_POLL_SECONDS = 0.1


# =============================
# Module-level Exceptions
# =============================

class AgentTickFailure(Exception):
    """Describes one agent's failed step during a tick.

    Failures are contained at the per-agent boundary: the agent is restored
    to its pre-tick state and the failure is recorded in
    ``Orchestrator.failures``.
    """

    def __init__(self, *, agent_id: str, sim_day: int, sim_time: int, underlying: Exception) -> None:
        self.agent_id = agent_id
        self.sim_day = sim_day
        self.sim_time = sim_time
        self.underlying = underlying
        message = (
            f"Agent '{agent_id}' failed on day {sim_day} at {format_clock(sim_time)}: "
            f"{type(underlying).__name__}: {underlying}\n\n"
            "The agent was restored to its state before this tick.\n"
            "Remediation tips:\n"
            "  - TOWNSFOLK_VERBOSE=true to trace each step\n"
            "  - DEBUG_LLM=true to inspect prompts/responses"
        )
        super().__init__(message)


def format_clock(minute_of_day: int) -> str:
    """Render a minute of the day as ``HH:MM``."""
    hours, minutes = divmod(minute_of_day % MINUTES_PER_DAY, 60)
    return f"{hours:02d}:{minutes:02d}"


def _backup_agent(agent: Agent) -> Agent:
    """Pre-tick copy of an agent; frozen memories are shared, not copied."""
    plan = agent.current_plan
    return agent.model_copy(
        update={
            "memory_stream": list(agent.memory_stream),
            "current_plan": plan.model_copy(deep=True) if plan is not None else None,
            "position": agent.position.model_copy(),
        }
    )


def _plan_payload(agent: Agent, plan: DailyPlan, reason: str) -> Dict[str, Any]:
    return {
        "agent_id": agent.id,
        "reason": reason,
        "sim_day": plan.sim_day,
        "overview": plan.overview,
        "activities": [activity.model_dump(mode="json") for activity in plan.activities],
    }


class Orchestrator:
    """
    Tick scheduler and control surface for a town simulation.

    Fully decoupled - accepts the world, generator and random source as
    parameters. Hosts drive it either with ``tick()`` or with the ``run`` /
    ``run_forever`` loops, and observe it through ``on_event`` listeners and
    ``get_world_snapshot()``.
    """

    def __init__(
        self,
        world: WorldState,
        generator: TextGenerator,
        *,
        speed: int = 1,
        rng: Optional[random.Random] = None,
        enable_reflections: bool = True,
        cooldown_minutes: int = 30,
        day_start_minute: int = 480,
        walk_speed: float = 3.0,
        arrival_threshold: float = 10.0,
    ) -> None:
        if not 0 <= day_start_minute < MINUTES_PER_DAY:
            raise ValueError(f"day_start_minute must be within a day, got {day_start_minute}")

        self.world = world
        self.generator = generator
        self.rng = rng or random.Random()
        self.enable_reflections = enable_reflections
        self.day_start_minute = day_start_minute
        self.walk_speed = walk_speed
        self.arrival_threshold = arrival_threshold

        self.cooldowns = CooldownRegistry(window=cooldown_minutes)
        self.conversations = ConversationEngine(generator, self.cooldowns, rng=self.rng)
        self.reflections = ReflectionEngine(generator)

        self.tick_count = 0
        self.failures: List[AgentTickFailure] = []

        self._speed = MIN_SPEED
        self.set_speed(speed)
        self._paused = False
        self._running = False
        self._listeners: List[EventListener] = []

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def speed(self) -> int:
        """Simulated minutes per tick."""
        return self._speed

    def set_speed(self, speed: int) -> None:
        """Set minutes per tick, clamped to [1, 10]."""
        self._speed = max(MIN_SPEED, min(MAX_SPEED, int(speed)))

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """Register a listener; returns a callable that unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _emit(self, event_type: EventType, data: Dict[str, Any]) -> None:
        event = SimulationEvent(
            type=event_type,
            data=data,
            timestamp=self.world.sim_time_minutes,
        )
        # Iterate over a copy so listeners may unsubscribe while handling.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                log_error(f"[Events] Listener failed on {event_type.value}: {exc}")

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def get_world_snapshot(self) -> WorldSnapshot:
        """Detached, JSON-serialisable view of the world."""
        agents = []
        for agent in self.world.agents.values():
            plan = agent.current_plan
            current = plan.current_action if plan else None
            agents.append(
                AgentSnapshot(
                    id=agent.id,
                    name=agent.name,
                    position=agent.position.model_copy(),
                    status=agent.status,
                    current_location=agent.current_location,
                    current_action=current.description if current else None,
                    conversation_id=agent.conversation_id,
                    wallet=agent.wallet,
                    memory_count=len(agent.memory_stream),
                    recent_memories=[
                        MemorySummary(
                            description=memory.description,
                            kind=memory.kind,
                            importance=memory.importance,
                            timestamp=memory.timestamp,
                        )
                        for memory in agent.memory_stream[-RECENT_MEMORY_COUNT:]
                    ],
                )
            )

        return WorldSnapshot(
            sim_time=self.world.sim_time_minutes,
            sim_day=self.world.sim_day,
            paused=self._paused,
            speed=self._speed,
            agents=agents,
            active_conversations=[
                conversation.model_copy(deep=True)
                for conversation in self.world.active_conversations()
            ],
            locations=list(self.world.locations),
        )

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    async def run(self, num_ticks: int, interval_seconds: float = 0.0) -> WorldSnapshot:
        """Run ``num_ticks`` ticks, waiting out any pause, and return the final snapshot."""
        print(f"Starting town simulation: {len(self.world.agents)} agents, {num_ticks} ticks")
        print(f"Day {self.world.sim_day}, {format_clock(self.world.sim_time_minutes)}\n")

        self._running = True
        completed = 0
        try:
            while completed < num_ticks and self._running:
                if self._paused:
                    await asyncio.sleep(max(interval_seconds, PAUSE_POLL_SECONDS))
                    continue
                await self.tick()
                completed += 1
                print(
                    f"=== Tick {completed}/{num_ticks} | Day {self.world.sim_day} "
                    f"{format_clock(self.world.sim_time_minutes)} ==="
                )
                if interval_seconds > 0:
                    await asyncio.sleep(interval_seconds)
        finally:
            self._running = False

        print(colored("\nSimulation complete!", Color.GREEN, bold=True))
        return self.get_world_snapshot()

    async def run_forever(self, interval_seconds: float = 2.0) -> None:
        """Tick on a wall-clock cadence until ``stop()`` is called."""
        loop = asyncio.get_running_loop()
        self._running = True
        print(
            f"Simulation started. Day {self.world.sim_day}, "
            f"Time: {format_clock(self.world.sim_time_minutes)}"
        )
        while self._running:
            started = loop.time()
            await self.tick()
            elapsed = loop.time() - started
            await asyncio.sleep(max(0.0, interval_seconds - elapsed))
        print("Simulation stopped.")

    def stop(self) -> None:
        self._running = False

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    def _advance_clock(self) -> None:
        self.world.sim_time_minutes += self._speed
        if self.world.sim_time_minutes >= MINUTES_PER_DAY:
            self.world.sim_time_minutes = self.day_start_minute
            self.world.sim_day += 1
            log_info(f"Day {self.world.sim_day} begins")

    async def tick(self) -> bool:
        """Advance the simulation by one step. Returns False while paused."""
        if self._paused:
            return False

        self._advance_clock()
        self.tick_count += 1

        # Agents added or removed mid-tick take effect next tick.
        for agent_id in list(self.world.agents):
            agent = self.world.agents.get(agent_id)
            if agent is None:
                continue
            await self._tick_agent_safely(agent)
        return True

    async def _tick_agent_safely(self, agent: Agent) -> None:
        backup = _backup_agent(agent)
        conversation_count = len(self.world.conversations)
        try:
            await self._tick_agent(agent)
        except Exception as exc:
            failure = AgentTickFailure(
                agent_id=agent.id,
                sim_day=self.world.sim_day,
                sim_time=self.world.sim_time_minutes,
                underlying=exc,
            )
            log_error(f"[{agent.name}] Tick failed, state restored: {exc}")
            self.failures.append(failure)
            self._restore_agent(backup, conversation_count)

    def _restore_agent(self, backup: Agent, conversation_count: int) -> None:
        """Put back the agent's pre-tick state and drop conversations it opened."""
        self.world.agents[backup.id] = backup

        opened = self.world.conversations[conversation_count:]
        if not opened:
            return
        del self.world.conversations[conversation_count:]
        opened_ids = {conversation.id for conversation in opened}
        for agent in self.world.agents.values():
            if agent.conversation_id in opened_ids:
                agent.conversation_id = None
                agent.status = AgentStatus.IDLE

    async def _tick_agent(self, agent: Agent) -> None:
        now = self.world.now
        minute = self.world.sim_time_minutes

        plan = await self._ensure_plan(agent, now)

        if agent.conversation_id is not None:
            result = await self.conversations.take_turn(agent, self.world, now)
            self._emit_turn(agent, result)
            return

        advance_plan(plan, minute)
        self._move(agent, plan, minute)

        nearby = self._perceive(agent, now)

        for observation in nearby:
            if agent.conversation_id is not None:
                break
            decision = await decide_reaction(
                self.generator, agent, observation, self.world, self.cooldowns, now
            )
            if isinstance(decision, StartConversation):
                self._start_conversation(agent, decision, now)
            elif isinstance(decision, ChangeActivity):
                interrupt_plan(plan, decision.new_activity, decision.new_location, minute)
                log_llm(f"[{agent.name}] Changing plans: {decision.new_activity}")
                self._emit(EventType.PLAN_UPDATE, _plan_payload(agent, plan, "interrupted"))

        if self.enable_reflections:
            await self._reflect(agent, now)

    async def _ensure_plan(self, agent: Agent, now: int) -> DailyPlan:
        plan = agent.current_plan
        if plan is not None and plan.sim_day == self.world.sim_day:
            return plan

        agent.status = AgentStatus.PLANNING
        plan = await generate_daily_plan(
            self.generator,
            agent,
            now,
            self.world.sim_day,
            [location.name for location in self.world.locations],
        )
        agent.current_plan = plan
        agent.status = AgentStatus.TALKING if agent.conversation_id else AgentStatus.IDLE

        log_success(f"[{agent.name}] Day {plan.sim_day} plan: {plan.overview}")
        self._emit(EventType.PLAN_UPDATE, _plan_payload(agent, plan, "new_day"))
        return plan

    def _move(self, agent: Agent, plan: DailyPlan, minute: int) -> None:
        action = get_current_action(plan, minute)
        if action is None or not action.location:
            return
        target = find_location(self.world.locations, action.location)
        if target is None:
            return

        if is_at_location(agent.position, target, self.arrival_threshold):
            if agent.current_location != target.name:
                log_deterministic(f"[{agent.name}] Arrived at {target.name}")
            agent.current_location = target.name
            agent.status = AgentStatus.IDLE
            return

        agent.status = AgentStatus.WALKING
        agent.position = move_toward(agent.position, location_center(target), self.walk_speed)
        self._emit(
            EventType.AGENT_MOVE,
            {
                "agent_id": agent.id,
                "position": agent.position.model_dump(),
                "target_location": target.name,
            },
        )

    def _perceive(self, agent: Agent, now: int) -> List[Observation]:
        nearby = perceive_nearby(agent, self.world)
        observations = list(nearby)

        change = perceive_location(agent, self.world.locations, agent.occupied_location_id)
        if change is not None:
            if change.type == ObservationType.ENTERED_LOCATION:
                agent.occupied_location_id = change.location_id
                entered = find_location(self.world.locations, change.location_id or "")
                if entered is not None:
                    agent.current_location = entered.name
            else:
                agent.occupied_location_id = None
            observations.append(change)

        for observation in observations:
            append_memory(agent, observation_to_memory(agent, observation, now))
            self._emit(
                EventType.OBSERVATION,
                {
                    "agent_id": agent.id,
                    "type": observation.type.value,
                    "description": observation.description,
                    "subject_id": observation.subject_id,
                },
            )
        return nearby

    def _start_conversation(self, agent: Agent, decision: StartConversation, now: int) -> None:
        partner = self.world.agents.get(decision.target_agent_id)
        if partner is None:
            return
        conversation = self.conversations.start(
            self.world, agent, partner, decision.opening_line, now
        )
        if conversation is None:
            return
        print(colored(f'    {agent.name} -> {partner.name}: "{decision.opening_line}"', Color.CYAN))
        self._emit(
            EventType.CONVERSATION_START,
            {
                "conversation_id": conversation.id,
                "participants": list(conversation.participants),
                "opening_line": decision.opening_line,
                "location": conversation.location,
            },
        )

    def _emit_turn(self, agent: Agent, result: TurnResult) -> None:
        conversation = result.conversation
        if conversation is None:
            return
        if result.message is not None:
            print(colored(f'    {agent.name}: "{result.message.content}"', Color.CYAN))
            self._emit(
                EventType.CONVERSATION_MESSAGE,
                {
                    "conversation_id": conversation.id,
                    "agent_id": agent.id,
                    "agent_name": agent.name,
                    "content": result.message.content,
                },
            )
        if result.ended:
            log_success(f"Conversation {conversation.id} ended after {len(conversation.messages)} messages")
            self._emit(
                EventType.CONVERSATION_END,
                {
                    "conversation_id": conversation.id,
                    "participants": list(conversation.participants),
                    "message_count": len(conversation.messages),
                },
            )

    async def _reflect(self, agent: Agent, now: int) -> None:
        if not should_reflect(agent, agent.last_reflection_time):
            return

        previous_status = agent.status
        agent.status = AgentStatus.REFLECTING
        reflections = await self.reflections.reflect(agent, now)
        agent.status = AgentStatus.TALKING if agent.conversation_id else previous_status

        for memory in reflections:
            log_llm(f"[{agent.name}] Reflection: {memory.description}")
            self._emit(
                EventType.REFLECTION,
                {"agent_id": agent.id, "reflection": memory.description},
            )
