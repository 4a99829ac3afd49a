"""Smallville town simulation runner.

Loads a scenario, wires the configured model behind the shared concurrency
gate and runs the town for a number of ticks, printing conversations and
reflections as they happen.

Usage:
    python -m examples.smallville.run --ticks 30 --speed 5
    LLM_PROVIDER=ollama LLM_MODEL=llama3.1 python -m examples.smallville.run --max-agents 3
"""

import argparse
import asyncio
import random
from typing import Optional

from townsfolk import EventType, LLMTextGenerator, Orchestrator, SimulationEvent
from townsfolk.config import Config
from townsfolk.logging_utils import Color, colored
from townsfolk.orchestrator import format_clock
from townsfolk.scenario import ScenarioLoader


def print_event(event: SimulationEvent) -> None:
    """Echo the interesting events; movement and observations are too chatty."""
    stamp = format_clock(event.timestamp)
    data = event.data
    if event.type == EventType.CONVERSATION_START:
        print(colored(f"[{stamp}] Conversation {data['conversation_id']} started at {data['location']}", Color.GREEN))
    elif event.type == EventType.CONVERSATION_END:
        print(colored(f"[{stamp}] Conversation {data['conversation_id']} ended ({data['message_count']} messages)", Color.GREEN))
    elif event.type == EventType.REFLECTION:
        print(colored(f"[{stamp}] {data['agent_id']} reflects: {data['reflection']}", Color.YELLOW))
    elif event.type == EventType.PLAN_UPDATE and data.get("reason") == "interrupted":
        print(colored(f"[{stamp}] {data['agent_id']} changed plans", Color.CYAN))


async def run_simulation(
    *,
    ticks: int,
    speed: int,
    interval: float,
    scenario: str,
    reflections: bool,
    max_agents: int,
    seed: Optional[int],
) -> None:
    Config.validate()
    print(Config.display())
    print()

    rng = random.Random(seed)
    loader = ScenarioLoader(rng=rng)
    info = loader.get_scenario_info(scenario)
    print(f"Scenario: {info['name']} - {info['description']}")

    world = loader.load(scenario, max_agents=max_agents)
    print(f"Residents: {', '.join(agent.name for agent in world.agents.values())}\n")

    orchestrator = Orchestrator(
        world,
        LLMTextGenerator.from_config(Config),
        speed=speed,
        rng=rng,
        enable_reflections=reflections,
        day_start_minute=Config.DAY_START_MINUTE,
    )
    orchestrator.on_event(print_event)

    snapshot = await orchestrator.run(num_ticks=ticks, interval_seconds=interval)

    print("\n" + "=" * 60)
    print("SIMULATION COMPLETE")
    print("=" * 60)
    print(f"\nDay {snapshot.sim_day}, {format_clock(snapshot.sim_time)}")
    print(f"Active conversations: {len(snapshot.active_conversations)}")
    print("\nFinal agent states:")
    for agent in snapshot.agents:
        action = agent.current_action or "nothing planned"
        print(
            f"  {agent.name} @ {agent.current_location or '?'} [{agent.status.value}]: "
            f"{action} ({agent.memory_count} memories)"
        )
    if orchestrator.failures:
        print(colored(f"\n{len(orchestrator.failures)} agent step(s) failed and were rolled back.", Color.RED))


def main():
    """CLI entry point for the Smallville simulation."""
    parser = argparse.ArgumentParser(description="Smallville generative-agent town simulation")
    parser.add_argument(
        "--ticks",
        type=int,
        default=20,
        help="Number of simulation ticks to run (default: 20)",
    )
    parser.add_argument(
        "--speed",
        type=int,
        default=Config.SIM_SPEED,
        help="Simulated minutes per tick, 1-10 (default: SIM_SPEED or 1)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=0.0,
        help="Wall-clock seconds between ticks (default: 0, as fast as possible)",
    )
    parser.add_argument(
        "--scenario",
        default="smallville",
        help="Scenario name under examples/scenarios (default: smallville)",
    )
    parser.add_argument(
        "--no-reflections",
        action="store_true",
        help="Disable reflection cycles to save model calls",
    )
    parser.add_argument(
        "--max-agents",
        type=int,
        default=Config.MAX_AGENTS,
        help="Maximum number of residents (default: MAX_AGENTS or 8)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for placement and conversation endings",
    )

    args = parser.parse_args()

    asyncio.run(
        run_simulation(
            ticks=args.ticks,
            speed=args.speed,
            interval=args.interval,
            scenario=args.scenario,
            reflections=Config.ENABLE_REFLECTIONS and not args.no_reflections,
            max_agents=args.max_agents,
            seed=args.seed,
        )
    )


if __name__ == "__main__":
    main()
