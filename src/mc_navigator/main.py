"""CLI entrypoint for MC Navigator."""

from __future__ import annotations

import asyncio
from typing import Callable

import typer
from rich import print

from mc_navigator.adapters.simulated import (
    Scenario,
    flat_scenario,
    house_scenario,
    lake_scenario,
    shaft_scenario,
)
from mc_navigator.config import settings
from mc_navigator.models import NavigationOutcome
from mc_navigator.navigator import GoalNavigator, build_navigator
from mc_navigator.structure import StructureStore
from mc_navigator.telemetry import LoggingTelemetry, configure_logging

app = typer.Typer(help="MC Navigator service entrypoint")

_SCENARIOS: dict[str, Callable[[], Scenario]] = {
    "lake": lake_scenario,
    "shaft": shaft_scenario,
    "long-range": flat_scenario,
    "house": house_scenario,
}


def _build_store(structure_dir: str | None = None) -> StructureStore:
    return StructureStore(structure_dir or settings.structure_dir)


def _build_scenario_navigator(scenario: Scenario, agent_id: str) -> tuple[GoalNavigator, LoggingTelemetry]:
    telemetry = LoggingTelemetry()
    navigator = build_navigator(
        scenario.world,
        agent_id,
        settings=settings,
        structure=scenario.structure,
        telemetry=telemetry,
    )
    return navigator, telemetry


async def _run_scenario(scenario: Scenario, navigator: GoalNavigator) -> NavigationOutcome:
    if scenario.name == "lake":
        return await navigator.aquatic.escape()
    if scenario.name == "shaft":
        return await navigator.vertical.escape()
    target = scenario.target
    return await navigator.go_to_position(target.x, target.y, target.z)


@app.command()
def start() -> None:
    """Show runtime navigation configuration."""
    print(
        {
            "app_name": settings.app_name,
            "log_level": settings.log_level,
            "structure_dir": settings.structure_dir,
            "direct_timeout_seconds": settings.direct_timeout_seconds,
            "waypoint_distance": settings.waypoint_distance,
            "explorer_node_budget": settings.explorer_node_budget,
        }
    )


@app.command()
def simulate(
    scenario: str = typer.Argument(..., help="One of: lake, shaft, long-range, house"),
    agent_id: str = typer.Option("sim", help="Agent id used for logging and telemetry"),
    log_level: str = typer.Option(None, help="Override MC_NAVIGATOR_LOG_LEVEL"),
) -> None:
    """Run one recovery or navigation scenario against the in-memory world."""
    factory = _SCENARIOS.get(scenario)
    if factory is None:
        raise typer.BadParameter(f"Unknown scenario {scenario!r}; choose from {', '.join(_SCENARIOS)}")

    configure_logging(log_level or settings.log_level)
    built = factory()
    navigator, telemetry = _build_scenario_navigator(built, agent_id)
    outcome = asyncio.run(_run_scenario(built, navigator))
    position = built.world.current_position()
    print(
        {
            "scenario": built.name,
            "outcome": outcome.as_dict(),
            "final_position": (round(position.x, 2), round(position.y, 2), round(position.z, 2)),
            "blocks_dug": len(built.world.dug),
            "blocks_placed": len(built.world.placed),
            "events": [name for name, _ in telemetry.events],
        }
    )
    if not outcome.reached:
        raise typer.Exit(code=1)


@app.command("structure-show")
def structure_show(
    agent_id: str,
    structure_dir: str = typer.Option(None, help="Root directory of per-agent structure files"),
) -> None:
    """Print the protected structure recorded for one agent."""
    store = _build_store(structure_dir)
    descriptor = store.load(agent_id)
    if descriptor is None:
        print({"agent_id": agent_id, "structure": None, "path": str(store.path_for(agent_id))})
        raise typer.Exit(code=1)
    print({"agent_id": agent_id, "structure": descriptor.model_dump(by_alias=True)})


if __name__ == "__main__":
    app()
