"""
CLI interface for AI Model Selector.

Inspects the backend catalog and scenario configuration, and dry-runs
selections against the catalog.
"""

import logging
import sys
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from ai_model_selector.config.loader import (
    apply_config,
    config_path_from_env,
    load_selector_config,
)
from ai_model_selector.core.default_backends import register_default_backends
from ai_model_selector.core.errors import SelectorError
from ai_model_selector.core.registry import ModelRegistry
from ai_model_selector.core.scenarios import ScenarioMappingStore, ScenarioType
from ai_model_selector.core.selector import ModelSelector

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION_HELP = "YAML selector configuration (defaults to $AI_MODEL_SELECTOR_CONFIG)"


def _build_components(
    config_path: Optional[str]
) -> Tuple[ModelRegistry, ScenarioMappingStore, ModelSelector]:
    """Wire a registry, mapping store and selector from defaults plus config."""
    config_path = config_path or config_path_from_env()
    config = load_selector_config(config_path) if config_path else None

    registry = ModelRegistry()
    store = ScenarioMappingStore()
    if config is not None:
        apply_config(config, registry, store)
    register_default_backends(registry)

    selector = ModelSelector(
        store,
        strategy_config=config.strategies if config is not None else None,
    )
    store.register_available_backends(registry.list_available())
    return registry, store, selector


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging")
):
    """AI Model Selector CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("AI Model Selector - Use --help to see available commands")


@app.command()
def backends(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP),
    available_only: bool = typer.Option(
        False, "--available-only", "-a", help="Only list available backends"
    )
):
    """List the backend catalog."""
    try:
        registry, _, _ = _build_components(config)
    except (ValueError, FileNotFoundError, SelectorError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    items = registry.list_available() if available_only else registry.list_all()

    table = Table(title="Backends")
    table.add_column("Name")
    table.add_column("Provider")
    table.add_column("Family")
    table.add_column("Cost/token (in+out)", justify="right")
    table.add_column("Latency (ms)", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Status")
    for backend in items:
        table.add_row(
            backend.name,
            backend.provider,
            backend.family.value,
            f"{backend.total_cost:.6f}",
            f"{backend.latency_ms:,.0f}",
            "-" if backend.quality_rating is None else f"{backend.quality_rating:g}",
            backend.status,
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def scenarios(
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """List scenario configurations."""
    try:
        _, store, _ = _build_components(config)
    except (ValueError, FileNotFoundError, SelectorError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    table = Table(title="Scenarios")
    table.add_column("Scenario")
    table.add_column("Strategy")
    table.add_column("Primary")
    table.add_column("Fallback")
    table.add_column("Weights (q/c/l)")
    for scenario in store.all_scenarios():
        scenario_config = store.get_config(scenario)
        weights = scenario_config.weights
        table.add_row(
            scenario.value,
            scenario_config.strategy.value,
            ", ".join(scenario_config.primary_models),
            ", ".join(scenario_config.fallback_models),
            f"{weights.quality:g}/{weights.cost:g}/{weights.latency:g}",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def select(
    scenario: str = typer.Argument(..., help="Scenario identifier, e.g. resume-parsing"),
    exclude: Optional[List[str]] = typer.Option(
        None, "--exclude", "-x", help="Backend name to exclude (repeatable)"
    ),
    fallback: bool = typer.Option(
        False, "--fallback", "-f", help="Walk the scenario's fallback chain"
    ),
    config: Optional[str] = typer.Option(None, "--config", "-c", help=CONFIG_OPTION_HELP)
):
    """
    Dry-run a selection for a scenario against the backend catalog.

    No backend is called. The decision that would be recorded is printed.
    """
    try:
        scenario_type = ScenarioType(scenario)
    except ValueError:
        valid = ", ".join(s.value for s in ScenarioType)
        console.print(f"[red]Unknown scenario:[/] {scenario}")
        console.print(f"Valid scenarios: {valid}")
        sys.exit(EXIT_CODE_FAIL)

    try:
        registry, _, selector = _build_components(config)
        available = registry.list_all()
        if fallback:
            chosen = selector.select_with_fallback(scenario_type, available, exclude or [])
        else:
            excluded = set(exclude or [])
            candidates = [
                b for b in available
                if b.name not in excluded and b.qualified_name not in excluded
            ]
            chosen = selector.select_model_for_scenario(scenario_type, candidates)
    except (ValueError, FileNotFoundError, SelectorError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_selection(chosen, selector)
    sys.exit(EXIT_CODE_PASS)


def _display_selection(chosen, selector: ModelSelector) -> None:
    """Display the chosen backend and its recorded decision."""
    console.print("\n[bold]Model Selection Result[/bold]")
    console.print("-" * 40)
    console.print(f"[bold]Selected:[/bold] {chosen.qualified_name}")

    decision = selector.get_selection_log(limit=1)[-1]
    console.print(f"Strategy: {decision.strategy_used}")
    console.print(f"Candidates considered: {decision.available_models_count}")
    console.print(f"Cost/token (in+out): {decision.model_cost:.6f}")
    console.print(f"Latency: {decision.model_latency:,.0f} ms")
    console.print(f"Success rate: {decision.model_success_rate:.0%}")

    event = decision.fallback_event
    if event is not None:
        console.print(
            f"\n[yellow]Fallback:[/] {event.original_model} -> {event.fallback_model} ({event.reason})"
        )


if __name__ == "__main__":
    app()
