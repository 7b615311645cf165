"""
Selection statistics.

Aggregates computed on demand from a slice of the decision log. Nothing here
is stored: the log is the single source of truth.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, Set

from ai_model_selector.storage.models import SelectionDecision


@dataclass
class ScenarioStats:
    """Aggregates for one scenario."""
    count: int = 0
    total_cost: float = 0.0
    total_latency: float = 0.0
    success_sum: float = 0.0
    fallback_count: int = 0
    models: Dict[str, int] = field(default_factory=dict)
    avg_cost: float = 0.0
    avg_latency: float = 0.0
    success_rate: float = 0.0


@dataclass
class ModelStats:
    """Aggregates for one selected backend."""
    count: int = 0
    scenarios: Set[str] = field(default_factory=set)
    avg_cost: float = 0.0
    avg_latency: float = 0.0
    success_rate: float = 0.0


@dataclass
class SelectionStatistics:
    """Statistics over a slice of the decision log."""
    total_selections: int
    scenario_stats: Dict[str, ScenarioStats]
    model_stats: Dict[str, ModelStats]
    strategy_stats: Dict[str, int]


def compute_selection_statistics(decisions: Iterable[SelectionDecision]) -> SelectionStatistics:
    """Fold decisions into per-scenario, per-model and per-strategy aggregates.

    Model averages are running means, so each one equals the arithmetic mean
    of the values recorded for that model.

    Args:
        decisions: Decisions to aggregate, typically a time-bounded log slice

    Returns:
        SelectionStatistics for the given decisions
    """
    total = 0
    scenario_stats: Dict[str, ScenarioStats] = {}
    model_stats: Dict[str, ModelStats] = {}
    strategy_stats: Dict[str, int] = {}

    for decision in decisions:
        total += 1

        scenario = scenario_stats.setdefault(decision.scenario, ScenarioStats())
        scenario.count += 1
        scenario.total_cost += decision.model_cost
        scenario.total_latency += decision.model_latency
        scenario.success_sum += decision.model_success_rate
        if decision.fallback_event is not None:
            scenario.fallback_count += 1
        scenario.models[decision.selected_model] = scenario.models.get(decision.selected_model, 0) + 1

        model = model_stats.setdefault(decision.selected_model, ModelStats())
        model.count += 1
        model.scenarios.add(decision.scenario)
        model.avg_cost += (decision.model_cost - model.avg_cost) / model.count
        model.avg_latency += (decision.model_latency - model.avg_latency) / model.count
        model.success_rate += (decision.model_success_rate - model.success_rate) / model.count

        strategy_stats[decision.strategy_used] = strategy_stats.get(decision.strategy_used, 0) + 1

    for scenario in scenario_stats.values():
        scenario.avg_cost = scenario.total_cost / scenario.count
        scenario.avg_latency = scenario.total_latency / scenario.count
        scenario.success_rate = scenario.success_sum / scenario.count

    return SelectionStatistics(
        total_selections=total,
        scenario_stats=scenario_stats,
        model_stats=model_stats,
        strategy_stats=strategy_stats,
    )
