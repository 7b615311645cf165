"""
Model selector.

Resolves a scenario to a strategy and a candidate set, picks a backend, walks
the fallback chain when the preferred backend cannot be used, and records
every decision in the decision log.

Failure policy:
1. Only two situations are hard failures: no candidates of any kind, and an
   exhausted fallback chain with nothing left to use.
2. Every other gap (missing strategy, no recommended match, an error in the
   scenario-aware path) degrades to a best-effort substitute.
3. A request served by anything other than the first primary backend through
   the fallback chain always carries a FallbackEvent.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Union

from ai_model_selector.storage.decision_log import DecisionLog
from ai_model_selector.storage.models import FallbackEvent, SelectionDecision

from .errors import FallbackExhaustedError, NoModelsAvailableError
from .registry import BackendInfo
from .scenarios import ScenarioConfig, ScenarioMappingStore, ScenarioType, StrategyKind
from .statistics import SelectionStatistics, compute_selection_statistics
from .strategies import (
    DEFAULT_STRATEGY_CONFIG,
    SelectionContext,
    SelectionStrategy,
    StrategyConfig,
    create_strategy,
)

logger = logging.getLogger(__name__)

# Last entry of every fallback chain
UNIVERSAL_FALLBACK_MODEL = "ollama"

# Cost bound passed to strategies when a scenario sets a minimum quality
# score. It is a constant, not derived from any cost policy.
PLACEHOLDER_MAX_COST = 1.0

FALLBACK_CHAIN_STRATEGY = "fallback-chain"
FALLBACK_ANY_STRATEGY = "fallback-any-available"
DEGRADED_STRATEGY = "degraded"


@dataclass(frozen=True)
class AgentSelectionContext:
    """Caller-supplied context attached to decisions for observability."""
    agent_type: Optional[str] = None
    workflow_step: Optional[str] = None
    user_id: Optional[str] = None
    improvement: Optional[float] = None


def _scenario_id(scenario: Union[ScenarioType, str]) -> str:
    return scenario.value if isinstance(scenario, ScenarioType) else str(scenario)


def _base_name(name: str) -> str:
    """Strip a trailing ":tag" suffix, e.g. "deepseek-r1:1.5b" -> "deepseek-r1"."""
    return name.rsplit(":", 1)[0] if ":" in name else name


def _matches_recommendation(backend: BackendInfo, entry: str) -> bool:
    if entry == backend.name or entry == backend.qualified_name:
        return True
    prefix = f"{backend.provider}:"
    if entry.startswith(prefix):
        model = entry[len(prefix):]
    elif ":" in entry:
        # Another provider's model, or a tagged bare name: whole-name match only
        return entry.lower() == backend.name.lower()
    else:
        model = entry
    return _base_name(backend.name).lower() == _base_name(model).lower()


def _is_excluded(backend: BackendInfo, excluded: Iterable[str]) -> bool:
    return backend.name in excluded or backend.qualified_name in excluded


class ModelSelector:
    """Selects the best backend for each scenario.

    The mapping store, strategy configuration and decision log are injected
    so that separate selectors never share state.
    """

    def __init__(
        self,
        mapping_store: Optional[ScenarioMappingStore] = None,
        strategy_config: Optional[StrategyConfig] = None,
        decision_log: Optional[DecisionLog] = None
    ):
        self.mapping_store = mapping_store or ScenarioMappingStore()
        self.decision_log = decision_log or DecisionLog()
        self.strategy_config = strategy_config or DEFAULT_STRATEGY_CONFIG

        self._lock = threading.RLock()
        self._kind_strategies: Dict[StrategyKind, SelectionStrategy] = {
            kind: create_strategy(kind, self.strategy_config) for kind in StrategyKind
        }
        self._general_strategy = self._kind_strategies[StrategyKind.BALANCED]
        self._scenario_strategies: Dict[str, SelectionStrategy] = {}
        self._initialize_default_strategies()

    def _initialize_default_strategies(self) -> None:
        for scenario in self.mapping_store.all_scenarios():
            kind = self.mapping_store.get_strategy(scenario)
            self._scenario_strategies[scenario.value] = self._kind_strategies[kind]
        logger.info("Default model selection strategies initialized")

    def register_strategy(
        self,
        scenario: Union[ScenarioType, str],
        strategy: SelectionStrategy
    ) -> None:
        """Bind a strategy to a scenario for select_model."""
        with self._lock:
            self._scenario_strategies[_scenario_id(scenario)] = strategy
        logger.info(
            "Registered strategy for scenario: %s (%s)",
            _scenario_id(scenario), strategy.name
        )

    def get_strategy(self, scenario: Union[ScenarioType, str]) -> Optional[SelectionStrategy]:
        with self._lock:
            return self._scenario_strategies.get(_scenario_id(scenario))

    def get_kind_strategy(self, kind: StrategyKind) -> Optional[SelectionStrategy]:
        with self._lock:
            return self._kind_strategies.get(StrategyKind(kind))

    def registered_scenarios(self) -> List[str]:
        with self._lock:
            return list(self._scenario_strategies.keys())

    def select_model(
        self,
        available: Sequence[BackendInfo],
        scenario: Union[ScenarioType, str],
        context: Optional[SelectionContext] = None
    ) -> BackendInfo:
        """Select a backend using the strategy bound to a scenario.

        When no candidate is available, the first candidate is returned in
        degraded mode and recorded under the "degraded" tag. Unknown scenarios
        use the general balanced strategy.

        Raises:
            NoModelsAvailableError: If available is empty
        """
        scenario_id = _scenario_id(scenario)
        active = [b for b in available if b.is_available]

        if not active:
            logger.warning(
                "No available models for scenario: %s. Attempting fallback to all models.",
                scenario_id
            )
            if not available:
                raise NoModelsAvailableError(scenario_id)
            self._record_decision(scenario_id, available[0], 0, DEGRADED_STRATEGY)
            return available[0]

        strategy = self.get_strategy(scenario_id)
        if strategy is None:
            logger.warning(
                "No strategy defined for scenario: %s. Using general strategy.", scenario_id
            )
            strategy = self._general_strategy

        if context is None:
            context = SelectionContext(scenario=scenario_id)
        else:
            context = replace(context, scenario=scenario_id)

        selected = strategy.select_model(active, context)
        self._record_decision(scenario_id, selected, len(active), strategy.name)
        return selected

    def select_model_for_scenario(
        self,
        scenario: Union[ScenarioType, str],
        available: Sequence[BackendInfo],
        agent_context: Optional[AgentSelectionContext] = None
    ) -> BackendInfo:
        """Select a backend using the scenario's configured recommendations.

        Errors from the scenario-aware path are logged and the call is retried
        through select_model; only the retry's own failure propagates.

        Raises:
            NoModelsAvailableError: If the retry has no candidates either
        """
        try:
            return self._select_with_scenario_config(
                ScenarioType(scenario), available, agent_context
            )
        except Exception as e:
            logger.warning(
                "Scenario-based selection failed for %s: %s. Falling back to default selection.",
                _scenario_id(scenario), e
            )
            return self.select_model(available, _scenario_id(scenario))

    def _select_with_scenario_config(
        self,
        scenario: ScenarioType,
        available: Sequence[BackendInfo],
        agent_context: Optional[AgentSelectionContext]
    ) -> BackendInfo:
        config = self.mapping_store.get_config(scenario)

        pool = self._recommended_subset(config, available)
        if not pool:
            pool = list(available)

        strategy = self.get_kind_strategy(config.strategy)
        if strategy is None:
            return self.select_model(available, scenario.value)

        active = [b for b in pool if b.is_available]
        if not active:
            if not pool:
                raise NoModelsAvailableError(scenario.value)
            logger.warning(
                "No available recommended models for scenario: %s. Using %s in degraded mode.",
                scenario.value, pool[0].name
            )
            self._record_decision(scenario.value, pool[0], 0, DEGRADED_STRATEGY, agent_context)
            return pool[0]

        context = SelectionContext(
            scenario=scenario.value,
            max_latency=config.max_latency_ms,
            max_cost=PLACEHOLDER_MAX_COST if config.min_quality_score is not None else None,
        )
        selected = strategy.select_model(active, context)
        self._record_decision(scenario.value, selected, len(active), strategy.name, agent_context)
        return selected

    def select_with_fallback(
        self,
        scenario: Union[ScenarioType, str],
        available: Sequence[BackendInfo],
        exclude: Optional[Sequence[str]] = None,
        agent_context: Optional[AgentSelectionContext] = None
    ) -> BackendInfo:
        """Walk the scenario's fallback chain and return the first usable backend.

        The chain is the primary models, then the fallback models, then the
        universal local fallback. Entries match candidates by exact name or
        exact "provider:name".

        Args:
            scenario: Scenario to select for
            available: Candidate backends
            exclude: Backend names that must not be used
            agent_context: Optional caller context recorded with the decision

        Raises:
            ScenarioNotFoundError: If the scenario is not configured
            FallbackExhaustedError: If nothing in the chain or the candidate
                list can be used
        """
        config = self.mapping_store.get_config(scenario)
        scenario_id = config.scenario.value
        excluded = list(exclude or [])
        excluded_set = set(excluded)

        chain = list(config.primary_models) + list(config.fallback_models) + [UNIVERSAL_FALLBACK_MODEL]
        original = config.primary_models[0]
        candidates = [
            b for b in available if b.is_available and not _is_excluded(b, excluded_set)
        ]

        for entry in chain:
            if entry in excluded_set:
                continue
            match = next(
                (b for b in candidates if entry in (b.name, b.qualified_name)),
                None
            )
            if match is None:
                continue

            fallback_event = None
            if entry != original:
                fallback_event = self._fallback_event(
                    scenario_id, original, match, excluded, agent_context,
                    reason=f"Preferred model {original} unavailable or excluded"
                )
            self._record_decision(
                scenario_id, match, len(candidates), FALLBACK_CHAIN_STRATEGY,
                agent_context, fallback_event
            )
            return match

        if candidates:
            match = candidates[0]
            fallback_event = self._fallback_event(
                scenario_id, original, match, excluded, agent_context,
                reason="Fallback chain exhausted, using any available model"
            )
            self._record_decision(
                scenario_id, match, len(candidates), FALLBACK_ANY_STRATEGY,
                agent_context, fallback_event
            )
            return match

        logger.error("Fallback chain exhausted for scenario: %s", scenario_id)
        raise FallbackExhaustedError(scenario_id, chain, excluded)

    def get_recommended_models(
        self,
        scenario: Union[ScenarioType, str],
        available: Sequence[BackendInfo]
    ) -> List[BackendInfo]:
        """Candidates that the scenario's configuration recommends."""
        config = self.mapping_store.get_config(scenario)
        return self._recommended_subset(config, available)

    def get_selection_log(self, limit: int = 100) -> List[SelectionDecision]:
        return self.decision_log.recent(limit)

    def clear_selection_log(self) -> None:
        self.decision_log.clear()

    def get_selection_statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> SelectionStatistics:
        """Statistics over decisions with start <= timestamp <= end."""
        return compute_selection_statistics(self.decision_log.between(start, end))

    @staticmethod
    def _recommended_subset(
        config: ScenarioConfig,
        available: Sequence[BackendInfo]
    ) -> List[BackendInfo]:
        entries = config.recommended_models
        return [
            b for b in available
            if any(_matches_recommendation(b, entry) for entry in entries)
        ]

    def _fallback_event(
        self,
        scenario_id: str,
        original: str,
        selected: BackendInfo,
        excluded: Sequence[str],
        agent_context: Optional[AgentSelectionContext],
        reason: str
    ) -> FallbackEvent:
        agent_context = agent_context or AgentSelectionContext()
        logger.warning(
            "Model fallback for scenario %s: %s -> %s (%s)",
            scenario_id, original, selected.name, reason
        )
        return FallbackEvent(
            timestamp=datetime.now(),
            scenario=scenario_id,
            original_model=original,
            fallback_model=selected.name,
            excluded_models=tuple(excluded),
            reason=reason,
            agent_type=agent_context.agent_type,
            workflow_step=agent_context.workflow_step,
            user_id=agent_context.user_id,
        )

    def _record_decision(
        self,
        scenario_id: str,
        selected: BackendInfo,
        available_count: int,
        strategy_name: str,
        agent_context: Optional[AgentSelectionContext] = None,
        fallback_event: Optional[FallbackEvent] = None
    ) -> SelectionDecision:
        agent_context = agent_context or AgentSelectionContext()
        decision = SelectionDecision(
            timestamp=datetime.now(),
            scenario=scenario_id,
            selected_model=selected.name,
            selected_provider=selected.provider,
            available_models_count=available_count,
            strategy_used=strategy_name,
            model_cost=selected.total_cost,
            model_latency=selected.latency_ms,
            model_success_rate=selected.success_rate,
            agent_type=agent_context.agent_type,
            workflow_step=agent_context.workflow_step,
            user_id=agent_context.user_id,
            improvement=agent_context.improvement,
            fallback_event=fallback_event,
        )
        self.decision_log.append(decision)

        logger.debug(
            "Model selection: scenario=%s, model=%s, provider=%s, strategy=%s, availableModels=%d",
            scenario_id, selected.name, selected.provider, strategy_name, available_count
        )
        return decision
