"""
Scenario to backend mapping.

Each usage scenario maps to a selection strategy, ordered primary and
fallback backend lists, and a quality/cost/latency weighting.
"""

import copy
import logging
import threading
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Union

from .errors import (
    InvalidScenarioConfigError,
    InvalidWeightsError,
    ScenarioNotFoundError,
)
from .registry import BackendInfo

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.0001


class ScenarioType(Enum):
    """Closed set of usage scenarios the host can ask about."""
    # Core scenarios
    RESUME_PARSING = "resume-parsing"
    JOB_DESCRIPTION_PARSING = "job-description-parsing"
    RESUME_OPTIMIZATION = "resume-optimization"
    RESUME_ANALYSIS = "resume-analysis"
    RESUME_CONTENT_OPTIMIZATION = "resume-content-optimization"
    INTERVIEW_QUESTION_GENERATION = "interview-question-generation"
    MATCH_SCORE_CALCULATION = "match-score-calculation"

    # Agent workflow steps
    AGENT_STAR_EXTRACTION = "agent-star-extraction"
    AGENT_KEYWORD_MATCHING = "agent-keyword-matching"
    AGENT_INTRODUCTION_GENERATION = "agent-introduction-generation"
    AGENT_CONTEXT_ANALYSIS = "agent-context-analysis"
    AGENT_CUSTOM_QUESTION_GENERATION = "agent-custom-question-generation"
    AGENT_QUESTION_PRIORITIZATION = "agent-question-prioritization"
    AGENT_INTERVIEW_INITIALIZATION = "agent-interview-initialization"
    AGENT_RESPONSE_PROCESSING = "agent-response-processing"
    AGENT_RESPONSE_ANALYSIS = "agent-response-analysis"
    AGENT_INTERVIEW_CONCLUSION = "agent-interview-conclusion"
    AGENT_CONTEXT_COMPRESSION = "agent-context-compression"
    AGENT_RAG_RETRIEVAL = "agent-rag-retrieval"
    AGENT_EMBEDDING_GENERATION = "agent-embedding-generation"

    GENERAL = "general"


class StrategyKind(Enum):
    """Optimization criteria a scenario can ask for."""
    QUALITY = "quality"
    COST = "cost"
    LATENCY = "latency"
    BALANCED = "balanced"


@dataclass(frozen=True)
class SelectionWeights:
    """Relative importance of quality, cost and latency for a scenario."""
    quality: float
    cost: float
    latency: float

    def as_dict(self) -> Dict[str, float]:
        return {"quality": self.quality, "cost": self.cost, "latency": self.latency}


@dataclass
class ScenarioConfig:
    """How backends are chosen for one scenario."""
    scenario: ScenarioType
    strategy: StrategyKind
    primary_models: List[str]
    fallback_models: List[str]
    weights: SelectionWeights
    min_quality_score: Optional[float] = None
    max_latency_ms: Optional[float] = None

    @property
    def recommended_models(self) -> List[str]:
        """Primary then fallback backend identifiers."""
        return list(self.primary_models) + list(self.fallback_models)


def validate_weights(weights: SelectionWeights) -> None:
    """Check every weight is in [0, 1] and the triple sums to 1.0.

    Raises:
        InvalidWeightsError: If the weights break either rule
    """
    for label, value in (
        ("Quality", weights.quality),
        ("Cost", weights.cost),
        ("Latency", weights.latency),
    ):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise InvalidWeightsError(f"{label} weight must be a number")
        if value < 0 or value > 1:
            raise InvalidWeightsError(f"{label} weight must be between 0 and 1")

    total = weights.quality + weights.cost + weights.latency
    if abs(total - 1.0) > WEIGHT_TOLERANCE:
        raise InvalidWeightsError(
            f"Weights must sum to 1.0, got {total:.4f} "
            f"(quality: {weights.quality}, cost: {weights.cost}, latency: {weights.latency})"
        )


def coerce_weights(value: Union[SelectionWeights, Mapping[str, float]]) -> SelectionWeights:
    """Accept weights as a SelectionWeights or a quality/cost/latency mapping."""
    if isinstance(value, SelectionWeights):
        return value
    if not isinstance(value, Mapping):
        raise InvalidWeightsError("weights must be a mapping of quality, cost and latency")
    keys = set(value.keys())
    expected = {"quality", "cost", "latency"}
    if keys != expected:
        raise InvalidWeightsError(
            f"weights must have exactly the keys {sorted(expected)}, got {sorted(keys)}"
        )
    return SelectionWeights(
        quality=value["quality"],
        cost=value["cost"],
        latency=value["latency"],
    )


def _scenario_key(scenario: Union[ScenarioType, str]) -> ScenarioType:
    try:
        return ScenarioType(scenario)
    except ValueError:
        raise ScenarioNotFoundError(str(scenario))


_COST_WEIGHTS = SelectionWeights(quality=0.3, cost=0.5, latency=0.2)
_QUALITY_WEIGHTS = SelectionWeights(quality=0.6, cost=0.2, latency=0.2)
_BALANCED_WEIGHTS = SelectionWeights(quality=0.4, cost=0.3, latency=0.3)
_LATENCY_WEIGHTS = SelectionWeights(quality=0.2, cost=0.2, latency=0.6)

_QUALITY_PRIMARY = [
    "qwen:qwen3-max-preview",
    "qwen:kimi-k2-thinking",
    "siliconcloud:deepseek-ai/DeepSeek-R1-0528-Qwen3-8B",
]


def _cost(scenario, primary, fallback) -> ScenarioConfig:
    return ScenarioConfig(scenario, StrategyKind.COST, primary, fallback, _COST_WEIGHTS, min_quality_score=6)


def _quality(scenario, fallback) -> ScenarioConfig:
    return ScenarioConfig(
        scenario, StrategyKind.QUALITY, list(_QUALITY_PRIMARY), fallback, _QUALITY_WEIGHTS, min_quality_score=8
    )


def _balanced(scenario, primary, fallback) -> ScenarioConfig:
    return ScenarioConfig(scenario, StrategyKind.BALANCED, primary, fallback, _BALANCED_WEIGHTS)


# High-volume extraction favours cost, user-facing output favours quality,
# real-time interaction favours latency.
DEFAULT_SCENARIO_CONFIGS: Dict[ScenarioType, ScenarioConfig] = {
    config.scenario: config
    for config in [
        _cost(
            ScenarioType.RESUME_PARSING,
            ["ollama:deepseek-r1:1.5b", "qwen:qwen-turbo", "qwen:qwen3-coder-flash"],
            ["qwen:glm-4.7", "qwen:qwen3-max-preview"],
        ),
        _quality(ScenarioType.RESUME_OPTIMIZATION, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        _quality(ScenarioType.RESUME_ANALYSIS, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        _quality(ScenarioType.RESUME_CONTENT_OPTIMIZATION, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        _balanced(
            ScenarioType.INTERVIEW_QUESTION_GENERATION,
            ["qwen:qwen3-max-preview", "qwen:deepseek-v3.2", "qwen:Moonshot-Kimi-K2-Instruct"],
            ["qwen:glm-4.7", "qwen:qwen-turbo"],
        ),
        _cost(
            ScenarioType.JOB_DESCRIPTION_PARSING,
            ["ollama:deepseek-r1:1.5b", "qwen:qwen-turbo"],
            ["qwen:glm-4.7", "qwen:qwen3-coder-flash"],
        ),
        _balanced(
            ScenarioType.MATCH_SCORE_CALCULATION,
            ["qwen:qwen3-max-preview", "qwen:deepseek-v3.2", "qwen:glm-4.7"],
            ["qwen:qwen-turbo", "qwen:Moonshot-Kimi-K2-Instruct"],
        ),
        _cost(
            ScenarioType.AGENT_STAR_EXTRACTION,
            ["qwen:qwen-turbo", "qwen:qwen3-coder-flash"],
            ["qwen:glm-4.7", "ollama:deepseek-r1:1.5b"],
        ),
        _cost(
            ScenarioType.AGENT_KEYWORD_MATCHING,
            ["qwen:qwen-turbo", "qwen:qwen3-coder-flash"],
            ["qwen:glm-4.7", "ollama:deepseek-r1:1.5b"],
        ),
        _quality(
            ScenarioType.AGENT_INTRODUCTION_GENERATION,
            ["qwen:deepseek-v3.2", "qwen:Moonshot-Kimi-K2-Instruct"],
        ),
        _cost(
            ScenarioType.AGENT_CONTEXT_ANALYSIS,
            ["qwen:qwen-turbo", "ollama:deepseek-r1:1.5b"],
            ["qwen:glm-4.7", "qwen:qwen3-coder-flash"],
        ),
        _quality(ScenarioType.AGENT_CUSTOM_QUESTION_GENERATION, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        _balanced(
            ScenarioType.AGENT_QUESTION_PRIORITIZATION,
            ["qwen:glm-4.7", "qwen:deepseek-v3.2"],
            ["qwen:qwen-turbo", "qwen:Moonshot-Kimi-K2-Instruct"],
        ),
        _quality(ScenarioType.AGENT_INTERVIEW_INITIALIZATION, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        ScenarioConfig(
            ScenarioType.AGENT_RESPONSE_PROCESSING,
            StrategyKind.LATENCY,
            ["qwen:qwen-turbo", "qwen:glm-4.7"],
            ["ollama:deepseek-r1:1.5b", "qwen:qwen3-coder-flash"],
            _LATENCY_WEIGHTS,
            max_latency_ms=2000,
        ),
        _balanced(
            ScenarioType.AGENT_RESPONSE_ANALYSIS,
            ["qwen:deepseek-v3.2", "qwen:glm-4.7"],
            ["qwen:qwen-turbo", "qwen:Moonshot-Kimi-K2-Instruct"],
        ),
        _quality(ScenarioType.AGENT_INTERVIEW_CONCLUSION, ["qwen:deepseek-v3.2", "qwen:glm-4.7"]),
        _cost(
            ScenarioType.AGENT_CONTEXT_COMPRESSION,
            ["qwen:qwen-turbo", "ollama:deepseek-r1:1.5b"],
            ["qwen:glm-4.7", "qwen:qwen3-coder-flash"],
        ),
        _cost(
            ScenarioType.AGENT_RAG_RETRIEVAL,
            ["qwen:qwen-turbo", "ollama:deepseek-r1:1.5b"],
            ["qwen:glm-4.7", "qwen:qwen3-coder-flash"],
        ),
        _cost(
            ScenarioType.AGENT_EMBEDDING_GENERATION,
            ["qwen:text-embedding-v3", "ollama:deepseek-r1:1.5b"],
            ["qwen:text-embedding-v3"],
        ),
        _balanced(
            ScenarioType.GENERAL,
            ["qwen:qwen3-max-preview", "qwen:deepseek-v3.2"],
            ["qwen:glm-4.7", "qwen:qwen-turbo"],
        ),
    ]
}

_UPDATABLE_FIELDS = {
    f.name for f in fields(ScenarioConfig) if f.name != "scenario"
}


class ScenarioMappingStore:
    """Store of per-scenario selection configuration.

    Reads return deep copies so callers can never corrupt stored state, and
    updates are validated before anything is written.
    """

    def __init__(self, configs: Optional[Mapping[ScenarioType, ScenarioConfig]] = None):
        self._lock = threading.RLock()
        self._configs: Dict[ScenarioType, ScenarioConfig] = copy.deepcopy(
            dict(configs) if configs is not None else DEFAULT_SCENARIO_CONFIGS
        )
        self._available: Dict[str, BackendInfo] = {}
        logger.info("Scenario mapping store initialized with %d scenarios", len(self._configs))

    def get_config(self, scenario: Union[ScenarioType, str]) -> ScenarioConfig:
        """Get an independent copy of a scenario's configuration.

        Raises:
            ScenarioNotFoundError: If the scenario is not configured
        """
        key = _scenario_key(scenario)
        with self._lock:
            config = self._configs.get(key)
            if config is None:
                logger.warning("Scenario configuration not found for: %s", key.value)
                raise ScenarioNotFoundError(key.value)
            return copy.deepcopy(config)

    def update_config(self, scenario: Union[ScenarioType, str], /, **changes) -> ScenarioConfig:
        """Apply a validated partial update to a scenario.

        The scenario identifier itself cannot change. Nothing is written if
        any part of the update is invalid.

        Args:
            scenario: Scenario to update
            **changes: Any of strategy, primary_models, fallback_models,
                weights, min_quality_score, max_latency_ms

        Returns:
            Copy of the updated configuration

        Raises:
            ScenarioNotFoundError: If the scenario is not configured
            InvalidWeightsError: If the weights break the range or sum rule
            InvalidScenarioConfigError: If a field is unknown or a model list is empty
        """
        key = _scenario_key(scenario)
        changes.pop("scenario", None)

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise InvalidScenarioConfigError(f"Unknown scenario config fields: {sorted(unknown)}")

        if "weights" in changes:
            changes["weights"] = coerce_weights(changes["weights"])
            validate_weights(changes["weights"])
        if "strategy" in changes:
            try:
                changes["strategy"] = StrategyKind(changes["strategy"])
            except ValueError:
                valid = [kind.value for kind in StrategyKind]
                raise InvalidScenarioConfigError(f"strategy must be one of: {valid}")
        for list_field in ("primary_models", "fallback_models"):
            if list_field in changes:
                models = changes[list_field]
                if isinstance(models, str) or not list(models):
                    raise InvalidScenarioConfigError(f"{list_field} must be a non-empty list")
                changes[list_field] = [str(m) for m in models]

        with self._lock:
            existing = self._configs.get(key)
            if existing is None:
                logger.warning("Cannot update non-existent scenario: %s", key.value)
                raise ScenarioNotFoundError(key.value)
            updated = copy.deepcopy(existing)
            for name, value in changes.items():
                setattr(updated, name, value)
            self._configs[key] = updated

        logger.info("Updated scenario configuration for: %s", key.value)
        return copy.deepcopy(updated)

    def get_primary_models(self, scenario: Union[ScenarioType, str]) -> List[str]:
        return self.get_config(scenario).primary_models

    def get_fallback_models(self, scenario: Union[ScenarioType, str]) -> List[str]:
        return self.get_config(scenario).fallback_models

    def get_strategy(self, scenario: Union[ScenarioType, str]) -> StrategyKind:
        return self.get_config(scenario).strategy

    def get_weights(self, scenario: Union[ScenarioType, str]) -> SelectionWeights:
        return self.get_config(scenario).weights

    def all_scenarios(self) -> List[ScenarioType]:
        with self._lock:
            return list(self._configs.keys())

    def register_available_backends(self, backends: Iterable[BackendInfo]) -> None:
        """Replace the lookup table of backends currently known to be live.

        Each backend is keyed by "provider:name" and by bare name. A bare
        name already claimed by an earlier backend is not overwritten.
        """
        lookup: Dict[str, BackendInfo] = {}
        count = 0
        for backend in backends:
            lookup[backend.qualified_name] = backend
            lookup.setdefault(backend.name, backend)
            count += 1
        with self._lock:
            self._available = lookup
        logger.debug("Registered %d available models", count)

    def get_recommended_models(self, scenario: Union[ScenarioType, str]) -> List[str]:
        """Names of registered backends listed as primary or fallback for a scenario."""
        config = self.get_config(scenario)
        recommended = set(config.recommended_models)
        with self._lock:
            backends = list(self._available.values())

        names: List[str] = []
        seen = set()
        for backend in backends:
            if backend.qualified_name in seen:
                continue
            seen.add(backend.qualified_name)
            if backend.name in recommended or backend.qualified_name in recommended:
                names.append(backend.name)
        return names

    def get_available_recommended_models(self, scenario: Union[ScenarioType, str]) -> List[str]:
        recommended = self.get_recommended_models(scenario)
        with self._lock:
            return [name for name in recommended if name in self._available]

    def reset_to_defaults(self) -> None:
        with self._lock:
            self._configs = copy.deepcopy(DEFAULT_SCENARIO_CONFIGS)
        logger.info("Reset all scenario configurations to defaults")
