"""
Configuration management and loading.

Handles selector settings from YAML files and the environment.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ai_model_selector.core.registry import (
    BackendRegistration,
    ModelFamily,
    ModelRegistry,
)
from ai_model_selector.core.scenarios import (
    ScenarioMappingStore,
    ScenarioType,
    StrategyKind,
    coerce_weights,
    validate_weights,
)
from ai_model_selector.core.strategies import (
    DEFAULT_STRATEGY_CONFIG,
    CostStrategyConfig,
    LatencyStrategyConfig,
    QualityStrategyConfig,
    StrategyConfig,
)

CONFIG_ENV_VAR = "AI_MODEL_SELECTOR_CONFIG"


@dataclass(frozen=True)
class SelectorConfig:
    """Complete selector configuration loaded from YAML."""
    strategies: StrategyConfig = DEFAULT_STRATEGY_CONFIG
    scenarios: Dict[ScenarioType, Dict[str, Any]] = field(default_factory=dict)
    backends: Tuple[BackendRegistration, ...] = ()


def config_path_from_env() -> Optional[str]:
    """Config path named by the environment, if any."""
    value = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return value or None


def load_selector_config(path: str) -> SelectorConfig:
    """Load and validate selector configuration from a YAML file.

    Every section is optional; anything omitted keeps its built-in default.
    Unknown keys are rejected so a typo never silently changes selection.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated SelectorConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Selector config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration root must be a dictionary")

    allowed_top_keys = {'strategies', 'scenarios', 'backends'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    strategies = DEFAULT_STRATEGY_CONFIG
    if 'strategies' in raw_config:
        strategies = _parse_strategies(_require_dict(raw_config['strategies'], 'strategies'))

    scenarios: Dict[ScenarioType, Dict[str, Any]] = {}
    scenarios_data = _require_dict(raw_config.get('scenarios', {}), 'scenarios')
    for scenario_name, scenario_data in scenarios_data.items():
        try:
            scenario = ScenarioType(scenario_name)
        except ValueError:
            raise ValueError(f"Unknown scenario: {scenario_name}")
        scenarios[scenario] = _parse_scenario(
            _require_dict(scenario_data, f"scenarios.{scenario_name}"),
            f"scenarios.{scenario_name}"
        )

    backends_data = raw_config.get('backends', [])
    if not isinstance(backends_data, list):
        raise ValueError("'backends' must be a list")
    backends = tuple(
        _parse_backend(_require_dict(item, f"backends[{i}]"), f"backends[{i}]")
        for i, item in enumerate(backends_data)
    )
    names = [b.name for b in backends]
    duplicates = {name for name in names if names.count(name) > 1}
    if duplicates:
        raise ValueError(f"Duplicate backend names: {duplicates}")

    return SelectorConfig(strategies=strategies, scenarios=scenarios, backends=backends)


def apply_config(
    config: SelectorConfig,
    registry: ModelRegistry,
    store: ScenarioMappingStore
) -> None:
    """Register configured backends and apply scenario overrides.

    Raises:
        DuplicateBackendError: If a configured backend is already registered
        InvalidWeightsError: If a scenario override has invalid weights
    """
    for backend in config.backends:
        registry.register(backend)
    for scenario, changes in config.scenarios.items():
        store.update_config(scenario, **changes)


def _require_dict(value: Any, path: str) -> Dict:
    if not isinstance(value, dict):
        raise ValueError(f"'{path}' must be a dictionary")
    return value


def _check_keys(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")


def _string_list(value: Any, path: str, allow_empty: bool = False) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"'{path}' must be a list of strings")
    if not value and not allow_empty:
        raise ValueError(f"'{path}' cannot be empty")
    return list(value)


def _number(value: Any, path: str, minimum: Optional[float] = None) -> float:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        raise ValueError(f"'{path}' must be a number")
    if minimum is not None and value < minimum:
        raise ValueError(f"'{path}' must be >= {minimum}")
    return float(value)


def _parse_strategies(data: Dict) -> StrategyConfig:
    """Parse the strategies section, falling back to defaults per strategy."""
    _check_keys(data, {'quality', 'cost', 'latency'}, 'strategies')

    quality = DEFAULT_STRATEGY_CONFIG.quality
    if 'quality' in data:
        quality_data = _require_dict(data['quality'], 'strategies.quality')
        _check_keys(quality_data, {'ranking'}, 'strategies.quality')
        if 'ranking' not in quality_data:
            raise ValueError("Missing required 'ranking' in strategies.quality")
        quality = QualityStrategyConfig(
            ranking=tuple(_string_list(quality_data['ranking'], 'strategies.quality.ranking'))
        )

    cost = DEFAULT_STRATEGY_CONFIG.cost
    if 'cost' in data:
        cost_data = _require_dict(data['cost'], 'strategies.cost')
        _check_keys(cost_data, {'min_quality_threshold', 'low_cost_models'}, 'strategies.cost')
        threshold = cost.min_quality_threshold
        if 'min_quality_threshold' in cost_data:
            threshold = _number(cost_data['min_quality_threshold'], 'strategies.cost.min_quality_threshold')
        low_cost = cost.low_cost_models
        if 'low_cost_models' in cost_data:
            low_cost = tuple(_string_list(
                cost_data['low_cost_models'], 'strategies.cost.low_cost_models', allow_empty=True
            ))
        cost = CostStrategyConfig(min_quality_threshold=threshold, low_cost_models=low_cost)

    latency = DEFAULT_STRATEGY_CONFIG.latency
    if 'latency' in data:
        latency_data = _require_dict(data['latency'], 'strategies.latency')
        _check_keys(latency_data, {'max_latency_threshold_ms'}, 'strategies.latency')
        if 'max_latency_threshold_ms' not in latency_data:
            raise ValueError("Missing required 'max_latency_threshold_ms' in strategies.latency")
        latency = LatencyStrategyConfig(
            max_latency_threshold_ms=_number(
                latency_data['max_latency_threshold_ms'],
                'strategies.latency.max_latency_threshold_ms',
                minimum=0
            )
        )

    return StrategyConfig(quality=quality, cost=cost, latency=latency)


def _parse_scenario(data: Dict, path: str) -> Dict[str, Any]:
    """Parse a scenario override into keyword changes for update_config."""
    allowed_keys = {
        'strategy', 'primary_models', 'fallback_models',
        'weights', 'min_quality_score', 'max_latency_ms'
    }
    _check_keys(data, allowed_keys, path)

    changes: Dict[str, Any] = {}
    if 'strategy' in data:
        try:
            changes['strategy'] = StrategyKind(str(data['strategy']).lower())
        except ValueError:
            valid = [kind.value for kind in StrategyKind]
            raise ValueError(f"'strategy' in {path} must be one of: {valid}")
    for key in ('primary_models', 'fallback_models'):
        if key in data:
            changes[key] = _string_list(data[key], f"{path}.{key}")
    if 'weights' in data:
        weights = coerce_weights(_require_dict(data['weights'], f"{path}.weights"))
        validate_weights(weights)
        changes['weights'] = weights
    if 'min_quality_score' in data:
        changes['min_quality_score'] = _number(data['min_quality_score'], f"{path}.min_quality_score")
    if 'max_latency_ms' in data:
        changes['max_latency_ms'] = _number(data['max_latency_ms'], f"{path}.max_latency_ms", minimum=0)
    return changes


def _parse_backend(data: Dict, path: str) -> BackendRegistration:
    """Parse and validate a backend registration entry."""
    allowed_keys = {
        'name', 'provider', 'family', 'parameter_size', 'context_window',
        'cost_per_input_token', 'cost_per_output_token', 'avg_latency_ms',
        'quality_rating', 'supported_features', 'is_available'
    }
    _check_keys(data, allowed_keys, path)

    for required in ('name', 'provider', 'cost_per_input_token', 'cost_per_output_token', 'avg_latency_ms'):
        if required not in data:
            raise ValueError(f"Missing required '{required}' in {path}")

    try:
        family = ModelFamily(str(data.get('family', 'other')).lower())
    except ValueError:
        valid = [f.value for f in ModelFamily]
        raise ValueError(f"'family' in {path} must be one of: {valid}")

    quality_rating = None
    if data.get('quality_rating') is not None:
        quality_rating = _number(data['quality_rating'], f"{path}.quality_rating")

    is_available = data.get('is_available', True)
    if not isinstance(is_available, bool):
        raise ValueError(f"'is_available' in {path} must be a boolean")

    return BackendRegistration(
        name=str(data['name']),
        provider=str(data['provider']),
        family=family,
        parameter_size=str(data.get('parameter_size', 'unknown')),
        context_window=int(_number(data.get('context_window', 0), f"{path}.context_window", minimum=0)),
        cost_per_input_token=_number(data['cost_per_input_token'], f"{path}.cost_per_input_token", minimum=0),
        cost_per_output_token=_number(data['cost_per_output_token'], f"{path}.cost_per_output_token", minimum=0),
        avg_latency_ms=_number(data['avg_latency_ms'], f"{path}.avg_latency_ms", minimum=0),
        quality_rating=quality_rating,
        supported_features=tuple(_string_list(
            data.get('supported_features', []), f"{path}.supported_features", allow_empty=True
        )),
        is_available=is_available,
    )
