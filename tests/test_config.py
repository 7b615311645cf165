"""
Unit tests for configuration loading and validation.

Tests strict validation and error handling for selector configs.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from ai_model_selector.config.loader import (
    CONFIG_ENV_VAR,
    apply_config,
    config_path_from_env,
    load_selector_config,
)
from ai_model_selector.core.errors import DuplicateBackendError
from ai_model_selector.core.registry import ModelFamily, ModelRegistry
from ai_model_selector.core.scenarios import ScenarioMappingStore, ScenarioType, StrategyKind
from ai_model_selector.core.strategies import DEFAULT_STRATEGY_CONFIG


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a complete configuration loads correctly."""
        config_data = {
            "strategies": {
                "quality": {"ranking": ["small", "large"]},
                "cost": {"min_quality_threshold": 7},
                "latency": {"max_latency_threshold_ms": 3000},
            },
            "scenarios": {
                "resume-parsing": {
                    "strategy": "latency",
                    "primary_models": ["local-model"],
                    "weights": {"quality": 0.2, "cost": 0.2, "latency": 0.6},
                    "max_latency_ms": 1500,
                }
            },
            "backends": [
                {
                    "name": "local-model",
                    "provider": "ollama",
                    "family": "llama",
                    "cost_per_input_token": 0,
                    "cost_per_output_token": 0,
                    "avg_latency_ms": 400,
                    "quality_rating": 6,
                }
            ],
        }

        config = load_selector_config(self._write_config(config_data))

        # Verify strategies
        assert config.strategies.quality.ranking == ("small", "large")
        assert config.strategies.cost.min_quality_threshold == 7
        assert config.strategies.cost.low_cost_models == DEFAULT_STRATEGY_CONFIG.cost.low_cost_models
        assert config.strategies.latency.max_latency_threshold_ms == 3000

        # Verify scenarios
        changes = config.scenarios[ScenarioType.RESUME_PARSING]
        assert changes["strategy"] == StrategyKind.LATENCY
        assert changes["primary_models"] == ["local-model"]
        assert changes["weights"].latency == 0.6
        assert "fallback_models" not in changes

        # Verify backends
        assert len(config.backends) == 1
        backend = config.backends[0]
        assert backend.family == ModelFamily.LLAMA
        assert backend.avg_latency_ms == 400
        assert backend.parameter_size == "unknown"

    def test_sections_are_optional(self):
        """Test that omitted sections keep defaults."""
        config = load_selector_config(self._write_config({"scenarios": {}}))

        assert config.strategies == DEFAULT_STRATEGY_CONFIG
        assert config.scenarios == {}
        assert config.backends == ()

    def test_missing_file_fails(self):
        """Test that a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="not found"):
            load_selector_config(os.path.join(self.temp_dir, "missing.yaml"))

    def test_invalid_yaml_fails(self):
        """Test that malformed YAML raises a YAML error."""
        config_path = os.path.join(self.temp_dir, "bad.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("scenarios: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_selector_config(config_path)

    def test_empty_file_fails(self):
        """Test that an empty file is rejected."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        open(config_path, 'w').close()

        with pytest.raises(ValueError, match="empty"):
            load_selector_config(config_path)

    def test_unknown_top_level_key_fails(self):
        """Test that unknown top-level keys are rejected."""
        with pytest.raises(ValueError, match="Unknown configuration keys"):
            load_selector_config(self._write_config({"scenarios": {}, "extra": 1}))

    def test_unknown_scenario_fails(self):
        """Test that an unknown scenario name is rejected."""
        config_data = {"scenarios": {"poetry-writing": {"strategy": "cost"}}}

        with pytest.raises(ValueError, match="Unknown scenario: poetry-writing"):
            load_selector_config(self._write_config(config_data))

    def test_unknown_scenario_field_fails(self):
        """Test that unknown keys inside a scenario are rejected."""
        config_data = {"scenarios": {"general": {"temperature": 0.2}}}

        with pytest.raises(ValueError, match="Unknown keys in scenarios.general"):
            load_selector_config(self._write_config(config_data))

    def test_invalid_weights_fail(self):
        """Test that weights not summing to one are rejected."""
        config_data = {
            "scenarios": {
                "general": {"weights": {"quality": 0.5, "cost": 0.5, "latency": 0.5}}
            }
        }

        with pytest.raises(ValueError, match="sum to 1.0"):
            load_selector_config(self._write_config(config_data))

    def test_invalid_strategy_fails(self):
        """Test that an unknown strategy kind is rejected."""
        config_data = {"scenarios": {"general": {"strategy": "random"}}}

        with pytest.raises(ValueError, match="must be one of"):
            load_selector_config(self._write_config(config_data))

    def test_empty_model_list_fails(self):
        """Test that an empty model list is rejected."""
        config_data = {"scenarios": {"general": {"primary_models": []}}}

        with pytest.raises(ValueError, match="cannot be empty"):
            load_selector_config(self._write_config(config_data))

    def test_backend_missing_required_field_fails(self):
        """Test that a backend without costs is rejected."""
        config_data = {"backends": [{"name": "x", "provider": "y", "avg_latency_ms": 1}]}

        with pytest.raises(ValueError, match="Missing required 'cost_per_input_token'"):
            load_selector_config(self._write_config(config_data))

    def test_backend_negative_cost_fails(self):
        """Test that negative backend costs are rejected."""
        config_data = {
            "backends": [{
                "name": "x", "provider": "y", "avg_latency_ms": 1,
                "cost_per_input_token": -1, "cost_per_output_token": 0,
            }]
        }

        with pytest.raises(ValueError, match="must be >= 0"):
            load_selector_config(self._write_config(config_data))

    def test_duplicate_backends_fail(self):
        """Test that duplicate backend names are rejected."""
        entry = {
            "name": "x", "provider": "y", "avg_latency_ms": 1,
            "cost_per_input_token": 0, "cost_per_output_token": 0,
        }

        with pytest.raises(ValueError, match="Duplicate backend names"):
            load_selector_config(self._write_config({"backends": [entry, dict(entry)]}))

    def test_cost_threshold_out_of_range_fails(self):
        """Test that the cost strategy threshold must be within 1-10."""
        config_data = {"strategies": {"cost": {"min_quality_threshold": 11}}}

        with pytest.raises(ValueError, match="between 1 and 10"):
            load_selector_config(self._write_config(config_data))


class TestApplyConfig:
    """Test applying a loaded configuration."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _load(self, config_data):
        config_path = os.path.join(self.temp_dir, "config.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return load_selector_config(config_path)

    def test_apply_registers_backends_and_updates_scenarios(self):
        """Test that backends and scenario overrides reach the stores."""
        config = self._load({
            "scenarios": {"general": {"strategy": "cost", "fallback_models": ["local-model"]}},
            "backends": [{
                "name": "local-model", "provider": "ollama", "avg_latency_ms": 300,
                "cost_per_input_token": 0, "cost_per_output_token": 0,
            }],
        })
        registry = ModelRegistry()
        store = ScenarioMappingStore()

        apply_config(config, registry, store)

        assert registry.get("local-model").provider == "ollama"
        general = store.get_config(ScenarioType.GENERAL)
        assert general.strategy == StrategyKind.COST
        assert general.fallback_models == ["local-model"]
        assert general.primary_models == ["qwen:qwen3-max-preview", "qwen:deepseek-v3.2"]

    def test_apply_duplicate_backend_fails(self):
        """Test that a configured backend clashing with the registry fails."""
        config = self._load({"backends": [{
            "name": "taken", "provider": "p", "avg_latency_ms": 1,
            "cost_per_input_token": 0, "cost_per_output_token": 0,
        }]})
        registry = ModelRegistry()
        apply_config(config, registry, ScenarioMappingStore())

        with pytest.raises(DuplicateBackendError):
            apply_config(config, registry, ScenarioMappingStore())


class TestConfigEnvironment:
    """Test locating configuration from the environment."""

    def test_env_path(self, monkeypatch):
        """Test that the environment variable names the config file."""
        monkeypatch.setenv(CONFIG_ENV_VAR, "/etc/selector.yaml")
        assert config_path_from_env() == "/etc/selector.yaml"

    def test_env_unset(self, monkeypatch):
        """Test that a missing or blank variable yields None."""
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert config_path_from_env() is None

        monkeypatch.setenv(CONFIG_ENV_VAR, "   ")
        assert config_path_from_env() is None
