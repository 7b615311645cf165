"""
Tests for fallback chain selection.
"""
import pytest

from ai_model_selector.core.default_backends import register_default_backends
from ai_model_selector.core.errors import FallbackExhaustedError, ScenarioNotFoundError
from ai_model_selector.core.registry import BackendInfo, ModelRegistry
from ai_model_selector.core.scenarios import ScenarioMappingStore, ScenarioType
from ai_model_selector.core.selector import (
    FALLBACK_ANY_STRATEGY,
    FALLBACK_CHAIN_STRATEGY,
    UNIVERSAL_FALLBACK_MODEL,
    AgentSelectionContext,
    ModelSelector,
)


class TestSelectWithFallback:
    """Test walking the primary, fallback and universal chain."""

    def setup_method(self):
        """Set up a selector over the built-in catalog."""
        self.registry = ModelRegistry()
        register_default_backends(self.registry)
        self.store = ScenarioMappingStore()
        self.selector = ModelSelector(self.store)

    def test_first_primary_used_without_event(self):
        """Test that the first primary backend is served without a fallback event."""
        selected = self.selector.select_with_fallback(
            ScenarioType.RESUME_PARSING, self.registry.list_all()
        )

        assert selected.qualified_name == "ollama:deepseek-r1:1.5b"
        decision = self.selector.get_selection_log()[-1]
        assert decision.strategy_used == FALLBACK_CHAIN_STRATEGY
        assert decision.fallback_event is None

    def test_excluded_primary_falls_through(self):
        """Test that excluding the primary yields the next usable chain entry."""
        selected = self.selector.select_with_fallback(
            ScenarioType.RESUME_PARSING,
            self.registry.list_all(),
            exclude=["deepseek-r1:1.5b"],
        )

        # qwen:qwen-turbo is not in the catalog, so the third primary wins
        assert selected.name == "qwen3-coder-flash"
        event = self.selector.get_selection_log()[-1].fallback_event
        assert event is not None
        assert event.scenario == "resume-parsing"
        assert event.original_model == "ollama:deepseek-r1:1.5b"
        assert event.fallback_model == "qwen3-coder-flash"
        assert event.excluded_models == ("deepseek-r1:1.5b",)

    def test_unavailable_primary_falls_through(self):
        """Test that an unavailable backend is skipped like an excluded one."""
        self.registry.set_availability("deepseek-r1:1.5b", False)
        self.registry.set_availability("qwen3-coder-flash", False)

        selected = self.selector.select_with_fallback(
            ScenarioType.RESUME_PARSING, self.registry.list_all()
        )

        assert selected.name == "glm-4.7"
        assert self.selector.get_selection_log()[-1].is_fallback

    def test_excluding_qualified_name(self):
        """Test that an exclusion by provider-qualified name is honoured."""
        selected = self.selector.select_with_fallback(
            ScenarioType.RESUME_PARSING,
            self.registry.list_all(),
            exclude=["ollama:deepseek-r1:1.5b"],
        )

        assert selected.name == "qwen3-coder-flash"

    def test_universal_fallback(self):
        """Test that the universal local backend ends the chain."""
        local = BackendInfo(name=UNIVERSAL_FALLBACK_MODEL, provider="local")
        unlisted = BackendInfo(name="unlisted", provider="test")

        selected = self.selector.select_with_fallback(ScenarioType.GENERAL, [unlisted, local])

        assert selected is local
        decision = self.selector.get_selection_log()[-1]
        assert decision.strategy_used == FALLBACK_CHAIN_STRATEGY
        assert decision.fallback_event.original_model == "qwen:qwen3-max-preview"

    def test_any_available_after_chain(self):
        """Test that any remaining candidate is used once the chain is exhausted."""
        unlisted = BackendInfo(name="unlisted", provider="test")

        selected = self.selector.select_with_fallback(ScenarioType.GENERAL, [unlisted])

        assert selected is unlisted
        decision = self.selector.get_selection_log()[-1]
        assert decision.strategy_used == FALLBACK_ANY_STRATEGY
        assert "exhausted" in decision.fallback_event.reason

    def test_everything_excluded_fails(self):
        """Test that an exhausted chain with no candidates is a hard failure."""
        everything = [b.name for b in self.registry.list_all()]

        with pytest.raises(FallbackExhaustedError) as exc_info:
            self.selector.select_with_fallback(
                ScenarioType.RESUME_PARSING, self.registry.list_all(), exclude=everything
            )

        error = exc_info.value
        assert error.chain[0] == "ollama:deepseek-r1:1.5b"
        assert error.chain[-1] == UNIVERSAL_FALLBACK_MODEL
        assert error.excluded == everything
        assert self.selector.get_selection_log() == []

    def test_empty_candidates_fail(self):
        """Test that no candidates at all exhausts the chain."""
        with pytest.raises(FallbackExhaustedError):
            self.selector.select_with_fallback(ScenarioType.GENERAL, [])

    def test_unknown_scenario_fails(self):
        """Test that an unconfigured scenario is reported."""
        with pytest.raises(ScenarioNotFoundError):
            self.selector.select_with_fallback("made-up", self.registry.list_all())

    def test_bare_name_chain_entry(self):
        """Test that chain entries may be bare backend names."""
        self.store.update_config(
            ScenarioType.GENERAL,
            primary_models=["glm-4.7"],
            fallback_models=["qwen-flash"],
        )

        selected = self.selector.select_with_fallback(
            ScenarioType.GENERAL, self.registry.list_all(), exclude=["glm-4.7"]
        )

        assert selected.name == "qwen-flash"

    def test_agent_context_on_event(self):
        """Test that caller context is copied onto the fallback event."""
        context = AgentSelectionContext(agent_type="parser", workflow_step="extract", user_id="u-9")

        self.selector.select_with_fallback(
            ScenarioType.RESUME_PARSING,
            self.registry.list_all(),
            exclude=["deepseek-r1:1.5b"],
            agent_context=context,
        )

        decision = self.selector.get_selection_log()[-1]
        assert decision.agent_type == "parser"
        assert decision.fallback_event.agent_type == "parser"
        assert decision.fallback_event.workflow_step == "extract"
        assert decision.fallback_event.user_id == "u-9"
