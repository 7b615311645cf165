"""
Tests for selection statistics and the decision log.
"""
from datetime import datetime, timedelta

import pytest

from ai_model_selector.core.registry import BackendInfo
from ai_model_selector.core.selector import ModelSelector
from ai_model_selector.core.statistics import compute_selection_statistics
from ai_model_selector.storage.decision_log import DecisionLog
from ai_model_selector.storage.models import FallbackEvent, SelectionDecision


def make_decision(model="m1", scenario="general", cost=0.01, latency=100.0,
                  success=1.0, strategy="balanced", timestamp=None, fallback=False):
    """Create a test decision."""
    timestamp = timestamp or datetime.now()
    event = None
    if fallback:
        event = FallbackEvent(
            timestamp=timestamp,
            scenario=scenario,
            original_model="primary",
            fallback_model=model,
        )
    return SelectionDecision(
        timestamp=timestamp,
        scenario=scenario,
        selected_model=model,
        selected_provider="test",
        available_models_count=2,
        strategy_used=strategy,
        model_cost=cost,
        model_latency=latency,
        model_success_rate=success,
        fallback_event=event,
    )


class TestComputeStatistics:
    """Test aggregation over decisions."""

    def test_empty(self):
        """Test that no decisions give empty statistics."""
        stats = compute_selection_statistics([])

        assert stats.total_selections == 0
        assert stats.scenario_stats == {}
        assert stats.model_stats == {}
        assert stats.strategy_stats == {}

    def test_scenario_aggregates(self):
        """Test per-scenario counts and averages."""
        decisions = [
            make_decision("m1", cost=0.01, latency=100, success=1.0),
            make_decision("m2", cost=0.03, latency=300, success=0.5, fallback=True),
            make_decision("m1", scenario="resume-parsing", strategy="cost-optimized"),
        ]

        stats = compute_selection_statistics(decisions)

        assert stats.total_selections == 3
        general = stats.scenario_stats["general"]
        assert general.count == 2
        assert general.avg_cost == pytest.approx(0.02)
        assert general.avg_latency == pytest.approx(200.0)
        assert general.success_rate == pytest.approx(0.75)
        assert general.fallback_count == 1
        assert general.models == {"m1": 1, "m2": 1}

    def test_model_running_means(self):
        """Test that model averages equal the arithmetic mean."""
        decisions = [
            make_decision("m1", cost=0.01, latency=100, success=1.0),
            make_decision("m1", scenario="resume-parsing", cost=0.02, latency=200, success=0.8),
            make_decision("m1", cost=0.06, latency=600, success=0.6),
        ]

        stats = compute_selection_statistics(decisions)

        model = stats.model_stats["m1"]
        assert model.count == 3
        assert model.scenarios == {"general", "resume-parsing"}
        assert model.avg_cost == pytest.approx(0.03)
        assert model.avg_latency == pytest.approx(300.0)
        assert model.success_rate == pytest.approx(0.8)

    def test_strategy_counts(self):
        """Test counting decisions per strategy tag."""
        decisions = [
            make_decision(strategy="balanced"),
            make_decision(strategy="balanced"),
            make_decision(strategy="fallback-chain"),
        ]

        stats = compute_selection_statistics(decisions)

        assert stats.strategy_stats == {"balanced": 2, "fallback-chain": 1}


class TestDecisionLog:
    """Test the append-only decision log."""

    def setup_method(self):
        self.log = DecisionLog()
        self.now = datetime(2026, 1, 15, 12, 0, 0)

    def test_recent_keeps_order(self):
        """Test that recent decisions come back oldest first."""
        for i in range(5):
            self.log.append(make_decision(f"m{i}"))

        assert [d.selected_model for d in self.log.recent(3)] == ["m2", "m3", "m4"]
        assert len(self.log.recent()) == 5
        assert len(self.log) == 5

    def test_recent_returns_copy(self):
        """Test that callers cannot alter the ledger through a read."""
        self.log.append(make_decision())
        snapshot = self.log.recent()
        snapshot.clear()

        assert len(self.log) == 1

    def test_between_inclusive_bounds(self):
        """Test that both time bounds are inclusive."""
        for offset in range(5):
            self.log.append(make_decision(f"m{offset}", timestamp=self.now + timedelta(hours=offset)))

        window = self.log.between(self.now + timedelta(hours=1), self.now + timedelta(hours=3))

        assert [d.selected_model for d in window] == ["m1", "m2", "m3"]
        assert len(self.log.between(start=self.now + timedelta(hours=4))) == 1
        assert len(self.log.between(end=self.now)) == 1
        assert len(self.log.between()) == 5

    def test_clear(self):
        """Test clearing the ledger."""
        self.log.append(make_decision())
        self.log.clear()

        assert len(self.log) == 0


class TestSelectorStatistics:
    """Test statistics through the selector."""

    def test_statistics_over_window(self):
        """Test that the selector aggregates only decisions inside the window."""
        log = DecisionLog()
        now = datetime.now()
        log.append(make_decision("old", timestamp=now - timedelta(days=2)))
        selector = ModelSelector(decision_log=log)
        selector.select_model([BackendInfo(name="fresh", provider="test")], "general")

        recent = selector.get_selection_statistics(start=now - timedelta(hours=1))
        everything = selector.get_selection_statistics()

        assert recent.total_selections == 1
        assert list(recent.model_stats) == ["fresh"]
        assert everything.total_selections == 2
