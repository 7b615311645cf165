"""
Model selection strategies.

Four interchangeable algorithms that each reduce a candidate list to one
backend:

- Cost optimized: cheapest backend meeting a minimum quality threshold
- Quality optimized: highest backend in a configured quality ranking
- Latency optimized: fastest backend within a latency bound
- Balanced: weighted blend of cost, latency and success rate

Every strategy is a pure function of its inputs and its own configuration.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .errors import NoCandidatesError
from .registry import BackendInfo
from .scenarios import StrategyKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QualityStrategyConfig:
    """Quality ranking, later entries are higher quality."""
    ranking: Tuple[str, ...]


@dataclass(frozen=True)
class CostStrategyConfig:
    """Cost strategy parameters."""
    min_quality_threshold: float
    low_cost_models: Tuple[str, ...]

    def __post_init__(self):
        if not 1 <= self.min_quality_threshold <= 10:
            raise ValueError("min_quality_threshold must be between 1 and 10")


@dataclass(frozen=True)
class LatencyStrategyConfig:
    """Latency strategy parameters."""
    max_latency_threshold_ms: float

    def __post_init__(self):
        if self.max_latency_threshold_ms < 0:
            raise ValueError("max_latency_threshold_ms cannot be negative")


@dataclass(frozen=True)
class StrategyConfig:
    """Configuration for every selection strategy."""
    quality: QualityStrategyConfig
    cost: CostStrategyConfig
    latency: LatencyStrategyConfig


DEFAULT_STRATEGY_CONFIG = StrategyConfig(
    quality=QualityStrategyConfig(
        ranking=(
            "deepseek-r1:1.5b",
            "llama3.2:latest",
            "llama3.2:7b",
            "Qwen2.5-7B-Instruct",
            "Qwen2.5-32B-Instruct",
            "Qwen2.5-72B-Instruct",
        ),
    ),
    cost=CostStrategyConfig(
        min_quality_threshold=6,
        low_cost_models=(
            "deepseek-r1:1.5b",
            "llama3.2:latest",
            "Qwen2.5-7B-Instruct",
        ),
    ),
    latency=LatencyStrategyConfig(max_latency_threshold_ms=5000),
)


@dataclass(frozen=True)
class SelectionContext:
    """Per-request constraints handed to a strategy."""
    scenario: str
    input_tokens: Optional[int] = None
    max_latency: Optional[float] = None
    max_cost: Optional[float] = None


def matches_model_name(name: str, entry: str) -> bool:
    """Case-insensitive match on a whole hyphen-delimited boundary.

    "qwen2.5-7b-instruct" matches the entry "qwen2.5-7b" and "foo-7b" matches
    the entry "7b". Any name ending in "-<entry>" matches, whatever its family.
    """
    name_lower = name.lower()
    entry_lower = entry.lower()
    return (
        name_lower == entry_lower
        or name_lower.startswith(entry_lower + "-")
        or name_lower.endswith("-" + entry_lower)
    )


class SelectionStrategy(ABC):
    """Reduces a list of candidate backends to a single winner."""

    kind: StrategyKind
    name: str

    @abstractmethod
    def select_model(
        self,
        candidates: Sequence[BackendInfo],
        context: SelectionContext
    ) -> BackendInfo:
        """Select one backend.

        Raises:
            NoCandidatesError: If candidates is empty
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


def _require_candidates(candidates: Sequence[BackendInfo]) -> None:
    if not candidates:
        raise NoCandidatesError()


class CostOptimizedStrategy(SelectionStrategy):
    """Lowest total token cost among backends meeting the quality threshold.

    Used for high-volume, low-complexity work such as resume parsing.
    """

    kind = StrategyKind.COST
    name = "cost-optimized"

    def __init__(self, config: Optional[CostStrategyConfig] = None):
        config = config or DEFAULT_STRATEGY_CONFIG.cost
        self._min_quality_threshold = config.min_quality_threshold
        self._low_cost_models = list(config.low_cost_models)

    @property
    def min_quality_threshold(self) -> float:
        return self._min_quality_threshold

    def set_min_quality_threshold(self, threshold: float) -> None:
        """Set the 1-10 quality floor, clamping out-of-range values."""
        self._min_quality_threshold = max(1, min(10, threshold))

    @property
    def low_cost_models(self) -> Tuple[str, ...]:
        return tuple(self._low_cost_models)

    def set_low_cost_models(self, models: Sequence[str]) -> None:
        self._low_cost_models = list(models)

    def is_low_cost_model(self, backend: BackendInfo) -> bool:
        return any(matches_model_name(backend.name, entry) for entry in self._low_cost_models)

    def calculate_total_cost(
        self,
        backend: BackendInfo,
        input_tokens: int = 1000,
        output_tokens: int = 500
    ) -> float:
        """Estimated cost of one request with the given token volumes."""
        return (
            backend.cost_per_input_token * input_tokens
            + backend.cost_per_output_token * output_tokens
        )

    def _meets_quality_threshold(self, backend: BackendInfo) -> bool:
        # Backends without a rating are assumed good enough
        if backend.quality_rating is None:
            return True
        return backend.quality_rating >= self._min_quality_threshold

    def select_model(
        self,
        candidates: Sequence[BackendInfo],
        context: SelectionContext
    ) -> BackendInfo:
        _require_candidates(candidates)

        pool = [b for b in candidates if self._meets_quality_threshold(b)]
        if not pool:
            pool = list(candidates)

        if context.max_cost is not None:
            within_budget = [b for b in pool if b.total_cost <= context.max_cost]
            if within_budget:
                pool = within_budget

        # min() keeps the first of equal costs
        return min(pool, key=lambda b: b.total_cost)


class QualityOptimizedStrategy(SelectionStrategy):
    """Highest-ranked backend in a configured quality ranking.

    Used where output is user-facing, such as resume optimization.
    """

    kind = StrategyKind.QUALITY
    name = "quality-optimized"

    def __init__(self, config: Optional[QualityStrategyConfig] = None):
        config = config or DEFAULT_STRATEGY_CONFIG.quality
        self._ranking = list(config.ranking)

    @property
    def ranking(self) -> Tuple[str, ...]:
        return tuple(self._ranking)

    def update_ranking(self, ranking: Sequence[str]) -> None:
        self._ranking = list(ranking)

    def quality_rank(self, name: str) -> int:
        """Index of the first ranking entry matching name, or -1."""
        for index, entry in enumerate(self._ranking):
            if matches_model_name(name, entry):
                return index
        return -1

    def select_model(
        self,
        candidates: Sequence[BackendInfo],
        context: SelectionContext
    ) -> BackendInfo:
        _require_candidates(candidates)

        for entry in reversed(self._ranking):
            for backend in candidates:
                if matches_model_name(backend.name, entry):
                    return backend

        # Nothing ranked is on offer, degrade to whatever is available
        return candidates[0]


class LatencyOptimizedStrategy(SelectionStrategy):
    """Fastest backend within a latency bound.

    Used for real-time interaction such as interview question generation.
    """

    kind = StrategyKind.LATENCY
    name = "latency-optimized"

    def __init__(self, config: Optional[LatencyStrategyConfig] = None):
        config = config or DEFAULT_STRATEGY_CONFIG.latency
        self._max_latency_threshold = config.max_latency_threshold_ms

    @property
    def max_latency_threshold(self) -> float:
        return self._max_latency_threshold

    def set_max_latency_threshold(self, threshold: float) -> None:
        self._max_latency_threshold = max(0, threshold)

    def select_model(
        self,
        candidates: Sequence[BackendInfo],
        context: SelectionContext
    ) -> BackendInfo:
        _require_candidates(candidates)

        bound = (
            context.max_latency
            if context.max_latency is not None
            else self._max_latency_threshold
        )

        pool = [b for b in candidates if b.latency_ms <= bound]
        if not pool:
            pool = list(candidates)
            fastest = min(b.latency_ms for b in candidates)
            logger.warning(
                "All models exceed latency threshold of %sms. "
                "Minimum available latency is %sms. Selecting model with lowest latency.",
                bound, fastest
            )

        return min(pool, key=lambda b: b.latency_ms)


class BalancedStrategy(SelectionStrategy):
    """Weighted blend of cost, latency and success rate.

    Score = 0.4 * normalized cost + 0.3 * normalized latency
    + 0.3 * (1 - success rate); lowest score wins.
    """

    kind = StrategyKind.BALANCED
    name = "balanced"

    COST_WEIGHT = 0.4
    LATENCY_WEIGHT = 0.3
    RELIABILITY_WEIGHT = 0.3

    def score(self, backend: BackendInfo, max_cost: float, max_latency: float) -> float:
        cost_score = backend.total_cost / (max_cost or 1)
        latency_score = backend.latency_ms / (max_latency or 1)
        return (
            self.COST_WEIGHT * cost_score
            + self.LATENCY_WEIGHT * latency_score
            + self.RELIABILITY_WEIGHT * (1 - backend.success_rate)
        )

    def select_model(
        self,
        candidates: Sequence[BackendInfo],
        context: SelectionContext
    ) -> BackendInfo:
        _require_candidates(candidates)

        max_cost = max(b.total_cost for b in candidates)
        max_latency = max(b.latency_ms for b in candidates)

        return min(candidates, key=lambda b: self.score(b, max_cost, max_latency))


def create_strategy(
    kind: StrategyKind,
    config: Optional[StrategyConfig] = None
) -> SelectionStrategy:
    """Build the strategy for a kind from strategy configuration."""
    config = config or DEFAULT_STRATEGY_CONFIG
    kind = StrategyKind(kind)
    if kind == StrategyKind.COST:
        return CostOptimizedStrategy(config.cost)
    if kind == StrategyKind.QUALITY:
        return QualityOptimizedStrategy(config.quality)
    if kind == StrategyKind.LATENCY:
        return LatencyOptimizedStrategy(config.latency)
    return BalancedStrategy()
