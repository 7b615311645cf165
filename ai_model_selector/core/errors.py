"""
Error types for model selection.

Configuration errors surface to the caller immediately. Selection errors name
which exhaustion occurred so a request that cannot be serviced fails loudly.
"""

from typing import Optional, Sequence


class SelectorError(Exception):
    """Base class for all model selector errors."""


class DuplicateBackendError(SelectorError):
    """Raised when registering a backend name that already exists."""
    def __init__(self, name: str):
        super().__init__(f"Model {name} is already registered")
        self.name = name


class NotFoundError(SelectorError, LookupError):
    """Raised when an operation targets an unknown backend or scenario."""


class BackendNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"Model {name} not found in registry")
        self.name = name


class ScenarioNotFoundError(NotFoundError):
    def __init__(self, scenario: str):
        super().__init__(f"Scenario configuration not found for: {scenario}")
        self.scenario = scenario


class InvalidWeightsError(SelectorError, ValueError):
    """Raised when a weight triple fails the range or sum invariant."""


class InvalidScenarioConfigError(SelectorError, ValueError):
    """Raised when a scenario update would break a configuration invariant."""


class NoCandidatesError(SelectorError, ValueError):
    """Raised when a strategy is invoked with an empty candidate list."""
    def __init__(self, message: str = "No available models for selection"):
        super().__init__(message)


class NoModelsAvailableError(SelectorError):
    """Raised when the selector has no candidates at all, available or not."""
    def __init__(self, scenario: str):
        super().__init__(
            f"No models available for scenario: {scenario}. Cannot select a model."
        )
        self.scenario = scenario


class FallbackExhaustedError(SelectorError):
    """Raised when the fallback chain and the raw candidate list both fail."""
    def __init__(
        self,
        scenario: str,
        chain: Sequence[str],
        excluded: Optional[Sequence[str]] = None
    ):
        super().__init__(
            f"Fallback chain exhausted for scenario {scenario}: "
            f"tried {list(chain)}, excluded {list(excluded or [])}"
        )
        self.scenario = scenario
        self.chain = list(chain)
        self.excluded = list(excluded or [])
