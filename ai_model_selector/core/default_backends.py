"""
Built-in backend catalog.

The backends a fresh deployment knows about before any health source has
refreshed the registry.
"""

from typing import List, Optional

from .errors import DuplicateBackendError
from .registry import BackendRegistration, ModelFamily, ModelRegistry

# Fixed catalog - prices are per token, latency is the measured average
DEFAULT_BACKENDS: List[BackendRegistration] = [
    BackendRegistration(
        name="deepseek-ai/DeepSeek-R1-0528-Qwen3-8B",
        provider="siliconcloud",
        family=ModelFamily.DEEPSEEK,
        parameter_size="8B",
        context_window=32768,
        cost_per_input_token=0.00002,
        cost_per_output_token=0.00004,
        avg_latency_ms=800,
        quality_rating=8,
        supported_features=("chat", "reasoning"),
    ),
    BackendRegistration(
        name="qwen3-max-preview",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=32768,
        cost_per_input_token=0.00004,
        cost_per_output_token=0.0001,
        avg_latency_ms=1200,
        quality_rating=9,
        supported_features=("chat", "function-calling", "reasoning", "code"),
    ),
    BackendRegistration(
        name="qwen-flash",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=32768,
        cost_per_input_token=0.00001,
        cost_per_output_token=0.00002,
        avg_latency_ms=500,
        quality_rating=7,
        supported_features=("chat", "function-calling"),
    ),
    BackendRegistration(
        name="qwen3-coder-flash",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=32768,
        cost_per_input_token=0.00001,
        cost_per_output_token=0.00002,
        avg_latency_ms=500,
        quality_rating=7,
        supported_features=("chat", "code"),
    ),
    BackendRegistration(
        name="deepseek-v3.2",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=65536,
        cost_per_input_token=0.00002,
        cost_per_output_token=0.00004,
        avg_latency_ms=1000,
        quality_rating=9,
        supported_features=("chat", "reasoning", "code"),
    ),
    BackendRegistration(
        name="kimi-k2-thinking",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=128000,
        cost_per_input_token=0.00004,
        cost_per_output_token=0.0001,
        avg_latency_ms=2500,
        quality_rating=9,
        supported_features=("chat", "reasoning"),
    ),
    BackendRegistration(
        name="Moonshot-Kimi-K2-Instruct",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=128000,
        cost_per_input_token=0.00004,
        cost_per_output_token=0.0001,
        avg_latency_ms=1800,
        quality_rating=8,
        supported_features=("chat",),
    ),
    BackendRegistration(
        name="llama-4-maverick-17b-128e-instruct",
        provider="qwen",
        family=ModelFamily.LLAMA,
        parameter_size="17B",
        context_window=128000,
        cost_per_input_token=0.00002,
        cost_per_output_token=0.00004,
        avg_latency_ms=1200,
        quality_rating=8,
        supported_features=("chat", "function-calling"),
    ),
    BackendRegistration(
        name="glm-4.7",
        provider="qwen",
        family=ModelFamily.QWEN,
        parameter_size="unknown",
        context_window=32768,
        cost_per_input_token=0.00002,
        cost_per_output_token=0.00004,
        avg_latency_ms=1000,
        quality_rating=8,
        supported_features=("chat",),
    ),
    # Local models
    BackendRegistration(
        name="deepseek-r1:1.5b",
        provider="ollama",
        family=ModelFamily.DEEPSEEK,
        parameter_size="1.5B",
        context_window=32768,
        cost_per_input_token=0.0,
        cost_per_output_token=0.0,
        avg_latency_ms=750,
        quality_rating=7,
        supported_features=("chat", "reasoning"),
    ),
]


def register_default_backends(
    registry: ModelRegistry,
    backends: Optional[List[BackendRegistration]] = None
) -> int:
    """Register the built-in catalog, skipping names already present.

    Returns:
        Number of backends newly registered
    """
    registered = 0
    for data in backends if backends is not None else DEFAULT_BACKENDS:
        try:
            registry.register(data)
        except DuplicateBackendError:
            continue
        registered += 1
    return registered
