"""
Audit records for model selection.

Defines the write-once records appended to the decision log.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple


@dataclass(frozen=True)
class FallbackEvent:
    """Record that the preferred backend was not the one used.

    Always embedded in the SelectionDecision of the request it belongs to.
    """
    timestamp: datetime
    scenario: str
    original_model: str
    fallback_model: str
    excluded_models: Tuple[str, ...] = ()
    reason: str = ""
    agent_type: Optional[str] = None
    workflow_step: Optional[str] = None
    user_id: Optional[str] = None


@dataclass(frozen=True)
class SelectionDecision:
    """Immutable audit record of one model selection.

    Append-only: once written to the decision log these records are never
    modified, and statistics are recomputed from them on demand.
    """
    timestamp: datetime
    scenario: str
    selected_model: str
    selected_provider: str
    available_models_count: int
    strategy_used: str
    model_cost: float
    model_latency: float
    model_success_rate: float
    agent_type: Optional[str] = None
    workflow_step: Optional[str] = None
    user_id: Optional[str] = None
    improvement: Optional[float] = None
    fallback_event: Optional[FallbackEvent] = None

    @property
    def is_fallback(self) -> bool:
        return self.fallback_event is not None
