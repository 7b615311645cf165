"""
Backend registry.

Owns the catalog of known language-model backends together with their
capability, cost, latency and health attributes.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .errors import BackendNotFoundError, DuplicateBackendError

logger = logging.getLogger(__name__)


class ModelFamily(Enum):
    """Model families known to the registry."""
    QWEN = "qwen"
    LLAMA = "llama"
    DEEPSEEK = "deepseek"
    MISTRAL = "mistral"
    ZHIPU = "zhipu"
    META = "meta"
    OPENAI = "openai"
    GOOGLE = "google"
    BAI = "bai"
    OTHER = "other"


class HealthStatus(Enum):
    """Health states reported by the hosting service's health checks."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"


@dataclass(frozen=True)
class BackendInfo:
    """Descriptor of a callable language-model backend.

    Instances are immutable, so values handed out by the registry can be
    shared freely. Registry updates store a replaced copy.
    """
    name: str
    provider: str
    cost_per_input_token: float = 0.0
    cost_per_output_token: float = 0.0
    latency_ms: float = 0.0
    success_rate: float = 1.0
    is_available: bool = True
    context_window: int = 0
    quality_rating: Optional[float] = None
    family: ModelFamily = ModelFamily.OTHER
    parameter_size: str = "unknown"
    supported_features: Tuple[str, ...] = ()
    status: str = STATUS_ACTIVE
    health_status: HealthStatus = HealthStatus.HEALTHY
    last_health_check_at: Optional[datetime] = None

    @property
    def total_cost(self) -> float:
        """Combined cost of one input token and one output token."""
        return self.cost_per_input_token + self.cost_per_output_token

    @property
    def qualified_name(self) -> str:
        return f"{self.provider}:{self.name}"


@dataclass(frozen=True)
class BackendRegistration:
    """Data required to register a backend."""
    name: str
    provider: str
    family: ModelFamily
    parameter_size: str
    context_window: int
    cost_per_input_token: float
    cost_per_output_token: float
    avg_latency_ms: float
    quality_rating: Optional[float] = None
    supported_features: Tuple[str, ...] = field(default_factory=tuple)
    is_available: bool = True
    status: Optional[str] = None

    def __post_init__(self):
        """Validate registration values."""
        if not self.name or not self.name.strip():
            raise ValueError("name is required and cannot be empty")
        if not self.provider or not self.provider.strip():
            raise ValueError("provider is required and cannot be empty")
        if self.cost_per_input_token < 0 or self.cost_per_output_token < 0:
            raise ValueError("token costs cannot be negative")
        if self.avg_latency_ms < 0:
            raise ValueError("avg_latency_ms cannot be negative")
        if self.quality_rating is not None and not 1 <= self.quality_rating <= 10:
            raise ValueError("quality_rating must be between 1 and 10")


class ModelRegistry:
    """Registry of every backend known to the system.

    All operations are guarded by a single lock so the registry can be shared
    by a multi-threaded host.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._backends: Dict[str, BackendInfo] = {}
        self._by_family: Dict[ModelFamily, List[str]] = {}
        self._initialize_family_index()

    def _initialize_family_index(self) -> None:
        self._by_family = {family: [] for family in ModelFamily}

    def register(self, data: BackendRegistration) -> BackendInfo:
        """Register a new backend.

        Args:
            data: Registration payload

        Returns:
            The stored backend descriptor

        Raises:
            DuplicateBackendError: If a backend with the same name exists
        """
        with self._lock:
            if data.name in self._backends:
                raise DuplicateBackendError(data.name)

            backend = BackendInfo(
                name=data.name,
                provider=data.provider,
                family=data.family,
                parameter_size=data.parameter_size,
                context_window=data.context_window,
                cost_per_input_token=data.cost_per_input_token,
                cost_per_output_token=data.cost_per_output_token,
                latency_ms=data.avg_latency_ms,
                quality_rating=data.quality_rating,
                supported_features=tuple(data.supported_features),
                is_available=data.is_available,
                status=data.status or (STATUS_ACTIVE if data.is_available else STATUS_INACTIVE),
                success_rate=1.0,
                health_status=HealthStatus.HEALTHY,
                last_health_check_at=datetime.now(),
            )
            self._backends[data.name] = backend
            self._by_family[data.family].append(data.name)

        logger.info(
            "Registered model: %s (%s, %s)",
            data.name, data.family.value, data.parameter_size
        )
        return backend

    def get(self, name: str) -> Optional[BackendInfo]:
        with self._lock:
            return self._backends.get(name)

    def list_by_family(self, family: ModelFamily) -> List[BackendInfo]:
        with self._lock:
            return [
                self._backends[name]
                for name in self._by_family.get(family, [])
                if name in self._backends
            ]

    def list_available(self) -> List[BackendInfo]:
        with self._lock:
            return [b for b in self._backends.values() if b.is_available]

    def list_all(self) -> List[BackendInfo]:
        with self._lock:
            return list(self._backends.values())

    def count(self) -> int:
        with self._lock:
            return len(self._backends)

    def available_count(self) -> int:
        return len(self.list_available())

    def exists(self, name: str) -> bool:
        with self._lock:
            return name in self._backends

    def set_availability(self, name: str, is_available: bool) -> BackendInfo:
        """Flip a backend's availability and its derived status.

        Raises:
            BackendNotFoundError: If the backend is unknown
        """
        with self._lock:
            backend = self._require(name)
            updated = replace(
                backend,
                is_available=is_available,
                status=STATUS_ACTIVE if is_available else STATUS_INACTIVE,
                last_health_check_at=datetime.now(),
            )
            self._backends[name] = updated

        logger.info(
            "Updated model status: %s -> %s",
            name, "available" if is_available else "unavailable"
        )
        return updated

    def update_metrics(
        self,
        name: str,
        latency_ms: Optional[float] = None,
        success_rate: Optional[float] = None
    ) -> BackendInfo:
        """Merge fresh performance metrics into a backend.

        Only the metrics that are supplied are changed.

        Raises:
            BackendNotFoundError: If the backend is unknown
            ValueError: If a metric is out of range
        """
        if latency_ms is not None and latency_ms < 0:
            raise ValueError("latency_ms cannot be negative")
        if success_rate is not None and not 0.0 <= success_rate <= 1.0:
            raise ValueError("success_rate must be between 0 and 1")

        with self._lock:
            backend = self._require(name)
            changes = {"last_health_check_at": datetime.now()}
            if latency_ms is not None:
                changes["latency_ms"] = latency_ms
            if success_rate is not None:
                changes["success_rate"] = success_rate
            updated = replace(backend, **changes)
            self._backends[name] = updated

        logger.debug("Updated metrics for model: %s", name)
        return updated

    def set_health(self, name: str, status: HealthStatus) -> BackendInfo:
        """Record a health check result.

        An unhealthy backend is also marked unavailable. Healthy and degraded
        results leave availability untouched.

        Raises:
            BackendNotFoundError: If the backend is unknown
        """
        status = HealthStatus(status)
        with self._lock:
            backend = self._require(name)
            changes = {
                "health_status": status,
                "last_health_check_at": datetime.now(),
            }
            if status == HealthStatus.UNHEALTHY:
                changes["is_available"] = False
                changes["status"] = STATUS_INACTIVE
            updated = replace(backend, **changes)
            self._backends[name] = updated

        logger.info("Updated health status for model: %s -> %s", name, status.value)
        return updated

    def clear(self) -> None:
        with self._lock:
            self._backends.clear()
            self._initialize_family_index()
        logger.info("Model registry cleared")

    def _require(self, name: str) -> BackendInfo:
        backend = self._backends.get(name)
        if backend is None:
            raise BackendNotFoundError(name)
        return backend
