"""
In-memory decision log.

Append-only store of selection decisions. Nothing is persisted: a host that
needs history across restarts must export the records itself.
"""

import threading
from datetime import datetime
from typing import List, Optional

from .models import SelectionDecision


class DecisionLog:
    """Append-only, in-memory ledger of selection decisions.

    This class is the single owner of the decision history. Reads return new
    lists of immutable records, so callers cannot alter the ledger.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._decisions: List[SelectionDecision] = []

    def append(self, decision: SelectionDecision) -> None:
        """Append a single decision to the ledger."""
        with self._lock:
            self._decisions.append(decision)

    def recent(self, limit: int = 100) -> List[SelectionDecision]:
        """Get the most recent decisions, oldest first.

        Args:
            limit: Maximum number of decisions to return

        Returns:
            Up to ``limit`` decisions in the order they were recorded
        """
        if limit <= 0:
            return []
        with self._lock:
            return self._decisions[-limit:]

    def between(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[SelectionDecision]:
        """Get decisions with start <= timestamp <= end.

        Either bound may be omitted to leave that side open.
        """
        with self._lock:
            decisions = list(self._decisions)
        return [
            d for d in decisions
            if (start is None or d.timestamp >= start)
            and (end is None or d.timestamp <= end)
        ]

    def clear(self) -> None:
        with self._lock:
            self._decisions = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._decisions)
