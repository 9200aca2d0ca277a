"""In-memory ledger of agent wallets and spending metrics."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass, replace
from typing import Any

DEFAULT_BUDGET = 10.0
DEFAULT_BALANCE = 100.0


@dataclass
class AgentState:
    """Virtual wallet and metrics for a single agent."""

    id: str
    balance_usdc: float = DEFAULT_BALANCE
    total_spend: float = 0.0
    payment_count: int = 0
    budget_limit: float = DEFAULT_BUDGET
    is_active: bool = True

    def to_dict(self) -> dict[str, Any]:
        """Return the state as a JSON-serialisable dictionary."""
        return asdict(self)


class Ledger:
    """Thread-safe store of agent states keyed by agent id."""

    def __init__(self) -> None:
        self._store: dict[str, AgentState] = {}
        self._lock = threading.Lock()

    def register_or_get(self, agent_id: str) -> AgentState:
        """Register the agent if unknown and return a snapshot of its state."""
        with self._lock:
            state = self._store.get(agent_id)
            if state is None:
                state = AgentState(id=agent_id)
                self._store[agent_id] = state
            return replace(state)

    def get_state(self, agent_id: str) -> AgentState | None:
        """Return a snapshot of the agent's state, or None if unknown."""
        with self._lock:
            state = self._store.get(agent_id)
            return replace(state) if state is not None else None