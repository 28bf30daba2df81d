"""
Keeps the undo history: a bounded stack of whole-session snapshots.

Snapshots are deep copies taken before each mutation, so later changes to the
live session can never alter a stored one. When the stack is full the oldest
snapshot is dropped. There is no redo stack.
"""
from collections import deque
from typing import Optional

from config import HISTORY_LIMIT
from data_models import DeploymentConfig


class HistoryManager:
    def __init__(self, limit: int = HISTORY_LIMIT):
        self.limit = limit
        self._snapshots: deque[DeploymentConfig] = deque(maxlen=limit)

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def can_undo(self) -> bool:
        return bool(self._snapshots)

    def record_before_mutation(self, prior: DeploymentConfig) -> None:
        """Pushes a deep copy of the pre-mutation session, evicting the oldest if full."""
        self._snapshots.append(prior.model_copy(deep=True))

    def undo(self) -> Optional[DeploymentConfig]:
        """Pops and returns the most recent snapshot, or None when empty."""
        if not self._snapshots:
            return None
        return self._snapshots.pop()
