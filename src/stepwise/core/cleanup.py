from __future__ import annotations

import logging
from typing import Callable, List, Tuple

logger = logging.getLogger(__name__)


class CleanupChain:
    """
    Ordered list of compensating actions for a partially completed sequence.

    Steps are pushed as resources are acquired and run in reverse order by
    ``unwind()``. A failing step is logged and skipped so that the error which
    triggered the unwind stays the one the caller sees.
    """

    def __init__(self) -> None:
        self._steps: List[Tuple[str, Callable[[], object]]] = []

    def __len__(self) -> int:
        return len(self._steps)

    def push(self, description: str, action: Callable[[], object]) -> None:
        self._steps.append((description, action))

    def discard(self) -> None:
        """Forget every registered step (the sequence completed)."""
        self._steps.clear()

    def unwind(self) -> None:
        while self._steps:
            description, action = self._steps.pop()
            try:
                action()
            except Exception as exc:
                logger.warning("[stepwise] cleanup step %r failed: %s", description, exc)
