"""
Progress reporting for long-running pipeline stages.

Orchestrators expose a read-only progress fraction, a status and a
human-readable step description. Progress never moves backwards within a run;
reset() starts a new run.
"""

import logging
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float, str], None]


class ProgressTracker:
    """Monotonic [0, 1] progress with optional subscribers."""

    def __init__(self):
        self._progress = 0.0
        self._step = ""
        self._subscribers: List[ProgressCallback] = []

    @property
    def progress(self) -> float:
        return self._progress

    @property
    def step(self) -> str:
        return self._step

    def subscribe(self, callback: ProgressCallback):
        self._subscribers.append(callback)

    def unsubscribe(self, callback: ProgressCallback):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def reset(self, step: str = ""):
        self._progress = 0.0
        self._step = step
        self._notify()

    def update(self, progress: Optional[float] = None, step: Optional[str] = None):
        """Advance progress (clamped, never decreasing) and/or set the step text."""
        if progress is not None:
            progress = min(1.0, max(0.0, float(progress)))
            self._progress = max(self._progress, progress)
        if step is not None:
            self._step = step
            logger.debug("%s (%.0f%%)", step, self._progress * 100)
        self._notify()

    def remap(self, start: float, end: float) -> Callable[[float], None]:
        """Callback mapping a child stage's [0, 1] progress onto [start, end]."""
        def child(fraction: float):
            self.update(start + (end - start) * min(1.0, max(0.0, fraction)))
        return child

    def _notify(self):
        for callback in self._subscribers:
            callback(self._progress, self._step)
