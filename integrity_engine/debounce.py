"""
Violation debouncing.

Raw per-tick detections flicker at camera frame rates, so detector-driven
violations go through a minimum-interval window per violation kind: the
first tick of a condition is emitted right away, and further ticks of the
same kind are suppressed until the window has elapsed.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional, Any

from .models import ViolationKind


class ViolationDebouncer:
    """Minimum-interval-since-last-emission filter, one window per kind."""

    def __init__(
        self,
        window_seconds: float = 1.0,
        clock: Optional[Callable[[], float]] = None,
        windows: Optional[Dict[ViolationKind, float]] = None
    ):
        """
        Initialize the debouncer.

        Args:
            window_seconds: Default suppression window applied to every kind
            clock: Monotonic time source in seconds
            windows: Optional per-kind overrides of the window
        """
        if window_seconds < 0:
            raise ValueError("window_seconds must be non-negative")

        self.window_seconds = window_seconds
        self.windows = dict(windows or {})
        self.clock = clock or time.monotonic
        self.last_emitted: Dict[ViolationKind, float] = {}
        self.suppressed_counts: Dict[ViolationKind, int] = {}
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def window_for(self, kind: ViolationKind) -> float:
        return self.windows.get(kind, self.window_seconds)

    def should_emit(self, kind: ViolationKind) -> bool:
        """
        Decide whether a candidate violation of this kind is emitted now.

        Records the emission time when it returns True.
        """
        with self.lock:
            now = self.clock()
            last = self.last_emitted.get(kind)

            if last is not None and now - last < self.window_for(kind):
                self.suppressed_counts[kind] = self.suppressed_counts.get(kind, 0) + 1
                return False

            self.last_emitted[kind] = now
            return True

    def reset(self) -> None:
        """Forget all emission history."""
        with self.lock:
            self.last_emitted.clear()
            self.suppressed_counts.clear()

    def get_suppression_stats(self) -> Dict[str, Any]:
        """Get statistics about suppressed candidates."""
        with self.lock:
            return {
                'window_seconds': self.window_seconds,
                'suppressed_by_kind': {
                    kind.value: count for kind, count in self.suppressed_counts.items()
                },
                'total_suppressed': sum(self.suppressed_counts.values())
            }
