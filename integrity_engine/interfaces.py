"""
Integrity Engine Interfaces - Base classes for frame sources and violation sinks.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple

import numpy as np


class FrameSource(ABC):
    """
    Abstract base class for anything the detector can sample frames from.
    """

    @abstractmethod
    def is_frame_ready(self) -> bool:
        """Return True once the source can deliver a current frame."""
        pass

    @abstractmethod
    def grab_frame(self) -> Optional[np.ndarray]:
        """Return the current BGR frame, or None if none is available."""
        pass

    @property
    def dimensions(self) -> Tuple[int, int]:
        """Pixel (width, height) of the source, (0, 0) when unknown."""
        return (0, 0)


class ViolationSink(ABC):
    """
    Abstract base class for consumers that want to observe violations.
    """

    @abstractmethod
    def handle_violation(self, event) -> None:
        """Receive a single ViolationEvent."""
        pass

    def __call__(self, event) -> None:
        self.handle_violation(event)
