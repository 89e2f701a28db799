"""
Integrity Engine Models - Data models for detections and violation events.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Any, Optional, List


class ViolationKind(Enum):
    """Enumeration of integrity violation kinds."""
    MULTIPLE_PEOPLE = "multiple-people"
    NO_PERSON = "no-person"
    PHONE_DETECTED = "phone-detected"
    SCREEN_SHARE_STOPPED = "screen-share-stopped"
    TAB_SWITCH = "tab-switch"

    @property
    def is_ai_based(self) -> bool:
        """True for kinds that can only come from the object detector."""
        return self in (
            ViolationKind.MULTIPLE_PEOPLE,
            ViolationKind.NO_PERSON,
            ViolationKind.PHONE_DETECTED,
        )


class MonitorState(Enum):
    """States of the per-session violation monitor."""
    IDLE = "idle"
    ARMED = "armed"
    MONITORING = "monitoring"
    SUSPENDED = "suspended"
    STOPPED = "stopped"


# COCO class names the monitor classifies on
PERSON_LABEL = "person"
PHONE_LABEL = "cell phone"


@dataclass(frozen=True)
class BoundingBox:
    """A single detected object in pixel coordinates of its frame."""
    label: str
    score: float
    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'class': self.label,
            'score': self.score,
            'x': self.x,
            'y': self.y,
            'w': self.width,
            'h': self.height
        }


@dataclass(frozen=True)
class DetectionFrame:
    """
    Detections produced by one detection tick.

    Frame dimensions are the pixel size of the image the boxes refer to,
    so a renderer can rescale them onto a differently sized target.
    """
    boxes: List[BoundingBox] = field(default_factory=list)
    frame_width: int = 0
    frame_height: int = 0

    def count(self, label: str) -> int:
        """Number of boxes carrying the given class label."""
        return sum(1 for box in self.boxes if box.label == label)

    def has(self, label: str) -> bool:
        """Whether any box carries the given class label."""
        return any(box.label == label for box in self.boxes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'boxes': [box.to_dict() for box in self.boxes],
            'frame_width': self.frame_width,
            'frame_height': self.frame_height
        }


class ViolationEvent:
    """
    A raised integrity violation.

    Events are never mutated after creation; ``count`` is the value of the
    session's violation counter right after this event was counted.
    """

    __slots__ = ('kind', 'timestamp', 'count', 'metadata', 'event_id')

    def __init__(
        self,
        kind: ViolationKind,
        timestamp: datetime,
        count: int,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """Initialize a violation event."""
        object.__setattr__(self, 'kind', kind)
        object.__setattr__(self, 'timestamp', timestamp)
        object.__setattr__(self, 'count', count)
        object.__setattr__(self, 'metadata', dict(metadata or {}))
        object.__setattr__(
            self, 'event_id',
            f"{kind.value}_{count}_{timestamp.strftime('%Y%m%d_%H%M%S_%f')}"
        )

    def __setattr__(self, name, value):
        raise AttributeError("ViolationEvent is immutable")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'event_id': self.event_id,
            'kind': self.kind.value,
            'timestamp': self.timestamp.isoformat(),
            'count': self.count,
            'metadata': dict(self.metadata)
        }

    def __str__(self) -> str:
        return f"ViolationEvent({self.kind.value}, #{self.count})"

    def __repr__(self) -> str:
        return (f"ViolationEvent(kind={self.kind}, timestamp={self.timestamp}, "
                f"count={self.count}, metadata_keys={list(self.metadata.keys())})")
