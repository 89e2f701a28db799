"""
Transient user-facing notices shown by the assessment page.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Any

from .models import ViolationKind


VIOLATION_MESSAGES = {
    ViolationKind.MULTIPLE_PEOPLE: ("warning", "Multiple people detected!"),
    ViolationKind.NO_PERSON: ("warning", "No person detected!"),
    ViolationKind.PHONE_DETECTED: ("error", "Cell phone detected!"),
    ViolationKind.SCREEN_SHARE_STOPPED: ("error", "Screen sharing stopped! This is a violation."),
    ViolationKind.TAB_SWITCH: ("warning", "Warning: Tab switching detected!"),
}

LEVELS = ('info', 'success', 'warning', 'error')


def violation_message(kind: ViolationKind) -> str:
    """Get user-friendly notice text for a violation kind."""
    return VIOLATION_MESSAGES.get(kind, ("warning", "Suspicious activity detected"))[1]


@dataclass
class Notice:
    level: str
    message: str
    created_at: float
    expires_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'level': self.level,
            'message': self.message,
            'created_at': self.created_at,
            'expires_at': self.expires_at
        }


class NoticeBoard:
    """Holds notices until their TTL runs out."""

    def __init__(self, ttl_seconds: float = 4.0, clock: Optional[Callable[[], float]] = None,
                 max_notices: int = 20):
        self.ttl_seconds = ttl_seconds
        self.clock = clock or time.monotonic
        self.max_notices = max_notices
        self.notices: List[Notice] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def post(self, level: str, message: str) -> Notice:
        """Post a notice at one of the LEVELS."""
        if level not in LEVELS:
            raise ValueError(f"Unknown notice level: {level}")

        now = self.clock()
        notice = Notice(level=level, message=message, created_at=now,
                        expires_at=now + self.ttl_seconds)

        with self.lock:
            self._prune(now)
            self.notices.append(notice)
            if len(self.notices) > self.max_notices:
                self.notices = self.notices[-self.max_notices:]
        return notice

    def post_violation(self, kind: ViolationKind) -> Notice:
        level, message = VIOLATION_MESSAGES.get(kind, ("warning", "Suspicious activity detected"))
        return self.post(level, message)

    def active(self) -> List[Notice]:
        """Notices that have not expired yet, oldest first."""
        with self.lock:
            self._prune(self.clock())
            return list(self.notices)

    def clear(self) -> None:
        with self.lock:
            self.notices.clear()

    def _prune(self, now: float) -> None:
        self.notices = [n for n in self.notices if n.expires_at > now]
