"""
Violation Monitor - classifies detections and page signals into violations.

The monitor is a per-session state machine:

    IDLE -> ARMED -> (MONITORING <-> SUSPENDED) -> STOPPED

Detector-driven violations (people count, phone) are debounced per kind.
Tab switches and screen-share termination are discrete signals and are
raised immediately. Every raised violation increments the session counter,
posts a transient notice and is published on the violation bus.
"""

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Any

from .debounce import ViolationDebouncer
from .events import ViolationBus
from .models import (
    DetectionFrame, MonitorState, ViolationEvent, ViolationKind,
    PERSON_LABEL, PHONE_LABEL
)
from .notices import NoticeBoard


ACTIVE_STATES = (MonitorState.ARMED, MonitorState.MONITORING)


def classify_detections(frame: DetectionFrame) -> List[Tuple[ViolationKind, Dict[str, Any]]]:
    """
    Turn one tick's detections into candidate violations.

    Args:
        frame: Detections of a single tick

    Returns:
        List of (kind, metadata) candidates, in a fixed order
    """
    candidates = []
    person_count = frame.count(PERSON_LABEL)

    if person_count > 1:
        candidates.append((ViolationKind.MULTIPLE_PEOPLE, {'person_count': person_count}))
    elif person_count == 0:
        candidates.append((ViolationKind.NO_PERSON, {'person_count': 0}))

    if frame.has(PHONE_LABEL):
        phones = [box for box in frame.boxes if box.label == PHONE_LABEL]
        candidates.append((ViolationKind.PHONE_DETECTED, {
            'phone_count': len(phones),
            'best_score': max(box.score for box in phones)
        }))

    return candidates


class ViolationMonitor:
    """
    Per-session violation state machine.
    """

    def __init__(
        self,
        bus: Optional[ViolationBus] = None,
        notices: Optional[NoticeBoard] = None,
        debouncer: Optional[ViolationDebouncer] = None
    ):
        """
        Initialize the monitor.

        Args:
            bus: Bus that receives every raised ViolationEvent
            notices: Board for transient user-facing notices
            debouncer: Filter applied to detector-driven violations
        """
        self.bus = bus or ViolationBus()
        self.notices = notices or NoticeBoard()
        self.debouncer = debouncer or ViolationDebouncer()
        self.logger = logging.getLogger(f"{__name__}.ViolationMonitor")

        self._lock = threading.RLock()
        self._state = MonitorState.IDLE
        self._count = 0
        self._history: List[ViolationEvent] = []
        self._detection_enabled = True
        self._page_hidden = False
        self._screen_stop_reported = False
        self.ticks_processed = 0
        self.ticks_failed = 0

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def violation_count(self) -> int:
        return self._count

    @property
    def violations(self) -> Tuple[ViolationEvent, ...]:
        with self._lock:
            return tuple(self._history)

    @property
    def detection_enabled(self) -> bool:
        return self._detection_enabled

    def counts_by_kind(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        with self._lock:
            for event in self._history:
                counts[event.kind.value] = counts.get(event.kind.value, 0) + 1
        return counts

    # State transitions

    def arm(self, detection_enabled: bool = True) -> bool:
        """
        Arm the monitor once capture is acquired and the model is settled.

        With detection disabled no frame tick will ever arrive, so the
        monitor goes straight to MONITORING on non-AI signals only.

        Returns:
            True if the monitor was armed
        """
        with self._lock:
            if self._state not in (MonitorState.IDLE, MonitorState.SUSPENDED):
                self.logger.debug(f"Ignoring arm() in state {self._state.value}")
                return False

            self._detection_enabled = detection_enabled
            self._page_hidden = False
            self._screen_stop_reported = False
            self.debouncer.reset()
            self._state = MonitorState.ARMED if detection_enabled else MonitorState.MONITORING
            self.logger.info(f"Monitor armed (detection_enabled={detection_enabled})")
            return True

    def suspend(self) -> bool:
        """Enter SUSPENDED after an external deactivation."""
        with self._lock:
            if self._state not in ACTIVE_STATES:
                return False
            self._state = MonitorState.SUSPENDED
            self.logger.info("Monitor suspended")
            return True

    def stop(self) -> None:
        """Terminal transition; safe to call repeatedly."""
        with self._lock:
            if self._state is not MonitorState.STOPPED:
                self._state = MonitorState.STOPPED
                self.logger.info(f"Monitor stopped after {self._count} violations")

    # Signals

    def process_frame(self, frame: Optional[DetectionFrame]) -> List[ViolationEvent]:
        """
        Consume one detection tick.

        Never raises; a failing tick is counted and skipped.

        Returns:
            Violations raised by this tick
        """
        raised: List[ViolationEvent] = []
        with self._lock:
            if self._state not in ACTIVE_STATES or not self._detection_enabled or frame is None:
                return raised

            try:
                if self._state is MonitorState.ARMED:
                    self._state = MonitorState.MONITORING
                    self.logger.info("Monitor entered MONITORING on first frame tick")

                self.ticks_processed += 1
                for kind, metadata in classify_detections(frame):
                    if self.debouncer.should_emit(kind):
                        raised.append(self._raise(kind, metadata))
            except Exception as e:
                self.ticks_failed += 1
                self.logger.debug(f"Skipping tick after error: {e}")

        return raised

    def report_visibility(self, hidden: bool) -> Optional[ViolationEvent]:
        """
        Record a page visibility change.

        Raises one TAB_SWITCH per visible -> hidden transition.
        """
        with self._lock:
            was_hidden = self._page_hidden
            self._page_hidden = bool(hidden)

            if hidden and not was_hidden and self._state in ACTIVE_STATES:
                return self._raise(ViolationKind.TAB_SWITCH, {})
        return None

    def report_screen_share_stopped(self) -> Optional[ViolationEvent]:
        """Raise SCREEN_SHARE_STOPPED once per arming."""
        with self._lock:
            if self._state not in ACTIVE_STATES or self._screen_stop_reported:
                return None
            self._screen_stop_reported = True
            return self._raise(ViolationKind.SCREEN_SHARE_STOPPED, {})

    def _raise(self, kind: ViolationKind, metadata: Dict[str, Any]) -> ViolationEvent:
        self._count += 1
        event = ViolationEvent(kind=kind, timestamp=datetime.now(),
                               count=self._count, metadata=metadata)
        self._history.append(event)
        self.logger.info(f"Violation raised: {event}")

        try:
            self.notices.post_violation(kind)
        except Exception as e:
            self.logger.error(f"Failed to post notice for {kind.value}: {e}")

        self.bus.publish(event)
        return event

    def get_status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'state': self._state.value,
                'violation_count': self._count,
                'detection_enabled': self._detection_enabled,
                'page_hidden': self._page_hidden,
                'ticks_processed': self.ticks_processed,
                'ticks_failed': self.ticks_failed,
                'counts_by_kind': self.counts_by_kind(),
                'debounce': self.debouncer.get_suppression_stats()
            }
