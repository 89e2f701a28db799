"""
Submission gate - decides whether an assessment is flagged for review
based on the violations raised during its proctoring session.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Any

from .interfaces import ViolationSink
from .models import ViolationEvent


@dataclass
class GateDecision:
    flagged: bool
    violation_count: int
    violations: List[str] = field(default_factory=list)
    reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'flagged': self.flagged,
            'violation_count': self.violation_count,
            'violations': list(self.violations),
            'reason': self.reason
        }


class SubmissionGate(ViolationSink):
    """Accumulates violation kinds in the order they were raised."""

    def __init__(self, max_violations: int = 3):
        self.max_violations = max_violations
        self.violations: List[str] = []
        self.lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def handle_violation(self, event: ViolationEvent) -> None:
        with self.lock:
            self.violations.append(event.kind.value)

    def evaluate(self) -> GateDecision:
        """Flag the submission when the violation count exceeds the limit."""
        with self.lock:
            violations = list(self.violations)

        count = len(violations)
        flagged = count > self.max_violations
        reason = ""
        if flagged:
            reason = "Too many proctoring violations. Assessment flagged."
            self.logger.warning(f"Submission flagged with {count} violations")

        return GateDecision(flagged=flagged, violation_count=count,
                            violations=violations, reason=reason)
