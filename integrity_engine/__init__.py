"""
Integrity Engine Package - Proctoring Service

This package contains the violation model, the per-session violation
monitor and its collaborators. The session composition root lives in
integrity_engine.session.
"""

from .config import ConfigurationError, ConfigurationService, ProctoringConfig, ScreeningConfig
from .debounce import ViolationDebouncer
from .events import Subscription, ViolationBus
from .gate import GateDecision, SubmissionGate
from .models import (
    BoundingBox, DetectionFrame, MonitorState, ViolationEvent, ViolationKind
)
from .monitor import ViolationMonitor, classify_detections
from .notices import NoticeBoard

__all__ = [
    'BoundingBox',
    'ConfigurationError',
    'ConfigurationService',
    'DetectionFrame',
    'GateDecision',
    'MonitorState',
    'NoticeBoard',
    'ProctoringConfig',
    'ScreeningConfig',
    'SubmissionGate',
    'Subscription',
    'ViolationBus',
    'ViolationDebouncer',
    'ViolationEvent',
    'ViolationKind',
    'ViolationMonitor',
    'classify_detections'
]
