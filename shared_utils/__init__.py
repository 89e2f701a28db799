"""
Shared Utilities Package - Common utilities for the proctoring service.
"""

from .detection_utils import normalize_confidence
from .records import (
    AssessmentResult, Feedback, Interview, Job, Notification, RecordValidationError,
    ResumeAnalysis
)

__all__ = [
    'AssessmentResult',
    'Feedback',
    'Interview',
    'Job',
    'Notification',
    'RecordValidationError',
    'ResumeAnalysis',
    'normalize_confidence'
]
