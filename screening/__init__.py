"""
Resume screening for job applications.
"""

from .resume_match import (
    ResumeMatcher, ResumeTextError, build_notification, categorize,
    extract_jd_keywords, fallback_match, summarize_applications
)

__all__ = [
    'ResumeMatcher',
    'ResumeTextError',
    'build_notification',
    'categorize',
    'extract_jd_keywords',
    'fallback_match',
    'summarize_applications'
]
