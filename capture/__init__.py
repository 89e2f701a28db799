"""
Media capture module for the proctoring service.

Acquires the candidate's camera and display streams and owns their
lifecycle.
"""

from .acquisition import CaptureSession, MediaAcquisition
from .devices import MediaDevices, OpenCVMediaDevices
from .errors import (
    AcquisitionError, DeviceNotFound, PermissionDenied, UnsupportedEnvironment,
    classify_error
)
from .tracks import CameraTrack, MediaStream, MediaTrack, ScreenTrack

__all__ = [
    'AcquisitionError',
    'CameraTrack',
    'CaptureSession',
    'DeviceNotFound',
    'MediaAcquisition',
    'MediaDevices',
    'MediaStream',
    'MediaTrack',
    'OpenCVMediaDevices',
    'PermissionDenied',
    'ScreenTrack',
    'UnsupportedEnvironment',
    'classify_error'
]
