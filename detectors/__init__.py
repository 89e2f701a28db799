"""
Detection components module for the proctoring service.

This module contains the object detector and the overlay renderer.
"""

from .object_detector import (
    CameraFrameSource, InferenceError, ModelHandle, ModelLoader, ModelLoadError,
    ObjectDetector
)
from .overlay import OverlayRenderer, encode_jpeg

__all__ = [
    'CameraFrameSource',
    'InferenceError',
    'ModelHandle',
    'ModelLoader',
    'ModelLoadError',
    'ObjectDetector',
    'OverlayRenderer',
    'encode_jpeg'
]
