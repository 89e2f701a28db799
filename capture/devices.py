"""
Host media devices - camera and display capture through OpenCV and Pillow.
"""

import logging
import os
import sys
from abc import ABC, abstractmethod

import cv2

from .tracks import CameraTrack, MediaStream, ScreenTrack


class MediaDevices(ABC):
    """
    Abstract host platform media API.

    Implementations raise PermissionError, FileNotFoundError or any other
    exception on failure; callers classify them with classify_error().
    """

    @abstractmethod
    def get_user_media(self, width: int, height: int, facing_mode: str = "user") -> MediaStream:
        """Open a camera stream (video only) at a bounded resolution."""
        pass

    @abstractmethod
    def get_display_media(self, display_surface: str = "monitor") -> MediaStream:
        """Open a display capture stream."""
        pass


class OpenCVMediaDevices(MediaDevices):
    """Local webcam through cv2.VideoCapture and display capture through PIL.ImageGrab."""

    def __init__(self, camera_index: int = 0):
        self.camera_index = camera_index
        self.logger = logging.getLogger(__name__)

    def get_user_media(self, width: int, height: int, facing_mode: str = "user") -> MediaStream:
        self._check_device_permissions()

        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise FileNotFoundError(f"Could not open video source: {self.camera_index}")

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        self.logger.info(f"Camera {self.camera_index} opened ({facing_mode}, {width}x{height} requested)")
        return MediaStream([CameraTrack(capture, label=f"camera:{self.camera_index}")])

    def get_display_media(self, display_surface: str = "monitor") -> MediaStream:
        from PIL import ImageGrab

        # Grab once so an unavailable display fails the request up front
        ImageGrab.grab()

        self.logger.info(f"Display capture opened ({display_surface})")
        return MediaStream([ScreenTrack(ImageGrab.grab, label=f"screen:{display_surface}")])

    def _check_device_permissions(self) -> None:
        """On Linux, tell a missing device apart from an unreadable one."""
        if not sys.platform.startswith("linux"):
            return

        device_path = f"/dev/video{self.camera_index}"
        if not os.path.exists(device_path):
            raise FileNotFoundError(f"No camera device at {device_path}")
        if not os.access(device_path, os.R_OK):
            raise PermissionError(f"Access to {device_path} denied")
