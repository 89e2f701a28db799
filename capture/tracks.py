"""
Media tracks and streams.

A track ends in one of two ways: a local ``stop()`` (releases the device
and does not notify listeners) or the source going away by itself, such as
the user ending a screen share from the OS, which fires the ended listeners
exactly once.
"""

import logging
import threading
from typing import Callable, List, Optional

import cv2
import numpy as np


LIVE = "live"
ENDED = "ended"


class MediaTrack:
    """Base class for a single live video track."""

    kind = "video"

    def __init__(self, label: str):
        self.label = label
        self._ready_state = LIVE
        self._lock = threading.Lock()
        self._ended_listeners: List[Callable[['MediaTrack'], None]] = []
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")

    @property
    def ready_state(self) -> str:
        return self._ready_state

    @property
    def is_live(self) -> bool:
        return self._ready_state == LIVE

    def add_ended_listener(self, callback: Callable[['MediaTrack'], None]) -> None:
        with self._lock:
            self._ended_listeners.append(callback)

    def stop(self) -> bool:
        """
        Stop the track and release its device.

        Returns:
            True if this call stopped the track, False if it had already ended
        """
        with self._lock:
            if self._ready_state == ENDED:
                return False
            self._ready_state = ENDED
            self._ended_listeners.clear()

        self._release()
        self.logger.debug(f"Track {self.label} stopped")
        return True

    def _end_from_source(self) -> bool:
        """Mark the track ended by its source and notify listeners once."""
        with self._lock:
            if self._ready_state == ENDED:
                return False
            self._ready_state = ENDED
            listeners = list(self._ended_listeners)
            self._ended_listeners.clear()

        self._release()
        self.logger.info(f"Track {self.label} ended by its source")

        for listener in listeners:
            try:
                listener(self)
            except Exception as e:
                self.logger.error(f"Ended listener failed for {self.label}: {e}")
        return True

    def _release(self) -> None:
        """Release the underlying device; called exactly once."""
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}(label={self.label!r}, ready_state={self._ready_state!r})"


class CameraTrack(MediaTrack):
    """Camera track backed by an OpenCV VideoCapture."""

    def __init__(self, capture, label: str = "camera"):
        super().__init__(label)
        self.capture = capture
        self._read_lock = threading.Lock()

    @property
    def width(self) -> int:
        return int(self.capture.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)

    @property
    def height(self) -> int:
        return int(self.capture.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)

    def read_frame(self) -> Optional[np.ndarray]:
        """Read the next BGR frame, None if the track is ended or the read failed."""
        if not self.is_live:
            return None

        with self._read_lock:
            if not self.is_live:
                return None
            ret, frame = self.capture.read()

        if not ret or frame is None:
            return None
        return frame

    def _release(self) -> None:
        with self._read_lock:
            self.capture.release()


class ScreenTrack(MediaTrack):
    """
    Display capture track.

    ``grabber`` returns a PIL image of the display. A failing grab means the
    display source is gone, which ends the track from the source side.
    """

    def __init__(self, grabber: Callable, label: str = "screen"):
        super().__init__(label)
        self.grabber = grabber

    def grab_frame(self) -> Optional[np.ndarray]:
        """Grab the display as a BGR frame."""
        if not self.is_live:
            return None

        try:
            image = self.grabber()
        except OSError as e:
            self.logger.warning(f"Display grab failed, ending screen track: {e}")
            self._end_from_source()
            return None

        if image is None:
            return None
        return cv2.cvtColor(np.array(image.convert("RGB")), cv2.COLOR_RGB2BGR)

    def end_sharing(self) -> bool:
        """Hook for the host's "stop sharing" control."""
        return self._end_from_source()


class MediaStream:
    """A group of tracks obtained from one media request."""

    def __init__(self, tracks: List[MediaTrack]):
        self.tracks = list(tracks)

    def get_tracks(self) -> List[MediaTrack]:
        return list(self.tracks)

    def get_video_tracks(self) -> List[MediaTrack]:
        return [track for track in self.tracks if track.kind == "video"]

    @property
    def active(self) -> bool:
        return any(track.is_live for track in self.tracks)

    def live_track_count(self) -> int:
        return sum(1 for track in self.tracks if track.is_live)

    def stop(self) -> int:
        """Stop every track; returns how many were actually stopped by this call."""
        return sum(1 for track in self.tracks if track.stop())
