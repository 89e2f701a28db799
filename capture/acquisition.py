"""
Media acquisition - owns the camera + screen capture session lifecycle.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .devices import MediaDevices
from .errors import classify_error
from .tracks import CameraTrack, MediaStream, MediaTrack


@dataclass
class CaptureSession:
    """The live pairing of camera and screen streams for one proctoring run."""
    camera_stream: MediaStream
    screen_stream: MediaStream
    active: bool = True

    @property
    def camera_track(self) -> Optional[CameraTrack]:
        tracks = self.camera_stream.get_video_tracks()
        return tracks[0] if tracks else None

    @property
    def screen_track(self) -> Optional[MediaTrack]:
        tracks = self.screen_stream.get_video_tracks()
        return tracks[0] if tracks else None

    def live_track_count(self) -> int:
        return self.camera_stream.live_track_count() + self.screen_stream.live_track_count()

    def stop(self) -> int:
        """Mark inactive and stop every track; returns how many this call stopped."""
        self.active = False
        return self.camera_stream.stop() + self.screen_stream.stop()


class MediaAcquisition:
    """
    Requests the camera and then the screen, sequentially.

    Any failure aborts the whole acquisition: nothing acquired so far is
    kept, and the error surfaces classified as an AcquisitionError.
    """

    def __init__(self, devices: MediaDevices, width: int = 1280, height: int = 720):
        """
        Initialize media acquisition.

        Args:
            devices: Host media API
            width: Requested camera width (ideal, not exact)
            height: Requested camera height (ideal, not exact)
        """
        self.devices = devices
        self.width = width
        self.height = height
        self.session: Optional[CaptureSession] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def acquire(self, on_screen_ended: Optional[Callable[[], None]] = None) -> CaptureSession:
        """
        Acquire a capture session.

        Args:
            on_screen_ended: Called when the screen track is ended by the OS
                rather than by release()

        Returns:
            The active CaptureSession

        Raises:
            AcquisitionError: PermissionDenied, DeviceNotFound or UnsupportedEnvironment
        """
        with self._lock:
            if self.session is not None and self.session.active:
                return self.session

        try:
            camera_stream = self.devices.get_user_media(self.width, self.height, facing_mode="user")
        except Exception as e:
            error = classify_error(e)
            self.logger.warning(f"Camera acquisition failed ({error.reason}): {e}")
            raise error from e

        try:
            screen_stream = self.devices.get_display_media(display_surface="monitor")
        except Exception as e:
            camera_stream.stop()
            error = classify_error(e)
            self.logger.warning(f"Screen acquisition failed ({error.reason}): {e}")
            raise error from e

        session = CaptureSession(camera_stream=camera_stream, screen_stream=screen_stream)

        screen_track = session.screen_track
        if screen_track is not None:
            screen_track.add_ended_listener(
                lambda track: self._handle_screen_ended(session, on_screen_ended)
            )

        with self._lock:
            current = self.session
            if current is not None and current.active:
                # Lost a race with a concurrent acquire; keep the installed session
                winner = current
            else:
                winner = self.session = session

        if winner is not session:
            session.stop()
            self.logger.info("Dropped duplicate capture session")
            return winner

        self.logger.info("Capture session acquired")
        return session

    def release(self) -> int:
        """
        Stop every track of both streams; safe to call any number of times.

        Returns:
            Number of tracks stopped by this call
        """
        with self._lock:
            session = self.session
            if session is None:
                return 0
            session.active = False

        stopped = session.stop()
        if stopped:
            self.logger.info(f"Capture session released ({stopped} tracks stopped)")
        return stopped

    @property
    def is_active(self) -> bool:
        session = self.session
        return session is not None and session.active

    def _handle_screen_ended(self, session: CaptureSession,
                             on_screen_ended: Optional[Callable[[], None]]) -> None:
        if not session.active:
            return
        self.logger.warning("Screen sharing stopped from the host")
        if on_screen_ended is not None:
            on_screen_ended()
