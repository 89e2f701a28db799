"""
Proctoring Session - composition root for one proctored assessment.

Wires media acquisition, the shared detection model, the violation
monitor and the overlay renderer together, and runs the detection loop on
a single worker thread. Each tick finishes (inference included) before the
next one is scheduled, so at most one inference is in flight per session.
The same loop samples the shared display on a slower cadence, and keeps
doing so when the model is unavailable, so a display that goes away is
noticed without the hosting page.

Every cancellation (stop, external deactivation) bumps a generation
counter; a tick whose generation is stale discards its result, so an
inference that resolves after cancellation never reaches the monitor.
"""

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Any

import numpy as np

from capture.acquisition import CaptureSession, MediaAcquisition
from capture.errors import AcquisitionError
from capture.tracks import ScreenTrack
from detectors.object_detector import CameraFrameSource, ModelLoader, ObjectDetector
from detectors.overlay import OverlayRenderer, encode_jpeg

from .config import ProctoringConfig
from .debounce import ViolationDebouncer
from .events import Subscription, ViolationBus, ViolationCallback
from .models import DetectionFrame, MonitorState, ViolationEvent
from .monitor import ViolationMonitor
from .notices import NoticeBoard


class ProctoringSession:
    """
    Start/stop control plus violation subscription for the hosting page.
    """

    def __init__(
        self,
        acquisition: MediaAcquisition,
        model_loader: ModelLoader,
        config: Optional[ProctoringConfig] = None,
        session_id: Optional[str] = None,
        bus: Optional[ViolationBus] = None,
        clock: Optional[Callable[[], float]] = None,
        run_worker: bool = True
    ):
        """
        Initialize the session.

        Args:
            acquisition: Camera/screen acquisition for this session
            model_loader: Process-wide model loader shared by all sessions
            config: Proctoring settings
            session_id: Identifier, a new UUID by default
            bus: Violation bus, a fresh one by default
            clock: Monotonic clock for debouncing and notices
            run_worker: Run ticks on a worker thread; when False the caller
                drives tick() itself
        """
        self.config = config or ProctoringConfig()
        self.session_id = session_id or str(uuid.uuid4())
        self.acquisition = acquisition
        self.model_loader = model_loader
        self.run_worker = run_worker
        self.created_at = datetime.now()

        self.bus = bus or ViolationBus()
        self.notices = NoticeBoard(ttl_seconds=self.config.notice_ttl_seconds, clock=clock)
        self.monitor = ViolationMonitor(
            bus=self.bus,
            notices=self.notices,
            debouncer=ViolationDebouncer(self.config.debounce_window_seconds, clock=clock)
        )
        self.overlay = OverlayRenderer()
        self.logger = logging.getLogger(f"{__name__}.ProctoringSession")

        self._lock = threading.RLock()
        # Serializes start() so concurrent callers never acquire twice
        self._start_lock = threading.Lock()
        self._generation = 0
        self._cancel = threading.Event()
        self._worker: Optional[threading.Thread] = None
        self._capture: Optional[CaptureSession] = None
        self._detector: Optional[ObjectDetector] = None
        self._frame_source: Optional[CameraFrameSource] = None
        self._last_detection: Optional[DetectionFrame] = None
        self._active = True
        self._stopped = False
        self._model_warning_posted = False
        self.ticks_skipped = 0
        self.last_error: Optional[AcquisitionError] = None

    # Public control

    def start(self) -> bool:
        """
        Acquire capture, settle the model and arm monitoring.

        Returns:
            True once monitoring is armed, False if the session was stopped,
            deactivated or cancelled while starting

        Raises:
            AcquisitionError: classified camera/screen failure; nothing stays acquired
        """
        with self._start_lock:
            return self._start()

    def _start(self) -> bool:
        with self._lock:
            if self._stopped:
                self.logger.info(f"Session {self.session_id} already stopped, ignoring start()")
                return False
            if not self._active:
                self.logger.info(f"Session {self.session_id} inactive, ignoring start()")
                return False
            if self.monitor.state in (MonitorState.ARMED, MonitorState.MONITORING):
                return True
            generation = self._generation

        try:
            capture = self.acquisition.acquire(on_screen_ended=self._on_screen_ended)
        except AcquisitionError as e:
            self.last_error = e
            self.notices.post('error', e.user_message)
            raise

        handle = self.model_loader.try_load()

        with self._lock:
            if self._stopped or not self._active or generation != self._generation:
                # stop() or deactivation won the race
                self.acquisition.release()
                return False
            if self.monitor.state in (MonitorState.ARMED, MonitorState.MONITORING):
                if capture is not self._capture:
                    capture.stop()
                return True

            self.last_error = None
            self._capture = capture
            detection_enabled = handle is not None

            if detection_enabled:
                self._detector = ObjectDetector(handle, self.config.confidence_threshold)
                self._frame_source = CameraFrameSource(capture.camera_track)
            else:
                self._detector = None
                self._frame_source = None
                if not self._model_warning_posted:
                    self._model_warning_posted = True
                    self.notices.post('warning', "AI Model failed to load. Monitoring tab and screen activity only.")

            self.monitor.arm(detection_enabled=detection_enabled)
            self._cancel = threading.Event()

            if self.run_worker:
                self._worker = threading.Thread(
                    target=self._run_loop,
                    args=(generation, self._cancel, detection_enabled),
                    name=f"proctoring-{self.session_id[:8]}",
                    daemon=True
                )
                self._worker.start()

        self.notices.post('success', "Integrity Systems Synchronized!")
        self.logger.info(f"Session {self.session_id} started (detection_enabled={detection_enabled})")
        return True

    def stop(self) -> None:
        """
        Tear the session down from any state; idempotent.

        Always leaves every hardware track released.
        """
        with self._lock:
            first_stop = not self._stopped
            self._stopped = True
            worker = self._cancel_loop()
            self.monitor.stop()

        self.acquisition.release()
        self._join(worker)

        if first_stop:
            self.logger.info(f"Session {self.session_id} stopped with {self.monitor.violation_count} violations")

    def set_active(self, active: bool) -> bool:
        """
        Apply an external activation flag.

        False suspends monitoring and releases the hardware immediately;
        True resumes a suspended session by re-acquiring capture.

        Returns:
            True if the call changed anything
        """
        if not active:
            with self._lock:
                if self._stopped or not self._active:
                    return False
                self._active = False
                worker = self._cancel_loop()
                self.monitor.suspend()

            self.acquisition.release()
            self._join(worker)
            self.logger.info(f"Session {self.session_id} deactivated")
            return True

        with self._lock:
            if self._stopped or self._active:
                return False
            self._active = True
            resume = self.monitor.state is MonitorState.SUSPENDED

        if resume:
            return self.start()
        return True

    # Signals from the hosting page

    def report_visibility(self, hidden: bool) -> Optional[ViolationEvent]:
        return self.monitor.report_visibility(hidden)

    def end_screen_share(self) -> bool:
        """
        Host "stop sharing" control. Ends the screen track from its source
        side, which reports the violation through the ended listener.
        """
        capture = self._capture
        track = capture.screen_track if capture is not None else None
        if not isinstance(track, ScreenTrack):
            return False
        return track.end_sharing()

    def subscribe(self, callback: ViolationCallback) -> Subscription:
        return self.bus.subscribe(callback)

    def subscribe_queue(self, maxsize: int = 0):
        return self.bus.subscribe_queue(maxsize)

    # Detection loop

    def tick(self, generation: Optional[int] = None) -> List[ViolationEvent]:
        """
        Run one detection pass.

        A pass with no frame ready is a no-op; a failing pass is skipped.
        Results arriving after a cancellation are discarded.

        Returns:
            Violations raised by this pass
        """
        with self._lock:
            if generation is None:
                generation = self._generation
            if self._stopped or generation != self._generation:
                return []
            detector = self._detector
            source = self._frame_source

        if detector is None or source is None:
            return []

        try:
            detection = detector.detect(source)
        except Exception as e:
            self.ticks_skipped += 1
            self.logger.debug(f"Skipping detection tick: {e}")
            return []

        with self._lock:
            if self._stopped or generation != self._generation:
                self.logger.debug("Discarding late detection result")
                return []
            if detection is None:
                return []

            self._last_detection = detection
            return self.monitor.process_frame(detection)

    def check_screen(self, generation: Optional[int] = None) -> bool:
        """
        Sample the shared display once.

        A display that went away ends the screen track from its source
        side, which reports the screen-share violation through the ended
        listener.

        Returns:
            True while the screen track is live
        """
        with self._lock:
            if generation is None:
                generation = self._generation
            if self._stopped or generation != self._generation:
                return False
            capture = self._capture

        track = capture.screen_track if capture is not None else None
        if not isinstance(track, ScreenTrack) or not track.is_live:
            return False

        track.grab_frame()
        return track.is_live

    def _run_loop(self, generation: int, cancel: threading.Event, detection_enabled: bool) -> None:
        screen_interval = self.config.screen_check_interval_seconds
        # Without a model the loop only watches the screen track
        interval = self.config.tick_interval_seconds if detection_enabled else screen_interval
        screen_every = max(1, int(round(screen_interval / interval)))

        ticks = 0
        while not cancel.is_set():
            try:
                if detection_enabled:
                    self.tick(generation)
                if ticks % screen_every == 0:
                    self.check_screen(generation)
            except Exception as e:
                self.logger.error(f"Unexpected error in detection loop: {e}")
            ticks += 1
            cancel.wait(interval)

    def _cancel_loop(self) -> Optional[threading.Thread]:
        """Invalidate the current loop; caller holds the lock."""
        self._generation += 1
        self._cancel.set()
        worker = self._worker
        self._worker = None
        self._detector = None
        return worker

    def _join(self, worker: Optional[threading.Thread]) -> None:
        if worker is not None and worker is not threading.current_thread():
            worker.join(timeout=max(1.0, self.config.tick_interval_seconds * 2))

    def _on_screen_ended(self) -> None:
        with self._lock:
            if self._stopped:
                return
        self.monitor.report_screen_share_stopped()

    # Views

    @property
    def state(self) -> MonitorState:
        return self.monitor.state

    @property
    def violation_count(self) -> int:
        return self.monitor.violation_count

    @property
    def violations(self):
        return self.monitor.violations

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._worker is not None and self._worker.is_alive()

    def live_track_count(self) -> int:
        capture = self._capture
        return capture.live_track_count() if capture is not None else 0

    def render_overlay(self) -> Optional[np.ndarray]:
        """Latest camera frame with the overlay drawn, None before any frame."""
        with self._lock:
            source = self._frame_source
            detection = self._last_detection

        frame = source.last_frame if source is not None else None
        if frame is None:
            return None
        return self.overlay.render(frame, detection)

    def snapshot_jpeg(self) -> Optional[bytes]:
        image = self.render_overlay()
        return encode_jpeg(image) if image is not None else None

    def status(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'created_at': self.created_at.isoformat(),
            'active': self._active,
            'stopped': self._stopped,
            'running': self.is_running,
            'live_tracks': self.live_track_count(),
            'ticks_skipped': self.ticks_skipped,
            'monitor': self.monitor.get_status(),
            'notices': [notice.to_dict() for notice in self.notices.active()],
            'last_error': self.last_error.to_dict() if self.last_error else None
        }
