"""
Shared fakes: camera/screen devices, a YOLO-shaped model and a manual clock.
"""

import threading

import numpy as np
import pytest

from capture.acquisition import MediaAcquisition
from capture.devices import MediaDevices
from capture.tracks import CameraTrack, MediaStream, ScreenTrack
from detectors.object_detector import ModelLoader
from integrity_engine.config import ProctoringConfig
from integrity_engine.interfaces import FrameSource
from integrity_engine.session import ProctoringSession


COCO_NAMES = {0: "person", 56: "chair", 67: "cell phone"}
LABEL_IDS = {name: class_id for class_id, name in COCO_NAMES.items()}

FRAME_WIDTH = 64
FRAME_HEIGHT = 48


class ManualClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_frame(width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT) -> np.ndarray:
    return np.zeros((height, width, 3), dtype=np.uint8)


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, width: int = FRAME_WIDTH, height: int = FRAME_HEIGHT):
        self.width = width
        self.height = height
        self.released = False
        self.reads = 0

    def read(self):
        if self.released:
            return False, None
        self.reads += 1
        return True, make_frame(self.width, self.height)

    def get(self, prop):
        # 3 and 4 are CAP_PROP_FRAME_WIDTH and CAP_PROP_FRAME_HEIGHT
        return {3: self.width, 4: self.height}.get(prop, 0)

    def release(self):
        self.released = True


class FakeDevices(MediaDevices):
    """
    Records every stream it hands out; errors are injectable per request.

    ``screen_grabber`` backs every screen track. Setting ``hold_camera`` to an
    event parks the next camera request on it after signalling
    ``camera_entered``.
    """

    def __init__(self, camera_error=None, screen_error=None, screen_grabber=None):
        self.camera_error = camera_error
        self.screen_error = screen_error
        self.screen_grabber = screen_grabber or (lambda: None)
        self.hold_camera = None
        self.camera_entered = threading.Event()
        self.camera_requests = []
        self.camera_tracks = []
        self.screen_tracks = []

    def get_user_media(self, width, height, facing_mode="user"):
        self.camera_requests.append((width, height, facing_mode))
        hold, self.hold_camera = self.hold_camera, None
        if hold is not None:
            self.camera_entered.set()
            hold.wait(timeout=5)
        if self.camera_error is not None:
            raise self.camera_error
        track = CameraTrack(FakeCapture())
        self.camera_tracks.append(track)
        return MediaStream([track])

    def get_display_media(self, display_surface="monitor"):
        if self.screen_error is not None:
            raise self.screen_error
        track = ScreenTrack(self.screen_grabber)
        self.screen_tracks.append(track)
        return MediaStream([track])

    def live_tracks(self):
        return sum(1 for t in self.camera_tracks + self.screen_tracks if t.is_live)


class FakeBox:
    """One entry of a YOLO result's boxes, as tensors-like arrays."""

    def __init__(self, class_id, score, xyxy):
        self.cls = np.array([class_id])
        self.conf = np.array([score])
        self.xyxy = np.array([xyxy], dtype=float)


class FakeResult:
    def __init__(self, boxes, names=None):
        self.boxes = boxes
        self.names = names if names is not None else COCO_NAMES


class FakeModel:
    """
    Callable like an ultralytics model.

    ``detections`` is a list of (label, score, (x1, y1, x2, y2)); it is
    re-read on every call so tests can script each tick. Setting
    ``blocker`` makes inference wait on that event after signalling
    ``entered``.
    """

    names = COCO_NAMES

    def __init__(self, detections=None):
        self.detections = detections if detections is not None else [("person", 0.9, (5, 5, 30, 40))]
        self.error = None
        self.blocker = None
        self.entered = threading.Event()
        self.calls = 0

    def __call__(self, frame, verbose=False):
        self.calls += 1
        if self.blocker is not None:
            self.entered.set()
            self.blocker.wait(timeout=5)
        if self.error is not None:
            raise self.error
        boxes = [FakeBox(LABEL_IDS[label], score, xyxy) for label, score, xyxy in self.detections]
        return [FakeResult(boxes)]


class FakeFrameSource(FrameSource):
    def __init__(self, frame=None, ready=True):
        self.frame = frame if frame is not None else make_frame()
        self.ready = ready

    def is_frame_ready(self):
        return self.ready

    def grab_frame(self):
        return self.frame


def people(count):
    return [("person", 0.9, (5 + i, 5, 20 + i, 40)) for i in range(count)]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def model_loader(fake_model):
    return ModelLoader("fake.pt", factory=lambda path: fake_model)


@pytest.fixture
def failing_loader():
    def factory(path):
        raise RuntimeError("weights not found")
    return ModelLoader("missing.pt", factory=factory)


@pytest.fixture
def devices():
    return FakeDevices()


@pytest.fixture
def config(tmp_path):
    return ProctoringConfig(sessions_dir=str(tmp_path / "sessions"), tick_interval_seconds=0.01)


@pytest.fixture
def make_session(devices, model_loader, config, clock):
    """Build sessions driven by explicit tick() calls."""
    created = []

    def factory(loader=None, device_backend=None, **kwargs):
        session = ProctoringSession(
            acquisition=MediaAcquisition(device_backend or devices),
            model_loader=loader or model_loader,
            config=config,
            clock=clock,
            run_worker=kwargs.pop('run_worker', False),
            **kwargs
        )
        created.append(session)
        return session

    yield factory

    for session in created:
        session.stop()
