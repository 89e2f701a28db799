"""
Object detection component using YOLO for person and phone detection.

The model is loaded at most once per ModelLoader and the resulting
ModelHandle is shared read-only by every session's detection ticks.
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np

try:
    from ultralytics import YOLO
    YOLO_AVAILABLE = True
except ImportError:
    YOLO_AVAILABLE = False

from integrity_engine.interfaces import FrameSource
from integrity_engine.models import BoundingBox, DetectionFrame
from shared_utils.detection_utils import normalize_confidence, xyxy_to_xywh


class ModelLoadError(Exception):
    """Raised when the detection model cannot be loaded; terminal for the loader."""
    pass


class InferenceError(Exception):
    """Raised when a single inference call fails; the tick is skipped."""
    pass


class ModelHandle:
    """Loaded detection model plus its class-name table."""

    __slots__ = ('model', 'names', 'model_path')

    def __init__(self, model: Any, names: Dict[int, str], model_path: str):
        self.model = model
        self.names = dict(names)
        self.model_path = model_path

    def predict(self, frame: np.ndarray):
        return self.model(frame, verbose=False)

    def class_name(self, class_id: int) -> str:
        return self.names.get(class_id, str(class_id))


def _yolo_factory(model_path: str):
    if not YOLO_AVAILABLE:
        raise ModelLoadError("YOLO not available - install ultralytics package")
    return YOLO(model_path)


def _names_table(names: Any) -> Dict[int, str]:
    if isinstance(names, dict):
        return {int(k): str(v) for k, v in names.items()}
    if isinstance(names, (list, tuple)):
        return {i: str(v) for i, v in enumerate(names)}
    return {}


class ModelLoader:
    """
    Loads the detection model once.

    Concurrent callers wait on the same attempt. A failed attempt is
    remembered and re-raised; there is no retry.
    """

    def __init__(self, model_path: str = "yolov8n.pt", factory: Optional[Callable[[str], Any]] = None):
        """
        Initialize the loader.

        Args:
            model_path: Weights file or model name passed to the factory
            factory: Callable building the model from a path, YOLO by default
        """
        self.model_path = model_path
        self.factory = factory or _yolo_factory
        self._handle: Optional[ModelHandle] = None
        self._error: Optional[ModelLoadError] = None
        self._lock = threading.Lock()
        self.logger = logging.getLogger(f"{__name__}.ModelLoader")

    def load(self) -> ModelHandle:
        """
        Return the loaded model, loading it on the first call.

        Raises:
            ModelLoadError: if loading failed, now or on an earlier call
        """
        with self._lock:
            if self._handle is not None:
                return self._handle
            if self._error is not None:
                raise self._error

            try:
                model = self.factory(self.model_path)
                names = _names_table(getattr(model, 'names', {}))
                self._handle = ModelHandle(model, names, self.model_path)
                self.logger.info(f"Detection model loaded: {self.model_path}")
                return self._handle
            except Exception as e:
                if isinstance(e, ModelLoadError):
                    self._error = e
                else:
                    self._error = ModelLoadError(f"Failed to load {self.model_path}: {e}")
                self.logger.error(f"Detection model failed to load: {self._error}")
                raise self._error from e

    def try_load(self) -> Optional[ModelHandle]:
        """load() that returns None instead of raising."""
        try:
            return self.load()
        except ModelLoadError:
            return None

    @property
    def handle(self) -> Optional[ModelHandle]:
        return self._handle

    @property
    def failed(self) -> bool:
        return self._error is not None

    def get_health_status(self) -> Dict[str, Any]:
        return {
            'model_path': self.model_path,
            'yolo_available': YOLO_AVAILABLE,
            'model_loaded': self._handle is not None,
            'load_failed': self._error is not None,
            'error': str(self._error) if self._error else None
        }


class CameraFrameSource(FrameSource):
    """Adapts a camera track to the FrameSource interface."""

    def __init__(self, track):
        self.track = track
        self.last_frame: Optional[np.ndarray] = None

    def is_frame_ready(self) -> bool:
        return self.track is not None and self.track.is_live

    def grab_frame(self) -> Optional[np.ndarray]:
        frame = self.track.read_frame()
        if frame is not None:
            self.last_frame = frame
        return frame

    @property
    def dimensions(self) -> Tuple[int, int]:
        if self.last_frame is None:
            return (0, 0)
        height, width = self.last_frame.shape[:2]
        return (width, height)


class ObjectDetector:
    """
    Runs the shared model on single frames.

    Keeps no state between calls other than the model handle.
    """

    def __init__(self, handle: ModelHandle, confidence_threshold: float = 0.5):
        self.handle = handle
        self.confidence_threshold = confidence_threshold

    def detect(self, source: FrameSource) -> Optional[DetectionFrame]:
        """
        Detect objects in the source's current frame.

        Returns:
            DetectionFrame, or None when the source has no frame ready

        Raises:
            InferenceError: if the model call fails
        """
        if not source.is_frame_ready():
            return None

        frame = source.grab_frame()
        if frame is None:
            return None

        return self.detect_frame(frame)

    def detect_frame(self, frame: np.ndarray) -> DetectionFrame:
        """Detect objects in a BGR frame."""
        try:
            results = self.handle.predict(frame)
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        frame_height, frame_width = frame.shape[:2]
        boxes = []

        for result in results:
            if getattr(result, 'boxes', None) is None:
                continue

            names = _names_table(getattr(result, 'names', None)) or self.handle.names

            for box in result.boxes:
                confidence = normalize_confidence(float(box.conf[0]))
                if confidence < self.confidence_threshold:
                    continue

                class_id = int(box.cls[0])
                x, y, width, height = xyxy_to_xywh([float(v) for v in box.xyxy[0]])

                boxes.append(BoundingBox(
                    label=names.get(class_id, str(class_id)),
                    score=confidence,
                    x=x,
                    y=y,
                    width=width,
                    height=height
                ))

        return DetectionFrame(boxes=boxes, frame_width=frame_width, frame_height=frame_height)
