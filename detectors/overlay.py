"""
Overlay renderer - draws detection boxes and labels over video frames.
"""

import logging
from typing import Optional

import cv2
import numpy as np

from integrity_engine.models import DetectionFrame
from shared_utils.detection_utils import clamp_bbox, scale_bbox


# BGR
BOX_COLOR = (255, 255, 0)
TEXT_COLOR = (0, 0, 0)
LABEL_BAR_HEIGHT = 20


class OverlayRenderer:
    """
    Presentation only. Remembers the last DetectionFrame drawn so frames
    without a fresh detection still show the (stale) overlay.
    """

    def __init__(self, line_width: int = 2, font_scale: float = 0.45):
        self.line_width = line_width
        self.font_scale = font_scale
        self.last_detection: Optional[DetectionFrame] = None
        self.logger = logging.getLogger(__name__)

    def render(self, frame: np.ndarray, detection: Optional[DetectionFrame] = None) -> np.ndarray:
        """
        Draw boxes onto a copy of the frame.

        Args:
            frame: BGR frame at the video's current pixel size
            detection: Fresh detections, or None to redraw the last ones

        Returns:
            New image; the plain frame copy if drawing fails
        """
        if detection is not None:
            self.last_detection = detection

        canvas = frame.copy()
        detection = self.last_detection
        if detection is None or not detection.boxes:
            return canvas

        try:
            self._draw(canvas, detection)
        except Exception as e:
            self.logger.debug(f"Overlay drawing failed, returning plain frame: {e}")
            return frame.copy()

        return canvas

    def _draw(self, canvas: np.ndarray, detection: DetectionFrame) -> None:
        height, width = canvas.shape[:2]
        scale_x = width / detection.frame_width if detection.frame_width else 1.0
        scale_y = height / detection.frame_height if detection.frame_height else 1.0

        for box in detection.boxes:
            x1, y1, x2, y2 = clamp_bbox(
                scale_bbox((box.x, box.y, box.width, box.height), scale_x, scale_y),
                width, height
            )

            cv2.rectangle(canvas, (x1, y1), (x2, y2), BOX_COLOR, self.line_width)
            cv2.rectangle(canvas, (x1, y1), (x2, min(y1 + LABEL_BAR_HEIGHT, height - 1)), BOX_COLOR, -1)

            text = f"{box.label} ({round(box.score * 100)}%)"
            cv2.putText(canvas, text, (x1 + 5, min(y1 + 14, height - 1)),
                        cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, TEXT_COLOR, 1, cv2.LINE_AA)

    def reset(self) -> None:
        self.last_detection = None


def encode_jpeg(image: np.ndarray, quality: int = 80) -> Optional[bytes]:
    """Encode a BGR image as JPEG bytes, None on failure."""
    success, encoded = cv2.imencode('.jpg', image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not success:
        return None
    return encoded.tobytes()
