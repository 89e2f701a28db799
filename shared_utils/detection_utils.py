"""
Detection Utilities - Common functions for detection processing.
"""

from typing import Union, List, Tuple


Box = Union[List[float], Tuple[float, ...]]


def normalize_confidence(confidence: Union[float, int]) -> float:
    """
    Normalize confidence score to [0, 1] range.

    Args:
        confidence: Raw confidence score

    Returns:
        Normalized confidence in [0, 1] range
    """
    try:
        conf_float = float(confidence)
        return max(0.0, min(1.0, conf_float))
    except (ValueError, TypeError):
        return 0.0


def xyxy_to_xywh(bbox: Box) -> Tuple[float, float, float, float]:
    """
    Convert a corner-format box to origin + size.

    Args:
        bbox: Bounding box as [x1, y1, x2, y2]

    Returns:
        (x, y, width, height) with non-negative size
    """
    x1, y1, x2, y2 = bbox
    left, right = min(x1, x2), max(x1, x2)
    top, bottom = min(y1, y2), max(y1, y2)
    return (left, top, right - left, bottom - top)


def scale_bbox(bbox: Box, scale_x: float, scale_y: float) -> Tuple[float, float, float, float]:
    """
    Scale an [x, y, width, height] box by per-axis factors.

    Args:
        bbox: Bounding box [x, y, width, height]
        scale_x: Horizontal factor
        scale_y: Vertical factor

    Returns:
        Scaled (x, y, width, height)
    """
    x, y, width, height = bbox
    return (x * scale_x, y * scale_y, width * scale_x, height * scale_y)


def clamp_bbox(bbox: Box, frame_width: int, frame_height: int) -> Tuple[int, int, int, int]:
    """
    Clamp an [x, y, width, height] box to integer pixel corners inside a frame.

    Returns:
        (x1, y1, x2, y2) in pixel coordinates
    """
    x, y, width, height = bbox
    x1 = int(max(0, min(frame_width - 1, round(x))))
    y1 = int(max(0, min(frame_height - 1, round(y))))
    x2 = int(max(0, min(frame_width - 1, round(x + width))))
    y2 = int(max(0, min(frame_height - 1, round(y + height))))
    return (x1, y1, x2, y2)
