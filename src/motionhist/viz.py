from __future__ import annotations
from typing import Tuple
import logging
import cv2
import numpy as np

from .tracker import MotionHistoryTracker, Rect

logger = logging.getLogger(__name__)

GLOBAL_COLOR = (255, 255, 255)
COMPONENT_COLOR = (0, 0, 255)

def draw_motion(
    canvas: np.ndarray, rect: Rect, angle: float, color: Tuple[int, int, int]
) -> None:
    """
    Draw ``rect`` with a circle and a direction needle in place.

    ``angle`` is in degrees, counter-clockwise from +x with y pointing up,
    as returned by :meth:`MotionHistoryTracker.motion_info`.
    """
    x, y, w, h = rect
    cv2.rectangle(canvas, (x, y), (x + w - 1, y + h - 1), color, 1)
    r = max(min(w, h) // 2, 1)
    cx, cy = x + w // 2, y + h // 2
    cv2.circle(canvas, (cx, cy), r, color, 1)
    rad = np.deg2rad(angle)
    tip = (int(round(cx + np.cos(rad) * r)), int(round(cy - np.sin(rad) * r)))
    cv2.line(canvas, (cx, cy), tip, color, 1)

def overlay(frame: np.ndarray, tracker: MotionHistoryTracker, min_area: int = 64) -> np.ndarray:
    """
    Return a BGR copy of ``frame`` annotated with the global motion and
    every motion component of at least ``min_area`` pixels.
    """
    canvas = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR) if frame.ndim == 2 else frame.copy()
    rows, cols = tracker.shape
    full = Rect(0, 0, cols, rows)
    info = tracker.motion_info(full)
    draw_motion(canvas, full, info.angle, GLOBAL_COLOR)

    drawn = 0
    for comp in tracker.motion_components():
        if comp.area < min_area:
            continue
        info = tracker.motion_info(comp.rect)
        # skip regions whose silhouette is almost empty
        if info.pixel_count < comp.rect.width * comp.rect.height * 0.05:
            continue
        draw_motion(canvas, comp.rect, info.angle, COMPONENT_COLOR)
        drawn += 1
    logger.debug("drew %d motion components", drawn)
    return canvas
