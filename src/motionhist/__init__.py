"""
motionhist package

Motion history tracking for video streams, built on OpenCV's motion
template functions (``cv2.motempl`` from opencv-contrib-python).

The primary API is :class:`motionhist.tracker.MotionHistoryTracker`,
configured through :class:`motionhist.tracker.MotionHistoryParams`:
- :meth:`~motionhist.tracker.MotionHistoryTracker.update` feeds a frame
- :attr:`~motionhist.tracker.MotionHistoryTracker.mask` is the motion mask
- :meth:`~motionhist.tracker.MotionHistoryTracker.motion_components` segments motion
- :meth:`~motionhist.tracker.MotionHistoryTracker.motion_info` gives angle and pixel count

Errors are defined in :mod:`motionhist.errors`.
"""

from .errors import (
    DimensionMismatch,
    InvalidConfiguration,
    InvalidRegion,
    MotionHistoryError,
    NotReady,
)
from .primitives import MotionPrimitives, OpenCVPrimitives
from .tracker import (
    MotionComponent,
    MotionHistoryParams,
    MotionHistoryTracker,
    MotionInfo,
    Rect,
)

__all__ = [
    "MotionHistoryTracker",
    "MotionHistoryParams",
    "MotionComponent",
    "MotionInfo",
    "Rect",
    "MotionPrimitives",
    "OpenCVPrimitives",
    "MotionHistoryError",
    "InvalidConfiguration",
    "NotReady",
    "InvalidRegion",
    "DimensionMismatch",
]
