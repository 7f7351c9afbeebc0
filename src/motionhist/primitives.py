from __future__ import annotations
from typing import List, Protocol, Sequence, Tuple
import cv2
import numpy as np

RectTuple = Tuple[int, int, int, int]

class MotionPrimitives(Protocol):
    """
    Image operations the tracker is built on.

    The tracker never touches pixels directly for these steps; any backend
    must keep the numeric contracts below:

    - ``threshold`` sets pixels strictly above ``thresh`` to ``max_val``.
    - ``update_motion_history`` stamps ``timestamp`` where the silhouette is
      non-zero and zeroes pixels older than ``timestamp - duration``.
    - ``calc_motion_gradient`` returns ``(valid_mask, orientation)`` with
      angles in degrees [0, 360) and a non-zero mask only where the local
      age spread lies between the two deltas.
    - ``segment_motion`` returns ``(segmask, rects)`` where component ``i``
      is labelled ``i + 1`` in ``segmask``.
    - ``calc_global_orientation`` returns degrees in [0, 360) with the
      image origin at the top-left.
    """

    def absdiff(self, a: np.ndarray, b: np.ndarray) -> np.ndarray: ...

    def threshold(self, src: np.ndarray, thresh: float, max_val: float) -> np.ndarray: ...

    def update_motion_history(
        self, silhouette: np.ndarray, mhi: np.ndarray, timestamp: float, duration: float
    ) -> np.ndarray: ...

    def calc_motion_gradient(
        self, mhi: np.ndarray, max_delta: float, min_delta: float, aperture_size: int
    ) -> Tuple[np.ndarray, np.ndarray]: ...

    def segment_motion(
        self, mhi: np.ndarray, segmask: np.ndarray, timestamp: float, seg_thresh: float
    ) -> Tuple[np.ndarray, Sequence[RectTuple]]: ...

    def calc_global_orientation(
        self,
        orientation: np.ndarray,
        mask: np.ndarray,
        mhi: np.ndarray,
        timestamp: float,
        duration: float,
    ) -> float: ...

class OpenCVPrimitives:
    """
    :class:`MotionPrimitives` backed by OpenCV.

    The motion template functions live in ``cv2.motempl``, which ships with
    the contrib build (``opencv-contrib-python``).
    """

    def __init__(self) -> None:
        if not hasattr(cv2, "motempl"):
            raise ImportError(
                "cv2.motempl is not available; install opencv-contrib-python "
                "instead of opencv-python"
            )
        self._motempl = cv2.motempl

    def absdiff(self, a: np.ndarray, b: np.ndarray) -> np.ndarray:
        return cv2.absdiff(a, b)

    def threshold(self, src: np.ndarray, thresh: float, max_val: float) -> np.ndarray:
        _, dst = cv2.threshold(src, thresh, max_val, cv2.THRESH_BINARY)
        return dst

    def update_motion_history(
        self, silhouette: np.ndarray, mhi: np.ndarray, timestamp: float, duration: float
    ) -> np.ndarray:
        # updates mhi in place; the return value is the same buffer
        return self._motempl.updateMotionHistory(silhouette, mhi, timestamp, duration)

    def calc_motion_gradient(
        self, mhi: np.ndarray, max_delta: float, min_delta: float, aperture_size: int
    ) -> Tuple[np.ndarray, np.ndarray]:
        mask, orientation = self._motempl.calcMotionGradient(
            mhi, max_delta, min_delta, apertureSize=aperture_size
        )
        return mask, orientation

    def segment_motion(
        self, mhi: np.ndarray, segmask: np.ndarray, timestamp: float, seg_thresh: float
    ) -> Tuple[np.ndarray, List[RectTuple]]:
        segmask, rects = self._motempl.segmentMotion(mhi, timestamp, seg_thresh, segmask)
        return segmask, [tuple(int(v) for v in r) for r in rects]

    def calc_global_orientation(
        self,
        orientation: np.ndarray,
        mask: np.ndarray,
        mhi: np.ndarray,
        timestamp: float,
        duration: float,
    ) -> float:
        return float(
            self._motempl.calcGlobalOrientation(orientation, mask, mhi, timestamp, duration)
        )
