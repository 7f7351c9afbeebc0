from __future__ import annotations
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Deque, Iterator, List, NamedTuple, Optional, Tuple, Union
import collections
import logging
import time
import cv2
import numpy as np

from .errors import DimensionMismatch, InvalidConfiguration, InvalidRegion, NotReady
from .primitives import MotionPrimitives, OpenCVPrimitives

logger = logging.getLogger(__name__)

class Rect(NamedTuple):
    x: int
    y: int
    width: int
    height: int

class MotionInfo(NamedTuple):
    angle: float
    pixel_count: float

@dataclass(frozen=True)
class MotionComponent:
    """
    A connected region of recent motion.

    ``label`` is the value the region carries in the segmentation mask and
    ``area`` the number of pixels with that label.
    """
    rect: Rect
    label: int
    area: int

@dataclass
class MotionHistoryParams:
    """
    Parameters for :class:`MotionHistoryTracker`.

    buffer_count is the number of frames kept for differencing; tune it to
    the camera frame rate. diff_thresh (0-255) is the intensity change that
    marks a pixel as moving. mhi_duration is how long (seconds) motion stays
    in the history. max_time_delta and min_time_delta (seconds) bound the
    age spread the gradient estimator accepts; max_time_delta is also the
    segmentation window.
    """
    buffer_count: int = 2
    diff_thresh: int = 30
    mhi_duration: float = 1.0
    max_time_delta: float = 0.5
    min_time_delta: float = 0.05
    aperture_size: int = 3

    def validate(self) -> None:
        if self.buffer_count <= 0:
            raise InvalidConfiguration("buffer_count must be at least 1")
        if not 0 <= self.diff_thresh <= 255:
            raise InvalidConfiguration("diff_thresh must be within 0..255")
        if self.mhi_duration <= 0:
            raise InvalidConfiguration("mhi_duration must be positive")
        if self.max_time_delta <= 0 or self.min_time_delta <= 0:
            raise InvalidConfiguration("max_time_delta and min_time_delta must be positive")
        if self.min_time_delta > self.max_time_delta:
            raise InvalidConfiguration("min_time_delta must not exceed max_time_delta")
        if self.aperture_size not in (3, 5, 7):
            raise InvalidConfiguration("aperture_size must be 3, 5 or 7")

class _Scope(NamedTuple):
    silhouette: np.ndarray
    mhi: np.ndarray
    orientation: np.ndarray
    mask: np.ndarray
    valid: np.ndarray

class MotionHistoryTracker:
    """
    Motion history over a stream of grayscale frames.

    Each :meth:`update` differences the new frame against the front of a
    bounded frame buffer, stamps moving pixels into the motion history image
    (MHI) with the elapsed time, ages out stale motion, rescales the MHI into
    a 0-255 motion mask and recomputes the motion orientation field.

    Until the buffer is full the comparison frame is the first frame ever
    seen; afterwards it lags ``buffer_count - 1`` updates behind.

    The tracker is not thread-safe: callers must serialize access.
    """

    def __init__(
        self,
        params: Optional[MotionHistoryParams] = None,
        *,
        init_time: Optional[float] = None,
        primitives: Optional[MotionPrimitives] = None,
    ) -> None:
        self.params = params or MotionHistoryParams()
        self.params.validate()
        self._ops: MotionPrimitives = primitives or OpenCVPrimitives()
        self._buffer: Deque[np.ndarray] = collections.deque(maxlen=self.params.buffer_count)
        self._shape: Optional[Tuple[int, int]] = None
        self._silh: Optional[np.ndarray] = None
        self._mhi: Optional[np.ndarray] = None
        self._mask: Optional[np.ndarray] = None
        self._orientation: Optional[np.ndarray] = None
        self._valid: Optional[np.ndarray] = None
        self._segmask: Optional[np.ndarray] = None
        self._roi: Optional[Rect] = None
        self.init_time = time.time() if init_time is None else float(init_time)
        self.last_time: Optional[float] = None

    def reset(self, init_time: Optional[float] = None) -> None:
        """Forget all frames and history; the next frame sets new dimensions."""
        self._buffer = collections.deque(maxlen=self.params.buffer_count)
        self._shape = None
        self._silh = self._mhi = self._mask = None
        self._orientation = self._valid = self._segmask = None
        self._roi = None
        self.init_time = time.time() if init_time is None else float(init_time)
        self.last_time = None

    # ------------------------------
    # Update
    # ------------------------------

    def _to_gray(self, frame: np.ndarray) -> np.ndarray:
        if frame.dtype != np.uint8:
            raise ValueError(f"frames must be uint8, got {frame.dtype}")
        if frame.ndim == 2:
            return frame
        if frame.ndim == 3 and frame.shape[2] == 1:
            return frame[:, :, 0]
        if frame.ndim == 3 and frame.shape[2] == 3:
            return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
        raise ValueError(f"expected a grayscale or BGR frame, got shape {frame.shape}")

    def _reference_frame(self, gray: np.ndarray) -> np.ndarray:
        # front of the buffer once `gray` has been admitted
        if not self._buffer:
            return gray
        if len(self._buffer) < self.params.buffer_count:
            return self._buffer[0]
        if self.params.buffer_count > 1:
            return self._buffer[1]
        return gray

    def update(self, frame: np.ndarray, timestamp: Optional[float] = None) -> np.ndarray:
        """
        Add ``frame`` captured at ``timestamp`` (seconds, defaults to now)
        and return the refreshed motion mask.

        Nothing is modified if the frame is rejected or a step fails.
        """
        gray = self._to_gray(np.asarray(frame))
        if self._shape is not None and gray.shape != self._shape:
            raise DimensionMismatch(
                f"frame size {gray.shape[1]}x{gray.shape[0]} differs from "
                f"{self._shape[1]}x{self._shape[0]} established by the first frame"
            )
        if timestamp is None:
            timestamp = time.time()
        if self.last_time is not None and timestamp < self.last_time:
            logger.warning("timestamp %.6f is older than previous %.6f", timestamp, self.last_time)

        p = self.params
        ts = timestamp - self.init_time

        silh = self._ops.absdiff(gray, self._reference_frame(gray))
        silh = self._ops.threshold(silh, p.diff_thresh, 1)

        mhi = self._mhi.copy() if self._mhi is not None else np.zeros(gray.shape, np.float32)
        mhi = self._ops.update_motion_history(silh, mhi, ts, p.mhi_duration)

        mask = np.rint(np.clip((mhi - (ts - p.mhi_duration)) * (255.0 / p.mhi_duration), 0, 255)).astype(np.uint8)
        valid, orientation = self._ops.calc_motion_gradient(
            mhi, p.max_time_delta, p.min_time_delta, p.aperture_size
        )

        # commit
        self._buffer.append(gray)
        self.last_time = timestamp
        if self._shape is None:
            logger.debug("allocating motion history images %dx%d", gray.shape[1], gray.shape[0])
            self._shape = gray.shape
            self._silh = silh.copy()
            self._mhi = mhi.copy()
            self._mask = mask.copy()
            self._orientation = orientation.copy()
            self._valid = valid.copy()
        else:
            np.copyto(self._silh, silh)
            np.copyto(self._mhi, mhi)
            np.copyto(self._mask, mask)
            np.copyto(self._orientation, orientation)
            np.copyto(self._valid, valid)
        logger.debug("t=%.3fs motion pixels=%d", ts, int(np.count_nonzero(self._silh)))
        return self._mask

    # ------------------------------
    # Accessors
    # ------------------------------

    def _require(self, image: Optional[np.ndarray]) -> np.ndarray:
        if image is None:
            raise NotReady("no frame has been submitted yet")
        return image

    @property
    def is_ready(self) -> bool:
        return self._shape is not None

    @property
    def shape(self) -> Optional[Tuple[int, int]]:
        return self._shape

    @property
    def elapsed(self) -> float:
        """Seconds between ``init_time`` and the last update."""
        if self.last_time is None:
            raise NotReady("no frame has been submitted yet")
        return self.last_time - self.init_time

    @property
    def buffer(self) -> Tuple[np.ndarray, ...]:
        return tuple(self._buffer)

    @property
    def roi(self) -> Optional[Rect]:
        """Region the working images are narrowed to, ``None`` for full scope."""
        return self._roi

    @property
    def mask(self) -> np.ndarray:
        return self._require(self._mask)

    @property
    def mhi(self) -> np.ndarray:
        return self._require(self._mhi)

    @property
    def silhouette(self) -> np.ndarray:
        return self._require(self._silh)

    @property
    def orientation(self) -> np.ndarray:
        return self._require(self._orientation)

    @property
    def gradient_mask(self) -> np.ndarray:
        return self._require(self._valid)

    # ------------------------------
    # Queries
    # ------------------------------

    def motion_components(self) -> List[MotionComponent]:
        """
        Split the MHI into connected regions that moved within
        ``max_time_delta`` of the last update.
        """
        mhi = self._require(self._mhi)
        if self._segmask is None:
            self._segmask = np.zeros(mhi.shape, np.float32)
        segmask, rects = self._ops.segment_motion(
            mhi, self._segmask, self.elapsed, self.params.max_time_delta
        )
        if segmask is not self._segmask:
            np.copyto(self._segmask, segmask)

        components = []
        for i, (x, y, w, h) in enumerate(rects):
            label = i + 1
            area = int(np.count_nonzero(self._segmask[y:y + h, x:x + w] == label))
            components.append(MotionComponent(Rect(x, y, w, h), label, area))
        logger.debug("found %d motion components", len(components))
        return components

    def _check_region(self, rect: Union[Rect, Tuple[int, int, int, int]]) -> Rect:
        x, y, w, h = (int(v) for v in rect)
        rows, cols = self._shape
        if w <= 0 or h <= 0:
            raise InvalidRegion(f"region {(x, y, w, h)} is empty")
        if x < 0 or y < 0 or x + w > cols or y + h > rows:
            raise InvalidRegion(f"region {(x, y, w, h)} is outside the {cols}x{rows} image")
        return Rect(x, y, w, h)

    @contextmanager
    def _scoped(self, rect: Rect) -> Iterator[_Scope]:
        sl = (slice(rect.y, rect.y + rect.height), slice(rect.x, rect.x + rect.width))
        self._roi = rect
        try:
            yield _Scope(
                silhouette=self._silh[sl],
                mhi=self._mhi[sl],
                orientation=self._orientation[sl],
                mask=self._mask[sl],
                valid=self._valid[sl],
            )
        finally:
            self._roi = None

    def motion_info(self, rect: Union[Rect, Tuple[int, int, int, int]]) -> MotionInfo:
        """
        Dominant motion angle (degrees, counter-clockwise with y up) and the
        number of silhouette pixels inside ``rect``.
        """
        self._require(self._mhi)
        rect = self._check_region(rect)
        with self._scoped(rect) as view:
            usable = np.where((view.valid != 0) & (view.mask != 0), 255, 0).astype(np.uint8)
            angle = self._ops.calc_global_orientation(
                view.orientation, usable, view.mhi, self.elapsed, self.params.mhi_duration
            )
            # top-left image origin
            angle = 360.0 - angle
            count = cv2.norm(view.silhouette, cv2.NORM_L1)
        return MotionInfo(angle, float(count))
