from __future__ import annotations

class MotionHistoryError(Exception):
    """Base class for every error raised by motionhist."""

class InvalidConfiguration(MotionHistoryError, ValueError):
    """Tracker parameters are out of range (e.g. a non-positive buffer size)."""

class NotReady(MotionHistoryError, RuntimeError):
    """A query was made before any frame was submitted."""

class InvalidRegion(MotionHistoryError, ValueError):
    """A query rectangle is empty or not fully inside the tracked image."""

class DimensionMismatch(MotionHistoryError, ValueError):
    """A frame does not match the size established by the first frame."""
