from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union
import glob
import logging
import cv2
import numpy as np

logger = logging.getLogger(__name__)

VIDEO_EXTS = {".mp4", ".avi", ".mov", ".mkv", ".webm", ".mpg", ".mpeg", ".m4v"}
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".bmp", ".tiff", ".tif", ".webp"}

def _is_video_file(p: Union[str, Path]) -> bool:
    return Path(p).suffix.lower() in VIDEO_EXTS

def _looks_like_pattern(s: str) -> bool:
    # glob (*, ?) or printf (%d, %0Nd)
    return any(tok in s for tok in ("*", "?", "%d", "%0"))

@dataclass
class StreamInfo:
    width: int
    height: int
    fps: float

class FrameSource:
    """
    Grayscale frames with capture timestamps from:
      - a webcam index (0, 1, ... or "0")
      - a video file or printf pattern (cv2.VideoCapture)
      - a directory or glob of still images

    Timestamps are seconds from the start of the stream: the container
    position for captures that report one, ``index / fps`` otherwise.
    """
    def __init__(self, src: Union[str, int], in_fps: Optional[float] = None):
        self.src = src
        self.in_fps = in_fps
        self._cap: Optional[cv2.VideoCapture] = None
        self._files: Optional[List[str]] = None
        self._index = 0

        if isinstance(src, int) or src.isdigit():
            self._cap = cv2.VideoCapture(int(src))
        elif _is_video_file(src) or (_looks_like_pattern(src) and "%" in src):
            self._cap = cv2.VideoCapture(src)
        else:
            root = Path(src)
            if root.is_dir():
                found = [str(f) for f in root.iterdir() if f.suffix.lower() in IMAGE_EXTS]
            else:
                found = glob.glob(src)
            self._files = sorted(found)
            if not self._files:
                raise FileNotFoundError(f"No frames found for: {src}")

        if self._cap is not None and not self._cap.isOpened():
            raise RuntimeError(f"Could not open capture: {src}")
        self.info = self._probe()
        logger.info("opened %s (%dx%d @ %.2f fps)", src, self.info.width, self.info.height, self.info.fps)

    def _probe(self) -> StreamInfo:
        if self._cap is not None:
            w = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH))
            h = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
            fps = self._cap.get(cv2.CAP_PROP_FPS) or 0.0
            if fps <= 1e-3:  # some sources report 0
                fps = self.in_fps or 30.0
            return StreamInfo(width=w, height=h, fps=fps)
        first = cv2.imread(self._files[0], cv2.IMREAD_GRAYSCALE)
        if first is None:
            raise RuntimeError(f"Could not read first frame: {self._files[0]}")
        h, w = first.shape[:2]
        return StreamInfo(width=w, height=h, fps=self.in_fps or 30.0)

    def _next_image(self) -> Optional[np.ndarray]:
        if self._cap is not None:
            ok, frame = self._cap.read()
            if not ok:
                return None
            return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame
        if self._index >= len(self._files):
            return None
        return cv2.imread(self._files[self._index], cv2.IMREAD_GRAYSCALE)

    def read(self) -> Tuple[bool, Optional[np.ndarray], float]:
        """Return ``(ok, gray, timestamp)``; ``ok`` is False at end of stream."""
        gray = self._next_image()
        if gray is None:
            return False, None, 0.0
        pos_ms = self._cap.get(cv2.CAP_PROP_POS_MSEC) if self._cap is not None else 0.0
        ts = pos_ms / 1000.0 if pos_ms > 0 else self._index / self.info.fps
        self._index += 1
        return True, gray, ts

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()

    def __enter__(self) -> "FrameSource":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

class FrameSink:
    """
    Writes masks or overlays to:
      - a video file (mp4/avi) via VideoWriter
      - an image sequence template: "out/frame_%06d.png"
      - a directory, as "frame_%06d.png"
    """
    def __init__(
        self,
        output: Optional[str],
        frame_size: Tuple[int, int],
        fps: float,
        out_seq: Optional[str] = None,
        out_dir: Optional[str] = None,
        is_color: bool = False,
    ):
        self._writer: Optional[cv2.VideoWriter] = None
        self._template: Optional[str] = None
        self._count = 0
        self.is_color = is_color

        if out_seq:
            self._template = out_seq
        elif out_dir:
            self._template = str(Path(out_dir) / "frame_%06d.png")
        elif output and _is_video_file(output):
            codec = "mp4v" if output.lower().endswith(".mp4") else "XVID"
            self._writer = cv2.VideoWriter(
                output, cv2.VideoWriter_fourcc(*codec), fps, frame_size, isColor=is_color
            )
            if not self._writer.isOpened():
                raise RuntimeError(f"Could not create video writer: {output}")
        elif output and _looks_like_pattern(output):
            self._template = output
        else:
            raise ValueError(
                "Specify a video file path (.mp4/.avi), or use --out-seq TEMPLATE, or --out-dir DIR."
            )
        if self._template:
            Path(self._template).parent.mkdir(parents=True, exist_ok=True)

    @property
    def count(self) -> int:
        return self._count

    def write(self, image: np.ndarray) -> None:
        if self._writer is not None:
            self._writer.write(image)
        else:
            path = self._template % self._count
            if not cv2.imwrite(path, image):
                raise RuntimeError(f"Could not write frame: {path}")
        self._count += 1

    def release(self) -> None:
        if self._writer is not None:
            self._writer.release()

    def __enter__(self) -> "FrameSink":
        return self

    def __exit__(self, *exc) -> None:
        self.release()
