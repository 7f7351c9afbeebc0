from __future__ import annotations
from typing import List, Optional
import argparse
import logging
from .errors import InvalidConfiguration
from .io import FrameSink, FrameSource
from .tracker import MotionHistoryParams, MotionHistoryTracker
from .viz import overlay

logger = logging.getLogger(__name__)

def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Track motion history in a video or image sequence.")
    p.add_argument("-i", "--input", required=True,
                   help="Input video path, webcam index (e.g. 0), directory, glob, or printf pattern (e.g. img_%%06d.png)")
    p.add_argument("-o", "--output",
                   help="Output video path (.mp4/.avi). Not required when using --out-seq or --out-dir.")
    p.add_argument("--view", choices=["mask", "overlay"], default="mask",
                   help="Write the motion mask or the input annotated with motion components.")

    # Tracker params
    p.add_argument("--buffer", type=int, default=2, help="Frames kept for differencing.")
    p.add_argument("--thresh", type=int, default=30, help="Pixel difference threshold (0-255).")
    p.add_argument("--duration", type=float, default=1.0, help="Motion history duration in seconds.")
    p.add_argument("--max-delta", type=float, default=0.5, help="Max time delta for the motion gradient (s).")
    p.add_argument("--min-delta", type=float, default=0.05, help="Min time delta for the motion gradient (s).")
    p.add_argument("--aperture", type=int, default=3, help="Gradient aperture size (3, 5 or 7).")
    p.add_argument("--min-area", type=int, default=64, help="Smallest component drawn in overlay view.")

    # I/O extras
    p.add_argument("--in-fps", type=float, default=None, help="FPS hint for image sequences or sources that report 0.")
    p.add_argument("--out-fps", type=float, default=None, help="Output FPS (defaults to input FPS).")
    p.add_argument("--out-seq", type=str, default=None, help='Image sequence template, e.g. "out/frame_%%06d.png"')
    p.add_argument("--out-dir", type=str, default=None, help="Directory to write image sequence frames.")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    return p

def main(argv: Optional[List[str]] = None) -> None:
    p = build_parser()
    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    params = MotionHistoryParams(
        buffer_count=args.buffer,
        diff_thresh=args.thresh,
        mhi_duration=args.duration,
        max_time_delta=args.max_delta,
        min_time_delta=args.min_delta,
        aperture_size=args.aperture,
    )
    try:
        params.validate()
    except InvalidConfiguration as e:
        p.error(str(e))

    # Input
    src = int(args.input) if args.input.isdigit() else args.input
    fs = FrameSource(src, in_fps=args.in_fps)
    info = fs.info

    # Output
    try:
        sink = FrameSink(
            output=args.output,
            frame_size=(info.width, info.height),
            fps=args.out_fps or info.fps,
            out_seq=args.out_seq,
            out_dir=args.out_dir,
            is_color=(args.view == "overlay"),
        )
    except ValueError as e:
        fs.release()
        p.error(str(e))

    tracker = MotionHistoryTracker(params, init_time=0.0)
    with fs, sink:
        while True:
            ok, gray, ts = fs.read()
            if not ok:
                break
            mask = tracker.update(gray, ts)
            if args.view == "overlay":
                sink.write(overlay(gray, tracker, min_area=args.min_area))
            else:
                sink.write(mask)
    logger.info("wrote %d frames", sink.count)

if __name__ == "__main__":
    main()
