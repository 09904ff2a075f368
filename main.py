#!/usr/bin/env python3
"""
Coherence Monitor – headless entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --resolution WxH       Camera resolution (default: 320x240)
    --fps INT              Target frame rate (default: 30)
    --camera-index INT     OpenCV camera index (default: 0)
    --channel NAME         Colour channel averaged per frame (default: red)
    --threshold FLOAT      Peak threshold factor (default: 0.4)
    --duration FLOAT       Stop after this many seconds (default: run until Ctrl-C)
    --demo BPM             Use a synthetic pulse instead of the camera

The current result is logged once per analysis interval.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time

from coherence_monitor.camera import CameraFrameSource, FingertipCamera
from coherence_monitor.config import PipelineConfig
from coherence_monitor.frames import SyntheticPulseSource, monotonic_ms
from coherence_monitor.session import AnalysisResult, PpgSession, SessionState

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("coherence_monitor")


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Fingertip camera pulse, HRV and coherence monitor",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--resolution", default="320x240",
                        help="Camera resolution, e.g. 320x240")
    parser.add_argument("--fps", type=int, default=30,
                        help="Target capture frame rate")
    parser.add_argument("--camera-index", type=int, default=0,
                        help="OpenCV VideoCapture index (fallback)")
    parser.add_argument("--channel", choices=("red", "green", "blue"), default="red",
                        help="Colour channel averaged per frame")
    parser.add_argument("--threshold", type=float, default=0.4,
                        help="Peak threshold factor between window mean and max")
    parser.add_argument("--duration", type=float, default=None,
                        help="Stop after this many seconds")
    parser.add_argument("--demo", type=float, default=None, metavar="BPM",
                        help="Feed a synthetic pulse at BPM instead of the camera")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


def format_result(result: AnalysisResult) -> str:
    if result.bpm is None:
        return result.status
    coherent = "  coherent" if result.is_coherent() else ""
    return (
        f"BPM={result.bpm}  RMSSD={result.hrv_rmssd_ms:.1f} ms  "
        f"coherence={result.coherence_pct:.1f}%  "
        f"pace={result.breaths_per_minute:.1f}/min{coherent}"
    )


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        res_w, res_h = (int(v) for v in args.resolution.lower().split("x"))
    except ValueError:
        logger.error("Invalid --resolution format.  Use WxH, e.g. 320x240.")
        return 1

    session: PpgSession

    def sample_clock() -> int:
        # Synthetic samples carry their own timeline; pace analysis by it.
        return session.last_timestamp_ms or 0

    if args.fps <= 0:
        logger.error("--fps must be positive.")
        return 1

    try:
        if args.demo is not None:
            source = SyntheticPulseSource(bpm=args.demo, fps=args.fps, duration_s=args.duration)
            clock = sample_clock
        else:
            camera = FingertipCamera(
                resolution=(res_w, res_h),
                fps=args.fps,
                camera_index=args.camera_index,
            )
            source = CameraFrameSource(camera, channel=args.channel)
            clock = monotonic_ms
        config = PipelineConfig(dt=1.0 / args.fps, threshold_factor=args.threshold)
        session = PpgSession(config, source=source, clock=clock)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1

    logger.info("Starting coherence monitor.  Press Ctrl-C to quit.")
    if not session.start():
        logger.error(session.result.status)
        return 1

    deadline = None if args.duration is None else time.monotonic() + args.duration
    last_logged: AnalysisResult | None = None
    try:
        while session.is_running:
            consumed = session.run(max_frames=args.fps)
            if session.result is not last_logged:
                last_logged = session.result
                print(f"[{time.strftime('%H:%M:%S')}] {format_result(last_logged)}")
            if consumed < args.fps:
                break
            if deadline is not None and args.demo is None and time.monotonic() >= deadline:
                break
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    finally:
        failed = session.state is SessionState.ERROR
        session.stop()

    return 1 if failed else 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
