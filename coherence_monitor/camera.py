"""
Fingertip camera acquisition.

Wraps picamera2 to provide an iterator of OpenCV-compatible BGR frames and
falls back to OpenCV VideoCapture (any webcam or phone camera exposed as a
V4L device) when picamera2 is unavailable.  :class:`CameraFrameSource`
reduces every frame to a single brightness sample for a
:class:`~coherence_monitor.session.PpgSession`.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Generator, Iterator, Tuple

import cv2
import numpy as np

from .frames import Sample, frame_brightness, monotonic_ms

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Try importing picamera2 (only available on Raspberry Pi OS)
# ---------------------------------------------------------------------------
try:
    from picamera2 import Picamera2
    from libcamera import Transform
    _PICAMERA2_AVAILABLE = True
except ImportError:
    _PICAMERA2_AVAILABLE = False
    logger.debug("picamera2 not found – using OpenCV VideoCapture.")

_MAX_NULL_STREAK = 10

# Backend failures surfaced as RuntimeError; picamera2 raises IndexError
# when no sensor is attached.
_BACKEND_ERRORS = (cv2.error, IndexError)


class FingertipCamera:
    """
    Camera used with a fingertip pressed over the lens.

    Parameters
    ----------
    resolution:
        (width, height) of captured frames.  The pulse signal is a frame
        average, so a small resolution is enough.
    fps:
        Target frame rate.  Actual rate may differ slightly.
    flip_horizontal:
        Mirror the image left-to-right.
    camera_index:
        OpenCV camera index used when picamera2 is unavailable.
    """

    def __init__(
        self,
        resolution: Tuple[int, int] = (320, 240),
        fps: int = 30,
        flip_horizontal: bool = False,
        camera_index: int = 0,
    ) -> None:
        self.resolution = resolution
        self.fps = fps
        self.flip_horizontal = flip_horizontal
        self.camera_index = camera_index

        self._cam: "Picamera2 | cv2.VideoCapture | None" = None
        self._use_picamera2 = _PICAMERA2_AVAILABLE
        # Held for every device call; close() waits for an in-flight read.
        self._io_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._cam is not None

    def open(self) -> None:
        """Initialise and start the camera.  Raises ``RuntimeError`` on failure."""
        with self._io_lock:
            if self._cam is not None:
                return
            try:
                if self._use_picamera2:
                    self._open_picamera2()
                else:
                    self._open_opencv()
            except _BACKEND_ERRORS as exc:
                raise RuntimeError(f"Cannot open camera: {exc}") from exc
        logger.info(
            "Camera opened – backend=%s resolution=%s fps=%d",
            "picamera2" if self._use_picamera2 else "opencv",
            self.resolution,
            self.fps,
        )

    def close(self) -> None:
        """
        Stop and release the camera.  Safe to call more than once and from
        another thread than the one reading frames.
        """
        with self._io_lock:
            if self._cam is None:
                return
            cam, self._cam = self._cam, None
            if self._use_picamera2:
                cam.stop()
                cam.close()
            else:
                cam.release()
        logger.info("Camera closed.")

    def __enter__(self) -> "FingertipCamera":
        self.open()
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Frame acquisition
    # ------------------------------------------------------------------

    def read_frame(self) -> np.ndarray | None:
        """
        Capture a single frame.

        Returns
        -------
        numpy.ndarray
            BGR image array (H × W × 3, dtype uint8), or *None* on failure.
        """
        with self._io_lock:
            if self._cam is None:
                raise RuntimeError("Camera is not open.  Call open() first.")
            return self._read_locked()

    def frames(self) -> Generator[np.ndarray, None, None]:
        """
        Yield frames until the camera is closed.

        Raises ``RuntimeError`` after ten consecutive failed reads.
        """
        null_streak = 0
        while True:
            with self._io_lock:
                if self._cam is None:
                    return
                frame = self._read_locked()
            if frame is None:
                null_streak += 1
                if null_streak >= _MAX_NULL_STREAK:
                    raise RuntimeError(
                        f"Camera returned {_MAX_NULL_STREAK} consecutive empty frames."
                    )
                continue
            null_streak = 0
            yield frame

    def _read_locked(self) -> np.ndarray | None:
        try:
            if self._use_picamera2:
                return self._read_picamera2()
            return self._read_opencv()
        except _BACKEND_ERRORS as exc:
            raise RuntimeError(f"Camera read failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Private helpers – picamera2
    # ------------------------------------------------------------------

    def _open_picamera2(self) -> None:
        cam = Picamera2()
        w, h = self.resolution
        config = cam.create_video_configuration(
            main={"size": (w, h), "format": "RGB888"},
            transform=Transform(hflip=self.flip_horizontal),
            buffer_count=4,
        )
        cam.configure(config)
        frame_duration = int(1_000_000 / self.fps)   # microseconds
        try:
            cam.set_controls({"FrameDurationLimits": (frame_duration, frame_duration)})
        except Exception as exc:                         # noqa: BLE001
            logger.warning("Could not set FrameDurationLimits: %s", exc)
        cam.start()
        # Let auto-exposure settle before the first real sample.
        for _ in range(8):
            cam.capture_array("main")
        self._cam = cam

    def _read_picamera2(self) -> np.ndarray | None:
        frame = self._cam.capture_array("main")
        if frame is None:
            logger.warning("capture_array returned None.")
            return None
        if frame.ndim == 3 and frame.shape[2] == 4:
            frame = frame[:, :, :3]
        return cv2.cvtColor(frame, cv2.COLOR_RGB2BGR)

    # ------------------------------------------------------------------
    # Private helpers – OpenCV fallback
    # ------------------------------------------------------------------

    def _open_opencv(self) -> None:
        cap = cv2.VideoCapture(self.camera_index)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(
                f"Cannot open video capture device index={self.camera_index}"
            )
        w, h = self.resolution
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
        cap.set(cv2.CAP_PROP_FPS, self.fps)
        self._cam = cap

    def _read_opencv(self) -> np.ndarray | None:
        ok, frame = self._cam.read()
        if not ok:
            logger.warning("VideoCapture.read() returned False.")
            return None
        if self.flip_horizontal:
            frame = cv2.flip(frame, 1)
        return frame


class CameraFrameSource:
    """
    Frame source turning camera frames into brightness samples.

    Parameters
    ----------
    camera:
        Any object with ``open()``, ``close()`` and ``frames()`` like
        :class:`FingertipCamera`.
    clock:
        Millisecond clock used to timestamp each frame.
    channel:
        Colour channel averaged per frame.
    """

    def __init__(
        self,
        camera: FingertipCamera | None = None,
        clock: Callable[[], int] = monotonic_ms,
        channel: str = "red",
    ) -> None:
        self.camera = camera if camera is not None else FingertipCamera()
        self.clock = clock
        self.channel = channel

    def open(self) -> None:
        try:
            self.camera.open()
        except _BACKEND_ERRORS as exc:
            raise RuntimeError(f"Cannot open camera: {exc}") from exc

    def close(self) -> None:
        self.camera.close()

    def __iter__(self) -> Iterator[Sample]:
        try:
            for frame in self.camera.frames():
                yield frame_brightness(frame, self.channel), int(self.clock())
        except _BACKEND_ERRORS as exc:
            raise RuntimeError(f"Camera stream failed: {exc}") from exc
