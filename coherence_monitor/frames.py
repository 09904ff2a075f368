"""
Frame sources feeding ``(brightness, timestamp_ms)`` pairs into a session.

A frame source owns whatever produces the samples (camera, recording,
generator).  The session opens it on ``start()``, iterates over it and
closes it on ``stop()``; ``close()`` must be safe to call repeatedly.
"""

from __future__ import annotations

import logging
import time
from typing import Iterable, Iterator, List, Optional, Protocol, Tuple

import numpy as np

logger = logging.getLogger(__name__)

Sample = Tuple[float, int]

_BGR_CHANNELS = {"blue": 0, "green": 1, "red": 2}


def monotonic_ms() -> int:
    """Monotonic clock in integer milliseconds."""
    return int(time.monotonic() * 1000)


class FrameSource(Protocol):
    def open(self) -> None: ...

    def close(self) -> None: ...

    def __iter__(self) -> Iterator[Sample]: ...


def frame_brightness(frame: np.ndarray, channel: str = "red") -> float:
    """
    Mean intensity of one colour channel of a BGR frame.

    With a finger over the lens and the flash on, the red channel carries
    the strongest pulsatile component.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3) or a single-channel image.
    channel:
        ``"red"``, ``"green"`` or ``"blue"``.
    """
    if frame.ndim == 2:
        return float(np.mean(frame))
    try:
        idx = _BGR_CHANNELS[channel]
    except KeyError:
        raise ValueError(f"Unknown channel {channel!r}") from None
    return float(np.mean(frame[:, :, idx]))


class ReplayFrameSource:
    """Replays pre-recorded ``(brightness, timestamp_ms)`` pairs once."""

    def __init__(self, samples: Iterable[Sample]) -> None:
        self._samples: List[Sample] = [(float(v), int(t)) for v, t in samples]
        self._open = False

    def open(self) -> None:
        self._open = True

    def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def __iter__(self) -> Iterator[Sample]:
        for sample in self._samples:
            if not self._open:
                return
            yield sample


class SyntheticPulseSource:
    """
    Generates a fingertip-like brightness trace for demos and tests.

    Each beat is a narrow Gaussian bump on a constant baseline, sampled at
    *fps* with additive Gaussian noise.

    Parameters
    ----------
    bpm:
        Heart rate of the synthetic pulse.
    fps:
        Sample rate in frames per second.
    duration_s:
        Length of the trace; *None* means endless.
    baseline, amplitude, noise:
        Brightness level, pulse height and noise standard deviation.
    start_ms:
        Timestamp of the first sample.
    seed:
        Seed for :func:`numpy.random.default_rng`.
    """

    def __init__(
        self,
        bpm: float = 60.0,
        fps: float = 30.0,
        duration_s: Optional[float] = 20.0,
        baseline: float = 150.0,
        amplitude: float = 5.0,
        noise: float = 0.2,
        start_ms: int = 0,
        seed: Optional[int] = 0,
    ) -> None:
        if bpm <= 0 or fps <= 0:
            raise ValueError("bpm and fps must be positive.")
        self.bpm = bpm
        self.fps = fps
        self.duration_s = duration_s
        self.baseline = baseline
        self.amplitude = amplitude
        self.noise = noise
        self.start_ms = start_ms
        self._rng = np.random.default_rng(seed)
        self._open = False

    def open(self) -> None:
        self._open = True
        logger.info("Synthetic pulse source opened – %.0f BPM at %.0f fps.", self.bpm, self.fps)

    def close(self) -> None:
        self._open = False

    def value_at(self, t: float) -> float:
        """Noise-free brightness at time *t* (seconds)."""
        period = 60.0 / self.bpm
        phase = (t % period) / period - 0.5
        return self.baseline + self.amplitude * float(np.exp(-(phase / 0.08) ** 2))

    def __iter__(self) -> Iterator[Sample]:
        n_total = None if self.duration_s is None else int(self.duration_s * self.fps)
        i = 0
        while self._open and (n_total is None or i < n_total):
            t = i / self.fps
            value = self.value_at(t) + self.noise * float(self._rng.standard_normal())
            yield value, self.start_ms + int(round(t * 1000.0))
            i += 1
