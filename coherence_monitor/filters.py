"""
Single-pole IIR filters for the fingertip brightness signal.

Both filters are the discrete RC equivalents used on the raw per-frame
brightness series:

* high-pass  ``y[i] = α·(y[i-1] + x[i] − x[i-1])``,  ``α = rc / (rc + dt)``
* low-pass   ``y[i] = y[i-1] + α·(x[i] − y[i-1])``,  ``α = dt / (rc + dt)``

with ``rc = 1 / (2π·cutoff)`` and ``y[0] = x[0]`` as boundary condition.
The recurrences are evaluated with :func:`scipy.signal.lfilter`; the first
sample is passed through and seeds the filter state.
"""

from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np
from scipy.signal import lfilter

from .config import PipelineConfig

ArrayLike = Union[Sequence[float], np.ndarray]

DEFAULT_DT = PipelineConfig.dt   # seconds, ≈ 30 fps


def _rc(cutoff_hz: float, dt: float) -> float:
    if cutoff_hz <= 0:
        raise ValueError(f"cutoff_hz must be positive, got {cutoff_hz}")
    if dt <= 0:
        raise ValueError(f"dt must be positive, got {dt}")
    return 1.0 / (2.0 * math.pi * cutoff_hz)


def highpass(series: ArrayLike, cutoff_hz: float, dt: float = DEFAULT_DT) -> np.ndarray:
    """
    First-order high-pass filter.

    Parameters
    ----------
    series:
        Input samples.
    cutoff_hz:
        -3 dB cut-off frequency in Hz.  Must be positive.
    dt:
        Sample interval in seconds.

    Returns
    -------
    numpy.ndarray
        Filtered samples, same length as *series*.
    """
    x = np.asarray(series, dtype=np.float64)
    rc = _rc(cutoff_hz, dt)
    if x.size < 2:
        return x.copy()
    alpha = rc / (rc + dt)
    # With y[0] = x[0] the pending state alpha*(y[0] - x[0]) is zero.
    y, _ = lfilter([alpha, -alpha], [1.0, -alpha], x[1:], zi=[0.0])
    return np.concatenate((x[:1], y))


def lowpass(series: ArrayLike, cutoff_hz: float, dt: float = DEFAULT_DT) -> np.ndarray:
    """
    First-order low-pass (exponential smoothing) filter.

    Same contract as :func:`highpass`.
    """
    x = np.asarray(series, dtype=np.float64)
    rc = _rc(cutoff_hz, dt)
    if x.size < 2:
        return x.copy()
    alpha = dt / (rc + dt)
    y, _ = lfilter([alpha], [1.0, -(1.0 - alpha)], x[1:], zi=[(1.0 - alpha) * x[0]])
    return np.concatenate((x[:1], y))


def bandpass(
    series: ArrayLike,
    low_hz: float = PipelineConfig.highpass_hz,
    high_hz: float = PipelineConfig.lowpass_hz,
    dt: float = DEFAULT_DT,
) -> np.ndarray:
    """High-pass at *low_hz* followed by low-pass at *high_hz*."""
    return lowpass(highpass(series, low_hz, dt), high_hz, dt)
