"""
Adaptive-threshold local-maxima detector for the filtered pulse waveform.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from .config import PipelineConfig

ArrayLike = Union[Sequence[float], np.ndarray]


def peak_threshold(series: ArrayLike, threshold_factor: float = PipelineConfig.threshold_factor) -> float:
    """Return ``mean + threshold_factor · (max − mean)`` of *series*."""
    x = np.asarray(series, dtype=np.float64)
    if x.size == 0:
        return 0.0
    mean = float(np.mean(x))
    return mean + threshold_factor * (float(np.max(x)) - mean)


def find_peaks(series: ArrayLike, threshold_factor: float = PipelineConfig.threshold_factor) -> np.ndarray:
    """
    Return the indices of the beats in *series*, ascending.

    A sample ``x[i]`` (``1 ≤ i ≤ len − 2``) is a peak when it is strictly
    above the adaptive threshold and strictly above both neighbours, so the
    first and last samples are never reported.

    Parameters
    ----------
    series:
        Band-passed pulse waveform.
    threshold_factor:
        Position of the threshold between the mean (0.0) and the maximum
        (1.0) of the window.
    """
    x = np.asarray(series, dtype=np.float64)
    if x.size < 3:
        return np.array([], dtype=np.intp)

    threshold = peak_threshold(x, threshold_factor)
    mid = x[1:-1]
    mask = (mid > threshold) & (mid > x[:-2]) & (mid > x[2:])
    return np.flatnonzero(mask) + 1
