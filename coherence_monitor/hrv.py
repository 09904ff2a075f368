"""
Heart-rate-variability and coherence metrics from RR intervals (ms).

Coherence
---------
The RR series is turned into a tachogram sampled uniformly at 4 Hz by a
zero-order hold, padded with the mean RR to a power-of-two length ``N`` and
transformed with :func:`coherence_monitor.spectrum.fft_radix2`.  The score is
the power of the *single strongest* bin inside the low-frequency band
(0.04 – 0.15 Hz) divided by the total power of all positive-frequency bins
(DC excluded), in percent.  This is a peak-concentration measure, not an
integrated band-power ratio; display thresholds such as "coherent above
50 %" are calibrated against it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple, Union

import numpy as np

from .config import PipelineConfig
from .spectrum import next_power_of_two, power_spectrum

ArrayLike = Union[Sequence[float], np.ndarray]

RESAMPLE_HZ = PipelineConfig.resample_hz
LF_BAND: Tuple[float, float] = PipelineConfig.lf_band


@dataclass(frozen=True)
class HrvMetrics:
    rmssd: float
    coherence_pct: float


def rmssd(rr_ms: ArrayLike) -> float:
    """Root mean square of successive RR differences (ms); 0.0 for < 2 intervals."""
    rr = np.asarray(rr_ms, dtype=np.float64)
    if rr.size < 2:
        return 0.0
    diff = np.diff(rr)
    return float(np.sqrt(np.mean(diff ** 2)))


def resample_tachogram(rr_ms: ArrayLike, sample_rate: float = RESAMPLE_HZ) -> np.ndarray:
    """
    Zero-order-hold resampling of the RR series onto a uniform grid.

    Each ``rr[i]`` is repeated until the resampled series covers the
    cumulative beat time ``Σ rr[:i+1] / 1000`` seconds.
    """
    out: List[float] = []
    t = 0.0
    for value in np.asarray(rr_ms, dtype=np.float64):
        t += value / 1000.0
        while len(out) / sample_rate < t:
            out.append(float(value))
    return np.asarray(out, dtype=np.float64)


def band_bins(n: int, sample_rate: float = RESAMPLE_HZ,
              band: Tuple[float, float] = LF_BAND) -> Tuple[int, int]:
    """Inclusive bin range ``(floor(lo·N/fs), floor(hi·N/fs))`` of *band*."""
    lo, hi = band
    return math.floor(lo * n / sample_rate), math.floor(hi * n / sample_rate)


def coherence(
    rr_ms: ArrayLike,
    sample_rate: float = RESAMPLE_HZ,
    band: Tuple[float, float] = LF_BAND,
) -> float:
    """
    Return the coherence score (0 – 100) of the RR series.

    Returns 0.0 for fewer than two intervals or a spectrum without power.
    """
    rr = np.asarray(rr_ms, dtype=np.float64)
    if rr.size < 2:
        return 0.0

    tachogram = resample_tachogram(rr, sample_rate)
    n = next_power_of_two(tachogram.size)
    padded = np.full(n, float(np.mean(rr)))
    padded[: tachogram.size] = tachogram

    power = power_spectrum(padded)
    positive = power[1 : n // 2]
    total = float(positive.sum())
    if total <= 0.0:
        return 0.0

    start, end = band_bins(n, sample_rate, band)
    bins = np.arange(1, n // 2)
    in_band = positive[(bins >= start) & (bins <= end)]
    peak = float(in_band.max()) if in_band.size else 0.0
    return 100.0 * peak / total


def analyze(
    rr_ms: ArrayLike,
    sample_rate: float = RESAMPLE_HZ,
    band: Tuple[float, float] = LF_BAND,
) -> HrvMetrics:
    """Compute RMSSD and coherence for the full RR series."""
    return HrvMetrics(
        rmssd=rmssd(rr_ms),
        coherence_pct=coherence(rr_ms, sample_rate, band),
    )
