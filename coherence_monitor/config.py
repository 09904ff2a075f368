"""
Tunable parameters of the pulse / HRV / coherence pipeline.

Every stage reads its constants from a single :class:`PipelineConfig` so a
session can be reconfigured (e.g. from the command line) without touching
the processing code.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True)
class PipelineConfig:
    """
    Parameters
    ----------
    window_ms:
        Length of the rolling sample window.  Older samples are trimmed.
    analysis_interval_ms:
        Minimum clock time between two full analysis passes.
    min_samples:
        Number of buffered samples required before a pass runs at all.
    dt:
        Assumed sample interval of the brightness stream in seconds
        (0.033 s ≈ 30 fps).
    highpass_hz, lowpass_hz:
        Cut-offs of the single-pole filters isolating the pulse band
        (roughly 30 – 180 BPM).
    threshold_factor:
        Fraction of the ``max − mean`` range added to the mean to form the
        peak threshold.  0.4 works well for fingertip signals.
    rr_min_ms, rr_max_ms:
        Open interval of inter-beat intervals accepted for the
        instantaneous heart-rate estimate.
    bpm_min, bpm_max:
        Open interval of heart rates that are published.
    resample_hz:
        Uniform sample rate of the resampled tachogram.
    lf_band:
        Frequency band (Hz) whose strongest bin defines coherence.
    coherent_threshold:
        Coherence percentage above which the user counts as coherent.
    rr_display_limit:
        Default number of recent RR intervals handed out for charting.
    """

    window_ms: int = 20_000
    analysis_interval_ms: int = 1_000
    min_samples: int = 50
    dt: float = 0.033
    highpass_hz: float = 0.5
    lowpass_hz: float = 3.0
    threshold_factor: float = 0.4
    rr_min_ms: float = 300.0
    rr_max_ms: float = 2000.0
    bpm_min: int = 40
    bpm_max: int = 180
    resample_hz: float = 4.0
    lf_band: Tuple[float, float] = (0.04, 0.15)
    coherent_threshold: float = 50.0
    rr_display_limit: int = 50

    def validate(self) -> "PipelineConfig":
        """Raise ``ValueError`` for settings the pipeline cannot run with."""
        if self.window_ms <= 0:
            raise ValueError(f"window_ms must be positive, got {self.window_ms}")
        if self.analysis_interval_ms < 0:
            raise ValueError(
                f"analysis_interval_ms must be >= 0, got {self.analysis_interval_ms}"
            )
        if self.min_samples < 3:
            raise ValueError(f"min_samples must be >= 3, got {self.min_samples}")
        if self.dt <= 0:
            raise ValueError(f"dt must be positive, got {self.dt}")
        if self.highpass_hz <= 0 or self.lowpass_hz <= 0:
            raise ValueError("Filter cut-offs must be positive.")
        if self.highpass_hz >= self.lowpass_hz:
            raise ValueError(
                f"highpass_hz ({self.highpass_hz}) must be below "
                f"lowpass_hz ({self.lowpass_hz})"
            )
        if not 0.0 <= self.threshold_factor < 1.0:
            raise ValueError(
                f"threshold_factor must be in [0, 1), got {self.threshold_factor}"
            )
        if not 0 < self.rr_min_ms < self.rr_max_ms:
            raise ValueError("Expected 0 < rr_min_ms < rr_max_ms.")
        if not 0 < self.bpm_min < self.bpm_max:
            raise ValueError("Expected 0 < bpm_min < bpm_max.")
        if self.resample_hz <= 0:
            raise ValueError(f"resample_hz must be positive, got {self.resample_hz}")
        lo, hi = self.lf_band
        if not 0 <= lo < hi <= self.resample_hz / 2.0:
            raise ValueError(f"lf_band {self.lf_band} is outside (0, Nyquist].")
        if self.rr_display_limit < 0:
            raise ValueError("rr_display_limit must be >= 0.")
        return self
