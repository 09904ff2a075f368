"""
Unit tests for RMSSD, tachogram resampling, coherence scoring and pacing.
Run with:  pytest tests/
"""

from __future__ import annotations

import inspect
import math

import numpy as np
import pytest

from coherence_monitor import beats, filters, hrv, pacing, peaks
from coherence_monitor.config import PipelineConfig
from coherence_monitor.hrv import (
    HrvMetrics,
    analyze,
    band_bins,
    coherence,
    resample_tachogram,
    rmssd,
)
from coherence_monitor.pacing import is_coherent, target_breaths_per_minute
from coherence_monitor.spectrum import next_power_of_two


def _modulated_rr(n_beats=60, base=1000.0, depth=50.0, freq_hz=0.1):
    """RR series whose length oscillates at *freq_hz* (paced breathing)."""
    rr, t = [], 0.0
    for _ in range(n_beats):
        value = base + depth * math.sin(2 * math.pi * freq_hz * t)
        rr.append(value)
        t += value / 1000.0
    return np.array(rr)


# ---------------------------------------------------------------------------
# RMSSD
# ---------------------------------------------------------------------------

class TestRmssd:

    def test_constant_intervals(self):
        assert rmssd([800, 800, 800]) == 0.0

    def test_single_difference(self):
        assert rmssd([800, 900]) == pytest.approx(100.0)

    def test_alternating(self):
        assert rmssd([800, 900, 800]) == pytest.approx(100.0)

    def test_mixed_differences(self):
        # diffs 100, -50 → sqrt((10000 + 2500) / 2)
        assert rmssd([800, 900, 850]) == pytest.approx(math.sqrt(6250.0))

    def test_too_short_is_zero(self):
        assert rmssd([]) == 0.0
        assert rmssd([812]) == 0.0


# ---------------------------------------------------------------------------
# Tachogram
# ---------------------------------------------------------------------------

class TestResampleTachogram:

    def test_zero_order_hold(self):
        out = resample_tachogram([1000, 500], sample_rate=4.0)
        assert out.tolist() == [1000.0] * 4 + [500.0] * 2

    def test_length_covers_duration(self):
        rr = [850, 910, 780, 1020]
        out = resample_tachogram(rr, sample_rate=4.0)
        assert len(out) / 4.0 >= sum(rr) / 1000.0
        assert (len(out) - 1) / 4.0 < sum(rr) / 1000.0

    def test_short_interval_still_sampled(self):
        assert resample_tachogram([250]).tolist() == [250.0]

    def test_empty(self):
        assert resample_tachogram([]).size == 0


# ---------------------------------------------------------------------------
# Coherence
# ---------------------------------------------------------------------------

class TestCoherence:

    def test_band_bins(self):
        assert band_bins(256) == (2, 9)
        assert band_bins(64) == (0, 2)

    def test_too_few_intervals(self):
        assert coherence([]) == 0.0
        assert coherence([900]) == 0.0

    def test_flat_series_has_no_power(self):
        assert coherence([800] * 20) == 0.0

    def test_peak_bin_over_total_power(self):
        rng = np.random.default_rng(3)
        rr = rng.normal(900, 45, 40)

        tachogram = resample_tachogram(rr)
        n = next_power_of_two(tachogram.size)
        padded = np.concatenate([tachogram, np.full(n - tachogram.size, rr.mean())])
        power = np.abs(np.fft.fft(padded)) ** 2
        lo, hi = band_bins(n)
        positive = power[1 : n // 2]
        band = [power[i] for i in range(1, n // 2) if lo <= i <= hi]
        expected = 100.0 * max(band) / positive.sum()

        assert coherence(rr) == pytest.approx(expected)
        # Strongest bin only, not the integrated band power.
        assert coherence(rr) < 100.0 * sum(band) / positive.sum()

    @pytest.mark.parametrize("seed", range(5))
    def test_bounded(self, seed):
        rng = np.random.default_rng(seed)
        rr = rng.uniform(400, 1500, rng.integers(2, 120))
        assert 0.0 <= coherence(rr) <= 100.0

    def test_paced_breathing_scores_higher_than_noise(self):
        rng = np.random.default_rng(11)
        paced = coherence(_modulated_rr())
        noisy = coherence(rng.normal(1000, 50, 60))
        assert paced > 30.0
        assert paced > noisy

    def test_analyze_combines_metrics(self):
        rr = _modulated_rr()
        metrics = analyze(rr)
        assert isinstance(metrics, HrvMetrics)
        assert metrics.rmssd == pytest.approx(rmssd(rr))
        assert metrics.coherence_pct == pytest.approx(coherence(rr))

    def test_analyze_degenerate(self):
        assert analyze([]) == HrvMetrics(rmssd=0.0, coherence_pct=0.0)


# ---------------------------------------------------------------------------
# Pacing helpers
# ---------------------------------------------------------------------------

class TestPacing:

    def test_coherent_is_strictly_above_threshold(self):
        assert is_coherent(50.1) is True
        assert is_coherent(50.0) is False
        assert is_coherent(None) is False
        assert is_coherent(30.0, threshold=25.0) is True

    def test_breaths_follow_heart_rate(self):
        assert target_breaths_per_minute(60) == pytest.approx(5.0)
        assert target_breaths_per_minute(96) == pytest.approx(8.0)

    def test_breaths_clamped(self):
        assert target_breaths_per_minute(30) == 4.0
        assert target_breaths_per_minute(150) == 10.0

    def test_unknown_rate(self):
        assert target_breaths_per_minute(None) is None


# ---------------------------------------------------------------------------
# Module defaults
# ---------------------------------------------------------------------------

class TestDefaultsFollowConfig:

    def test_stage_defaults_match_config(self):
        cfg = PipelineConfig()
        assert hrv.RESAMPLE_HZ == cfg.resample_hz
        assert hrv.LF_BAND == cfg.lf_band
        assert filters.DEFAULT_DT == cfg.dt
        assert pacing.COHERENT_THRESHOLD == cfg.coherent_threshold

        bp = inspect.signature(filters.bandpass).parameters
        assert (bp["low_hz"].default, bp["high_hz"].default) == (cfg.highpass_hz, cfg.lowpass_hz)
        fp = inspect.signature(peaks.find_peaks).parameters
        assert fp["threshold_factor"].default == cfg.threshold_factor
        bt = beats.BeatTracker()
        assert (bt.rr_min_ms, bt.rr_max_ms, bt.bpm_min, bt.bpm_max) == (
            cfg.rr_min_ms, cfg.rr_max_ms, cfg.bpm_min, cfg.bpm_max,
        )
