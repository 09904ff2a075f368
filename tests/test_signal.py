"""
Unit tests for the filters, the peak detector and the radix-2 FFT.
Run with:  pytest tests/
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from coherence_monitor.filters import bandpass, highpass, lowpass
from coherence_monitor.peaks import find_peaks, peak_threshold
from coherence_monitor.spectrum import fft_radix2, next_power_of_two, power_spectrum


def _reference_highpass(x, cutoff_hz, dt):
    rc = 1.0 / (2 * math.pi * cutoff_hz)
    alpha = rc / (rc + dt)
    y = [x[0]]
    for i in range(1, len(x)):
        y.append(alpha * (y[i - 1] + x[i] - x[i - 1]))
    return np.array(y)


def _reference_lowpass(x, cutoff_hz, dt):
    rc = 1.0 / (2 * math.pi * cutoff_hz)
    alpha = dt / (rc + dt)
    y = [x[0]]
    for i in range(1, len(x)):
        y.append(y[i - 1] + alpha * (x[i] - y[i - 1]))
    return np.array(y)


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class TestFilters:

    @pytest.fixture
    def noisy(self):
        rng = np.random.default_rng(7)
        t = np.arange(300) * 0.033
        return 120 + 4 * np.sin(2 * np.pi * 1.1 * t) + rng.normal(0, 0.5, t.size)

    def test_length_preserved(self, noisy):
        assert len(highpass(noisy, 0.5)) == len(noisy)
        assert len(lowpass(noisy, 3.0)) == len(noisy)
        assert len(highpass([1.0], 0.5)) == 1

    def test_first_sample_is_boundary(self, noisy):
        assert highpass(noisy, 0.5)[0] == noisy[0]
        assert lowpass(noisy, 3.0)[0] == noisy[0]

    def test_matches_recurrence(self, noisy):
        np.testing.assert_allclose(highpass(noisy, 0.5), _reference_highpass(noisy, 0.5, 0.033))
        np.testing.assert_allclose(lowpass(noisy, 3.0), _reference_lowpass(noisy, 3.0, 0.033))

    def test_custom_dt(self, noisy):
        np.testing.assert_allclose(
            lowpass(noisy, 2.0, dt=0.02), _reference_lowpass(noisy, 2.0, 0.02)
        )

    def test_empty_input(self):
        assert highpass([], 0.5).size == 0
        assert lowpass([], 3.0).size == 0

    def test_lowpass_keeps_constant(self):
        np.testing.assert_allclose(lowpass(np.full(50, 7.0), 3.0), 7.0)

    def test_highpass_removes_constant(self):
        y = highpass(np.full(200, 100.0), 0.5)
        assert y[0] == 100.0
        assert abs(y[-1]) < 1e-3

    def test_non_positive_cutoff_rejected(self):
        with pytest.raises(ValueError):
            highpass([1.0, 2.0], 0.0)
        with pytest.raises(ValueError):
            lowpass([1.0, 2.0], -1.0)

    def test_bandpass_is_chain(self, noisy):
        np.testing.assert_allclose(
            bandpass(noisy, 0.5, 3.0), lowpass(highpass(noisy, 0.5), 3.0)
        )


# ---------------------------------------------------------------------------
# Peak detector
# ---------------------------------------------------------------------------

class TestFindPeaks:

    def test_single_spike(self):
        assert find_peaks([0, 0, 0, 10, 0, 0, 0], 0.4).tolist() == [3]

    def test_edges_never_reported(self):
        assert find_peaks([10, 0, 0, 0, 10], 0.4).tolist() == []

    def test_plateau_is_not_a_peak(self):
        assert find_peaks([0, 5, 5, 0, 0], 0.4).tolist() == []

    def test_below_threshold_ignored(self):
        # mean = 2.0, threshold = 2.0 + 0.4 * 8.0 = 5.2
        x = [0, 3, 0, 10, 0, 4, 0, 3, 0, 0]
        assert peak_threshold(x, 0.4) == pytest.approx(5.2)
        assert find_peaks(x, 0.4).tolist() == [3]

    def test_threshold_factor_is_tunable(self):
        x = [0, 3, 0, 10, 0, 4, 0, 3, 0, 0]
        assert find_peaks(x, 0.0).tolist() == [1, 3, 5, 7]

    def test_empty_and_short(self):
        assert find_peaks([], 0.4).size == 0
        assert find_peaks([1.0, 2.0], 0.4).size == 0

    def test_sine_cycles(self):
        t = np.arange(0, 3.0, 0.033)
        x = np.sin(2 * np.pi * 1.0 * t - np.pi / 2)
        peaks = find_peaks(x, 0.4)
        assert len(peaks) == 3
        assert np.all(np.diff(peaks) > 25)


# ---------------------------------------------------------------------------
# Radix-2 FFT
# ---------------------------------------------------------------------------

class TestSpectrum:

    @pytest.mark.parametrize("n, expected", [(0, 1), (1, 1), (2, 2), (3, 4), (5, 8), (64, 64), (65, 128)])
    def test_next_power_of_two(self, n, expected):
        assert next_power_of_two(n) == expected

    @pytest.mark.parametrize("n", [2, 8, 64, 256])
    def test_matches_numpy(self, n):
        rng = np.random.default_rng(n)
        x = rng.normal(800, 40, n)
        np.testing.assert_allclose(fft_radix2(x), np.fft.fft(x), rtol=1e-9, atol=1e-6)

    def test_impulse_is_flat(self):
        x = np.zeros(16)
        x[0] = 1.0
        np.testing.assert_allclose(fft_radix2(x), np.ones(16))

    def test_trivial_lengths(self):
        np.testing.assert_allclose(fft_radix2([3.5]), [3.5 + 0j])
        np.testing.assert_allclose(fft_radix2([]), [0j])

    def test_non_power_of_two_rejected(self):
        with pytest.raises(ValueError):
            fft_radix2(np.ones(12))

    def test_power_spectrum_pure_tone(self):
        n = 64
        x = np.cos(2 * np.pi * 5 * np.arange(n) / n)
        power = power_spectrum(x)
        assert int(np.argmax(power[: n // 2])) == 5
        assert power[5] == pytest.approx((n / 2) ** 2)
