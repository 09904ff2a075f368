"""
Beat tracker: peak indices → beat timestamps → RR intervals.

Successive analysis windows overlap heavily, so the same beat is detected
many times.  The tracker keeps a strictly increasing set of beat timestamps
for the whole session and rebuilds the RR series from it whenever new beats
arrive.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .config import PipelineConfig

logger = logging.getLogger(__name__)


def candidate_intervals(
    peak_timestamps: Sequence[float],
    min_ms: float = PipelineConfig.rr_min_ms,
    max_ms: float = PipelineConfig.rr_max_ms,
) -> List[float]:
    """
    Consecutive differences of *peak_timestamps* strictly inside
    ``(min_ms, max_ms)``, i.e. 30 – 200 BPM with the defaults.
    """
    diffs = np.diff(np.asarray(peak_timestamps, dtype=np.float64))
    return [float(d) for d in diffs if min_ms < d < max_ms]


def instantaneous_bpm(intervals: Sequence[float]) -> Optional[int]:
    """``round(60000 / mean(intervals))``, or *None* without intervals."""
    if len(intervals) == 0:
        return None
    return int(round(60000.0 / float(np.mean(intervals))))


class BeatTracker:
    """
    Session-long beat bookkeeping.

    Parameters
    ----------
    rr_min_ms, rr_max_ms:
        Open interval of intervals accepted for the instantaneous rate.
    bpm_min, bpm_max:
        Open interval of rates reported by :meth:`update`.
    """

    def __init__(
        self,
        rr_min_ms: float = PipelineConfig.rr_min_ms,
        rr_max_ms: float = PipelineConfig.rr_max_ms,
        bpm_min: int = PipelineConfig.bpm_min,
        bpm_max: int = PipelineConfig.bpm_max,
    ) -> None:
        self.rr_min_ms = rr_min_ms
        self.rr_max_ms = rr_max_ms
        self.bpm_min = bpm_min
        self.bpm_max = bpm_max

        self._peak_timestamps: List[int] = []
        self._rr_intervals: List[int] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def update(self, peak_indices: Sequence[int], timestamps: Sequence[int]) -> Optional[int]:
        """
        Merge the peaks of the current window and return the heart rate.

        Parameters
        ----------
        peak_indices:
            Ascending indices into *timestamps* (output of ``find_peaks``).
        timestamps:
            Millisecond timestamps of the analysed window.

        Returns
        -------
        int or None
            Instantaneous BPM when plausible, otherwise *None*.  With fewer
            than two peaks, or no interval in the accepted range, the
            tracker state is left untouched.
        """
        if len(peak_indices) < 2:
            return None

        detected = [int(timestamps[i]) for i in peak_indices]
        intervals = candidate_intervals(detected, self.rr_min_ms, self.rr_max_ms)
        bpm = instantaneous_bpm(intervals)
        if bpm is None:
            logger.debug("No plausible RR candidate among %d peaks.", len(detected))
            return None

        self._merge(detected)

        if not self.bpm_min < bpm < self.bpm_max:
            logger.debug("Discarding implausible rate %d BPM.", bpm)
            return None
        return bpm

    def reset(self) -> None:
        """Forget every beat seen so far."""
        self._peak_timestamps.clear()
        self._rr_intervals.clear()

    @property
    def peak_timestamps(self) -> Tuple[int, ...]:
        return tuple(self._peak_timestamps)

    @property
    def rr_intervals(self) -> Tuple[int, ...]:
        return tuple(self._rr_intervals)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _merge(self, detected: Sequence[int]) -> None:
        if self._peak_timestamps and detected[-1] <= self._peak_timestamps[-1]:
            return
        last = self._peak_timestamps[-1] if self._peak_timestamps else None
        for ts in detected:
            # Overlapping windows re-detect old beats; only later ones extend the set.
            if last is not None and ts <= last:
                continue
            self._peak_timestamps.append(ts)
            last = ts
        self._rr_intervals = [
            b - a for a, b in zip(self._peak_timestamps, self._peak_timestamps[1:])
        ]
