"""
Streaming pulse session.

Algorithm
---------
1. Each frame contributes one brightness sample with a millisecond
   timestamp; the last ``window_ms`` (20 s) are kept.
2. At most once per ``analysis_interval_ms`` of clock time, and only with
   at least ``min_samples`` buffered, the window is detrended, band-passed
   (0.5 Hz high-pass, 3 Hz low-pass), peaks are detected and merged into
   the session's beat list.
3. A plausible instantaneous heart rate publishes a new
   :class:`AnalysisResult` carrying RMSSD and the coherence score of the
   full RR series.

The session is a small state machine::

    IDLE → CONNECTING → DETECTING → READY
               └────────────┴──────────┴──→ DISCONNECTED / ERROR

Clock and frame source are injected so timing is deterministic in tests.
A re-entrant lock serialises ingestion, analysis passes and ``stop()``.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Deque, Iterator, Optional, Tuple

import numpy as np

from . import hrv
from .beats import BeatTracker
from .config import PipelineConfig
from .filters import bandpass
from .frames import FrameSource, Sample, monotonic_ms
from .pacing import COHERENT_THRESHOLD, is_coherent, target_breaths_per_minute
from .peaks import find_peaks

logger = logging.getLogger(__name__)


STATUS_INITIALIZING = "Initializing..."
STATUS_CONNECTING = "Connecting to camera..."
STATUS_DETECTING = "Detecting pulse. Please wait..."
STATUS_PULSE = "Pulse detected. Ready to begin."
STATUS_DISCONNECTED = "Disconnected"
STATUS_ERROR = "Error accessing camera."


class SessionState(Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    DETECTING = "detecting"
    READY = "ready"
    DISCONNECTED = "disconnected"
    ERROR = "error"


_ACTIVE_STATES = (SessionState.DETECTING, SessionState.READY)


@dataclass(frozen=True)
class AnalysisResult:
    """Snapshot published to the UI.  Replaced as a whole, never mutated."""

    bpm: Optional[int] = None
    hrv_rmssd_ms: Optional[float] = None
    coherence_pct: Optional[float] = None
    status: str = STATUS_INITIALIZING
    ready: bool = False

    def is_coherent(self, threshold: float = COHERENT_THRESHOLD) -> bool:
        return is_coherent(self.coherence_pct, threshold)

    @property
    def breaths_per_minute(self) -> Optional[float]:
        """Suggested pace for coherent breathing at the current heart rate."""
        return target_breaths_per_minute(self.bpm)

    def as_dict(self) -> dict:
        return asdict(self)


class PpgSession:
    """
    Owns the sample buffers, the beat tracker and the current result.

    Parameters
    ----------
    config:
        Pipeline parameters; defaults to :class:`PipelineConfig`.
    source:
        Frame source opened by :meth:`start` and pumped by :meth:`run`.
        May also be passed to :meth:`start`.
    clock:
        Millisecond clock gating the analysis cadence.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        source: FrameSource | None = None,
        clock: Callable[[], int] = monotonic_ms,
    ) -> None:
        self.config = (config or PipelineConfig()).validate()
        self._source = source
        self._frames: Optional[Iterator[Sample]] = None
        self._clock = clock

        self._lock = threading.RLock()
        self._samples: Deque[float] = deque()
        self._timestamps: Deque[int] = deque()
        self._tracker = BeatTracker(
            rr_min_ms=self.config.rr_min_ms,
            rr_max_ms=self.config.rr_max_ms,
            bpm_min=self.config.bpm_min,
            bpm_max=self.config.bpm_max,
        )
        self._last_analysis_ms: Optional[int] = None

        self._state = SessionState.IDLE
        self._result = AnalysisResult()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, source: FrameSource | None = None) -> bool:
        """
        Acquire the frame source and begin a fresh session.

        A running session is stopped first.  Returns *False* when the source
        cannot be opened; the session is then in ``ERROR`` and ``start()``
        has to be called again.
        """
        with self._lock:
            if self._state in (SessionState.CONNECTING, *_ACTIVE_STATES):
                self._stop_locked()
            if source is not None:
                self._source = source
            if self._source is None:
                raise ValueError("No frame source configured.")

            self._state = SessionState.CONNECTING
            self._result = AnalysisResult(status=STATUS_CONNECTING)
            logger.info("Connecting to frame source %s.", type(self._source).__name__)
            try:
                self._source.open()
            except (RuntimeError, OSError) as exc:
                logger.error("Could not acquire frame source: %s", exc)
                self._fail_locked()
                return False

            self._clear_locked()
            self._frames = iter(self._source)
            self._state = SessionState.DETECTING
            self._result = AnalysisResult(status=STATUS_DETECTING)
            logger.info("Session started – waiting for pulse.")
            return True

    def stop(self) -> None:
        """
        Release the frame source and drop all buffered data.

        Safe to call at any time and from any thread; a no-op when the
        session is already disconnected.
        """
        with self._lock:
            if self._state is SessionState.DISCONNECTED:
                return
            self._stop_locked()

    reset = stop

    def run(self, max_frames: int | None = None) -> int:
        """
        Pump the frame source into :meth:`ingest`.

        Returns the number of samples consumed.  Stops when the source is
        exhausted, the session is stopped or *max_frames* is reached; a later
        call resumes where the previous one left off.  A source failure puts
        the session into ``ERROR``.
        """
        with self._lock:
            if self._state not in _ACTIVE_STATES or self._frames is None:
                logger.warning("run() called on a session that is not started.")
                return 0
            frames = self._frames

        count = 0
        try:
            for sample, timestamp in frames:
                if not self.is_running:
                    break
                self.ingest(sample, timestamp)
                count += 1
                if max_frames is not None and count >= max_frames:
                    break
        except (RuntimeError, OSError) as exc:
            with self._lock:
                if self._state in _ACTIVE_STATES:
                    logger.error("Frame source failed: %s", exc)
                    self._fail_locked()
        return count

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def ingest(self, sample: float, timestamp_ms: int) -> bool:
        """
        Append one brightness sample and run a throttled analysis pass.

        Returns *False* when the sample was rejected (session not running or
        timestamp going backwards).
        """
        with self._lock:
            if self._state not in _ACTIVE_STATES:
                return False
            timestamp_ms = int(timestamp_ms)
            if self._timestamps and timestamp_ms < self._timestamps[-1]:
                logger.warning(
                    "Dropping out-of-order sample at %d ms (last %d ms).",
                    timestamp_ms, self._timestamps[-1],
                )
                return False

            self._samples.append(float(sample))
            self._timestamps.append(timestamp_ms)
            cutoff = timestamp_ms - self.config.window_ms
            while self._timestamps and self._timestamps[0] < cutoff:
                self._timestamps.popleft()
                self._samples.popleft()

            self.maybe_analyze()
            return True

    def maybe_analyze(self) -> Optional[AnalysisResult]:
        """Run :meth:`analyze` if the analysis interval has elapsed."""
        with self._lock:
            if self._state not in _ACTIVE_STATES:
                return None
            now = int(self._clock())
            last = self._last_analysis_ms
            if last is not None and now - last <= self.config.analysis_interval_ms:
                return None
            self._last_analysis_ms = now
            return self.analyze()

    def analyze(self) -> Optional[AnalysisResult]:
        """
        Run one full pass over the buffered window.

        Returns the newly published result, or *None* when the pass was
        inconclusive (too few samples, too few beats, implausible rate); the
        previous result is kept in that case.
        """
        with self._lock:
            if self._state not in _ACTIVE_STATES:
                return None
            cfg = self.config
            n = len(self._samples)
            if n < cfg.min_samples:
                logger.debug("Skipping pass: %d/%d samples.", n, cfg.min_samples)
                return None

            samples = np.fromiter(self._samples, dtype=np.float64, count=n)
            timestamps = np.fromiter(self._timestamps, dtype=np.int64, count=n)

            # Remove the DC level, otherwise the filters' first-sample boundary
            # dominates the window maximum and the peak threshold.
            samples -= np.mean(samples)
            filtered = bandpass(samples, cfg.highpass_hz, cfg.lowpass_hz, cfg.dt)
            peaks = find_peaks(filtered, cfg.threshold_factor)
            bpm = self._tracker.update(peaks, timestamps)
            if bpm is None:
                return None

            metrics = hrv.analyze(self._tracker.rr_intervals, cfg.resample_hz, cfg.lf_band)
            result = AnalysisResult(
                bpm=bpm,
                hrv_rmssd_ms=metrics.rmssd,
                coherence_pct=metrics.coherence_pct,
                status=STATUS_PULSE,
                ready=True,
            )
            if self._state is SessionState.DETECTING:
                logger.info("Pulse detected at %d BPM.", bpm)
            self._state = SessionState.READY
            self._result = result
            return result

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def result(self) -> AnalysisResult:
        return self._result

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in _ACTIVE_STATES

    @property
    def is_coherent(self) -> bool:
        return self._result.is_coherent(self.config.coherent_threshold)

    @property
    def sample_count(self) -> int:
        return len(self._samples)

    @property
    def last_timestamp_ms(self) -> Optional[int]:
        """Timestamp of the newest buffered sample."""
        with self._lock:
            return self._timestamps[-1] if self._timestamps else None

    @property
    def peak_timestamps(self) -> Tuple[int, ...]:
        return self._tracker.peak_timestamps

    @property
    def rr_intervals(self) -> Tuple[int, ...]:
        """Full RR series of the session, oldest first."""
        return self._tracker.rr_intervals

    def recent_rr_intervals(self, limit: int | None = None) -> Tuple[int, ...]:
        """The last *limit* RR intervals (default ``config.rr_display_limit``)."""
        if limit is None:
            limit = self.config.rr_display_limit
        rr = self._tracker.rr_intervals
        return rr[-limit:] if limit > 0 else ()

    # ------------------------------------------------------------------
    # Private helpers (caller holds self._lock)
    # ------------------------------------------------------------------

    def _clear_locked(self) -> None:
        self._samples.clear()
        self._timestamps.clear()
        self._tracker.reset()
        self._last_analysis_ms = None

    def _release_source_locked(self) -> None:
        self._frames = None
        if self._source is None:
            return
        try:
            self._source.close()
        except (RuntimeError, OSError) as exc:
            logger.warning("Error while releasing frame source: %s", exc)

    def _stop_locked(self) -> None:
        self._release_source_locked()
        self._clear_locked()
        self._state = SessionState.DISCONNECTED
        self._result = AnalysisResult(status=STATUS_DISCONNECTED)
        logger.info("Session stopped.")

    def _fail_locked(self) -> None:
        self._release_source_locked()
        self._clear_locked()
        self._state = SessionState.ERROR
        self._result = AnalysisResult(status=STATUS_ERROR)
