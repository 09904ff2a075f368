"""
Coaching helpers built on top of the analysis result.
"""

from __future__ import annotations

from typing import Optional

from .config import PipelineConfig

COHERENT_THRESHOLD = PipelineConfig.coherent_threshold   # percent


def is_coherent(coherence_pct: Optional[float], threshold: float = COHERENT_THRESHOLD) -> bool:
    """True when the coherence score is known and strictly above *threshold*."""
    return coherence_pct is not None and coherence_pct > threshold


def target_breaths_per_minute(
    bpm: Optional[float],
    lo: float = 4.0,
    hi: float = 10.0,
) -> Optional[float]:
    """
    Breathing rate for coherent breathing, paced at one breath per twelve
    heartbeats and clamped to ``[lo, hi]`` breaths/min.
    """
    if not bpm:
        return None
    return max(lo, min(hi, bpm / 12.0))
