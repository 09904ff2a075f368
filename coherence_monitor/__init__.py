"""
Coherence Monitor: fingertip rPPG pulse, HRV and coherence estimation.
Place your finger over the camera lens (flash on); the red-channel
brightness of each frame is turned into a beat-to-beat heart rate, an RMSSD
variability figure and a coherence score for paced breathing.
"""

__version__ = "0.1.0"
__author__ = "coherence_monitor"
