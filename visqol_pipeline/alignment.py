"""
Audio Alignment Module
======================

Global cross-correlation alignment of the degraded signal to the reference.

Compensates constant processing delay (codec look-ahead, transmission
latency) before any spectral comparison.

Features:
- FFT cross-correlation lag search within a bounded lag range
- Uniform handling of positive, zero and negative lags
- Degraded output trimmed/zero-padded to the reference length
"""

import numpy as np
from typing import Tuple, Dict
from dataclasses import dataclass
import logging
from scipy import signal

from .audio import AudioSignal
from .config import VisqolConfig

logger = logging.getLogger(__name__)


@dataclass
class AlignmentResult:
    """Result of audio alignment"""
    degraded: AudioSignal
    lag_samples: int
    lag_seconds: float
    correlation_score: float
    success: bool  # False when no reliable lag was found and 0 was used

    def to_dict(self) -> Dict:
        return {
            "lag_samples": self.lag_samples,
            "lag_seconds": self.lag_seconds,
            "correlation_score": self.correlation_score,
            "success": self.success
        }


class AudioAligner:
    """
    Global audio alignment using cross-correlation.

    Lag convention: a positive lag means the degraded signal is
    delayed relative to the reference.
    """

    def __init__(self, config: VisqolConfig = None):
        """
        Initialize aligner with config.

        Args:
            config: VisqolConfig instance
        """
        self.config = config or VisqolConfig()
        logger.info("AudioAligner initialized")

    def estimate_lag(self, reference: np.ndarray,
                     degraded: np.ndarray,
                     sr: int) -> Tuple[int, float]:
        """
        Find the time shift maximising the cross-correlation.

        Args:
            reference: Reference audio array
            degraded: Degraded audio array
            sr: Sample rate for the max lag calculation

        Returns:
            Tuple of (lag_samples, correlation_score); (0, 0.0) if no
            reliable lag exists
        """
        norm_factor = np.sqrt(np.sum(reference ** 2) * np.sum(degraded ** 2))
        if not np.isfinite(norm_factor) or norm_factor == 0:
            logger.debug("Zero-energy or non-finite signal, using lag 0")
            return 0, 0.0

        correlation = signal.correlate(degraded, reference, mode='full', method='fft')
        lags = signal.correlation_lags(len(degraded), len(reference), mode='full')

        # Restrict to the allowed lag range
        max_lag = int(self.config.MAX_LAG_SEC * sr)
        in_range = np.abs(lags) <= max_lag
        correlation = correlation[in_range]
        lags = lags[in_range]

        peak = correlation.max()
        if peak <= 0:
            logger.debug("No positive correlation peak, using lag 0")
            return 0, 0.0

        # Equal peaks resolve to the smallest shift
        candidates = lags[correlation == peak]
        lag = int(candidates[np.argmin(np.abs(candidates))])
        corr_score = float(peak / norm_factor)

        logger.debug(f"Cross-correlation: lag={lag} samples, score={corr_score:.4f}")

        return lag, corr_score

    def apply_lag(self, degraded: np.ndarray, lag: int,
                  target_length: int) -> np.ndarray:
        """
        Shift the degraded signal by `lag` and match the target length.

        Args:
            degraded: Degraded audio
            lag: Shift in samples (positive = degraded is delayed)
            target_length: Output length (the reference length)

        Returns:
            Aligned degraded audio of exactly `target_length` samples
        """
        if lag > 0:
            shifted = degraded[lag:]
        elif lag < 0:
            shifted = np.pad(degraded, (-lag, 0), mode='constant')
        else:
            shifted = degraded

        if len(shifted) >= target_length:
            return shifted[:target_length]
        return np.pad(shifted, (0, target_length - len(shifted)), mode='constant')

    def align(self, reference: AudioSignal,
              degraded: AudioSignal) -> AlignmentResult:
        """
        Align degraded audio to reference.

        Args:
            reference: Reference (clean) signal
            degraded: Degraded signal to align

        Returns:
            AlignmentResult with the aligned degraded signal
        """
        sr = reference.sample_rate
        lag, corr_score = self.estimate_lag(reference.samples, degraded.samples, sr)
        aligned = self.apply_lag(degraded.samples, lag, reference.num_samples)

        return AlignmentResult(
            degraded=AudioSignal(samples=aligned, sample_rate=degraded.sample_rate),
            lag_samples=lag,
            lag_seconds=lag / sr,
            correlation_score=corr_score,
            success=corr_score > 0
        )
