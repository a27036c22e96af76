"""
Audio Signal Module
===================

Mono signal container, analysis window derivation and file I/O.

Features:
- Native sample rate loading with mono downmix (librosa)
- Analysis window sizing from sample rate and overlap

Signals are never resampled: the comparison must see both inputs
at the rate they were produced at.
"""

import numpy as np
import librosa
from dataclasses import dataclass
import logging

from .exceptions import LoadError

logger = logging.getLogger(__name__)


@dataclass
class AudioSignal:
    """Mono audio samples plus their sample rate"""
    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        self.samples = np.asarray(self.samples, dtype=np.float64)
        if self.samples.ndim != 1:
            raise ValueError(
                f"AudioSignal must be mono (1-D), got shape {self.samples.shape}"
            )
        if self.samples.size == 0:
            raise ValueError("AudioSignal must contain at least one sample")
        if self.sample_rate <= 0:
            raise ValueError(f"Sample rate must be positive, got {self.sample_rate}")

    @property
    def num_samples(self) -> int:
        return int(self.samples.size)

    @property
    def duration(self) -> float:
        """Duration in seconds"""
        return self.num_samples / self.sample_rate


@dataclass(frozen=True)
class AnalysisWindow:
    """
    Short-time analysis window derived from a sample rate.

    The hop is `overlap` times the window size, so consecutive
    windows share 1 - overlap of their samples.
    """
    sample_rate: int
    overlap: float = 0.25
    window_duration: float = 0.08

    @property
    def size(self) -> int:
        return int(round(self.sample_rate * self.window_duration))

    @property
    def hop(self) -> int:
        return max(1, int(round(self.size * self.overlap)))

    @property
    def frame_duration(self) -> float:
        """Seconds between the starts of consecutive frames"""
        return self.hop / self.sample_rate

    def num_frames(self, num_samples: int) -> int:
        if num_samples < self.size:
            return 0
        return 1 + (num_samples - self.size) // self.hop

    @classmethod
    def from_signal(cls, signal: AudioSignal, overlap: float = 0.25,
                    window_duration: float = 0.08) -> "AnalysisWindow":
        return cls(signal.sample_rate, overlap, window_duration)


def compute_rms_db(audio: np.ndarray) -> float:
    """
    Compute RMS level in dB.

    Args:
        audio: Audio signal array

    Returns:
        RMS level in dB (relative to 1.0)
    """
    rms = np.sqrt(np.mean(audio ** 2))
    if rms > 0:
        return float(20 * np.log10(rms))
    return -np.inf


def load_as_mono(filepath: str) -> AudioSignal:
    """
    Load an audio file at its native sample rate, downmixed to mono.

    Args:
        filepath: Path to audio file

    Returns:
        AudioSignal

    Raises:
        LoadError: if the file cannot be decoded or is empty
    """
    try:
        audio, sr = librosa.load(filepath, sr=None, mono=True)
    except Exception as e:
        logger.error(f"Failed to load {filepath}: {e}")
        raise LoadError(f"Failed to load {filepath}: {e}") from e

    if audio.size == 0:
        raise LoadError(f"Audio file {filepath} contains no samples")

    logger.debug(f"Loaded {filepath}: {len(audio)/sr:.2f}s @ {sr}Hz")
    return AudioSignal(samples=audio.astype(np.float64), sample_rate=int(sr))
