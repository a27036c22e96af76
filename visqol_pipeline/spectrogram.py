"""
Spectrogram Module
==================

Gammatone spectrogram construction and comparison preparation.

Features:
- Per-band short-time energy over 75%-overlapping windows
- RMS voice activity per frame (speech mode)
- Absolute and per-frame noise floors in dB

All operations return new spectrograms; inputs are never modified.
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from typing import Optional, Tuple
from dataclasses import dataclass, replace
import logging

from .audio import AudioSignal, AnalysisWindow
from .config import VisqolConfig
from .exceptions import InsufficientAudioError
from .filterbank import GammatoneFilterBank

logger = logging.getLogger(__name__)

# Smallest energy converted to dB (-200 dB)
ENERGY_FLOOR = 1e-20

# Full scale of 16-bit PCM, the scale VAD thresholds are expressed in
PCM16_SCALE = 32768.0


@dataclass(frozen=True)
class Spectrogram:
    """Energy per (band, frame) plus band center frequencies"""
    data: np.ndarray
    center_freqs: np.ndarray
    frame_duration: float
    voice_activity: Optional[np.ndarray] = None
    is_db: bool = False

    @property
    def num_bands(self) -> int:
        return int(self.data.shape[0])

    @property
    def num_frames(self) -> int:
        return int(self.data.shape[1])

    def minimum(self) -> float:
        return float(np.min(self.data))

    def maximum(self) -> float:
        return float(np.max(self.data))

    def to_db(self) -> "Spectrogram":
        if self.is_db:
            return self
        db = 10 * np.log10(np.maximum(self.data, ENERGY_FLOOR))
        return replace(self, data=db, is_db=True)

    def raise_floor(self, floor_db: float) -> "Spectrogram":
        return replace(self, data=np.maximum(self.data, floor_db))

    def raise_floor_per_frame(self, relative_db: float,
                              other: "Spectrogram") -> Tuple["Spectrogram", "Spectrogram"]:
        """
        Floor each frame of both spectrograms at the louder frame peak
        minus `relative_db`.
        """
        frames = min(self.num_frames, other.num_frames)
        peaks = np.maximum(self.data[:, :frames].max(axis=0),
                           other.data[:, :frames].max(axis=0))
        floors = peaks - relative_db

        own = self.data.copy()
        theirs = other.data.copy()
        own[:, :frames] = np.maximum(own[:, :frames], floors)
        theirs[:, :frames] = np.maximum(theirs[:, :frames], floors)
        return replace(self, data=own), replace(other, data=theirs)

    def subtract_floor(self, floor: float) -> "Spectrogram":
        return replace(self, data=self.data - floor)


class RmsVad:
    """
    Frame-level voice activity from signal RMS.

    A frame is voiced when its RMS, or the RMS of any of the
    `lookback` frames before it, reaches `threshold` (16-bit scale).
    """

    def __init__(self, threshold: float = 5000.0, lookback: int = 2):
        self.threshold = threshold
        self.lookback = lookback

    def frame_rms(self, samples: np.ndarray, window: AnalysisWindow) -> np.ndarray:
        n_frames = window.num_frames(len(samples))
        if n_frames == 0:
            return np.zeros(0)
        frames = sliding_window_view(samples * PCM16_SCALE, window.size)[::window.hop]
        return np.sqrt(np.mean(frames[:n_frames] ** 2, axis=1))

    def detect(self, samples: np.ndarray, window: AnalysisWindow) -> np.ndarray:
        loud = self.frame_rms(samples, window) >= self.threshold
        voiced = loud.copy()
        for back in range(1, self.lookback + 1):
            voiced[back:] |= loud[:-back]
        return voiced


class GammatoneSpectrogramBuilder:
    """
    Build gammatone spectrograms from mono signals.

    Args:
        filter_bank: Configured GammatoneFilterBank
        speech_mode: Cap the band range at the speech maximum and
            derive per-frame voice activity
        config: VisqolConfig constants
    """

    def __init__(self, filter_bank: GammatoneFilterBank,
                 speech_mode: bool = False,
                 config: VisqolConfig = None):
        self.filter_bank = filter_bank
        self.speech_mode = speech_mode
        self.config = config or VisqolConfig()
        self.vad = RmsVad(self.config.VAD_RMS_THRESHOLD,
                          self.config.VAD_LOOKBACK_FRAMES)
        logger.info(
            f"GammatoneSpectrogramBuilder initialized "
            f"({filter_bank.num_bands} bands, speech_mode={speech_mode})"
        )

    def maximum_frequency(self, sample_rate: int) -> float:
        nyquist = sample_rate / 2.0
        if self.speech_mode:
            return min(self.config.SPEECH_MAXIMUM_FREQ, nyquist)
        return nyquist

    def build(self, signal: AudioSignal, window: AnalysisWindow) -> Spectrogram:
        """
        Compute the band energy grid of a signal.

        Args:
            signal: Mono AudioSignal
            window: AnalysisWindow for the signal's sample rate

        Returns:
            Spectrogram in linear energy units
        """
        max_freq = self.maximum_frequency(signal.sample_rate)
        if window.size < 1 or max_freq <= self.filter_bank.min_freq:
            raise InsufficientAudioError(
                f"Sample rate {signal.sample_rate} Hz is too low for analysis "
                f"(window of {window.size} samples, band range "
                f"{self.filter_bank.min_freq} - {max_freq} Hz)"
            )

        n_frames = window.num_frames(signal.num_samples)
        if n_frames == 0:
            raise InsufficientAudioError(
                f"Signal of {signal.duration:.3f}s is shorter than one "
                f"analysis window ({window.size} samples)"
            )

        band_signals, center_freqs = self.filter_bank.apply(
            signal.samples, signal.sample_rate, max_freq
        )

        energy = np.empty((self.filter_bank.num_bands, n_frames))
        for band, band_signal in enumerate(band_signals):
            frames = sliding_window_view(band_signal, window.size)[::window.hop]
            energy[band] = np.mean(frames[:n_frames] ** 2, axis=1)

        voice_activity = None
        if self.speech_mode:
            voice_activity = self.vad.detect(signal.samples, window)
            logger.debug(f"VAD: {int(voice_activity.sum())}/{n_frames} frames voiced")

        logger.debug(f"Built spectrogram: {energy.shape[0]} bands x {n_frames} frames")

        return Spectrogram(
            data=energy,
            center_freqs=center_freqs,
            frame_duration=window.frame_duration,
            voice_activity=voice_activity
        )


def prepare_for_comparison(reference: Spectrogram, degraded: Spectrogram,
                           config: VisqolConfig = None) -> Tuple[Spectrogram, Spectrogram]:
    """
    Put both spectrograms on a common dB scale with noise floors.

    Steps:
    1. Convert to dB
    2. Raise both to the absolute noise floor
    3. Floor each frame at the louder frame peak minus the relative floor
    4. Shift both so the lowest value across the pair is 0 dB

    Returns:
        Tuple of (reference, degraded) prepared spectrograms
    """
    config = config or VisqolConfig()

    ref = reference.to_db().raise_floor(config.NOISE_FLOOR_ABSOLUTE_DB)
    deg = degraded.to_db().raise_floor(config.NOISE_FLOOR_ABSOLUTE_DB)

    ref, deg = ref.raise_floor_per_frame(config.NOISE_FLOOR_RELATIVE_TO_PEAK_DB, deg)

    lowest = min(ref.minimum(), deg.minimum())
    return ref.subtract_floor(lowest), deg.subtract_floor(lowest)
