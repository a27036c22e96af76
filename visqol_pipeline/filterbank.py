"""
Gammatone Filterbank Module
===========================

ERB-spaced 4th-order gammatone filterbank (Slaney's implementation),
realised as four cascaded biquads per band.

Coefficients are recomputed per call and filtering always starts from
zero state, so the bank holds no mutable state between comparisons.
"""

import numpy as np
from scipy import signal
from typing import Tuple
import logging

logger = logging.getLogger(__name__)

# Glasberg & Moore ERB parameters
EAR_Q = 9.26449
MIN_BW = 24.7


def erb_space(low_freq: float, high_freq: float, num_bands: int) -> np.ndarray:
    """
    Center frequencies uniformly spaced on the ERB scale.

    Returns frequencies in ascending order, the lowest equal to
    `low_freq` and the highest just below `high_freq`.
    """
    if num_bands < 1:
        raise ValueError(f"num_bands must be positive, got {num_bands}")
    if not 0 < low_freq < high_freq:
        raise ValueError(f"Invalid band range: {low_freq} - {high_freq} Hz")

    q_bw = EAR_Q * MIN_BW
    steps = np.arange(1, num_bands + 1)
    cf = -q_bw + np.exp(
        steps * (-np.log(high_freq + q_bw) + np.log(low_freq + q_bw)) / num_bands
    ) * (high_freq + q_bw)
    return cf[::-1]


class GammatoneFilterBank:
    """
    Bank of auditory band-pass filters.

    Args:
        num_bands: Number of bands (32 full-band audio, 21 speech)
        min_freq: Lowest center frequency in Hz
    """

    def __init__(self, num_bands: int, min_freq: float):
        self.num_bands = num_bands
        self.min_freq = min_freq

    def center_frequencies(self, max_freq: float) -> np.ndarray:
        return erb_space(self.min_freq, max_freq, self.num_bands)

    def design(self, sample_rate: int, max_freq: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Compute second-order sections for every band.

        Args:
            sample_rate: Sample rate in Hz
            max_freq: Upper edge of the band range in Hz

        Returns:
            Tuple of (sos of shape (num_bands, 4, 6), center_freqs)
        """
        cf = self.center_frequencies(max_freq)
        T = 1.0 / sample_rate
        erb = cf / EAR_Q + MIN_BW
        B = 1.019 * 2 * np.pi * erb

        arg = 2 * cf * np.pi * T
        cos_arg = np.cos(arg)
        sin_arg = np.sin(arg)
        exp_bt = np.exp(B * T)

        A0 = T
        A2 = 0.0
        B0 = 1.0
        B1 = -2 * cos_arg / exp_bt
        B2 = np.exp(-2 * B * T)

        rt_pos = np.sqrt(3 + 2 ** 1.5)
        rt_neg = np.sqrt(3 - 2 ** 1.5)
        A11 = -(2 * T * cos_arg / exp_bt + 2 * rt_pos * T * sin_arg / exp_bt) / 2
        A12 = -(2 * T * cos_arg / exp_bt - 2 * rt_pos * T * sin_arg / exp_bt) / 2
        A13 = -(2 * T * cos_arg / exp_bt + 2 * rt_neg * T * sin_arg / exp_bt) / 2
        A14 = -(2 * T * cos_arg / exp_bt - 2 * rt_neg * T * sin_arg / exp_bt) / 2

        # Gain at the center frequency, used to normalise the first stage
        e4 = np.exp(4j * cf * np.pi * T)
        e2 = np.exp(-(B * T) + 2j * cf * np.pi * T)
        gain = np.abs(
            (-2 * e4 * T + 2 * e2 * T * (cos_arg - rt_neg * sin_arg))
            * (-2 * e4 * T + 2 * e2 * T * (cos_arg + rt_neg * sin_arg))
            * (-2 * e4 * T + 2 * e2 * T * (cos_arg - rt_pos * sin_arg))
            * (-2 * e4 * T + 2 * e2 * T * (cos_arg + rt_pos * sin_arg))
            / (-2 / np.exp(2 * B * T) - 2 * e4 + 2 * (1 + e4) / exp_bt) ** 4
        )

        sos = np.zeros((self.num_bands, 4, 6))
        for band in range(self.num_bands):
            a = [B0, B1[band], B2[band]]
            sos[band, 0] = [A0 / gain[band], A11[band] / gain[band], A2 / gain[band]] + a
            sos[band, 1] = [A0, A12[band], A2] + a
            sos[band, 2] = [A0, A13[band], A2] + a
            sos[band, 3] = [A0, A14[band], A2] + a

        logger.debug(
            f"Designed {self.num_bands}-band gammatone filterbank @ {sample_rate}Hz "
            f"({cf[0]:.1f} - {cf[-1]:.1f} Hz)"
        )
        return sos, cf

    def apply(self, samples: np.ndarray, sample_rate: int,
              max_freq: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Filter a signal through every band.

        Args:
            samples: Mono signal
            sample_rate: Sample rate in Hz
            max_freq: Upper edge of the band range in Hz

        Returns:
            Tuple of (band_signals of shape (num_bands, n), center_freqs)
        """
        sos, cf = self.design(sample_rate, max_freq)
        band_signals = np.empty((self.num_bands, len(samples)))
        for band in range(self.num_bands):
            band_signals[band] = signal.sosfilt(sos[band], samples)
        return band_signals, cf
