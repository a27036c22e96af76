"""
Similarity Measure Module
=========================

Neurogram Similarity Index Measure (NSIM) between spectrogram patches.

NSIM is a structural-similarity index over auditory band energies:
local means, variances and covariance are taken over a small Gaussian
neighbourhood (band x time), combined into an intensity term and a
structure term, and averaged. Identical patches score 1.0.
"""

import numpy as np
from scipy import ndimage
from dataclasses import dataclass
from typing import Tuple
import logging

logger = logging.getLogger(__name__)


@dataclass
class PatchSimilarity:
    """Similarity of one reference/degraded patch pair"""
    similarity: float
    freq_band_means: np.ndarray


def gaussian_window(size: int = 3, sigma: float = 0.5) -> np.ndarray:
    """Normalised 2-D Gaussian weighting window"""
    half = (size - 1) / 2.0
    x = np.arange(size) - half
    xx, yy = np.meshgrid(x, x)
    window = np.exp(-(xx ** 2 + yy ** 2) / (2 * sigma ** 2))
    return window / window.sum()


class NeurogramSimilarityIndexMeasure:
    """
    NSIM between equally shaped patches.

    Args:
        window_size: Side of the Gaussian neighbourhood
        sigma: Standard deviation of the Gaussian neighbourhood
    """

    def __init__(self, window_size: int = 3, sigma: float = 0.5):
        self.window = gaussian_window(window_size, sigma)
        logger.info(f"NeurogramSimilarityIndexMeasure initialized (window={window_size}, sigma={sigma})")

    @staticmethod
    def constants(intensity_range: float) -> Tuple[float, float]:
        """Stabilising constants (C1, C3) for a given intensity range"""
        if not np.isfinite(intensity_range) or intensity_range <= 0:
            intensity_range = 1.0
        c1 = (0.01 * intensity_range) ** 2
        c3 = (0.03 * intensity_range) ** 2 / 2
        return c1, c3

    def _filter(self, x: np.ndarray) -> np.ndarray:
        # Leading axes (candidate stack) are not smoothed
        kernel = self.window.reshape((1,) * (x.ndim - 2) + self.window.shape)
        return ndimage.correlate(x, kernel, mode='nearest')

    def measure_candidates(self, ref_patch: np.ndarray, candidates: np.ndarray,
                           intensity_range: float) -> Tuple[np.ndarray, np.ndarray]:
        """
        Score one reference patch against a stack of candidates.

        Args:
            ref_patch: num_bands x width
            candidates: n_candidates x num_bands x width
            intensity_range: Dynamic range of the reference spectrogram

        Returns:
            Tuple of (similarities (n_candidates,), band_means (n_candidates, num_bands))
        """
        if candidates.shape[1:] != ref_patch.shape:
            raise ValueError(
                f"Patch shape mismatch: reference {ref_patch.shape}, "
                f"candidates {candidates.shape[1:]}"
            )
        c1, c3 = self.constants(intensity_range)

        # Reference statistics, shared by every candidate
        mu_r = self._filter(ref_patch)
        var_r = np.maximum(self._filter(ref_patch * ref_patch) - mu_r ** 2, 0.0)
        sigma_r = np.sqrt(var_r)

        mu_d = self._filter(candidates)
        var_d = np.maximum(self._filter(candidates * candidates) - mu_d ** 2, 0.0)
        sigma_d = np.sqrt(var_d)
        cov = self._filter(candidates * ref_patch) - mu_r * mu_d

        intensity = (2 * mu_r * mu_d + c1) / (mu_r ** 2 + mu_d ** 2 + c1)
        structure = (cov + c3) / (sigma_r * sigma_d + c3)
        sim_map = intensity * structure

        band_means = sim_map.mean(axis=-1)
        return band_means.mean(axis=-1), band_means

    def measure(self, ref_patch: np.ndarray, deg_patch: np.ndarray,
                intensity_range: float) -> PatchSimilarity:
        """Score a single pair of patches."""
        sims, band_means = self.measure_candidates(
            ref_patch, deg_patch[np.newaxis], intensity_range
        )
        return PatchSimilarity(similarity=float(sims[0]), freq_band_means=band_means[0])
