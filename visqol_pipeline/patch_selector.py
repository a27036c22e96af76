"""
Patch Selection Module
======================

For each reference patch, find the most similar equally wide patch in
the degraded spectrogram within a bounded search window.

Candidate windows are strided views of the degraded spectrogram, so a
whole search window is scored in one vectorised NSIM evaluation.
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from typing import Dict, List, Optional
from dataclasses import dataclass
import logging

from .patches import Patch
from .similarity import NeurogramSimilarityIndexMeasure
from .spectrogram import Spectrogram

logger = logging.getLogger(__name__)

# Scores closer than this are treated as equal
TIE_TOLERANCE = 1e-12


@dataclass
class PatchMatch:
    """Reference patch paired with its best degraded patch"""
    ref_patch: Patch
    deg_start_frame: int
    deg_end_frame: int
    deg_start_time: float
    deg_end_time: float
    similarity: float
    freq_band_means: np.ndarray

    @property
    def offset_frames(self) -> int:
        return self.deg_start_frame - self.ref_patch.start_frame

    def to_dict(self) -> Dict:
        return {
            "similarity": self.similarity,
            "ref_patch_start_time": self.ref_patch.start_time,
            "ref_patch_end_time": self.ref_patch.end_time,
            "deg_patch_start_time": self.deg_start_time,
            "deg_patch_end_time": self.deg_end_time,
            "offset_frames": self.offset_frames,
            "freq_band_means": self.freq_band_means.tolist()
        }


class ComparisonPatchesSelector:
    """
    Best-match search of reference patches in a degraded spectrogram.

    Args:
        similarity_measure: NSIM measure used to score candidates
        search_window_radius: Max frames a match may sit from its reference
    """

    def __init__(self, similarity_measure: NeurogramSimilarityIndexMeasure,
                 search_window_radius: int = 60):
        self.similarity_measure = similarity_measure
        self.search_window_radius = search_window_radius
        logger.info(f"ComparisonPatchesSelector initialized (radius={search_window_radius} frames)")

    def candidate_range(self, ref_patch: Patch, num_deg_frames: int) -> range:
        """Valid degraded start frames around the reference position"""
        last_start = num_deg_frames - ref_patch.width
        first = max(0, ref_patch.start_frame - self.search_window_radius)
        last = min(last_start, ref_patch.start_frame + self.search_window_radius)
        return range(first, last + 1)

    def find_best_match(self, ref_patch: Patch, deg_spectrogram: Spectrogram,
                        intensity_range: float) -> Optional[PatchMatch]:
        """
        Find the degraded patch most similar to `ref_patch`.

        Ties go to the candidate closest in time to the reference,
        then to the earlier candidate.

        Returns:
            PatchMatch or None if the degraded spectrogram cannot hold a patch
        """
        starts = self.candidate_range(ref_patch, deg_spectrogram.num_frames)
        if len(starts) == 0:
            return None

        # (n_windows, num_bands, width) view, no copy
        windows = sliding_window_view(deg_spectrogram.data, ref_patch.width, axis=1)
        candidates = windows[:, starts.start:starts.stop].transpose(1, 0, 2)

        sims, band_means = self.similarity_measure.measure_candidates(
            ref_patch.data, candidates, intensity_range
        )

        tied = np.flatnonzero(sims >= sims.max() - TIE_TOLERANCE)
        distances = np.abs(np.asarray(starts)[tied] - ref_patch.start_frame)
        best = int(tied[np.argmin(distances)])

        deg_start = starts[best]
        deg_end = deg_start + ref_patch.width
        return PatchMatch(
            ref_patch=ref_patch,
            deg_start_frame=deg_start,
            deg_end_frame=deg_end,
            deg_start_time=deg_start * deg_spectrogram.frame_duration,
            deg_end_time=deg_end * deg_spectrogram.frame_duration,
            similarity=float(sims[best]),
            freq_band_means=band_means[best].copy()
        )

    def find_most_optimal_deg_patches(self, ref_patches: List[Patch],
                                      deg_spectrogram: Spectrogram,
                                      intensity_range: float) -> List[PatchMatch]:
        """
        Match every reference patch, in reference order.

        Reference patches with no room for a candidate are skipped.
        """
        matches = []
        for ref_patch in ref_patches:
            match = self.find_best_match(ref_patch, deg_spectrogram, intensity_range)
            if match is None:
                logger.debug(f"No candidate for reference patch at frame {ref_patch.start_frame}")
                continue
            logger.debug(
                f"Patch {ref_patch.start_frame}: matched at {match.deg_start_frame} "
                f"(offset={match.offset_frames}, nsim={match.similarity:.4f})"
            )
            matches.append(match)
        return matches
