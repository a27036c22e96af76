"""
Similarity Results Module
=========================

Result records for a reference/degraded comparison and their
aggregation from per-patch matches.
"""

import os
import numpy as np
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from .patch_selector import PatchMatch


@dataclass
class PatchSimilarityDebug:
    """Per-patch entry kept for reproducibility"""
    similarity: float
    ref_patch_start_time: float
    ref_patch_end_time: float
    deg_patch_start_time: float
    deg_patch_end_time: float
    freq_band_means: List[float]

    @classmethod
    def from_match(cls, match: PatchMatch) -> "PatchSimilarityDebug":
        return cls(
            similarity=match.similarity,
            ref_patch_start_time=match.ref_patch.start_time,
            ref_patch_end_time=match.ref_patch.end_time,
            deg_patch_start_time=match.deg_start_time,
            deg_patch_end_time=match.deg_end_time,
            freq_band_means=[float(v) for v in match.freq_band_means]
        )

    def to_dict(self) -> Dict:
        return {
            "similarity": self.similarity,
            "ref_patch_start_time": self.ref_patch_start_time,
            "ref_patch_end_time": self.ref_patch_end_time,
            "deg_patch_start_time": self.deg_patch_start_time,
            "deg_patch_end_time": self.deg_patch_end_time,
            "freq_band_means": self.freq_band_means
        }


@dataclass
class SimilarityResult:
    """Complete result of one comparison"""
    moslqo: float
    vnsim: float
    fvnsim: List[float]
    center_freq_bands: List[float]
    patch_sims: List[PatchSimilarityDebug] = field(default_factory=list)
    alignment_lag_seconds: float = 0.0
    reference_filepath: Optional[str] = None
    degraded_filepath: Optional[str] = None

    @staticmethod
    def aggregate(matches: List[PatchMatch]):
        """
        Mean of per-patch similarities and of per-patch band vectors.

        Returns:
            Tuple of (vnsim, fvnsim)
        """
        if not matches:
            raise ValueError("Cannot aggregate an empty list of patch matches")
        vnsim = float(np.mean([m.similarity for m in matches]))
        fvnsim = np.mean(np.stack([m.freq_band_means for m in matches]), axis=0)
        return vnsim, fvnsim

    @classmethod
    def from_matches(cls, matches: List[PatchMatch], moslqo: float,
                     center_freqs: np.ndarray,
                     alignment_lag_seconds: float = 0.0) -> "SimilarityResult":
        vnsim, fvnsim = cls.aggregate(matches)
        return cls(
            moslqo=float(moslqo),
            vnsim=vnsim,
            fvnsim=[float(v) for v in fvnsim],
            center_freq_bands=[float(f) for f in center_freqs],
            patch_sims=[PatchSimilarityDebug.from_match(m) for m in matches],
            alignment_lag_seconds=float(alignment_lag_seconds)
        )

    def to_dict(self) -> Dict:
        return {
            "reference_filepath": self.reference_filepath,
            "degraded_filepath": self.degraded_filepath,
            "moslqo": self.moslqo,
            "vnsim": self.vnsim,
            "fvnsim": self.fvnsim,
            "center_freq_bands": self.center_freq_bands,
            "alignment_lag_seconds": self.alignment_lag_seconds,
            "patch_sims": [p.to_dict() for p in self.patch_sims]
        }

    def to_csv_row(self) -> Dict:
        """Flatten result for CSV export"""
        row = {
            "reference": self.reference_filepath,
            "degraded": self.degraded_filepath,
            "reference_filename": os.path.basename(self.reference_filepath) if self.reference_filepath else None,
            "degraded_filename": os.path.basename(self.degraded_filepath) if self.degraded_filepath else None,
            "moslqo": self.moslqo,
            "vnsim": self.vnsim,
            "alignment_lag_seconds": self.alignment_lag_seconds,
            "num_patches": len(self.patch_sims),
        }
        for i, value in enumerate(self.fvnsim):
            row[f"fvnsim_{i}"] = value
        return row
