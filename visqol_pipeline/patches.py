"""
Patch Creation Module
=====================

Slice a reference spectrogram into fixed-width temporal patches.

- ImagePatchCreator: contiguous, non-overlapping tiles from frame 0
- VadPatchCreator: same tiles, keeping only speech-bearing ones

A trailing tile shorter than the patch width is always discarded.
"""

import numpy as np
from typing import List
from dataclasses import dataclass
import logging

from .spectrogram import Spectrogram

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Patch:
    """Contiguous time slice of a spectrogram"""
    start_frame: int
    end_frame: int      # exclusive
    start_time: float
    end_time: float
    data: np.ndarray    # num_bands x width

    @property
    def width(self) -> int:
        return self.end_frame - self.start_frame


class PatchCreator:
    """
    Base tiling strategy.

    Args:
        patch_size: Patch width in frames
    """

    def __init__(self, patch_size: int):
        if patch_size < 1:
            raise ValueError(f"patch_size must be positive, got {patch_size}")
        self.patch_size = patch_size
        logger.info(f"{type(self).__name__} initialized (patch_size={patch_size})")

    def patch_indices(self, spectrogram: Spectrogram) -> List[int]:
        """Start frames of every full-width tile"""
        num_patches = spectrogram.num_frames // self.patch_size
        return [i * self.patch_size for i in range(num_patches)]

    def _make_patch(self, spectrogram: Spectrogram, start: int) -> Patch:
        end = start + self.patch_size
        return Patch(
            start_frame=start,
            end_frame=end,
            start_time=start * spectrogram.frame_duration,
            end_time=end * spectrogram.frame_duration,
            data=spectrogram.data[:, start:end]
        )

    def create_patches(self, spectrogram: Spectrogram) -> List[Patch]:
        patches = [self._make_patch(spectrogram, start)
                   for start in self.patch_indices(spectrogram)]
        logger.debug(f"Created {len(patches)} patches from {spectrogram.num_frames} frames")
        return patches


class ImagePatchCreator(PatchCreator):
    """Plain tiling of the whole spectrogram."""


class VadPatchCreator(PatchCreator):
    """
    Tiling gated by per-frame voice activity.

    Args:
        patch_size: Patch width in frames
        min_voiced_fraction: Share of a patch's frames that must be
            voiced for the patch to be kept
    """

    def __init__(self, patch_size: int, min_voiced_fraction: float = 0.5):
        self.min_voiced_fraction = min_voiced_fraction
        super().__init__(patch_size)

    def patch_indices(self, spectrogram: Spectrogram) -> List[int]:
        if spectrogram.voice_activity is None:
            raise ValueError("VadPatchCreator requires a spectrogram with voice activity")

        activity = spectrogram.voice_activity
        kept = []
        for start in super().patch_indices(spectrogram):
            voiced = np.mean(activity[start:start + self.patch_size])
            if voiced >= self.min_voiced_fraction:
                kept.append(start)
            else:
                logger.debug(f"Skipping silent patch at frame {start} (voiced={voiced:.2f})")
        return kept
