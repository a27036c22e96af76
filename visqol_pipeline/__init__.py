"""
ViSQOL-style Perceptual Audio Quality Pipeline
==============================================

Deterministic reference-vs-degraded similarity scoring that predicts
MOS-LQO from gammatone spectrogram patches.

Modules:
- config: Frozen model constants and runtime pipeline settings
- audio: Mono signal container, analysis window, file loading
- filterbank: ERB-spaced gammatone filterbank
- spectrogram: Band energy spectrograms, VAD and noise floors
- alignment: Global cross-correlation alignment
- patches: Plain and VAD-gated patch creation
- similarity: Neurogram Similarity Index Measure (NSIM)
- patch_selector: Best-match search of degraded patches
- quality_mapper: NSIM to MOS-LQO mapping (speech fit / regression model)
- results: Result records and aggregation
- orchestrator: VisqolManager and batch I/O
- reporting: Plots and summaries
"""

from .config import PipelineConfig, VisqolConfig
from .audio import AudioSignal, load_as_mono
from .exceptions import (
    CompareError, InitializationError, InsufficientAudioError, LoadError,
    NotInitializedError, SampleRateMismatchError, VisqolError
)
from .orchestrator import VisqolManager
from .results import SimilarityResult

__version__ = "1.0.0"

__all__ = [
    "PipelineConfig",
    "VisqolConfig",
    "AudioSignal",
    "load_as_mono",
    "VisqolManager",
    "SimilarityResult",
    "VisqolError",
    "InitializationError",
    "CompareError",
    "NotInitializedError",
    "SampleRateMismatchError",
    "LoadError",
    "InsufficientAudioError",
]
