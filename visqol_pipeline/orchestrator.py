"""
Pipeline Orchestrator
=====================

Owns the similarity pipeline components and runs comparisons.

Features:
- One-time initialization of mode-specific strategies (speech / full audio)
- Input validation with advisory warnings
- Single, file-based and batch comparisons
- Optional parallel batches with a process pool
- Structured output generation (CSV, JSON, summary)
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from datetime import datetime
from concurrent.futures import ProcessPoolExecutor
from tqdm import tqdm
import pandas as pd

from .config import PipelineConfig, DEFAULT_CONFIG
from .audio import AudioSignal, AnalysisWindow, compute_rms_db, load_as_mono
from .alignment import AudioAligner
from .exceptions import (
    CompareError, InitializationError, InsufficientAudioError,
    NotInitializedError, SampleRateMismatchError
)
from .filterbank import GammatoneFilterBank
from .patch_selector import ComparisonPatchesSelector
from .patches import ImagePatchCreator, VadPatchCreator
from .quality_mapper import SpeechSimilarityToQualityMapper, SvrSimilarityToQualityMapper
from .results import SimilarityResult
from .similarity import NeurogramSimilarityIndexMeasure
from .spectrogram import GammatoneSpectrogramBuilder, prepare_for_comparison

logger = logging.getLogger(__name__)

ReferenceDegradedPair = Tuple[str, str]


class VisqolManager:
    """
    Main similarity pipeline.

    Usage:
        manager = VisqolManager()
        manager.init(model_path="model.pkl")
        result = manager.compare_files("ref.wav", "deg.wav")
    """

    def __init__(self, config: PipelineConfig = None):
        """
        Args:
            config: PipelineConfig instance
        """
        self.config = config or PipelineConfig()
        self.is_initialized = False

        self.aligner = AudioAligner(self.config.visqol)
        self.patch_creator = None
        self.patch_selector = None
        self.spectrogram_builder = None
        self.quality_mapper = None

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def init(self, model_path: Optional[str] = None,
             use_speech_mode: Optional[bool] = None,
             use_unscaled_speech: Optional[bool] = None):
        """
        Configure mode-specific components. Must succeed before comparing.

        Args:
            model_path: Serialized regression model (full-audio mode)
            use_speech_mode: Override config.use_speech_mode
            use_unscaled_speech: Override config.use_unscaled_speech_mos_mapping

        Raises:
            InitializationError: the quality model could not be loaded; the
                manager stays uninitialized
        """
        self.is_initialized = False
        if model_path is not None:
            self.config.model_path = model_path
        if use_speech_mode is not None:
            self.config.use_speech_mode = use_speech_mode
        if use_unscaled_speech is not None:
            self.config.use_unscaled_speech_mos_mapping = use_unscaled_speech

        self._init_patch_creator()
        self._init_patch_selector()
        self._init_spectrogram_builder()
        try:
            self._init_quality_mapper()
        except InitializationError as e:
            logger.error(f"Initialization failed: {e}")
            raise

        self.is_initialized = True
        mode = "speech" if self.config.use_speech_mode else "audio"
        logger.info(f"VisqolManager initialized ({mode} mode, config {self.config.config_hash})")

    def _init_patch_creator(self):
        if self.config.use_speech_mode:
            self.patch_creator = VadPatchCreator(
                self.config.patch_size, self.config.visqol.VAD_MIN_VOICED_FRACTION
            )
        else:
            self.patch_creator = ImagePatchCreator(self.config.patch_size)

    def _init_patch_selector(self):
        self.patch_selector = ComparisonPatchesSelector(
            NeurogramSimilarityIndexMeasure(),
            self.config.visqol.SEARCH_WINDOW_RADIUS
        )

    def _init_spectrogram_builder(self):
        filter_bank = GammatoneFilterBank(self.config.num_bands, self.config.visqol.MINIMUM_FREQ)
        self.spectrogram_builder = GammatoneSpectrogramBuilder(
            filter_bank, self.config.use_speech_mode, self.config.visqol
        )

    def _init_quality_mapper(self):
        if self.config.use_speech_mode:
            self.quality_mapper = SpeechSimilarityToQualityMapper(
                not self.config.use_unscaled_speech_mos_mapping, self.config.visqol
            )
        else:
            self.quality_mapper = SvrSimilarityToQualityMapper(
                self.config.model_path, self.config.visqol, self.config.num_bands
            )
        self.quality_mapper.init()

    def _error_if_not_initialized(self):
        if not self.is_initialized:
            raise NotInitializedError("VisqolManager must be initialized before use.")

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_input_audio(self, reference: AudioSignal, degraded: AudioSignal):
        """
        Check a signal pair before comparison.

        Raises:
            SampleRateMismatchError: the sample rates differ
        """
        visqol = self.config.visqol
        logger.debug(
            f"Input levels: reference {compute_rms_db(reference.samples):.1f} dB, "
            f"degraded {compute_rms_db(degraded.samples):.1f} dB"
        )

        # Warn if there is an excessive difference in durations
        if abs(reference.duration - degraded.duration) > visqol.DURATION_MISMATCH_TOLERANCE_SEC:
            logger.warning(
                f"Mismatch in duration between reference and degraded signal. "
                f"Reference is {reference.duration:.2f} seconds. "
                f"Degraded is {degraded.duration:.2f} seconds."
            )

        if reference.sample_rate != degraded.sample_rate:
            raise SampleRateMismatchError(reference.sample_rate, degraded.sample_rate)

        if self.config.use_speech_mode:
            if reference.sample_rate > visqol.SPEECH_SAMPLE_RATE_LIMIT:
                logger.warning(
                    "Input audio sample rate is above 16kHz, which may have undesired "
                    "effects for speech mode. Consider resampling to 16kHz."
                )
        elif reference.sample_rate != visqol.AUDIO_EXPECTED_SAMPLE_RATE:
            logger.warning(
                "Input audio does not have the expected sample rate of 48kHz! "
                "This may negatively affect the prediction of the MOS-LQO score."
            )

    # =========================================================================
    # COMPARISON
    # =========================================================================

    def compare(self, reference: AudioSignal, degraded: AudioSignal) -> SimilarityResult:
        """
        Score a degraded signal against its reference.

        Args:
            reference: Reference AudioSignal
            degraded: Degraded AudioSignal

        Returns:
            SimilarityResult with patch-level debug entries
        """
        self._error_if_not_initialized()
        self.validate_input_audio(reference, degraded)

        # 1. Adjust for codec initial padding
        alignment = self.aligner.align(reference, degraded)
        logger.debug(f"Alignment: {alignment.to_dict()}")

        # 2. Spectrograms
        window = AnalysisWindow.from_signal(
            reference, self.config.visqol.OVERLAP, self.config.visqol.WINDOW_DURATION_SEC
        )
        ref_spectro = self.spectrogram_builder.build(reference, window)
        deg_spectro = self.spectrogram_builder.build(alignment.degraded, window)
        ref_spectro, deg_spectro = prepare_for_comparison(
            ref_spectro, deg_spectro, self.config.visqol
        )

        # 3. Reference patches
        ref_patches = self.patch_creator.create_patches(ref_spectro)
        if not ref_patches:
            raise InsufficientAudioError(
                f"No reference patches could be created from {ref_spectro.num_frames} frames "
                f"(patch size {self.patch_creator.patch_size})"
            )

        # 4. Matching and per-patch similarity
        intensity_range = ref_spectro.maximum() - ref_spectro.minimum()
        matches = self.patch_selector.find_most_optimal_deg_patches(
            ref_patches, deg_spectro, intensity_range
        )
        if not matches:
            raise InsufficientAudioError("No degraded patch could be matched to the reference")

        # 5. Aggregate and map to quality
        vnsim, fvnsim = SimilarityResult.aggregate(matches)
        moslqo = self.quality_mapper.predict(vnsim, fvnsim)
        logger.debug(f"{len(matches)} patches matched: vnsim={vnsim:.4f}, moslqo={moslqo:.3f}")

        return SimilarityResult.from_matches(
            matches, moslqo, ref_spectro.center_freqs, alignment.lag_seconds
        )

    def compare_files(self, reference_path: str, degraded_path: str) -> SimilarityResult:
        """
        Load two files as mono and compare them.

        Raises:
            NotInitializedError, LoadError, SampleRateMismatchError,
            InsufficientAudioError
        """
        self._error_if_not_initialized()

        reference = load_as_mono(reference_path)
        degraded = load_as_mono(degraded_path)

        result = self.compare(reference, degraded)
        result.reference_filepath = str(reference_path)
        result.degraded_filepath = str(degraded_path)
        return result

    def compare_batch(self, pairs: Sequence[ReferenceDegradedPair],
                      n_workers: Optional[int] = None,
                      show_progress: bool = False) -> List[SimilarityResult]:
        """
        Compare many file pairs, keeping input order.

        Pairs that fail are logged and omitted. NotInitializedError
        stops the batch immediately.

        Args:
            pairs: Sequence of (reference_path, degraded_path)
            n_workers: Process pool size (None = config, 1 = sequential)
            show_progress: Show progress bar
        """
        n_workers = n_workers or self.config.n_workers
        if not self.is_initialized:
            logger.error("VisqolManager is not initialized, aborting batch")
            return []

        if n_workers > 1 and len(pairs) > 1:
            return self._compare_parallel(pairs, n_workers, show_progress)

        results = []
        iterator = tqdm(pairs, desc="Comparing") if show_progress else pairs
        for reference_path, degraded_path in iterator:
            try:
                results.append(self.compare_files(reference_path, degraded_path))
            except NotInitializedError:
                logger.error("VisqolManager is not initialized, aborting batch")
                break
            except CompareError as e:
                logger.error(f"Error executing comparison of {reference_path} / {degraded_path}: {e}")
        return results

    def _compare_parallel(self, pairs: Sequence[ReferenceDegradedPair],
                          n_workers: int,
                          show_progress: bool) -> List[SimilarityResult]:
        """
        Compare pairs using ProcessPoolExecutor. Every worker gets a copy
        of this initialized manager.
        """
        results = []
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = [
                executor.submit(_compare_pair, self, reference_path, degraded_path)
                for reference_path, degraded_path in pairs
            ]

            iterator = zip(pairs, futures)
            if show_progress:
                iterator = tqdm(iterator, total=len(futures), desc="Comparing")

            for (reference_path, degraded_path), future in iterator:
                try:
                    results.append(future.result())
                except NotInitializedError:
                    logger.error("VisqolManager is not initialized, aborting batch")
                    for pending in futures:
                        pending.cancel()
                    break
                except CompareError as e:
                    logger.error(f"Error executing comparison of {reference_path} / {degraded_path}: {e}")

        return results


def _compare_pair(manager: VisqolManager, reference_path: str,
                  degraded_path: str) -> SimilarityResult:
    """Worker function for parallel batches."""
    return manager.compare_files(reference_path, degraded_path)


# =============================================================================
# BATCH I/O
# =============================================================================

def read_batch_csv(csv_path: str) -> List[ReferenceDegradedPair]:
    """
    Read (reference, degraded) pairs from a CSV with `reference` and
    `degraded` columns.
    """
    df = pd.read_csv(csv_path)
    missing = {"reference", "degraded"} - set(df.columns)
    if missing:
        raise ValueError(f"Batch CSV {csv_path} is missing columns: {sorted(missing)}")
    return list(zip(df["reference"].astype(str), df["degraded"].astype(str)))


def results_dataframe(results: List[SimilarityResult]) -> pd.DataFrame:
    """Convert results to pandas DataFrame."""
    return pd.DataFrame([r.to_csv_row() for r in results])


def compute_summary(df: pd.DataFrame) -> Dict:
    """
    Compute summary statistics from results.
    """
    summary = {"total_pairs": len(df)}

    for metric in ['moslqo', 'vnsim']:
        if metric in df.columns:
            valid = df[metric].dropna()
            if len(valid) > 0:
                summary[f"{metric}_mean"] = float(valid.mean())
                summary[f"{metric}_std"] = float(valid.std()) if len(valid) > 1 else 0.0
                summary[f"{metric}_min"] = float(valid.min())
                summary[f"{metric}_max"] = float(valid.max())
                summary[f"{metric}_median"] = float(valid.median())

    return summary


def save_results(results: List[SimilarityResult], output_dir: str,
                 config: PipelineConfig = None) -> Dict[str, str]:
    """
    Save results to various formats.

    Returns:
        Mapping of output kind to written path
    """
    config = config or DEFAULT_CONFIG
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    written = {}

    # 1. Results CSV
    df = results_dataframe(results)
    csv_path = output_path / f"visqol_results_{timestamp}.csv"
    df.to_csv(csv_path, index=False)
    written["csv"] = str(csv_path)
    logger.info(f"Saved CSV: {csv_path}")

    # 2. Full debug output
    debug_path = output_path / f"visqol_debug_{timestamp}.json"
    with open(debug_path, 'w') as f:
        json.dump([r.to_dict() for r in results], f, indent=2, default=str)
    written["debug"] = str(debug_path)

    # 3. Summary statistics
    summary_path = output_path / f"summary_statistics_{timestamp}.json"
    with open(summary_path, 'w') as f:
        json.dump(compute_summary(df), f, indent=2, default=str)
    written["summary"] = str(summary_path)
    logger.info(f"Saved summary: {summary_path}")

    # 4. Config snapshot
    config_path = output_path / f"config_snapshot_{timestamp}.json"
    config.save(str(config_path))
    written["config"] = str(config_path)

    return written
