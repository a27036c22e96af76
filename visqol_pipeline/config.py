"""
Pipeline Configuration Module
=============================

FROZEN similarity-model constants and runtime pipeline settings.
DO NOT MODIFY the frozen constants without a version bump: the
patch sizes, band counts and floors are what the quality mapping
models were fitted against.

All settings are deterministic for reproducibility.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import hashlib
import json
import logging
from datetime import datetime

logger = logging.getLogger(__name__)

# ============================================================================
# FROZEN MODEL PARAMETERS - DO NOT MODIFY
# ============================================================================

@dataclass(frozen=True)
class VisqolConfig:
    """
    Frozen similarity pipeline configuration.

    Shared by every comparison once the manager is initialized.
    Modify only with version increment and audit trail.
    """
    # Patch widths (spectrogram frames)
    PATCH_SIZE_AUDIO: int = 30
    PATCH_SIZE_SPEECH: int = 20

    # Gammatone filterbank
    NUM_BANDS_AUDIO: int = 32
    NUM_BANDS_SPEECH: int = 21
    MINIMUM_FREQ: float = 50.0           # Hz, wideband
    SPEECH_MAXIMUM_FREQ: float = 8000.0  # Hz, speech mode upper band edge

    # Analysis window
    OVERLAP: float = 0.25                # hop = 25% of window size
    WINDOW_DURATION_SEC: float = 0.08

    # Input validation (warnings only)
    DURATION_MISMATCH_TOLERANCE_SEC: float = 1.0
    SPEECH_SAMPLE_RATE_LIMIT: int = 16000
    AUDIO_EXPECTED_SAMPLE_RATE: int = 48000

    # Patch matching
    SEARCH_WINDOW_RADIUS: int = 60       # frames either side of the ref patch

    # Spectrogram floors
    NOISE_FLOOR_ABSOLUTE_DB: float = -45.0
    NOISE_FLOOR_RELATIVE_TO_PEAK_DB: float = 45.0

    # Speech mode voice activity (RMS on 16-bit scale)
    VAD_RMS_THRESHOLD: float = 5000.0
    VAD_LOOKBACK_FRAMES: int = 2
    VAD_MIN_VOICED_FRACTION: float = 0.5

    # Global alignment
    MAX_LAG_SEC: float = 1.0

    # MOS-LQO output range
    MOS_MIN: float = 1.0
    MOS_MAX: float = 5.0

    # Version tracking
    CONFIG_VERSION: str = "1.0.0"


@dataclass
class PipelineConfig:
    """
    Main pipeline configuration.

    Combines the frozen model constants with runtime settings.
    """
    visqol: VisqolConfig = field(default_factory=VisqolConfig)

    # Runtime settings (can be modified)
    model_path: Optional[str] = None          # Regression model (full-audio mode)
    use_speech_mode: bool = False
    use_unscaled_speech_mos_mapping: bool = False
    n_workers: int = 1                        # Parallel workers for batches
    verbose: bool = False                     # Detailed logging
    output_dir: str = "visqol_output"

    def __post_init__(self):
        """Generate config hash for version tracking"""
        self._config_hash = self._compute_hash()
        self._created_at = datetime.now().isoformat()

    def _compute_hash(self) -> str:
        """Compute deterministic hash of frozen parameters"""
        config_dict = {
            k: v for k, v in self.visqol.__dict__.items()
            if not k.startswith("_")
        }
        config_str = json.dumps(config_dict, sort_keys=True)
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @property
    def patch_size(self) -> int:
        if self.use_speech_mode:
            return self.visqol.PATCH_SIZE_SPEECH
        return self.visqol.PATCH_SIZE_AUDIO

    @property
    def num_bands(self) -> int:
        if self.use_speech_mode:
            return self.visqol.NUM_BANDS_SPEECH
        return self.visqol.NUM_BANDS_AUDIO

    def to_dict(self) -> Dict:
        """Export configuration as dictionary"""
        return {
            "visqol": {k: v for k, v in self.visqol.__dict__.items()},
            "runtime": {
                "model_path": self.model_path,
                "use_speech_mode": self.use_speech_mode,
                "use_unscaled_speech_mos_mapping": self.use_unscaled_speech_mos_mapping,
                "n_workers": self.n_workers,
                "verbose": self.verbose,
                "output_dir": self.output_dir
            },
            "meta": {
                "config_hash": self._config_hash,
                "created_at": self._created_at,
                "version": self.visqol.CONFIG_VERSION
            }
        }

    def save(self, path: str):
        """Save configuration to JSON file"""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "PipelineConfig":
        """Load configuration from JSON file"""
        with open(path, "r") as f:
            data = json.load(f)

        config = cls()
        runtime = data["runtime"]
        config.model_path = runtime["model_path"]
        config.use_speech_mode = runtime["use_speech_mode"]
        config.use_unscaled_speech_mos_mapping = runtime["use_unscaled_speech_mos_mapping"]
        config.n_workers = runtime["n_workers"]
        config.verbose = runtime["verbose"]
        config.output_dir = runtime["output_dir"]

        # Frozen constants are never restored from a snapshot
        saved_hash = data.get("meta", {}).get("config_hash")
        if saved_hash is not None and saved_hash != config.config_hash:
            logger.warning(
                f"Config snapshot {path} was saved with frozen constants "
                f"{saved_hash}, loading with {config.config_hash} "
                f"(version {config.visqol.CONFIG_VERSION})"
            )

        return config


# ============================================================================
# DEFAULT CONFIGURATION INSTANCE
# ============================================================================

DEFAULT_CONFIG = PipelineConfig()


if __name__ == "__main__":
    # Print configuration for verification
    config = PipelineConfig()
    print(f"Pipeline Configuration v{config.visqol.CONFIG_VERSION}")
    print(f"Config Hash: {config.config_hash}")
    print(f"\nAudio mode: {config.num_bands} bands, patch size {config.patch_size}")
    config.use_speech_mode = True
    print(f"Speech mode: {config.num_bands} bands, patch size {config.patch_size}")
