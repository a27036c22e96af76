"""
Similarity to Quality Mapping Module
====================================

Map aggregate NSIM values onto the MOS-LQO scale.

Strategies:
- SpeechSimilarityToQualityMapper: fixed exponential fit (speech mode)
- SvrSimilarityToQualityMapper: pre-trained scikit-learn regressor
  loaded with joblib (full-audio mode)

Both expose predict(vnsim, fvnsim) and clip to the MOS range.
"""

import numpy as np
import joblib
from pathlib import Path
from typing import Optional
import logging

from .config import VisqolConfig
from .exceptions import InitializationError

logger = logging.getLogger(__name__)


class SimilarityToQualityMapper:
    """Common interface of the quality mapping strategies."""

    def __init__(self, config: VisqolConfig = None):
        self.config = config or VisqolConfig()

    def init(self):
        """Prepare the mapper; raises InitializationError on failure."""

    def predict(self, vnsim: float, fvnsim: np.ndarray) -> float:
        raise NotImplementedError

    def _clip(self, mos: float) -> float:
        return float(np.clip(mos, self.config.MOS_MIN, self.config.MOS_MAX))


class SpeechSimilarityToQualityMapper(SimilarityToQualityMapper):
    """
    Exponential NSIM-to-MOS fit for speech.

    Args:
        scale_to_max_mos: Rescale so a perfect match maps to MOS_MAX
        config: VisqolConfig constants
    """

    FIT_A = 1.15604368
    FIT_B = 4.68239609
    FIT_X0 = 0.76942128

    def __init__(self, scale_to_max_mos: bool = True, config: VisqolConfig = None):
        super().__init__(config)
        self.scale_to_max_mos = scale_to_max_mos
        logger.info(f"SpeechSimilarityToQualityMapper initialized (scaled={scale_to_max_mos})")

    def exponential_fit(self, nsim: float) -> float:
        return self.FIT_A * np.exp(self.FIT_B * (nsim - self.FIT_X0))

    def predict(self, vnsim: float, fvnsim: np.ndarray) -> float:
        mos = self.exponential_fit(vnsim)
        if self.scale_to_max_mos:
            mos *= self.config.MOS_MAX / self.exponential_fit(1.0)
        return self._clip(mos)


def load_regression_model(model_path: str):
    """
    Load a serialized regressor.

    Args:
        model_path: Path to a joblib or pickle file holding a fitted estimator

    Returns:
        The estimator

    Raises:
        InitializationError: missing file, unreadable model file, or an
            object without a predict method
    """
    path = Path(model_path)
    if not path.is_file():
        raise InitializationError(f"Quality model file not found: {model_path}")

    try:
        model = joblib.load(path)
    except Exception as e:
        raise InitializationError(f"Failed to load quality model {model_path}: {e}") from e

    if not callable(getattr(model, "predict", None)):
        raise InitializationError(
            f"Quality model {model_path} has no predict method "
            f"(got {type(model).__name__})"
        )
    return model


class SvrSimilarityToQualityMapper(SimilarityToQualityMapper):
    """
    Regression model mapping for full-band audio.

    Feeds the per-band NSIM vector to the model when the model was fitted
    on that many features, otherwise the scalar NSIM.

    Args:
        model_path: Path to the serialized regressor
        config: VisqolConfig constants
        num_bands: Length of the per-band NSIM vector (defaults to the
            full-audio band count)
    """

    def __init__(self, model_path: Optional[str], config: VisqolConfig = None,
                 num_bands: Optional[int] = None):
        super().__init__(config)
        self.model_path = model_path
        self.num_bands = num_bands or self.config.NUM_BANDS_AUDIO
        self.model = None

    def init(self):
        if not self.model_path:
            raise InitializationError("Full-audio mode requires a quality model path")
        model = load_regression_model(self.model_path)
        n_features = getattr(model, "n_features_in_", None)
        if n_features is not None and n_features not in (1, self.num_bands):
            raise InitializationError(
                f"Quality model {self.model_path} expects {n_features} features, "
                f"but predictions supply 1 or {self.num_bands}"
            )
        self.model = model
        logger.info(
            f"Loaded {type(self.model).__name__} quality model from {self.model_path} "
            f"(features={n_features})"
        )

    def predict(self, vnsim: float, fvnsim: np.ndarray) -> float:
        if self.model is None:
            raise RuntimeError("SvrSimilarityToQualityMapper.init() must be called before predict()")

        fvnsim = np.asarray(fvnsim, dtype=np.float64)
        n_features = getattr(self.model, "n_features_in_", len(fvnsim))
        if n_features == len(fvnsim):
            features = fvnsim.reshape(1, -1)
        else:
            features = np.array([[vnsim]])

        mos = float(np.ravel(self.model.predict(features))[0])
        return self._clip(mos)
