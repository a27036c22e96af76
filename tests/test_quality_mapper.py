"""Tests for NSIM to MOS-LQO mapping."""

from pathlib import Path

import joblib
import numpy as np
import pytest
from sklearn.linear_model import LinearRegression

from visqol_pipeline.exceptions import InitializationError
from visqol_pipeline.quality_mapper import (
    SpeechSimilarityToQualityMapper, SvrSimilarityToQualityMapper, load_regression_model
)


@pytest.mark.unit
class TestSpeechSimilarityToQualityMapper:
    """Test cases for the exponential speech mapping."""

    def test_perfect_match_scales_to_max(self) -> None:
        """Test NSIM 1 maps to MOS 5 when scaled."""
        mapper = SpeechSimilarityToQualityMapper(scale_to_max_mos=True)
        assert mapper.predict(1.0, np.ones(21)) == pytest.approx(5.0)

    def test_unscaled_mapping(self) -> None:
        """Test the raw fit value is returned when unscaled."""
        mapper = SpeechSimilarityToQualityMapper(scale_to_max_mos=False)
        expected = 1.15604368 * np.exp(4.68239609 * (1.0 - 0.76942128))
        assert mapper.predict(1.0, np.ones(21)) == pytest.approx(expected)
        assert 3.0 < expected < 4.0

    def test_monotonic(self) -> None:
        """Test higher NSIM never maps to lower MOS."""
        mapper = SpeechSimilarityToQualityMapper()
        scores = [mapper.predict(v, np.ones(21)) for v in np.linspace(0.0, 1.0, 21)]
        assert all(b >= a for a, b in zip(scores, scores[1:]))

    def test_clipped_to_mos_range(self) -> None:
        """Test very low NSIM clips to MOS 1."""
        mapper = SpeechSimilarityToQualityMapper()
        assert mapper.predict(0.0, np.zeros(21)) == 1.0
        assert mapper.predict(-1.0, np.zeros(21)) == 1.0


@pytest.mark.unit
class TestLoadRegressionModel:
    """Test cases for model loading failures."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing model file is an initialization error."""
        with pytest.raises(InitializationError, match="not found"):
            load_regression_model(str(tmp_path / "missing.pkl"))

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Test an unreadable model file is an initialization error."""
        path = tmp_path / "corrupt.pkl"
        path.write_bytes(b"\x00\x01 definitely not a pickle")
        with pytest.raises(InitializationError, match="Failed to load"):
            load_regression_model(str(path))

    def test_object_without_predict(self, tmp_path: Path) -> None:
        """Test a saved object that is not an estimator is rejected."""
        path = tmp_path / "dict.joblib"
        joblib.dump({"weights": [1, 2, 3]}, path)
        with pytest.raises(InitializationError, match="no predict method"):
            load_regression_model(str(path))


@pytest.mark.unit
class TestSvrSimilarityToQualityMapper:
    """Test cases for the regression model mapping."""

    def test_requires_model_path(self) -> None:
        """Test full-audio mapping cannot start without a model."""
        with pytest.raises(InitializationError, match="requires a quality model"):
            SvrSimilarityToQualityMapper(None).init()

    def test_predict_before_init(self, band_model_path: str) -> None:
        """Test predicting before init is a programming error."""
        mapper = SvrSimilarityToQualityMapper(band_model_path)
        with pytest.raises(RuntimeError):
            mapper.predict(1.0, np.ones(32))

    def test_band_model_uses_band_vector(self, band_model_path: str) -> None:
        """Test a 32-feature model sees the per-band similarities."""
        mapper = SvrSimilarityToQualityMapper(band_model_path)
        mapper.init()

        high = mapper.predict(0.6, np.full(32, 0.95))
        low = mapper.predict(0.95, np.full(32, 0.6))
        assert 1.0 <= low < high <= 5.0

    def test_scalar_model_uses_vnsim(self, scalar_model_path: str) -> None:
        """Test a single-feature model sees the aggregate similarity."""
        mapper = SvrSimilarityToQualityMapper(scalar_model_path)
        mapper.init()

        assert mapper.predict(0.3, np.ones(32)) == pytest.approx(3.0)

    def test_rejects_model_with_unsupported_feature_count(self, tmp_path: Path) -> None:
        """Test a model fitted on neither 1 nor num_bands features fails init."""
        X = np.random.default_rng(3).uniform(size=(20, 5))
        model = LinearRegression().fit(X, X.sum(axis=1))
        path = tmp_path / "five_features.joblib"
        joblib.dump(model, path)

        mapper = SvrSimilarityToQualityMapper(str(path), num_bands=32)
        with pytest.raises(InitializationError, match="expects 5 features"):
            mapper.init()
        assert mapper.model is None

    def test_prediction_clipped(self, scalar_model_path: str) -> None:
        """Test model output outside the MOS range is clipped."""
        mapper = SvrSimilarityToQualityMapper(scalar_model_path)
        mapper.init()

        assert mapper.predict(1.0, np.ones(32)) == 5.0
        assert mapper.predict(0.01, np.ones(32)) == 1.0
