"""Shared fixtures for the similarity pipeline tests."""

from pathlib import Path
from typing import Callable

import joblib
import numpy as np
import pytest
import soundfile as sf
from sklearn.linear_model import LinearRegression
from sklearn.svm import NuSVR

from visqol_pipeline.audio import AudioSignal

AUDIO_RATE = 48000
SPEECH_RATE = 16000


def music_like(sample_rate: int = AUDIO_RATE, duration: float = 3.0) -> np.ndarray:
    """Deterministic non-stationary tone mix with slow amplitude and pitch movement."""
    t = np.arange(int(sample_rate * duration)) / sample_rate
    x = 0.30 * np.sin(2 * np.pi * 440 * t) * (0.6 + 0.4 * np.sin(2 * np.pi * 3 * t))
    x += 0.20 * np.sin(2 * np.pi * 1250 * t + 2 * np.sin(2 * np.pi * 0.5 * t)) * (
        0.5 + 0.5 * np.cos(2 * np.pi * 1.7 * t)
    )
    x += 0.10 * np.sin(2 * np.pi * 3100 * t) * (0.5 + 0.5 * np.sin(2 * np.pi * 0.9 * t))
    return x


def speech_like(sample_rate: int = SPEECH_RATE, duration: float = 4.0) -> np.ndarray:
    """Alternating loud voiced bursts (0.5 s) and near-silent gaps (0.5 s)."""
    t = np.arange(int(sample_rate * duration)) / sample_rate
    voiced = 0.35 * np.sin(2 * np.pi * 220 * t) + 0.2 * np.sin(2 * np.pi * 660 * t + 1.0)
    voiced *= 0.8 + 0.2 * np.sin(2 * np.pi * 4 * t)
    gate = (np.floor(t / 0.5) % 2 == 0).astype(float)
    rng = np.random.default_rng(7)
    return voiced * gate + 0.001 * rng.standard_normal(t.size)


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def music_signal() -> AudioSignal:
    """Three seconds of full-band test audio at 48 kHz."""
    return AudioSignal(music_like(), AUDIO_RATE)


@pytest.fixture
def speech_signal() -> AudioSignal:
    """Four seconds of bursty speech-like audio at 16 kHz."""
    return AudioSignal(speech_like(), SPEECH_RATE)


@pytest.fixture
def write_wav(tmp_path: Path) -> Callable[[str, np.ndarray, int], str]:
    """Write samples to a 16-bit wav under tmp_path and return its path."""

    def _write(name: str, samples: np.ndarray, sample_rate: int) -> str:
        path = tmp_path / name
        sf.write(str(path), samples, sample_rate, subtype="PCM_16")
        return str(path)

    return _write


@pytest.fixture
def band_model_path(tmp_path: Path) -> str:
    """NuSVR fitted on synthetic 32-band similarity vectors, saved with joblib."""
    rng = np.random.default_rng(42)
    level = rng.uniform(0.3, 1.0, size=(200, 1))
    X = np.clip(level + rng.normal(0.0, 0.02, size=(200, 32)), 0.0, 1.0)
    y = 1.0 + 4.0 * (level.ravel() - 0.3) / 0.7
    model = NuSVR(nu=0.5, C=10.0).fit(X, y)

    path = tmp_path / "band_model.joblib"
    joblib.dump(model, path)
    return str(path)


@pytest.fixture
def scalar_model_path(tmp_path: Path) -> str:
    """Linear model of MOS = 10 * vnsim, fitted on one feature, saved with joblib."""
    X = np.linspace(0.0, 1.0, 11).reshape(-1, 1)
    model = LinearRegression().fit(X, 10.0 * X.ravel())

    path = tmp_path / "scalar_model.joblib"
    joblib.dump(model, path)
    return str(path)
