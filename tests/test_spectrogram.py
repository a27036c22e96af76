"""Tests for gammatone spectrograms, VAD and comparison preparation."""

import numpy as np
import pytest

from visqol_pipeline.audio import AnalysisWindow, AudioSignal
from visqol_pipeline.config import VisqolConfig
from visqol_pipeline.exceptions import InsufficientAudioError
from visqol_pipeline.filterbank import GammatoneFilterBank
from visqol_pipeline.spectrogram import (
    GammatoneSpectrogramBuilder, RmsVad, Spectrogram, prepare_for_comparison
)


def make_spectrogram(data: np.ndarray, **kwargs) -> Spectrogram:
    return Spectrogram(
        data=np.asarray(data, dtype=float),
        center_freqs=np.arange(1, len(data) + 1) * 100.0,
        frame_duration=0.02,
        **kwargs
    )


@pytest.mark.unit
class TestSpectrogram:
    """Test cases for the Spectrogram value type."""

    def test_to_db(self) -> None:
        """Test energy to dB conversion with a floor for zeros."""
        spectro = make_spectrogram([[1.0, 0.1], [0.01, 0.0]]).to_db()
        assert spectro.is_db
        np.testing.assert_allclose(spectro.data[0], [0.0, -10.0])
        assert spectro.data[1, 0] == pytest.approx(-20.0)
        assert np.isfinite(spectro.data[1, 1])

    def test_operations_do_not_mutate(self) -> None:
        """Test floors return new spectrograms."""
        data = np.array([[-60.0, -10.0], [-30.0, -50.0]])
        spectro = make_spectrogram(data, is_db=True)
        floored = spectro.raise_floor(-45.0)

        np.testing.assert_array_equal(spectro.data, data)
        np.testing.assert_array_equal(floored.data, [[-45.0, -10.0], [-30.0, -45.0]])

    def test_raise_floor_per_frame_uses_louder_peak(self) -> None:
        """Test each frame floors at the louder of the two frame peaks minus the margin."""
        ref = make_spectrogram([[0.0, -5.0], [-60.0, -40.0]], is_db=True)
        deg = make_spectrogram([[-10.0, 0.0], [-50.0, -50.0]], is_db=True)

        ref_out, deg_out = ref.raise_floor_per_frame(45.0, deg)

        np.testing.assert_array_equal(ref_out.data, [[0.0, -5.0], [-45.0, -40.0]])
        np.testing.assert_array_equal(deg_out.data, [[-10.0, 0.0], [-45.0, -45.0]])


@pytest.mark.unit
class TestRmsVad:
    """Test cases for RMS voice activity."""

    def test_threshold_and_lookback(self) -> None:
        """Test loud frames and the two frames after them are voiced."""
        window = AnalysisWindow(16000)
        samples = np.zeros(16000)
        samples[:1280] = 0.5  # only the first frame is fully loud

        rms = RmsVad().frame_rms(samples, window)
        voiced = RmsVad(threshold=5000.0, lookback=2).detect(samples, window)

        assert rms[0] == pytest.approx(0.5 * 32768.0)
        loud = rms >= 5000.0
        assert voiced.shape == rms.shape
        last_loud = int(np.flatnonzero(loud)[-1])
        assert voiced[: last_loud + 3].all()
        assert not voiced[last_loud + 3:].any()

    def test_quiet_signal(self) -> None:
        """Test a quiet signal has no voiced frames."""
        window = AnalysisWindow(16000)
        assert not RmsVad().detect(np.full(16000, 0.01), window).any()


@pytest.mark.unit
class TestGammatoneSpectrogramBuilder:
    """Test cases for spectrogram construction."""

    @pytest.fixture
    def audio_builder(self) -> GammatoneSpectrogramBuilder:
        """Create a full-band builder."""
        return GammatoneSpectrogramBuilder(GammatoneFilterBank(32, 50.0))

    @pytest.fixture
    def speech_builder(self) -> GammatoneSpectrogramBuilder:
        """Create a speech-mode builder."""
        return GammatoneSpectrogramBuilder(GammatoneFilterBank(21, 50.0), speech_mode=True)

    def test_shape_and_frame_duration(self, audio_builder, music_signal: AudioSignal) -> None:
        """Test one column per analysis frame."""
        window = AnalysisWindow.from_signal(music_signal)
        spectro = audio_builder.build(music_signal, window)

        assert spectro.num_bands == 32
        assert spectro.num_frames == window.num_frames(music_signal.num_samples)
        assert spectro.frame_duration == pytest.approx(0.02)
        assert spectro.voice_activity is None
        assert not spectro.is_db

    def test_tone_energy_in_matching_band(self, audio_builder) -> None:
        """Test a tone at a center frequency dominates its band."""
        sample_rate = 48000
        cf = audio_builder.filter_bank.center_frequencies(24000.0)
        t = np.arange(sample_rate) / sample_rate
        signal = AudioSignal(0.5 * np.sin(2 * np.pi * cf[14] * t), sample_rate)

        spectro = audio_builder.build(signal, AnalysisWindow(sample_rate))
        assert int(np.argmax(spectro.data.mean(axis=1))) == 14

    def test_speech_mode_band_range(self, speech_builder) -> None:
        """Test speech mode caps the band range at 8 kHz."""
        assert speech_builder.maximum_frequency(48000) == 8000.0
        assert speech_builder.maximum_frequency(8000) == 4000.0

    def test_speech_mode_voice_activity(self, speech_builder, speech_signal: AudioSignal) -> None:
        """Test speech mode annotates every frame with voice activity."""
        window = AnalysisWindow.from_signal(speech_signal)
        spectro = speech_builder.build(speech_signal, window)

        assert spectro.num_bands == 21
        assert spectro.voice_activity.shape == (spectro.num_frames,)
        assert 0 < spectro.voice_activity.sum() < spectro.num_frames
        assert spectro.center_freqs[-1] < 8000.0

    def test_deterministic(self, audio_builder, music_signal: AudioSignal) -> None:
        """Test repeated builds are identical."""
        window = AnalysisWindow.from_signal(music_signal)
        first = audio_builder.build(music_signal, window)
        second = audio_builder.build(music_signal, window)
        np.testing.assert_array_equal(first.data, second.data)

    def test_too_short(self, audio_builder) -> None:
        """Test a signal shorter than one window is rejected."""
        signal = AudioSignal(np.ones(1000), 48000)
        with pytest.raises(InsufficientAudioError):
            audio_builder.build(signal, AnalysisWindow(48000))

    @pytest.mark.parametrize("sample_rate", [100, 60])
    def test_nyquist_below_lowest_band(self, speech_builder, sample_rate: int) -> None:
        """Test rates whose Nyquist is at or under the lowest band are rejected."""
        signal = AudioSignal(np.ones(sample_rate * 4), sample_rate)
        with pytest.raises(InsufficientAudioError, match="too low"):
            speech_builder.build(signal, AnalysisWindow(sample_rate))

    def test_empty_window(self) -> None:
        """Test a window that rounds to zero samples is rejected."""
        builder = GammatoneSpectrogramBuilder(GammatoneFilterBank(4, 1.0))
        signal = AudioSignal(np.ones(100), 5)
        assert AnalysisWindow(5).size == 0
        with pytest.raises(InsufficientAudioError, match="window of 0 samples"):
            builder.build(signal, AnalysisWindow(5))


@pytest.mark.unit
class TestPrepareForComparison:
    """Test cases for noise floors and the common dB offset."""

    def test_common_zero_floor(self, rng: np.random.Generator) -> None:
        """Test the pair shares a zero minimum and a bounded dynamic range."""
        ref = make_spectrogram(rng.uniform(1e-9, 1.0, size=(8, 40)))
        deg = make_spectrogram(rng.uniform(1e-9, 0.5, size=(8, 40)))

        ref_out, deg_out = prepare_for_comparison(ref, deg)

        assert ref_out.is_db and deg_out.is_db
        assert min(ref_out.minimum(), deg_out.minimum()) == pytest.approx(0.0)
        assert ref_out.maximum() <= 45.0 + 1e-9
        assert deg_out.maximum() <= 45.0 + 1e-9

    def test_identical_inputs_stay_identical(self, rng: np.random.Generator) -> None:
        """Test identical spectrograms prepare identically."""
        data = rng.uniform(1e-6, 1.0, size=(4, 10))
        ref_out, deg_out = prepare_for_comparison(make_spectrogram(data), make_spectrogram(data.copy()))
        np.testing.assert_array_equal(ref_out.data, deg_out.data)

    def test_floors_quiet_bins(self) -> None:
        """Test bins more than 45 dB below the frame peak are raised."""
        ref = make_spectrogram([[1.0], [1e-8]])
        deg = make_spectrogram([[1.0], [1e-8]])
        config = VisqolConfig()

        ref_out, _ = prepare_for_comparison(ref, deg, config)
        # Peak 0 dB, quiet bin raised from -80 dB to -45 dB, then shifted by +45
        np.testing.assert_allclose(ref_out.data[:, 0], [45.0, 0.0])
