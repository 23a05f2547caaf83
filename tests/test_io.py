import numpy as np
import pytest
import soundfile as sf
from scipy.io import wavfile

from eqmatch.io import (
    convert_wav_samples_to_float32,
    downmix_to_mono,
    load_audio_file,
    load_wav_file,
    prepare_analysis_samples,
    resample_to_rate,
    write_wav_file_pcm16,
)


def test_integer_pcm_is_scaled_to_unit_range():
    int16 = np.array([0, 16384, -32768], dtype=np.int16)
    converted = convert_wav_samples_to_float32(int16)

    assert converted.dtype == np.float32
    np.testing.assert_allclose(converted, [0.0, 0.5, -1.0])

    uint8 = np.array([128, 255, 0], dtype=np.uint8)
    np.testing.assert_allclose(convert_wav_samples_to_float32(uint8), [0.0, 127 / 128, -1.0])


def test_downmix_averages_channels():
    stereo = np.array([[1.0, 0.0], [0.5, 0.5], [-1.0, 1.0]], dtype=np.float32)
    np.testing.assert_allclose(downmix_to_mono(stereo), [0.5, 0.5, 0.0])


def test_resample_to_rate_changes_length():
    samples = np.random.default_rng(0).standard_normal(44_100).astype(np.float32)
    resampled = resample_to_rate(samples, 44_100, 48_000)

    assert resampled.shape == (48_000,)
    assert resampled.dtype == np.float32


def test_write_then_load(tmp_path, pink_noise):
    path = write_wav_file_pcm16(tmp_path / "pink", pink_noise, 48_000)

    assert path.suffix == ".wav"
    loaded = load_wav_file(path)
    assert loaded.sample_rate_hz == 48_000
    assert loaded.samples.shape == (pink_noise.size, 1)
    np.testing.assert_allclose(loaded.samples[:, 0], pink_noise, atol=1e-4)


def test_prepare_resamples_stereo_file(tmp_path):
    stereo = (0.25 * np.random.default_rng(1).standard_normal((22_050, 2))).astype(np.float32)
    path = tmp_path / "stereo.wav"
    wavfile.write(str(path), 44_100, stereo)

    mono = prepare_analysis_samples(load_wav_file(path), 48_000)

    assert mono.ndim == 1
    assert mono.size == 24_000


def test_load_missing_file_raises(tmp_path):
    with pytest.raises(OSError):
        load_wav_file(tmp_path / "missing.wav")


def test_flac_round_trip(tmp_path, pink_noise):
    stereo = np.stack([pink_noise, 0.5 * pink_noise], axis=1)
    path = tmp_path / "pink.flac"
    sf.write(str(path), stereo, 44_100, subtype="PCM_16")

    loaded = load_audio_file(path)

    assert loaded.sample_rate_hz == 44_100
    assert loaded.samples.dtype == np.float32
    assert loaded.samples.shape == (pink_noise.size, 2)
    np.testing.assert_allclose(loaded.samples[:, 0], pink_noise, atol=1e-4)
    assert prepare_analysis_samples(loaded, 48_000).ndim == 1


def test_wav_suffix_goes_through_wav_reader(tmp_path, pink_noise):
    path = write_wav_file_pcm16(tmp_path / "pink.wav", pink_noise, 48_000)

    np.testing.assert_array_equal(load_audio_file(path).samples, load_wav_file(path).samples)


def test_missing_or_undecodable_audio_raises(tmp_path):
    with pytest.raises(OSError):
        load_audio_file(tmp_path / "missing.flac")

    garbage = tmp_path / "garbage.flac"
    garbage.write_bytes(b"not audio at all")
    with pytest.raises(ValueError):
        load_audio_file(garbage)
