import numpy as np
import pytest

from eqmatch.frames import FrameSettings, count_frames, iter_spectral_frames


def test_count_frames_covers_tail_with_padding():
    settings = FrameSettings(n_fft=1024, hop_length=512)
    assert count_frames(0, settings) == 1
    assert count_frames(100, settings) == 1
    assert count_frames(1024, settings) == 1
    assert count_frames(1025, settings) == 2
    assert count_frames(1024 + 512, settings) == 2
    assert count_frames(1024 + 513, settings) == 3


def test_frames_follow_count_and_order():
    settings = FrameSettings(n_fft=1024, hop_length=512)
    samples = np.random.default_rng(0).standard_normal(5000)

    frames = list(iter_spectral_frames(samples, settings))

    assert len(frames) == count_frames(samples.size, settings)
    assert [f.index for f in frames] == list(range(len(frames)))
    assert all(f.power.shape == (513,) for f in frames)


def test_short_input_gives_one_padded_frame():
    settings = FrameSettings(n_fft=1024, hop_length=512)
    frames = list(iter_spectral_frames(np.ones(10), settings))

    assert len(frames) == 1
    assert frames[0].mean_square == pytest.approx(1.0)
    assert np.all(np.isfinite(frames[0].power))


@pytest.mark.parametrize("samples", [np.zeros(0), np.zeros(20000)])
def test_silence_and_empty_yield_single_zero_frame(samples):
    frames = list(iter_spectral_frames(samples, FrameSettings()))

    assert len(frames) == 1
    assert not np.any(frames[0].power)
    assert frames[0].mean_square == 0.0


def test_sine_peaks_at_its_bin():
    sample_rate_hz = 48_000
    settings = FrameSettings(n_fft=4096, hop_length=2048)
    t = np.arange(sample_rate_hz) / sample_rate_hz
    samples = np.sin(2.0 * np.pi * 1500.0 * t)

    frame = next(iter_spectral_frames(samples, settings))
    peak_hz = np.argmax(frame.power) * sample_rate_hz / settings.n_fft

    assert peak_hz == pytest.approx(1500.0, abs=sample_rate_hz / settings.n_fft)


@pytest.mark.parametrize(
    "settings",
    [
        FrameSettings(n_fft=8),
        FrameSettings(n_fft=1024, hop_length=0),
        FrameSettings(n_fft=1024, hop_length=2048),
        FrameSettings(window="triangle-ish"),
    ],
)
def test_invalid_settings_raise(settings):
    with pytest.raises(ValueError):
        list(iter_spectral_frames(np.ones(100), settings))
