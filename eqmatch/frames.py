# eqmatch/frames.py
"""
Spectral frame extraction.

Splits a mono PCM buffer into overlapping, windowed frames and yields one
linear power spectrum per frame. Phase is discarded.

Conventions:
- frame size and hop are fixed by FrameSettings, independent of input length
- the final partial frame is zero-padded (never dropped), so very short input
  still yields one frame
- silence or an empty buffer yields a single all-zero frame
- frames are produced lazily; callers reduce them in arrival order
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Iterator

import numpy as np

try:
    from scipy.signal import get_window
except ImportError as import_error:  # pragma: no cover
    raise ImportError(
        "scipy is required for analysis windows. Install with: pip install scipy"
    ) from import_error


SUPPORTED_WINDOWS = ("hann", "hamming", "blackmanharris", "flattop")

# --------------------------------------------------------------------------------------
# Data models
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class FrameSettings:
    # FFT length in samples. 8192 at 48 kHz gives ~5.9 Hz bins, enough to put
    # at least one bin into the lowest third-octave band.
    n_fft: int = 8192

    # Hop between frame starts (50% overlap by default).
    hop_length: int = 4096

    # Any name from SUPPORTED_WINDOWS. Blackman-Harris keeps leakage ~92 dB down.
    window: str = "blackmanharris"


@dataclass(frozen=True)
class SpectralFrame:
    index: int
    power: np.ndarray      # shape (n_fft // 2 + 1,), linear power per bin
    mean_square: float     # mean square of the real (un-padded) samples in this frame


# --------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------


def validate_frame_settings(settings: FrameSettings) -> None:
    if int(settings.n_fft) < 16:
        raise ValueError(f"n_fft must be at least 16, got {settings.n_fft}")
    if not (0 < int(settings.hop_length) <= int(settings.n_fft)):
        raise ValueError(
            f"hop_length must be in (0, n_fft={settings.n_fft}], got {settings.hop_length}"
        )
    if settings.window not in SUPPORTED_WINDOWS:
        raise ValueError(
            f"Unknown window: {settings.window!r} (expected one of {', '.join(SUPPORTED_WINDOWS)})"
        )


@lru_cache(maxsize=16)
def _analysis_window(window_name: str, n_fft: int) -> np.ndarray:
    # Periodic (DFT-even) window, the right choice for spectral analysis.
    window = get_window(window_name, n_fft, fftbins=True).astype(np.float64)
    window.setflags(write=False)
    return window


def rfft_frequencies(n_fft: int, sample_rate_hz: float) -> np.ndarray:
    return np.fft.rfftfreq(int(n_fft), d=1.0 / float(sample_rate_hz))


def count_frames(num_samples: int, settings: FrameSettings) -> int:
    """
    Number of frames needed to cover num_samples (at least 1).
    """
    overflow = max(0, int(num_samples) - int(settings.n_fft))
    return 1 + int(np.ceil(overflow / float(settings.hop_length)))


# --------------------------------------------------------------------------------------
# Core extraction
# --------------------------------------------------------------------------------------


def iter_spectral_frames(
    samples: np.ndarray,
    settings: FrameSettings,
) -> Iterator[SpectralFrame]:
    """
    Yield one SpectralFrame per analysis frame.

    Power is |rFFT(frame * window)|^2 / sum(window^2), so a stationary signal
    gives the same per-bin level regardless of the window chosen.
    """
    validate_frame_settings(settings)

    x = np.asarray(samples, dtype=np.float64).reshape(-1)
    n_fft = int(settings.n_fft)
    hop = int(settings.hop_length)
    num_bins = n_fft // 2 + 1

    if x.size == 0 or not np.any(x):
        yield SpectralFrame(index=0, power=np.zeros(num_bins, dtype=np.float64), mean_square=0.0)
        return

    window = _analysis_window(settings.window, n_fft)
    window_energy = float(np.sum(window * window))

    for frame_index in range(count_frames(x.size, settings)):
        start = frame_index * hop
        chunk = x[start : start + n_fft]

        frame = np.zeros(n_fft, dtype=np.float64)
        frame[: chunk.size] = chunk

        spectrum = np.fft.rfft(frame * window)
        power = (spectrum.real ** 2 + spectrum.imag ** 2) / window_energy

        yield SpectralFrame(
            index=frame_index,
            power=power,
            mean_square=float(np.mean(chunk * chunk)),
        )
