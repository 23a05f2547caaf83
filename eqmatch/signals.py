# eqmatch/signals.py
"""
Deterministic test signals for profiling and matching.

All generators return mono NumPy arrays (float32, range [-1, 1]) wrapped in
GeneratedSignal. The same seed always gives the same samples.

Design goals:
- clarity over cleverness
- deterministic and repeatable signals
- spectral shapes that are easy to reason about in band terms
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Tuple

import numpy as np


NoiseType = Literal["white", "pink"]

# Spectral slope of each named noise colour, in dB per octave of power.
NOISE_TILT_DB_PER_OCTAVE = {
    "white": 0.0,
    "pink": -3.0,
}


# -------------------------------------------------------------------
# Data container
# -------------------------------------------------------------------

@dataclass(frozen=True)
class GeneratedSignal:
    """
    Container for a generated mono signal.
    """
    samples: np.ndarray      # shape (num_samples,), dtype float32
    sample_rate_hz: int


# -------------------------------------------------------------------
# Utility helpers
# -------------------------------------------------------------------

def convert_to_float32_and_limit_peak(samples: np.ndarray) -> np.ndarray:
    """
    Convert array to float32 and ensure peak magnitude <= 1.0.
    """
    samples = np.asarray(samples, dtype=np.float32)

    if samples.size == 0:
        return samples

    peak_magnitude = float(np.max(np.abs(samples)))
    if peak_magnitude > 1.0:
        samples = samples / peak_magnitude

    return samples


def seconds_to_samples(duration_seconds: float, sample_rate_hz: int) -> int:
    """
    Convert duration in seconds to integer sample count.
    """
    if duration_seconds < 0.0:
        raise ValueError("Duration must be non-negative")

    return int(round(duration_seconds * sample_rate_hz))


def normalise_peak_amplitude(
    samples: np.ndarray,
    target_peak: float = 0.95,
) -> np.ndarray:
    """
    Peak-normalise a signal to a target absolute amplitude.
    """
    samples = np.asarray(samples, dtype=np.float32)

    if samples.size == 0:
        return samples

    current_peak = float(np.max(np.abs(samples)))
    if current_peak <= 0.0:
        return samples

    return samples * (target_peak / current_peak)


def shape_spectrum(
    samples: np.ndarray,
    sample_rate_hz: int,
    tilt_db_per_octave: float = 0.0,
    bump_frequency_hz: float | None = None,
    bump_gain_db: float = 0.0,
    bump_width_octaves: float = 1.0 / 3.0,
) -> np.ndarray:
    """
    Reshape a signal in the frequency domain (offline FFT).

    - tilt_db_per_octave: power slope relative to 1 kHz
    - bump_*: optional Gaussian (in log-frequency) boost or cut
    """
    samples = np.asarray(samples, dtype=np.float64)
    number_of_samples = samples.size
    if number_of_samples == 0:
        return samples.astype(np.float32)

    frequency_domain = np.fft.rfft(samples)
    frequency_axis_hz = np.fft.rfftfreq(number_of_samples, d=1.0 / sample_rate_hz)

    gain_db = np.zeros_like(frequency_axis_hz)
    nonzero_mask = frequency_axis_hz > 0.0
    octaves_from_1k = np.zeros_like(frequency_axis_hz)
    octaves_from_1k[nonzero_mask] = np.log2(frequency_axis_hz[nonzero_mask] / 1000.0)

    gain_db[nonzero_mask] += tilt_db_per_octave * octaves_from_1k[nonzero_mask]

    if bump_frequency_hz is not None and bump_gain_db != 0.0:
        if bump_frequency_hz <= 0.0 or bump_width_octaves <= 0.0:
            raise ValueError("Require bump_frequency_hz > 0 and bump_width_octaves > 0")
        distance = np.zeros_like(frequency_axis_hz)
        distance[nonzero_mask] = np.log2(frequency_axis_hz[nonzero_mask] / bump_frequency_hz)
        gain_db[nonzero_mask] += bump_gain_db * np.exp(
            -0.5 * (distance[nonzero_mask] / bump_width_octaves) ** 2
        )

    # DC carries no useful content for band analysis.
    gain_linear = np.where(nonzero_mask, 10.0 ** (gain_db / 20.0), 0.0)

    shaped = np.fft.irfft(frequency_domain * gain_linear, n=number_of_samples)
    return shaped.astype(np.float32)


# -------------------------------------------------------------------
# Signal generators
# -------------------------------------------------------------------

def generate_tilted_noise(
    sample_rate_hz: int = 48_000,
    duration_seconds: float = 2.0,
    tilt_db_per_octave: float = 0.0,
    random_seed: int = 0,
    target_peak: float = 0.5,
) -> GeneratedSignal:
    """
    Gaussian noise with a constant spectral slope (dB/octave of power).
    """
    number_of_samples = seconds_to_samples(duration_seconds, sample_rate_hz)

    random_generator = np.random.default_rng(random_seed)
    white_noise = random_generator.standard_normal(number_of_samples)

    if tilt_db_per_octave == 0.0:
        noise_samples = white_noise.astype(np.float32)
    else:
        noise_samples = shape_spectrum(
            white_noise, sample_rate_hz, tilt_db_per_octave=tilt_db_per_octave
        )

    if noise_samples.size > 0:
        noise_samples = noise_samples - float(np.mean(noise_samples))
    noise_samples = normalise_peak_amplitude(noise_samples, target_peak)

    return GeneratedSignal(
        samples=noise_samples,
        sample_rate_hz=sample_rate_hz,
    )


def generate_noise(
    sample_rate_hz: int = 48_000,
    duration_seconds: float = 2.0,
    noise_type: NoiseType = "white",
    random_seed: int = 0,
) -> GeneratedSignal:
    """
    Generate white or pink noise.
    """
    if noise_type not in NOISE_TILT_DB_PER_OCTAVE:
        raise ValueError(f"Unknown noise type: {noise_type}")

    return generate_tilted_noise(
        sample_rate_hz=sample_rate_hz,
        duration_seconds=duration_seconds,
        tilt_db_per_octave=NOISE_TILT_DB_PER_OCTAVE[noise_type],
        random_seed=random_seed,
    )


def generate_sine(
    sample_rate_hz: int = 48_000,
    frequency_hz: float = 440.0,
    duration_seconds: float = 2.0,
    amplitude: float = 0.5,
    initial_phase_radians: float = 0.0,
) -> GeneratedSignal:
    """
    Generate a sustained sine wave.
    """
    number_of_samples = seconds_to_samples(
        duration_seconds, sample_rate_hz
    )

    time_axis_seconds = (
        np.arange(number_of_samples, dtype=np.float64)
        / float(sample_rate_hz)
    )

    sine_samples = amplitude * np.sin(
        2.0 * np.pi * frequency_hz * time_axis_seconds
        + initial_phase_radians
    )

    sine_samples = convert_to_float32_and_limit_peak(sine_samples)

    return GeneratedSignal(
        samples=sine_samples,
        sample_rate_hz=sample_rate_hz,
    )


def generate_demo_pair(
    sample_rate_hz: int = 48_000,
    duration_seconds: float = 4.0,
    random_seed: int = 0,
) -> Tuple[GeneratedSignal, GeneratedSignal]:
    """
    A (reference, input) pair with a known tonal difference.

    Reference: pink noise.
    Input:     the same noise, darker (-1.5 dB/octave) with a +4 dB bump at 2 kHz.
    Matching input to reference should therefore ask for a treble lift and a
    cut around 2 kHz.
    """
    reference = generate_noise(
        sample_rate_hz=sample_rate_hz,
        duration_seconds=duration_seconds,
        noise_type="pink",
        random_seed=random_seed,
    )

    coloured = shape_spectrum(
        reference.samples,
        sample_rate_hz,
        tilt_db_per_octave=-1.5,
        bump_frequency_hz=2000.0,
        bump_gain_db=4.0,
    )
    coloured = normalise_peak_amplitude(coloured, 0.5)

    return reference, GeneratedSignal(samples=coloured, sample_rate_hz=sample_rate_hz)
