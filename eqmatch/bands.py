# eqmatch/bands.py
"""
Fixed fractional-octave band layout and band aggregation.

Design:
- The band layout is configuration, not data: centre frequencies and edges
  depend only on BandLayoutSettings, never on the signal or its sample rate.
  Every profile built with the same settings is comparable band-for-band.
- The layout table and the FFT-bin -> band weight matrix are built once per
  configuration (lru_cache) and reused.
- Per-frame power spectra are averaged (Welch) into one smoothed spectrum;
  bins are summed into their band, since power is additive.

Default layout: 31 third-octave bands, centres 1000 * 2^(k/3) for
k = -17..13 (~19.7 Hz .. ~20.2 kHz), edges at centre * 2^(+-1/6).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Tuple

import numpy as np

from eqmatch.frames import SpectralFrame, rfft_frequencies

logger = logging.getLogger("eqmatch.bands")

# Floor for log() of energies that are exactly zero.
_ENERGY_EPSILON = 1e-30

# --------------------------------------------------------------------------------------
# Data models
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class BandLayoutSettings:
    bands_per_octave: int = 3
    f_min_hz: float = 20.0
    f_max_hz: float = 20000.0

    # Centres are anchor * 2^(k / bands_per_octave) (base-2, ISO 266 style).
    anchor_hz: float = 1000.0


@dataclass(frozen=True)
class BandLayout:
    centre_hz: Tuple[float, ...]
    low_edge_hz: Tuple[float, ...]
    high_edge_hz: Tuple[float, ...]
    bandwidth_hz: Tuple[float, ...]

    @property
    def band_count(self) -> int:
        return len(self.centre_hz)


@dataclass(frozen=True)
class AggregationSettings:
    # Band gains are floored here (dB relative to the mean per-bin energy).
    min_gain_db: float = -60.0

    # Bands within this many dB of min_gain_db get proportionally less confidence.
    floor_ramp_db: float = 20.0

    # Per-frame band level spread (std, dB) at which stability drops to 0.5.
    stability_scale_db: float = 10.0

    # Frames quieter than this (mean-square, dBFS) are left out of the
    # stability statistics, so silent passages do not read as instability.
    stability_gate_db: float = -70.0

    # Floor for per-frame band levels (dB) before the stability statistics.
    frame_level_floor_db: float = -120.0


@dataclass(frozen=True)
class BandAggregate:
    gain_db: np.ndarray                 # (bands,)
    confidence: np.ndarray              # (bands,) in [0, 1]
    band_energy: np.ndarray             # (bands,) linear, from the averaged spectrum
    above_nyquist: np.ndarray           # (bands,) bool

    frequency_hz: np.ndarray            # (bins,) rFFT bin frequencies
    mean_power: np.ndarray              # (bins,) Welch-averaged power spectrum
    reference_energy: float             # mean per-bin energy of mean_power

    frame_mean_squares: np.ndarray      # (frames,) per-frame mean square amplitude
    frame_count: int


# --------------------------------------------------------------------------------------
# Layout
# --------------------------------------------------------------------------------------


@lru_cache(maxsize=8)
def build_band_layout(settings: BandLayoutSettings = BandLayoutSettings()) -> BandLayout:
    """
    Build the fractional-octave band table.

    Centres are rounded onto the anchor grid from f_min_hz/f_max_hz, so the
    default 20 Hz .. 20 kHz request gives the familiar 31 third-octave bands.
    Neighbouring bands share their edge value exactly.
    """
    n = int(settings.bands_per_octave)
    if n <= 0:
        raise ValueError(f"bands_per_octave must be positive, got {settings.bands_per_octave}")
    if not (0.0 < settings.f_min_hz < settings.f_max_hz):
        raise ValueError(
            f"Require 0 < f_min_hz < f_max_hz, got {settings.f_min_hz} and {settings.f_max_hz}"
        )
    if settings.anchor_hz <= 0.0:
        raise ValueError(f"anchor_hz must be positive, got {settings.anchor_hz}")

    anchor = float(settings.anchor_hz)
    k_min = int(round(n * np.log2(float(settings.f_min_hz) / anchor)))
    k_max = int(round(n * np.log2(float(settings.f_max_hz) / anchor)))

    k = np.arange(k_min, k_max + 1, dtype=np.float64)
    centres = anchor * 2.0 ** (k / n)
    edges = anchor * 2.0 ** ((np.arange(k_min, k_max + 2, dtype=np.float64) - 0.5) / n)

    low = edges[:-1]
    high = edges[1:]

    return BandLayout(
        centre_hz=tuple(float(f) for f in centres),
        low_edge_hz=tuple(float(f) for f in low),
        high_edge_hz=tuple(float(f) for f in high),
        bandwidth_hz=tuple(float(f) for f in (high - low)),
    )


@lru_cache(maxsize=16)
def band_weight_matrix(
    n_fft: int,
    sample_rate_hz: float,
    layout: BandLayout,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Return (weights, above_nyquist).

    weights has shape (bands, bins); band energy = weights @ power.
    - a bin inside [low, high) of a band gets weight 1 (bins are summed)
    - a band below Nyquist that catches no bin is estimated from the power
      density interpolated at its centre, times bandwidth / bin width
    - a band whose low edge is at or above Nyquist gets an all-zero row
    """
    frequency_hz = rfft_frequencies(n_fft, sample_rate_hz)
    num_bins = frequency_hz.size
    nyquist = 0.5 * float(sample_rate_hz)
    bin_width = float(sample_rate_hz) / float(n_fft)

    weights = np.zeros((layout.band_count, num_bins), dtype=np.float64)
    above_nyquist = np.zeros(layout.band_count, dtype=bool)

    for band_index in range(layout.band_count):
        low = layout.low_edge_hz[band_index]
        high = layout.high_edge_hz[band_index]

        if low >= nyquist:
            above_nyquist[band_index] = True
            continue

        mask = (frequency_hz >= low) & (frequency_hz < high)
        if np.any(mask):
            weights[band_index, mask] = 1.0
            continue

        position = layout.centre_hz[band_index] / bin_width
        lower_bin = int(np.floor(position))
        upper_bin = min(lower_bin + 1, num_bins - 1)
        fraction = position - lower_bin
        scale = layout.bandwidth_hz[band_index] / bin_width
        weights[band_index, lower_bin] += (1.0 - fraction) * scale
        weights[band_index, upper_bin] += fraction * scale

    weights.setflags(write=False)
    above_nyquist.setflags(write=False)
    return weights, above_nyquist


# --------------------------------------------------------------------------------------
# Aggregation
# --------------------------------------------------------------------------------------


def aggregate_bands(
    frames: Iterable[SpectralFrame],
    sample_rate_hz: float,
    n_fft: int,
    layout: BandLayout,
    settings: AggregationSettings = AggregationSettings(),
) -> BandAggregate:
    """
    Reduce a frame sequence into per-band gain and confidence.

    Accumulation runs in frame order (deterministic). The per-frame band
    level spread uses Welford's update, so long inputs do not lose precision.
    """
    weights, above_nyquist = band_weight_matrix(int(n_fft), float(sample_rate_hz), layout)
    num_bands, num_bins = weights.shape

    spectrum_sum = np.zeros(num_bins, dtype=np.float64)
    frame_mean_squares = []

    gated_count = 0
    level_mean = np.zeros(num_bands, dtype=np.float64)
    level_m2 = np.zeros(num_bands, dtype=np.float64)
    gate_mean_square = 10.0 ** (float(settings.stability_gate_db) / 10.0)

    for frame in frames:
        if frame.power.shape != (num_bins,):
            raise ValueError(
                f"Frame power has {frame.power.shape} bins, expected ({num_bins},) for n_fft={n_fft}"
            )
        spectrum_sum += frame.power
        frame_mean_squares.append(frame.mean_square)

        if frame.mean_square < gate_mean_square:
            continue

        band_level_db = 10.0 * np.log10(np.maximum(weights @ frame.power, _ENERGY_EPSILON))
        band_level_db = np.maximum(band_level_db, float(settings.frame_level_floor_db))

        gated_count += 1
        delta = band_level_db - level_mean
        level_mean += delta / gated_count
        level_m2 += delta * (band_level_db - level_mean)

    frame_count = len(frame_mean_squares)
    if frame_count == 0:
        raise ValueError("aggregate_bands needs at least one frame.")

    mean_power = spectrum_sum / float(frame_count)
    band_energy = weights @ mean_power
    reference_energy = float(np.mean(mean_power))

    min_gain_db = float(settings.min_gain_db)
    if reference_energy > 0.0:
        ratio = np.maximum(band_energy, _ENERGY_EPSILON) / reference_energy
        gain_db = np.maximum(10.0 * np.log10(ratio), min_gain_db)
    else:
        gain_db = np.full(num_bands, min_gain_db, dtype=np.float64)
    gain_db[above_nyquist] = min_gain_db

    ramp = max(float(settings.floor_ramp_db), 1e-9)
    evidence = np.clip((gain_db - min_gain_db) / ramp, 0.0, 1.0)

    if gated_count > 0:
        spread_db = np.sqrt(level_m2 / float(gated_count))
    else:
        spread_db = np.zeros(num_bands, dtype=np.float64)
    stability = 1.0 / (1.0 + spread_db / max(float(settings.stability_scale_db), 1e-9))

    confidence = np.clip(evidence * stability, 0.0, 1.0)
    confidence[above_nyquist] = 0.0

    logger.debug(
        "Aggregated %d frames (%d above gate) into %d bands; %d above Nyquist",
        frame_count,
        gated_count,
        num_bands,
        int(np.count_nonzero(above_nyquist)),
    )

    return BandAggregate(
        gain_db=gain_db,
        confidence=confidence,
        band_energy=band_energy,
        above_nyquist=np.array(above_nyquist, copy=True),
        frequency_hz=rfft_frequencies(n_fft, sample_rate_hz),
        mean_power=mean_power,
        reference_energy=reference_energy,
        frame_mean_squares=np.asarray(frame_mean_squares, dtype=np.float64),
        frame_count=frame_count,
    )


# --------------------------------------------------------------------------------------
# CLI-friendly numeric summary
# --------------------------------------------------------------------------------------


def summarise_band_layout_text(layout: BandLayout) -> str:
    lines = [f"{layout.band_count} bands"]
    for centre, low, high in zip(layout.centre_hz, layout.low_edge_hz, layout.high_edge_hz):
        lines.append(f"  {centre:9.1f} Hz  [{low:9.1f} .. {high:9.1f}]")
    return "\n".join(lines)
