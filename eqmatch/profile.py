# eqmatch/profile.py
"""
Band profiles: data model, whole-signal descriptors and the build entry point.

build_profile(pcm_samples, sample_rate) is the analysis contract:
- input is decoded mono PCM (see eqmatch.io for the decoder)
- output is an immutable EQProfile with one BandProfile per layout band plus
  overall loudness, dynamic range, spectral centroid and spectral rolloff

Structurally invalid input fails fast with ValueError. Degenerate but valid
input (silence, a handful of samples) produces a valid profile with floored
gains and zero confidence instead.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import numpy as np

from eqmatch.bands import (
    AggregationSettings,
    BandAggregate,
    BandLayoutSettings,
    aggregate_bands,
    build_band_layout,
)
from eqmatch.frames import FrameSettings, iter_spectral_frames, validate_frame_settings

logger = logging.getLogger("eqmatch.profile")

PROFILE_FORMAT_VERSION = 1

# --------------------------------------------------------------------------------------
# Data models
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class BandProfile:
    frequency: float     # centre, Hz
    gain_db: float       # relative to the whole-signal reference level
    bandwidth: float     # Hz, from the layout
    confidence: float    # 0..1


@dataclass(frozen=True)
class EQProfile:
    bands: Tuple[BandProfile, ...]
    overall_loudness: float      # dB
    dynamic_range: float         # dB, percentile spread of frame loudness
    spectral_centroid: float     # Hz
    spectral_rolloff: float      # Hz

    @property
    def frequencies(self) -> np.ndarray:
        return np.array([b.frequency for b in self.bands], dtype=np.float64)

    @property
    def gains_db(self) -> np.ndarray:
        return np.array([b.gain_db for b in self.bands], dtype=np.float64)

    @property
    def bandwidths(self) -> np.ndarray:
        return np.array([b.bandwidth for b in self.bands], dtype=np.float64)

    @property
    def confidences(self) -> np.ndarray:
        return np.array([b.confidence for b in self.bands], dtype=np.float64)


@dataclass(frozen=True)
class AnalysisSettings:
    frames: FrameSettings = FrameSettings()
    layout: BandLayoutSettings = BandLayoutSettings()
    aggregation: AggregationSettings = AggregationSettings()

    # Floor for every loudness value in dB (mean-square re full scale).
    loudness_floor_db: float = -120.0

    # Fraction of total energy below the rolloff frequency.
    rolloff_fraction: float = 0.85

    # (low, high) percentiles of frame loudness used for dynamic range.
    dynamic_range_percentiles: Tuple[float, float] = (10.0, 95.0)


# --------------------------------------------------------------------------------------
# Descriptors
# --------------------------------------------------------------------------------------


def _power_to_db(power: np.ndarray | float, floor_db: float) -> np.ndarray:
    floor_linear = 10.0 ** (float(floor_db) / 10.0)
    return 10.0 * np.log10(np.maximum(power, floor_linear))


def compute_spectral_centroid(frequency_hz: np.ndarray, energy: np.ndarray) -> float:
    total = float(np.sum(energy))
    if total <= 0.0:
        return 0.0
    return float(np.sum(frequency_hz * energy) / total)


def compute_spectral_rolloff(
    frequency_hz: np.ndarray,
    energy: np.ndarray,
    fraction: float = 0.85,
) -> float:
    """
    Smallest frequency whose cumulative energy reaches fraction of the total.
    """
    total = float(np.sum(energy))
    if total <= 0.0:
        return 0.0
    cumulative = np.cumsum(energy)
    index = int(np.searchsorted(cumulative, fraction * total, side="left"))
    index = min(index, frequency_hz.size - 1)
    return float(frequency_hz[index])


def compute_dynamic_range(
    frame_loudness_db: np.ndarray,
    percentiles: Tuple[float, float] = (10.0, 95.0),
) -> float:
    """
    Percentile spread of frame loudness. Not max - min, which a single
    outlier frame would dominate.
    """
    if frame_loudness_db.size == 0:
        return 0.0
    low, high = np.percentile(frame_loudness_db, [percentiles[0], percentiles[1]])
    return float(max(0.0, high - low))


def describe_band_curve(
    frequencies: np.ndarray,
    gains_db: np.ndarray,
    rolloff_fraction: float = 0.85,
    dynamic_range_percentiles: Tuple[float, float] = (10.0, 95.0),
) -> Tuple[float, float, float, float]:
    """
    (overall_loudness, dynamic_range, spectral_centroid, spectral_rolloff)
    of a band curve, treating each band gain as a power gain.

    Used for correction profiles, whose descriptors describe the curve itself.
    """
    gains_db = np.asarray(gains_db, dtype=np.float64)
    frequencies = np.asarray(frequencies, dtype=np.float64)
    if gains_db.size == 0:
        return 0.0, 0.0, 0.0, 0.0

    power = 10.0 ** (gains_db / 10.0)
    overall = float(10.0 * np.log10(np.mean(power)))
    spread = compute_dynamic_range(gains_db, dynamic_range_percentiles)
    centroid = compute_spectral_centroid(frequencies, power)
    rolloff = compute_spectral_rolloff(frequencies, power, rolloff_fraction)
    return overall, spread, centroid, rolloff


# --------------------------------------------------------------------------------------
# Build
# --------------------------------------------------------------------------------------


def validate_pcm_input(pcm_samples: Any, sample_rate: Any) -> np.ndarray:
    """
    Return pcm_samples as a 1D float64 array or raise ValueError.
    """
    try:
        rate = float(sample_rate)
    except (TypeError, ValueError):
        raise ValueError(f"sample_rate must be a number, got {sample_rate!r}") from None
    if not np.isfinite(rate) or rate <= 0.0:
        raise ValueError(f"sample_rate must be positive and finite, got {sample_rate!r}")

    samples = np.asarray(pcm_samples)
    if samples.ndim == 2 and samples.shape[1] == 1:
        samples = samples[:, 0]
    if samples.ndim != 1:
        raise ValueError(
            f"pcm_samples must be a 1D mono buffer, got shape {samples.shape} (downmix first)"
        )
    if samples.size == 0:
        raise ValueError("pcm_samples is empty")
    if not (np.issubdtype(samples.dtype, np.floating) or np.issubdtype(samples.dtype, np.integer)):
        raise ValueError(f"pcm_samples must be numeric, got dtype {samples.dtype}")

    samples = samples.astype(np.float64, copy=False)
    if not np.all(np.isfinite(samples)):
        bad = int(np.count_nonzero(~np.isfinite(samples)))
        raise ValueError(f"pcm_samples contains {bad} non-finite value(s)")
    return samples


def profile_from_aggregate(
    aggregate: BandAggregate,
    settings: AnalysisSettings,
) -> EQProfile:
    layout = build_band_layout(settings.layout)

    bands = tuple(
        BandProfile(
            frequency=layout.centre_hz[i],
            gain_db=float(aggregate.gain_db[i]),
            bandwidth=layout.bandwidth_hz[i],
            confidence=float(aggregate.confidence[i]),
        )
        for i in range(layout.band_count)
    )

    frame_loudness_db = _power_to_db(aggregate.frame_mean_squares, settings.loudness_floor_db)
    total_mean_square = float(np.mean(aggregate.frame_mean_squares))

    return EQProfile(
        bands=bands,
        overall_loudness=float(_power_to_db(total_mean_square, settings.loudness_floor_db)),
        dynamic_range=compute_dynamic_range(frame_loudness_db, settings.dynamic_range_percentiles),
        spectral_centroid=compute_spectral_centroid(aggregate.frequency_hz, aggregate.mean_power),
        spectral_rolloff=compute_spectral_rolloff(
            aggregate.frequency_hz, aggregate.mean_power, settings.rolloff_fraction
        ),
    )


def build_profile(
    pcm_samples: np.ndarray,
    sample_rate: float,
    settings: Optional[AnalysisSettings] = None,
) -> EQProfile:
    if settings is None:
        settings = AnalysisSettings()

    samples = validate_pcm_input(pcm_samples, sample_rate)
    validate_frame_settings(settings.frames)
    layout = build_band_layout(settings.layout)

    aggregate = aggregate_bands(
        frames=iter_spectral_frames(samples, settings.frames),
        sample_rate_hz=float(sample_rate),
        n_fft=settings.frames.n_fft,
        layout=layout,
        settings=settings.aggregation,
    )
    profile = profile_from_aggregate(aggregate, settings)

    logger.info(
        "Profile: %d samples @ %g Hz, %d frames, loudness %.1f dB, DR %.1f dB, centroid %.0f Hz",
        samples.size,
        float(sample_rate),
        aggregate.frame_count,
        profile.overall_loudness,
        profile.dynamic_range,
        profile.spectral_centroid,
    )
    return profile


def analyse_pair(
    reference_samples: np.ndarray,
    input_samples: np.ndarray,
    sample_rate: float,
    settings: Optional[AnalysisSettings] = None,
) -> Tuple[EQProfile, EQProfile]:
    """
    Build the reference and input profiles concurrently.

    The two analyses share nothing, and each one is deterministic, so the
    result equals two sequential build_profile calls.
    """
    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="eqmatch-analyse") as executor:
        reference_future = executor.submit(build_profile, reference_samples, sample_rate, settings)
        input_future = executor.submit(build_profile, input_samples, sample_rate, settings)
        return reference_future.result(), input_future.result()


# --------------------------------------------------------------------------------------
# Persistence (JSON)
# --------------------------------------------------------------------------------------


def profile_to_dict(profile: EQProfile) -> Dict[str, Any]:
    return {
        "version": PROFILE_FORMAT_VERSION,
        "overall_loudness": profile.overall_loudness,
        "dynamic_range": profile.dynamic_range,
        "spectral_centroid": profile.spectral_centroid,
        "spectral_rolloff": profile.spectral_rolloff,
        "bands": [
            {
                "frequency": b.frequency,
                "gain_db": b.gain_db,
                "bandwidth": b.bandwidth,
                "confidence": b.confidence,
            }
            for b in profile.bands
        ],
    }


def profile_from_dict(data: Dict[str, Any]) -> EQProfile:
    version = data.get("version", PROFILE_FORMAT_VERSION)
    if version != PROFILE_FORMAT_VERSION:
        raise ValueError(f"Unsupported profile version: {version}")

    try:
        bands = tuple(
            BandProfile(
                frequency=float(b["frequency"]),
                gain_db=float(b["gain_db"]),
                bandwidth=float(b["bandwidth"]),
                confidence=float(b["confidence"]),
            )
            for b in data["bands"]
        )
        return EQProfile(
            bands=bands,
            overall_loudness=float(data["overall_loudness"]),
            dynamic_range=float(data["dynamic_range"]),
            spectral_centroid=float(data["spectral_centroid"]),
            spectral_rolloff=float(data["spectral_rolloff"]),
        )
    except KeyError as missing:
        raise ValueError(f"Profile data is missing field {missing}") from None


def save_profile_json(profile: EQProfile, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(profile_to_dict(profile), indent=2) + "\n")
    return output_path


def load_profile_json(input_path: str | Path) -> EQProfile:
    return profile_from_dict(json.loads(Path(input_path).read_text()))


# --------------------------------------------------------------------------------------
# CLI-friendly numeric summary
# --------------------------------------------------------------------------------------


def summarise_profile_text(profile: EQProfile, name: Optional[str] = None) -> str:
    lines = []
    header = f"[{name}] " if name else ""
    lines.append(
        f"{header}loudness={profile.overall_loudness:.1f}dB  "
        f"dynamic_range={profile.dynamic_range:.1f}dB  "
        f"centroid={profile.spectral_centroid:.0f}Hz  "
        f"rolloff={profile.spectral_rolloff:.0f}Hz"
    )
    for b in profile.bands:
        lines.append(f"  {b.frequency:8.0f} Hz  {b.gain_db:+7.2f} dB  conf={b.confidence:.2f}")
    return "\n".join(lines)

