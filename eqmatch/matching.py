# eqmatch/matching.py
"""
Match engine: turn a reference profile and an input profile into a
correction curve.

Pipeline, per band:
1. raw gap = reference gain - input gain (bands without evidence carry no gap)
2. optional psychoacoustic weighting (A-weighting shaped, bounded)
3. intensity scaling
4. smoothing across bands (Gaussian kernel, mean preserving)
5. optional dynamics preservation (uniform magnitude reduction)
6. clamp to +-max_correction
7. output confidence = min(reference confidence, input confidence)

Every step is an out-of-place array transform, so no step depends on the
order bands are visited in.

Policy constants live in MatchTuning; they are defaults, not hidden magic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

import numpy as np

from eqmatch.profile import BandProfile, EQProfile, describe_band_curve
from eqmatch.quality import score

logger = logging.getLogger("eqmatch.matching")

# Absolute slack when deciding whether a value exceeded max_correction.
_CLAMP_TOLERANCE_DB = 1e-9

# --------------------------------------------------------------------------------------
# Data models
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchTuning:
    # Psychoacoustic weighting: A-weighting (IEC 61672, the 40-phon
    # equal-loudness contour) mapped linearly onto [weight_min, weight_max].
    # A-weighting at or below a_weighting_floor_db maps to weight_min.
    weight_min: float = 0.5
    weight_max: float = 1.5
    a_weighting_floor_db: float = -30.0

    # Gaussian sigma (in bands) at smoothing_factor == 1.
    max_smoothing_sigma_bands: float = 3.0

    # Dynamics preservation: once the input's dynamic range exceeds the
    # reference's by more than dynamics_threshold_db, corrections shrink
    # linearly over dynamics_ramp_db, by at most max_dynamics_attenuation.
    dynamics_threshold_db: float = 3.0
    dynamics_ramp_db: float = 12.0
    max_dynamics_attenuation: float = 0.3

    # Warnings
    low_confidence_threshold: float = 0.3
    dynamics_mismatch_threshold_db: float = 6.0
    unnatural_clamp_fraction: float = 0.5
    steep_slope_db_per_octave: float = 12.0
    high_mean_correction_db: float = 3.0

    # Quality score: residual RMS (dB) at which the score is 0.5.
    quality_scale_db: float = 3.0


@dataclass(frozen=True)
class MatchConfig:
    intensity: float = 0.7            # 0..1, fraction of the gap to correct
    max_correction: float = 6.0       # dB, symmetric clamp
    smoothing_factor: float = 0.5     # 0..1
    use_psychoacoustic: bool = True
    preserve_dynamics: bool = True
    tuning: MatchTuning = MatchTuning()


@dataclass(frozen=True)
class MatchResult:
    correction_profile: EQProfile
    reference_normalized: Tuple[float, ...]
    input_normalized: Tuple[float, ...]
    quality_score: float
    warnings: Tuple[str, ...]


MATCH_PRESETS: Dict[str, MatchConfig] = {
    "subtle": MatchConfig(intensity=0.3, max_correction=3.0, smoothing_factor=0.7),
    "balanced": MatchConfig(),
    "aggressive": MatchConfig(
        intensity=0.9, max_correction=9.0, smoothing_factor=0.3, preserve_dynamics=False
    ),
    "guitar": MatchConfig(intensity=0.6, max_correction=6.0, smoothing_factor=0.8),
    "vocals": MatchConfig(intensity=0.5, max_correction=4.0, smoothing_factor=0.6),
    "mastering": MatchConfig(
        intensity=0.8,
        max_correction=8.0,
        smoothing_factor=0.4,
        use_psychoacoustic=False,
        preserve_dynamics=False,
    ),
}


def match_config_from_preset(name: str, **overrides) -> MatchConfig:
    """
    Look up a preset by name and apply keyword overrides (None values are ignored).
    """
    key = name.strip().lower()
    if key not in MATCH_PRESETS:
        raise ValueError(f"Unknown preset: {name!r} (expected one of {', '.join(MATCH_PRESETS)})")
    changes = {k: v for k, v in overrides.items() if v is not None}
    return replace(MATCH_PRESETS[key], **changes)


# --------------------------------------------------------------------------------------
# Validation
# --------------------------------------------------------------------------------------


def _as_number(name: str, value: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"{name} must be a number, got {value!r}") from None


def _require_unit_interval(name: str, value: float) -> None:
    number = _as_number(name, value)
    if not np.isfinite(number) or not (0.0 <= number <= 1.0):
        raise ValueError(f"{name} must be within [0, 1], got {value!r}")


def validate_match_config(config: MatchConfig) -> None:
    _require_unit_interval("intensity", config.intensity)
    _require_unit_interval("smoothing_factor", config.smoothing_factor)
    max_correction = _as_number("max_correction", config.max_correction)
    if not np.isfinite(max_correction) or max_correction <= 0.0:
        raise ValueError(f"max_correction must be a positive number of dB, got {config.max_correction!r}")

    tuning = config.tuning
    if not (0.0 <= tuning.weight_min <= tuning.weight_max):
        raise ValueError(
            f"Require 0 <= weight_min <= weight_max, got {tuning.weight_min} and {tuning.weight_max}"
        )
    if tuning.max_smoothing_sigma_bands < 0.0:
        raise ValueError(f"max_smoothing_sigma_bands must be >= 0, got {tuning.max_smoothing_sigma_bands}")
    _require_unit_interval("max_dynamics_attenuation", tuning.max_dynamics_attenuation)
    if tuning.dynamics_ramp_db <= 0.0:
        raise ValueError(f"dynamics_ramp_db must be positive, got {tuning.dynamics_ramp_db}")
    if tuning.quality_scale_db <= 0.0:
        raise ValueError(f"quality_scale_db must be positive, got {tuning.quality_scale_db}")


def _check_same_layout(reference: EQProfile, input_profile: EQProfile) -> None:
    if len(reference.bands) != len(input_profile.bands):
        raise ValueError(
            f"Profiles have different band counts: reference={len(reference.bands)} "
            f"input={len(input_profile.bands)}"
        )
    if len(reference.bands) == 0:
        raise ValueError("Profiles have no bands.")
    if not np.allclose(reference.frequencies, input_profile.frequencies, rtol=1e-6, atol=0.0):
        raise ValueError("Profiles were built with different band layouts (centre frequencies differ).")


# --------------------------------------------------------------------------------------
# Curve transforms
# --------------------------------------------------------------------------------------


def a_weighting_db(frequency_hz: np.ndarray) -> np.ndarray:
    """
    IEC 61672 A-weighting in dB (0 dB at 1 kHz).
    """
    f2 = np.asarray(frequency_hz, dtype=np.float64) ** 2
    numerator = (12194.0 ** 2) * f2 * f2
    denominator = (
        (f2 + 20.6 ** 2)
        * np.sqrt((f2 + 107.7 ** 2) * (f2 + 737.9 ** 2))
        * (f2 + 12194.0 ** 2)
    )
    response = numerator / np.maximum(denominator, 1e-300)
    return 20.0 * np.log10(np.maximum(response, 1e-300)) + 2.0


def psychoacoustic_weights(frequency_hz: np.ndarray, tuning: MatchTuning = MatchTuning()) -> np.ndarray:
    """
    Per-band multipliers in [weight_min, weight_max], highest around 1-4 kHz.

    The A-weighting curve is rescaled so its peak across the given bands maps
    to weight_max and a_weighting_floor_db (or less) maps to weight_min.
    """
    a_db = a_weighting_db(frequency_hz)
    peak_db = float(np.max(a_db))
    floor_db = float(tuning.a_weighting_floor_db)
    if peak_db <= floor_db:
        return np.full(a_db.shape, float(tuning.weight_min))

    position = np.clip((a_db - floor_db) / (peak_db - floor_db), 0.0, 1.0)
    return tuning.weight_min + (tuning.weight_max - tuning.weight_min) * position


def _gaussian_kernel(sigma_bands: float) -> np.ndarray:
    radius = max(1, int(np.ceil(3.0 * sigma_bands)))
    offsets = np.arange(-radius, radius + 1, dtype=np.float64)
    kernel = np.exp(-0.5 * (offsets / sigma_bands) ** 2)
    return kernel / np.sum(kernel)


def smooth_band_curve(
    values: np.ndarray,
    smoothing_factor: float,
    max_sigma_bands: float = 3.0,
) -> np.ndarray:
    """
    Smooth a band curve with a symmetric Gaussian kernel (weights sum to 1).

    Ends are handled by half-sample symmetric reflection, never by wrapping
    or zero padding. With a symmetric kernel this makes the smoothing matrix
    doubly stochastic, so the curve mean is preserved exactly and the edge
    bands lose no gain.

    Reads values and returns a new array.
    """
    values = np.asarray(values, dtype=np.float64)
    sigma = float(smoothing_factor) * float(max_sigma_bands)
    if sigma <= 0.0 or values.size < 2:
        return values.copy()

    kernel = _gaussian_kernel(sigma)
    radius = (kernel.size - 1) // 2
    padded = np.pad(values, radius, mode="symmetric")
    return np.convolve(padded, kernel, mode="valid")


def dynamics_preservation_factor(
    reference_dynamic_range_db: float,
    input_dynamic_range_db: float,
    tuning: MatchTuning = MatchTuning(),
) -> float:
    """
    Multiplier in [1 - max_dynamics_attenuation, 1] for the correction curve.

    1.0 unless the input is more dynamic than the reference by more than
    the threshold; the reduction then grows linearly over dynamics_ramp_db.
    """
    excess = float(input_dynamic_range_db) - float(reference_dynamic_range_db) - float(tuning.dynamics_threshold_db)
    if not np.isfinite(excess) or excess <= 0.0:
        return 1.0
    amount = min(1.0, excess / float(tuning.dynamics_ramp_db))
    return 1.0 - float(tuning.max_dynamics_attenuation) * amount


def normalize_gains(profile: EQProfile) -> Tuple[float, ...]:
    """
    Band gains with their mean removed (display/comparison only).
    """
    gains = profile.gains_db
    return tuple(float(g) for g in gains - float(np.mean(gains)))


# --------------------------------------------------------------------------------------
# Warnings
# --------------------------------------------------------------------------------------


def _collect_warnings(
    reference: EQProfile,
    input_profile: EQProfile,
    frequencies: np.ndarray,
    pre_clamp: np.ndarray,
    corrected: np.ndarray,
    clamped: np.ndarray,
    confidence: np.ndarray,
    tuning: MatchTuning,
) -> List[str]:
    warnings: List[str] = []
    band_count = frequencies.size
    reliable = confidence > 0.0

    for i in np.flatnonzero(clamped):
        warnings.append(
            f"Correction at {frequencies[i]:.0f} Hz clamped from "
            f"{pre_clamp[i]:+.2f} dB to {corrected[i]:+.2f} dB"
        )

    for i in np.flatnonzero(confidence < tuning.low_confidence_threshold):
        warnings.append(f"Low confidence at band near {frequencies[i]:.0f} Hz ({confidence[i]:.2f})")

    dynamics_gap = abs(reference.dynamic_range - input_profile.dynamic_range)
    if dynamics_gap > tuning.dynamics_mismatch_threshold_db:
        warnings.append(
            f"Dynamic range mismatch: reference {reference.dynamic_range:.1f} dB vs "
            f"input {input_profile.dynamic_range:.1f} dB ({dynamics_gap:.1f} dB apart)"
        )

    clamped_count = int(np.count_nonzero(clamped))
    if clamped_count > tuning.unnatural_clamp_fraction * band_count:
        warnings.append(
            f"{clamped_count} of {band_count} bands needed clamping; match may sound unnatural"
        )

    octaves = np.log2(frequencies[1:] / frequencies[:-1])
    slopes = np.abs(np.diff(corrected)) / octaves
    for i in np.flatnonzero((slopes > tuning.steep_slope_db_per_octave) & reliable[:-1] & reliable[1:]):
        warnings.append(
            f"Steep slope between {frequencies[i]:.0f} Hz and {frequencies[i + 1]:.0f} Hz "
            f"({slopes[i]:.1f} dB/octave)"
        )

    if np.any(reliable):
        mean_correction = float(np.mean(np.abs(corrected[reliable])))
        if mean_correction > tuning.high_mean_correction_db:
            warnings.append(
                f"High overall correction (mean {mean_correction:.1f} dB per band); "
                f"consider a lower intensity"
            )
    else:
        warnings.append("No reliable bands: both recordings lack usable energy in common bands")

    return warnings


# --------------------------------------------------------------------------------------
# Core matching
# --------------------------------------------------------------------------------------


def match(
    reference: EQProfile,
    input: EQProfile,
    config: Optional[MatchConfig] = None,
) -> MatchResult:
    if config is None:
        config = MatchConfig()

    validate_match_config(config)
    _check_same_layout(reference, input)
    tuning = config.tuning

    frequencies = reference.frequencies
    confidence = np.minimum(reference.confidences, input.confidences)
    reliable = confidence > 0.0

    gap = np.where(reliable, reference.gains_db - input.gains_db, 0.0)

    if config.use_psychoacoustic:
        gap = gap * psychoacoustic_weights(frequencies, tuning)

    scaled = gap * float(config.intensity)

    smoothed = smooth_band_curve(
        scaled,
        smoothing_factor=config.smoothing_factor,
        max_sigma_bands=tuning.max_smoothing_sigma_bands,
    )

    if config.preserve_dynamics:
        factor = dynamics_preservation_factor(reference.dynamic_range, input.dynamic_range, tuning)
        if factor < 1.0:
            logger.info("Dynamics preservation scales corrections by %.2f", factor)
        smoothed = smoothed * factor

    max_correction = float(config.max_correction)
    limit = np.where(reliable, max_correction, 0.0)
    corrected = np.clip(smoothed, -limit, limit)
    clamped = reliable & (np.abs(smoothed) > max_correction + _CLAMP_TOLERANCE_DB)

    warnings = _collect_warnings(
        reference=reference,
        input_profile=input,
        frequencies=frequencies,
        pre_clamp=smoothed,
        corrected=corrected,
        clamped=clamped,
        confidence=confidence,
        tuning=tuning,
    )

    overall, spread, centroid, rolloff = describe_band_curve(frequencies, corrected)
    correction_profile = EQProfile(
        bands=tuple(
            BandProfile(
                frequency=ref_band.frequency,
                gain_db=float(corrected[i]),
                bandwidth=ref_band.bandwidth,
                confidence=float(confidence[i]),
            )
            for i, ref_band in enumerate(reference.bands)
        ),
        overall_loudness=overall,
        dynamic_range=spread,
        spectral_centroid=centroid,
        spectral_rolloff=rolloff,
    )

    quality = score(reference, input, correction_profile, scale_db=tuning.quality_scale_db)

    for message in warnings:
        logger.warning("%s", message)
    logger.info(
        "Matched %d bands: quality %.3f, %d clamped, %d warning(s)",
        frequencies.size,
        quality,
        int(np.count_nonzero(clamped)),
        len(warnings),
    )

    return MatchResult(
        correction_profile=correction_profile,
        reference_normalized=normalize_gains(reference),
        input_normalized=normalize_gains(input),
        quality_score=quality,
        warnings=tuple(warnings),
    )


# --------------------------------------------------------------------------------------
# CLI-friendly numeric summary
# --------------------------------------------------------------------------------------


def summarise_match_result_text(result: MatchResult) -> str:
    bands = result.correction_profile.bands
    active = sum(1 for b in bands if abs(b.gain_db) > 0.5)
    peak = max((abs(b.gain_db) for b in bands), default=0.0)

    lines = [
        f"quality={result.quality_score * 100.0:.0f}%  bands={len(bands)}  "
        f"active={active}  max_correction={peak:.1f}dB"
    ]
    for b, ref_norm, inp_norm in zip(bands, result.reference_normalized, result.input_normalized):
        lines.append(
            f"  {b.frequency:8.0f} Hz  ref={ref_norm:+7.2f}  in={inp_norm:+7.2f}  "
            f"corr={b.gain_db:+6.2f} dB  conf={b.confidence:.2f}"
        )
    if result.warnings:
        lines.append("warnings:")
        lines.extend(f"  - {w}" for w in result.warnings)
    return "\n".join(lines)
