# eqmatch/preview.py
"""
Apply a correction profile to PCM for auditioning.

Each band becomes one peaking biquad (RBJ audio-EQ cookbook) with the
band's centre frequency, correction gain and Q = frequency / bandwidth.
The sections are cascaded as second-order sections with scipy.signal.sosfilt.

This is an offline preview, not a real-time processor.
"""

from __future__ import annotations

import logging

import numpy as np

try:
    from scipy.signal import sosfilt
except ImportError as import_error:  # pragma: no cover
    raise ImportError(
        "scipy is required for EQ preview. Install with: pip install scipy"
    ) from import_error

from eqmatch.profile import EQProfile

logger = logging.getLogger("eqmatch.preview")

# Bands whose |gain| is below this are left out of the cascade.
MIN_ACTIVE_GAIN_DB = 0.01


def design_peaking_sos(
    frequency_hz: float,
    gain_db: float,
    q: float,
    sample_rate_hz: float,
) -> np.ndarray:
    """
    One peaking-EQ section as a (6,) sos row [b0, b1, b2, 1, a1, a2].
    """
    if q <= 0.0:
        raise ValueError(f"q must be positive, got {q}")

    amplitude = 10.0 ** (float(gain_db) / 40.0)
    w0 = 2.0 * np.pi * float(frequency_hz) / float(sample_rate_hz)
    alpha = np.sin(w0) / (2.0 * float(q))
    cos_w0 = np.cos(w0)

    b0 = 1.0 + alpha * amplitude
    b1 = -2.0 * cos_w0
    b2 = 1.0 - alpha * amplitude
    a0 = 1.0 + alpha / amplitude
    a1 = -2.0 * cos_w0
    a2 = 1.0 - alpha / amplitude

    return np.array([b0 / a0, b1 / a0, b2 / a0, 1.0, a1 / a0, a2 / a0], dtype=np.float64)


def correction_to_sos(correction_profile: EQProfile, sample_rate_hz: float) -> np.ndarray:
    """
    Stack the active bands into an (n_sections, 6) array.

    Bands at or above ~Nyquist and bands with negligible gain are skipped.
    """
    nyquist = 0.5 * float(sample_rate_hz)
    sections = []
    for band in correction_profile.bands:
        if abs(band.gain_db) < MIN_ACTIVE_GAIN_DB:
            continue
        if band.frequency >= 0.95 * nyquist:
            logger.debug("Skipping %.0f Hz band: too close to Nyquist (%.0f Hz)", band.frequency, nyquist)
            continue
        sections.append(
            design_peaking_sos(
                frequency_hz=band.frequency,
                gain_db=band.gain_db,
                q=band.frequency / band.bandwidth,
                sample_rate_hz=sample_rate_hz,
            )
        )

    if not sections:
        return np.zeros((0, 6), dtype=np.float64)
    return np.vstack(sections)


def apply_correction(
    samples: np.ndarray,
    sample_rate_hz: float,
    correction_profile: EQProfile,
) -> np.ndarray:
    """
    Return samples filtered through the correction cascade (float32).
    """
    if samples.ndim != 1:
        raise ValueError("apply_correction expects a 1D mono array.")
    if sample_rate_hz <= 0:
        raise ValueError(f"sample_rate_hz must be positive, got {sample_rate_hz}")

    sos = correction_to_sos(correction_profile, sample_rate_hz)
    if sos.shape[0] == 0:
        return samples.astype(np.float32, copy=True)

    logger.info("Applying %d peaking sections at %g Hz", sos.shape[0], float(sample_rate_hz))
    filtered = sosfilt(sos, samples.astype(np.float64, copy=False))
    return filtered.astype(np.float32)
