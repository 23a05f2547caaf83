# eqmatch/quality.py
"""
Match quality: how close the corrected input gets to the reference.

The correction is applied to the input band gains, the residual against the
reference is reduced to a confidence-weighted RMS deviation (dB), and the
deviation is mapped onto (0, 1] with 1 / (1 + deviation / scale_db).
Low-confidence bands weigh less, so one unreliable band cannot sink the score.
When no band carries any confidence every band weighs the same.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

if TYPE_CHECKING:
    from eqmatch.profile import EQProfile


def weighted_rms_deviation(residual_db: np.ndarray, weights: np.ndarray) -> float:
    total_weight = float(np.sum(weights))
    if total_weight <= 0.0:
        # No evidence anywhere: plain RMS over all bands.
        return float(np.sqrt(np.mean(residual_db * residual_db))) if residual_db.size else 0.0
    return float(np.sqrt(np.sum(weights * residual_db * residual_db) / total_weight))


def score(
    reference: "EQProfile",
    input: "EQProfile",
    correction: "EQProfile",
    scale_db: float = 3.0,
) -> float:
    """
    Quality in [0, 1]; 1 is a perfect match, with or without band confidence.
    """
    if scale_db <= 0.0:
        raise ValueError(f"scale_db must be positive, got {scale_db}")
    if not (len(reference.bands) == len(input.bands) == len(correction.bands)):
        raise ValueError("reference, input and correction must have the same number of bands")

    corrected_input = input.gains_db + correction.gains_db
    residual = reference.gains_db - corrected_input
    weights = np.clip(correction.confidences, 0.0, 1.0)

    deviation = weighted_rms_deviation(residual, weights)
    return float(1.0 / (1.0 + deviation / float(scale_db)))
